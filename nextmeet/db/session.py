# nextmeet/db/session.py
import os

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from nextmeet.db.base import Base
from nextmeet.models.stored_secret import StoredSecret  # noqa: F401
from nextmeet.models.user_setting import UserSetting  # noqa: F401

# Detect if we're running under pytest
IS_TEST = "PYTEST_CURRENT_TEST" in os.environ


def build_engine(db_url: str) -> AsyncEngine:
    """
    Create the async engine backing the credential and preference stores.

    Under pytest a NullPool is used so connections are never reused across
    event loops.
    """
    return create_async_engine(
        db_url,
        echo=False,
        future=True,
        poolclass=NullPool if IS_TEST else None,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
        class_=AsyncSession,
    )


async def init_db(engine: AsyncEngine) -> None:
    """
    Create any missing tables. Safe to call on every startup.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
