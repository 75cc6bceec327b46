# nextmeet/main.py
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from nextmeet.api.routes import controls, health, oauth, providers, snapshot
from nextmeet.core.config import Settings, get_settings
from nextmeet.core.logging import configure_logging
from nextmeet.db.session import build_engine, build_session_factory, init_db
from nextmeet.services.engine import CalendarEngine
from nextmeet.services.web_auth import BrowserWebAuthenticator


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[CalendarEngine] = None,
    authenticator: Optional[BrowserWebAuthenticator] = None,
) -> FastAPI:
    """
    Application factory for the nextmeet calendar aggregation service.

    With no `engine` supplied the lifespan builds the database, wires the
    production providers from settings and starts the scheduler. Tests pass
    a pre-built engine instead; the lifespan then only starts and stops it.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

        db_engine = None
        calendar_engine = engine
        app.state.authenticator = authenticator or BrowserWebAuthenticator()

        if calendar_engine is None:
            db_engine = build_engine(settings.DB_URL)
            await init_db(db_engine)
            calendar_engine = CalendarEngine.from_settings(
                settings,
                build_session_factory(db_engine),
                authenticator=app.state.authenticator,
            )

        await calendar_engine.start()
        app.state.engine = calendar_engine
        try:
            yield
        finally:
            app.state.engine = None
            await calendar_engine.stop()
            if db_engine is not None:
                await db_engine.dispose()

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Local service that aggregates today's meetings from Apple, Google and\n"
            "Outlook calendars, tracks the next meeting and its urgency, and keeps\n"
            "the OAuth sessions of the network providers alive."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # Routers
    app.include_router(health.router)
    app.include_router(snapshot.router)
    app.include_router(providers.router)
    app.include_router(controls.router)
    app.include_router(oauth.router)

    return app


app = create_app()
