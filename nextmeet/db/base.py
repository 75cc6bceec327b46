# nextmeet/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models in the nextmeet service.

    ORM modules register themselves on import; `nextmeet.db.session` imports
    them so `Base.metadata` is complete before any DDL runs.
    """
    pass
