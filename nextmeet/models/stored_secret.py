# nextmeet/models/stored_secret.py
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text

from nextmeet.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class StoredSecret(Base):
    """
    One opaque secret (e.g. a serialized OAuth token set) owned by this
    application. The value may be Fernet-encrypted by the credential store.
    """

    __tablename__ = "stored_secrets"

    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        # Never render the value.
        return f"<StoredSecret key={self.key} updated_at={self.updated_at}>"
