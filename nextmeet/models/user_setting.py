# nextmeet/models/user_setting.py
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String

from nextmeet.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class UserSetting(Base):
    """
    Simple key/value preference saved by the user (refresh interval, all-day
    toggle, per-provider enable flags).
    """

    __tablename__ = "user_settings"

    key = Column(String(128), primary_key=True)
    value = Column(String(256), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<UserSetting key={self.key} value={self.value}>"
