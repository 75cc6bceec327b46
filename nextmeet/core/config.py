# nextmeet/core/config.py
from datetime import tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Global configuration for the calendar aggregation service.

    Values are loaded from environment variables (or a local `.env` file) at
    runtime. User-adjustable preferences (refresh interval, all-day toggle,
    per-provider enable flags) start from the defaults below and are then
    overridden by whatever the user saved through the control API.
    """

    APP_NAME: str = "nextmeet"
    APP_ENV: str = Field("local", description="Environment name: local/dev/stage/prod")

    DB_URL: str = Field(
        "sqlite+aiosqlite:///./nextmeet.db",
        description="SQLAlchemy-compatible database URL for secrets and preferences.",
    )

    INTERNAL_API_KEY: str | None = Field(
        default=None,
        description="API key required for mutating control endpoints.",
    )

    LOG_LEVEL: str = Field(default="INFO", description="Root log level.")
    LOG_FORMAT: str = Field(default="text", description="Log output format: text/json.")

    # --- OAuth client registrations ---
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = Field(
        default=None,
        description="Only needed for Google 'Desktop app' clients; PKCE is always used.",
    )
    GOOGLE_REDIRECT_URI: str = "http://127.0.0.1:8765/oauth/google/callback"

    OUTLOOK_CLIENT_ID: str | None = None
    OUTLOOK_TENANT: str = Field(
        default="common",
        description="Microsoft identity tenant; 'common' allows work and personal accounts.",
    )
    OUTLOOK_REDIRECT_URI: str = "http://127.0.0.1:8765/oauth/outlook/callback"

    # --- Engine behaviour ---
    REFRESH_INTERVAL_SECONDS: int = Field(
        default=60,
        description="Default refresh cadence while meetings remain and no UI is visible.",
    )
    SHOW_ALL_DAY_EVENTS: bool = True
    FETCH_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Upper bound for a single provider fetch within a refresh cycle.",
    )
    LOCAL_TIMEZONE: str | None = Field(
        default=None,
        description="IANA zone used for day boundaries; defaults to the host zone.",
    )
    SCHEDULER_ENABLED: bool = True

    CREDENTIALS_ENCRYPTION_KEY: str | None = Field(
        default=None,
        description="Fernet key used to encrypt stored OAuth tokens at rest.",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    def local_timezone(self) -> tzinfo | None:
        """
        Timezone used to compute local calendar days.
        """
        if self.LOCAL_TIMEZONE:
            return ZoneInfo(self.LOCAL_TIMEZONE)
        return None


@lru_cache()
def get_settings() -> Settings:
    """
    Cached accessor for application settings.
    """
    return Settings()
