# nextmeet/schemas/preferences.py
from typing import Dict

from pydantic import BaseModel, Field

from nextmeet.schemas.provider import ProviderId


class UserPreferences(BaseModel):
    """
    User-adjustable engine settings, persisted as key/value rows.
    """

    refresh_interval_seconds: int = Field(60, description="User refresh cadence (clamped 30-600s).")
    show_all_day_events: bool = Field(True, description="Include all-day entries in today's meetings.")
    provider_enabled: Dict[ProviderId, bool] = Field(
        default_factory=lambda: {provider: True for provider in ProviderId},
        description="Per-provider enable switch.",
    )

    def is_enabled(self, provider: ProviderId) -> bool:
        return self.provider_enabled.get(provider, True)
