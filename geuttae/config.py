"""
Geuttae application settings.

Extends the base settings with circle-specific configuration.
"""

from common.config import BaseAppSettings


class Settings(BaseAppSettings):
    """Geuttae-specific settings."""

    # ==========================================================================
    # Circle Settings
    # ==========================================================================
    # How many recent feed items piece and feed views read per circle
    FEED_WINDOW: int = 30

    # Regeneration attempts when a fresh invite code collides with another circle's
    INVITE_CODE_MAX_ATTEMPTS: int = 5

    # ==========================================================================
    # API
    # ==========================================================================
    API_PREFIX: str = "/api/v1"


# Global settings instance
settings = Settings()
