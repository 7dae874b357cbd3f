"""Service settings for the Domo webhook service."""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Settings read from the process environment and an optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase Configuration
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_ROLE_KEY: SecretStr = SecretStr("")

    # Tavus webhook authentication (either method is sufficient)
    TAVUS_WEBHOOK_SECRET: str = ""  # HMAC-SHA256 signature secret
    TAVUS_WEBHOOK_TOKEN: str = ""  # ?t= / ?token= query fallback

    # Video delivery
    VIDEO_STORAGE_BUCKET: str = "demo-videos"
    SIGNED_URL_TTL_SECONDS: int = 3600

    # Realtime broadcast
    REALTIME_SUBSCRIBE_TIMEOUT_SECONDS: float = 2.0

    # Module state persistence (compare-and-set retries)
    MODULE_STATE_MAX_RETRIES: int = 3

    # Application Settings
    APP_ENV: Literal["development", "staging", "production"] = "development"

    # Logging
    LOG_FORMAT: Literal["text", "json"] = "text"
    LOG_LEVEL: str = "INFO"

    # CORS Configuration
    CORS_ORIGINS: str = "http://localhost:3000"

    @field_validator("SUPABASE_URL")
    @classmethod
    def validate_supabase_url(cls, v: str) -> str:
        """Require an http(s) scheme and drop a trailing slash."""
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("SUPABASE_URL must start with http:// or https://")
        return v.rstrip("/") if v else v

    @field_validator("SIGNED_URL_TTL_SECONDS")
    @classmethod
    def validate_signed_url_ttl(cls, v: int) -> int:
        """Signed URLs must expire."""
        if v <= 0:
            raise ValueError("SIGNED_URL_TTL_SECONDS must be positive")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        """CORS_ORIGINS split on commas, blanks dropped."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def webhook_auth_configured(self) -> bool:
        """Check if at least one webhook authentication method is available."""
        return bool(self.TAVUS_WEBHOOK_SECRET or self.TAVUS_WEBHOOK_TOKEN)

    def validate_startup(self) -> None:
        """Validate that all required secrets are configured.

        Raises:
            ValueError: If any required secret is missing or empty.
        """
        required_secrets = {
            "SUPABASE_URL": self.SUPABASE_URL,
            "SUPABASE_SERVICE_ROLE_KEY": self.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
        }
        missing = [name for name, value in required_secrets.items() if not value]
        if missing:
            raise ValueError(f"Required secrets are missing or empty: {', '.join(missing)}")

        if not self.webhook_auth_configured:
            # Every webhook will be rejected with 401 until one is set.
            logger.warning(
                "Neither TAVUS_WEBHOOK_SECRET nor TAVUS_WEBHOOK_TOKEN is configured"
            )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance loaded from the environment.
    """
    return Settings()


# Shared instance; tests build their own Settings()
settings = get_settings()
