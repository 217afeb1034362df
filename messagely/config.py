from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Loaded once at startup and treated as immutable afterwards.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
        frozen=True,
    )

    # Database Configuration - required
    DATABASE_URL: str

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Token signing secret - required
    SECRET_KEY: str

    # bcrypt cost parameter
    BCRYPT_WORK_FACTOR: int = Field(default=12, ge=4, le=31)

    # Tokens never expire unless this is set
    TOKEN_EXPIRY_SECONDS: Optional[int] = Field(default=None, gt=0)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
