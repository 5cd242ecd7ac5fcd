"""
Application configuration using pydantic-settings.

WHAT: Centralized config from environment variables
WHY: Type-safe, validated config with sensible defaults
HOW: Pydantic BaseSettings reads from .env and environment
"""

from pydantic_settings import BaseSettings
from pydantic import field_validator
from pathlib import Path


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # App metadata
    APP_NAME: str = "Marketplace Chat"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Marketplace backend
    API_BASE_URL: str = "http://127.0.0.1:8000/api"
    API_TIMEOUT: float = 15.0  # seconds

    # Retry Controller (fixed delay, not exponential)
    RETRY_MAX_RETRIES: int = 2
    RETRY_DELAY: float = 1.0  # seconds between attempts

    # Conversation polling
    REFRESH_INTERVAL: float = 10.0  # seconds

    # Message vocabulary used by the backend
    CURRENCY_PREFIX: str = "A$"
    REVIEW_MARKER: str = "left a review:"
    NOT_LIKED_MARKER: str = "You have not liked this listing"

    # Local facade
    FACADE_HOST: str = "127.0.0.1"
    FACADE_PORT: int = 8010
    SESSION_IDLE_MINUTES: int = 30

    # CORS - accepts comma-separated string or list
    CORS_ORIGINS: str = "http://localhost:8081,http://localhost:19006"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from comma-separated string or list."""
        if isinstance(v, list):
            return ",".join(v)
        return v

    def get_cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @field_validator("RETRY_MAX_RETRIES")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Retries cannot be negative (0 means a single attempt)."""
        if v < 0:
            raise ValueError("RETRY_MAX_RETRIES must be >= 0")
        return v

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "./data/logs/marketchat.log"

    class Config:
        env_file = str(Path(__file__).parent.parent.parent / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


# Singleton instance
settings = Settings()
