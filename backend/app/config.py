"""
Configuration settings for the Storefront Insights engine.
Loads from environment variables with validation.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


DEV_SECRET_KEY = "dev-secret-change-me"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Storefront Insights"
    DEBUG: bool = False
    FRONTEND_URL: str = "http://localhost:3000"
    SECRET_KEY: str = DEV_SECRET_KEY

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/storefront"

    # LLM providers (delegated ranking is disabled when neither is set)
    ANTHROPIC_API_KEY: str | None = None
    OPENAI_API_KEY: str | None = None

    # Recommendation engine
    RANKING_TIMEOUT_SECONDS: float = 8.0
    RECOMMENDATION_LOOKBACK_DAYS: int = 90
    INSIGHTS_WINDOW_DAYS: int = 30

    def validate_production_settings(self):
        """Validate critical settings for production deployment."""
        if not self.DEBUG and self.SECRET_KEY == DEV_SECRET_KEY:
            raise ValueError(
                "SECRET_KEY must be set in production. "
                "Generate with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
            )

    @property
    def delegated_ranking_enabled(self) -> bool:
        return bool(self.ANTHROPIC_API_KEY or self.OPENAI_API_KEY)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings loader with production validation."""
    settings = Settings()
    # Validate critical settings when not in debug mode
    if not settings.DEBUG:
        settings.validate_production_settings()
    return settings
