"""
Record Sync - Configuration Management

Centralized configuration for the reconciliation engine.
This module ensures:
- No hardcoded connection strings
- Environment-specific settings (dev/staging/prod)
- Tunable matching and bucketing limits
"""

from typing import List
from pydantic import Field
from pydantic_settings import BaseSettings
from functools import lru_cache
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type coercion.
    """

    # ==================== ENVIRONMENT ====================
    ENVIRONMENT: str = Field(
        default="development",
        description="Runtime environment: development, staging, production"
    )
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (auto-enabled in development)"
    )

    # ==================== DATABASE ====================
    DATABASE_URL: str = Field(
        default="sqlite:///./reconciliation.db",
        description="SQLAlchemy URL of the link store database"
    )
    DATABASE_ECHO: bool = Field(
        default=False,
        description="Echo SQL statements (debugging only)"
    )

    # ==================== OBSERVABILITY ====================
    SENTRY_DSN: str = Field(
        default="",
        description="Sentry DSN for error tracking"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR"
    )
    LOG_JSON: bool = Field(
        default=True,
        description="Emit JSON log lines (disable for local development)"
    )

    # ==================== RECONCILIATION ====================
    BUCKET_MAX_ITERATIONS: int = Field(
        default=1_000_000,
        description="Upper bound of date buckets per pass (guards against malformed ranges)"
    )
    DEFAULT_COUNTRY_PREFIX: str = Field(
        default="+49",
        description="Country prefix replaced by a leading 0 when comparing phone numbers"
    )
    CONTACT_MIN_SCORE: int = Field(
        default=1,
        description="Minimum score for a contact/address pair to be matched"
    )
    BANK_MIN_SCORE: int = Field(
        default=1,
        description="Minimum score for a statement line/ledger record pair to be matched"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    # ==================== COMPUTED PROPERTIES ====================

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def debug_enabled(self) -> bool:
        """Enable debug in development or when explicitly set"""
        return self.DEBUG or self.is_development

    def validate_production_config(self) -> List[str]:
        """
        Validate configuration for production deployment.
        Returns list of validation errors.
        """
        errors = []

        if not self.DATABASE_URL:
            errors.append("DATABASE_URL is required")

        if self.BUCKET_MAX_ITERATIONS < 1:
            errors.append("BUCKET_MAX_ITERATIONS must be positive")

        if self.CONTACT_MIN_SCORE < 1 or self.BANK_MIN_SCORE < 1:
            errors.append("Minimum match scores must be at least 1")

        if self.is_production:
            if self.DATABASE_URL.startswith("sqlite"):
                errors.append("DATABASE_URL cannot be SQLite in production")

            if self.DEBUG:
                errors.append("DEBUG should be False in production")

        return errors


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Settings are loaded once and cached for the application lifetime.
    """
    settings = Settings()

    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug: {settings.debug_enabled}")

    if settings.is_production:
        errors = settings.validate_production_config()
        if errors:
            for error in errors:
                logger.error(f"Configuration error: {error}")
            raise ValueError(f"Production configuration invalid: {', '.join(errors)}")

    return settings


# ==================== ENVIRONMENT VALIDATION ====================

def validate_environment() -> dict:
    """
    Validate all required environment variables.

    Returns a status dict with validation results.
    """
    settings = get_settings()

    status = {
        "valid": True,
        "environment": settings.ENVIRONMENT,
        "errors": [],
        "warnings": [],
        "variables": {}
    }

    if not settings.DATABASE_URL:
        status["errors"].append("DATABASE_URL is not set")
        status["valid"] = False
    else:
        status["variables"]["DATABASE_URL"] = "✓ Set"

    if not settings.SENTRY_DSN:
        status["warnings"].append("Error tracking disabled")
        status["variables"]["SENTRY_DSN"] = "⚠ Not set"
    else:
        status["variables"]["SENTRY_DSN"] = "✓ Set"

    errors = settings.validate_production_config()
    if errors:
        status["errors"].extend(errors)
        status["valid"] = False

    return status
