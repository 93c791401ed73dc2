"""
Record Sync - Process Bootstrap

Brings up the ambient stack before the host runs reconciliation passes:
environment file, structured logging, Sentry, configuration checks and the
link store tables.
"""

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent


def bootstrap(env_file: Optional[Path] = None, service_name: str = "record-sync"):
    """
    Configure the process and return the link store session factory.

    Raises:
        RuntimeError: if the configuration is invalid in production
    """
    # Load environment variables first
    load_dotenv(env_file or ROOT_DIR / '.env')

    from config import get_settings, validate_environment
    from logging_config import setup_logging, get_logger
    from sentry_integration import init_sentry
    from database import init_db, get_session_factory

    settings = get_settings()

    # Use JSON format in production, plain text in development
    setup_logging(
        level=settings.LOG_LEVEL,
        json_format=settings.LOG_JSON or settings.is_production,
        service_name=service_name
    )
    logger = get_logger(__name__)

    if settings.SENTRY_DSN:
        init_sentry(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT,
        )

    logger.info(f"Starting {service_name} ({settings.ENVIRONMENT})")

    env_status = validate_environment()
    if not env_status["valid"]:
        for error in env_status["errors"]:
            logger.error(f"Configuration Error: {error}")
        if settings.is_production:
            raise RuntimeError("Cannot start in production with invalid configuration")

    for warning in env_status.get("warnings", []):
        logger.warning(f"Configuration Warning: {warning}")

    init_db()
    return get_session_factory()
