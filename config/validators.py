"""
Configuration Validation for AutoPublisher

This module contains configuration validation logic.
Kept apart from settings.py so importing settings never raises.
"""

from decimal import Decimal, InvalidOperation

from utils.exceptions import ConfigurationError
from utils.logger import get_logger


def validate_settings():
    """
    Validate that all required settings are properly configured.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    # Import settings here to avoid circular imports
    from config import settings

    errors = []
    logger = get_logger(__name__)

    # Required environment variables
    required_vars = [
        ("ENCRYPTION_KEY", settings.ENCRYPTION_KEY),
        ("DB_SERVER", settings.DB_SERVER),
        ("DB_NAME", settings.DB_NAME),
        ("DB_USER", settings.DB_USER),
        ("DB_PASSWORD", settings.DB_PASSWORD)
    ]

    for var_name, var_value in required_vars:
        if not var_value:
            errors.append(f"Missing required environment variable: {var_name}")

    # Verify database connection string was built successfully
    if not settings.DB_CONNECTION_STRING:
        errors.append("Database connection string could not be built. Check DB_SERVER, DB_NAME, DB_USER, DB_PASSWORD.")

    # Missing provider keys degrade features rather than stopping the scheduler
    if not settings.GOOGLE_AI_API_KEY:
        logger.warning("GOOGLE_AI_API_KEY is not set. Every campaign run will fail "
                       "with 'provider not configured' until it is.")
    if not settings.OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY is not set. Posts will be published without featured images.")

    # Validate numeric settings are within reasonable bounds
    numeric_validations = [
        ("CAMPAIGN_CHECK_INTERVAL_SECONDS", settings.CAMPAIGN_CHECK_INTERVAL_SECONDS, 10, 3600),
        ("CAMPAIGN_BATCH_SIZE", settings.CAMPAIGN_BATCH_SIZE, 1, 500),
        ("STUCK_ITEM_TIMEOUT_HOURS", settings.STUCK_ITEM_TIMEOUT_HOURS, 1, 72),
        ("FAILED_ITEM_RETENTION_DAYS", settings.FAILED_ITEM_RETENTION_DAYS, 1, 365),
        ("COMPLETED_ITEM_RETENTION_DAYS", settings.COMPLETED_ITEM_RETENTION_DAYS, 1, 3650),
        ("LOG_RETENTION_DAYS", settings.LOG_RETENTION_DAYS, 1, 3650),
        ("TRIAL_POST_LIMIT", settings.TRIAL_POST_LIMIT, 0, 1000),
        ("HOBBYIST_MONTHLY_POST_LIMIT", settings.HOBBYIST_MONTHLY_POST_LIMIT, 0, 10000),
        ("CONTENT_TEMPERATURE", settings.CONTENT_TEMPERATURE, 0.0, 2.0),
        ("DAILY_MAINTENANCE_HOUR", settings.DAILY_MAINTENANCE_HOUR, 0, 23),
        ("WEEKLY_CLEANUP_WEEKDAY", settings.WEEKLY_CLEANUP_WEEKDAY, 0, 6),
        ("WEEKLY_CLEANUP_HOUR", settings.WEEKLY_CLEANUP_HOUR, 0, 23),
        ("MONTHLY_RESET_DAY", settings.MONTHLY_RESET_DAY, 1, 28),
    ]

    for name, value, min_val, max_val in numeric_validations:
        if value < min_val or value > max_val:
            errors.append(f"{name} must be between {min_val} and {max_val}, got {value}")

    # Interval bounds must parse and be ordered
    try:
        min_interval = Decimal(settings.MIN_INTERVAL_HOURS)
        max_interval = Decimal(settings.MAX_INTERVAL_HOURS)
        if min_interval <= 0 or min_interval > max_interval:
            errors.append(f"Interval bounds are invalid: {min_interval} - {max_interval}")
    except InvalidOperation:
        errors.append("MIN_INTERVAL_HOURS and MAX_INTERVAL_HOURS must be decimal numbers")

    # Validate timeout values are positive
    timeout_settings = [
        ("GENERATION_TIMEOUT_SECONDS", settings.GENERATION_TIMEOUT_SECONDS),
        ("IMAGE_TIMEOUT_SECONDS", settings.IMAGE_TIMEOUT_SECONDS),
        ("PUBLISH_TIMEOUT_SECONDS", settings.PUBLISH_TIMEOUT_SECONDS),
        ("MEDIA_UPLOAD_TIMEOUT_SECONDS", settings.MEDIA_UPLOAD_TIMEOUT_SECONDS),
        ("IMAGE_DOWNLOAD_TIMEOUT_SECONDS", settings.IMAGE_DOWNLOAD_TIMEOUT_SECONDS),
        ("CONNECTION_TEST_TIMEOUT_SECONDS", settings.CONNECTION_TEST_TIMEOUT_SECONDS),
    ]

    for name, value in timeout_settings:
        if value <= 0:
            errors.append(f"{name} must be positive, got {value}")

    # Raise all errors at once
    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ConfigurationError(error_msg)

    return True


def get_config_summary() -> dict:
    """
    Returns a summary of current configuration (without sensitive values).
    Useful for logging startup state.
    """
    # Import settings here to avoid circular imports
    from config import settings

    return {
        "providers": {
            "text": {
                "model": settings.TEXT_MODEL,
                "configured": bool(settings.GOOGLE_AI_API_KEY),
            },
            "image": {
                "model": settings.IMAGE_MODEL,
                "configured": bool(settings.OPENAI_API_KEY),
            },
        },
        "database": {
            "server": settings.DB_SERVER[:20] + "..." if settings.DB_SERVER and len(settings.DB_SERVER) > 20 else settings.DB_SERVER,
            "database": settings.DB_NAME,
        },
        "scheduler": {
            "check_interval_seconds": settings.CAMPAIGN_CHECK_INTERVAL_SECONDS,
            "batch_size": settings.CAMPAIGN_BATCH_SIZE,
            "stuck_timeout_hours": settings.STUCK_ITEM_TIMEOUT_HOURS,
        },
        "retention": {
            "failed_days": settings.FAILED_ITEM_RETENTION_DAYS,
            "completed_days": settings.COMPLETED_ITEM_RETENTION_DAYS,
            "log_days": settings.LOG_RETENTION_DAYS,
        },
        "quotas": {
            "trial_lifetime": settings.TRIAL_POST_LIMIT,
            "hobbyist_monthly": settings.HOBBYIST_MONTHLY_POST_LIMIT,
            "professional": "unlimited",
        },
    }
