"""
Configuration Settings for AutoPublisher

This module centralizes all configuration settings for the campaign scheduler,
including environment variables, API keys, and application constants.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Determine the application root directory
APP_ROOT = Path(__file__).resolve().parent.parent

# Load environment variables from .env file
load_dotenv(dotenv_path=os.path.join(APP_ROOT, '.env'))


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


# API Keys and Authentication
GOOGLE_AI_API_KEY = os.getenv("GOOGLE_AI_API_KEY")     # Text generation (Gemini)
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")           # Featured images (DALL-E)
ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY")           # Site password encryption

# Database Settings
DB_SERVER = os.getenv("DB_SERVER", "")
DB_NAME = os.getenv("DB_NAME", "")
DB_USER = os.getenv("DB_USER", "")
DB_PASSWORD = os.getenv("DB_PASSWORD", "")
DB_DRIVER = os.getenv("DB_DRIVER", "ODBC Driver 18 for SQL Server")

# Build connection string safely (validation happens in validate_settings())
DB_CONNECTION_STRING = (
    f"DRIVER={{{DB_DRIVER}}}; "
    f"SERVER={DB_SERVER}; "
    f"DATABASE={DB_NAME}; "
    f"UID={DB_USER}; "
    f"PWD={DB_PASSWORD}; "
    f"TrustServerCertificate=yes; MARS_Connection=yes;"
) if all([DB_SERVER, DB_NAME, DB_USER, DB_PASSWORD]) else ""

# =============================================================================
# Scheduler Settings
# =============================================================================

CAMPAIGN_CHECK_INTERVAL_SECONDS = _env_int("CAMPAIGN_CHECK_INTERVAL_SECONDS", 300)
CAMPAIGN_BATCH_SIZE = _env_int("CAMPAIGN_BATCH_SIZE", 10)   # Due campaigns per poll tick
DAILY_MAINTENANCE_HOUR = 2           # UTC
WEEKLY_CLEANUP_WEEKDAY = 6           # Sunday (datetime.weekday())
WEEKLY_CLEANUP_HOUR = 3              # UTC
MONTHLY_RESET_DAY = 1
MONTHLY_RESET_HOUR = 0               # UTC
JOB_STOP_TIMEOUT_SECONDS = 10        # Wait for job threads on stop()

# Maintenance windows
STUCK_ITEM_TIMEOUT_HOURS = 2
FAILED_ITEM_RETENTION_DAYS = 7
COMPLETED_ITEM_RETENTION_DAYS = 30
LOG_RETENTION_DAYS = 90
LOG_CLEANUP_SEVERITIES = ["debug", "info"]
QUEUE_STATS_WINDOW_DAYS = 7
STUCK_ITEM_ERROR_MESSAGE = "Processing timeout - stuck in progress"

# Campaign interval bounds (hours, two-decimal precision)
MIN_INTERVAL_HOURS = "0.10"
MAX_INTERVAL_HOURS = "168.00"
DEFAULT_INTERVAL_HOURS = "24.00"
MAX_CONTENT_TYPES_PER_CAMPAIGN = 5

# =============================================================================
# Quota Settings
# =============================================================================

TRIAL_POST_LIMIT = 5                 # Lifetime posts on the trial tier
HOBBYIST_MONTHLY_POST_LIMIT = 25     # Posts per billing period on the hobbyist tier
MONTHLY_RESET_TIERS = ["hobbyist", "professional"]

# =============================================================================
# Generation Settings
# =============================================================================

TEXT_MODEL = os.getenv("TEXT_MODEL", "gemini-2.0-flash")
IMAGE_MODEL = os.getenv("IMAGE_MODEL", "dall-e-3")
IMAGE_SIZE = os.getenv("IMAGE_SIZE", "1024x1024")
IMAGE_QUALITY = "standard"

GENERATION_TIMEOUT_SECONDS = _env_int("GENERATION_TIMEOUT_SECONDS", 120)
IMAGE_TIMEOUT_SECONDS = _env_int("IMAGE_TIMEOUT_SECONDS", 120)

CONTENT_MAX_TOKENS = 4000
CONTENT_TEMPERATURE = _env_float("CONTENT_TEMPERATURE", 0.7)
TITLE_MAX_TOKENS = 500
TITLE_TEMPERATURE = 0.8
KEYWORD_MAX_TOKENS = 200
KEYWORD_TEMPERATURE = 0.3

DEFAULT_TITLE_COUNT = 5
MIN_TITLE_LENGTH = 10                # Parsed titles must be longer than this
SYNTHETIC_TITLE_LENGTH = 60          # Chars of body used when no TITLE: delimiter
KEYWORD_CONTEXT_LENGTH = 500         # Body chars sent for keyword extraction
MAX_KEYWORDS = 8
MIN_KEYWORD_LENGTH = 3
FALLBACK_KEYWORD_TAGS = ["blog", "article", "tips", "guide"]

# =============================================================================
# Publishing Settings
# =============================================================================

PUBLISH_TIMEOUT_SECONDS = 30         # Post creation
MEDIA_UPLOAD_TIMEOUT_SECONDS = 60    # Media library upload
IMAGE_DOWNLOAD_TIMEOUT_SECONDS = 30  # Fetching the generated image
CONNECTION_TEST_TIMEOUT_SECONDS = 10
DEFAULT_POST_STATUS = "publish"
USER_AGENT = "FiddyAutoPublisher/1.0"
