"""Constants and configuration defaults for tracknotify.

This module contains all magic values, default configurations, and constants
used throughout the application. Import from here instead of hardcoding values.
"""

from typing import Final

# =============================================================================
# VERSION
# =============================================================================
VERSION: Final[str] = "0.1.0"

# =============================================================================
# HTTP CLIENT DEFAULTS
# =============================================================================
DEFAULT_HTTP_TIMEOUT_SECONDS: Final[float] = 30.0

# =============================================================================
# TIME FORMATTING
# =============================================================================
DATETIME_FORMAT: Final[str] = "%d.%m.%Y %H:%M:%S"  # DD.MM.YYYY HH:mm:ss
DEFAULT_TIMEZONE: Final[str] = "UTC"

# =============================================================================
# CHECKPOINTS
# =============================================================================
DEFAULT_CHECKPOINT_LOOKBACK_DAYS: Final[int] = 10
DEFAULT_CHECKPOINT_DIR: Final[str] = "last"
CHECKPOINT_FILE_SUFFIX: Final[str] = "_last_request.json"
CHECKPOINT_BACKEND_JSON: Final[str] = "json"
CHECKPOINT_BACKEND_SQLITE: Final[str] = "sqlite"

# =============================================================================
# YOUTRACK API
# =============================================================================
YOUTRACK_ISSUES_BY_PROJECT_PATH: Final[str] = "/rest/issue/byproject"
YOUTRACK_ISSUE_PATH: Final[str] = "/rest/issue"
YOUTRACK_HEALTH_PATH: Final[str] = "/rest/user/current"
YOUTRACK_ISSUE_URL_PATH: Final[str] = "/issue"
YOUTRACK_LIST_FIELDS: Final[tuple[str, ...]] = (
    "summary",
    "description",
    "updaterName",
    "created",
    "updated",
    "attachments",
)

# =============================================================================
# TELEGRAM API
# =============================================================================
TELEGRAM_API_BASE_URL: Final[str] = "https://api.telegram.org"
TELEGRAM_PARSE_MODE: Final[str] = "HTML"
TELEGRAM_MAX_MESSAGE_LENGTH: Final[int] = 4096
TRUNCATION_SUFFIX: Final[str] = "... [truncated]"
MESSAGE_FORMAT_HTML: Final[str] = "html-subset"

# =============================================================================
# CYCLE DEFAULTS
# =============================================================================
DEFAULT_MAX_ISSUES: Final[int] = 100
DEFAULT_FETCH_CONCURRENCY: Final[int] = 4
DEFAULT_POLL_INTERVAL_MINUTES: Final[int] = 5

# =============================================================================
# OPERATIONS
# =============================================================================
OPERATION_CREATED: Final[str] = "created"
OPERATION_UPDATED: Final[str] = "updated"

# =============================================================================
# CONFIG FILE
# =============================================================================
CONFIG_FILE_NAME: Final[str] = ".tracknotify.yaml"

# =============================================================================
# LOGGING
# =============================================================================
LOG_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"
