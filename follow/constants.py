"""Package-wide constants and defaults."""

from __future__ import annotations

APP_NAME = "openfollow"

ENV_LOG_LEVEL = "FOLLOW_LOG_LEVEL"

DEFAULT_LOG_LEVEL = "INFO"

DEFAULT_PERIOD_MS = 3000
DEFAULT_TIMEOUT_SECONDS = 300
DEFAULT_FAIL_ON_TIMEOUT = True
DEFAULT_MAX_REDIRECTS = 10
DEFAULT_CHUNK_SIZE = 64 * 1024
# Applied when connect_timeout_ms / read_timeout_ms are left at -1.
DEFAULT_HTTP_TIMEOUT_MS = 30_000

# -1 means "not known"; 0 is a valid length of a present, empty resource.
UNKNOWN_LENGTH = -1
# Epoch millis; 0 means "not known".
UNKNOWN_MOD_TIME = 0

STATUS_COMPLETED = "completed"
STATUS_MATCHED = "matched"
STATUS_TIMED_OUT = "timed-out"
STATUS_CANCELLED = "cancelled"
STATUS_FAILED = "failed"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_CANCELLED = 130

OUTCOME_NO_CHANGE = "no-change"
OUTCOME_NEW_DATA = "new-data"
OUTCOME_ABSENT = "absent"
OUTCOME_ROTATED = "rotated"
OUTCOME_ERROR = "error"

PHASE_INITIALIZING = "initializing"
PHASE_POLLING = "polling"
PHASE_FETCHING = "fetching"
PHASE_COMPLETED = "completed"
PHASE_TIMED_OUT = "timed-out"
