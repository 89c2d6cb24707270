"""Internal constants shared across the library."""

BASE_URL = "http://localhost:8080"
STORE_URL = "http://localhost:8081"
API_PREFIX = "/api"
USER_AGENT = "pairsync/1"

# ------------------------------------------------------------------
# Live store collections
# ------------------------------------------------------------------

COLLECTION_TRADES = "trades"
COLLECTION_ACCOUNT_METRICS = "accountMetrics"
COLLECTION_CORRELATED_PAIRS = "correlatedPairs"
COLLECTION_BOT_EVENTS = "botEvents"
COLLECTION_API_ERRORS = "apiErrors"

#: Event type the bot logs after it finished a position reconciliation pass.
POSITION_SYNC_COMPLETED = "position_sync_completed"

# ------------------------------------------------------------------
# Cache keys and TTLs (seconds)
# ------------------------------------------------------------------

SYNC_STATUS_CACHE_KEY = "syncStatus"

TTL_BOT_EVENTS = 15.0
TTL_TRADES = 15.0
TTL_SYNC_STATUS = 15.0
TTL_ACCOUNT_SUMMARY = 30.0
TTL_CORRELATION_PAIRS = 30.0
TTL_DASHBOARD = 30.0
TTL_HEALTH = 60.0
TTL_PERFORMANCE_HISTORY = 120.0

# ------------------------------------------------------------------
# Retry policy defaults
# ------------------------------------------------------------------

DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE = 1.0
DEFAULT_BACKOFF_CAP = 30.0

#: HTTP statuses treated as transient (retried before falling back).
TRANSIENT_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})

# Trade statuses that count as an open position.
OPEN_TRADE_STATUSES: frozenset[str] = frozenset({"open", "active"})
