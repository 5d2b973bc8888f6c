import os

BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:8080")
BACKEND_TOKEN = os.getenv("BACKEND_TOKEN", "")
BACKEND_TIMEOUT_SECONDS = float(os.getenv("BACKEND_TIMEOUT_SECONDS", "10"))

# Console API key protecting mutation routes
API_KEY = os.getenv("API_KEY", "dev-key")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON") == "1"

# Staleness windows (seconds)
LIST_STALE_SECONDS = float(os.getenv("LIST_STALE_SECONDS", "10"))
DETAIL_STALE_SECONDS = float(os.getenv("DETAIL_STALE_SECONDS", "5"))
LOGS_STALE_SECONDS = float(os.getenv("LOGS_STALE_SECONDS", "5"))
STATS_STALE_SECONDS = float(os.getenv("STATS_STALE_SECONDS", "30"))
RUNNING_STALE_SECONDS = float(os.getenv("RUNNING_STALE_SECONDS", "5"))
TYPES_STALE_SECONDS = float(os.getenv("TYPES_STALE_SECONDS", "300"))

# Unused cache entries are evicted after this many seconds
CACHE_GC_SECONDS = float(os.getenv("CACHE_GC_SECONDS", "300"))

# Poll intervals (seconds)
DETAIL_POLL_SECONDS = float(os.getenv("DETAIL_POLL_SECONDS", "2"))
LOGS_POLL_SECONDS = float(os.getenv("LOGS_POLL_SECONDS", "3"))
STATS_POLL_SECONDS = float(os.getenv("STATS_POLL_SECONDS", "30"))
RUNNING_POLL_SECONDS = float(os.getenv("RUNNING_POLL_SECONDS", "5"))

LOG_LIMIT = int(os.getenv("LOG_LIMIT", "100"))
