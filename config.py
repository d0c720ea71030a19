"""
Marginalia - Centralised configuration.

All tunables live here.  Every other module imports from config
instead of reading os.environ directly.
"""

from __future__ import annotations
import os
from pathlib import Path

import dotenv


# ── Paths ──────────────────────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent

# Existing process env wins; .env only fills the gaps
dotenv.load_dotenv(BASE_DIR / ".env")

# ── Database ───────────────────────────────────────────────────────────
DB_URL = os.environ.get("MARGINALIA_DB", f"sqlite:///{BASE_DIR / 'marginalia.sqlite'}")

# ── Redis (Celery broker + volatile cache tier) ────────────────────────
# Unset → Celery runs eagerly and the cache is durable-tier only.
REDIS_URL = os.environ.get("REDIS_URL", "")

# ── Server ─────────────────────────────────────────────────────────────
HOST   = os.environ.get("MARGINALIA_HOST", "0.0.0.0")
PORT   = int(os.environ.get("MARGINALIA_PORT", "4000"))
DEBUG  = os.environ.get("MARGINALIA_DEBUG", "0") == "1"
SECRET = os.environ.get("MARGINALIA_SECRET", "marginalia-dev-key-change-in-prod")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# ── External catalog (Hardcover GraphQL) ───────────────────────────────
HARDCOVER_API_URL   = os.environ.get("HARDCOVER_API_URL", "https://api.hardcover.app/v1/graphql")
HARDCOVER_API_TOKEN = os.environ.get("HARDCOVER_API_TOKEN", "")

CATALOG_TIMEOUT_SECONDS      = float(os.environ.get("CATALOG_TIMEOUT_SECONDS", "7"))
CATALOG_MIN_INTERVAL_SECONDS = float(os.environ.get("CATALOG_MIN_INTERVAL_SECONDS", "1.1"))
CATALOG_MAX_ATTEMPTS         = int(os.environ.get("CATALOG_MAX_ATTEMPTS", "5"))
CATALOG_MAX_BACKOFF_SECONDS  = float(os.environ.get("CATALOG_MAX_BACKOFF_SECONDS", "12"))
CATALOG_PREFETCH_WORKERS     = int(os.environ.get("CATALOG_PREFETCH_WORKERS", "4"))

# ── Cache TTLs (seconds) ───────────────────────────────────────────────
SEARCH_TTL_SECONDS    = 60 * 60 * 6
DETAIL_TTL_SECONDS    = 60 * 60 * 24
BOOK_META_TTL_SECONDS = 60 * 60 * 24 * 365
VOLATILE_READBACK_TTL_SECONDS = 300

# ── Import pipeline ────────────────────────────────────────────────────
IMPORT_MAX_CSV_BYTES         = int(os.environ.get("IMPORT_MAX_CSV_BYTES", str(10 * 1024 * 1024)))
IMPORT_MAX_ATTEMPTS          = int(os.environ.get("IMPORT_MAX_ATTEMPTS", "3"))
IMPORT_RETRY_BACKOFF_SECONDS = int(os.environ.get("IMPORT_RETRY_BACKOFF_SECONDS", "1"))
IMPORT_CLAIM_LEASE_SECONDS   = int(os.environ.get("IMPORT_CLAIM_LEASE_SECONDS", "900"))
IMPORT_VISIBILITY_TIMEOUT_SECONDS = int(os.environ.get("IMPORT_VISIBILITY_TIMEOUT_SECONDS", str(24 * 60 * 60)))
IMPORT_ISSUE_LIMIT           = 200
IMPORT_LIST_LIMIT            = 20
IMPORT_DEFAULT_FILENAME      = "goodreads_library_export.csv"

# ── Live status stream ─────────────────────────────────────────────────
IMPORT_EVENTS_POLL_SECONDS      = float(os.environ.get("IMPORT_EVENTS_POLL_SECONDS", "2"))
IMPORT_EVENTS_KEEPALIVE_SECONDS = float(os.environ.get("IMPORT_EVENTS_KEEPALIVE_SECONDS", "10"))
