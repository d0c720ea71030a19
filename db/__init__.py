"""
db - Database layer.

Public API:
    init_db()       → create engine + tables
    get_session()   → new Session
    ImportJob, ImportIssue, ReadingEntry, ToReadEntry, CatalogCacheEntry → ORM models
"""

from db.engine import init_db, get_session, dispose_db      # noqa: F401
from db.models import (                                     # noqa: F401
    Base, ImportJob, ImportIssue, ReadingEntry, ToReadEntry, CatalogCacheEntry,
)
