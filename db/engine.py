"""
db.engine - Engine bootstrap and session factory.

The web process (uploads, listing, event streams) and the Celery worker
open their own engines on the same URL.  On SQLite that means two
processes sharing one file, so WAL mode and a busy timeout are applied
to every connection; on Postgres nothing here needs to change.
"""

from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from db.models import Base

_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")
SQLITE_BUSY_TIMEOUT_MS = 5000

_engine = None
_SessionLocal: sessionmaker | None = None


def init_db(db_url: str) -> None:
    """Create the engine, apply SQLite pragmas, and emit CREATE TABLE."""
    global _engine, _SessionLocal

    options = {}
    if db_url in _MEMORY_URLS:
        # Every session and thread must see the same in-memory database
        options = {"poolclass": StaticPool,
                   "connect_args": {"check_same_thread": False}}
    _engine = create_engine(db_url, future=True, **options)

    if db_url.startswith("sqlite"):
        event.listen(_engine, "connect", _sqlite_pragmas)

    Base.metadata.create_all(_engine)
    _SessionLocal = sessionmaker(bind=_engine, expire_on_commit=False)


def _sqlite_pragmas(dbapi_conn, _rec):
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA journal_mode=WAL")
    cur.execute("PRAGMA foreign_keys=ON")
    cur.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    cur.close()


def dispose_db() -> None:
    """Release the engine; the next init_db() starts from scratch."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_session() -> Session:
    """Return a new session.  Caller is responsible for .close()."""
    if _SessionLocal is None:
        raise RuntimeError("Database not initialised - call init_db() first")
    return _SessionLocal()
