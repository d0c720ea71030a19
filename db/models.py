"""
db.models - SQLAlchemy ORM declarations.

Tables
------
imports            - one row per uploaded reading-history export.  Holds
                     the raw CSV, parsed options, status and counters.
import_issues      - append-only per-row warnings/errors of an import.
reading_entries    - books being read or finished (finished_at not null).
to_read_entries    - planned books, one per (user, book_key).
catalog_cache      - durable tier of the catalog cache, keyed by
                     catalog identifier with an absolute expiry.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Integer, DateTime, Text, LargeBinary, ForeignKey,
    Index, UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


STATUS_QUEUED = "queued"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_COMPLETED_WITH_ERRORS = "completed_with_errors"
STATUS_FAILED = "failed"

TERMINAL_STATUSES = frozenset({
    STATUS_COMPLETED, STATUS_COMPLETED_WITH_ERRORS, STATUS_FAILED,
})

SEVERITY_WARNING = "warning"
SEVERITY_ERROR = "error"

JUDGMENT_ACCEPTED = "Accepted"
JUDGMENT_REJECTED = "Rejected"

COUNTER_FIELDS = (
    "total_rows", "processed_rows", "imported_rows", "failed_rows", "warning_rows",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def empty_summary() -> dict:
    return {name: 0 for name in COUNTER_FIELDS}


def parse_summary(raw: str | None) -> dict:
    """Decode a summary blob; anything unreadable becomes all-zero counters."""
    summary = empty_summary()
    try:
        parsed = json.loads(raw or "{}")
    except (TypeError, ValueError):
        return summary
    if not isinstance(parsed, dict):
        return summary
    for name in COUNTER_FIELDS:
        try:
            summary[name] = int(parsed.get(name) or 0)
        except (TypeError, ValueError):
            summary[name] = 0
    return summary


class Base(DeclarativeBase):
    pass


class ImportJob(Base):
    __tablename__ = "imports"

    # ── Identity / ownership ───────────────────────────────────────────
    id       = Column(String(36), primary_key=True, default=_new_id)
    user_id  = Column(String(64), nullable=False, index=True)
    filename = Column(String(500), nullable=False, default="")

    # ── Immutable envelope ─────────────────────────────────────────────
    csv_payload  = Column(LargeBinary, nullable=False)
    options_json = Column(Text, nullable=False, default="{}")

    # ── State machine + counters ───────────────────────────────────────
    status         = Column(String(32), nullable=False, default=STATUS_QUEUED, index=True)
    total_rows     = Column(Integer, nullable=False, default=0)
    processed_rows = Column(Integer, nullable=False, default=0)
    imported_rows  = Column(Integer, nullable=False, default=0)
    failed_rows    = Column(Integer, nullable=False, default=0)
    warning_rows   = Column(Integer, nullable=False, default=0)
    summary_json   = Column(Text, nullable=False, default="{}")

    # ── Worker claim (lease renewed on every counter flush) ────────────
    claim_token  = Column(String(36), nullable=True)
    heartbeat_at = Column(DateTime(timezone=True), nullable=True)

    # ── Timestamps ─────────────────────────────────────────────────────
    started_at  = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    created_at  = Column(DateTime(timezone=True), default=_utcnow)
    updated_at  = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    issues = relationship(
        "ImportIssue", back_populates="job",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_imports_user_created", "user_id", "created_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def counters(self) -> dict:
        return {name: getattr(self, name) or 0 for name in COUNTER_FIELDS}

    # ── Serialisation ──────────────────────────────────────────────────
    def to_dict(self, issues: list[ImportIssue] | None = None) -> dict:
        d = {
            "id": self.id,
            "status": self.status,
            "filename": self.filename or "",
            "options": json.loads(self.options_json or "{}"),
            "summary": parse_summary(self.summary_json),
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        d.update(self.counters())
        if issues is not None:
            d["issues"] = [i.to_dict() for i in issues]
        return d


class ImportIssue(Base):
    __tablename__ = "import_issues"

    id         = Column(Integer, primary_key=True, autoincrement=True)
    import_id  = Column(String(36),
                        ForeignKey("imports.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    row_number = Column(Integer, nullable=False)
    book_title = Column(Text, nullable=False, default="")
    author     = Column(Text, nullable=False, default="")
    severity   = Column(String(16), nullable=False)
    code       = Column(String(64), nullable=False)
    message    = Column(Text, nullable=False, default="")
    inference  = Column(Text, nullable=True)
    raw_row    = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    job = relationship("ImportJob", back_populates="issues")

    __table_args__ = (
        Index("ix_issue_import_row", "import_id", "row_number"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "row_number": self.row_number,
            "book_title": self.book_title or "",
            "author": self.author or "",
            "severity": self.severity,
            "code": self.code,
            "message": self.message or "",
            "inference": self.inference,
            "raw_row": self.raw_row,
            "created_at": _iso(self.created_at),
        }


class ReadingEntry(Base):
    __tablename__ = "reading_entries"

    id               = Column(String(36), primary_key=True, default=_new_id)
    user_id          = Column(String(64), nullable=False)
    book_key         = Column(String(200), nullable=False)
    started_at       = Column(DateTime(timezone=True), nullable=False)
    finished_at      = Column(DateTime(timezone=True), nullable=True)
    progress_percent = Column(Integer, nullable=True)
    judgment         = Column(String(16), nullable=True)        # Accepted | Rejected
    notes            = Column(Text, nullable=True)
    created_at       = Column(DateTime(timezone=True), default=_utcnow)
    updated_at       = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_reading_user_book", "user_id", "book_key"),
    )


class ToReadEntry(Base):
    __tablename__ = "to_read_entries"

    id       = Column(String(36), primary_key=True, default=_new_id)
    user_id  = Column(String(64), nullable=False)
    book_key = Column(String(200), nullable=False)
    added_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    priority = Column(Integer, nullable=True)
    notes    = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "book_key", name="uq_to_read_user_book"),
    )


class CatalogCacheEntry(Base):
    """
    Durable tier of the two-tier catalog cache.

    The volatile tier (Redis) may be absent entirely; this table is the
    source of truth on a volatile miss.
    """
    __tablename__ = "catalog_cache"

    key        = Column(String(500), primary_key=True)
    payload    = Column(Text, nullable=False)
    cached_at  = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
