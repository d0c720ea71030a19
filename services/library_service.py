"""
services.library_service - Merge planned rows into a user's library.

A LibraryWriter is created per import run.  It loads the user's existing
reading and to-read entries once and keeps them keyed by book_key so
repeated rows for the same book merge instead of duplicating.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from db.models import ReadingEntry, ToReadEntry
from import_engine.row_planner import RowPlan, PlanWarning, TARGET_READING, TARGET_TO_READ


def placeholder_book_key(title: str, author: str) -> str:
    """Stable local key for a row the catalog could not match."""
    digest = hashlib.sha1(
        f"{title.strip().lower()}|{author.strip().lower()}".encode("utf-8")
    ).hexdigest()
    return f"local:{digest[:16]}"


class LibraryWriter:

    def __init__(self, user_id: str,
                 reading: list[ReadingEntry], to_read: list[ToReadEntry]):
        self.user_id = user_id
        self.reading_by_book = {e.book_key: e for e in reading}
        self.to_read_by_book = {e.book_key: e for e in to_read}

    @classmethod
    def load(cls, session: Session, user_id: str) -> LibraryWriter:
        reading = session.query(ReadingEntry).filter(ReadingEntry.user_id == user_id).all()
        to_read = session.query(ToReadEntry).filter(ToReadEntry.user_id == user_id).all()
        return cls(user_id, reading, to_read)

    def write(self, session: Session, book_key: str, plan: RowPlan,
              now: datetime | None = None) -> list[PlanWarning]:
        """Apply one plan.  Returns warnings produced by the merge."""
        now = now or datetime.now(timezone.utc)
        if plan.target == TARGET_READING:
            self._write_reading(session, book_key, plan, now)
            return []
        if plan.target == TARGET_TO_READ:
            return self._write_to_read(session, book_key, plan, now)
        return []

    # ── Private helpers ────────────────────────────────────────────────

    def _write_reading(self, session: Session, book_key: str, plan: RowPlan,
                       now: datetime) -> None:
        started_at = plan.started_at or now
        finished_at = plan.finished_at
        if plan.is_finished and finished_at is None:
            finished_at = started_at

        existing = self.reading_by_book.get(book_key)
        if existing is not None:
            # Only fill what the user has not recorded yet
            if existing.finished_at is None and finished_at is not None:
                existing.finished_at = finished_at
                existing.progress_percent = plan.progress_percent
            if existing.judgment is None and plan.judgment is not None:
                existing.judgment = plan.judgment
        else:
            entry = ReadingEntry(
                user_id=self.user_id,
                book_key=book_key,
                started_at=started_at,
                finished_at=finished_at,
                progress_percent=plan.progress_percent,
                judgment=plan.judgment,
            )
            session.add(entry)
            self.reading_by_book[book_key] = entry

        queued = self.to_read_by_book.pop(book_key, None)
        if queued is not None:
            session.delete(queued)

    def _write_to_read(self, session: Session, book_key: str, plan: RowPlan,
                       now: datetime) -> list[PlanWarning]:
        if book_key in self.reading_by_book:
            return [PlanWarning(
                "READING_RECORD_ALREADY_EXISTS",
                "Kept existing reading record and skipped planned status update.",
            )]
        if book_key not in self.to_read_by_book:
            entry = ToReadEntry(
                user_id=self.user_id,
                book_key=book_key,
                added_at=plan.added_at or now,
            )
            session.add(entry)
            self.to_read_by_book[book_key] = entry
        return []
