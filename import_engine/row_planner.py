"""
import_engine.row_planner - Classify and normalise one Goodreads row.

Single-responsibility: given a dict-row and the import options, return a
RowPlan.  Pure and deterministic: no I/O, no clock, and malformed fields
degrade to warnings instead of raising.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

from import_engine import field_map as fm
from import_engine.options import ImportOptions

TARGET_READING = "reading"
TARGET_TO_READ = "to-read"
TARGET_SKIP    = "skip"

_ISBN10_RE = re.compile(r"^\d{9}[\dX]$")
_ISBN13_RE = re.compile(r"^\d{13}$")


@dataclass(frozen=True)
class PlanWarning:
    code: str
    message: str
    inference: str | None = None


@dataclass
class RowPlan:
    target: str
    title: str
    author: str
    started_at: datetime | None = None
    finished_at: datetime | None = None
    added_at: datetime | None = None
    progress_percent: int | None = None
    judgment: str | None = None
    isbn13: str | None = None
    isbn10: str | None = None
    is_finished: bool = False
    warnings: list[PlanWarning] = field(default_factory=list)

    @property
    def isbn(self) -> str | None:
        return self.isbn13 or self.isbn10


# ── Field normalisers ──────────────────────────────────────────────────

def normalize_isbn(raw: str | None) -> str | None:
    """
    Clean a Goodreads ISBN cell.

    Goodreads wraps ISBNs as ="9780316489768" and writes ="" for empty
    cells.  Returns the bare 10/13 character ISBN or None.
    """
    cleaned = _strip_isbn_artifacts(raw)
    if not cleaned:
        return None
    if _ISBN13_RE.match(cleaned) or _ISBN10_RE.match(cleaned):
        return cleaned
    return None


def _strip_isbn_artifacts(raw: str | None) -> str:
    if not raw:
        return ""
    cleaned = raw.strip()
    for junk in ('"', "=", "-", " "):
        cleaned = cleaned.replace(junk, "")
    return cleaned.upper()


def parse_date(raw: str | None) -> datetime | None:
    """Parse a YYYY/MM/DD date as UTC midnight.  Raises ValueError on other forms."""
    value = (raw or "").strip()
    if not value:
        return None
    return datetime.strptime(value, fm.DATE_FORMAT).replace(tzinfo=timezone.utc)


def parse_rating(raw: str | None) -> int | None:
    """Star rating 1-5, None when unrated.  "4.0" reads as 4; raises ValueError when not a number."""
    value = (raw or "").strip()
    if not value:
        return None
    try:
        stars = int(float(value))
    except OverflowError:
        raise ValueError(f"rating out of range: {value!r}")
    if stars <= 0:
        return None
    return min(5, stars)


# ── Planner ────────────────────────────────────────────────────────────

def plan(row: dict[str, str], options: ImportOptions) -> RowPlan:
    """Turn one raw CSV row into a RowPlan."""
    warnings: list[PlanWarning] = []

    raw_title = (row.get(fm.TITLE) or "").strip()
    raw_author = (row.get(fm.AUTHOR) or "").strip()
    title = raw_title or fm.UNKNOWN_TITLE
    author = raw_author or fm.UNKNOWN_AUTHOR

    isbn13 = _plan_isbn(row, fm.ISBN13, warnings)
    isbn10 = _plan_isbn(row, fm.ISBN10, warnings)

    if not raw_title and not raw_author and not (isbn13 or isbn10):
        warnings.append(PlanWarning(
            "EMPTY_ROW", "Skipped row without title, author or ISBN.",
        ))
        return RowPlan(target=TARGET_SKIP, title=title, author=author, warnings=warnings)

    date_added = _plan_date(row, fm.DATE_ADDED, warnings)
    date_read = _plan_date(row, fm.DATE_READ, warnings)
    judgment = _plan_judgment(row, options, warnings)
    shelf = (row.get(fm.SHELF) or "").strip().lower()

    base = dict(title=title, author=author, isbn13=isbn13, isbn10=isbn10)

    if shelf == fm.SHELF_TO_READ:
        return RowPlan(target=TARGET_TO_READ, added_at=date_added,
                       warnings=warnings, **base)

    if shelf == fm.SHELF_CURRENTLY_READING:
        started_at = _infer_start(date_added, date_read, warnings)
        return RowPlan(target=TARGET_READING, started_at=started_at,
                       added_at=date_added, judgment=judgment,
                       warnings=warnings, **base)

    if shelf != fm.SHELF_READ:
        if not date_read:
            warnings.append(PlanWarning(
                "INFERRED_STATUS",
                "Inferred planned status because the Goodreads shelf was unknown.",
                "status <- to-read",
            ))
            return RowPlan(target=TARGET_TO_READ, added_at=date_added,
                           warnings=warnings, **base)
        warnings.append(PlanWarning(
            "INFERRED_STATUS",
            "Inferred finished status from date fields because the Goodreads shelf was unknown.",
            "status <- read",
        ))

    started_at = _infer_start(date_added, date_read, warnings)
    finished_at = date_read
    if finished_at is None:
        finished_at = started_at
        warnings.append(PlanWarning(
            "INFERRED_END_DATE",
            "Inferred end date from start date because the finish date was missing.",
            "finished_at <- started_at",
        ))

    return RowPlan(target=TARGET_READING, started_at=started_at,
                   finished_at=finished_at, added_at=date_added,
                   progress_percent=100, judgment=judgment, is_finished=True,
                   warnings=warnings, **base)


# ── Private helpers ────────────────────────────────────────────────────

def _infer_start(date_added, date_read, warnings: list[PlanWarning]):
    if date_added:
        return date_added
    if date_read:
        warnings.append(PlanWarning(
            "INFERRED_START_DATE",
            "Inferred start date from finish date because the start date was missing.",
            "started_at <- Date Read",
        ))
        return date_read
    warnings.append(PlanWarning(
        "MISSING_START_DATE",
        "No start date could be found; the import time will be used.",
    ))
    return None


def _plan_isbn(row: dict, column: str, warnings: list[PlanWarning]) -> str | None:
    raw = row.get(column)
    isbn = normalize_isbn(raw)
    if isbn is None and _strip_isbn_artifacts(raw):
        warnings.append(PlanWarning(
            "INVALID_ISBN", f"Ignored unparseable {column} value {raw!r}.",
        ))
    return isbn


def _plan_date(row: dict, column: str, warnings: list[PlanWarning]) -> datetime | None:
    raw = row.get(column)
    try:
        return parse_date(raw)
    except ValueError:
        warnings.append(PlanWarning(
            "INVALID_DATE",
            f"Ignored {column} value {raw!r}; expected YYYY/MM/DD.",
        ))
        return None


def _plan_judgment(row: dict, options: ImportOptions,
                   warnings: list[PlanWarning]) -> str | None:
    raw = row.get(fm.MY_RATING)
    try:
        stars = parse_rating(raw)
    except ValueError:
        warnings.append(PlanWarning(
            "INVALID_RATING", f"Ignored non-numeric rating {raw!r}.",
        ))
        return None
    if not options.map_ratings or stars is None:
        return None
    return options.judgment_for(stars)
