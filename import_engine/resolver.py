"""
import_engine.resolver - Find a catalog book key for a planned row.

Strategies are tried strictly in order until one reports ``matched``.
On a miss every strategy runs, so the issue log gets the full trail.
A ``rate_limited`` outcome does not stop the chain.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Callable, Protocol, Sequence

REASON_MATCHED        = "matched"
REASON_NOT_FOUND      = "not_found"
REASON_UPSTREAM_ERROR = "upstream_error"
REASON_RATE_LIMITED   = "rate_limited"


@dataclass(frozen=True)
class LookupOutcome:
    book_key: str | None
    reason: str
    strategy: str | None = field(default=None, compare=False)

    @classmethod
    def matched(cls, book_key: str) -> LookupOutcome:
        return cls(book_key, REASON_MATCHED)

    @property
    def is_match(self) -> bool:
        return self.reason == REASON_MATCHED and bool(self.book_key)


LookupFn = Callable[[], LookupOutcome]


@dataclass
class ResolveResult:
    resolved_book_key: str | None
    lookup_outcomes: list[LookupOutcome]

    @property
    def trail(self) -> str:
        return ", ".join(
            f"{o.strategy}:{o.reason}" if o.strategy else o.reason
            for o in self.lookup_outcomes
        )


def resolve(strategies: Sequence[LookupFn]) -> ResolveResult:
    outcomes: list[LookupOutcome] = []
    for strategy in strategies:
        outcome = strategy()
        name = getattr(strategy, "name", None)
        if outcome.strategy is None and isinstance(name, str):
            outcome = dataclasses.replace(outcome, strategy=name)
        outcomes.append(outcome)
        if outcome.is_match:
            return ResolveResult(outcome.book_key, outcomes)
    return ResolveResult(None, outcomes)


# ── Strategies ─────────────────────────────────────────────────────────

class CatalogLookups(Protocol):
    def resolve_book_key_by_isbn(self, isbn: str) -> LookupOutcome: ...
    def search_book_key_by_title_and_author(self, title: str, author: str) -> LookupOutcome: ...


class IsbnLookup:
    """Exact edition lookup by ISBN-10 or ISBN-13."""

    def __init__(self, catalog: CatalogLookups, isbn: str, name: str):
        self.catalog = catalog
        self.isbn = isbn
        self.name = name

    def __call__(self) -> LookupOutcome:
        return self.catalog.resolve_book_key_by_isbn(self.isbn)


class TitleAuthorLookup:
    """Scored search on title + author."""

    name = "title_author"

    def __init__(self, catalog: CatalogLookups, title: str, author: str):
        self.catalog = catalog
        self.title = title
        self.author = author

    def __call__(self) -> LookupOutcome:
        return self.catalog.search_book_key_by_title_and_author(self.title, self.author)


def build_strategies(catalog: CatalogLookups, *, title: str, author: str,
                     isbn13: str | None = None, isbn10: str | None = None) -> list[LookupFn]:
    """ISBN-13 exact, then ISBN-10 exact, then title+author."""
    strategies: list[LookupFn] = []
    if isbn13:
        strategies.append(IsbnLookup(catalog, isbn13, "isbn13"))
    if isbn10 and isbn10 != isbn13:
        strategies.append(IsbnLookup(catalog, isbn10, "isbn10"))
    strategies.append(TitleAuthorLookup(catalog, title, author))
    return strategies


# ── Failure summary ────────────────────────────────────────────────────

_FAILURE_ISSUES = {
    REASON_RATE_LIMITED: (
        "CATALOG_RATE_LIMITED",
        "Could not match this book because the catalog rate-limited lookup requests.",
    ),
    REASON_UPSTREAM_ERROR: (
        "CATALOG_UNAVAILABLE",
        "Could not match this book because the catalog was temporarily unavailable.",
    ),
    REASON_NOT_FOUND: (
        "NO_MATCH_FOUND",
        "Could not match this book to the catalog.",
    ),
}


def summarize_failure(outcomes: Sequence[LookupOutcome]) -> str:
    """Pick the most telling reason: rate_limited, then upstream_error, then not_found."""
    reasons = {o.reason for o in outcomes}
    for reason in (REASON_RATE_LIMITED, REASON_UPSTREAM_ERROR):
        if reason in reasons:
            return reason
    return REASON_NOT_FOUND


def failure_issue(outcomes: Sequence[LookupOutcome]) -> tuple[str, str]:
    """(code, message) for an unresolved row."""
    return _FAILURE_ISSUES[summarize_failure(outcomes)]
