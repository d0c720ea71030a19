"""
import_engine.hydrator - Best-effort metadata for a freshly matched book.

A forced remote detail fetch is attempted first.  If it fails for any
reason a minimal metadata record is seeded from the row's own title and
author, so the catalog always has something under the book key.
"""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)

HYDRATED = "hydrated"
FALLBACK_SEEDED = "fallback_seeded"


class MetadataHydrator:

    def __init__(
        self,
        fetch_fresh_detail: Callable[..., dict],
        seed_fallback_metadata: Callable[[list[dict]], None],
    ):
        self._fetch_fresh_detail = fetch_fresh_detail
        self._seed_fallback_metadata = seed_fallback_metadata

    @classmethod
    def for_catalog(cls, catalog) -> MetadataHydrator:
        return cls(catalog.get_book_detail, catalog.seed_book_metadata_entries)

    def hydrate(self, book_key: str, title: str, author: str) -> str:
        """Return HYDRATED or FALLBACK_SEEDED.  Fetch failures never propagate."""
        try:
            self._fetch_fresh_detail(book_key, force_remote_fetch=True)
            return HYDRATED
        except Exception as exc:
            logger.warning(f"Metadata fetch failed for {book_key}, seeding fallback: {exc}")

        self.seed_fallback(book_key, title, author)
        return FALLBACK_SEEDED

    def seed_fallback(self, book_key: str, title: str, author: str) -> None:
        """Minimal record built from the row alone (no cover, no publish date)."""
        self._seed_fallback_metadata([{
            "key": book_key,
            "title": title,
            "authors": [author] if author else [],
            "publish_date": None,
            "cover_urls": [],
        }])
