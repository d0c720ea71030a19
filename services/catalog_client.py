"""
services.catalog_client - Read-only client for the Hardcover GraphQL catalog.

The catalog is untrusted, slow and rate-limited:
  • every request carries a fixed timeout
  • requests are paced to a minimum interval (shared across threads)
  • 429 / 5xx are retried with Retry-After or capped exponential backoff
  • other failures raise CatalogError immediately

Lookup helpers never raise; they turn failures into LookupOutcome reasons.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

import requests

import config
from import_engine.resolver import (
    LookupOutcome, REASON_NOT_FOUND, REASON_RATE_LIMITED, REASON_UPSTREAM_ERROR,
)
from services.cache_service import TwoTierCache

logger = logging.getLogger(__name__)

USER_AGENT = "Marginalia/1.0 (reading-history import)"

_BOOK_FIELDS = """
        id
        title
        release_year
        cached_featured_series
        image { url }
        cached_image
        contributions(limit: 6) { author { name } }
"""

SEARCH_IDS_QUERY = """query SearchBookIds($query: String!) {
  search(query: $query, query_type: "Book", per_page: 25, page: 1) { ids }
}"""

SEARCH_RAW_QUERY = """query SearchBooksRaw($query: String!) {
  search(query: $query, query_type: "Book", per_page: 25, page: 1) { results }
}"""

BOOKS_BY_IDS_QUERY = """query BooksByIds($ids: [Int!]) {
  books(where: { id: { _in: $ids } }, limit: 25) {%s}
}""" % _BOOK_FIELDS

BOOK_DETAIL_QUERY = """query BookDetail($id: Int!) {
  books(where: { id: { _eq: $id } }, limit: 1) {
    id
    title
    description
    release_date
    cached_featured_series
    image { url }
    cached_image
    contributions(limit: 12) { author { name } }
    editions(limit: 5) { isbn_13 pages release_date }
  }
}"""

RESOLVE_ISBN_QUERY = """query ResolveByIsbn($isbn: String!) {
  editions(where: { _or: [{ isbn_10: { _eq: $isbn } }, { isbn_13: { _eq: $isbn } }] }, limit: 1) {
    book_id
  }
}"""

# GraphQL messages that mean the ids-only search shape is unsupported
_SCHEMA_MISMATCH_MARKERS = ("cannot query field", "unknown argument", "validation-failed")


class CatalogError(Exception):
    """Raised when the catalog cannot answer a request."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class RateLimitedError(CatalogError):
    """Raised when the catalog kept answering 429 after all retries."""
    pass


# ── Key helpers ────────────────────────────────────────────────────────

def to_book_key(hardcover_id: int) -> str:
    return f"hc:{hardcover_id}"


def parse_book_key(book_key: str) -> int | None:
    raw = book_key[3:] if book_key.startswith("hc:") else book_key
    try:
        return int(raw)
    except ValueError:
        return None


def book_meta_cache_key(book_key: str) -> str:
    return f"hardcover:book-meta:{book_key}"


def classify_failure(exc: Exception) -> str:
    if isinstance(exc, RateLimitedError):
        return REASON_RATE_LIMITED
    return REASON_UPSTREAM_ERROR


class HardcoverClient:

    def __init__(
        self,
        cache: TwoTierCache,
        *,
        http: requests.Session | None = None,
        api_url: str = config.HARDCOVER_API_URL,
        token: str = config.HARDCOVER_API_TOKEN,
        timeout: float = config.CATALOG_TIMEOUT_SECONDS,
        min_interval: float = config.CATALOG_MIN_INTERVAL_SECONDS,
        max_attempts: int = config.CATALOG_MAX_ATTEMPTS,
        max_backoff: float = config.CATALOG_MAX_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.cache = cache
        self._http = http or requests.Session()
        self._api_url = api_url
        self._token = token
        self._timeout = timeout
        self._min_interval = min_interval
        self._max_attempts = max(1, max_attempts)
        self._max_backoff = max_backoff
        self._sleep = sleep
        self._pace_lock = threading.Lock()
        self._last_request_at = 0.0

    # ── Transport ──────────────────────────────────────────────────────

    def _pace(self) -> None:
        with self._pace_lock:
            elapsed = time.monotonic() - self._last_request_at
            if elapsed < self._min_interval:
                self._sleep(self._min_interval - elapsed)
            self._last_request_at = time.monotonic()

    def _backoff(self, attempt: int) -> float:
        return min(self._max_backoff, 2 ** (attempt - 1)) + random.uniform(0, 0.2)

    def _retry_after(self, response: requests.Response, attempt: int) -> float:
        raw = response.headers.get("Retry-After")
        try:
            return min(self._max_backoff, float(raw))
        except (TypeError, ValueError):
            return self._backoff(attempt)

    def post_graphql(self, query: str, variables: dict[str, Any]) -> dict:
        """POST one GraphQL query and return its ``data`` object."""
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._token}",
            "User-Agent": USER_AGENT,
        }
        body = {"query": query, "variables": variables}

        for attempt in range(1, self._max_attempts + 1):
            self._pace()
            try:
                response = self._http.post(self._api_url, json=body,
                                           headers=headers, timeout=self._timeout)
            except requests.RequestException as exc:
                if attempt >= self._max_attempts:
                    raise CatalogError("Hardcover request failed repeatedly.") from exc
                logger.debug(f"Hardcover transport error (attempt {attempt}): {exc}")
                self._sleep(self._backoff(attempt))
                continue

            status = response.status_code
            if status == 429 or status >= 500:
                if attempt < self._max_attempts:
                    self._sleep(self._retry_after(response, attempt))
                    continue
                if status == 429:
                    raise RateLimitedError("Hardcover rate limit exceeded.", status)
                raise CatalogError(f"Hardcover request failed: {status}", status)

            if not response.ok:
                raise CatalogError(f"Hardcover request failed: {status}", status)

            try:
                payload = response.json()
            except ValueError as exc:
                raise CatalogError("Hardcover returned malformed JSON.") from exc

            errors = payload.get("errors") if isinstance(payload, dict) else None
            if errors:
                if not isinstance(errors, list):
                    raise CatalogError("Hardcover returned malformed errors.")
                first = errors[0] if isinstance(errors[0], dict) else {}
                raise CatalogError(first.get("message") or "Hardcover GraphQL request failed.")

            data = payload.get("data") if isinstance(payload, dict) else None
            if not isinstance(data, dict):
                raise CatalogError("Hardcover returned no data.")
            return data

        raise CatalogError("Hardcover request failed repeatedly.")

    # ── Search ─────────────────────────────────────────────────────────

    def search_books(self, query: str) -> list[dict]:
        normalized = query.lower().strip()
        key = f"hardcover:search:{normalized}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            results = self._search_via_ids(normalized)
        except CatalogError as exc:
            message = str(exc).lower()
            if not any(m in message for m in _SCHEMA_MISMATCH_MARKERS):
                raise
            results = self._search_via_raw_results(normalized)

        self.cache.set(key, results, config.SEARCH_TTL_SECONDS)
        self.seed_book_metadata_entries([
            {
                "key": r["key"],
                "title": r["title"],
                "authors": r["author_names"],
                "cover_urls": [r["cover_url"]] if r["cover_url"] else [],
                "publish_date": str(r["first_publish_year"]) if r["first_publish_year"] else None,
            }
            for r in results
        ])
        return results

    def _search_via_ids(self, query: str) -> list[dict]:
        data = self.post_graphql(SEARCH_IDS_QUERY, {"query": query})
        raw_ids = _search_node(data).get("ids")
        ids = []
        for value in raw_ids if isinstance(raw_ids, list) else []:
            try:
                ids.append(int(value))
            except (TypeError, ValueError):
                continue
        if not ids:
            return []

        data = self.post_graphql(BOOKS_BY_IDS_QUERY, {"ids": ids})
        by_key = {}
        for node in _book_nodes(data):
            result = _map_search_result(node)
            if result:
                by_key[result["key"]] = result
        return [by_key[to_book_key(i)] for i in ids if to_book_key(i) in by_key]

    def _search_via_raw_results(self, query: str) -> list[dict]:
        data = self.post_graphql(SEARCH_RAW_QUERY, {"query": query})
        raw = _search_node(data).get("results")
        if not isinstance(raw, list):
            return []
        results = [_map_search_result(node) for node in raw]
        return [r for r in results if r]

    # ── Metadata ───────────────────────────────────────────────────────

    def seed_book_metadata_entries(self, entries: list[dict]) -> None:
        """Write minimal per-book metadata records, last entry per key wins."""
        deduped: dict[str, dict] = {}
        for entry in entries:
            deduped[entry["key"]] = {
                "key": entry["key"],
                "title": entry["title"],
                "authors": entry.get("authors") or [],
                "cover_urls": entry.get("cover_urls") or [],
                "publish_date": entry.get("publish_date"),
                "isbn13": entry.get("isbn13") or [],
                "pages": entry.get("pages"),
            }
        for key, meta in deduped.items():
            self.cache.set(book_meta_cache_key(key), meta, config.BOOK_META_TTL_SECONDS)

    def get_book_detail(
        self,
        book_key: str,
        *,
        allow_remote_fetch: bool = True,
        force_remote_fetch: bool = False,
    ) -> dict:
        detail_cache_key = f"hardcover:detail:{book_key}"

        if not force_remote_fetch:
            cached = self.cache.get(detail_cache_key)
            if cached is not None:
                return cached
            meta = self.cache.get(book_meta_cache_key(book_key))
            if meta is not None:
                return _detail_from_metadata(meta)

        if not allow_remote_fetch:
            return _fallback_detail(book_key)

        hardcover_id = parse_book_key(book_key)
        if hardcover_id is None:
            return _fallback_detail(book_key)

        data = self.post_graphql(BOOK_DETAIL_QUERY, {"id": hardcover_id})
        nodes = _book_nodes(data)
        if not nodes:
            return _fallback_detail(book_key)

        detail = _map_detail(nodes[0], to_book_key(hardcover_id))
        self.cache.set(detail_cache_key, detail, config.DETAIL_TTL_SECONDS)
        self.seed_book_metadata_entries([{
            "key": detail["key"],
            "title": detail["title"],
            "authors": detail["authors"],
            "cover_urls": detail["covers"],
            "publish_date": detail["publish_date"],
            "isbn13": detail["isbn13"],
            "pages": detail["pages"],
        }])
        return detail

    def prefetch_book_details(self, book_keys: list[str],
                              workers: int = config.CATALOG_PREFETCH_WORKERS) -> dict[str, dict]:
        """
        Fetch details for many keys through a bounded thread pool.
        Keys that fail are skipped; result order follows first appearance.
        """
        unique_keys = list(dict.fromkeys(k for k in book_keys if k))
        if not unique_keys:
            return {}

        def _fetch(key: str):
            try:
                return key, self.get_book_detail(key)
            except CatalogError as exc:
                logger.info(f"Prefetch skipped {key}: {exc}")
                return key, None

        with ThreadPoolExecutor(max_workers=max(1, min(workers, len(unique_keys)))) as pool:
            fetched = list(pool.map(_fetch, unique_keys))
        return {key: detail for key, detail in fetched if detail is not None}

    # ── Identity lookups ───────────────────────────────────────────────

    def resolve_book_key_by_isbn(self, isbn: str) -> LookupOutcome:
        try:
            data = self.post_graphql(RESOLVE_ISBN_QUERY, {"isbn": isbn})
        except CatalogError as exc:
            return LookupOutcome(None, classify_failure(exc))

        editions = data.get("editions") or []
        if not isinstance(editions, list):
            return LookupOutcome(None, REASON_UPSTREAM_ERROR)
        try:
            book_id = int(editions[0]["book_id"])
        except (IndexError, KeyError, TypeError, ValueError):
            return LookupOutcome(None, REASON_NOT_FOUND)
        return LookupOutcome.matched(to_book_key(book_id))

    def search_book_key_by_title_and_author(self, title: str, author: str) -> LookupOutcome:
        query = f"{title} {author}".strip()
        if len(query) < 2:
            return LookupOutcome(None, REASON_NOT_FOUND)

        try:
            results = self.search_books(query)
        except CatalogError as exc:
            return LookupOutcome(None, classify_failure(exc))

        best_key, best_score = None, -1
        for result in results:
            score = score_title_author(result, title, author)
            if score > best_score:
                best_key, best_score = result["key"], score

        if best_key is None or best_score < 3:
            return LookupOutcome(None, REASON_NOT_FOUND)
        return LookupOutcome.matched(best_key)


# ── Scoring / mapping ──────────────────────────────────────────────────

def score_title_author(result: dict, title: str, author: str) -> int:
    """+4 exact title, +2 title containment, +3 author containment."""
    wanted_title = title.strip().lower()
    wanted_author = author.strip().lower()
    result_title = (result.get("title") or "").strip().lower()

    score = 0
    if result_title == wanted_title:
        score += 4
    elif wanted_title and result_title and (
        wanted_title in result_title or result_title in wanted_title
    ):
        score += 2

    if wanted_author:
        for name in result.get("author_names") or []:
            name = name.strip().lower()
            if name and (wanted_author in name or name in wanted_author):
                score += 3
                break
    return score


def _search_node(data: dict) -> dict:
    search = data.get("search") or {}
    if not isinstance(search, dict):
        raise CatalogError("Hardcover returned a malformed search payload.")
    return search


def _book_nodes(data: dict) -> list:
    books = data.get("books") or []
    if not isinstance(books, list):
        raise CatalogError("Hardcover returned a malformed books payload.")
    return books


def _string(value) -> str | None:
    return value if isinstance(value, str) and value.strip() else None


def _cover_url(node: dict) -> str | None:
    for field in ("image", "cached_image"):
        image = node.get(field)
        if isinstance(image, dict) and _string(image.get("url")):
            return image["url"]
    return None


def _author_names(node: dict) -> list[str]:
    names: list[str] = []
    for entry in node.get("contributions") or []:
        author = entry.get("author") if isinstance(entry, dict) else None
        name = _string(author.get("name")) if isinstance(author, dict) else None
        if name and name not in names:
            names.append(name)
    return names


def _series_names(node: dict) -> list[str]:
    featured = node.get("cached_featured_series")
    if isinstance(featured, list):
        return [e["name"] for e in featured if isinstance(e, dict) and _string(e.get("name"))]
    if isinstance(featured, dict) and _string(featured.get("name")):
        return [featured["name"]]
    return []


def _map_search_result(node) -> dict | None:
    if not isinstance(node, dict):
        return None
    title = _string(node.get("title"))
    try:
        book_id = int(node.get("id"))
    except (TypeError, ValueError):
        return None
    if not title:
        return None
    try:
        year = int(node.get("release_year"))
    except (TypeError, ValueError):
        year = None
    return {
        "key": to_book_key(book_id),
        "title": title,
        "author_names": _author_names(node),
        "first_publish_year": year,
        "cover_url": _cover_url(node),
        "series": _series_names(node),
    }


def _map_detail(node: dict, key: str) -> dict:
    editions = [e for e in node.get("editions") or [] if isinstance(e, dict)]
    isbn13 = list(dict.fromkeys(e["isbn_13"] for e in editions if _string(e.get("isbn_13"))))

    pages = None
    for edition in editions:
        try:
            pages = int(edition.get("pages"))
            break
        except (TypeError, ValueError):
            continue

    release = next((e["release_date"] for e in editions if _string(e.get("release_date"))),
                   _string(node.get("release_date")))
    cover = _cover_url(node)
    series = _series_names(node)

    return {
        "key": key,
        "title": _string(node.get("title")) or key,
        "description": _string(node.get("description")),
        "authors": _author_names(node),
        "publish_date": release,
        "covers": [cover] if cover else [],
        "cover_url": cover,
        "series_name": series[0] if series else None,
        "isbn13": isbn13,
        "pages": pages,
    }


def _detail_from_metadata(meta: dict) -> dict:
    covers = meta.get("cover_urls") or []
    return {
        "key": meta["key"],
        "title": meta.get("title") or meta["key"],
        "description": None,
        "authors": meta.get("authors") or [],
        "publish_date": meta.get("publish_date"),
        "covers": covers,
        "cover_url": covers[0] if covers else None,
        "series_name": None,
        "isbn13": meta.get("isbn13") or [],
        "pages": meta.get("pages"),
    }


def _fallback_detail(book_key: str) -> dict:
    return _detail_from_metadata({"key": book_key, "title": book_key})
