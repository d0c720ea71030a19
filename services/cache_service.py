"""
services.cache_service - Two-tier read-through cache for catalog data.

Volatile tier: Redis (optional).  Durable tier: the catalog_cache table,
which is the source of truth on a volatile miss.  Any Redis failure is
logged and ignored so the cache degrades to durable-only.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import redis
from sqlalchemy.orm import Session

import config
from db.engine import get_session
from db.models import CatalogCacheEntry

logger = logging.getLogger(__name__)


def connect_redis(redis_url: str | None = None) -> redis.Redis | None:
    """Return a Redis client for the volatile tier, or None when not configured."""
    url = redis_url if redis_url is not None else config.REDIS_URL
    if not url:
        return None
    return redis.from_url(url, decode_responses=True,
                          socket_timeout=1.0, socket_connect_timeout=1.0)


class TwoTierCache:

    def __init__(
        self,
        volatile: redis.Redis | None = None,
        session_factory: Callable[[], Session] = get_session,
        readback_ttl: int = config.VOLATILE_READBACK_TTL_SECONDS,
    ):
        self._volatile = volatile
        self._session_factory = session_factory
        self._readback_ttl = readback_ttl

    # ── Read ───────────────────────────────────────────────────────────

    def get(self, key: str) -> Any | None:
        payload = self._volatile_get(key)
        if payload is not None:
            return json.loads(payload)

        now = datetime.now(timezone.utc)
        session = self._session_factory()
        try:
            entry = (
                session.query(CatalogCacheEntry)
                .filter(CatalogCacheEntry.key == key,
                        CatalogCacheEntry.expires_at > now)
                .first()
            )
            if entry is None:
                return None
            payload = entry.payload
        finally:
            session.close()

        self._volatile_set(key, payload, self._readback_ttl)
        return json.loads(payload)

    # ── Write ──────────────────────────────────────────────────────────

    def set(self, key: str, value: Any, ttl: int) -> None:
        payload = json.dumps(value)
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(seconds=ttl)

        self._volatile_set(key, payload, ttl)

        session = self._session_factory()
        try:
            entry = session.get(CatalogCacheEntry, key)
            if entry is None:
                session.add(CatalogCacheEntry(key=key, payload=payload,
                                              cached_at=now, expires_at=expires_at))
            else:
                entry.payload = payload
                entry.cached_at = now
                entry.expires_at = expires_at
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ── Volatile tier ──────────────────────────────────────────────────

    def _volatile_get(self, key: str) -> str | None:
        if self._volatile is None:
            return None
        try:
            return self._volatile.get(key)
        except redis.RedisError as exc:
            logger.debug(f"Volatile cache read failed for {key}: {exc}")
            return None

    def _volatile_set(self, key: str, payload: str, ttl: int) -> None:
        if self._volatile is None:
            return
        try:
            self._volatile.set(key, payload, ex=max(1, int(ttl)))
        except redis.RedisError as exc:
            logger.debug(f"Volatile cache write failed for {key}: {exc}")
