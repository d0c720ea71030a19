import json
from unittest.mock import Mock

import redis

from services.cache_service import TwoTierCache, connect_redis


def test_durable_tier_alone():
    """No Redis at all: values still round-trip through the table."""
    cache = TwoTierCache(volatile=None)
    cache.set("hardcover:search:dune", [{"key": "hc:1"}], ttl=60)
    assert cache.get("hardcover:search:dune") == [{"key": "hc:1"}]
    assert cache.get("hardcover:search:other") is None


def test_expired_entries_are_misses():
    cache = TwoTierCache(volatile=None)
    cache.set("k", {"v": 1}, ttl=-5)
    assert cache.get("k") is None


def test_overwrite_updates_payload():
    cache = TwoTierCache(volatile=None)
    cache.set("k", 1, ttl=60)
    cache.set("k", 2, ttl=60)
    assert cache.get("k") == 2


def test_volatile_hit_skips_database():
    volatile = Mock()
    volatile.get.return_value = json.dumps({"v": 1})
    session_factory = Mock()

    cache = TwoTierCache(volatile=volatile, session_factory=session_factory)

    assert cache.get("k") == {"v": 1}
    session_factory.assert_not_called()


def test_durable_hit_is_read_back_into_volatile():
    volatile = Mock()
    volatile.get.return_value = None
    cache = TwoTierCache(volatile=volatile, readback_ttl=300)

    cache.set("k", {"v": 1}, ttl=3600)
    assert cache.get("k") == {"v": 1}

    volatile.set.assert_called_with("k", json.dumps({"v": 1}), ex=300)


def test_broken_redis_degrades_to_durable():
    volatile = Mock()
    volatile.get.side_effect = redis.ConnectionError("down")
    volatile.set.side_effect = redis.ConnectionError("down")
    cache = TwoTierCache(volatile=volatile)

    cache.set("k", "value", ttl=60)

    assert cache.get("k") == "value"


def test_no_redis_url_means_no_client():
    assert connect_redis("") is None
