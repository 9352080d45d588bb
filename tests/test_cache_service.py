import json
from unittest.mock import MagicMock

from services.cache_service import CacheService


def test_disabled_cache_is_a_no_op():
    cache = CacheService(enabled=False)
    assert cache.redis_client is None
    assert cache.cache_json("key", {"a": 1}) is False
    assert cache.get_cached_json("key") is None
    assert cache.increment_rate_limit("login:someone") is True
    assert cache.get_cache_stats()["status"] == "disconnected"


def test_cache_json_round_trip():
    client = MagicMock()
    cache = CacheService(client=client)

    assert cache.cache_categories([{"code": "PHARMACOLOGY"}]) is True
    key, ttl, value = client.setex.call_args[0]
    assert key == "categories"
    assert ttl == 86400

    client.get.return_value = value
    assert cache.get_cached_categories() == [{"code": "PHARMACOLOGY"}]
    client.get.return_value = None
    assert cache.get_cached_leaderboard(10) is None


def test_rate_limit_sets_window_on_first_hit():
    client = MagicMock()
    client.incr.side_effect = [1, 2, 3]
    cache = CacheService(client=client)

    assert cache.increment_rate_limit("tutor:u1", limit=2, window=60) is True
    client.expire.assert_called_once_with("rate_limit:tutor:u1", 60)
    assert cache.increment_rate_limit("tutor:u1", limit=2, window=60) is True
    assert cache.increment_rate_limit("tutor:u1", limit=2, window=60) is False


def test_redis_errors_fail_open():
    client = MagicMock()
    client.incr.side_effect = ConnectionError("down")
    client.get.side_effect = ConnectionError("down")
    cache = CacheService(client=client)

    assert cache.increment_rate_limit("login:someone") is True
    assert cache.get_cached_question("q1") is None


def test_question_payload_is_json_encoded():
    client = MagicMock()
    cache = CacheService(client=client)
    cache.cache_question("q1", {"id": "q1", "options": ["A", "B"]})
    key, ttl, value = client.setex.call_args[0]
    assert key == "question:q1"
    assert json.loads(value)["options"] == ["A", "B"]
