"""Policy cache tests using the FakeRedis stub."""
import json
from unittest.mock import MagicMock, patch

from redis.exceptions import ConnectionError as RedisConnectionError
from policy_adapter.services.cache import PolicyCache
from tests.conftest import TEST_PREFIX, FakeRedis


class TestKeys:
    """Key layout under the configured prefix."""

    def test_all_policies_key(self, cache):
        assert cache.all_policies_key == f"{TEST_PREFIX}all_policies"

    def test_filtered_key(self, cache):
        assert cache.filtered_key("abc123") == f"{TEST_PREFIX}filtered_policies:abc123"

    def test_default_prefix(self):
        assert PolicyCache(FakeRedis()).all_policies_key == "casbin_policies:all_policies"


class TestEntries:
    """get/set/invalidate."""

    def test_set_then_get(self, cache, fake_redis):
        rows = [{"p_type": "p", "v0": "alice"}]
        assert cache.set(cache.all_policies_key, rows)
        assert json.loads(fake_redis.get(cache.all_policies_key)) == rows
        assert cache.get(cache.all_policies_key) == rows

    def test_ttl_applied(self, cache, fake_redis):
        cache.set(cache.all_policies_key, [])
        assert fake_redis.ttls[cache.all_policies_key] == 300
        cache.set("other", [], ttl=10)
        assert fake_redis.ttls["other"] == 10

    def test_missing_key_is_miss(self, cache):
        assert cache.get(cache.all_policies_key) is None

    def test_malformed_json_is_miss(self, cache, fake_redis):
        fake_redis.set(cache.all_policies_key, "{not json")
        assert cache.get(cache.all_policies_key) is None

    def test_non_list_payload_is_miss(self, cache, fake_redis):
        fake_redis.set(cache.all_policies_key, json.dumps({"p_type": "p"}))
        assert cache.get(cache.all_policies_key) is None

    def test_bytes_payload_decoded(self, cache, fake_redis):
        fake_redis.set(cache.all_policies_key, b'["p, alice, data1, read"]')
        assert cache.get(cache.all_policies_key) == ["p, alice, data1, read"]

    def test_invalidate(self, cache, fake_redis):
        cache.set(cache.all_policies_key, [])
        cache.invalidate(cache.all_policies_key)
        assert fake_redis.get(cache.all_policies_key) is None


class TestBulkEviction:
    """Scan-and-delete over the filtered namespace."""

    def test_evicts_only_filtered_entries(self, cache, fake_redis):
        cache.set(cache.all_policies_key, [])
        for i in range(5):
            cache.set(cache.filtered_key(f"fp{i}"), [])
        fake_redis.set("unrelated:key", "1")

        assert cache.invalidate_all() == 5
        assert fake_redis.keys() == sorted([cache.all_policies_key, "unrelated:key"])

    def test_pages_through_large_keyspaces(self, fake_redis):
        small_batches = PolicyCache(fake_redis, prefix=TEST_PREFIX, scan_count=3)
        for i in range(20):
            small_batches.set(small_batches.filtered_key(f"fp{i:02d}"), [])
        assert small_batches.invalidate_all() == 20
        assert fake_redis.keys() == []

    def test_iteration_cap_bounds_eviction(self, fake_redis):
        capped = PolicyCache(fake_redis, prefix=TEST_PREFIX, scan_count=2, max_scan_iterations=3)
        for i in range(20):
            capped.set(capped.filtered_key(f"fp{i:02d}"), [])
        assert capped.invalidate_all() == 6
        assert len(fake_redis.keys()) == 14

    def test_clear_evicts_snapshot_and_filtered(self, cache, fake_redis):
        cache.set(cache.all_policies_key, [])
        cache.set(cache.filtered_key("fp"), [])
        cache.clear()
        assert fake_redis.keys() == []


class TestFailures:
    """Redis errors degrade to misses and dropped writes."""

    def _broken(self):
        client = MagicMock()
        client.get.side_effect = RedisConnectionError("down")
        client.set.side_effect = RedisConnectionError("down")
        client.delete.side_effect = RedisConnectionError("down")
        client.scan.side_effect = RedisConnectionError("down")
        client.ping.side_effect = RedisConnectionError("down")
        return PolicyCache(client)

    def test_read_failure_is_miss(self):
        assert self._broken().get("key") is None

    def test_write_failure_is_dropped(self):
        assert self._broken().set("key", []) is False

    def test_eviction_failures_are_swallowed(self):
        broken = self._broken()
        broken.invalidate("key")
        assert broken.invalidate_all() == 0
        broken.clear()

    def test_ping_failure(self):
        assert self._broken().ping() is False


class TestFromConfig:
    """Building a client from a cache descriptor."""

    def test_host_descriptor(self):
        with patch("policy_adapter.services.cache.Redis") as mock_redis_class:
            cache = PolicyCache.from_config(host="cache.local", port=6380, password="pw", database=15, ttl=60, prefix="x:")
            mock_redis_class.assert_called_once()
            kwargs = mock_redis_class.call_args.kwargs
            assert kwargs["host"] == "cache.local"
            assert kwargs["port"] == 6380
            assert kwargs["db"] == 15
            assert cache.ttl == 60
            assert cache.prefix == "x:"

    def test_url_descriptor(self):
        with patch("policy_adapter.services.cache.Redis") as mock_redis_class:
            PolicyCache.from_config(url="redis://localhost:6379/2")
            mock_redis_class.from_url.assert_called_once()
            assert mock_redis_class.from_url.call_args.args[0] == "redis://localhost:6379/2"
