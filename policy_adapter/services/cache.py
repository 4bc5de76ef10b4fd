"""Redis cache for loaded policy sets.

Keys, under a configurable prefix (default ``casbin_policies:``):

* ``<prefix>all_policies``: the full table snapshot, a JSON list of rows.
* ``<prefix>filtered_policies:<md5>``: one JSON list of policy lines per
  distinct declarative filter.

Every entry carries a TTL (default 3600s). Cache failures never reach the
caller: an unreachable server or an undecodable payload reads as a miss,
and failed writes or evictions are logged and dropped.
"""
import json
from typing import Any, List, Optional

from redis import Redis
from redis.exceptions import RedisError

from policy_adapter.core.exceptions import CacheError
from policy_adapter.core.logging_config import logger

ALL_POLICIES_KEY = "all_policies"
FILTERED_POLICIES_PREFIX = "filtered_policies:"

DEFAULT_PREFIX = "casbin_policies:"
DEFAULT_TTL = 3600


class PolicyCache:
    """Read-through cache in front of the rule store, keyed by query shape."""

    def __init__(
        self,
        client: Redis,
        prefix: str = DEFAULT_PREFIX,
        ttl: Optional[int] = DEFAULT_TTL,
        scan_count: int = 100,
        max_scan_iterations: int = 100,
    ):
        self._client = client
        self.prefix = prefix
        self.ttl = ttl
        self.scan_count = scan_count
        self.max_scan_iterations = max_scan_iterations

    @classmethod
    def from_config(
        cls,
        host: Optional[str] = None,
        port: int = 6379,
        password: Optional[str] = None,
        database: int = 0,
        url: Optional[str] = None,
        ttl: Optional[int] = DEFAULT_TTL,
        prefix: str = DEFAULT_PREFIX,
        **kwargs: Any,
    ) -> "PolicyCache":
        """Build a cache with its own redis client from a cache descriptor."""
        options = {
            "decode_responses": True,
            "socket_connect_timeout": 5,
            "socket_timeout": 5,
        }
        if url:
            client = Redis.from_url(url, **options)
        else:
            client = Redis(host=host or "127.0.0.1", port=port, password=password, db=database, **options)
        logger.info(f"Policy cache configured (prefix: {prefix}, ttl: {ttl}s)")
        return cls(client, prefix=prefix, ttl=ttl, **kwargs)

    @property
    def client(self) -> Redis:
        return self._client

    # --- Keys ---

    @property
    def all_policies_key(self) -> str:
        return f"{self.prefix}{ALL_POLICIES_KEY}"

    def filtered_key(self, fingerprint: str) -> str:
        return f"{self.prefix}{FILTERED_POLICIES_PREFIX}{fingerprint}"

    # --- Entries ---

    @staticmethod
    def _decode(raw: Any) -> List[Any]:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise CacheError(f"Cached payload is not valid JSON: {e}") from e
        if not isinstance(payload, list):
            raise CacheError(f"Cached payload is a {type(payload).__name__}, expected a list")
        return payload

    def get(self, key: str) -> Optional[List[Any]]:
        """Cached list under ``key``, or ``None`` on a miss of any kind."""
        try:
            raw = self._client.get(key)
            if raw is None:
                logger.debug(f"Cache miss: {key}")
                return None
            payload = self._decode(raw)
        except RedisError as e:
            logger.warning(f"Cache read failed for {key}, falling back to store: {e}")
            return None
        except CacheError as e:
            logger.warning(f"Ignoring malformed cache entry {key}: {e}")
            return None
        logger.debug(f"Cache hit: {key} ({len(payload)} entries)")
        return payload

    def set(self, key: str, payload: List[Any], ttl: Optional[int] = None) -> bool:
        """Store ``payload`` as JSON; returns False when the write was dropped."""
        ttl = self.ttl if ttl is None else ttl
        try:
            self._client.set(key, json.dumps(payload), ex=ttl or None)
        except RedisError as e:
            logger.warning(f"Cache write failed for {key}: {e}")
            return False
        logger.debug(f"Cache populated: {key} ({len(payload)} entries, ttl {ttl}s)")
        return True

    def invalidate(self, key: str) -> None:
        try:
            self._client.delete(key)
        except RedisError as e:
            logger.warning(f"Cache eviction failed for {key}: {e}")

    def invalidate_all(self) -> int:
        """Best-effort eviction of every filtered entry.

        Walks the keyspace with SCAN in batches of ``scan_count`` and stops
        after ``max_scan_iterations`` round trips even if the cursor has not
        wrapped, so a huge keyspace can leave some entries to expire by TTL.
        Returns the number of keys deleted.
        """
        pattern = f"{self.prefix}{FILTERED_POLICIES_PREFIX}*"
        deleted = 0
        cursor = 0
        try:
            for _ in range(self.max_scan_iterations):
                cursor, keys = self._client.scan(cursor=cursor, match=pattern, count=self.scan_count)
                if keys:
                    deleted += self._client.delete(*keys)
                if int(cursor) == 0:
                    break
            else:
                logger.warning(f"Filtered cache eviction stopped after {self.max_scan_iterations} scans")
        except RedisError as e:
            logger.warning(f"Filtered cache eviction failed: {e}")
        return deleted

    def clear(self) -> None:
        """Evict the full snapshot, then (best-effort) every filtered entry."""
        self.invalidate(self.all_policies_key)
        self.invalidate_all()

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except RedisError as e:
            logger.warning(f"Cache health check failed: {e}")
            return False

    def close(self) -> None:
        try:
            self._client.close()
        except RedisError as e:
            logger.warning(f"Closing cache client failed: {e}")
