"""Policy adapter: the load/save/add/remove/update surface an enforcer calls.

``StoreAdapter`` talks to the rule store only. ``CachingAdapter`` wraps a
``StoreAdapter`` and adds the cache protocol around it:

* loads read through the cache (miss -> query store -> populate -> return),
* every mutation evicts the cache first and then delegates the write.

Filtered entries are evicted best-effort; any that survive go stale for at
most the cache TTL. Opaque query filters always bypass the cache.
"""
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from redis import Redis
from sqlalchemy.engine import Engine

from policy_adapter.core.exceptions import PreconditionError
from policy_adapter.core.logging_config import logger
from policy_adapter.crud import RuleStore
from policy_adapter.services.cache import PolicyCache
from policy_adapter.services.codec import to_line, to_rule
from policy_adapter.services.filters import OpaqueQuery, PolicyFilter, coerce_filter, fingerprint
from policy_adapter.services.model import PolicyModel, PolicySink, PolicySource, load_policy_line, load_policy_rule

Rule = Sequence[str]


def _feed_rows(rows: Iterable[Mapping[str, Any]], model: PolicySink) -> None:
    for row in rows:
        ptype, values = to_rule(row)
        load_policy_rule(ptype, values, model)


def _feed_lines(lines: Iterable[str], model: PolicySink) -> None:
    for line in lines:
        load_policy_line(line, model)


class StoreAdapter:
    """Policy adapter backed directly by the relational store."""

    def __init__(self, store: RuleStore):
        self.store = store
        self._filtered = False
        self.store.ensure_schema()

    # --- Loading ---

    @property
    def is_filtered(self) -> bool:
        """True once any filtered load happened: the model may hold a partial policy."""
        return self._filtered

    def mark_filtered(self) -> None:
        self._filtered = True

    def reset_filtered(self) -> None:
        self._filtered = False

    def fetch_rows(self) -> List[dict]:
        return self.store.select_all()

    def fetch_filtered_lines(self, policy_filter: PolicyFilter) -> List[str]:
        return [to_line(row) for row in self.store.select_where(policy_filter)]

    def load_policy(self, model: PolicySink) -> None:
        """Load every stored rule into ``model``."""
        _feed_rows(self.fetch_rows(), model)

    def load_filtered_policy(self, model: PolicySink, policy_filter: Any) -> None:
        """Load only the rules matching ``policy_filter`` into ``model``."""
        criteria = coerce_filter(policy_filter)
        _feed_lines(self.fetch_filtered_lines(criteria), model)
        self.mark_filtered()

    # --- Saving ---

    def save_policy(self, model: PolicySource) -> None:
        """Append every ``p``/``g`` rule of ``model``. Existing rows are kept."""
        saved = 0
        for ptype, rule in model.iter_rules():
            self.store.insert(ptype, rule)
            saved += 1
        logger.info(f"Saved {saved} policy rules to {self.store.table_name}")

    def add_policy(self, sec: str, ptype: str, rule: Rule) -> None:
        self.store.insert(ptype, rule)
        logger.info(f"Policy added: {ptype}, {list(rule)}")

    def add_policies(self, sec: str, ptype: str, rules: Sequence[Rule]) -> None:
        self.store.insert_batch([(ptype, rule) for rule in rules])
        logger.info(f"Policies added: {ptype} x{len(rules)}")

    # --- Removing ---

    def remove_policy(self, sec: str, ptype: str, rule: Rule) -> None:
        removed = self.store.delete_where(ptype, rule)
        logger.info(f"Policy removed: {ptype}, {list(rule)} ({removed} rows)")

    def remove_policies(self, sec: str, ptype: str, rules: Sequence[Rule]) -> None:
        def work(store: RuleStore) -> int:
            return sum(store.delete_where(ptype, rule) for rule in rules)

        removed = self.store.run_transaction(work)
        logger.info(f"Policies removed: {ptype} x{len(rules)} ({removed} rows)")

    def remove_filtered_policy(
        self, sec: str, ptype: str, field_index: int, *field_values: Optional[str]
    ) -> List[List[str]]:
        """Remove rules matching ``field_values`` from ``v<field_index>`` on; return them."""
        removed = self.store.run_transaction(
            lambda store: store.delete_where_field_range(ptype, field_index, field_values)
        )
        logger.info(f"Filtered policies removed: {ptype} from v{field_index} {list(field_values)} ({len(removed)} rows)")
        return [values for _, values in removed]

    # --- Updating ---

    def update_policy(self, sec: str, ptype: str, old_rule: Rule, new_rule: Rule) -> None:
        updated = self.store.update_row(ptype, old_rule, new_rule)
        logger.info(f"Policy updated: {ptype}, {list(old_rule)} -> {list(new_rule)} ({updated} rows)")

    def update_policies(
        self, sec: str, ptype: str, old_rules: Sequence[Rule], new_rules: Sequence[Rule]
    ) -> None:
        _check_batch_lengths(old_rules, new_rules)

        def work(store: RuleStore) -> None:
            for old_rule, new_rule in zip(old_rules, new_rules):
                store.update_row(ptype, old_rule, new_rule)

        self.store.run_transaction(work)
        logger.info(f"Policies updated: {ptype} x{len(old_rules)}")

    def update_filtered_policies(
        self, sec: str, ptype: str, new_rules: Sequence[Rule], field_index: int, *field_values: Optional[str]
    ) -> List[List[str]]:
        """Replace the rules matching the field filter with ``new_rules``; return the old ones."""
        def work(store: RuleStore):
            old = store.delete_where_field_range(ptype, field_index, field_values)
            store.insert_batch([(ptype, rule) for rule in new_rules])
            return old

        old_rules = self.store.run_transaction(work)
        logger.info(f"Filtered policies replaced: {ptype}, {len(old_rules)} old -> {len(new_rules)} new")
        return [values for _, values in old_rules]

    # --- Lifecycle ---

    def preheat(self) -> bool:
        """Run a full load into a throwaway model. Never raises."""
        try:
            self.load_policy(PolicyModel())
        except Exception as e:
            logger.error(f"Policy preheat failed: {e}")
            return False
        logger.info("Policy preheat complete")
        return True

    def close(self) -> None:
        self.store.close()


def _check_batch_lengths(old_rules: Sequence[Rule], new_rules: Sequence[Rule]) -> None:
    if len(old_rules) != len(new_rules):
        raise PreconditionError(
            f"Batch update needs as many new rules as old ones ({len(old_rules)} != {len(new_rules)})."
        )


class CachingAdapter:
    """Wraps a ``StoreAdapter`` with a read-through, evict-on-write cache."""

    def __init__(self, inner: StoreAdapter, cache: PolicyCache, owns_cache: bool = False):
        self.inner = inner
        self.cache = cache
        self._owns_cache = owns_cache

    @property
    def store(self) -> RuleStore:
        return self.inner.store

    @property
    def is_filtered(self) -> bool:
        return self.inner.is_filtered

    def reset_filtered(self) -> None:
        self.inner.reset_filtered()

    def _invalidate(self) -> None:
        self.cache.clear()

    # --- Loading ---

    def load_policy(self, model: PolicySink) -> None:
        key = self.cache.all_policies_key
        rows = self.cache.get(key)
        if rows is not None and not all(isinstance(row, dict) and "p_type" in row for row in rows):
            logger.warning(f"Ignoring malformed cache entry {key}: rows expected")
            rows = None
        if rows is None:
            rows = self.inner.fetch_rows()
            self.cache.set(key, rows)
        _feed_rows(rows, model)

    def load_filtered_policy(self, model: PolicySink, policy_filter: Any) -> None:
        criteria = coerce_filter(policy_filter)
        if isinstance(criteria, OpaqueQuery):
            self.inner.load_filtered_policy(model, criteria)
            return
        key = self.cache.filtered_key(fingerprint(criteria))
        lines = self.cache.get(key)
        if lines is not None and not all(isinstance(line, str) for line in lines):
            logger.warning(f"Ignoring malformed cache entry {key}: policy lines expected")
            lines = None
        if lines is None:
            lines = self.inner.fetch_filtered_lines(criteria)
            self.cache.set(key, lines)
        _feed_lines(lines, model)
        self.inner.mark_filtered()

    # --- Mutations: evict, then write ---

    def save_policy(self, model: PolicySource) -> None:
        self._invalidate()
        self.inner.save_policy(model)

    def add_policy(self, sec: str, ptype: str, rule: Rule) -> None:
        self._invalidate()
        self.inner.add_policy(sec, ptype, rule)

    def add_policies(self, sec: str, ptype: str, rules: Sequence[Rule]) -> None:
        self._invalidate()
        self.inner.add_policies(sec, ptype, rules)

    def remove_policy(self, sec: str, ptype: str, rule: Rule) -> None:
        self._invalidate()
        self.inner.remove_policy(sec, ptype, rule)

    def remove_policies(self, sec: str, ptype: str, rules: Sequence[Rule]) -> None:
        self._invalidate()
        self.inner.remove_policies(sec, ptype, rules)

    def remove_filtered_policy(
        self, sec: str, ptype: str, field_index: int, *field_values: Optional[str]
    ) -> List[List[str]]:
        self._invalidate()
        return self.inner.remove_filtered_policy(sec, ptype, field_index, *field_values)

    def update_policy(self, sec: str, ptype: str, old_rule: Rule, new_rule: Rule) -> None:
        self._invalidate()
        self.inner.update_policy(sec, ptype, old_rule, new_rule)

    def update_policies(
        self, sec: str, ptype: str, old_rules: Sequence[Rule], new_rules: Sequence[Rule]
    ) -> None:
        _check_batch_lengths(old_rules, new_rules)
        self._invalidate()
        self.inner.update_policies(sec, ptype, old_rules, new_rules)

    def update_filtered_policies(
        self, sec: str, ptype: str, new_rules: Sequence[Rule], field_index: int, *field_values: Optional[str]
    ) -> List[List[str]]:
        self._invalidate()
        return self.inner.update_filtered_policies(sec, ptype, new_rules, field_index, *field_values)

    # --- Lifecycle ---

    def preheat(self) -> bool:
        """Populate the ``all_policies`` entry. Never raises."""
        try:
            self.load_policy(PolicyModel())
        except Exception as e:
            logger.error(f"Policy cache preheat failed: {e}")
            return False
        logger.info("Policy cache preheated")
        return True

    def close(self) -> None:
        self.inner.close()
        if self._owns_cache:
            self.cache.close()


Adapter = Union[StoreAdapter, CachingAdapter]


def _build_store(db: Any, policy_table_name: Optional[str]) -> RuleStore:
    if isinstance(db, RuleStore):
        return db
    if isinstance(db, Engine):
        return RuleStore(db, policy_table_name or "casbin_rule")
    if isinstance(db, str):
        return RuleStore.from_url(db, policy_table_name or "casbin_rule")
    if isinstance(db, Mapping):
        if "url" not in db:
            raise ValueError("Store mapping is missing the required 'url' key.")
        table_name = policy_table_name or db.get("policy_table_name") or "casbin_rule"
        return RuleStore.from_url(db["url"], table_name)
    raise TypeError(f"Unsupported store descriptor: {type(db).__name__}")


def new_adapter(db: Any, cache: Any = None, policy_table_name: Optional[str] = None) -> Adapter:
    """Build an adapter from a store descriptor and an optional cache descriptor.

    ``db`` may be a ``RuleStore``, an ``Engine``, a database URL or a mapping
    with ``url`` and optional ``policy_table_name``. ``cache`` may be ``None``
    (no caching), a ``PolicyCache``, a redis client or a mapping of
    ``host/port/password/database/url/ttl/prefix``. The rule table is
    created when missing.
    """
    adapter = StoreAdapter(_build_store(db, policy_table_name))
    if cache is None:
        return adapter
    if isinstance(cache, PolicyCache):
        return CachingAdapter(adapter, cache)
    if isinstance(cache, Mapping):
        options = {key: value for key, value in cache.items() if value is not None}
        return CachingAdapter(adapter, PolicyCache.from_config(**options), owns_cache=True)
    if isinstance(cache, Redis) or (hasattr(cache, "get") and hasattr(cache, "scan")):
        return CachingAdapter(adapter, PolicyCache(cache))
    raise TypeError(f"Unsupported cache descriptor: {type(cache).__name__}")
