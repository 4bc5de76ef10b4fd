"""SQL-backed casbin policy adapter with an optional Redis cache."""
from policy_adapter.core.exceptions import (
    CacheError,
    InvalidFilterError,
    PolicyAdapterError,
    PreconditionError,
    StorageError,
)
from policy_adapter.crud import RuleStore
from policy_adapter.services.adapter import CachingAdapter, StoreAdapter, new_adapter
from policy_adapter.services.cache import PolicyCache
from policy_adapter.services.filters import OpaqueQuery, RawPredicate, StructuredPredicate
from policy_adapter.services.model import PolicyModel

__all__ = [
    "CacheError",
    "CachingAdapter",
    "InvalidFilterError",
    "OpaqueQuery",
    "PolicyAdapterError",
    "PolicyCache",
    "PolicyModel",
    "PreconditionError",
    "RawPredicate",
    "RuleStore",
    "StorageError",
    "StoreAdapter",
    "StructuredPredicate",
    "new_adapter",
]
