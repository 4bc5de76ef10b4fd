"""Error taxonomy of the policy adapter."""


class PolicyAdapterError(Exception):
    """Base class for every error raised by the adapter."""


class StorageError(PolicyAdapterError):
    """The relational store failed (connection lost, constraint violation, bad SQL)."""


class CacheError(PolicyAdapterError):
    """The cache is unreachable or returned a payload that cannot be decoded.

    Never escapes the cache layer: callers see a miss instead.
    """


class InvalidFilterError(PolicyAdapterError):
    """A filter argument has a shape the adapter does not understand."""


class PreconditionError(PolicyAdapterError):
    """The caller broke an operation precondition (e.g. mismatched batch lengths)."""
