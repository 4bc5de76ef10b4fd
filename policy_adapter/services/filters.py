"""Filter representation for partial policy loads.

A filter is one of three shapes:

* ``RawPredicate``: a literal SQL predicate string, no parameters.
* ``StructuredPredicate``: a predicate with placeholders plus their values.
  Named placeholders (``:name``) take a mapping, positional ones (``?``)
  take a list.
* ``OpaqueQuery``: a procedure receiving the base ``Select`` and returning
  the statement to run. Its effects cannot be fingerprinted, so loads
  through it are never cached.

Raw and structured filters fingerprint to the md5 of a canonical JSON
serialization of ``{"predicates": ..., "params": ...}`` with sorted keys,
so parameter insertion order never changes the cache key.
"""
import hashlib
import json
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict
from sqlalchemy import Select, text

from policy_adapter.core.exceptions import InvalidFilterError
from policy_adapter.models.models import RULE_COLUMNS

_QUOTED_OR_PLACEHOLDER = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|\?")


class RawPredicate(BaseModel):
    model_config = ConfigDict(frozen=True)

    predicate: str


class StructuredPredicate(BaseModel):
    model_config = ConfigDict(frozen=True)

    predicate: str
    params: Union[Dict[str, Any], List[Any]]

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any], ptype: Optional[str] = None) -> "StructuredPredicate":
        """Build an ``AND`` of equality tests over rule columns.

        ``fields`` maps column names to values. Only ``p_type`` and
        ``v0``..``v5`` are accepted, so the predicate never carries
        caller-supplied SQL.
        """
        params: Dict[str, Any] = {}
        if ptype is not None:
            params["p_type"] = ptype
        for column, value in fields.items():
            if column not in RULE_COLUMNS:
                raise InvalidFilterError(f"Unknown policy column '{column}'.")
            params[column] = value
        if not params:
            raise InvalidFilterError("A field filter needs at least one column.")
        predicate = " AND ".join(f"{column} = :{column}" for column in sorted(params))
        return cls(predicate=predicate, params=params)


class OpaqueQuery(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    procedure: Callable[[Select], Select]


PolicyFilter = Union[RawPredicate, StructuredPredicate, OpaqueQuery]


def coerce_filter(value: Any) -> PolicyFilter:
    """Normalize a caller-supplied filter into one of the three shapes.

    Accepts the shapes themselves, a plain string (raw predicate), a
    ``(predicate, params)`` pair (structured) or a callable (opaque).
    """
    if isinstance(value, (RawPredicate, StructuredPredicate, OpaqueQuery)):
        return value
    if isinstance(value, str):
        return RawPredicate(predicate=value)
    if isinstance(value, tuple) and len(value) == 2 and isinstance(value[0], str) \
            and isinstance(value[1], (dict, list)):
        return StructuredPredicate(predicate=value[0], params=value[1])
    if callable(value):
        return OpaqueQuery(procedure=value)
    raise InvalidFilterError(f"Unsupported filter type: {type(value).__name__}")


def fingerprint(policy_filter: PolicyFilter) -> str:
    """Stable cache-key suffix for a declarative filter."""
    if isinstance(policy_filter, RawPredicate):
        canonical = {"predicates": policy_filter.predicate, "params": []}
    elif isinstance(policy_filter, StructuredPredicate):
        canonical = {"predicates": policy_filter.predicate, "params": policy_filter.params}
    elif isinstance(policy_filter, OpaqueQuery):
        raise InvalidFilterError("Opaque query filters cannot be fingerprinted.")
    else:
        raise InvalidFilterError(f"Unsupported filter type: {type(policy_filter).__name__}")
    serialized = json.dumps(canonical, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.md5(serialized.encode("utf-8")).hexdigest()


def _positional_to_named(predicate: str, params: List[Any]):
    """Rewrite ``?`` placeholders as ``:p0``, ``:p1``... for ``text()``.

    A ``?`` inside a quoted literal is left alone.
    """
    count = 0

    def _replace(match):
        nonlocal count
        if match.group(0) != "?":
            return match.group(0)
        count += 1
        return f":p{count - 1}"

    named = _QUOTED_OR_PLACEHOLDER.sub(_replace, predicate)
    if count != len(params):
        raise InvalidFilterError(
            f"Predicate has {count} placeholders but {len(params)} parameters were given."
        )
    return named, {f"p{i}": value for i, value in enumerate(params)}


def apply_filter(statement: Select, policy_filter: PolicyFilter) -> Select:
    """Narrow ``statement`` with ``policy_filter``."""
    if isinstance(policy_filter, RawPredicate):
        return statement.where(text(policy_filter.predicate))
    if isinstance(policy_filter, StructuredPredicate):
        if isinstance(policy_filter.params, list):
            predicate, params = _positional_to_named(policy_filter.predicate, policy_filter.params)
        else:
            predicate, params = policy_filter.predicate, dict(policy_filter.params)
        return statement.where(text(predicate).bindparams(**params))
    if isinstance(policy_filter, OpaqueQuery):
        return policy_filter.procedure(statement)
    raise InvalidFilterError(f"Unsupported filter type: {type(policy_filter).__name__}")
