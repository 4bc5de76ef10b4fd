"""Rule codec: converts policy rules to stored rows and back.

Two read paths exist and they trim differently:

* ``to_rule`` keeps interior empty values and drops only the trailing run,
  so ``["a", "", "c"]`` stays three values.
* ``to_line`` drops every empty value wherever it sits and joins the rest
  with ``", "``. It feeds the line-oriented (filtered) load path.

The two representations are not interchangeable.
"""
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from policy_adapter.core.exceptions import PreconditionError
from policy_adapter.models.models import MAX_RULE_VALUES, VALUE_COLUMNS
from policy_adapter.schemas import PolicyRule

LINE_DELIMITER = ", "


def _is_empty(value: Optional[str]) -> bool:
    return value is None or value == ""


def to_row(ptype: str, values: Sequence[Optional[str]]) -> Dict[str, Optional[str]]:
    """Position ``values[i]`` into column ``v<i>``; unspecified trailing slots are null."""
    if len(values) > MAX_RULE_VALUES:
        raise PreconditionError(
            f"A policy rule holds at most {MAX_RULE_VALUES} values, got {len(values)}."
        )
    row: Dict[str, Optional[str]] = {"p_type": ptype}
    for i, column in enumerate(VALUE_COLUMNS):
        row[column] = values[i] if i < len(values) else None
    return row


def trim_trailing(values: Sequence[Optional[str]]) -> List[str]:
    """Drop the trailing run of null/empty values; interior nulls become ``""``."""
    end = len(values)
    while end > 0 and _is_empty(values[end - 1]):
        end -= 1
    return ["" if value is None else value for value in values[:end]]


def to_rule(row: Mapping[str, Optional[str]]) -> Tuple[str, List[str]]:
    """Strip ``id``/``p_type`` from a row and return ``(ptype, values)`` in canonical form."""
    values = [row.get(column) for column in VALUE_COLUMNS]
    return row["p_type"], trim_trailing(values)


def to_policy_rule(row: Mapping[str, Optional[str]]) -> PolicyRule:
    ptype, values = to_rule(row)
    return PolicyRule(ptype=ptype, values=values)


def to_line(row: Mapping[str, Optional[str]]) -> str:
    """Join the type and every non-empty value of a row into a policy line."""
    fields = [row.get("p_type")] + [row.get(column) for column in VALUE_COLUMNS]
    return LINE_DELIMITER.join(field for field in fields if not _is_empty(field)).strip()


def parse_line(line: str) -> Tuple[str, List[str]]:
    """Split a policy line back into ``(ptype, values)``."""
    tokens = [token.strip() for token in line.split(",")]
    return tokens[0], tokens[1:]
