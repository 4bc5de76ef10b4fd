"""SQLAlchemy models."""
from policy_adapter.models.models import (
    MAX_RULE_VALUES,
    RULE_COLUMNS,
    VALUE_COLUMNS,
    build_rule_table,
)

__all__ = ["MAX_RULE_VALUES", "RULE_COLUMNS", "VALUE_COLUMNS", "build_rule_table"]
