"""Pydantic schemas."""
from policy_adapter.schemas.schemas import (
    PolicyRule,
    RuleBatch, RuleUpdate, RuleBatchUpdate,
    FieldFilterRequest, FilteredUpdateRequest,
    PolicyQuery, RemovedRules, PreheatResponse
)

__all__ = [
    "PolicyRule",
    "RuleBatch", "RuleUpdate", "RuleBatchUpdate",
    "FieldFilterRequest", "FilteredUpdateRequest",
    "PolicyQuery", "RemovedRules", "PreheatResponse"
]
