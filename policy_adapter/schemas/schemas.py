"""Pydantic schemas for policy rules and management request/response validation."""
from pydantic import BaseModel, Field
from typing import List, Optional, Dict

from policy_adapter.models.models import MAX_RULE_VALUES


# --- Policy Rule (canonical form handed to callers) ---
class PolicyRule(BaseModel):
    ptype: str
    values: List[str] = Field(default_factory=list, max_length=MAX_RULE_VALUES)

    @property
    def sec(self) -> str:
        """Model section of the rule: the first letter of its type (p, g)."""
        return self.ptype[:1]

    class Config:
        from_attributes = True


# --- Mutation Schemas ---
class RuleBatch(BaseModel):
    ptype: str
    rules: List[List[str]]


class RuleUpdate(BaseModel):
    ptype: str
    old_rule: List[str]
    new_rule: List[str]


class RuleBatchUpdate(BaseModel):
    ptype: str
    old_rules: List[List[str]]
    new_rules: List[List[str]]


class FieldFilterRequest(BaseModel):
    ptype: str
    field_index: int = Field(0, ge=0, le=MAX_RULE_VALUES - 1)
    field_values: List[Optional[str]] = Field(default_factory=list)


class FilteredUpdateRequest(FieldFilterRequest):
    new_rules: List[List[str]]


# --- Query Schemas ---
class PolicyQuery(BaseModel):
    ptype: Optional[str] = None
    fields: Dict[str, str] = Field(default_factory=dict)  # e.g. {"v0": "alice"}


class RemovedRules(BaseModel):
    ptype: str
    rules: List[List[str]]


class PreheatResponse(BaseModel):
    preheated: bool
