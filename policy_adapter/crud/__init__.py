"""Relational store gateway."""
from policy_adapter.crud.crud import RuleStore

__all__ = ["RuleStore"]
