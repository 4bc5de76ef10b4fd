"""Management API endpoints (policy rule CRUD)."""
from typing import List
from fastapi import APIRouter, Depends, HTTPException
from policy_adapter import schemas
from policy_adapter.api.deps import get_adapter
from policy_adapter.core.exceptions import InvalidFilterError, PreconditionError, StorageError
from policy_adapter.core.security import verify_admin_key
from policy_adapter.services.adapter import Adapter
from policy_adapter.services.filters import StructuredPredicate
from policy_adapter.services.model import PolicyModel

router = APIRouter()


def _rules(model: PolicyModel) -> List[schemas.PolicyRule]:
    return [schemas.PolicyRule(ptype=ptype, values=rule) for ptype, rule in model.iter_rules()]


def _run(operation, *args):
    """Call an adapter operation, turning adapter errors into HTTP errors."""
    try:
        return operation(*args)
    except (PreconditionError, InvalidFilterError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=503, detail=f"Policy store unavailable: {e}")


@router.get("/policies/", response_model=List[schemas.PolicyRule])
def list_policies_api(
    adapter: Adapter = Depends(get_adapter),
    verified: bool = Depends(verify_admin_key)
):
    """Loads every stored policy rule. Requires Admin API Key."""
    model = PolicyModel()
    _run(adapter.load_policy, model)
    return _rules(model)


@router.post("/policies/filter", response_model=List[schemas.PolicyRule])
def filter_policies_api(
    query: schemas.PolicyQuery,
    adapter: Adapter = Depends(get_adapter),
    verified: bool = Depends(verify_admin_key)
):
    """Loads the policy rules whose columns equal the given values. Requires Admin API Key."""
    try:
        criteria = StructuredPredicate.from_fields(query.fields, ptype=query.ptype)
    except InvalidFilterError as e:
        raise HTTPException(status_code=400, detail=str(e))
    model = PolicyModel()
    _run(adapter.load_filtered_policy, model, criteria)
    return _rules(model)


@router.post("/policies/", response_model=schemas.PolicyRule)
def add_policy_api(
    rule: schemas.PolicyRule,
    adapter: Adapter = Depends(get_adapter),
    verified: bool = Depends(verify_admin_key)
):
    """Adds a single policy rule. Requires Admin API Key."""
    _run(adapter.add_policy, rule.sec, rule.ptype, rule.values)
    return rule


@router.post("/policies/batch", response_model=schemas.RuleBatch)
def add_policies_api(
    batch: schemas.RuleBatch,
    adapter: Adapter = Depends(get_adapter),
    verified: bool = Depends(verify_admin_key)
):
    """Adds several policy rules with one insert. Requires Admin API Key."""
    _run(adapter.add_policies, batch.ptype[:1], batch.ptype, batch.rules)
    return batch


@router.post("/policies/remove", response_model=schemas.PolicyRule)
def remove_policy_api(
    rule: schemas.PolicyRule,
    adapter: Adapter = Depends(get_adapter),
    verified: bool = Depends(verify_admin_key)
):
    """Removes a policy rule. Requires Admin API Key."""
    _run(adapter.remove_policy, rule.sec, rule.ptype, rule.values)
    return rule


@router.post("/policies/remove/batch", response_model=schemas.RuleBatch)
def remove_policies_api(
    batch: schemas.RuleBatch,
    adapter: Adapter = Depends(get_adapter),
    verified: bool = Depends(verify_admin_key)
):
    """Removes several policy rules in one transaction. Requires Admin API Key."""
    _run(adapter.remove_policies, batch.ptype[:1], batch.ptype, batch.rules)
    return batch


@router.post("/policies/remove-filtered", response_model=schemas.RemovedRules)
def remove_filtered_policy_api(
    request: schemas.FieldFilterRequest,
    adapter: Adapter = Depends(get_adapter),
    verified: bool = Depends(verify_admin_key)
):
    """Removes the policy rules matching a field filter and returns them. Requires Admin API Key."""
    removed = _run(
        adapter.remove_filtered_policy,
        request.ptype[:1], request.ptype, request.field_index, *request.field_values
    )
    return schemas.RemovedRules(ptype=request.ptype, rules=removed)


@router.put("/policies/", response_model=schemas.RuleUpdate)
def update_policy_api(
    change: schemas.RuleUpdate,
    adapter: Adapter = Depends(get_adapter),
    verified: bool = Depends(verify_admin_key)
):
    """Rewrites a policy rule. Requires Admin API Key."""
    _run(adapter.update_policy, change.ptype[:1], change.ptype, change.old_rule, change.new_rule)
    return change


@router.put("/policies/batch", response_model=schemas.RuleBatchUpdate)
def update_policies_api(
    change: schemas.RuleBatchUpdate,
    adapter: Adapter = Depends(get_adapter),
    verified: bool = Depends(verify_admin_key)
):
    """Rewrites old_rules[i] as new_rules[i] in one transaction. Requires Admin API Key."""
    _run(adapter.update_policies, change.ptype[:1], change.ptype, change.old_rules, change.new_rules)
    return change


@router.put("/policies/filtered", response_model=schemas.RemovedRules)
def update_filtered_policies_api(
    request: schemas.FilteredUpdateRequest,
    adapter: Adapter = Depends(get_adapter),
    verified: bool = Depends(verify_admin_key)
):
    """Replaces the rules matching a field filter with new_rules; returns the old ones. Requires Admin API Key."""
    old_rules = _run(
        adapter.update_filtered_policies,
        request.ptype[:1], request.ptype, request.new_rules, request.field_index, *request.field_values
    )
    return schemas.RemovedRules(ptype=request.ptype, rules=old_rules)


@router.post("/cache/preheat", response_model=schemas.PreheatResponse)
def preheat_cache_api(
    adapter: Adapter = Depends(get_adapter),
    verified: bool = Depends(verify_admin_key)
):
    """Loads the full policy set so the cache is warm. Requires Admin API Key."""
    return schemas.PreheatResponse(preheated=adapter.preheat())
