"""Main API router that includes all v1 routes."""
from fastapi import APIRouter
from policy_adapter.api.v1.routes import policies

api_router = APIRouter()

api_router.include_router(policies.router, tags=["policies"])
