"""
API Router configuration.

Aggregates all v1 API endpoints with proper tagging and prefixes.
"""

from fastapi import APIRouter

from app.api.v1.endpoints import (
    auth,
    access,
)

api_router = APIRouter()

# Authentication (no auth required for login/register/refresh/check-token)
api_router.include_router(
    auth.router,
    prefix="/auth",
    tags=["authentication"]
)

# Resolved roles, modules and form capabilities of the caller
api_router.include_router(
    access.router,
    prefix="/access",
    tags=["access"]
)
