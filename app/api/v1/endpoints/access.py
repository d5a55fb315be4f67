"""
Access endpoints: what the current user may reach.

All answers come from the permission resolver for the bearer's user id.
"""

from typing import List

from fastapi import APIRouter, Depends

from app.auth.dependencies import get_current_claims, get_permission_resolver
from app.auth.jwt import TokenPayload
from app.auth.permissions import PermissionResolver
from app.core.errors import ValidationError
from app.models.role import Operation
from app.schemas.access import (
    FormCapabilitiesResponse,
    FormResponse,
    ModuleResponse,
    OperationCheckResponse,
    RoleResponse,
)

router = APIRouter()


@router.get("/roles", response_model=List[RoleResponse])
async def my_roles(
    claims: TokenPayload = Depends(get_current_claims),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    """Active roles of the current user."""
    return await resolver.resolve_roles(claims.user_id)


@router.get("/modules", response_model=List[ModuleResponse])
async def my_modules(
    claims: TokenPayload = Depends(get_current_claims),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    """Modules with at least one form the current user can use. Drives the navigation menu."""
    return await resolver.resolve_accessible_modules(claims.user_id)


@router.get("/forms", response_model=List[FormResponse])
async def my_forms(
    claims: TokenPayload = Depends(get_current_claims),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    return await resolver.resolve_accessible_forms(claims.user_id)


@router.get("/forms/{form_id}", response_model=FormCapabilitiesResponse)
async def my_form_capabilities(
    form_id: int,
    claims: TokenPayload = Depends(get_current_claims),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    return await resolver.effective_permissions(claims.user_id, form_id)


@router.get("/forms/{form_id}/{operation}", response_model=OperationCheckResponse)
async def can_perform(
    form_id: int,
    operation: str,
    claims: TokenPayload = Depends(get_current_claims),
    resolver: PermissionResolver = Depends(get_permission_resolver),
):
    """Whether the current user may create/read/update/delete on the form."""
    op = Operation.parse(operation)
    if op is None:
        raise ValidationError(f"Unknown operation '{operation}'. Expected one of: create, read, update, delete")
    allowed = await resolver.can_perform(claims.user_id, form_id, op)
    return OperationCheckResponse(form_id=form_id, operation=op.value, allowed=allowed)
