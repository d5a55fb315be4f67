"""
FastAPI dependencies for authentication and authorization.

Provides:
- get_auth_service: AuthService bound to the request session
- get_current_claims: Extract and validate the bearer access token
- require_form_permission: Require a capability on a form
"""

import logging
from typing import Optional, Union

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.audit import AuditRecorder
from app.auth.jwt import TokenPayload
from app.auth.permissions import PermissionResolver
from app.auth.service import AuthService
from app.core.database import get_db, async_session_maker
from app.models.role import Operation

logger = logging.getLogger(__name__)

# HTTP Bearer token extractor
security = HTTPBearer(auto_error=False)


# Shared so pending writes can be drained at shutdown
audit_recorder = AuditRecorder(async_session_maker)


def get_audit_recorder() -> AuditRecorder:
    """Audit recorder writing through the application session factory. Overridden in tests."""
    return audit_recorder


async def get_auth_service(
    db: AsyncSession = Depends(get_db),
    audit: AuditRecorder = Depends(get_audit_recorder),
) -> AuthService:
    return AuthService(db, audit=audit)


async def get_permission_resolver(db: AsyncSession = Depends(get_db)) -> PermissionResolver:
    return PermissionResolver(db)


def get_bearer_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """
    Raw bearer token, if any.

    Looks for token in:
    1. Authorization: Bearer <token> header
    2. Cookie: access_token
    """
    if credentials:
        return credentials.credentials
    return request.cookies.get("access_token")


async def get_current_claims(
    token: Optional[str] = Depends(get_bearer_token),
    auth: AuthService = Depends(get_auth_service),
) -> TokenPayload:
    """
    Validated claims of the caller's access token.

    Raises:
        HTTPException 401: If token is missing, invalid or expired
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    validation = auth.validate_session(token)
    if not validation.is_valid:
        detail = "Token has expired" if validation.claims else "Invalid token"
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )

    return validation.claims


def require_form_permission(form_id: int, operation: Union[str, Operation]):
    """
    Dependency to require a capability on a form.

    Usage:
        @router.delete("/invoices/{invoice_id}")
        async def delete_invoice(
            claims: TokenPayload = Depends(require_form_permission(INVOICES_FORM_ID, Operation.DELETE))
        ):
            ...

    Args:
        form_id: The protected form
        operation: Create/Read/Update/Delete (Operation or case-insensitive name)

    Returns:
        Dependency function returning the caller's claims when allowed
    """
    async def permission_checker(
        claims: TokenPayload = Depends(get_current_claims),
        resolver: PermissionResolver = Depends(get_permission_resolver),
    ) -> TokenPayload:
        if not await resolver.can_perform(claims.user_id, form_id, operation):
            logger.info("User %s denied %s on form %s", claims.user_id, operation, form_id)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission '{operation}' on form {form_id} required",
            )
        return claims

    return permission_checker


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.
    Handles X-Forwarded-For header for proxied requests.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # Take the first IP (original client)
        return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"
