"""
Authentication and Authorization module.

Provides:
- JWT access tokens and rotating refresh tokens
- Password hashing (Argon2id, legacy SHA-256 upgrade)
- Role -> form -> permission resolution
- Audit logging for auth events
"""

from app.auth.jwt import (
    create_access_token,
    verify_token,
    get_token_payload,
    TokenPayload,
)
from app.auth.password import (
    hash_password,
    verify_password,
    needs_rehash,
)
from app.auth.tokens import (
    TokenService,
    TokenPair,
    TokenValidation,
)
from app.auth.permissions import (
    PermissionResolver,
    FormCapabilities,
)
from app.auth.audit import AuditRecorder
from app.auth.service import (
    AuthService,
    AuthResult,
    RegistrationProfile,
)

__all__ = [
    # JWT
    "create_access_token",
    "verify_token",
    "get_token_payload",
    "TokenPayload",
    # Password
    "hash_password",
    "verify_password",
    "needs_rehash",
    # Tokens
    "TokenService",
    "TokenPair",
    "TokenValidation",
    # Authorization
    "PermissionResolver",
    "FormCapabilities",
    # Audit
    "AuditRecorder",
    # Flows
    "AuthService",
    "AuthResult",
    "RegistrationProfile",
]
