"""
Pydantic schemas for API request/response validation.

These schemas provide:
- Input validation with length constraints
- camelCase output serialization
- OpenAPI documentation generation
"""

from app.schemas.auth import (
    LoginRequest,
    RegisterRequest,
    AuthResponse,
    RegisterResponse,
    TokenValidationResponse,
    CheckTokenRequest,
    RefreshTokenRequest,
    PasswordChangeRequest,
    MessageResponse,
)
from app.schemas.access import (
    RoleResponse,
    ModuleResponse,
    FormResponse,
    FormCapabilitiesResponse,
    OperationCheckResponse,
)

__all__ = [
    # Auth
    "LoginRequest",
    "RegisterRequest",
    "AuthResponse",
    "RegisterResponse",
    "TokenValidationResponse",
    "CheckTokenRequest",
    "RefreshTokenRequest",
    "PasswordChangeRequest",
    "MessageResponse",
    # Access
    "RoleResponse",
    "ModuleResponse",
    "FormResponse",
    "FormCapabilitiesResponse",
    "OperationCheckResponse",
]
