"""
Database Models

This module exports all SQLAlchemy models for the application.
"""

from app.models.mixins import Deactivatable
from app.models.user import User, Person
from app.models.role import Role, RoleUser, Permission, RoleFormPermission, Operation
from app.models.form import Form, Module, ModuloForm
from app.models.token import RefreshToken, RefreshTokenState
from app.models.audit import AccessLog, AuditAction, UNKNOWN_USER_ID

__all__ = [
    "Deactivatable",
    # Identity
    "User",
    "Person",
    # RBAC
    "Role",
    "RoleUser",
    "Permission",
    "RoleFormPermission",
    "Operation",
    # Resources
    "Form",
    "Module",
    "ModuloForm",
    # Tokens
    "RefreshToken",
    "RefreshTokenState",
    # Audit
    "AccessLog",
    "AuditAction",
    "UNKNOWN_USER_ID",
]
