"""
Schemas for the caller's resolved roles, modules and form capabilities.
"""

from typing import Optional

from pydantic import ConfigDict

from app.schemas.auth import CamelModel


class OrmModel(CamelModel):
    model_config = ConfigDict(from_attributes=True)


class RoleResponse(OrmModel):
    id: int
    name: str
    description: Optional[str] = None


class ModuleResponse(OrmModel):
    id: int
    name: str
    description: Optional[str] = None
    status: Optional[str] = None


class FormResponse(OrmModel):
    id: int
    name: str
    description: Optional[str] = None
    status: Optional[str] = None


class FormCapabilitiesResponse(OrmModel):
    form_id: int
    can_create: bool
    can_read: bool
    can_update: bool
    can_delete: bool


class OperationCheckResponse(CamelModel):
    form_id: int
    operation: str
    allowed: bool
