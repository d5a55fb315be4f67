"""
Role-based authorization resolution.

Resolution chain for a user:

    active User -> active RoleUser -> active Role
        -> active RoleFormPermission (some flag set) -> active Form
        -> active ModuloForm -> active Module

Grants are OR'd across roles; a missing grant is a deny. Every query is
total: an unknown user or form yields an empty list or False.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy import select, exists, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import ADMIN_ROLE_NAME
from app.core.database import store_errors
from app.models.form import Form, Module, ModuloForm
from app.models.role import Operation, Role, RoleFormPermission, RoleUser
from app.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FormCapabilities:
    """Effective capability flags of a user on one form."""
    form_id: int
    can_create: bool = False
    can_read: bool = False
    can_update: bool = False
    can_delete: bool = False

    def allows(self, operation: Operation) -> bool:
        return bool(getattr(self, operation.flag))

    @property
    def any(self) -> bool:
        return self.can_create or self.can_read or self.can_update or self.can_delete


class PermissionResolver:
    def __init__(self, session: AsyncSession):
        self.session = session

    def _active_grants(self, user_id: int):
        """Criteria selecting the active RoleFormPermission rows of a user's active roles."""
        return (
            User.id == user_id,
            User.is_active.is_(True),
            RoleFormPermission.is_active.is_(True),
            RoleFormPermission.role_id == Role.id,
            Role.is_active.is_(True),
            RoleUser.role_id == Role.id,
            RoleUser.user_id == User.id,
            RoleUser.is_active.is_(True),
        )

    def _accessible_form_ids(self, user_id: int):
        return (
            select(RoleFormPermission.form_id)
            .join(Form, Form.id == RoleFormPermission.form_id)
            .where(
                *self._active_grants(user_id),
                Form.is_active.is_(True),
                or_(
                    RoleFormPermission.can_create.is_(True),
                    RoleFormPermission.can_read.is_(True),
                    RoleFormPermission.can_update.is_(True),
                    RoleFormPermission.can_delete.is_(True),
                ),
            )
            .correlate(None)
        )

    async def resolve_roles(self, user_id: Optional[int]) -> list[Role]:
        """Active roles of the user, ordered by name."""
        if user_id is None:
            return []
        async with store_errors("Role resolution"):
            result = await self.session.execute(
                select(Role)
                .join(RoleUser, RoleUser.role_id == Role.id)
                .join(User, User.id == RoleUser.user_id)
                .where(
                    User.id == user_id,
                    User.is_active.is_(True),
                    RoleUser.is_active.is_(True),
                    Role.is_active.is_(True),
                )
                .distinct()
                .order_by(Role.name)
            )
            return list(result.scalars().all())

    async def resolve_accessible_forms(self, user_id: Optional[int]) -> list[Form]:
        """Active forms on which some active role of the user holds any capability."""
        if user_id is None:
            return []
        async with store_errors("Form resolution"):
            result = await self.session.execute(
                select(Form)
                .where(Form.id.in_(self._accessible_form_ids(user_id)))
                .order_by(Form.id)
            )
            return list(result.scalars().all())

    async def resolve_accessible_modules(self, user_id: Optional[int]) -> list[Module]:
        """Active modules that contain at least one accessible form, ordered by id."""
        if user_id is None:
            return []
        async with store_errors("Module resolution"):
            result = await self.session.execute(
                select(Module)
                .where(
                    Module.is_active.is_(True),
                    Module.id.in_(
                        select(ModuloForm.module_id).where(
                            ModuloForm.is_active.is_(True),
                            ModuloForm.form_id.in_(self._accessible_form_ids(user_id)),
                        )
                    ),
                )
                .order_by(Module.id)
            )
            return list(result.scalars().all())

    async def effective_permissions(self, user_id: Optional[int], form_id: Optional[int]) -> FormCapabilities:
        """OR of the capability flags of every active grant on the form."""
        if user_id is None or form_id is None:
            return FormCapabilities(form_id=form_id or 0)

        async with store_errors("Permission resolution"):
            result = await self.session.execute(
                select(
                    RoleFormPermission.can_create,
                    RoleFormPermission.can_read,
                    RoleFormPermission.can_update,
                    RoleFormPermission.can_delete,
                )
                .join(Form, Form.id == RoleFormPermission.form_id)
                .where(
                    *self._active_grants(user_id),
                    RoleFormPermission.form_id == form_id,
                    Form.is_active.is_(True),
                )
            )
            rows = result.all()

        return FormCapabilities(
            form_id=form_id,
            can_create=any(r.can_create for r in rows),
            can_read=any(r.can_read for r in rows),
            can_update=any(r.can_update for r in rows),
            can_delete=any(r.can_delete for r in rows),
        )

    async def can_perform(
        self,
        user_id: Optional[int],
        form_id: Optional[int],
        operation: Union[str, Operation],
    ) -> bool:
        """
        Whether any active role of the user may perform the operation on the form.

        ``operation`` is an Operation or its name in any case ("Delete",
        "delete"). Unknown operations are denied.
        """
        op = Operation.parse(operation)
        if op is None:
            logger.debug("Unknown operation %r denied", operation)
            return False
        if user_id is None or form_id is None:
            return False

        async with store_errors("Permission check"):
            result = await self.session.execute(
                select(
                    exists().where(
                        *self._active_grants(user_id),
                        RoleFormPermission.form_id == form_id,
                        RoleFormPermission.form_id == Form.id,
                        Form.is_active.is_(True),
                        getattr(RoleFormPermission, op.flag).is_(True),
                    )
                )
            )
            return bool(result.scalar())

    async def is_admin(self, user_id: Optional[int]) -> bool:
        if user_id is None:
            return False
        async with store_errors("Role resolution"):
            result = await self.session.execute(
                select(
                    exists().where(
                        User.id == user_id,
                        User.is_active.is_(True),
                        RoleUser.user_id == User.id,
                        RoleUser.is_active.is_(True),
                        RoleUser.role_id == Role.id,
                        Role.is_active.is_(True),
                        func.lower(Role.name) == ADMIN_ROLE_NAME.lower(),
                    )
                )
            )
            return bool(result.scalar())
