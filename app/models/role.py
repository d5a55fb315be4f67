"""
Role-based access control models.

A user's roles come from active RoleUser rows. What a role may do on a form
comes from active RoleFormPermission rows: one row per (role, form,
permission) with four capability flags. Grants from several roles are OR'd;
there is no explicit deny.
"""

from enum import Enum as PyEnum
from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import String, Boolean, ForeignKey, Index, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.models.mixins import CreatedAt, Deactivatable

if TYPE_CHECKING:
    from app.models.form import Form
    from app.models.user import User


class Operation(str, PyEnum):
    """Operations guarded by a RoleFormPermission capability flag."""
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"

    @classmethod
    def parse(cls, value: "str | Operation") -> Optional["Operation"]:
        """Case-insensitive lookup; None for anything unknown."""
        if isinstance(value, Operation):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None

    @property
    def flag(self) -> str:
        """Name of the RoleFormPermission column for this operation."""
        return f"can_{self.value}"


class Role(Deactivatable, CreatedAt, Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    role_users: Mapped[List["RoleUser"]] = relationship("RoleUser", back_populates="role")
    form_permissions: Mapped[List["RoleFormPermission"]] = relationship(
        "RoleFormPermission", back_populates="role"
    )

    def __repr__(self) -> str:
        return f"<Role {self.name}>"


# Role names are looked up case-insensitively
Index("uq_roles_name_lower", func.lower(Role.__table__.c.name), unique=True)


class RoleUser(Deactivatable, CreatedAt, Base):
    """Membership of a user in a role."""

    __tablename__ = "role_users"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    role_id: Mapped[int] = mapped_column(ForeignKey("roles.id", ondelete="CASCADE"), index=True, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="role_users")
    role: Mapped["Role"] = relationship("Role", back_populates="role_users")

    def __repr__(self) -> str:
        return f"<RoleUser user={self.user_id} role={self.role_id} active={self.is_active}>"


class Permission(CreatedAt, Base):
    __tablename__ = "permissions"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Permission {self.name}>"


class RoleFormPermission(Deactivatable, Base):
    """One cell of the authorization matrix."""

    __tablename__ = "role_form_permissions"
    __table_args__ = (
        UniqueConstraint("role_id", "form_id", "permission_id", name="uq_role_form_permission"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    role_id: Mapped[int] = mapped_column(ForeignKey("roles.id", ondelete="CASCADE"), index=True, nullable=False)
    form_id: Mapped[int] = mapped_column(ForeignKey("forms.id", ondelete="CASCADE"), index=True, nullable=False)
    permission_id: Mapped[int] = mapped_column(ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False)

    can_create: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_update: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_delete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    role: Mapped["Role"] = relationship("Role", back_populates="form_permissions")
    form: Mapped["Form"] = relationship("Form", back_populates="role_permissions")
    permission: Mapped["Permission"] = relationship("Permission")

    def __repr__(self) -> str:
        return f"<RoleFormPermission role={self.role_id} form={self.form_id}>"
