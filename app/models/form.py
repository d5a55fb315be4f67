"""Protected resources: forms (screens) grouped into modules."""

from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import String, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.models.mixins import CreatedAt, Deactivatable

if TYPE_CHECKING:
    from app.models.role import RoleFormPermission


class Form(Deactivatable, CreatedAt, Base):
    __tablename__ = "forms"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    module_forms: Mapped[List["ModuloForm"]] = relationship("ModuloForm", back_populates="form")
    role_permissions: Mapped[List["RoleFormPermission"]] = relationship(
        "RoleFormPermission", back_populates="form"
    )

    def __repr__(self) -> str:
        return f"<Form {self.name}>"


class Module(Deactivatable, Base):
    __tablename__ = "modules"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    module_forms: Mapped[List["ModuloForm"]] = relationship("ModuloForm", back_populates="module")

    def __repr__(self) -> str:
        return f"<Module {self.name}>"


class ModuloForm(Deactivatable, Base):
    """Membership of a form in a module."""

    __tablename__ = "module_forms"
    __table_args__ = (
        UniqueConstraint("module_id", "form_id", name="uq_module_form"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    module_id: Mapped[int] = mapped_column(ForeignKey("modules.id", ondelete="CASCADE"), index=True, nullable=False)
    form_id: Mapped[int] = mapped_column(ForeignKey("forms.id", ondelete="CASCADE"), index=True, nullable=False)

    module: Mapped["Module"] = relationship("Module", back_populates="module_forms")
    form: Mapped["Form"] = relationship("Form", back_populates="module_forms")
