"""
User and Person models.

Security considerations:
- Passwords are stored as Argon2id digests (legacy SHA-256 digests are
  upgraded on the next successful login)
- Username, email and document number are unique
- Users are deactivated, not deleted, so access logs and refresh tokens
  keep their owner
- All timestamps use UTC
"""

from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import String, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.models.mixins import CreatedAt, Deactivatable

if TYPE_CHECKING:
    from app.models.role import RoleUser
    from app.models.token import RefreshToken


class Person(Deactivatable, CreatedAt, Base):
    """Natural person. May exist without a User."""

    __tablename__ = "persons"

    id: Mapped[int] = mapped_column(primary_key=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    document_number: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    document_type: Mapped[str] = mapped_column(String(10), nullable=False, default="CC")
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    user: Mapped[Optional["User"]] = relationship("User", back_populates="person", uselist=False)

    def __repr__(self) -> str:
        return f"<Person {self.document_type} {self.document_number}>"


class User(Deactivatable, CreatedAt, Base):
    """Login account. Always linked to exactly one Person."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)

    # Authentication
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    person_id: Mapped[int] = mapped_column(
        ForeignKey("persons.id", ondelete="RESTRICT"),
        unique=True,
        nullable=False,
    )

    # Relationships
    person: Mapped["Person"] = relationship("Person", back_populates="user")
    role_users: Mapped[List["RoleUser"]] = relationship("RoleUser", back_populates="user")
    refresh_tokens: Mapped[List["RefreshToken"]] = relationship("RefreshToken", back_populates="user")

    def __repr__(self) -> str:
        return f"<User {self.username}>"
