"""
Credential store: the narrow persistence interface the auth flows use.

CredentialStore is the contract; SqlCredentialStore implements it on a
request-scoped AsyncSession through the generic Repository. It never
commits: the session's transaction is the boundary, owned by the caller.
"""

from typing import Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.repository import Repository
from app.models.role import Role, RoleUser
from app.models.user import Person, User


class CredentialStore(Protocol):
    async def find_user_by_username(self, username: str, active_only: bool = True) -> Optional[User]: ...

    async def find_user_by_id(self, user_id: int, active_only: bool = False) -> Optional[User]: ...

    async def user_exists(self, username: Optional[str] = None, email: Optional[str] = None) -> bool: ...

    async def person_exists(self, document_number: str) -> bool: ...

    async def save_user(self, user: User) -> User: ...

    async def save_person(self, person: Person) -> Person: ...

    async def save_role_assignment(self, user_id: int, role_id: int) -> RoleUser: ...

    async def find_role_by_name(self, name: str) -> Optional[Role]: ...

    async def active_role_names(self, user_id: int) -> list[str]: ...


class SqlCredentialStore:
    """CredentialStore over SQLAlchemy."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = Repository(session, User, eager=(User.person,))
        self.persons = Repository(session, Person)
        self.roles = Repository(session, Role)
        self.role_users = Repository(session, RoleUser)

    async def find_user_by_username(self, username: str, active_only: bool = True) -> Optional[User]:
        return await self.users.find_one(User.username == username, active_only=active_only)

    async def find_user_by_id(self, user_id: int, active_only: bool = False) -> Optional[User]:
        return await self.users.find_one(User.id == user_id, active_only=active_only)

    async def user_exists(self, username: Optional[str] = None, email: Optional[str] = None) -> bool:
        if username is None and email is None:
            raise ValueError("username or email is required")
        if username is not None and await self.users.exists(User.username == username):
            return True
        if email is not None and await self.users.exists(func.lower(User.email) == email.lower()):
            return True
        return False

    async def person_exists(self, document_number: str) -> bool:
        return await self.persons.exists(Person.document_number == document_number)

    async def save_user(self, user: User) -> User:
        return await self.users.add(user)

    async def save_person(self, person: Person) -> Person:
        return await self.persons.add(person)

    async def save_role_assignment(self, user_id: int, role_id: int) -> RoleUser:
        return await self.role_users.add(RoleUser(user_id=user_id, role_id=role_id, is_active=True))

    async def find_role_by_name(self, name: str) -> Optional[Role]:
        """Active role by case-insensitive name."""
        return await self.roles.find_one(func.lower(Role.name) == name.lower(), active_only=True)

    async def active_role_names(self, user_id: int) -> list[str]:
        """Names of the active roles of an active user."""
        result = await self.session.execute(
            select(Role.name)
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
