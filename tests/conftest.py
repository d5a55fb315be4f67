import os
import sys
import tempfile

# Add project root to sys.path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Set up environment variables before importing app
_TEST_DB_DIR = tempfile.mkdtemp(prefix="security-api-tests-")
os.environ["DB_DIR"] = _TEST_DB_DIR
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR}/app.db"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-not-for-production-0123456789"
os.environ["LOG_LEVEL"] = "WARNING"
# Audit rows are asserted right after each call
os.environ["AUDIT_IN_BACKGROUND"] = "false"

from typing import Optional, Sequence

import pytest
import pytest_asyncio
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import app.models  # noqa: F401  (register mappers)
from app.auth.audit import AuditRecorder
from app.auth.password import hash_password
from app.auth.service import AuthService
from app.core.database import Base, enable_sqlite_pragmas
from app.models import (
    AccessLog,
    Form,
    Module,
    ModuloForm,
    Permission,
    Person,
    Role,
    RoleFormPermission,
    RoleUser,
    User,
)

DEFAULT_PASSWORD = "secret123"


def make_session_maker(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def engine(tmp_path):
    # A file database so every session gets its own connection and transaction
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    enable_sqlite_pragmas(eng.sync_engine)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine):
    return make_session_maker(engine)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as s:
        yield s


@pytest.fixture
def audit(session_maker):
    return AuditRecorder(session_maker)


@pytest.fixture
def auth_service(session, audit):
    return AuthService(session, audit=audit)


class Seeder:
    """Writes fixture rows through its own session and commits each one."""

    def __init__(self, session_maker):
        self.session_maker = session_maker
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    async def _save(self, *entities):
        async with self.session_maker() as session:
            session.add_all(entities)
            await session.commit()
        return entities[0] if len(entities) == 1 else entities

    async def role(self, name: str, is_active: bool = True) -> Role:
        return await self._save(Role(name=name, description=f"{name} role", is_active=is_active))

    async def user(
        self,
        username: str = "alice",
        password: str = DEFAULT_PASSWORD,
        email: Optional[str] = None,
        document_number: Optional[str] = None,
        is_active: bool = True,
        password_hash: Optional[str] = None,
        roles: Sequence[Role] = (),
    ) -> User:
        n = self._next()
        person = Person(
            first_name=username.capitalize(),
            last_name="Tester",
            document_number=document_number or f"DOC-{n:05d}",
            document_type="CC",
        )
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            password_hash=password_hash or hash_password(password),
            person=person,
            is_active=is_active,
        )
        await self._save(person, user)
        for role in roles:
            await self.assign(user, role)
        return user

    async def assign(self, user: User, role: Role, is_active: bool = True) -> RoleUser:
        return await self._save(RoleUser(user_id=user.id, role_id=role.id, is_active=is_active))

    async def form(self, name: str, is_active: bool = True) -> Form:
        return await self._save(Form(name=name, description=f"{name} screen", is_active=is_active))

    async def module(self, name: str, is_active: bool = True) -> Module:
        return await self._save(Module(name=name, description=f"{name} module", is_active=is_active))

    async def link(self, module: Module, form: Form, is_active: bool = True) -> ModuloForm:
        return await self._save(ModuloForm(module_id=module.id, form_id=form.id, is_active=is_active))

    async def permission(self, name: Optional[str] = None) -> Permission:
        return await self._save(Permission(name=name or f"Permission {self._next()}"))

    async def grant(
        self,
        role: Role,
        form: Form,
        create: bool = False,
        read: bool = False,
        update: bool = False,
        delete: bool = False,
        is_active: bool = True,
    ) -> RoleFormPermission:
        permission = await self.permission()
        return await self._save(RoleFormPermission(
            role_id=role.id,
            form_id=form.id,
            permission_id=permission.id,
            can_create=create,
            can_read=read,
            can_update=update,
            can_delete=delete,
            is_active=is_active,
        ))

    async def count(self, model) -> int:
        async with self.session_maker() as session:
            return (await session.execute(select(func.count()).select_from(model))).scalar_one()

    async def access_logs(self) -> list[AccessLog]:
        async with self.session_maker() as session:
            result = await session.execute(select(AccessLog).order_by(AccessLog.id))
            return list(result.scalars().all())


@pytest.fixture
def seed(session_maker):
    return Seeder(session_maker)
