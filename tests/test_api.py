import asyncio
from datetime import timedelta

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from app.main import app
from app.auth.audit import AuditRecorder
from app.auth.dependencies import get_audit_recorder, require_form_permission
from app.auth.jwt import create_access_token
from app.core.database import Base, enable_sqlite_pragmas, get_db
from app.models import Operation, User

from conftest import DEFAULT_PASSWORD, Seeder, make_session_maker

client = TestClient(app)


@pytest.fixture
def seed(tmp_path):
    # Every request runs on its own event loop: no pooled connections
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", poolclass=NullPool)
    enable_sqlite_pragmas(engine.sync_engine)
    maker = make_session_maker(engine)

    async def create_schema():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(create_schema())

    async def override_get_db():
        async with maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_audit_recorder] = lambda: AuditRecorder(maker)
    yield Seeder(maker)
    app.dependency_overrides.clear()
    asyncio.run(engine.dispose())


def login(username="alice", password=DEFAULT_PASSWORD):
    return client.post("/api/auth/login", json={"username": username, "password": password})


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


REGISTRATION = {
    "username": "carol",
    "email": "carol@example.com",
    "password": "s3cret-pass",
    "confirmPassword": "s3cret-pass",
    "firstName": "Carol",
    "lastName": "Diaz",
    "documentType": "CC",
    "documentNumber": "CC-1001",
    "phone": "555-0100",
}


def test_root():
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["name"] == "Security Administration API"


def test_health():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["database"] == "healthy"


def test_login_returns_tokens_profile_and_redirection(seed):
    admin_role = asyncio.run(seed.role("Administrador"))
    asyncio.run(seed.user("alice", roles=[admin_role]))

    response = login()

    assert response.status_code == 200
    body = response.json()
    assert body["token"]
    assert body["refreshToken"]
    assert body["expiration"]
    assert body["user"]["username"] == "alice"
    assert body["user"]["firstName"] == "Alice"
    assert body["user"]["roles"] == ["Administrador"]
    assert body["roleRedirection"] == {
        "userId": body["user"]["id"],
        "username": "alice",
        "isAdmin": True,
        "redirectUrl": "/admin/person.html",
    }
    assert response.headers["Cache-Control"] == "no-store"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert "X-Request-ID" in response.headers


def test_login_failures_are_indistinguishable(seed):
    asyncio.run(seed.user("alice"))

    wrong_password = login(password="nope-nope")
    unknown_user = login(username="mallory")

    assert wrong_password.status_code == unknown_user.status_code == 401
    assert wrong_password.json()["detail"] == unknown_user.json()["detail"]
    assert wrong_password.json()["errorCode"] == "AUTHENTICATION_ERROR"
    assert wrong_password.headers["WWW-Authenticate"] == "Bearer"


def test_login_body_is_validated(seed):
    response = client.post("/api/auth/login", json={"username": "alice"})
    assert response.status_code == 422


def test_register_then_duplicate(seed):
    asyncio.run(seed.role("Usuario"))

    response = client.post("/api/auth/register", json=REGISTRATION)
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "User registered successfully"
    assert body["token"] and body["refreshToken"]
    assert body["user"]["roles"] == ["Usuario"]

    duplicate = client.post("/api/auth/register", json={**REGISTRATION, "username": "carol2", "email": "c2@example.com"})
    assert duplicate.status_code == 409
    assert duplicate.json()["errorCode"] == "CONFLICT"


def test_register_rejects_mismatched_passwords(seed):
    response = client.post("/api/auth/register", json={**REGISTRATION, "confirmPassword": "other-pass"})
    assert response.status_code == 400
    assert response.json()["errorCode"] == "VALIDATION_ERROR"


def test_register_rejects_bad_email(seed):
    response = client.post("/api/auth/register", json={**REGISTRATION, "email": "not-an-email"})
    assert response.status_code == 422


def test_validate(seed):
    alice = asyncio.run(seed.user("alice"))
    token = login().json()["token"]

    response = client.get("/api/auth/validate", headers=bearer(token))
    assert response.status_code == 200
    body = response.json()
    assert body["isValid"] is True
    assert body["userId"] == alice.id
    assert body["username"] == "alice"
    assert body["remainingTimeInSeconds"] > 0

    assert client.get("/api/auth/validate").status_code == 401
    assert client.get("/api/auth/validate", headers=bearer("garbage")).status_code == 401


def test_check_token_reports_expired_identity(seed):
    expired, _ = create_access_token(
        user_id=42, username="ghost", email="ghost@example.com", roles=[],
        expires_delta=timedelta(seconds=-1),
    )

    response = client.post("/api/auth/check-token", json={"token": expired})
    assert response.status_code == 200
    assert response.json() == {
        "isValid": False,
        "userId": 42,
        "username": "ghost",
        "remainingTimeInSeconds": 0,
    }

    garbage = client.post("/api/auth/check-token", json={"token": "garbage"})
    assert garbage.json()["isValid"] is False
    assert garbage.json()["userId"] is None

    assert client.post("/api/auth/check-token", json={"token": ""}).status_code == 400


def test_refresh_token_rotation(seed):
    asyncio.run(seed.user("alice"))
    first = login().json()

    response = client.post(
        "/api/auth/refresh-token",
        json={"token": first["token"], "refreshToken": first["refreshToken"]},
    )
    assert response.status_code == 200
    second = response.json()
    assert second["refreshToken"] != first["refreshToken"]

    reuse = client.post(
        "/api/auth/refresh-token",
        json={"token": first["token"], "refreshToken": first["refreshToken"]},
    )
    assert reuse.status_code == 401

    missing = client.post("/api/auth/refresh-token", json={"token": second["token"]})
    assert missing.status_code == 400


def test_logout_revokes_refresh_tokens(seed):
    asyncio.run(seed.user("alice"))
    session = login().json()

    assert client.post("/api/auth/logout").status_code == 401

    response = client.post("/api/auth/logout", headers=bearer(session["token"]))
    assert response.status_code == 200
    assert response.json() == {"message": "Logged out successfully"}

    refresh = client.post(
        "/api/auth/refresh-token",
        json={"token": session["token"], "refreshToken": session["refreshToken"]},
    )
    assert refresh.status_code == 401


def test_change_password(seed):
    asyncio.run(seed.user("alice"))
    token = login().json()["token"]
    headers = bearer(token)

    mismatch = client.post(
        "/api/auth/change-password",
        json={"currentPassword": DEFAULT_PASSWORD, "newPassword": "brand-new-pass", "confirmNewPassword": "x-brand-new"},
        headers=headers,
    )
    assert mismatch.status_code == 400

    wrong_current = client.post(
        "/api/auth/change-password",
        json={"currentPassword": "wrong-one", "newPassword": "brand-new-pass", "confirmNewPassword": "brand-new-pass"},
        headers=headers,
    )
    assert wrong_current.status_code == 401

    response = client.post(
        "/api/auth/change-password",
        json={"currentPassword": DEFAULT_PASSWORD, "newPassword": "brand-new-pass", "confirmNewPassword": "brand-new-pass"},
        headers=headers,
    )
    assert response.status_code == 200

    assert login().status_code == 401
    assert login(password="brand-new-pass").status_code == 200


def test_access_endpoints(seed):
    auditor = asyncio.run(seed.role("Auditor"))
    asyncio.run(seed.user("alice", roles=[auditor]))
    invoices = asyncio.run(seed.form("Invoices"))
    billing = asyncio.run(seed.module("Billing"))
    asyncio.run(seed.link(billing, invoices))
    asyncio.run(seed.grant(auditor, invoices, read=True))
    headers = bearer(login().json()["token"])

    roles = client.get("/api/access/roles", headers=headers)
    assert [r["name"] for r in roles.json()] == ["Auditor"]

    modules = client.get("/api/access/modules", headers=headers)
    assert [m["name"] for m in modules.json()] == ["Billing"]

    forms = client.get("/api/access/forms", headers=headers)
    assert [f["id"] for f in forms.json()] == [invoices.id]

    capabilities = client.get(f"/api/access/forms/{invoices.id}", headers=headers).json()
    assert capabilities == {
        "formId": invoices.id,
        "canCreate": False,
        "canRead": True,
        "canUpdate": False,
        "canDelete": False,
    }

    read = client.get(f"/api/access/forms/{invoices.id}/Read", headers=headers).json()
    assert read == {"formId": invoices.id, "operation": "read", "allowed": True}
    delete = client.get(f"/api/access/forms/{invoices.id}/delete", headers=headers).json()
    assert delete["allowed"] is False

    assert client.get(f"/api/access/forms/{invoices.id}/approve", headers=headers).status_code == 400
    assert client.get("/api/access/modules").status_code == 401


def test_require_form_permission_guards_routes(seed):
    auditor = asyncio.run(seed.role("Auditor"))
    asyncio.run(seed.user("alice", roles=[auditor]))
    asyncio.run(seed.user("bob"))
    invoices = asyncio.run(seed.form("Invoices"))
    asyncio.run(seed.grant(auditor, invoices, read=True))

    guarded = FastAPI()
    guarded.dependency_overrides = app.dependency_overrides

    @guarded.get("/invoices")
    async def list_invoices(claims=Depends(require_form_permission(invoices.id, Operation.READ))):
        return {"user": claims.username}

    @guarded.delete("/invoices")
    async def delete_invoices(claims=Depends(require_form_permission(invoices.id, "Delete"))):
        return {"deleted": True}

    guarded_client = TestClient(guarded)
    alice = bearer(login("alice").json()["token"])
    bob = bearer(login("bob").json()["token"])

    assert guarded_client.get("/invoices", headers=alice).json() == {"user": "alice"}
    assert guarded_client.delete("/invoices", headers=alice).status_code == 403
    assert guarded_client.get("/invoices", headers=bob).status_code == 403
    assert guarded_client.get("/invoices").status_code == 401


def test_deactivated_user_loses_access_with_a_live_token(seed):
    auditor = asyncio.run(seed.role("Auditor"))
    alice = asyncio.run(seed.user("alice", roles=[auditor]))
    invoices = asyncio.run(seed.form("Invoices"))
    billing = asyncio.run(seed.module("Billing"))
    asyncio.run(seed.link(billing, invoices))
    asyncio.run(seed.grant(auditor, invoices, read=True))
    headers = bearer(login().json()["token"])

    async def deactivate():
        async with seed.session_maker() as session:
            row = await session.get(User, alice.id)
            row.is_active = False
            await session.commit()

    asyncio.run(deactivate())

    assert client.get("/api/access/roles", headers=headers).json() == []
    assert client.get("/api/access/modules", headers=headers).json() == []
    assert client.get(f"/api/access/forms/{invoices.id}/read", headers=headers).json()["allowed"] is False
    password_change = client.post(
        "/api/auth/change-password",
        json={"currentPassword": DEFAULT_PASSWORD, "newPassword": "brand-new-pass", "confirmNewPassword": "brand-new-pass"},
        headers=headers,
    )
    assert password_change.status_code == 404
