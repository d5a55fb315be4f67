import asyncio
import logging
from contextlib import asynccontextmanager

from app.auth.audit import AuditRecorder
from app.auth.service import AuthService
from app.models import AuditAction

from conftest import DEFAULT_PASSWORD


class GatedSessions:
    """Session factory that holds every write until ``release`` is set."""

    def __init__(self, session_maker):
        self.session_maker = session_maker
        self.release = asyncio.Event()

    @asynccontextmanager
    async def __call__(self):
        await self.release.wait()
        async with self.session_maker() as session:
            yield session


async def test_background_record_returns_before_the_write(session_maker, seed):
    sessions = GatedSessions(session_maker)
    audit = AuditRecorder(sessions, background=True)

    await asyncio.wait_for(audit.record(7, AuditAction.LOGOUT, True, "Logout for user: bob"), timeout=5)

    assert audit.pending == 1
    assert await seed.access_logs() == []

    sessions.release.set()
    await audit.drain()

    assert audit.pending == 0
    logs = await seed.access_logs()
    assert [(log.user_id, log.action, log.details) for log in logs] == [
        (7, AuditAction.LOGOUT.value, "Logout for user: bob"),
    ]


async def test_login_does_not_wait_for_the_audit_store(session, session_maker, seed):
    alice = await seed.user("alice")
    sessions = GatedSessions(session_maker)
    audit = AuditRecorder(sessions, background=True)
    service = AuthService(session, audit=audit)

    result = await asyncio.wait_for(service.login("alice", DEFAULT_PASSWORD), timeout=5)
    assert result.tokens.access_token
    assert audit.pending == 1

    sessions.release.set()
    await audit.drain()

    logs = await seed.access_logs()
    assert [(log.user_id, log.action) for log in logs] == [(alice.id, AuditAction.LOGIN_SUCCESS.value)]


async def test_background_write_failure_is_logged(caplog):
    def broken_session_factory():
        raise RuntimeError("audit store unavailable")

    audit = AuditRecorder(broken_session_factory, background=True)

    with caplog.at_level(logging.ERROR, logger="app.auth.audit"):
        await audit.record(1, AuditAction.LOGIN_FAILURE, False)
        await audit.drain()

    assert audit.pending == 0
    assert "Failed to record audit entry" in caplog.text


async def test_drain_without_pending_writes(session_maker):
    audit = AuditRecorder(session_maker, background=True)
    await audit.drain()
    assert audit.pending == 0
