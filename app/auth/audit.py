"""
Audit logging for authentication events.

Entries are written in their own short-lived session so that neither a
rollback of the request's transaction nor a failure of the audit write
affects the other. Audit failures are logged and dropped.

By default ``record`` only schedules the write on the running event loop and
returns; ``drain`` waits for every write still in flight.
"""

import asyncio
import logging
from typing import Callable, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import AUDIT_IN_BACKGROUND
from app.core.database import async_session_maker
from app.models.audit import AccessLog, AuditAction

logger = logging.getLogger(__name__)


class AuditRecorder:
    """
    Fire-and-forget writer of AccessLog rows.

    Example:
        audit = AuditRecorder()
        await audit.record(None, AuditAction.LOGIN_FAILURE, False, "Unknown user: bob")
        ...
        await audit.drain()  # on shutdown
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = async_session_maker,
        background: bool = AUDIT_IN_BACKGROUND,
    ):
        self.session_factory = session_factory
        self.background = background
        # Strong references keep scheduled writes from being garbage collected
        self._pending: Set[asyncio.Task] = set()

    async def record(
        self,
        user_id: Optional[int],
        action: AuditAction,
        success: bool,
        details: Optional[str] = None,
    ) -> None:
        entry = AccessLog.create(action=action, user_id=user_id, success=success, details=details)
        if not self.background:
            await self._write(entry)
            return

        task = asyncio.create_task(self._write(entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait until every scheduled write has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def _write(self, entry: AccessLog) -> None:
        try:
            async with self.session_factory() as session:
                session.add(entry)
                await session.commit()
        except Exception as e:
            # Never propagate: the audited operation has already been decided
            logger.error(
                "Failed to record audit entry %s for user %s: %s",
                entry.action, entry.user_id, e, exc_info=True,
            )
