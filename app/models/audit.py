"""
Access log model for security auditing.

Every authentication event is logged for:
- Security monitoring (failed logins, token rejections)
- Forensic investigation (who did what, when)
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import String, Text, Integer, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.core.types import UTCDateTime, utc_now

# Subject id recorded when the caller could not be identified
UNKNOWN_USER_ID = 0


class AuditAction(str, PyEnum):
    """Categories of auditable actions."""
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILURE = "login_failure"
    LOGOUT = "logout"
    REGISTER = "register"
    PASSWORD_CHANGE = "password_change"
    PASSWORD_CHANGE_FAILURE = "password_change_failure"
    TOKEN_REFRESH = "token_refresh"
    TOKEN_REFRESH_FAILURE = "token_refresh_failure"


class AccessLog(Base):
    """
    Append-only access log entry.

    user_id is a plain column rather than a foreign key: failed logins for
    unknown usernames are recorded against UNKNOWN_USER_ID.
    """

    __tablename__ = "access_logs"

    id: Mapped[int] = mapped_column(primary_key=True)

    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, index=True)

    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=UNKNOWN_USER_ID, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<AccessLog {self.action} user={self.user_id} success={self.success}>"

    @classmethod
    def create(
        cls,
        action: "AuditAction | str",
        user_id: Optional[int] = None,
        success: bool = True,
        details: Optional[str] = None,
    ) -> "AccessLog":
        """Factory method to create access log entries."""
        return cls(
            action=action.value if isinstance(action, AuditAction) else str(action),
            user_id=user_id if user_id is not None else UNKNOWN_USER_ID,
            success=success,
            details=details[:2000] if details else None,
        )
