"""
Persisted refresh tokens.

Only the SHA-256 digest of the opaque value is stored. Rows are never
deleted: rotation and revocation flip flags so the history stays auditable.
"""

import hashlib
from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional, TYPE_CHECKING

from sqlalchemy import String, Boolean, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.core.types import UTCDateTime, utc_now

if TYPE_CHECKING:
    from app.models.user import User


class RefreshTokenState(str, PyEnum):
    ACTIVE = "active"
    ROTATED = "rotated"
    REVOKED = "revoked"
    EXPIRED = "expired"


def hash_refresh_token(raw_token: str) -> str:
    """Storage digest of a refresh token (SHA-256 is fine for random tokens, not passwords)."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"
    __table_args__ = (
        Index("idx_refresh_tokens_user_revoked", "user_id", "is_revoked"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)

    # jti of the access token issued in the same pair
    jwt_id: Mapped[str] = mapped_column(String(64), nullable=False)

    issued_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    is_used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    replaced_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("refresh_tokens.id", ondelete="SET NULL"), nullable=True
    )

    user: Mapped["User"] = relationship("User", back_populates="refresh_tokens")

    def __repr__(self) -> str:
        return f"<RefreshToken {self.id} user={self.user_id} {self.state.value}>"

    def state_at(self, when: datetime) -> RefreshTokenState:
        if self.is_revoked:
            return RefreshTokenState.REVOKED
        if self.is_used:
            return RefreshTokenState.ROTATED
        if self.expires_at <= when:
            return RefreshTokenState.EXPIRED
        return RefreshTokenState.ACTIVE

    @property
    def state(self) -> RefreshTokenState:
        return self.state_at(utc_now())
