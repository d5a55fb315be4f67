"""
Column mixins shared by the entity models.

Deactivatable is the soft-delete capability: the generic repository only
deactivates instances that carry it.
"""

from datetime import datetime

from sqlalchemy import Boolean
from sqlalchemy.orm import Mapped, mapped_column

from app.core.types import UTCDateTime, utc_now


class Deactivatable:
    """Entity that is soft-deactivated (is_active=False) instead of deleted."""

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def set_active(self, active: bool) -> None:
        self.is_active = active


class CreatedAt:
    """Creation timestamp that updates never overwrite."""

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
