"""
Household Push Dispatch: Device Registration Model
==================================================

What:  ORM model for the `devices` table: one row per installed app instance.
Who:   Written by DeviceService (register / unregister / prune), read by
       RecipientResolver.

Table Design:
    - token is the delivery address and is unique: an app instance reports
      the same token no matter which user signs in, so re-registration moves
      the row to the new owner instead of duplicating it.
    - A user may own 0..N rows (phone + tablet).
    - Tokens have no guaranteed lifetime; FCM invalidates them silently and
      reports UNREGISTERED on the next send, which is when they get pruned.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from push_dispatch.database import Base


class Device(Base):
    """A push-capable device registered by a user."""

    __tablename__ = "devices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    token: Mapped[str] = mapped_column(Text, nullable=False)
    # "android" | "ios" | "web"; informational only
    platform: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("token", name="uq_devices_token"),
        Index("idx_devices_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<Device(user_id={self.user_id}, token={self.token[:12]}…)>"
