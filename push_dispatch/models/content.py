"""
Household Push Dispatch: Content Models
=======================================

What:  ORM models for the two kinds of content that trigger a notification:
       `images` (a new photo) and `messages` (a new chat message).
Who:   Read by RecipientResolver; this service never writes them.

Both tables share the fields the pipeline needs: an opaque id, the owning
user, the household, and an optional display field used for the
notification body (file_name for photos, text for messages).
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from push_dispatch.database import Base


class Image(Base):
    """A photo uploaded to a household gallery. The owner is `user_id`."""

    __tablename__ = "images"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    household_id: Mapped[str] = mapped_column(String(64), nullable=False)
    file_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    kind = "image"

    @property
    def owner_id(self) -> str:
        return self.user_id

    def __repr__(self) -> str:
        return f"<Image(id={self.id}, household_id={self.household_id})>"


class Message(Base):
    """A chat message inside a household. The owner is `sender_id`."""

    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    sender_id: Mapped[str] = mapped_column(String(64), nullable=False)
    household_id: Mapped[str] = mapped_column(String(64), nullable=False)
    text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    __table_args__ = (
        Index("idx_messages_household_created", "household_id", "created_at"),
    )

    kind = "message"

    @property
    def owner_id(self) -> str:
        return self.sender_id

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, household_id={self.household_id})>"
