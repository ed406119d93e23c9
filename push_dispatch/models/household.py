"""
Household Push Dispatch: Household Models
=========================================

What:  `household_members` (who shares a gallery/chat) and `profiles`
       (display names used to personalise notification titles).
Who:   Read by RecipientResolver.
"""

from typing import Optional

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from push_dispatch.database import Base


class HouseholdMember(Base):
    """
    One (household, user) membership.

    Query pattern: SELECT user_id FROM household_members WHERE household_id = :h
    → served by the composite primary key (household_id first).
    """

    __tablename__ = "household_members"

    household_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    __table_args__ = (
        Index("idx_household_members_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<HouseholdMember(household_id={self.household_id}, user_id={self.user_id})>"


class Profile(Base):
    """User profile. Only display_name matters to this service."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    household_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
