"""
Household Push Dispatch: Recipient Resolver
===========================================

What:  Turns a content id into the device tokens that should be notified.
How:   Three reads on the request's AsyncSession:
       content row → household members minus the owner → device tokens.
Who:   PushDispatcher, first step of every run.

Resolution Flow:
    ┌────────────┐    ┌──────────────────┐    ┌──────────────┐
    │  content   │───▶│ household_members │───▶│   devices    │
    │ (img|msg)  │    │   minus owner     │    │ dedup tokens │
    └────────────┘    └──────────────────┘    └──────────────┘
         │ absent              │ empty                │ empty
         ▼                     ▼                      ▼
    ContentNotFound      RecipientSet(reason=     RecipientSet(reason=
                         "no recipients")         "no tokens")

Every SQLAlchemyError is wrapped in ResolutionError; ContentNotFound is the
only terminal outcome.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from push_dispatch.exceptions import ContentNotFound, ResolutionError
from push_dispatch.models import Device, HouseholdMember, Image, Message, Profile

logger = logging.getLogger(__name__)

Content = Union[Image, Message]

NO_RECIPIENTS = "no recipients"
NO_TOKENS = "no tokens"


@dataclass
class RecipientSet:
    """
    Who gets notified about one piece of content.

    tokens is deduplicated and keeps first-seen order; recipient_ids never
    contains the owner unless the debug switch asked for it.
    """

    content: Content
    recipient_ids: List[str] = field(default_factory=list)
    tokens: List[str] = field(default_factory=list)
    sender_name: Optional[str] = None

    @property
    def kind(self) -> str:
        return self.content.kind

    @property
    def is_empty(self) -> bool:
        return not self.tokens

    @property
    def reason(self) -> Optional[str]:
        """Why there is nobody to notify, or None when tokens exist."""
        if not self.recipient_ids:
            return NO_RECIPIENTS
        if not self.tokens:
            return NO_TOKENS
        return None


def dedupe_tokens(tokens) -> List[str]:
    """Drop empty and repeated tokens, keeping the first occurrence's order."""
    seen = set()
    unique = []
    for token in tokens:
        if not token or token in seen:
            continue
        seen.add(token)
        unique.append(token)
    return unique


class RecipientResolver:
    """Stateless per request: holds only the session it queries."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def resolve(
        self,
        content_id: str,
        kind: Optional[str] = None,
        include_sender: bool = False,
    ) -> RecipientSet:
        """
        Resolve content → recipients → tokens.

        Args:
            content_id:     image or message id
            kind:           "image" or "message"; None tries images first
            include_sender: keep the owner among recipients (debug switch)

        Returns:
            RecipientSet, possibly empty (single-member household, or
            recipients without registered devices).

        Raises:
            ContentNotFound: no row with that id
            ResolutionError: any data-store failure
        """
        try:
            content = await self._load_content(content_id, kind)
            if content is None:
                raise ContentNotFound(content_id=content_id, kind=kind)

            members = await self._household_members(content.household_id)
            recipient_ids = [
                user_id for user_id in members
                if include_sender or user_id != content.owner_id
            ]
            result = RecipientSet(content=content, recipient_ids=recipient_ids)
            if not recipient_ids:
                logger.info(
                    "No recipients for %s %s in household %s",
                    content.kind, content_id, content.household_id,
                )
                return result

            result.tokens = await self._device_tokens(recipient_ids)
            result.sender_name = await self._display_name(content.owner_id)
        except SQLAlchemyError as e:
            logger.error("Recipient resolution failed for %s: %s", content_id, e)
            raise ResolutionError(
                context={"content_id": content_id, "error_type": type(e).__name__}
            ) from e

        logger.info(
            "Resolved %s %s: %d recipient(s), %d token(s)",
            content.kind, content_id, len(result.recipient_ids), len(result.tokens),
        )
        return result

    # ── Queries ───────────────────────────────────────────────────────────

    async def _load_content(self, content_id: str, kind: Optional[str]) -> Optional[Content]:
        models = {"image": (Image,), "message": (Message,)}.get(kind, (Image, Message))
        for model in models:
            row = await self.session.get(model, content_id)
            if row is not None:
                return row
        return None

    async def _household_members(self, household_id: str) -> List[str]:
        stmt = (
            select(HouseholdMember.user_id)
            .where(HouseholdMember.household_id == household_id)
            .order_by(HouseholdMember.user_id)
        )
        result = await self.session.execute(stmt)
        # Duplicated membership rows must not duplicate recipients
        return list(dict.fromkeys(result.scalars().all()))

    async def _device_tokens(self, user_ids: List[str]) -> List[str]:
        stmt = (
            select(Device.token)
            .where(Device.user_id.in_(user_ids))
            .order_by(Device.user_id, Device.id)
        )
        result = await self.session.execute(stmt)
        return dedupe_tokens(result.scalars().all())

    async def _display_name(self, user_id: str) -> Optional[str]:
        profile = await self.session.get(Profile, user_id)
        if profile is None or not profile.display_name:
            return None
        return profile.display_name.strip() or None
