"""
Household Push Dispatch: Device Registry
========================================

What:  Writes to the `devices` table: register (upsert by token), unregister,
       and prune tokens the provider reports as permanently dead.
Who:   Device routes call register/unregister; PushDispatcher calls prune
       after a run when pruning is enabled.

Upsert rule:
    The token identifies the installed app instance. Registering a known
    token moves it to the given user and refreshes platform/updated_at;
    it never creates a second row.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from push_dispatch.exceptions import ResolutionError
from push_dispatch.models import Device
from push_dispatch.credentials import mask_token

logger = logging.getLogger(__name__)


class DeviceService:

    def __init__(self, session: AsyncSession):
        self.session = session

    async def register(
        self,
        user_id: str,
        token: str,
        platform: Optional[str] = None,
    ) -> Tuple[Device, bool]:
        """
        Insert or update the row for `token`.

        Returns:
            (device, created): created is False when an existing row was updated.

        Raises:
            ResolutionError: data-store failure
        """
        try:
            result = await self.session.execute(select(Device).where(Device.token == token))
            device = result.scalar_one_or_none()
            created = device is None
            if created:
                device = Device(user_id=user_id, token=token, platform=platform)
                self.session.add(device)
            else:
                if device.user_id != user_id:
                    logger.info(
                        "Device %s moved from user %s to %s",
                        mask_token(token), device.user_id, user_id,
                    )
                device.user_id = user_id
                if platform:
                    device.platform = platform
                device.updated_at = datetime.now(timezone.utc)
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Device registration failed for user %s: %s", user_id, e)
            raise ResolutionError(
                message="Device registry is unavailable. Please try again later.",
                context={"operation": "register"},
            ) from e

        logger.info(
            "%s device %s for user %s",
            "Registered" if created else "Refreshed", mask_token(token), user_id,
        )
        return device, created

    async def unregister(self, user_id: str, token: str) -> int:
        """Delete the user's row for `token`. Idempotent; returns rows removed."""
        try:
            result = await self.session.execute(
                delete(Device).where(Device.user_id == user_id, Device.token == token)
            )
        except SQLAlchemyError as e:
            logger.error("Device removal failed for user %s: %s", user_id, e)
            raise ResolutionError(
                message="Device registry is unavailable. Please try again later.",
                context={"operation": "unregister"},
            ) from e
        logger.info("Unregistered %d device(s) for user %s", result.rowcount, user_id)
        return result.rowcount

    async def prune(self, tokens: Iterable[str]) -> int:
        """
        Delete every row whose token is in `tokens`.

        On failure the transaction is rolled back before re-raising, leaving
        the session usable; the caller decides whether the failure matters.

        Raises:
            SQLAlchemyError: the delete failed
        """
        tokens = list(dict.fromkeys(tokens))
        if not tokens:
            return 0
        try:
            result = await self.session.execute(delete(Device).where(Device.token.in_(tokens)))
        except SQLAlchemyError:
            await self.session.rollback()
            raise
        logger.info("Pruned %d unregistered device token(s)", result.rowcount)
        return result.rowcount
