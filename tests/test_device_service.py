"""
Device registry tests: upsert by token, idempotent removal, pruning.
"""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from push_dispatch.exceptions import ResolutionError
from push_dispatch.models import Device
from push_dispatch.services.device_service import DeviceService


async def count_devices(session) -> int:
    return (await session.execute(select(func.count()).select_from(Device))).scalar_one()


class TestRegister:

    @pytest.mark.asyncio
    async def test_new_token_creates_row(self, db_session):
        device, created = await DeviceService(db_session).register("u1", "tok_new", "ios")

        assert created is True
        assert (device.user_id, device.platform) == ("u1", "ios")
        assert device.updated_at is not None
        assert await count_devices(db_session) == 1

    @pytest.mark.asyncio
    async def test_known_token_moves_to_new_user(self, household):
        device, created = await DeviceService(household).register("u3", "tok_a")

        assert created is False
        assert device.user_id == "u3"
        assert device.platform == "android"
        assert await count_devices(household) == 3

    @pytest.mark.asyncio
    async def test_data_store_failure(self):
        session = AsyncMock()
        session.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("down")))

        with pytest.raises(ResolutionError):
            await DeviceService(session).register("u1", "tok")


class TestUnregister:

    @pytest.mark.asyncio
    async def test_is_idempotent(self, household):
        service = DeviceService(household)

        assert await service.unregister("u2", "tok_a") == 1
        assert await service.unregister("u2", "tok_a") == 0

    @pytest.mark.asyncio
    async def test_only_removes_the_owners_row(self, household):
        assert await DeviceService(household).unregister("u1", "tok_a") == 0
        assert await count_devices(household) == 3


class TestPrune:

    @pytest.mark.asyncio
    async def test_removes_listed_tokens(self, household):
        removed = await DeviceService(household).prune(["tok_a", "tok_self", "tok_a", "ghost"])

        assert removed == 2
        assert await count_devices(household) == 1

    @pytest.mark.asyncio
    async def test_empty_list_is_a_no_op(self, db_session):
        assert await DeviceService(db_session).prune([]) == 0
