"""
Household Push Dispatch: Device Registration Routes
===================================================

What:  POST /devices upserts a (user, token, platform) registration;
       DELETE /devices removes one. Both are idempotent.
Who:   The mobile app after login, on token refresh, and on logout.
"""

from fastapi import APIRouter, Depends

from push_dispatch.routes.dependencies import get_device_service, verify_trigger_token
from push_dispatch.schemas.common import ErrorResponse
from push_dispatch.schemas.device import (
    DeviceRegistrationRequest,
    DeviceRemovalRequest,
    DeviceRemovalResponse,
    DeviceResponse,
)
from push_dispatch.services.device_service import DeviceService

router = APIRouter(
    prefix="/devices",
    tags=["Devices"],
    dependencies=[Depends(verify_trigger_token)],
)


@router.post(
    "",
    response_model=DeviceResponse,
    responses={
        400: {"description": "Malformed request", "model": ErrorResponse},
        503: {"description": "Data store unavailable", "model": ErrorResponse},
    },
    summary="Register or refresh a device token",
)
async def register_device(
    body: DeviceRegistrationRequest,
    devices: DeviceService = Depends(get_device_service),
) -> DeviceResponse:
    device, created = await devices.register(body.user_id, body.token.strip(), body.platform)
    return DeviceResponse(
        user_id=device.user_id,
        platform=device.platform,
        updated_at=device.updated_at,
        created=created,
    )


@router.delete(
    "",
    response_model=DeviceRemovalResponse,
    summary="Remove a device token",
)
async def unregister_device(
    body: DeviceRemovalRequest,
    devices: DeviceService = Depends(get_device_service),
) -> DeviceRemovalResponse:
    removed = await devices.unregister(body.user_id, body.token.strip())
    return DeviceRemovalResponse(removed=removed)
