"""
Household Push Dispatch: Trigger Routes
=======================================

What:  POST /dispatch, plus the two single-purpose trigger shapes
       POST /push-new-image and POST /push-new-message.
Who:   The owning backend, right after an image or message row is inserted.

Contract:
    200  run completed; includes "nobody to notify" and partial delivery
    400  malformed body
    401  bad trigger token (only when DISPATCH_AUTH_TOKEN is set)
    404  content id unknown; no delivery call was made
    5xx  data store, configuration or OAuth failure

The caller treats this as fire-and-forget: per-token failures are reported
in the body, never as an error status.
"""

from fastapi import APIRouter, Depends

from push_dispatch.routes.dependencies import (
    get_dispatcher,
    resolve_include_sender,
    verify_trigger_token,
)
from push_dispatch.schemas.common import ErrorResponse
from push_dispatch.schemas.dispatch import (
    DispatchReport,
    DispatchRequest,
    ImageTriggerRequest,
    MessageTriggerRequest,
)
from push_dispatch.services.dispatcher import PushDispatcher

router = APIRouter(tags=["Dispatch"], dependencies=[Depends(verify_trigger_token)])

ERROR_RESPONSES = {
    400: {"description": "Malformed request", "model": ErrorResponse},
    401: {"description": "Invalid trigger token", "model": ErrorResponse},
    404: {"description": "Content not found", "model": ErrorResponse},
    502: {"description": "OAuth exchange rejected", "model": ErrorResponse},
    503: {"description": "Data store unavailable", "model": ErrorResponse},
    504: {"description": "OAuth endpoint timed out", "model": ErrorResponse},
}


@router.post(
    "/dispatch",
    response_model=DispatchReport,
    responses=ERROR_RESPONSES,
    summary="Notify the household about new content",
)
async def dispatch(
    body: DispatchRequest,
    dispatcher: PushDispatcher = Depends(get_dispatcher),
) -> DispatchReport:
    return await dispatcher.dispatch(
        body.content_id,
        kind=body.content_type,
        notification=body.notification,
        include_sender=resolve_include_sender(body.debug_notify_self),
    )


@router.post(
    "/push-new-image",
    response_model=DispatchReport,
    responses=ERROR_RESPONSES,
    summary="Notify the household about a new photo",
)
async def push_new_image(
    body: ImageTriggerRequest,
    dispatcher: PushDispatcher = Depends(get_dispatcher),
) -> DispatchReport:
    return await dispatcher.dispatch(
        body.image_id,
        kind="image",
        include_sender=resolve_include_sender(body.debug_notify_self),
    )


@router.post(
    "/push-new-message",
    response_model=DispatchReport,
    responses=ERROR_RESPONSES,
    summary="Notify the household about a new chat message",
)
async def push_new_message(
    body: MessageTriggerRequest,
    dispatcher: PushDispatcher = Depends(get_dispatcher),
) -> DispatchReport:
    return await dispatcher.dispatch(
        body.message_id,
        kind="message",
        include_sender=resolve_include_sender(body.debug_notify_self),
    )
