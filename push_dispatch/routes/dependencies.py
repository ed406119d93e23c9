"""
Household Push Dispatch: Route Dependencies
===========================================

What:  FastAPI dependencies shared by the routers: trigger-token check,
       access to the lifespan-owned resources, and PushDispatcher assembly.
How:   Long-lived objects (httpx client, TokenMinter, DeliveryProtocol) live
       on app.state; per-request objects (session, resolver, dispatcher) are
       built here so business logic never reads the settings singleton.
"""

import logging
import secrets
from typing import Optional

import httpx
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from push_dispatch.config import settings
from push_dispatch.credentials import DeliveryProtocol
from push_dispatch.database import get_db_session
from push_dispatch.exceptions import AuthenticationError
from push_dispatch.services.device_service import DeviceService
from push_dispatch.services.dispatcher import PushDispatcher
from push_dispatch.services.recipient_resolver import RecipientResolver
from push_dispatch.services.token_minter import TokenMinter

logger = logging.getLogger(__name__)


async def verify_trigger_token(
    authorization: Optional[str] = Header(default=None),
) -> None:
    """
    Require "Authorization: Bearer <DISPATCH_AUTH_TOKEN>" when one is configured.

    Raises:
        AuthenticationError: header missing, wrong scheme, or wrong token
    """
    expected = settings.dispatch_auth_token
    if not expected:
        return
    scheme, _, supplied = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(
        supplied.strip().encode("utf-8"), expected.encode("utf-8")
    ):
        raise AuthenticationError()


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_token_minter(request: Request) -> Optional[TokenMinter]:
    return getattr(request.app.state, "token_minter", None)


def get_delivery_protocol(request: Request) -> Optional[DeliveryProtocol]:
    return getattr(request.app.state, "delivery_protocol", None)


def get_device_service(db: AsyncSession = Depends(get_db_session)) -> DeviceService:
    return DeviceService(db)


def get_dispatcher(
    db: AsyncSession = Depends(get_db_session),
    http_client: httpx.AsyncClient = Depends(get_http_client),
    minter: Optional[TokenMinter] = Depends(get_token_minter),
    protocol: Optional[DeliveryProtocol] = Depends(get_delivery_protocol),
) -> PushDispatcher:
    return PushDispatcher(
        resolver=RecipientResolver(db),
        protocol=protocol,
        http_client=http_client,
        minter=minter,
        device_service=DeviceService(db),
        v1_url_template=settings.fcm_v1_url_template,
        legacy_url=settings.fcm_legacy_url,
        timeout=settings.http_timeout,
        concurrency=settings.fanout_concurrency,
        legacy_batch_size=settings.fcm_legacy_batch_size,
        android_channel_id=settings.android_channel_id,
        deep_link_scheme=settings.deep_link_scheme,
        prune_unregistered=settings.prune_unregistered_tokens,
    )


def resolve_include_sender(requested: bool) -> bool:
    """debug_notify_self only takes effect when ALLOW_DEBUG_NOTIFY_SELF is on."""
    if requested and not settings.allow_debug_notify_self:
        logger.warning("debug_notify_self requested but disabled; ignoring")
        return False
    return requested
