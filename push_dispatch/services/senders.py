"""
Household Push Dispatch: FCM Senders
====================================

What:  One sender per delivery protocol, behind a shared PushSender interface.
How:   The dispatcher splits tokens with sender.batches() and fans the batches
       out; send_batch() turns every provider answer into TokenResults and
       never raises for a single bad token.
Who:   Built per run by PushDispatcher from the run's DeliveryProtocol.

    FcmV1Sender       one token per batch; Bearer access token
    FcmLegacySender   up to 1000 tokens per batch; per-index results

Outcome mapping (both protocols):
    2xx / per-index message_id      → sent
    non-2xx / per-index error       → rejected (DeliveryRejected, error_code kept)
    timeout / connection failure    → failed
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from push_dispatch.credentials import mask_token
from push_dispatch.exceptions import DeliveryRejected
from push_dispatch.schemas.dispatch import TokenResult
from push_dispatch.services.payloads import (
    Notification,
    build_legacy_body,
    build_v1_message,
)

logger = logging.getLogger(__name__)


def _json_or_text(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def rejected_result(exc: DeliveryRejected) -> TokenResult:
    return TokenResult(
        token=exc.token,
        status="rejected",
        http_status=exc.status_code,
        error_code=exc.error_code,
        error=exc.message,
    )


def failed_result(token: str, exc: Exception) -> TokenResult:
    return TokenResult(
        token=token,
        status="failed",
        error=f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__,
    )


class PushSender(ABC):
    """
    Contract:
        - batches() partitions tokens; each token lands in exactly one batch
        - send_batch() returns exactly one TokenResult per token in the batch
        - send_batch() only raises on programming errors, never on provider
          or network failures
    """

    protocol: str = ""

    def __init__(self, client: httpx.AsyncClient, timeout: float = 10.0):
        self._client = client
        self.timeout = timeout

    @abstractmethod
    def batches(self, tokens: List[str]) -> List[List[str]]:
        ...

    @abstractmethod
    async def send_batch(self, tokens: List[str], notification: Notification) -> List[TokenResult]:
        ...


# ══════════════════════════════════════════════════════════════════════════
# HTTP v1
# ══════════════════════════════════════════════════════════════════════════

def v1_error_code(body: Any) -> Optional[str]:
    """
    Extract the most specific error code from a v1 error body.

    {"error": {"status": "NOT_FOUND",
               "details": [{"@type": "...FcmError", "errorCode": "UNREGISTERED"}]}}
    → "UNREGISTERED"; falls back to error.status.
    """
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if not isinstance(error, dict):
        return None
    for detail in error.get("details") or []:
        if isinstance(detail, dict) and detail.get("errorCode"):
            return detail["errorCode"]
    return error.get("status")


class FcmV1Sender(PushSender):
    protocol = "service_account"

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        access_token: str,
        timeout: float = 10.0,
    ):
        super().__init__(client, timeout)
        self.url = url
        self._headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    def batches(self, tokens: List[str]) -> List[List[str]]:
        return [[token] for token in tokens]

    async def send_batch(self, tokens: List[str], notification: Notification) -> List[TokenResult]:
        return [await self.send_one(token, notification) for token in tokens]

    async def send_one(self, token: str, notification: Notification) -> TokenResult:
        try:
            return await self._post(token, notification)
        except DeliveryRejected as e:
            logger.warning(
                "FCM rejected %s: HTTP %s %s", mask_token(token), e.status_code, e.error_code
            )
            return rejected_result(e)
        except httpx.HTTPError as e:
            logger.warning("FCM send to %s failed: %s", mask_token(token), type(e).__name__)
            return failed_result(token, e)

    async def _post(self, token: str, notification: Notification) -> TokenResult:
        """Raises DeliveryRejected on non-2xx; httpx errors propagate."""
        response = await self._client.post(
            self.url,
            json=build_v1_message(token, notification),
            headers=self._headers,
            timeout=self.timeout,
        )
        body = _json_or_text(response)
        if not response.is_success:
            raise DeliveryRejected(
                token=token,
                status_code=response.status_code,
                error_code=v1_error_code(body),
                provider_error=body,
            )
        message_id = body.get("name") if isinstance(body, dict) else None
        return TokenResult(
            token=token,
            status="sent",
            http_status=response.status_code,
            message_id=message_id,
        )


# ══════════════════════════════════════════════════════════════════════════
# Legacy HTTP
# ══════════════════════════════════════════════════════════════════════════

class FcmLegacySender(PushSender):
    protocol = "legacy_key"

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        server_key: str,
        timeout: float = 10.0,
        batch_size: int = 1000,
        android_channel_id: str = "default",
    ):
        super().__init__(client, timeout)
        self.url = url
        self.batch_size = batch_size
        self.android_channel_id = android_channel_id
        self._headers = {
            "Authorization": f"key={server_key}",
            "Content-Type": "application/json",
        }

    def batches(self, tokens: List[str]) -> List[List[str]]:
        size = self.batch_size
        return [tokens[i:i + size] for i in range(0, len(tokens), size)]

    async def send_batch(self, tokens: List[str], notification: Notification) -> List[TokenResult]:
        try:
            response = await self._client.post(
                self.url,
                json=build_legacy_body(tokens, notification, self.android_channel_id),
                headers=self._headers,
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.warning("Legacy FCM batch of %d failed: %s", len(tokens), type(e).__name__)
            return [failed_result(token, e) for token in tokens]

        body = _json_or_text(response)
        if not response.is_success:
            # Whole-batch refusal: bad server key (401) or provider error
            logger.warning("Legacy FCM refused batch of %d: HTTP %d", len(tokens), response.status_code)
            return [
                rejected_result(
                    DeliveryRejected(
                        token=token, status_code=response.status_code, provider_error=body
                    )
                )
                for token in tokens
            ]

        results = body.get("results") if isinstance(body, dict) else None
        return [
            self._map_result(token, results[i] if results and i < len(results) else None,
                             response.status_code)
            for i, token in enumerate(tokens)
        ]

    def _map_result(
        self,
        token: str,
        result: Optional[Dict[str, Any]],
        http_status: int,
    ) -> TokenResult:
        if not isinstance(result, dict):
            return TokenResult(
                token=token,
                status="failed",
                http_status=http_status,
                error="Provider returned no result for this token",
            )
        if result.get("error"):
            e = DeliveryRejected(
                token=token,
                status_code=http_status,
                error_code=result["error"],
                provider_error=result,
            )
            logger.warning("Legacy FCM rejected %s: %s", mask_token(token), e.error_code)
            return rejected_result(e)
        return TokenResult(
            token=token,
            status="sent",
            http_status=http_status,
            message_id=result.get("message_id"),
        )
