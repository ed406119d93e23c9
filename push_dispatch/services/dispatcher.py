"""
Household Push Dispatch: Push Dispatcher (Run Orchestrator)
===========================================================

What:  Runs one dispatch: resolve → credential → fan-out → prune → report.
How:   Composes RecipientResolver, TokenMinter, a PushSender chosen from the
       DeliveryProtocol, and DeviceService. Holds no state between runs.
Who:   Built per request by routes/dependencies.py; called by the trigger routes.
When:  Once per inbound content-created event.

Run State Machine:
    Resolving ──▶ NoRecipients ──────────────────────────────▶ DONE (sent=0)
        │
        ▼
    MintingCredential ──▶ CredentialError (502/504) ─────────▶ DONE (raised)
        │
        ▼
    Sending[batches under Semaphore(concurrency)] ──▶ Aggregating ──▶ DONE

Guarantees:
    - At most one delivery attempt per token per run; sends are never retried.
    - A rejected or timed-out token never aborts the other sends.
    - No cross-run deduplication: dispatching the same content twice sends
      twice. Retry policy belongs to whoever triggers the run.
"""

import asyncio
import logging
import time
from typing import List, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError

from push_dispatch.credentials import DeliveryProtocol, LegacyKey, ServiceAccount
from push_dispatch.exceptions import ConfigurationError, DeliveryRejected
from push_dispatch.schemas.dispatch import DispatchReport, NotificationOverride, TokenResult
from push_dispatch.services.device_service import DeviceService
from push_dispatch.services.payloads import Notification, build_notification
from push_dispatch.services.recipient_resolver import RecipientResolver
from push_dispatch.services.senders import FcmLegacySender, FcmV1Sender, PushSender
from push_dispatch.services.token_minter import TokenMinter

logger = logging.getLogger(__name__)

DEFAULT_V1_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
DEFAULT_LEGACY_URL = "https://fcm.googleapis.com/fcm/send"


class PushDispatcher:
    """
    Orchestrates one dispatch run.

    protocol may be None when no FCM credentials are configured; runs that
    find nobody to notify still succeed, any run that needs to send raises
    ConfigurationError.
    """

    def __init__(
        self,
        resolver: RecipientResolver,
        protocol: Optional[DeliveryProtocol],
        http_client: httpx.AsyncClient,
        minter: Optional[TokenMinter] = None,
        device_service: Optional[DeviceService] = None,
        v1_url_template: str = DEFAULT_V1_URL,
        legacy_url: str = DEFAULT_LEGACY_URL,
        timeout: float = 10.0,
        concurrency: int = 8,
        legacy_batch_size: int = 1000,
        android_channel_id: str = "default",
        deep_link_scheme: str = "householdapp",
        prune_unregistered: bool = True,
    ):
        self.resolver = resolver
        self.protocol = protocol
        self.http_client = http_client
        self.minter = minter
        self.device_service = device_service
        self.v1_url_template = v1_url_template
        self.legacy_url = legacy_url
        self.timeout = timeout
        self.concurrency = max(1, concurrency)
        self.legacy_batch_size = legacy_batch_size
        self.android_channel_id = android_channel_id
        self.deep_link_scheme = deep_link_scheme
        self.prune_unregistered = prune_unregistered

    async def dispatch(
        self,
        content_id: str,
        kind: Optional[str] = None,
        notification: Optional[NotificationOverride] = None,
        include_sender: bool = False,
    ) -> DispatchReport:
        """
        Notify every other household member's devices about one piece of content.

        Args:
            content_id:     image or message id
            kind:           "image" / "message"; None looks the id up in both
            notification:   explicit title/body override
            include_sender: also notify the owner (debug)

        Returns:
            DispatchReport; sent=0 with a reason when nobody is notifiable.

        Raises:
            ContentNotFound:         unknown id, no delivery call made
            ResolutionError:         data store failed
            ConfigurationError:      tokens exist but no protocol is configured
            CredentialExchangeError: OAuth rejected the assertion
            NetworkTimeout:          OAuth endpoint unreachable
        """
        started = time.perf_counter()

        # ── Step 1: Resolve ───────────────────────────────────────────────
        recipients = await self.resolver.resolve(content_id, kind=kind, include_sender=include_sender)
        if recipients.is_empty:
            logger.info("Dispatch %s: nothing to send (%s)", content_id, recipients.reason)
            return DispatchReport(
                content_id=content_id,
                content_type=recipients.kind,
                reason=recipients.reason,
                duration_ms=_elapsed_ms(started),
            )

        # ── Step 2: Credential ────────────────────────────────────────────
        sender = await self._build_sender()

        # ── Step 3: Payload ───────────────────────────────────────────────
        payload = build_notification(
            recipients.content,
            deep_link_scheme=self.deep_link_scheme,
            sender_name=recipients.sender_name,
            override=notification,
        )

        # ── Step 4: Send ──────────────────────────────────────────────────
        results = await self._fan_out(sender, recipients.tokens, payload)
        self._invalidate_on_unauthenticated(results)

        # ── Step 5: Prune permanently dead tokens ─────────────────────────
        pruned = await self._prune(results)

        # ── Step 6: Aggregate ─────────────────────────────────────────────
        sent = sum(1 for r in results if r.status == "sent")
        report = DispatchReport(
            content_id=content_id,
            content_type=recipients.kind,
            sent=sent,
            total=len(results),
            failure=len(results) - sent,
            protocol=sender.protocol,
            pruned=pruned,
            duration_ms=_elapsed_ms(started),
            results=results,
        )
        logger.info(
            "Dispatch %s via %s: sent %d/%d (pruned %d) in %.0fms",
            content_id, sender.protocol, report.sent, report.total, pruned, report.duration_ms,
        )
        return report

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _build_sender(self) -> PushSender:
        """Branch on the protocol variant once per run."""
        protocol = self.protocol
        if isinstance(protocol, ServiceAccount):
            if self.minter is None:
                raise ConfigurationError("Service account configured but no token minter available")
            access_token = await self.minter.get_access_token(protocol.credential)
            return FcmV1Sender(
                self.http_client,
                url=self.v1_url_template.format(project_id=protocol.credential.project_id),
                access_token=access_token.token,
                timeout=self.timeout,
            )
        if isinstance(protocol, LegacyKey):
            return FcmLegacySender(
                self.http_client,
                url=self.legacy_url,
                server_key=protocol.server_key,
                timeout=self.timeout,
                batch_size=self.legacy_batch_size,
                android_channel_id=self.android_channel_id,
            )
        raise ConfigurationError(message="No FCM credentials configured")

    async def _fan_out(
        self,
        sender: PushSender,
        tokens: List[str],
        payload: Notification,
    ) -> List[TokenResult]:
        """Send every batch under a semaphore; results keep token order."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(batch: List[str]) -> List[TokenResult]:
            async with semaphore:
                return await sender.send_batch(batch, payload)

        groups = await asyncio.gather(*(run(batch) for batch in sender.batches(tokens)))
        return [result for group in groups for result in group]

    def _invalidate_on_unauthenticated(self, results: List[TokenResult]) -> None:
        # A 401 from v1 means the cached access token went stale early
        if not isinstance(self.protocol, ServiceAccount) or self.minter is None:
            return
        if any(r.status == "rejected" and r.http_status == 401 for r in results):
            logger.warning("FCM answered 401; dropping cached access token")
            self.minter.invalidate(self.protocol.credential)

    async def _prune(self, results: List[TokenResult]) -> int:
        if not self.prune_unregistered or self.device_service is None:
            return 0
        dead = [
            r for r in results
            if r.status == "rejected" and r.error_code in DeliveryRejected.PERMANENT_CODES
        ]
        if not dead:
            return 0
        try:
            removed = await self.device_service.prune(r.token for r in dead)
        except SQLAlchemyError as e:
            logger.error("Pruning %d dead token(s) failed: %s", len(dead), e)
            return 0
        for result in dead:
            result.pruned = True
        return removed


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
