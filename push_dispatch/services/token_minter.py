"""
Household Push Dispatch: OAuth Access Token Minter
==================================================

What:  Mints FCM HTTP v1 access tokens from a service account by self-signing
       a JWT assertion and exchanging it at the OAuth token endpoint
       (RFC 7523 "JWT bearer" grant).
How:   The JWT is built by hand: base64url segments + RS256 signature from
       the `cryptography` library. The exchange runs over the shared
       httpx.AsyncClient with a timeout and a small tenacity retry budget
       for transport failures.
Who:   PushDispatcher, once per run, only for the ServiceAccount protocol.

Assertion format (three dot-separated base64url segments, no padding):
    base64url({"alg":"RS256","typ":"JWT"})
    . base64url({"iss": <client_email>, "scope": <scope>, "aud": <token url>,
                 "iat": now, "exp": now + 3600})
    . base64url(RSASSA-PKCS1-v1_5-SHA256(<first two segments as ASCII>))

Caching:
    Tokens live 3600s. get_access_token() reuses a cached token for the same
    credential until `refresh_margin` seconds before expiry. An asyncio.Lock
    makes concurrent dispatch runs share a single in-flight exchange.
"""

import asyncio
import base64
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from push_dispatch.credentials import SigningCredential
from push_dispatch.exceptions import (
    ConfigurationError,
    CredentialExchangeError,
    NetworkTimeout,
)

logger = logging.getLogger(__name__)

JWT_HEADER = {"alg": "RS256", "typ": "JWT"}
GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"


# ══════════════════════════════════════════════════════════════════════════
# JWT construction
# ══════════════════════════════════════════════════════════════════════════

def base64url_encode(data: bytes) -> str:
    """Standard base64url: '+' → '-', '/' → '_', trailing '=' stripped."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def encode_segment(obj: Dict[str, Any]) -> str:
    """JSON-serialize compactly, then base64url-encode."""
    return base64url_encode(json.dumps(obj, separators=(",", ":")).encode("utf-8"))


def build_signing_input(header: Dict[str, Any], claims: Dict[str, Any]) -> str:
    """The literal two-segment string that gets signed."""
    return f"{encode_segment(header)}.{encode_segment(claims)}"


def sign_rs256(credential: SigningCredential, signing_input: str) -> str:
    """
    RSASSA-PKCS1-v1_5 over SHA-256 of the ASCII signing input.

    Returns:
        base64url-encoded raw signature (the JWT's third segment).

    Raises:
        ConfigurationError: the private key PEM cannot be parsed.
    """
    private_key = credential.load_private_key()
    signature = private_key.sign(
        signing_input.encode("ascii"),
        padding.PKCS1v15(),
        hashes.SHA256(),
    )
    return base64url_encode(signature)


@dataclass(frozen=True)
class AccessToken:
    """A bearer credential and its absolute expiry (epoch seconds)."""

    token: str
    expires_at: float

    def is_fresh(self, now: float, margin: float = 0) -> bool:
        return now < self.expires_at - margin


# ══════════════════════════════════════════════════════════════════════════
# Token Minter
# ══════════════════════════════════════════════════════════════════════════

class TokenMinter:
    """
    Builds signed assertions and exchanges them for access tokens.

    The http client and clock are injected; tests pass an httpx.MockTransport
    client and a fixed clock.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token_url: str = "https://oauth2.googleapis.com/token",
        scope: str = "https://www.googleapis.com/auth/firebase.messaging",
        assertion_ttl: int = 3600,
        timeout: float = 10.0,
        cache_enabled: bool = True,
        refresh_margin: float = 60,
        retry_attempts: int = 2,
        retry_min_wait: float = 0.5,
        retry_max_wait: float = 4.0,
        clock: Callable[[], float] = time.time,
    ):
        self._client = http_client
        self.token_url = token_url
        self.scope = scope
        self.assertion_ttl = assertion_ttl
        self.timeout = timeout
        self.cache_enabled = cache_enabled
        self.refresh_margin = refresh_margin
        self.retry_attempts = retry_attempts
        self.retry_min_wait = retry_min_wait
        self.retry_max_wait = retry_max_wait
        self._clock = clock
        self._cache: Dict[str, AccessToken] = {}
        self._lock = asyncio.Lock()

    # ── Assertion ─────────────────────────────────────────────────────────

    def build_claims(self, credential: SigningCredential, now: int) -> Dict[str, Any]:
        return {
            "iss": credential.client_email,
            "scope": self.scope,
            "aud": self.token_url,
            "iat": now,
            "exp": now + self.assertion_ttl,
        }

    def build_assertion(self, credential: SigningCredential, now: Optional[int] = None) -> str:
        """
        Build the complete three-segment JWT assertion.

        Args:
            credential: service account whose key signs the assertion
            now:        issue time in whole epoch seconds (defaults to the clock)
        """
        issued_at = int(self._clock()) if now is None else now
        signing_input = build_signing_input(JWT_HEADER, self.build_claims(credential, issued_at))
        return f"{signing_input}.{sign_rs256(credential, signing_input)}"

    # ── Exchange ──────────────────────────────────────────────────────────

    async def mint(self, credential: SigningCredential) -> AccessToken:
        """
        Sign a fresh assertion and exchange it, bypassing the cache.

        Raises:
            CredentialExchangeError: key unusable, or endpoint answered non-2xx
                                     or without a usable token
            NetworkTimeout:          endpoint unreachable after the retry budget
        """
        issued_at = int(self._clock())
        try:
            assertion = self.build_assertion(credential, now=issued_at)
        except ConfigurationError as e:
            logger.error("Cannot sign assertion for %s: %s", credential.client_email, e.message)
            raise CredentialExchangeError(
                message="Service account private key cannot sign the assertion",
                context=e.context,
            ) from e
        started = time.perf_counter()

        try:
            response = await self._post_assertion(assertion)
        except httpx.TimeoutException as e:
            logger.error("OAuth exchange timed out for %s: %s", credential.client_email, e)
            raise NetworkTimeout(
                context={"client_email": credential.client_email, "timeout": self.timeout}
            ) from e
        except httpx.TransportError as e:
            logger.error("OAuth exchange transport error for %s: %s", credential.client_email, e)
            raise NetworkTimeout(
                message="Could not reach the OAuth token endpoint",
                context={"client_email": credential.client_email, "error_type": type(e).__name__},
            ) from e

        try:
            body: Any = response.json()
        except ValueError:
            body = response.text

        if not response.is_success:
            logger.error(
                "OAuth exchange rejected for %s: HTTP %d %s",
                credential.client_email,
                response.status_code,
                body,
            )
            raise CredentialExchangeError(
                message="OAuth token endpoint rejected the service account assertion",
                status_code=response.status_code,
                provider_error=body,
            )

        if not isinstance(body, dict) or not body.get("access_token"):
            raise CredentialExchangeError(
                message="OAuth token endpoint returned no access_token",
                status_code=response.status_code,
                provider_error=body,
            )

        try:
            expires_in = float(body.get("expires_in") or self.assertion_ttl)
        except (TypeError, ValueError) as e:
            raise CredentialExchangeError(
                message="OAuth token endpoint returned an unreadable expires_in",
                status_code=response.status_code,
                provider_error=body,
            ) from e
        token = AccessToken(token=body["access_token"], expires_at=issued_at + expires_in)
        logger.info(
            "Minted access token for %s in %.0fms (expires_in=%.0fs)",
            credential.client_email,
            (time.perf_counter() - started) * 1000,
            expires_in,
        )
        return token

    async def _post_assertion(self, assertion: str) -> httpx.Response:
        """POST the assertion, retrying transport failures only."""
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential_jitter(
                initial=self.retry_min_wait,
                max=self.retry_max_wait,
                jitter=self.retry_min_wait,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                return await self._client.post(
                    self.token_url,
                    data={"grant_type": GRANT_TYPE, "assertion": assertion},
                    timeout=self.timeout,
                )
        raise AssertionError("unreachable: tenacity reraises on exhaustion")

    # ── Cache ─────────────────────────────────────────────────────────────

    def cached_token(self, credential: SigningCredential) -> Optional[AccessToken]:
        """The cached token if it is still outside the refresh margin."""
        if not self.cache_enabled:
            return None
        token = self._cache.get(credential.cache_key)
        if token and token.is_fresh(self._clock(), self.refresh_margin):
            return token
        return None

    def invalidate(self, credential: SigningCredential) -> None:
        """Drop the cached token, e.g. after FCM answered 401 UNAUTHENTICATED."""
        self._cache.pop(credential.cache_key, None)

    async def get_access_token(self, credential: SigningCredential) -> AccessToken:
        """
        Return a usable access token, minting only when needed.

        The lock is taken only on a cache miss; the second check inside it
        lets runs that queued behind an in-flight exchange reuse its result.
        With the cache off there is nothing to share, so runs mint unlocked.
        """
        if not self.cache_enabled:
            return await self.mint(credential)
        token = self.cached_token(credential)
        if token:
            return token
        async with self._lock:
            token = self.cached_token(credential)
            if token:
                return token
            token = await self.mint(credential)
            self._cache[credential.cache_key] = token
            return token
