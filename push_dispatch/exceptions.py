"""
Household Push Dispatch: Custom Exception Hierarchy
===================================================

What:  Application-specific exceptions for each failure class of a dispatch run.
How:   Each exception carries a message and an optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by services and route dependencies; caught by global handlers.

Exception Hierarchy:
    PushDispatchError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── AuthenticationError      → 401 Unauthorized
    ├── ContentNotFound          → 404 Not Found (terminal, do not retry)
    ├── ResolutionError          → 503 Service Unavailable (retry whole dispatch)
    ├── CredentialExchangeError  → 502 Bad Gateway (OAuth rejected the assertion)
    ├── NetworkTimeout           → 504 Gateway Timeout (OAuth unreachable)
    ├── ConfigurationError       → 500 Internal Server Error (operator fix)
    └── DeliveryRejected         → never reaches HTTP; recorded per token

Propagation policy:
    Resolution and credential errors abort the run. DeliveryRejected and
    per-token timeouts are caught inside the dispatcher and folded into the
    DispatchReport; one bad token never fails the batch.
"""

from typing import Any, Dict, Optional


class PushDispatchError(Exception):
    """
    Base exception for all dispatch errors.

    Attributes:
        message:  Description safe to return in an API response
        context:  Additional debug info (logged, returned only where noted)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(PushDispatchError):
    """
    Raised when trigger or registration input is structurally invalid.

    HTTP: 400 Bad Request
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(PushDispatchError):
    """Trigger token missing or wrong. HTTP: 401 Unauthorized."""

    def __init__(self, message: str = "Invalid or missing trigger token"):
        super().__init__(message=message)


class ContentNotFound(PushDispatchError):
    """
    Raised when the image or message id does not exist.

    HTTP:     404 Not Found
    Recovery: Terminal. Retrying the same id cannot succeed, and no delivery
              call is made.
    """

    def __init__(
        self,
        content_id: str,
        kind: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        resource = kind or "content"
        ctx = context or {}
        ctx.update({"resource": resource, "content_id": content_id})
        super().__init__(message=f"{resource} with ID '{content_id}' was not found", context=ctx)
        self.content_id = content_id
        self.kind = kind


class ResolutionError(PushDispatchError):
    """
    Raised when the data store fails during recipient resolution.

    HTTP:     503 Service Unavailable
    Recovery: Transient. The caller may retry the whole dispatch. SQL and
              driver details are logged server-side only.
    """

    def __init__(
        self,
        message: str = "Could not resolve recipients. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CredentialExchangeError(PushDispatchError):
    """
    Raised when the OAuth token endpoint rejects the signed assertion.

    HTTP:  502 Bad Gateway

    Typical causes: clock skew (transient), malformed key, revoked or
    disabled service account (operator fix). The provider's raw JSON error
    body is kept in `provider_error` and returned for diagnosis.
    """

    def __init__(
        self,
        message: str = "OAuth token exchange failed",
        status_code: Optional[int] = None,
        provider_error: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if status_code is not None:
            ctx["status_code"] = status_code
        if provider_error is not None:
            ctx["provider_error"] = provider_error
        super().__init__(message=message, context=ctx)
        self.status_code = status_code
        self.provider_error = provider_error


class NetworkTimeout(PushDispatchError):
    """
    Raised when the OAuth exchange times out or cannot connect.

    HTTP: 504 Gateway Timeout

    Per-token send timeouts use the same name in the report ("failed") but
    are never raised: without a credential nobody can be notified, while a
    single slow device only affects itself.
    """

    def __init__(
        self,
        message: str = "Timed out contacting the OAuth token endpoint",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ConfigurationError(PushDispatchError):
    """Missing or unparseable FCM credentials. HTTP: 500."""

    def __init__(
        self,
        message: str = "Push delivery is not configured",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DeliveryRejected(PushDispatchError):
    """
    The provider refused one token's message.

    Raised by the senders and caught by the dispatcher, which records it as a
    "rejected" outcome. `error_code` holds the provider code (UNREGISTERED,
    NotRegistered, INVALID_ARGUMENT, QUOTA_EXCEEDED, ...).
    """

    PERMANENT_CODES = frozenset({"UNREGISTERED", "NotRegistered", "InvalidRegistration"})

    def __init__(
        self,
        token: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        provider_error: Optional[Any] = None,
    ):
        message = f"Provider rejected token ({error_code or status_code})"
        super().__init__(
            message=message,
            context={"status_code": status_code, "error_code": error_code},
        )
        self.token = token
        self.status_code = status_code
        self.error_code = error_code
        self.provider_error = provider_error
