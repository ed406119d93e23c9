"""
Household Push Dispatch: Dispatch Request/Response Schemas
==========================================================

What:  Pydantic models for the inbound trigger and the DispatchReport.
Who:   Used by routes/dispatch.py and returned by PushDispatcher.dispatch().

Response contract:
    200 {"ok": true, "sent": <int>, "total": <int>, ...}   normal completion,
                                                          including "nobody to notify"
    4xx/5xx {"error": "...", "message": "..."}            see ErrorResponse
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator

from push_dispatch.credentials import mask_token

ContentType = Literal["image", "message"]
TokenStatus = Literal["sent", "rejected", "failed"]


def strip_id(v: str) -> str:
    """Trim surrounding whitespace; a blank id is a malformed trigger."""
    stripped = v.strip()
    if not stripped:
        raise ValueError("id must not be blank")
    return stripped


class NotificationOverride(BaseModel):
    """Explicit title/body; the first layer of the notification text fallback."""

    title: Optional[str] = Field(default=None, max_length=200)
    body: Optional[str] = Field(default=None, max_length=1000)


class DispatchRequest(BaseModel):
    """
    Body of POST /dispatch.

    content_type is optional: when omitted the id is looked up in `images`
    first, then in `messages`.
    """

    content_id: str = Field(min_length=1, max_length=64, description="Image or message id")
    content_type: Optional[ContentType] = Field(default=None)
    notification: Optional[NotificationOverride] = Field(default=None)
    debug_notify_self: bool = Field(
        default=False,
        description="Also notify the sender; honored only when enabled in configuration",
    )

    @field_validator("content_id")
    @classmethod
    def strip_content_id(cls, v: str) -> str:
        return strip_id(v)


class ImageTriggerRequest(BaseModel):
    """Body of POST /push-new-image."""

    image_id: str = Field(min_length=1, max_length=64)
    debug_notify_self: bool = False

    @field_validator("image_id")
    @classmethod
    def strip_image_id(cls, v: str) -> str:
        return strip_id(v)


class MessageTriggerRequest(BaseModel):
    """Body of POST /push-new-message."""

    message_id: str = Field(min_length=1, max_length=64)
    debug_notify_self: bool = False

    @field_validator("message_id")
    @classmethod
    def strip_message_id(cls, v: str) -> str:
        return strip_id(v)


class TokenResult(BaseModel):
    """
    Outcome of one delivery attempt.

    status:
        sent      provider answered 2xx
        rejected  provider refused this token (DeliveryRejected)
        failed    network error or timeout; the provider never answered

    The full token is kept in memory for pruning; serialized reports carry
    only its masked prefix.
    """

    token: str
    status: TokenStatus
    http_status: Optional[int] = None
    message_id: Optional[str] = None
    error_code: Optional[str] = None
    error: Optional[str] = None
    pruned: bool = False

    @field_serializer("token")
    def serialize_token(self, token: str) -> str:
        return mask_token(token)


class DispatchReport(BaseModel):
    """
    Aggregated result of one dispatch run.

    sent + failure == total whenever a send phase ran. `reason` is set only
    on the short-circuit paths ("no recipients", "no tokens").
    """

    ok: bool = True
    content_id: str
    content_type: Optional[ContentType] = None
    sent: int = 0
    total: int = 0
    failure: int = 0
    reason: Optional[str] = None
    protocol: Optional[str] = None
    pruned: int = 0
    duration_ms: float = 0.0
    results: List[TokenResult] = Field(default_factory=list)
