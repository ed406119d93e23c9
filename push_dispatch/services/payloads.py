"""
Household Push Dispatch: Notification Payloads
==============================================

What:  Builds the notification text, the data bag, and the two wire bodies
       (FCM HTTP v1 message, legacy registration_ids body).
Who:   PushDispatcher builds one Notification per run; the senders wrap it
       per token (v1) or per batch (legacy).

Text fallback, first non-empty wins:
    1. explicit override from the trigger request
    2. content fields: file name / message text, sender display name
    3. generic default text

FCM requires every data value to be a string; build_data() stringifies
everything and drops None.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from push_dispatch.schemas.dispatch import NotificationOverride
from push_dispatch.services.recipient_resolver import Content

IMAGE_TITLE = "New Photo Uploaded! 📸"
IMAGE_BODY = "Check out the latest addition"
MESSAGE_TITLE = "New message 💬"
MESSAGE_BODY = "New message"
MESSAGE_PREVIEW_LENGTH = 100
# FCM caps the whole payload at 4KB
MESSAGE_DATA_TEXT_LENGTH = 1000


@dataclass(frozen=True)
class Notification:
    title: str
    body: str
    data: Dict[str, str]


def truncate(text: str, limit: int = MESSAGE_PREVIEW_LENGTH) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "…"


def _first(*values: Optional[str]) -> str:
    for value in values:
        if value and value.strip():
            return value
    return ""


def build_text(
    content: Content,
    sender_name: Optional[str] = None,
    override: Optional[NotificationOverride] = None,
) -> Dict[str, str]:
    """Resolve title and body through the three fallback layers."""
    override = override or NotificationOverride()
    if content.kind == "image":
        title = _first(
            override.title,
            f"{sender_name} shared a new photo 📸" if sender_name else None,
            IMAGE_TITLE,
        )
        body = _first(override.body, content.file_name, IMAGE_BODY)
    else:
        title = _first(
            override.title,
            f"{sender_name} 💬" if sender_name else None,
            MESSAGE_TITLE,
        )
        preview = truncate(content.text) if content.text else None
        body = _first(override.body, preview, MESSAGE_BODY)
    return {"title": title, "body": body}


def build_data(
    content: Content,
    deep_link_scheme: str,
    sent_at: Optional[datetime] = None,
) -> Dict[str, str]:
    """The string-only data bag the app uses to route the tap."""
    sent_at = sent_at or datetime.now(timezone.utc)
    if content.kind == "image":
        data: Dict[str, Any] = {
            "type": "new_image",
            "image_id": content.id,
            "screen": "Gallery",
            "deep_link": f"{deep_link_scheme}://gallery/image/{content.id}",
            "image_url": content.image_url,
            "uploaded_by": content.owner_id,
        }
    else:
        data = {
            "type": "chat_message",
            "message_id": content.id,
            "screen": "Chat",
            "deep_link": f"{deep_link_scheme}://chat/{content.household_id}",
            "text": truncate(content.text, MESSAGE_DATA_TEXT_LENGTH) if content.text else "",
        }
    data.update(
        content_id=content.id,
        household_id=content.household_id,
        sender_id=content.owner_id,
        created_at=content.created_at.isoformat() if content.created_at else None,
        sent_at=sent_at.isoformat(),
    )
    return {key: str(value) for key, value in data.items() if value is not None}


def build_notification(
    content: Content,
    deep_link_scheme: str,
    sender_name: Optional[str] = None,
    override: Optional[NotificationOverride] = None,
    sent_at: Optional[datetime] = None,
) -> Notification:
    text = build_text(content, sender_name, override)
    return Notification(
        title=text["title"],
        body=text["body"],
        data=build_data(content, deep_link_scheme, sent_at),
    )


# ── Wire bodies ───────────────────────────────────────────────────────────

def build_v1_message(token: str, notification: Notification) -> Dict[str, Any]:
    """Body of one POST .../messages:send."""
    return {
        "message": {
            "token": token,
            "notification": {"title": notification.title, "body": notification.body},
            "data": dict(notification.data),
            "android": {"priority": "HIGH"},
            "apns": {"payload": {"aps": {"sound": "default"}}},
        }
    }


def build_legacy_body(
    tokens: List[str],
    notification: Notification,
    android_channel_id: str = "default",
) -> Dict[str, Any]:
    """Body of one POST /fcm/send covering a batch of tokens."""
    return {
        "registration_ids": list(tokens),
        "notification": {
            "title": notification.title,
            "body": notification.body,
            "sound": "default",
            "badge": 1,
            "android_channel_id": android_channel_id,
        },
        "data": dict(notification.data),
        "priority": "high",
    }
