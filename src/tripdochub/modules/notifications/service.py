"""
User notifications for the asynchronous email path.

Delivery is fire-and-forget: `send` never raises, so a push outage can never fail an
ingestion. Users without a valid Expo token only get a log line.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from tripdochub.core.config import settings
from tripdochub.core.logging import get_logger, log_event
from tripdochub.modules.identity.models import User

logger = get_logger(__name__)

_EXPO_TOKEN_PREFIXES = ("ExponentPushToken[", "ExpoPushToken[")


@dataclass(frozen=True)
class Notification:
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> str:
        return str(self.data.get("type") or "generic")


class Notifier(Protocol):
    def send(self, user: User, notification: Notification) -> bool: ...


def is_expo_push_token(token: str | None) -> bool:
    return bool(token) and token.startswith(_EXPO_TOKEN_PREFIXES) and token.endswith("]")


class PushNotifier:
    def __init__(
        self,
        *,
        push_url: str,
        timeout: float,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.push_url = push_url
        self.timeout = timeout
        self.transport = transport

    def send(self, user: User, notification: Notification) -> bool:
        token = user.push_token
        if not is_expo_push_token(token):
            log_event(
                logger,
                "notification.fallback",
                user_id=str(user.id),
                kind=notification.kind,
                title=notification.title,
                body=notification.body,
            )
            return False

        message = {
            "to": token,
            "title": notification.title,
            "body": notification.body,
            "data": notification.data,
            "sound": "default",
            "priority": "high",
            "channelId": "email_processing",
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                resp = client.post(
                    self.push_url,
                    json=message,
                    headers={"Accept": "application/json", "Content-Type": "application/json"},
                )
                resp.raise_for_status()
                ticket = (resp.json() or {}).get("data") or {}
        except Exception as e:  # noqa: BLE001
            log_event(
                logger,
                "notification.failure",
                level=logging.WARNING,
                user_id=str(user.id),
                kind=notification.kind,
                error_type=type(e).__name__,
                error=str(e)[:300],
            )
            return False

        if isinstance(ticket, dict) and ticket.get("status") == "error":
            log_event(
                logger,
                "notification.failure",
                level=logging.WARNING,
                user_id=str(user.id),
                kind=notification.kind,
                error=str(ticket.get("message"))[:300],
            )
            return False

        log_event(logger, "notification.sent", user_id=str(user.id), kind=notification.kind)
        return True


def build_notifier() -> Notifier:
    return PushNotifier(push_url=settings.expo_push_url, timeout=settings.push_timeout_seconds)


def email_received(*, subject: str | None, attachment_count: int) -> Notification:
    if attachment_count:
        noun = "attachment" if attachment_count == 1 else "attachments"
        body = f"Processing {attachment_count} {noun} from your forwarded email."
    else:
        body = "Processing your forwarded email."
    return Notification(
        title="📧 Email Received",
        body=body,
        data={"type": "email_received", "subject": subject},
    )


def documents_added(*, count: int) -> Notification:
    if count == 1:
        body = "1 travel document was extracted and added to your inbox."
    else:
        body = f"{count} travel documents were extracted and added to your inbox."
    return Notification(
        title="✅ Documents Added",
        body=body,
        data={"type": "email_completed", "documentCount": count},
    )


def no_bookings_found(*, subject: str | None) -> Notification:
    return Notification(
        title="📭 No Bookings Found",
        body="We couldn't find any travel bookings in your forwarded email.",
        data={"type": "email_no_bookings", "subject": subject},
    )


def no_credits() -> Notification:
    return Notification(
        title="⚠️ No Credits Remaining",
        body=(
            "Your email was received but couldn't be processed. "
            "Please add more credits to continue."
        ),
        data={"type": "email_no_credits"},
    )


def processing_failed(*, subject: str | None) -> Notification:
    return Notification(
        title="❌ Processing Failed",
        body="Something went wrong while processing your forwarded email. Please try again.",
        data={"type": "email_error", "subject": subject},
    )
