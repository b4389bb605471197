"""Teams notifications for presentation request progress.

Three events are announced on a Teams incoming webhook as Adaptive Cards:
- presentation pending (with the QR code the person has to scan)
- identity verified
- verification result delivered to the caller

Sending is fire-and-forget: send() schedules the POST on the background
dispatcher and returns immediately. Delivery failures are logged only.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from .dispatch import BackgroundDispatcher
from .exceptions import NotificationError

log = logging.getLogger(__name__)

ADAPTIVE_CARD_CONTENT_TYPE = "application/vnd.microsoft.card.adaptive"
ADAPTIVE_CARD_SCHEMA = "http://adaptivecards.io/schemas/adaptive-card.json"
ADAPTIVE_CARD_VERSION = "1.0"


# =============================================================================
# CARD MODEL
# =============================================================================


@dataclass
class TextBlock:
    text: str
    weight: Optional[str] = None
    size: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        block = {"type": "TextBlock", "text": self.text}
        if self.weight is not None:
            block["weight"] = self.weight
        if self.size is not None:
            block["size"] = self.size
        return block


@dataclass
class ImageBlock:
    url: str
    alt_text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        block = {"type": "Image", "url": self.url}
        if self.alt_text is not None:
            block["altText"] = self.alt_text
        return block


class AttachmentBuilder:
    """Fluent builder for a single Adaptive Card attachment."""

    def __init__(self) -> None:
        self._blocks: List[TextBlock | ImageBlock] = []

    def add_text_block(
        self,
        text: str,
        weight: Optional[str] = None,
        size: Optional[str] = None,
    ) -> "AttachmentBuilder":
        self._blocks.append(TextBlock(text=text, weight=weight, size=size))
        return self

    def add_image_block(self, url: str, alt_text: Optional[str] = None) -> "AttachmentBuilder":
        self._blocks.append(ImageBlock(url=url, alt_text=alt_text))
        return self

    def with_title(self, title: str) -> "AttachmentBuilder":
        return self.add_text_block(title, weight="Bolder", size="Large")

    def with_description(self, description: str) -> "AttachmentBuilder":
        return self.add_text_block(description)

    def build(self) -> Dict[str, Any]:
        return {
            "contentType": ADAPTIVE_CARD_CONTENT_TYPE,
            "content": {
                "type": "AdaptiveCard",
                "body": [block.to_dict() for block in self._blocks],
                "$schema": ADAPTIVE_CARD_SCHEMA,
                "version": ADAPTIVE_CARD_VERSION,
            },
        }


@dataclass
class TeamsNotification:
    """A Teams webhook message.

    Attributes:
        type: Teams message type.
        attachments: Built Adaptive Card attachments.
        id: Local identifier for log correlation; not sent to Teams.
    """

    type: str = "message"
    attachments: List[Dict[str, Any]] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def add_attachment(self, attachment: "AttachmentBuilder | Dict[str, Any]") -> None:
        if isinstance(attachment, AttachmentBuilder):
            attachment = attachment.build()
        self.attachments.append(attachment)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "attachments": self.attachments}


# =============================================================================
# NOTIFICATION CENTER
# =============================================================================


class NotificationCenter(ABC):
    """Interface for announcing presentation request progress."""

    @abstractmethod
    def send_presentation_pending(
        self, request_id: uuid.UUID, qr_code: str, caller_name: str
    ) -> None:
        ...

    @abstractmethod
    def send_presentation_verified(self, request_id: uuid.UUID, caller_name: str) -> None:
        ...

    @abstractmethod
    def send_callback_completed(self, request_id: uuid.UUID, caller_name: str) -> None:
        ...


class TeamsNotificationCenter(NotificationCenter):
    """Posts Adaptive Card notifications to a Teams incoming webhook."""

    def __init__(
        self,
        endpoint: str,
        dispatcher: BackgroundDispatcher,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the notification center.

        Args:
            endpoint: Teams incoming webhook URL. Empty disables sending.
            dispatcher: Runs the POSTs in the background.
            timeout: HTTP timeout in seconds.
            client: Shared HTTP client (created lazily when None).
        """
        self.endpoint = endpoint
        self._dispatcher = dispatcher
        self._timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def send(self, notification: TeamsNotification) -> None:
        """Schedule a notification for delivery and return immediately."""
        if not self.endpoint:
            log.debug(f"Notifications disabled, dropping notification '{notification.id}'")
            return

        log.info(f"Sending notification with ID '{notification.id}'")
        self._dispatcher.spawn(
            self._deliver(notification),
            name=f"notification-{notification.id}",
        )

    async def _deliver(self, notification: TeamsNotification) -> None:
        try:
            await self._post(notification)
            log.info(f"Successfully sent notification '{notification.id}'")
        except (NotificationError, httpx.HTTPError) as e:
            log.warning(f"Failed to send notification '{notification.id}': {e}")

    async def _post(self, notification: TeamsNotification) -> None:
        response = await self._get_client().post(self.endpoint, json=notification.to_dict())
        if not response.is_success:
            raise NotificationError(
                f"Teams webhook returned HTTP {response.status_code}"
            )

    def send_presentation_pending(
        self, request_id: uuid.UUID, qr_code: str, caller_name: str
    ) -> None:
        log.info(f"Sending presentation pending notification for request '{request_id}'")
        card = (
            AttachmentBuilder()
            .with_title(f"{caller_name} — verification pending")
            .with_description(
                f"[{request_id}] Please scan the QR code to proceed with Verified ID verification."
            )
            .add_image_block(qr_code, "QR Code")
        )
        self._send_card(card)

    def send_presentation_verified(self, request_id: uuid.UUID, caller_name: str) -> None:
        log.info(f"Sending presentation verified notification for request '{request_id}'")
        card = (
            AttachmentBuilder()
            .with_title(f"{caller_name} — identity verified")
            .with_description(f"[{request_id}] Verified ID presentation succeeded.")
        )
        self._send_card(card)

    def send_callback_completed(self, request_id: uuid.UUID, caller_name: str) -> None:
        log.info(f"Sending callback completed notification for request '{request_id}'")
        card = (
            AttachmentBuilder()
            .with_title(f"{caller_name} — callback completed")
            .with_description(f"[{request_id}] Verification result delivered to caller.")
        )
        self._send_card(card)

    def _send_card(self, card: AttachmentBuilder) -> None:
        notification = TeamsNotification()
        notification.add_attachment(card)
        self.send(notification)


# Module-level singleton
_notification_center: Optional[TeamsNotificationCenter] = None


def get_notification_center() -> TeamsNotificationCenter:
    """Get or create the notification center singleton.

    Configuration is read from app.core.config on first access.
    """
    global _notification_center
    if _notification_center is None:
        from app.core.config import VID_HTTP_TIMEOUT, VID_TEAMS_NOTIFICATIONS_ENDPOINT

        from .dispatch import get_dispatcher

        _notification_center = TeamsNotificationCenter(
            endpoint=VID_TEAMS_NOTIFICATIONS_ENDPOINT,
            dispatcher=get_dispatcher(),
            timeout=VID_HTTP_TIMEOUT,
        )
    return _notification_center


async def close_notification_center() -> None:
    """Close the notification center's HTTP client."""
    if _notification_center is not None:
        await _notification_center.close()


def reset_notification_center() -> None:
    """Reset the notification center singleton (for testing)."""
    global _notification_center
    _notification_center = None
