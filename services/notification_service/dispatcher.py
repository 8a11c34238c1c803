"""
Outbound notification dispatch.

Rendering and delivery are external collaborators. The dispatcher only glues
them together and guarantees that a failure never escapes: the business
transition that triggered the message is already committed, so a failed send
becomes a logged warning the caller can surface and retry.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from shared.config import settings
from shared.errors import NotificationDispatchFailure
from shared.observability.metrics import notification_dispatch_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    template_key: str
    recipient: str
    context: dict = field(default_factory=dict)


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    html: str
    text: str


@dataclass(frozen=True)
class OutboundMessage:
    to: str
    subject: str
    html: str
    text: str
    template_key: str


@dataclass(frozen=True)
class SendResult:
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None


class TemplateRenderer(Protocol):
    async def render(self, template_key: str, context: dict) -> RenderedMessage: ...


class EmailTransport(Protocol):
    async def send(self, message: OutboundMessage) -> SendResult: ...


class NotificationDispatcher:
    def __init__(self, renderer: TemplateRenderer, transport: EmailTransport,
                 timeout: float = settings.NOTIFICATION_TIMEOUT_SECONDS):
        self.renderer = renderer
        self.transport = transport
        self.timeout = timeout

    async def dispatch(self, notification: Notification) -> Optional[str]:
        """Render and send one notification.

        Returns None on success, or a warning string describing the failure.
        """
        try:
            await asyncio.wait_for(self._deliver(notification), timeout=self.timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            failure = e if isinstance(e, NotificationDispatchFailure) else \
                NotificationDispatchFailure(notification.template_key, e)
            notification_dispatch_total.labels(template=notification.template_key, outcome="failed").inc()
            logger.error(f"Dispatch of '{notification.template_key}' to {notification.recipient} failed: {failure.cause}")
            return str(failure)

        notification_dispatch_total.labels(template=notification.template_key, outcome="sent").inc()
        logger.info(f"Sent '{notification.template_key}' to {notification.recipient}")
        return None

    async def dispatch_all(self, notifications: list[Notification]) -> list[str]:
        warnings = []
        for notification in notifications:
            warning = await self.dispatch(notification)
            if warning:
                warnings.append(warning)
        return warnings

    async def _deliver(self, notification: Notification) -> Any:
        rendered = await self.renderer.render(notification.template_key, notification.context)
        message = OutboundMessage(
            to=notification.recipient,
            subject=rendered.subject,
            html=rendered.html,
            text=rendered.text,
            template_key=notification.template_key,
        )
        result = await self.transport.send(message)
        if not result.success:
            raise NotificationDispatchFailure(notification.template_key, result.error or "transport rejected message")
        return result
