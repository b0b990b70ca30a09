"""Webhook event dispatch.

Each recognized event type maps to an async handler. The defaults only log;
`WebhookDispatcher.register` is where downstream reactions plug in. Types
outside `WebhookEventType` take the unhandled arm and are still acknowledged.
"""

from enum import Enum
from typing import Awaitable, Callable

from paygate.common.logging import logger
from paygate.common.metrics import webhook_events_total
from paygate.services.provider.base import WebhookEvent


class WebhookEventType(str, Enum):
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_INTENT_PAYMENT_FAILED = "payment_intent.payment_failed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"

    @classmethod
    def parse(cls, value: str) -> "WebhookEventType | None":
        try:
            return cls(value)
        except ValueError:
            return None


WebhookHandler = Callable[[WebhookEvent], Awaitable[None]]


def _logging_handler(label: str) -> WebhookHandler:
    async def handle(event: WebhookEvent) -> None:
        logger.info("%s: %s", label, event.object_id)

    handle.__name__ = f"log_{label.lower().replace(' ', '_')}"
    return handle


DEFAULT_LABELS = {
    WebhookEventType.PAYMENT_INTENT_SUCCEEDED: "Payment succeeded",
    WebhookEventType.PAYMENT_INTENT_PAYMENT_FAILED: "Payment failed",
    WebhookEventType.SUBSCRIPTION_CREATED: "Subscription created",
    WebhookEventType.SUBSCRIPTION_UPDATED: "Subscription updated",
    WebhookEventType.SUBSCRIPTION_DELETED: "Subscription deleted",
    WebhookEventType.INVOICE_PAYMENT_SUCCEEDED: "Invoice payment succeeded",
    WebhookEventType.INVOICE_PAYMENT_FAILED: "Invoice payment failed",
}


async def log_unhandled(event: WebhookEvent) -> None:
    logger.info("Unhandled event type %s", event.type)


class WebhookDispatcher:
    """Routes verified events to the handler registered for their type."""

    def __init__(self) -> None:
        self._handlers: dict[WebhookEventType, WebhookHandler] = {
            kind: _logging_handler(label) for kind, label in DEFAULT_LABELS.items()
        }
        self._unhandled: WebhookHandler = log_unhandled

    def register(self, kind: WebhookEventType, handler: WebhookHandler) -> None:
        self._handlers[kind] = handler

    def register_unhandled(self, handler: WebhookHandler) -> None:
        self._unhandled = handler

    def handler_for(self, event_type: str) -> WebhookHandler:
        kind = WebhookEventType.parse(event_type)
        if kind is None:
            return self._unhandled
        return self._handlers[kind]

    async def dispatch(self, event: WebhookEvent) -> WebhookEventType | None:
        """Run the matching handler and return the recognized type (None if unhandled)."""

        kind = WebhookEventType.parse(event.type)
        webhook_events_total.labels(event_type=kind.value if kind else "unhandled").inc()
        await self.handler_for(event.type)(event)
        return kind
