"""Payment provider contract and the normalized results handlers work with."""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field


class ProviderError(Exception):
    """A provider call failed; `str(exc)` is the provider's user-facing message."""


class WebhookVerificationError(Exception):
    """Webhook payload or signature did not verify against the signing secret."""


class PaymentIntent(BaseModel):
    id: str
    client_secret: str | None = None


class Customer(BaseModel):
    id: str
    email: str | None = None
    name: str | None = None
    created: int | None = None


class Subscription(BaseModel):
    id: str
    client_secret: str | None = None
    cancel_at_period_end: bool = False
    current_period_end: int | None = None


class WebhookEventData(BaseModel):
    object: dict[str, Any] = Field(default_factory=dict)


class WebhookEvent(BaseModel):
    """Verified provider event; only the fields dispatch relies on are typed."""

    id: str | None = None
    type: str
    data: WebhookEventData = Field(default_factory=WebhookEventData)

    @property
    def object_id(self) -> str | None:
        return self.data.object.get("id")


class PaymentProvider(ABC):
    """Operations the gateway forwards to the external payment processor."""

    @abstractmethod
    async def create_payment_intent(self, amount: int, currency: str, metadata: dict[str, str]) -> PaymentIntent:
        """Create an intent for `amount` minor units with automatic payment methods."""

    @abstractmethod
    async def attach_payment_method(self, payment_method_id: str, customer_id: str) -> None:
        """Attach a payment method to a customer."""

    @abstractmethod
    async def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> None:
        """Make the payment method the customer's default for invoices."""

    @abstractmethod
    async def create_subscription(self, customer_id: str, price_id: str) -> Subscription:
        """Create an incomplete subscription and return its first invoice's client secret."""

    @abstractmethod
    async def cancel_subscription_at_period_end(self, subscription_id: str) -> Subscription:
        """Flag a subscription to cancel when the current period ends."""

    @abstractmethod
    async def create_customer(self, email: str, name: str | None, metadata: dict[str, str]) -> Customer:
        """Create a customer record."""

    @abstractmethod
    async def find_customer_by_email(self, email: str) -> Customer | None:
        """Return the first customer with `email`, or None."""

    @abstractmethod
    def construct_event(self, payload: bytes, signature: str | None) -> WebhookEvent:
        """Verify a webhook delivery and parse it, raising WebhookVerificationError."""

    async def close(self) -> None:
        return None
