"""Validation and provider forwarding behind each gateway route.

Every operation checks its input first (400, provider untouched), then makes
the provider call(s). Any failure from the provider becomes a 500 carrying the
provider's message.
"""

import math
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from time import perf_counter

from paygate.common.errors import ApiError
from paygate.common.logging import logger
from paygate.common.metrics import provider_latency_seconds, provider_requests_total
from paygate.services.gateway.schemas import (
    CancelSubscriptionRequest,
    CustomerRequest,
    PaymentIntentRequest,
    SubscriptionRequest,
)
from paygate.services.provider.base import Customer, PaymentIntent, PaymentProvider, Subscription


MIN_AMOUNT = 0.50


def to_minor_units(amount: float) -> int:
    """Convert major currency units to integer minor units.

    Multiplies by 100 in floating point, then rounds half away from zero, so
    1.005 becomes 100 (1.005 * 100 == 100.49999...).
    """

    cents = Decimal(repr(amount * 100))
    return int(cents.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def iso_timestamp(now: datetime | None = None) -> str:
    """UTC ISO-8601 timestamp with millisecond precision and a `Z` suffix."""

    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class GatewayService:
    """Owns input validation and error mapping for provider-backed routes."""

    def __init__(self, provider: PaymentProvider) -> None:
        self.provider = provider

    @contextmanager
    def _provider_call(self, operation: str, failure: str):
        start = perf_counter()
        try:
            yield
        except Exception as exc:
            provider_requests_total.labels(operation=operation, outcome="error").inc()
            logger.exception("provider_call_failed operation=%s error=%s", operation, exc)
            raise ApiError(500, failure, str(exc)) from exc
        else:
            provider_requests_total.labels(operation=operation, outcome="ok").inc()
        finally:
            provider_latency_seconds.labels(operation=operation).observe(max(0.0, perf_counter() - start))

    async def create_payment_intent(self, req: PaymentIntentRequest) -> PaymentIntent:
        if not req.amount or req.amount < MIN_AMOUNT or not math.isfinite(req.amount * 100):
            raise ApiError(400, "Invalid amount. Minimum amount is $0.50")
        amount = to_minor_units(req.amount)
        with self._provider_call("create_payment_intent", "Failed to create payment intent"):
            return await self.provider.create_payment_intent(
                amount=amount,
                currency=req.currency,
                metadata=req.metadata,
            )

    async def create_subscription(self, req: SubscriptionRequest) -> Subscription:
        if not req.customer_id or not req.price_id:
            raise ApiError(400, "Customer ID and Price ID are required")
        with self._provider_call("create_subscription", "Failed to create subscription"):
            if req.payment_method_id:
                await self.provider.attach_payment_method(req.payment_method_id, req.customer_id)
                await self.provider.set_default_payment_method(req.customer_id, req.payment_method_id)
            return await self.provider.create_subscription(req.customer_id, req.price_id)

    async def create_customer(self, req: CustomerRequest) -> Customer:
        if not req.email:
            raise ApiError(400, "Email is required")
        with self._provider_call("create_customer", "Failed to create customer"):
            return await self.provider.create_customer(email=req.email, name=req.name, metadata=req.metadata)

    async def get_customer_by_email(self, email: str) -> Customer:
        with self._provider_call("list_customers", "Failed to retrieve customer"):
            customer = await self.provider.find_customer_by_email(email)
        if customer is None:
            raise ApiError(404, "Customer not found")
        return customer

    async def cancel_subscription(self, req: CancelSubscriptionRequest) -> Subscription:
        if not req.subscription_id:
            raise ApiError(400, "Subscription ID is required")
        with self._provider_call("cancel_subscription", "Failed to cancel subscription"):
            return await self.provider.cancel_subscription_at_period_end(req.subscription_id)
