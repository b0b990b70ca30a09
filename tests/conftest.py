"""Shared fixtures: a gateway app wired to an in-memory provider and clock."""

import json

import pytest
from fastapi.testclient import TestClient

from paygate.common.config import GatewaySettings
from paygate.common.rate_limit import InMemoryRateLimiter
from paygate.services.gateway.main import create_app
from paygate.services.provider.base import Customer, PaymentIntent, PaymentProvider, Subscription
from paygate.services.provider.stripe_gateway import StripeGateway, sign_webhook_payload


WEBHOOK_SECRET = "whsec_test_secret"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider(PaymentProvider):
    """Records every call; `failures[operation]` makes that operation raise."""

    def __init__(self, webhook_secret: str = WEBHOOK_SECRET) -> None:
        self.calls: list[tuple] = []
        self.failures: dict[str, Exception] = {}
        self.customers: list[Customer] = []
        self._verifier = StripeGateway(api_key="", webhook_secret=webhook_secret)

    def _record(self, operation: str, *args) -> None:
        self.calls.append((operation, *args))
        if operation in self.failures:
            raise self.failures[operation]

    def operations(self) -> list[str]:
        return [call[0] for call in self.calls]

    async def create_payment_intent(self, amount, currency, metadata):
        self._record("create_payment_intent", amount, currency, metadata)
        return PaymentIntent(id="pi_123", client_secret="pi_123_secret_abc")

    async def attach_payment_method(self, payment_method_id, customer_id):
        self._record("attach_payment_method", payment_method_id, customer_id)

    async def set_default_payment_method(self, customer_id, payment_method_id):
        self._record("set_default_payment_method", customer_id, payment_method_id)

    async def create_subscription(self, customer_id, price_id):
        self._record("create_subscription", customer_id, price_id)
        return Subscription(id="sub_123", client_secret="pi_sub_secret")

    async def cancel_subscription_at_period_end(self, subscription_id):
        self._record("cancel_subscription", subscription_id)
        return Subscription(id=subscription_id, cancel_at_period_end=True, current_period_end=1_735_689_600)

    async def create_customer(self, email, name, metadata):
        self._record("create_customer", email, name, metadata)
        return Customer(id="cus_123", email=email, name=name, created=1_700_000_000)

    async def find_customer_by_email(self, email):
        self._record("find_customer_by_email", email)
        for customer in self.customers:
            if customer.email == email:
                return customer
        return None

    def construct_event(self, payload, signature):
        self.calls.append(("construct_event",))
        return self._verifier.construct_event(payload, signature)


def signed_event(event_type: str, object_id: str = "obj_1", secret: str = WEBHOOK_SECRET):
    """Return (body, headers) for a webhook delivery that verifies."""

    body = json.dumps({"id": "evt_1", "type": event_type, "data": {"object": {"id": object_id}}}).encode("utf-8")
    return body, {"stripe-signature": sign_webhook_payload(body, secret), "content-type": "application/json"}


@pytest.fixture
def gateway_settings() -> GatewaySettings:
    return GatewaySettings(
        environment="test",
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret=WEBHOOK_SECRET,
        rate_limit_max=100,
        rate_limit_window_seconds=900,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def limiter(gateway_settings, clock) -> InMemoryRateLimiter:
    return InMemoryRateLimiter(
        gateway_settings.rate_limit_max,
        gateway_settings.rate_limit_window_seconds,
        clock=clock,
    )


@pytest.fixture
def app(gateway_settings, provider, limiter):
    return create_app(gateway_settings, provider=provider, rate_limiter=limiter)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def sign():
    """Factory for signed webhook deliveries: `sign(event_type, object_id=..., secret=...)`."""

    return signed_event


@pytest.fixture
def webhook_secret() -> str:
    return WEBHOOK_SECRET


@pytest.fixture
def make_provider():
    return FakeProvider
