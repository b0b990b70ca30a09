"""Request/response schemas for gateway endpoints.

Field names on the wire are camelCase. Required-field checks live in the
service so a missing field yields the route's own 400 message.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PaymentIntentRequest(CamelModel):
    """Payload accepted by `POST /api/create-payment-intent`."""

    amount: float | None = Field(default=None, allow_inf_nan=False)
    currency: str = "usd"
    metadata: dict[str, str] = Field(default_factory=dict)


class PaymentIntentResponse(CamelModel):
    client_secret: str | None
    payment_intent_id: str


class SubscriptionRequest(CamelModel):
    """Payload accepted by `POST /api/create-subscription`."""

    customer_id: str | None = None
    price_id: str | None = None
    payment_method_id: str | None = None


class SubscriptionResponse(CamelModel):
    subscription_id: str
    client_secret: str | None


class CustomerRequest(CamelModel):
    """Payload accepted by `POST /api/create-customer`."""

    email: str | None = None
    name: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)


class CustomerResponse(CamelModel):
    customer_id: str
    email: str | None
    name: str | None


class CustomerLookupResponse(CustomerResponse):
    created: int | None


class CancelSubscriptionRequest(CamelModel):
    """Payload accepted by `POST /api/cancel-subscription`."""

    subscription_id: str | None = None


class CancelSubscriptionResponse(CamelModel):
    subscription_id: str
    cancel_at_period_end: bool
    current_period_end: int | None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    environment: str
    cors_origins: list[str]


class CorsCheckResponse(BaseModel):
    message: str
    origin: str | None
    timestamp: str


class WebhookAck(BaseModel):
    received: bool = True
