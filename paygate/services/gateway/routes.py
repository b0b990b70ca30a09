"""Gateway HTTP routes."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from paygate.common.logging import logger
from paygate.common.metrics import webhook_verification_failures_total
from paygate.services.gateway.schemas import (
    CancelSubscriptionRequest,
    CancelSubscriptionResponse,
    CorsCheckResponse,
    CustomerLookupResponse,
    CustomerRequest,
    CustomerResponse,
    HealthResponse,
    PaymentIntentRequest,
    PaymentIntentResponse,
    SubscriptionRequest,
    SubscriptionResponse,
    WebhookAck,
)
from paygate.services.gateway.service import GatewayService, iso_timestamp
from paygate.services.provider.base import WebhookVerificationError


WEBHOOK_PATH = "/api/webhooks/stripe"

router = APIRouter()


def get_service(request: Request) -> GatewayService:
    return request.app.state.gateway_service


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    """Liveness probe; never touches the provider."""

    config = request.app.state.settings
    return HealthResponse(
        status="healthy",
        timestamp=iso_timestamp(),
        environment=config.environment,
        cors_origins=list(config.cors_origins),
    )


@router.get("/api/test-cors", response_model=CorsCheckResponse)
async def test_cors(request: Request):
    return CorsCheckResponse(
        message="CORS is working!",
        origin=request.headers.get("origin"),
        timestamp=iso_timestamp(),
    )


@router.post("/api/create-payment-intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    request: Request,
    req: PaymentIntentRequest | None = None,
    service: GatewayService = Depends(get_service),
):
    logger.info("create_payment_intent_request origin=%s", request.headers.get("origin"))
    intent = await service.create_payment_intent(req or PaymentIntentRequest())
    return PaymentIntentResponse(client_secret=intent.client_secret, payment_intent_id=intent.id)


@router.post("/api/create-subscription", response_model=SubscriptionResponse)
async def create_subscription(
    req: SubscriptionRequest | None = None,
    service: GatewayService = Depends(get_service),
):
    subscription = await service.create_subscription(req or SubscriptionRequest())
    return SubscriptionResponse(subscription_id=subscription.id, client_secret=subscription.client_secret)


@router.post("/api/create-customer", response_model=CustomerResponse)
async def create_customer(
    request: Request,
    req: CustomerRequest | None = None,
    service: GatewayService = Depends(get_service),
):
    logger.info("create_customer_request origin=%s", request.headers.get("origin"))
    customer = await service.create_customer(req or CustomerRequest())
    return CustomerResponse(customer_id=customer.id, email=customer.email, name=customer.name)


@router.get("/api/customer/{email}", response_model=CustomerLookupResponse)
async def get_customer(
    email: str,
    request: Request,
    service: GatewayService = Depends(get_service),
):
    """Look up the first customer registered with `email`."""

    logger.info("get_customer_request origin=%s", request.headers.get("origin"))
    customer = await service.get_customer_by_email(email)
    return CustomerLookupResponse(
        customer_id=customer.id,
        email=customer.email,
        name=customer.name,
        created=customer.created,
    )


@router.post("/api/cancel-subscription", response_model=CancelSubscriptionResponse)
async def cancel_subscription(
    req: CancelSubscriptionRequest | None = None,
    service: GatewayService = Depends(get_service),
):
    subscription = await service.cancel_subscription(req or CancelSubscriptionRequest())
    return CancelSubscriptionResponse(
        subscription_id=subscription.id,
        cancel_at_period_end=subscription.cancel_at_period_end,
        current_period_end=subscription.current_period_end,
    )


@router.post(WEBHOOK_PATH, response_model=WebhookAck)
async def stripe_webhook(request: Request):
    """Verify the raw signed body, then dispatch on event type.

    Verification failures answer 400 so the provider retries delivery.
    """

    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    try:
        event = request.app.state.provider.construct_event(payload, signature)
    except WebhookVerificationError as exc:
        webhook_verification_failures_total.inc()
        logger.error("webhook_signature_verification_failed error=%s", exc)
        return PlainTextResponse(f"Webhook Error: {exc}", status_code=400)

    await request.app.state.webhook_dispatcher.dispatch(event)
    return WebhookAck(received=True)
