"""Stripe implementation of the payment provider contract.

Uses the official SDK's `StripeClient` with its async (httpx) transport so a
handler awaiting Stripe never blocks other in-flight requests. Network retries
are disabled: a failed call surfaces immediately.
"""

import hashlib
import hmac
import time

import stripe
from pydantic import ValidationError

from paygate.common.config import GatewaySettings
from paygate.services.provider.base import (
    Customer,
    PaymentIntent,
    PaymentProvider,
    ProviderError,
    Subscription,
    WebhookEvent,
    WebhookVerificationError,
)


def _error_message(exc: stripe.StripeError) -> str:
    return exc.user_message or str(exc)


class StripeGateway(PaymentProvider):
    """Forwards gateway operations to the Stripe API."""

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        webhook_tolerance_seconds: int = 300,
        timeout_seconds: float = 80.0,
        client=None,
    ) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.webhook_tolerance_seconds = webhook_tolerance_seconds
        self.timeout_seconds = timeout_seconds
        self._client = client

    @classmethod
    def from_settings(cls, config: GatewaySettings) -> "StripeGateway":
        return cls(
            api_key=config.stripe_secret_key,
            webhook_secret=config.stripe_webhook_secret,
            webhook_tolerance_seconds=config.stripe_webhook_tolerance_seconds,
            timeout_seconds=config.stripe_timeout_seconds,
        )

    def client(self):
        # Built on first use so the app can boot without credentials.
        if self._client is None:
            if not self.api_key:
                raise ProviderError("Stripe secret key is not configured")
            self._client = stripe.StripeClient(
                self.api_key,
                max_network_retries=0,
                http_client=stripe.HTTPXClient(timeout=self.timeout_seconds),
            )
        return self._client

    async def create_payment_intent(self, amount: int, currency: str, metadata: dict[str, str]) -> PaymentIntent:
        try:
            intent = await self.client().payment_intents.create_async(
                params={
                    "amount": amount,
                    "currency": currency,
                    "metadata": metadata,
                    "automatic_payment_methods": {"enabled": True},
                }
            )
        except stripe.StripeError as exc:
            raise ProviderError(_error_message(exc)) from exc
        return PaymentIntent(id=intent.id, client_secret=intent.client_secret)

    async def attach_payment_method(self, payment_method_id: str, customer_id: str) -> None:
        try:
            await self.client().payment_methods.attach_async(
                payment_method_id,
                params={"customer": customer_id},
            )
        except stripe.StripeError as exc:
            raise ProviderError(_error_message(exc)) from exc

    async def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> None:
        try:
            await self.client().customers.update_async(
                customer_id,
                params={"invoice_settings": {"default_payment_method": payment_method_id}},
            )
        except stripe.StripeError as exc:
            raise ProviderError(_error_message(exc)) from exc

    async def create_subscription(self, customer_id: str, price_id: str) -> Subscription:
        try:
            subscription = await self.client().subscriptions.create_async(
                params={
                    "customer": customer_id,
                    "items": [{"price": price_id}],
                    "payment_behavior": "default_incomplete",
                    "expand": ["latest_invoice.payment_intent"],
                }
            )
        except stripe.StripeError as exc:
            raise ProviderError(_error_message(exc)) from exc
        invoice = getattr(subscription, "latest_invoice", None)
        payment_intent = getattr(invoice, "payment_intent", None) if invoice is not None else None
        return Subscription(
            id=subscription.id,
            client_secret=getattr(payment_intent, "client_secret", None) if payment_intent is not None else None,
            cancel_at_period_end=bool(getattr(subscription, "cancel_at_period_end", False)),
            current_period_end=getattr(subscription, "current_period_end", None),
        )

    async def cancel_subscription_at_period_end(self, subscription_id: str) -> Subscription:
        try:
            subscription = await self.client().subscriptions.update_async(
                subscription_id,
                params={"cancel_at_period_end": True},
            )
        except stripe.StripeError as exc:
            raise ProviderError(_error_message(exc)) from exc
        return Subscription(
            id=subscription.id,
            cancel_at_period_end=bool(subscription.cancel_at_period_end),
            current_period_end=getattr(subscription, "current_period_end", None),
        )

    async def create_customer(self, email: str, name: str | None, metadata: dict[str, str]) -> Customer:
        params = {"email": email, "metadata": metadata}
        if name is not None:
            params["name"] = name
        try:
            customer = await self.client().customers.create_async(params=params)
        except stripe.StripeError as exc:
            raise ProviderError(_error_message(exc)) from exc
        return Customer(id=customer.id, email=customer.email, name=customer.name, created=customer.created)

    async def find_customer_by_email(self, email: str) -> Customer | None:
        try:
            customers = await self.client().customers.list_async(params={"email": email, "limit": 1})
        except stripe.StripeError as exc:
            raise ProviderError(_error_message(exc)) from exc
        if not customers.data:
            return None
        customer = customers.data[0]
        return Customer(id=customer.id, email=customer.email, name=customer.name, created=customer.created)

    def construct_event(self, payload: bytes, signature: str | None) -> WebhookEvent:
        if not self.webhook_secret:
            raise WebhookVerificationError("Webhook signing secret is not configured")
        if not signature:
            raise WebhookVerificationError("No stripe-signature header value was provided.")
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise WebhookVerificationError("Webhook payload must be UTF-8 encoded") from exc
        try:
            stripe.WebhookSignature.verify_header(text, signature, self.webhook_secret, self.webhook_tolerance_seconds)
        except stripe.SignatureVerificationError as exc:
            raise WebhookVerificationError(_error_message(exc)) from exc
        try:
            return WebhookEvent.model_validate_json(text)
        except ValidationError as exc:
            raise WebhookVerificationError(f"Invalid payload: {exc.errors()[0]['msg']}") from exc

    async def close(self) -> None:
        self._client = None


def sign_webhook_payload(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    """Build a `stripe-signature` header value (`t=...,v1=...`) for `payload`.

    Used by local tooling and tests to produce deliveries that verify.
    """

    timestamp = int(time.time()) if timestamp is None else timestamp
    signed_payload = f"{timestamp}.".encode("utf-8") + payload
    signature = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"
