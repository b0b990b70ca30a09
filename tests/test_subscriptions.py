"""Subscription creation and cancellation."""

import pytest

from paygate.services.provider.base import ProviderError


@pytest.mark.parametrize("body", [{}, {"customerId": "cus_1"}, {"priceId": "price_1"}, {"customerId": "", "priceId": "p"}])
def test_create_subscription_requires_customer_and_price(client, provider, body):
    resp = client.post("/api/create-subscription", json=body)

    assert resp.status_code == 400
    assert resp.json() == {"error": "Customer ID and Price ID are required"}
    assert provider.calls == []


def test_create_subscription_without_payment_method(client, provider):
    resp = client.post("/api/create-subscription", json={"customerId": "cus_1", "priceId": "price_1"})

    assert resp.status_code == 200
    assert resp.json() == {"subscriptionId": "sub_123", "clientSecret": "pi_sub_secret"}
    assert provider.operations() == ["create_subscription"]


def test_payment_method_is_attached_and_made_default_first(client, provider):
    resp = client.post(
        "/api/create-subscription",
        json={"customerId": "cus_1", "priceId": "price_1", "paymentMethodId": "pm_1"},
    )

    assert resp.status_code == 200
    assert provider.calls == [
        ("attach_payment_method", "pm_1", "cus_1"),
        ("set_default_payment_method", "cus_1", "pm_1"),
        ("create_subscription", "cus_1", "price_1"),
    ]


def test_attach_failure_aborts_subscription(client, provider):
    provider.failures["attach_payment_method"] = ProviderError("No such PaymentMethod: 'pm_1'")

    resp = client.post(
        "/api/create-subscription",
        json={"customerId": "cus_1", "priceId": "price_1", "paymentMethodId": "pm_1"},
    )

    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to create subscription", "message": "No such PaymentMethod: 'pm_1'"}
    assert provider.operations() == ["attach_payment_method"]


def test_cancel_subscription_requires_id(client, provider):
    resp = client.post("/api/cancel-subscription", json={})

    assert resp.status_code == 400
    assert resp.json() == {"error": "Subscription ID is required"}
    assert provider.calls == []


def test_cancel_subscription_at_period_end(client, provider):
    resp = client.post("/api/cancel-subscription", json={"subscriptionId": "sub_9"})

    assert resp.status_code == 200
    assert resp.json() == {
        "subscriptionId": "sub_9",
        "cancelAtPeriodEnd": True,
        "currentPeriodEnd": 1_735_689_600,
    }
    assert provider.calls == [("cancel_subscription", "sub_9")]


def test_cancel_subscription_provider_failure(client, provider):
    provider.failures["cancel_subscription"] = ProviderError("No such subscription: 'sub_9'")

    resp = client.post("/api/cancel-subscription", json={"subscriptionId": "sub_9"})

    assert resp.status_code == 500
    assert resp.json()["error"] == "Failed to cancel subscription"
