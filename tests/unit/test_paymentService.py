"""
Unit tests for the Stripe payment gateway boundary.

All Stripe SDK calls are patched on ``stripe.PaymentIntent``.
"""

from unittest.mock import MagicMock, patch

import pytest
import stripe

from src.integrations.stripe.paymentService import (
    GatewayStatus,
    PaymentError,
    create_checkout_intent,
    map_intent_status,
    query_status,
)
from src.models.order import Order, Payment, PaymentMethod, PaymentStatus

pytestmark = pytest.mark.asyncio


def _intent(intent_id="pi_1", status="requires_payment_method", amount=150_000):
    intent = MagicMock()
    intent.id = intent_id
    intent.client_secret = f"{intent_id}_secret_abc"
    intent.status = status
    intent.amount = amount
    intent.currency = "idr"
    return intent


@pytest.fixture
def gateway_order() -> Order:
    payment = MagicMock(spec=Payment)
    payment.id = 11
    payment.version = 1
    payment.method = PaymentMethod.GATEWAY
    payment.status = PaymentStatus.PENDING
    payment.amount = 150_000
    payment.gateway_reference = None

    order = MagicMock(spec=Order)
    order.id = 7
    order.order_number = 1007
    order.payment = payment
    return order


@pytest.fixture
def payment_intent():
    with patch("stripe.PaymentIntent") as mock:
        yield mock


@pytest.mark.parametrize(
    "stripe_status, expected",
    [
        ("succeeded", GatewayStatus.PAID),
        ("canceled", GatewayStatus.FAILED),
        ("processing", GatewayStatus.PENDING),
        ("requires_payment_method", GatewayStatus.PENDING),
        ("requires_action", GatewayStatus.PENDING),
    ],
)
async def test_map_intent_status(stripe_status, expected):
    assert map_intent_status(stripe_status) == expected


class TestCreateCheckoutIntent:

    async def test_creates_intent_with_order_metadata(self, payment_intent, gateway_order):
        payment_intent.create.return_value = _intent()

        checkout = await create_checkout_intent(gateway_order)

        assert checkout.intent_id == "pi_1"
        assert checkout.token == "pi_1_secret_abc"
        assert checkout.amount == 150_000
        kwargs = payment_intent.create.call_args.kwargs
        assert kwargs["amount"] == 150_000
        assert kwargs["metadata"] == {"order_id": "7", "order_number": "1007"}
        assert kwargs["idempotency_key"] == "order-7-payment-11-v1"
        payment_intent.retrieve.assert_not_called()

    async def test_reuses_open_intent(self, payment_intent, gateway_order):
        gateway_order.payment.gateway_reference = "pi_existing"
        payment_intent.retrieve.return_value = _intent("pi_existing")

        checkout = await create_checkout_intent(gateway_order)

        assert checkout.intent_id == "pi_existing"
        payment_intent.create.assert_not_called()

    async def test_replaces_canceled_intent(self, payment_intent, gateway_order):
        gateway_order.payment.gateway_reference = "pi_old"
        payment_intent.retrieve.return_value = _intent("pi_old", status="canceled")
        payment_intent.create.return_value = _intent("pi_new")

        checkout = await create_checkout_intent(gateway_order)

        assert checkout.intent_id == "pi_new"

    async def test_rejects_non_positive_amount(self, payment_intent, gateway_order):
        gateway_order.payment.amount = 0

        with pytest.raises(PaymentError):
            await create_checkout_intent(gateway_order)
        payment_intent.create.assert_not_called()

    async def test_stripe_error_becomes_payment_error(self, payment_intent, gateway_order):
        payment_intent.create.side_effect = stripe.APIConnectionError("network down")

        with pytest.raises(PaymentError) as exc_info:
            await create_checkout_intent(gateway_order)
        assert "network down" in exc_info.value.message


class TestQueryStatus:

    async def test_succeeded_is_paid(self, payment_intent):
        payment_intent.retrieve.return_value = _intent(status="succeeded")
        assert await query_status("pi_1") == GatewayStatus.PAID
        payment_intent.retrieve.assert_called_once_with("pi_1")

    async def test_retrieve_failure(self, payment_intent):
        payment_intent.retrieve.side_effect = stripe.APIConnectionError("timeout")
        with pytest.raises(PaymentError):
            await query_status("pi_1")
