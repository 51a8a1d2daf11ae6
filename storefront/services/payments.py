import os
import uuid
import logging
from decimal import Decimal, ROUND_HALF_UP

import requests
import stripe
from sqlalchemy import or_
from sqlalchemy.orm import Session

from storefront.errors import NotFound, PaymentProviderError, SignatureInvalid
from storefront.models import Order, OrderStatus, PaymentStatus

logger = logging.getLogger(__name__)

# =====================================================
# PROVIDER CONFIG (ENV ONLY)
# =====================================================

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
STRIPE_CURRENCY = os.getenv("STRIPE_CURRENCY", "usd")

PAYPAL_API_URL = os.getenv("PAYPAL_API_URL", "https://api-m.sandbox.paypal.com")
PAYPAL_CLIENT_ID = os.getenv("PAYPAL_CLIENT_ID")
PAYPAL_SECRET = os.getenv("PAYPAL_SECRET")
PAYPAL_CURRENCY = os.getenv("PAYPAL_CURRENCY", "USD")

PROVIDER_TIMEOUT = 15

stripe.api_key = STRIPE_SECRET_KEY


# =====================================================
# HELPERS
# =====================================================

def to_minor_units(amount: float) -> int:
    """19.99 -> 1999. Half-cents round up."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _parse_uuid(value) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def _get_owned_order(db: Session, order_id, user_id) -> Order:
    order = (
        db.query(Order)
        .filter(Order.id == order_id, Order.user_id == user_id)
        .first()
    )
    if not order:
        raise NotFound("Order not found")
    return order


def _mark_paid(db: Session, *criteria) -> int:
    """
    Match-and-set: flips matching orders to paid/completed in one UPDATE.
    Orders already completed are skipped, so replays change nothing.
    """
    updated = (
        db.query(Order)
        .filter(*criteria, Order.payment_status != PaymentStatus.completed)
        .update(
            {
                Order.status: OrderStatus.paid,
                Order.payment_status: PaymentStatus.completed,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    return updated


# =====================================================
# STRIPE
# =====================================================

def create_stripe_intent(db: Session, order_id, amount: float, user_id) -> dict:
    order = _get_owned_order(db, order_id, user_id)

    try:
        intent = stripe.PaymentIntent.create(
            amount=to_minor_units(amount),
            currency=STRIPE_CURRENCY,
            metadata={"integration_check": "accept_a_payment", "orderId": str(order.id)},
        )
    except stripe.StripeError as exc:
        logger.error("Stripe payment intent failed | order_id=%s | error=%s", order.id, str(exc))
        raise PaymentProviderError("Payment intent creation failed") from exc

    order.payment_intent_id = intent.id
    db.commit()

    logger.info("Stripe payment intent created | order_id=%s | intent_id=%s", order.id, intent.id)

    return {"clientSecret": intent.client_secret}


def handle_stripe_webhook(db: Session, payload: bytes, signature: str | None) -> dict:
    """
    Verifies the signature before anything else; an invalid or missing
    signature never reaches the database.
    """
    if not STRIPE_WEBHOOK_SECRET:
        logger.error("Stripe webhook secret not configured")
        raise PaymentProviderError("Stripe webhook is not configured")

    if not signature:
        raise SignatureInvalid("Webhook Error: missing stripe-signature header")

    try:
        event = stripe.Webhook.construct_event(payload, signature, STRIPE_WEBHOOK_SECRET)
    except (ValueError, stripe.SignatureVerificationError) as exc:
        logger.warning("Stripe webhook rejected | error=%s", str(exc))
        raise SignatureInvalid(f"Webhook Error: {exc}") from exc

    if event["type"] == "payment_intent.succeeded":
        intent_id = event["data"]["object"]["id"]
        updated = _mark_paid(db, Order.payment_intent_id == intent_id)
        logger.info("Stripe payment succeeded | intent_id=%s | orders_updated=%s", intent_id, updated)
    else:
        logger.info("Stripe webhook ignored | type=%s", event["type"])

    return {"received": True}


# =====================================================
# PAYPAL
# =====================================================

def _paypal_post(path: str, body: dict, failure_message: str) -> dict:
    if not PAYPAL_CLIENT_ID or not PAYPAL_SECRET:
        logger.error("PayPal not configured | api_url=%s", PAYPAL_API_URL)
        raise PaymentProviderError(failure_message)

    try:
        response = requests.post(
            f"{PAYPAL_API_URL}{path}",
            json=body,
            auth=(PAYPAL_CLIENT_ID, PAYPAL_SECRET),
            headers={"Content-Type": "application/json"},
            timeout=PROVIDER_TIMEOUT,
        )
    except requests.RequestException as exc:
        logger.error("PayPal request error | path=%s | error=%s", path, str(exc))
        raise PaymentProviderError(failure_message) from exc

    if response.status_code >= 400:
        logger.error(
            "PayPal request failed | path=%s | status=%s | response=%s",
            path,
            response.status_code,
            response.text,
        )
        raise PaymentProviderError(failure_message)

    return response.json()


def create_paypal_order(db: Session, order_id, amount: float, user_id) -> dict:
    order = _get_owned_order(db, order_id, user_id)

    data = _paypal_post(
        "/v2/checkout/orders",
        {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "amount": {
                        "currency_code": PAYPAL_CURRENCY,
                        "value": f"{amount:.2f}",
                    },
                    "reference_id": str(order.id),
                },
            ],
        },
        "PayPal order creation failed",
    )

    order.paypal_order_id = data["id"]
    db.commit()

    logger.info("PayPal order created | order_id=%s | paypal_order_id=%s", order.id, data["id"])
    return data


def capture_paypal_order(db: Session, paypal_order_id: str) -> dict:
    data = _paypal_post(
        f"/v2/checkout/orders/{paypal_order_id}/capture",
        {},
        "PayPal order capture failed",
    )

    provider_id = data.get("id")
    units = data.get("purchase_units") or []
    first_unit = units[0] if isinstance(units, list) and units else None
    reference = _parse_uuid(first_unit.get("reference_id")) if isinstance(first_unit, dict) else None

    # Either identifier may be the authoritative one
    matches = []
    if provider_id:
        matches.append(Order.paypal_order_id == provider_id)
    if reference:
        matches.append(Order.id == reference)

    updated = _mark_paid(db, or_(*matches)) if matches else 0
    logger.info(
        "PayPal order captured | paypal_order_id=%s | reference=%s | orders_updated=%s",
        provider_id,
        reference,
        updated,
    )
    return data
