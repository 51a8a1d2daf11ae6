import hashlib
import hmac
import json
import time
import uuid
from types import SimpleNamespace

import pytest
import stripe

from storefront.models import Order, OrderStatus, PaymentStatus
from storefront.services import payments as payment_service
from storefront.services.payments import to_minor_units

WEBHOOK_SECRET = "whsec_test_secret"


def _stripe_event(intent_id, event_type="payment_intent.succeeded"):
    return json.dumps({
        "id": f"evt_{uuid.uuid4().hex[:12]}",
        "object": "event",
        "type": event_type,
        "data": {"object": {"id": intent_id, "object": "payment_intent"}},
    }).encode()


def _sign(payload: bytes, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def _post_webhook(client, payload, signature):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["stripe-signature"] = signature
    return client.post("/api/payment/stripe/webhook", content=payload, headers=headers)


class FakeResponse:
    def __init__(self, status_code, data):
        self.status_code = status_code
        self._data = data
        self.text = json.dumps(data)

    def json(self):
        return self._data


# =====================================================
# AMOUNTS
# =====================================================

@pytest.mark.parametrize("amount, expected", [(19.99, 1999), (10, 1000), (0.125, 13), (87.5, 8750)])
def test_to_minor_units(amount, expected):
    assert to_minor_units(amount) == expected


# =====================================================
# STRIPE: PAYMENT INTENT
# =====================================================

def test_create_payment_intent_stores_intent_id(client, db, auth, user, make_order, monkeypatch):
    order = make_order(user)
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(id="pi_123", client_secret="pi_123_secret_abc")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)

    response = client.post(
        "/api/payment/stripe/create-payment-intent",
        json={"orderId": str(order.id), "amount": 19.99},
        headers=auth(user),
    )

    assert response.status_code == 200
    assert response.json() == {"clientSecret": "pi_123_secret_abc"}
    assert captured["amount"] == 1999
    assert captured["currency"] == "usd"
    assert captured["metadata"]["orderId"] == str(order.id)

    db.refresh(order)
    assert order.payment_intent_id == "pi_123"


def test_create_payment_intent_for_foreign_order(client, auth, user, other_user, make_order, monkeypatch):
    order = make_order(user)
    monkeypatch.setattr(stripe.PaymentIntent, "create", lambda **kwargs: pytest.fail("provider called"))

    response = client.post(
        "/api/payment/stripe/create-payment-intent",
        json={"orderId": str(order.id), "amount": 10},
        headers=auth(other_user),
    )

    assert response.status_code == 404


def test_create_payment_intent_provider_error(client, db, auth, user, make_order, monkeypatch):
    order = make_order(user)

    def failing_create(**kwargs):
        raise stripe.StripeError("card network unavailable")

    monkeypatch.setattr(stripe.PaymentIntent, "create", failing_create)

    response = client.post(
        "/api/payment/stripe/create-payment-intent",
        json={"orderId": str(order.id), "amount": 10},
        headers=auth(user),
    )

    assert response.status_code == 500
    assert response.json() == {"message": "Payment intent creation failed"}
    db.refresh(order)
    assert order.payment_intent_id is None


# =====================================================
# STRIPE: WEBHOOK
# =====================================================

def test_webhook_marks_order_paid(client, db, user, make_order):
    order = make_order(user, payment_intent_id="pi_live")
    payload = _stripe_event("pi_live")

    response = _post_webhook(client, payload, _sign(payload))

    assert response.status_code == 200
    assert response.json() == {"received": True}
    db.refresh(order)
    assert order.status == OrderStatus.paid
    assert order.payment_status == PaymentStatus.completed


def test_webhook_replay_is_a_no_op(client, db, user, make_order, monkeypatch):
    order = make_order(user, payment_intent_id="pi_replay")
    payload = _stripe_event("pi_replay")

    updates = []
    real_mark_paid = payment_service._mark_paid
    monkeypatch.setattr(
        payment_service,
        "_mark_paid",
        lambda session, *criteria: updates.append(real_mark_paid(session, *criteria)) or updates[-1],
    )

    first = _post_webhook(client, payload, _sign(payload))
    second = _post_webhook(client, payload, _sign(payload))

    assert first.status_code == 200
    assert second.status_code == 200
    assert updates == [1, 0]
    db.refresh(order)
    assert order.status == OrderStatus.paid


def test_webhook_replay_does_not_revert_later_status(client, db, user, make_order):
    order = make_order(user, payment_intent_id="pi_shipped")
    payload = _stripe_event("pi_shipped")
    _post_webhook(client, payload, _sign(payload))

    order.status = OrderStatus.shipped
    db.commit()

    response = _post_webhook(client, payload, _sign(payload))

    assert response.status_code == 200
    db.refresh(order)
    assert order.status == OrderStatus.shipped


def test_webhook_with_bad_signature_changes_nothing(client, db, user, make_order):
    order = make_order(user, payment_intent_id="pi_forged")
    payload = _stripe_event("pi_forged")

    response = _post_webhook(client, payload, _sign(payload, secret="whsec_wrong"))

    assert response.status_code == 400
    assert response.json()["message"].startswith("Webhook Error")
    db.refresh(order)
    assert order.status == OrderStatus.pending
    assert order.payment_status == PaymentStatus.pending


def test_webhook_without_signature_header(client, db, user, make_order):
    order = make_order(user, payment_intent_id="pi_unsigned")

    response = _post_webhook(client, _stripe_event("pi_unsigned"), None)

    assert response.status_code == 400
    db.refresh(order)
    assert order.status == OrderStatus.pending


def test_webhook_for_unrelated_intent_changes_no_rows(client, db, user, make_order):
    order = make_order(user, payment_intent_id="pi_mine")
    payload = _stripe_event("pi_someone_else")

    response = _post_webhook(client, payload, _sign(payload))

    assert response.status_code == 200
    db.refresh(order)
    assert order.status == OrderStatus.pending
    assert order.payment_status == PaymentStatus.pending


def test_webhook_ignores_other_event_types(client, db, user, make_order):
    order = make_order(user, payment_intent_id="pi_failed")
    payload = _stripe_event("pi_failed", event_type="payment_intent.payment_failed")

    response = _post_webhook(client, payload, _sign(payload))

    assert response.status_code == 200
    db.refresh(order)
    assert order.payment_status == PaymentStatus.pending


# =====================================================
# PAYPAL
# =====================================================

def test_paypal_create_order_stores_provider_id(client, db, auth, user, make_order, monkeypatch):
    order = make_order(user)
    calls = []

    def fake_post(url, **kwargs):
        calls.append((url, kwargs))
        return FakeResponse(201, {"id": "PAYPAL-1", "status": "CREATED"})

    monkeypatch.setattr(payment_service.requests, "post", fake_post)

    response = client.post(
        "/api/payment/paypal/create-order",
        json={"orderId": str(order.id), "amount": 42.5},
        headers=auth(user),
    )

    assert response.status_code == 200
    assert response.json() == {"id": "PAYPAL-1", "status": "CREATED"}

    url, kwargs = calls[0]
    assert url == "https://paypal.test/v2/checkout/orders"
    assert kwargs["auth"] == ("paypal-client", "paypal-secret")
    unit = kwargs["json"]["purchase_units"][0]
    assert unit["amount"] == {"currency_code": "USD", "value": "42.50"}
    assert unit["reference_id"] == str(order.id)

    db.refresh(order)
    assert order.paypal_order_id == "PAYPAL-1"


def test_paypal_capture_matches_provider_id(client, db, auth, user, make_order, monkeypatch):
    order = make_order(user, paypal_order_id="PAYPAL-2")
    monkeypatch.setattr(
        payment_service.requests,
        "post",
        lambda url, **kwargs: FakeResponse(201, {
            "id": "PAYPAL-2",
            "status": "COMPLETED",
            "purchase_units": [{"reference_id": "not-a-local-id"}],
        }),
    )

    response = client.post("/api/payment/paypal/capture-order", json={"orderID": "PAYPAL-2"}, headers=auth(user))

    assert response.status_code == 200
    assert response.json()["status"] == "COMPLETED"
    db.refresh(order)
    assert order.status == OrderStatus.paid
    assert order.payment_status == PaymentStatus.completed


def test_paypal_capture_matches_correlation_reference(client, db, auth, user, make_order, monkeypatch):
    order = make_order(user)
    untouched = make_order(user)
    monkeypatch.setattr(
        payment_service.requests,
        "post",
        lambda url, **kwargs: FakeResponse(201, {
            "id": "PAYPAL-UNKNOWN",
            "purchase_units": [{"reference_id": str(order.id)}],
        }),
    )

    response = client.post("/api/payment/paypal/capture-order", json={"orderID": "PAYPAL-UNKNOWN"}, headers=auth(user))

    assert response.status_code == 200
    db.refresh(order)
    db.refresh(untouched)
    assert order.status == OrderStatus.paid
    assert untouched.status == OrderStatus.pending


def test_paypal_capture_failure(client, db, auth, user, make_order, monkeypatch):
    order = make_order(user, paypal_order_id="PAYPAL-3")
    monkeypatch.setattr(
        payment_service.requests,
        "post",
        lambda url, **kwargs: FakeResponse(422, {"name": "UNPROCESSABLE_ENTITY"}),
    )

    response = client.post("/api/payment/paypal/capture-order", json={"orderID": "PAYPAL-3"}, headers=auth(user))

    assert response.status_code == 500
    assert response.json() == {"message": "PayPal order capture failed"}
    db.refresh(order)
    assert order.status == OrderStatus.pending


def test_paypal_capture_requires_auth(client):
    response = client.post("/api/payment/paypal/capture-order", json={"orderID": "PAYPAL-4"})
    assert response.status_code == 401


def test_order_count_unchanged_by_payment_flows(client, db, user, make_order):
    make_order(user, payment_intent_id="pi_count")
    payload = _stripe_event("pi_count")

    _post_webhook(client, payload, _sign(payload))

    assert db.query(Order).count() == 1


def test_paypal_capture_tolerates_malformed_purchase_units(client, db, auth, user, make_order, monkeypatch):
    order = make_order(user, paypal_order_id="PAYPAL-5")
    monkeypatch.setattr(
        payment_service.requests,
        "post",
        lambda url, **kwargs: FakeResponse(201, {"id": "PAYPAL-5", "purchase_units": ["garbage"]}),
    )

    response = client.post("/api/payment/paypal/capture-order", json={"orderID": "PAYPAL-5"}, headers=auth(user))

    assert response.status_code == 200
    db.refresh(order)
    assert order.status == OrderStatus.paid
