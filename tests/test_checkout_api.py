"""Checkout session creation tests (paid messages and call bookings)."""

import dataclasses

import pytest
from fastapi.testclient import TestClient

from convozo.main import create_app
from convozo.models.checkout import parse_intent


def message_body(**overrides):
    body = {
        "creator_slug": "jane",
        "message_content": "Can you review my portfolio?",
        "sender_name": "Sam",
        "sender_email": "sam@example.com",
        "sender_instagram": "@sam",
        "message_type": "message",
        "price": 2500,
    }
    body.update(overrides)
    return body


def call_body(**overrides):
    body = {
        "creator_slug": "jane",
        "booker_name": "Sam",
        "booker_email": "sam@example.com",
        "booker_instagram": "@sam",
        "message_content": "Weekday evenings work best",
        "price": 5000,
    }
    body.update(overrides)
    return body


@pytest.fixture
def creator(store):
    return store.add_creator(
        slug="jane", message_price=1000, calls_enabled=True, call_price=5000, call_duration=30
    )


# -------------------------------------------------
# PAID MESSAGE
# -------------------------------------------------
def test_message_checkout_creates_session_with_fee_split(client, gateway, creator):
    resp = client.post("/create-checkout-session", json=message_body())

    assert resp.status_code == 200
    data = resp.json()
    assert data["sessionId"] == "cs_test_1"
    assert data["url"].startswith("https://checkout.stripe.com/")

    params = gateway.sessions[0]
    assert params["mode"] == "payment"
    assert params["customer_email"] == "sam@example.com"
    assert params["line_items"][0]["price_data"]["unit_amount"] == 2500
    assert params["line_items"][0]["price_data"]["product_data"]["name"] == "Paid DM to Jane Doe"
    assert params["payment_intent_data"] == {
        "application_fee_amount": 875,
        "transfer_data": {"destination": "acct_live_123"},
    }
    assert params["success_url"] == "https://convozo.test/success?session_id={CHECKOUT_SESSION_ID}"
    assert params["cancel_url"] == "https://convozo.test/jane"


def test_message_checkout_metadata_carries_intent(client, gateway, creator):
    client.post("/create-checkout-session", json=message_body())

    metadata = gateway.sessions[0]["metadata"]
    assert all(isinstance(v, str) for v in metadata.values())
    intent = parse_intent(metadata)
    assert intent.kind == "message"
    assert intent.creator_id == creator.id
    assert intent.amount == 2500
    assert intent.message_content == "Can you review my portfolio?"


def test_checkout_never_writes_fulfillment_rows(client, store, creator):
    client.post("/create-checkout-session", json=message_body())
    client.post("/create-call-booking-session", json=call_body())

    assert store.row_count == 0


def test_unknown_or_inactive_creator_is_not_found(client, store, gateway):
    store.add_creator(slug="gone", is_active=False)

    for slug in ("nobody", "gone"):
        resp = client.post("/create-checkout-session", json=message_body(creator_slug=slug))
        assert resp.status_code == 404
        assert resp.json() == {"error": "Creator not found"}
    assert gateway.sessions == []


def test_validation_error_is_400_with_field(client, gateway, creator):
    resp = client.post("/create-checkout-session", json=message_body(sender_email="bad"))

    assert resp.status_code == 400
    assert "sender_email" in resp.json()["error"]
    assert gateway.sessions == []


def test_non_json_body_is_400(client, creator):
    resp = client.post(
        "/create-checkout-session", content=b"not json", headers={"content-type": "application/json"}
    )
    assert resp.status_code == 400
    assert "error" in resp.json()


def test_price_below_creator_price_rejected(client, gateway, creator):
    resp = client.post("/create-checkout-session", json=message_body(price=500))

    assert resp.status_code == 400
    assert "price" in resp.json()["error"]
    assert gateway.sessions == []


# -------------------------------------------------
# PAYOUT GATING
# -------------------------------------------------
def test_creator_without_stripe_account_cannot_be_paid(client, store, gateway):
    store.add_creator(slug="jane", account_id=None)

    resp = client.post("/create-checkout-session", json=message_body())

    assert resp.status_code == 400
    assert resp.json() == {"error": "Creator payment setup incomplete"}
    assert gateway.sessions == []


def test_creator_with_charges_disabled_cannot_be_paid(client, store, gateway):
    store.add_creator(slug="jane", charges_enabled=False)

    resp = client.post("/create-checkout-session", json=message_body())

    assert resp.status_code == 400
    assert gateway.sessions == []


def test_sandbox_account_refused_unless_allowed(client, store, gateway):
    store.add_creator(slug="jane", account_id="acct_test_local")

    resp = client.post("/create-checkout-session", json=message_body())

    assert resp.status_code == 400
    assert gateway.sessions == []


def test_sandbox_account_skips_fee_routing_when_allowed(settings, store, gateway, email_client, rate_limiter):
    dev_settings = dataclasses.replace(settings, allow_test_payout_accounts=True)
    client = TestClient(create_app(dev_settings, store, gateway, email_client, rate_limiter))
    store.add_creator(slug="jane", account_id="acct_test_local")

    resp = client.post("/create-checkout-session", json=message_body())

    assert resp.status_code == 200
    assert "payment_intent_data" not in gateway.sessions[0]


# -------------------------------------------------
# RATE LIMITING
# -------------------------------------------------
def test_eleventh_request_in_window_is_rate_limited(client, gateway, creator):
    for _ in range(10):
        assert client.post("/create-checkout-session", json=message_body()).status_code == 200

    resp = client.post("/create-checkout-session", json=message_body())

    assert resp.status_code == 429
    assert int(resp.headers["Retry-After"]) > 0
    assert "error" in resp.json()
    assert len(gateway.sessions) == 10


def test_rate_limit_is_per_email(client, creator):
    for _ in range(10):
        client.post("/create-checkout-session", json=message_body())

    resp = client.post("/create-checkout-session", json=message_body(sender_email="other@example.com"))
    assert resp.status_code == 200


# -------------------------------------------------
# CALL BOOKING
# -------------------------------------------------
def test_call_checkout_creates_session(client, gateway, creator):
    resp = client.post("/create-call-booking-session", json=call_body())

    assert resp.status_code == 200
    assert resp.json() == {"url": "https://checkout.stripe.com/c/pay/cs_test_1"}

    params = gateway.sessions[0]
    assert params["line_items"][0]["price_data"]["product_data"] == {
        "name": "Video Call with Jane Doe",
        "description": "30 minute video call",
    }
    assert params["payment_intent_data"]["application_fee_amount"] == 1750
    assert params["success_url"].endswith("&type=call")

    intent = parse_intent(params["metadata"])
    assert intent.kind == "call_booking"
    assert intent.duration == 30
    assert intent.message_content == "Weekday evenings work best"


def test_call_checkout_feature_disabled(client, store, gateway):
    store.add_creator(slug="jane", calls_enabled=False)

    resp = client.post("/create-call-booking-session", json=call_body())

    assert resp.status_code == 400
    assert resp.json() == {"error": "Call bookings are not enabled for this creator"}
    assert gateway.sessions == []


def test_call_checkout_requires_contact_handle(client, gateway, creator):
    resp = client.post("/create-call-booking-session", json=call_body(booker_instagram=""))

    assert resp.status_code == 400
    assert "booker_instagram" in resp.json()["error"]
    assert gateway.sessions == []


def test_call_checkout_shares_rate_limit(client, creator):
    for _ in range(10):
        client.post("/create-checkout-session", json=message_body())

    resp = client.post("/create-call-booking-session", json=call_body())
    assert resp.status_code == 429


# -------------------------------------------------
# SUCCESS PAGE LOOKUP
# -------------------------------------------------
def test_checkout_session_status_before_fulfillment(client):
    resp = client.get("/checkout-session/cs_test_unknown")

    assert resp.status_code == 200
    assert resp.json() == {"session_id": "cs_test_unknown", "fulfilled": False, "kind": None}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/db/test").json() == {"db": "ok"}
