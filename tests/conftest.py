"""Shared fixtures: in-memory store, fake Stripe gateway, signed webhook payloads."""

import hashlib
import hmac
import itertools
import json
import threading
import time
import uuid

import pytest
from fastapi.testclient import TestClient

from convozo.config import Settings
from convozo.errors import AlreadyProcessed, StoreError
from convozo.main import create_app
from convozo.models.creator import Creator, CreatorSettings, StripeAccount
from convozo.models.fulfillment import MessageRecord
from convozo.services.notifier import EmailDeliveryError
from convozo.services.rate_limiter import SlidingWindowRateLimiter
from convozo.services.stripe_gateway import StripeGateway

WEBHOOK_SECRET = "whsec_test_secret"


class FakeStore:
    """
    Thread-safe stand-in for PostgresStore.
    Enforces the same uniqueness on payments.stripe_checkout_session_id
    that the real schema does.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.creators = {}
        self.settings = {}
        self.accounts = {}
        self.messages = {}
        self.call_bookings = {}
        self.payments = {}
        self.fail_ledger_insert = False
        self.before_fulfill = None

    # --- seeding ---
    def add_creator(
        self,
        slug="jane",
        display_name="Jane Doe",
        is_active=True,
        message_price=1000,
        calls_enabled=False,
        call_price=None,
        call_duration=None,
        account_id="acct_live_123",
        charges_enabled=True,
        with_settings=True,
    ):
        creator = Creator(
            id=str(uuid.uuid4()),
            display_name=display_name,
            slug=slug,
            email=f"{slug}@example.com",
            is_active=is_active,
        )
        self.creators[creator.id] = creator
        if with_settings:
            self.settings[creator.id] = CreatorSettings(
                creator_id=creator.id,
                message_price=message_price,
                calls_enabled=calls_enabled,
                call_price=call_price,
                call_duration=call_duration,
            )
        if account_id:
            self.accounts[creator.id] = StripeAccount(
                creator_id=creator.id,
                stripe_account_id=account_id,
                charges_enabled=charges_enabled,
                payouts_enabled=charges_enabled,
                details_submitted=charges_enabled,
            )
        return creator

    def add_message(self, creator, content="Hello there", sender_email="fan@example.com"):
        message = MessageRecord(
            id=str(uuid.uuid4()),
            creator_id=creator.id,
            sender_name="Fan",
            sender_email=sender_email,
            message_content=content,
            amount_paid=1000,
        )
        self.messages[message.id] = message
        return message

    @property
    def row_count(self):
        return len(self.messages) + len(self.call_bookings) + len(self.payments)

    # --- PostgresStore interface ---
    def ping(self):
        return None

    def get_active_creator_by_slug(self, slug):
        for creator in self.creators.values():
            if creator.slug == slug and creator.is_active:
                return creator
        return None

    def get_creator(self, creator_id):
        return self.creators.get(creator_id)

    def get_creator_settings(self, creator_id):
        return self.settings.get(creator_id)

    def get_stripe_account_for_creator(self, creator_id):
        return self.accounts.get(creator_id)

    def insert_stripe_account(self, creator_id, stripe_account_id):
        with self._lock:
            if creator_id not in self.accounts:
                self.accounts[creator_id] = StripeAccount(
                    creator_id=creator_id, stripe_account_id=stripe_account_id
                )
            return self.accounts[creator_id]

    def update_stripe_account_flags(self, stripe_account_id, charges_enabled, payouts_enabled, details_submitted):
        with self._lock:
            for creator_id, account in self.accounts.items():
                if account.stripe_account_id == stripe_account_id:
                    self.accounts[creator_id] = account.model_copy(
                        update={
                            "charges_enabled": charges_enabled,
                            "payouts_enabled": payouts_enabled,
                            "details_submitted": details_submitted,
                        }
                    )
                    return True
        return False

    def is_session_processed(self, session_id):
        with self._lock:
            processed = session_id in self.payments or any(
                b["stripe_checkout_session_id"] == session_id for b in self.call_bookings.values()
            )
        if self.before_fulfill:
            self.before_fulfill()
        return processed

    def find_fulfillment_by_session(self, session_id):
        payment = self.payments.get(session_id)
        if payment is None:
            return None
        return "message" if payment["message_id"] else "call_booking"

    def fulfill_message(self, message, ledger):
        with self._lock:
            self._check_fence(ledger.stripe_checkout_session_id)
            message_id = str(uuid.uuid4())
            if self.fail_ledger_insert:
                raise StoreError("Database error while writing fulfillment")
            self.messages[message_id] = MessageRecord(id=message_id, **message.model_dump())
            self.payments[ledger.stripe_checkout_session_id] = dict(
                ledger.model_dump(), message_id=message_id, call_booking_id=None
            )
            return message_id

    def fulfill_call_booking(self, booking, ledger):
        with self._lock:
            self._check_fence(ledger.stripe_checkout_session_id)
            booking_id = str(uuid.uuid4())
            if self.fail_ledger_insert:
                raise StoreError("Database error while writing fulfillment")
            self.call_bookings[booking_id] = booking.model_dump()
            self.payments[ledger.stripe_checkout_session_id] = dict(
                ledger.model_dump(), message_id=None, call_booking_id=booking_id
            )
            return booking_id

    def _check_fence(self, session_id):
        if session_id in self.payments:
            raise AlreadyProcessed(session_id)

    def get_message(self, message_id):
        return self.messages.get(message_id)

    def record_reply(self, message_id, reply_content, replied_at):
        message = self.messages.get(message_id)
        if message is None:
            return False
        self.messages[message_id] = message.model_copy(
            update={"reply_content": reply_content, "replied_at": replied_at, "is_handled": True}
        )
        return True

    def mark_message_handled(self, message_id):
        message = self.messages.get(message_id)
        if message is None:
            return False
        self.messages[message_id] = message.model_copy(update={"is_handled": True})
        return True


class FakeGateway(StripeGateway):
    """Real webhook verification, recorded (not sent) provider calls."""

    def __init__(self):
        super().__init__("sk_test_dummy", WEBHOOK_SECRET)
        self.sessions = []
        self.accounts_created = []
        self.links = []
        self.account_flags = {}
        self._ids = itertools.count(1)

    def create_checkout_session(self, params):
        session_id = f"cs_test_{next(self._ids)}"
        self.sessions.append(params)
        return {"id": session_id, "url": f"https://checkout.stripe.com/c/pay/{session_id}"}

    def create_express_account(self, email, creator_id, display_name):
        account_id = f"acct_new_{next(self._ids)}"
        self.accounts_created.append((account_id, email, creator_id, display_name))
        return account_id

    def create_onboarding_link(self, account_id, refresh_url, return_url):
        self.links.append((account_id, refresh_url, return_url))
        return f"https://connect.stripe.com/setup/e/{account_id}/{len(self.links)}"

    def retrieve_account_flags(self, account_id):
        return self.account_flags[account_id]


class FakeEmailClient:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, to, subject, html_body):
        if self.fail:
            raise EmailDeliveryError("Email API failed [503]")
        self.sent.append({"to": to, "subject": subject, "html": html_body})
        return True


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def checkout_completed_event(session_id, metadata, amount_total, payment_status="paid",
                             event_type="checkout.session.completed"):
    return {
        "id": f"evt_{session_id}",
        "object": "event",
        "type": event_type,
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "amount_total": amount_total,
                "payment_intent": f"pi_{session_id}",
                "payment_status": payment_status,
                "metadata": metadata,
            }
        },
    }


def encode_event(event) -> bytes:
    return json.dumps(event).encode("utf-8")


@pytest.fixture
def settings():
    return Settings(
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret=WEBHOOK_SECRET,
        database_url="postgresql://unused",
        platform_fee_percentage=35.0,
        app_url="https://convozo.test",
    )


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def email_client():
    return FakeEmailClient()


@pytest.fixture
def rate_limiter():
    return SlidingWindowRateLimiter(max_requests=10, window_seconds=3600)


@pytest.fixture
def app(settings, store, gateway, email_client, rate_limiter):
    return create_app(
        settings=settings,
        store=store,
        gateway=gateway,
        email_client=email_client,
        rate_limiter=rate_limiter,
    )


@pytest.fixture
def client(app):
    return TestClient(app)
