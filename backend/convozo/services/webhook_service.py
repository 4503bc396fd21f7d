# backend/convozo/services/webhook_service.py

"""
Stripe webhook consumer: the only writer of fulfilled purchases.

Stripe delivers at-least-once, so the same checkout session can arrive
several times, possibly concurrently. The `payments` row keyed by the
checkout session id is the fence: it is checked before writing, and the
unique constraint on it settles any race that slips past the check.
"""

import logging
from typing import Any, Dict, Optional

from convozo.config import Settings
from convozo.errors import AlreadyProcessed, MalformedEvent
from convozo.models.checkout import CallBookingIntent, MessageIntent, parse_intent
from convozo.models.fulfillment import LedgerEntry, NewCallBooking, NewMessage
from convozo.services.pricing_service import calculate_fee_split

logger = logging.getLogger("convozo.webhook")

CHECKOUT_COMPLETED = "checkout.session.completed"
ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"


class WebhookService:
    def __init__(self, store, gateway, settings: Settings):
        self.store = store
        self.gateway = gateway
        self.settings = settings

    def handle(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        event = self.gateway.verify_webhook(payload, signature)
        event_type = event["type"]

        if event_type not in (CHECKOUT_COMPLETED, ASYNC_PAYMENT_SUCCEEDED):
            logger.info("Ignoring webhook event type=%s id=%s", event_type, event.get("id"))
            return {"received": True}

        session = (event.get("data") or {}).get("object")
        if not isinstance(session, dict):
            raise MalformedEvent("Webhook event has no checkout session")

        if event_type == CHECKOUT_COMPLETED and session.get("payment_status") != "paid":
            # delayed payment methods finish later with async_payment_succeeded
            logger.info(
                "Checkout session %s completed but not paid yet (payment_status=%s)",
                session.get("id"), session.get("payment_status"),
            )
            return {"received": True, "pending": True}

        return self.fulfill(session)

    def fulfill(self, session: Dict[str, Any]) -> Dict[str, Any]:
        session_id = session.get("id")
        if not isinstance(session_id, str) or not session_id:
            raise MalformedEvent("Checkout session has no id")

        if self.store.is_session_processed(session_id):
            logger.info("Checkout session already processed, skipping: %s", session_id)
            return {"received": True, "skipped": True}

        try:
            intent = parse_intent(session.get("metadata"))
        except MalformedEvent as e:
            logger.error("Rejecting checkout session %s: %s", session_id, e.message)
            raise

        if self.store.get_creator(intent.creator_id) is None:
            logger.error("Rejecting checkout session %s: unknown creator %s", session_id, intent.creator_id)
            raise MalformedEvent("Checkout metadata names an unknown creator")

        amount = self._confirmed_amount(session)
        if amount != intent.amount:
            logger.warning(
                "Session %s charged %s but intent priced %s; using the charged amount",
                session_id, amount, intent.amount,
            )

        split = calculate_fee_split(amount, self.settings.platform_fee_percentage)
        payment_intent_id = self._payment_intent_id(session)

        try:
            if isinstance(intent, CallBookingIntent):
                record_id = self._fulfill_call_booking(intent, session_id, payment_intent_id, split)
            else:
                record_id = self._fulfill_message(intent, session_id, payment_intent_id, split)
        except AlreadyProcessed:
            logger.info("Checkout session already processed, skipping: %s", session_id)
            return {"received": True, "skipped": True}

        logger.info(
            "Fulfilled %s %s for session=%s amount=%s fee=%s creator_amount=%s",
            intent.kind, record_id, session_id, split.amount, split.platform_fee, split.creator_amount,
        )
        return {"received": True}

    # -------------------------------------------------
    # WRITES
    # -------------------------------------------------
    def _fulfill_message(self, intent: MessageIntent, session_id, payment_intent_id, split) -> str:
        message = NewMessage(
            creator_id=intent.creator_id,
            sender_name=intent.sender_name,
            sender_email=intent.sender_email,
            sender_instagram=intent.sender_instagram,
            message_content=intent.message_content,
            amount_paid=split.amount,
            message_type=intent.message_type,
        )
        ledger = LedgerEntry(
            creator_id=intent.creator_id,
            stripe_checkout_session_id=session_id,
            stripe_payment_intent_id=payment_intent_id,
            amount=split.amount,
            platform_fee=split.platform_fee,
            creator_amount=split.creator_amount,
            sender_email=intent.sender_email,
        )
        return self.store.fulfill_message(message, ledger)

    def _fulfill_call_booking(self, intent: CallBookingIntent, session_id, payment_intent_id, split) -> str:
        booking = NewCallBooking(
            creator_id=intent.creator_id,
            booker_name=intent.booker_name,
            booker_email=intent.booker_email,
            booker_instagram=intent.booker_instagram,
            duration=intent.duration,
            amount_paid=split.amount,
            status="confirmed",
            call_notes=intent.message_content,
            stripe_checkout_session_id=session_id,
            stripe_payment_intent_id=payment_intent_id,
        )
        ledger = LedgerEntry(
            creator_id=intent.creator_id,
            stripe_checkout_session_id=session_id,
            stripe_payment_intent_id=payment_intent_id,
            amount=split.amount,
            platform_fee=split.platform_fee,
            creator_amount=split.creator_amount,
            sender_email=intent.booker_email,
        )
        return self.store.fulfill_call_booking(booking, ledger)

    # -------------------------------------------------
    # SESSION FIELDS
    # -------------------------------------------------
    @staticmethod
    def _confirmed_amount(session: Dict[str, Any]) -> int:
        """What Stripe actually charged; the client-side price is never used for money."""
        amount = session.get("amount_total")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise MalformedEvent("Checkout session has no positive amount_total")
        return amount

    @staticmethod
    def _payment_intent_id(session: Dict[str, Any]) -> Optional[str]:
        payment_intent = session.get("payment_intent")
        if isinstance(payment_intent, dict):
            return payment_intent.get("id")
        return payment_intent or None
