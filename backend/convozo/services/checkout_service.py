# backend/convozo/services/checkout_service.py

import logging
from typing import Any, Dict, Optional

from convozo.config import Settings
from convozo.errors import FeatureDisabled, NotFound, PayoutNotConfigured, ValidationError
from convozo.models.checkout import (
    CallBookingIntent,
    CallCheckoutRequest,
    MessageCheckoutRequest,
    MessageIntent,
    parse_request,
)
from convozo.models.creator import Creator, CreatorSettings, StripeAccount
from convozo.services.pricing_service import calculate_fee_split
from convozo.services.rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger("convozo.checkout")


class CheckoutService:
    """
    Builds Stripe-hosted checkout sessions for paid messages and call bookings.

    Nothing is written to the primary store here. The buyer's intent rides in
    the session metadata and only becomes a message/booking once the webhook
    sees the payment confirmed.
    """

    def __init__(self, store, gateway, rate_limiter: SlidingWindowRateLimiter, settings: Settings):
        self.store = store
        self.gateway = gateway
        self.rate_limiter = rate_limiter
        self.settings = settings

    # -------------------------------------------------
    # PAID MESSAGE
    # -------------------------------------------------
    def create_message_checkout(self, payload: Any) -> Dict[str, str]:
        req = parse_request(MessageCheckoutRequest, payload)
        self.rate_limiter.check(req.sender_email)

        creator = self._active_creator(req.creator_slug)
        settings = self.store.get_creator_settings(creator.id)
        if settings and req.price < settings.message_price:
            raise ValidationError("price", "Price is below the creator's message price")

        account = self._payout_account(creator)

        intent = MessageIntent(
            creator_id=creator.id,
            sender_name=req.sender_name,
            sender_email=req.sender_email,
            sender_instagram=req.sender_instagram,
            message_content=req.message_content,
            message_type=req.message_type,
            amount=req.price,
        )

        params = self._session_params(
            account=account,
            price=req.price,
            product_name=f"Paid DM to {creator.display_name}",
            product_description="Priority direct message",
            customer_email=req.sender_email,
            metadata=intent.to_metadata(),
            success_url=f"{self.settings.app_url}/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{self.settings.app_url}/{creator.slug}",
        )

        session = self.gateway.create_checkout_session(params)
        logger.info(
            "Checkout session created session=%s creator=%s kind=message amount=%s",
            session["id"], creator.id, req.price,
        )
        return {"sessionId": session["id"], "url": session["url"]}

    # -------------------------------------------------
    # PAID CALL BOOKING
    # -------------------------------------------------
    def create_call_checkout(self, payload: Any) -> Dict[str, str]:
        req = parse_request(CallCheckoutRequest, payload)
        self.rate_limiter.check(req.booker_email)

        creator = self._active_creator(req.creator_slug)
        settings = self.store.get_creator_settings(creator.id)
        if not settings or not settings.calls_bookable:
            raise FeatureDisabled("Call bookings are not enabled for this creator")
        if req.price < settings.call_price:
            raise ValidationError("price", "Price is below the creator's call price")

        account = self._payout_account(creator)

        intent = CallBookingIntent(
            creator_id=creator.id,
            booker_name=req.booker_name,
            booker_email=req.booker_email,
            booker_instagram=req.booker_instagram,
            message_content=req.message_content,
            duration=settings.call_duration,
            amount=req.price,
        )

        params = self._session_params(
            account=account,
            price=req.price,
            product_name=f"Video Call with {creator.display_name}",
            product_description=f"{settings.call_duration} minute video call",
            customer_email=req.booker_email,
            metadata=intent.to_metadata(),
            success_url=f"{self.settings.app_url}/success?session_id={{CHECKOUT_SESSION_ID}}&type=call",
            cancel_url=f"{self.settings.app_url}/{creator.slug}",
        )

        session = self.gateway.create_checkout_session(params)
        logger.info(
            "Checkout session created session=%s creator=%s kind=call_booking amount=%s",
            session["id"], creator.id, req.price,
        )
        return {"url": session["url"]}

    # -------------------------------------------------
    # SUCCESS PAGE LOOKUP
    # -------------------------------------------------
    def lookup_fulfillment(self, session_id: str) -> Dict[str, Optional[Any]]:
        session_id = (session_id or "").strip()
        if not session_id:
            raise ValidationError("session_id")
        kind = self.store.find_fulfillment_by_session(session_id)
        return {"session_id": session_id, "fulfilled": kind is not None, "kind": kind}

    # -------------------------------------------------
    # HELPERS
    # -------------------------------------------------
    def _active_creator(self, slug: str) -> Creator:
        creator = self.store.get_active_creator_by_slug(slug)
        if creator is None:
            raise NotFound("Creator not found")
        return creator

    def _payout_account(self, creator: Creator) -> StripeAccount:
        account = self.store.get_stripe_account_for_creator(creator.id)
        if account is None or not account.charges_enabled:
            raise PayoutNotConfigured()
        if account.is_test_account and not self.settings.allow_test_payout_accounts:
            logger.warning(
                "Sandbox payout account %s refused for creator=%s (ALLOW_TEST_PAYOUT_ACCOUNTS is off)",
                account.stripe_account_id, creator.id,
            )
            raise PayoutNotConfigured()
        return account

    def _session_params(
        self,
        account: StripeAccount,
        price: int,
        product_name: str,
        product_description: str,
        customer_email: str,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": self.settings.checkout_currency,
                        "product_data": {
                            "name": product_name,
                            "description": product_description,
                        },
                        "unit_amount": price,
                    },
                    "quantity": 1,
                }
            ],
            "customer_email": customer_email,
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }

        if account.is_test_account:
            # local development only: the whole amount stays on the platform's test balance
            logger.warning(
                "SANDBOX payout account %s: skipping application fee and transfer",
                account.stripe_account_id,
            )
            return params

        split = calculate_fee_split(price, self.settings.platform_fee_percentage)
        params["payment_intent_data"] = {
            "application_fee_amount": split.platform_fee,
            "transfer_data": {"destination": account.stripe_account_id},
        }
        return params
