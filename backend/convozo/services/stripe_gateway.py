# backend/convozo/services/stripe_gateway.py

import json
import logging
from typing import Any, Dict, Optional

import stripe

from convozo.errors import MalformedEvent, SignatureInvalid, UpstreamProviderError

logger = logging.getLogger("convozo.stripe")


class StripeGateway:
    """
    The only module that talks to the stripe library.
    Stripe failures come out as UpstreamProviderError, bad signatures as SignatureInvalid.
    """

    def __init__(self, secret_key: str, webhook_secret: str, tolerance: int = 300):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    # -------------------------------------------------
    # CHECKOUT
    # -------------------------------------------------
    def create_checkout_session(self, params: Dict[str, Any]) -> Dict[str, str]:
        try:
            session = stripe.checkout.Session.create(api_key=self.secret_key, **params)
        except stripe.StripeError as e:
            logger.error("Stripe checkout session creation failed: %s", e)
            raise UpstreamProviderError("Payment provider error while creating checkout session") from e

        return {"id": session.id, "url": session.url}

    # -------------------------------------------------
    # CONNECT
    # -------------------------------------------------
    def create_express_account(self, email: str, creator_id: str, display_name: str) -> str:
        try:
            account = stripe.Account.create(
                api_key=self.secret_key,
                type="express",
                country="US",
                email=email,
                capabilities={
                    "card_payments": {"requested": True},
                    "transfers": {"requested": True},
                },
                business_type="individual",
                metadata={
                    "creator_id": creator_id,
                    "display_name": display_name or "",
                },
            )
        except stripe.StripeError as e:
            logger.error("Stripe account creation failed creator=%s: %s", creator_id, e)
            raise UpstreamProviderError("Payment provider error while creating payout account") from e

        return account.id

    def create_onboarding_link(self, account_id: str, refresh_url: str, return_url: str) -> str:
        try:
            link = stripe.AccountLink.create(
                api_key=self.secret_key,
                account=account_id,
                refresh_url=refresh_url,
                return_url=return_url,
                type="account_onboarding",
            )
        except stripe.StripeError as e:
            logger.error("Stripe account link failed account=%s: %s", account_id, e)
            raise UpstreamProviderError("Payment provider error while creating onboarding link") from e

        return link.url

    def retrieve_account_flags(self, account_id: str) -> Dict[str, bool]:
        try:
            account = stripe.Account.retrieve(account_id, api_key=self.secret_key)
        except stripe.StripeError as e:
            logger.error("Stripe account retrieve failed account=%s: %s", account_id, e)
            raise UpstreamProviderError("Payment provider error while verifying payout account") from e

        return {
            "charges_enabled": bool(account.charges_enabled),
            "payouts_enabled": bool(account.payouts_enabled),
            "details_submitted": bool(account.details_submitted),
        }

    # -------------------------------------------------
    # WEBHOOKS
    # -------------------------------------------------
    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Check the stripe-signature header and return the event as a plain dict.
        Nothing in the body is looked at before the signature passes.
        """
        if not signature:
            raise SignatureInvalid("No signature")
        if not self.webhook_secret:
            raise SignatureInvalid("Webhook secret not configured")

        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SignatureInvalid("Webhook body is not valid UTF-8") from e

        try:
            stripe.WebhookSignature.verify_header(
                text, signature, self.webhook_secret, self.tolerance
            )
        except stripe.SignatureVerificationError as e:
            logger.warning("Rejected webhook with invalid signature: %s", e)
            raise SignatureInvalid("Invalid signature") from e

        try:
            event = json.loads(text)
        except ValueError as e:
            raise MalformedEvent("Webhook body is not valid JSON") from e

        if not isinstance(event, dict) or not isinstance(event.get("type"), str):
            raise MalformedEvent("Webhook event has no type")
        return event
