# backend/convozo/services/connect_service.py

import logging
import uuid
from typing import Any, Dict

from convozo.config import Settings
from convozo.errors import NotFound, ValidationError
from convozo.models.creator import StripeAccount
from convozo.utils.helpers import is_valid_email

logger = logging.getLogger("convozo.connect")


def _required_str(payload: Dict[str, Any], name: str) -> str:
    value = payload.get(name)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(name)
    return value.strip()


class ConnectService:
    """Creates/links a creator's Stripe Express account and keeps its flags in sync."""

    def __init__(self, store, gateway, settings: Settings):
        self.store = store
        self.gateway = gateway
        self.settings = settings

    def provision(self, payload: Any) -> Dict[str, str]:
        if not isinstance(payload, dict):
            raise ValidationError("body", "Request body must be a JSON object")

        creator_id = _required_str(payload, "creator_id")
        try:
            uuid.UUID(creator_id)
        except ValueError:
            raise ValidationError("creator_id")

        email = _required_str(payload, "email")
        if not is_valid_email(email):
            raise ValidationError("email", "Invalid email address")

        display_name = payload.get("display_name") or ""
        if not isinstance(display_name, str):
            raise ValidationError("display_name")

        if self.store.get_creator(creator_id) is None:
            raise NotFound("Creator not found")

        account = self.store.get_stripe_account_for_creator(creator_id)
        if account is None:
            new_account_id = self.gateway.create_express_account(email, creator_id, display_name.strip())
            account = self.store.insert_stripe_account(creator_id, new_account_id)
            if account.stripe_account_id != new_account_id:
                logger.warning(
                    "Concurrent provisioning for creator=%s; keeping %s, orphaned %s",
                    creator_id, account.stripe_account_id, new_account_id,
                )
            else:
                logger.info("Created Stripe account %s for creator=%s", new_account_id, creator_id)

        # links are single-use and expire, so a fresh one is issued every time
        url = self.gateway.create_onboarding_link(
            account.stripe_account_id,
            refresh_url=f"{self.settings.app_url}/creator/onboarding",
            return_url=f"{self.settings.app_url}/creator/dashboard",
        )
        return {"url": url, "account_id": account.stripe_account_id}

    def verify(self, payload: Any) -> Dict[str, bool]:
        if not isinstance(payload, dict):
            raise ValidationError("body", "Request body must be a JSON object")

        account_id = _required_str(payload, "account_id")
        flags = self.gateway.retrieve_account_flags(account_id)

        updated = self.store.update_stripe_account_flags(
            account_id,
            charges_enabled=flags["charges_enabled"],
            payouts_enabled=flags["payouts_enabled"],
            details_submitted=flags["details_submitted"],
        )
        if not updated:
            raise NotFound("Stripe account not found")

        # onboarding_completed is derived, never taken from a stored value
        account = StripeAccount(creator_id="", stripe_account_id=account_id, **flags)
        logger.info("Verified Stripe account %s status=%s", account_id, account.status())
        return account.status()
