# backend/convozo/models/creator.py

"""
Row shapes for the seller side of the schema
(creators, creator_settings, stripe_accounts).
Tables themselves are created in db_auto_migrate.py.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

TEST_ACCOUNT_PREFIX = "acct_test_"


class Creator(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    display_name: str
    slug: str
    email: Optional[str] = None
    bio: Optional[str] = None
    profile_image_url: Optional[str] = None
    is_active: bool = True


class CreatorSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    creator_id: str
    message_price: int
    call_price: Optional[int] = None
    call_duration: Optional[int] = None
    calls_enabled: bool = False
    response_expectation: Optional[str] = None
    auto_reply_text: Optional[str] = None

    @property
    def calls_bookable(self) -> bool:
        return bool(
            self.calls_enabled
            and self.call_price and self.call_price > 0
            and self.call_duration and self.call_duration > 0
        )


class StripeAccount(BaseModel):
    model_config = ConfigDict(extra="ignore")

    creator_id: str
    stripe_account_id: str
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False

    @property
    def onboarding_completed(self) -> bool:
        return self.details_submitted and self.charges_enabled

    @property
    def is_test_account(self) -> bool:
        return self.stripe_account_id.startswith(TEST_ACCOUNT_PREFIX)

    def status(self) -> dict:
        return {
            "charges_enabled": self.charges_enabled,
            "payouts_enabled": self.payouts_enabled,
            "details_submitted": self.details_submitted,
            "onboarding_completed": self.onboarding_completed,
        }
