# backend/convozo/models/fulfillment.py

"""
Rows written once a payment is confirmed (messages, call_bookings, payments)
and the message shape read back for replies.
"""

import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, model_validator


class NewMessage(BaseModel):
    creator_id: str
    sender_name: str
    sender_email: str
    sender_instagram: Optional[str] = None
    message_content: str
    amount_paid: int
    message_type: Literal["message", "call"] = "message"


class NewCallBooking(BaseModel):
    creator_id: str
    booker_name: str
    booker_email: str
    booker_instagram: str
    duration: int
    amount_paid: int
    status: Literal["pending", "confirmed", "completed", "cancelled"] = "confirmed"
    call_notes: Optional[str] = None
    stripe_checkout_session_id: str
    stripe_payment_intent_id: Optional[str] = None


class LedgerEntry(BaseModel):
    """A `payments` row. Its session id is unique across the table."""

    creator_id: str
    stripe_checkout_session_id: str
    stripe_payment_intent_id: Optional[str] = None
    amount: int
    platform_fee: int
    creator_amount: int
    status: str = "completed"
    sender_email: str

    @model_validator(mode="after")
    def split_must_conserve_amount(self) -> "LedgerEntry":
        if self.platform_fee + self.creator_amount != self.amount:
            raise ValueError("platform_fee + creator_amount must equal amount")
        return self


class MessageRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    creator_id: str
    sender_name: str
    sender_email: str
    sender_instagram: Optional[str] = None
    message_content: str
    amount_paid: int
    message_type: str = "message"
    is_handled: bool = False
    reply_content: Optional[str] = None
    replied_at: Optional[datetime.datetime] = None
    created_at: Optional[datetime.datetime] = None
