# backend/convozo/models/checkout.py

"""
Checkout request bodies and the purchase intent carried in
Stripe checkout-session metadata.

Metadata is the only record of what the buyer asked for until the
payment clears, so it is written and read through one schema:
a tagged union on `kind` that rejects anything it does not recognise.
"""

import uuid
from typing import Annotated, Any, Dict, Literal, Mapping, Optional, Union

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from convozo.errors import MalformedEvent, ValidationError
from convozo.utils.helpers import is_valid_email, join_metadata_text, split_metadata_text

MAX_MESSAGE_LENGTH = 1000


def _reject_bool(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("must be an integer")
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _check_email(value: str) -> str:
    if not is_valid_email(value):
        raise ValueError("Invalid email address")
    return value


def _check_uuid(value: str) -> str:
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise ValueError("must be a UUID")


Price = Annotated[int, BeforeValidator(_reject_bool), Field(gt=0)]
Email = Annotated[str, Field(min_length=1), AfterValidator(_check_email)]
OptionalText = Annotated[Optional[str], BeforeValidator(_blank_to_none)]
CreatorId = Annotated[str, Field(min_length=1), AfterValidator(_check_uuid)]


# -------------------------------------------------
# REQUEST BODIES
# -------------------------------------------------
class MessageCheckoutRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    # field order is the order errors are reported in
    creator_slug: str = Field(min_length=1)
    sender_name: str = Field(min_length=1)
    sender_email: Email
    price: Price
    message_content: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)
    sender_instagram: OptionalText = None
    message_type: str = "message"

    @field_validator("message_type", mode="before")
    @classmethod
    def normalize_message_type(cls, value: Any) -> str:
        return "call" if value == "call" else "message"


class CallCheckoutRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    creator_slug: str = Field(min_length=1)
    booker_name: str = Field(min_length=1)
    booker_email: Email
    price: Price
    booker_instagram: str = Field(min_length=1)
    message_content: OptionalText = Field(default=None, max_length=MAX_MESSAGE_LENGTH)


def parse_request(model, payload: Any):
    """
    Validate a JSON body, raising ValidationError naming the first bad field.
    """
    if not isinstance(payload, dict):
        raise ValidationError("body", "Request body must be a JSON object")
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "body"
        raise ValidationError(field, f"Invalid or missing field: {field} ({first.get('msg')})") from e


# -------------------------------------------------
# PURCHASE INTENT (CHECKOUT METADATA)
# -------------------------------------------------
class MessageIntent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kind: Literal["message"] = "message"
    creator_id: CreatorId
    sender_name: str = Field(min_length=1)
    sender_email: str = Field(min_length=1)
    sender_instagram: OptionalText = None
    message_content: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)
    message_type: Literal["message", "call"] = "message"
    amount: int = Field(gt=0)

    def to_metadata(self) -> Dict[str, str]:
        metadata = {
            "kind": self.kind,
            "creator_id": self.creator_id,
            "sender_name": self.sender_name,
            "sender_email": self.sender_email,
            "sender_instagram": self.sender_instagram or "",
            "message_type": self.message_type,
            "amount": str(self.amount),
        }
        metadata.update(split_metadata_text("message_content", self.message_content))
        return metadata


class CallBookingIntent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kind: Literal["call_booking"] = "call_booking"
    creator_id: CreatorId
    booker_name: str = Field(min_length=1)
    booker_email: str = Field(min_length=1)
    booker_instagram: str = Field(min_length=1)
    message_content: OptionalText = Field(default=None, max_length=MAX_MESSAGE_LENGTH)
    duration: int = Field(gt=0)
    amount: int = Field(gt=0)

    def to_metadata(self) -> Dict[str, str]:
        metadata = {
            "kind": self.kind,
            "creator_id": self.creator_id,
            "booker_name": self.booker_name,
            "booker_email": self.booker_email,
            "booker_instagram": self.booker_instagram,
            "duration": str(self.duration),
            "amount": str(self.amount),
        }
        metadata.update(split_metadata_text("message_content", self.message_content or ""))
        return metadata


CheckoutIntent = Annotated[Union[MessageIntent, CallBookingIntent], Field(discriminator="kind")]

_intent_adapter = TypeAdapter(CheckoutIntent)


def parse_intent(metadata: Optional[Mapping[str, Any]]) -> Union[MessageIntent, CallBookingIntent]:
    """
    Rebuild the purchase intent from session metadata.
    A missing or unknown `kind` is rejected; there is no default kind.
    """
    if not metadata or not isinstance(metadata, Mapping):
        raise MalformedEvent("Checkout session has no metadata")

    if metadata.get("kind") not in ("message", "call_booking"):
        raise MalformedEvent(f"Unknown purchase kind: {metadata.get('kind')!r}")

    data = {k: v for k, v in metadata.items() if not k.startswith("message_content")}
    data["message_content"] = join_metadata_text(metadata, "message_content")

    try:
        return _intent_adapter.validate_python(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        raise MalformedEvent(f"Invalid checkout metadata: {field} ({first.get('msg')})") from e
