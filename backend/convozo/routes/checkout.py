# backend/convozo/routes/checkout.py

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from convozo.routes.deps import get_checkout_service

router = APIRouter(tags=["checkout"])


@router.post("/create-checkout-session")
def create_checkout_session(payload: Dict[str, Any] = Body(...), service=Depends(get_checkout_service)):
    """
    Paid DM checkout.
    Body: {creator_slug, message_content, sender_name, sender_email,
           sender_instagram?, message_type, price}
    """
    return service.create_message_checkout(payload)


@router.post("/create-call-booking-session")
def create_call_booking_session(payload: Dict[str, Any] = Body(...), service=Depends(get_checkout_service)):
    """
    Paid video call checkout.
    Body: {creator_slug, booker_name, booker_email, booker_instagram,
           message_content?, price}
    """
    return service.create_call_checkout(payload)


@router.get("/checkout-session/{session_id}")
def checkout_session_status(session_id: str, service=Depends(get_checkout_service)):
    """Used by the success page to see whether the webhook has fulfilled the purchase yet."""
    return service.lookup_fulfillment(session_id)
