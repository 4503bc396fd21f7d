# backend/convozo/routes/messages.py

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from convozo.routes.deps import get_reply_service

router = APIRouter(tags=["messages"])


@router.post("/send-reply-email")
def send_reply_email(payload: Dict[str, Any] = Body(...), service=Depends(get_reply_service)):
    return service.send_reply(payload)


@router.post("/mark-message-handled")
def mark_message_handled(payload: Dict[str, Any] = Body(...), service=Depends(get_reply_service)):
    return service.mark_handled(payload)
