# backend/convozo/routes/stripe_webhook.py

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from convozo.routes.deps import get_webhook_service

router = APIRouter(tags=["stripe"])


@router.post("/stripe-webhook")
async def stripe_webhook(request: Request, service=Depends(get_webhook_service)):
    """
    Raw body is needed for signature verification, so it is read before any parsing.
    Non-2xx responses make Stripe redeliver.
    """
    raw_body = await request.body()
    signature = request.headers.get("stripe-signature")
    return await run_in_threadpool(service.handle, raw_body, signature)
