# backend/convozo/services/notifier.py

import html
import logging
import uuid
from typing import Any, Dict

import requests

from convozo.config import Settings
from convozo.errors import NotFound, ValidationError
from convozo.utils.helpers import utcnow

logger = logging.getLogger("convozo.notifier")


class EmailDeliveryError(RuntimeError):
    pass


# -------------------------------------------------
# EMAIL API CLIENT
# -------------------------------------------------
class EmailClient:
    """
    Sends transactional email through an HTTP API (Resend-compatible JSON body).
    With no API key configured it only logs what it would have sent.
    """

    def __init__(self, api_key: str, api_url: str, sender: str, timeout: int = 15):
        self.api_key = api_key
        self.api_url = api_url
        self.sender = sender
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailClient":
        return cls(settings.email_api_key, settings.email_api_url, settings.email_from)

    def send(self, to: str, subject: str, html_body: str) -> bool:
        if not self.api_key:
            logger.info("Email delivery disabled; would send %r to %s", subject, to)
            return False

        try:
            resp = requests.post(
                self.api_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "from": self.sender,
                    "to": [to],
                    "subject": subject,
                    "html": html_body,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise EmailDeliveryError(f"Unable to reach email API: {e}") from e

        if not resp.ok:
            raise EmailDeliveryError(f"Email API failed [{resp.status_code}]: {resp.text}")
        return True


def render_reply_email(display_name: str, original: str, reply: str) -> str:
    name = html.escape(display_name)
    return f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h2>You received a reply from {name}!</h2>
          <div style="background-color: #f5f5f5; padding: 20px; border-radius: 8px; margin: 20px 0;">
            <p><strong>Your message:</strong></p>
            <p>{html.escape(original)}</p>
          </div>
          <div style="background-color: #e3f2fd; padding: 20px; border-radius: 8px; margin: 20px 0;">
            <p><strong>Reply:</strong></p>
            <p>{html.escape(reply)}</p>
          </div>
          <p style="color: #666; font-size: 14px;">
            This is an automated message from Convozo. Please do not reply to this email.
          </p>
        </div>
    """


# -------------------------------------------------
# REPLIES
# -------------------------------------------------
class ReplyService:
    """
    Persists creator replies and notifies the buyer.
    The stored reply is the fact; the email is best-effort.
    """

    def __init__(self, store, email_client: EmailClient):
        self.store = store
        self.email_client = email_client

    def _message_id(self, payload: Any) -> str:
        if not isinstance(payload, dict):
            raise ValidationError("body", "Request body must be a JSON object")
        message_id = payload.get("message_id")
        if not isinstance(message_id, str) or not message_id.strip():
            raise ValidationError("message_id")
        try:
            uuid.UUID(message_id.strip())
        except ValueError:
            raise NotFound("Message not found")
        return message_id.strip()

    def send_reply(self, payload: Any) -> Dict[str, Any]:
        message_id = self._message_id(payload)
        reply_content = payload.get("reply_content")
        if not isinstance(reply_content, str) or not reply_content.strip():
            raise ValidationError("reply_content")
        reply_content = reply_content.strip()

        message = self.store.get_message(message_id)
        if message is None:
            raise NotFound("Message not found")

        if not self.store.record_reply(message_id, reply_content, utcnow()):
            raise NotFound("Message not found")

        creator = self.store.get_creator(message.creator_id)
        display_name = creator.display_name if creator else "the creator"

        email_sent = False
        try:
            email_sent = self.email_client.send(
                to=message.sender_email,
                subject=f"Reply from {display_name}",
                html_body=render_reply_email(display_name, message.message_content, reply_content),
            )
        except EmailDeliveryError as e:
            logger.error("Reply email failed for message=%s: %s", message_id, e)

        return {"success": True, "message": "Reply sent successfully", "email_sent": email_sent}

    def mark_handled(self, payload: Any) -> Dict[str, bool]:
        message_id = self._message_id(payload)
        if not self.store.mark_message_handled(message_id):
            raise NotFound("Message not found")
        return {"success": True}
