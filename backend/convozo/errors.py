# backend/convozo/errors.py

from typing import Optional


class ConvozoError(Exception):
    """
    Base for every failure the API knows how to render.
    Rendered as {"error": message} with `status_code`.
    """

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ConvozoError):
    status_code = 400

    def __init__(self, field: str, message: Optional[str] = None):
        super().__init__(message or f"Invalid or missing field: {field}")
        self.field = field


class NotFound(ConvozoError):
    status_code = 404


class FeatureDisabled(ConvozoError):
    status_code = 400


class PayoutNotConfigured(ConvozoError):
    status_code = 400

    def __init__(self, message: str = "Creator payment setup incomplete"):
        super().__init__(message)


class RateLimited(ConvozoError):
    status_code = 429

    def __init__(self, retry_after: int):
        super().__init__("Rate limit exceeded. Please try again later.")
        self.retry_after = max(1, int(retry_after))


class SignatureInvalid(ConvozoError):
    status_code = 400


class MalformedEvent(ConvozoError):
    status_code = 400


class UpstreamProviderError(ConvozoError):
    status_code = 500


class StoreError(ConvozoError):
    status_code = 500


class AlreadyProcessed(ConvozoError):
    """
    Raised by the store when a checkout session already has its ledger row.
    Callers treat it as success.
    """

    status_code = 200

    def __init__(self, session_id: str):
        super().__init__(f"Checkout session already processed: {session_id}")
        self.session_id = session_id
