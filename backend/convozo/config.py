# backend/convozo/config.py

import os
from dataclasses import dataclass, field
from typing import Tuple

from dotenv import load_dotenv

load_dotenv()


# -------------------------------------------------
# ENV HELPERS
# -------------------------------------------------
def get_required_env(name: str) -> str:
    value = os.getenv(name)
    if not value or not value.strip():
        raise RuntimeError(f"Missing required env var: {name}")
    return value.strip()


def get_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def get_bool_env(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


# -------------------------------------------------
# SETTINGS (READ ONCE AT STARTUP)
# -------------------------------------------------
@dataclass(frozen=True)
class Settings:
    stripe_secret_key: str
    stripe_webhook_secret: str
    database_url: str
    database_sslmode: str = "require"
    platform_fee_percentage: float = 35.0
    app_url: str = "http://localhost:4200"
    allow_test_payout_accounts: bool = False
    checkout_currency: str = "usd"
    rate_limit_max: int = 10
    rate_limit_window_seconds: int = 3600
    email_api_key: str = ""
    email_api_url: str = "https://api.resend.com/emails"
    email_from: str = "Convozo <noreply@convozo.com>"
    cors_origins: Tuple[str, ...] = field(default_factory=lambda: ("*",))

    @classmethod
    def from_env(cls) -> "Settings":
        fee = float(get_env("PLATFORM_FEE_PERCENTAGE", "35"))
        if not 0 <= fee <= 100:
            raise RuntimeError("PLATFORM_FEE_PERCENTAGE must be between 0 and 100")

        origins = tuple(
            o.strip() for o in get_env("CORS_ORIGINS", "*").split(",") if o.strip()
        )

        return cls(
            stripe_secret_key=get_required_env("STRIPE_SECRET_KEY"),
            stripe_webhook_secret=get_required_env("STRIPE_WEBHOOK_SECRET"),
            database_url=get_required_env("DATABASE_URL"),
            database_sslmode=get_env("DATABASE_SSLMODE", "require"),
            platform_fee_percentage=fee,
            app_url=get_env("APP_URL", "http://localhost:4200").rstrip("/"),
            allow_test_payout_accounts=get_bool_env("ALLOW_TEST_PAYOUT_ACCOUNTS"),
            checkout_currency=get_env("CHECKOUT_CURRENCY", "usd").lower(),
            rate_limit_max=int(get_env("RATE_LIMIT_MAX", "10")),
            rate_limit_window_seconds=int(get_env("RATE_LIMIT_WINDOW_SECONDS", "3600")),
            email_api_key=get_env("EMAIL_API_KEY", ""),
            email_api_url=get_env("EMAIL_API_URL", "https://api.resend.com/emails"),
            email_from=get_env("EMAIL_FROM", "Convozo <noreply@convozo.com>"),
            cors_origins=origins or ("*",),
        )
