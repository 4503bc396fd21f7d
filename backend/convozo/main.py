# backend/convozo/main.py

# -------------------------------------------------
# STANDARD IMPORTS
# -------------------------------------------------
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from convozo.config import Settings
from convozo.db_auto_migrate import run_migrations
from convozo.errors import ConvozoError, RateLimited
from convozo.routes.checkout import router as checkout_router
from convozo.routes.connect import router as connect_router
from convozo.routes.messages import router as messages_router
from convozo.routes.stripe_webhook import router as stripe_webhook_router
from convozo.services.checkout_service import CheckoutService
from convozo.services.connect_service import ConnectService
from convozo.services.notifier import EmailClient, ReplyService
from convozo.services.rate_limiter import SlidingWindowRateLimiter
from convozo.services.stripe_gateway import StripeGateway
from convozo.services.webhook_service import WebhookService
from convozo.store import PostgresStore

# -------------------------------------------------
# LOGGING SETUP
# -------------------------------------------------
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("convozo")


# -------------------------------------------------
# ERROR RENDERING ({"error": ...} EVERYWHERE)
# -------------------------------------------------
async def convozo_error_handler(request: Request, exc: ConvozoError):
    headers = None
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.retry_after)}
        logger.warning("Rate limited %s retry_after=%s", request.url.path, exc.retry_after)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message}, headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Request body must be a JSON object"},
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


# -------------------------------------------------
# APP FACTORY
# -------------------------------------------------
def create_app(
    settings: Optional[Settings] = None,
    store=None,
    gateway=None,
    email_client=None,
    rate_limiter: Optional[SlidingWindowRateLimiter] = None,
) -> FastAPI:
    """
    Wire the API. Collaborators left as None are built from the environment;
    migrations only run when the store is built here.
    Serve with: uvicorn convozo.main:create_app --factory
    """
    settings = settings or Settings.from_env()
    run_startup_migrations = store is None

    store = store or PostgresStore(settings.database_url, settings.database_sslmode)
    gateway = gateway or StripeGateway(settings.stripe_secret_key, settings.stripe_webhook_secret)
    email_client = email_client or EmailClient.from_settings(settings)
    rate_limiter = rate_limiter or SlidingWindowRateLimiter(
        settings.rate_limit_max, settings.rate_limit_window_seconds
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Startup: fee=%s%% app_url=%s", settings.platform_fee_percentage, settings.app_url)
        if settings.allow_test_payout_accounts:
            logger.warning("ALLOW_TEST_PAYOUT_ACCOUNTS is on: sandbox payout accounts bypass fee routing")

        if run_startup_migrations:
            try:
                logger.info("Running DB migrations...")
                run_migrations(settings.database_url, settings.database_sslmode)
                logger.info("Migrations complete")
            except Exception as e:
                logger.error("Migration error: %s", e)
        yield
        logger.info("Shutdown")

    app = FastAPI(
        title="Convozo Payments API",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )

    app.state.settings = settings
    app.state.store = store
    app.state.rate_limiter = rate_limiter
    app.state.checkout_service = CheckoutService(store, gateway, rate_limiter, settings)
    app.state.connect_service = ConnectService(store, gateway, settings)
    app.state.webhook_service = WebhookService(store, gateway, settings)
    app.state.reply_service = ReplyService(store, email_client)

    app.add_exception_handler(ConvozoError, convozo_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # -------------------------------------------------
    # ROUTERS
    # -------------------------------------------------
    app.include_router(checkout_router)
    app.include_router(connect_router)
    app.include_router(stripe_webhook_router)
    app.include_router(messages_router)

    # -------------------------------------------------
    # HEALTH CHECK (NO DB REQUIRED)
    # -------------------------------------------------
    @app.get("/health", status_code=status.HTTP_200_OK)
    def health():
        return {"status": "ok"}

    # -------------------------------------------------
    # DB TEST (CONNECTION CHECK)
    # -------------------------------------------------
    @app.get("/db/test", status_code=status.HTTP_200_OK)
    def db_test():
        try:
            app.state.store.ping()
            return {"db": "ok"}
        except ConvozoError as e:
            return {"db": "error", "detail": e.message}

    return app
