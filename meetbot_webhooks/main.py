import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from meetbot_webhooks.api.router import api_router
from meetbot_webhooks.core.config import get_settings


logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_application() -> FastAPI:
    _configure_logging()
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        openapi_url=f"{settings.api_prefix}/openapi.json",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        lifespan=_lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=[
            "authorization",
            "content-type",
            "x-api-key",
            "x-webhook-timestamp",
            "x-webhook-signature",
        ],
    )

    app.include_router(api_router, prefix=settings.api_prefix)

    return app


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    _check_signing_configuration()
    yield


def _check_signing_configuration() -> None:
    settings = get_settings()
    if not settings.webhook_signing_secret:
        logger.error("WEBHOOK_SIGNING_SECRET not configured; signed webhook routes will reject requests")
    else:
        logger.info("Webhook signing configured freshness_window_seconds=%s", settings.webhook_freshness_window_seconds)


app = create_application()
