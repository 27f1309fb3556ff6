"""
FastAPI application factory and configuration.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from meta_relay.core.config import get_settings
from meta_relay.core.database import init_db
from meta_relay.core.errors import OutboundSendError
from meta_relay.core.logging import RequestLoggingMiddleware, setup_logging, get_logger
from meta_relay.api import conversations, health, send, webhooks


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger = get_logger(__name__)
    logger.info("Starting application...")

    init_db()
    logger.info("Database initialized")

    yield

    logger.info("Shutting down application...")


async def outbound_send_error_handler(request: Request, exc: OutboundSendError) -> JSONResponse:
    """Surface a failed send with enough detail to show the end user."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.reason,
            "error": exc.kind.value,
            "message_id": exc.message_id,
            "provider_code": exc.provider_code,
        },
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    setup_logging()
    logger = get_logger(__name__)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Relay between Meta messaging platforms (WhatsApp, Messenger) and a conversation log",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(OutboundSendError, outbound_send_error_handler)

    app.include_router(health.router)
    app.include_router(send.router)
    app.include_router(webhooks.router)
    app.include_router(conversations.router)

    logger.info(
        "Application created",
        extra={
            "extra_data": {
                "app_name": settings.app_name,
                "version": settings.app_version,
                "debug": settings.debug,
            }
        }
    )

    return app


app = create_app()
