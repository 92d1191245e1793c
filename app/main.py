"""FastAPI application entrypoint.

All routes prefixed /v1. The provider webhook lives at /v1/webhooks/tavus;
provisioning and usage reads require the internal X-API-Key.
Auto-generated OpenAPI docs at /docs.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.conversations import router as conversations_router
from app.api.v1.health import router as health_router
from app.api.v1.usage import router as usage_router
from app.api.v1.webhooks import router as webhooks_router
from app.core.config import settings
from app.core.exceptions import MeteringError
from app.db.postgres import close_postgres
from app.db.redis import close_redis


def _configure_logging() -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


_configure_logging()

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    # --- Startup ---
    logger.info(
        "app_startup",
        env=settings.app_env,
        allowed_domains=settings.provider_allowed_domains,
        broadcast_enabled=settings.broadcast_enabled,
    )
    yield

    # --- Shutdown ---
    logger.info("app_shutdown")
    await close_redis()
    await close_postgres()


app = FastAPI(
    title="Conversation Metering API",
    description="Video-conversation lifecycle webhooks and billing-period usage metering.",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS: permissive for development, closed in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if not settings.is_production else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MeteringError)
async def metering_error_handler(request: Request, exc: MeteringError) -> JSONResponse:
    """Structured error response for all metering exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


# Mount all v1 routers
app.include_router(health_router, prefix="/v1")
app.include_router(webhooks_router, prefix="/v1")
app.include_router(conversations_router, prefix="/v1")
app.include_router(usage_router, prefix="/v1")
