"""PasaTanda Payments API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map PasaTandaError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Verification store initialized on startup via lifespan context manager
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.error_handlers import register_error_handlers
from app.api.routes import health, verification_webhook
from app.config import get_settings
from app.infrastructure.observability import setup_logging
from app.infrastructure.verification_store import (
    close_verification_store,
    init_verification_store,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    await init_verification_store(
        settings.verification_store,
        ttl_minutes=settings.verification_ttl_minutes,
        database_url=settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    logger.info("PasaTanda payments API started")
    yield
    await close_verification_store()
    logger.info("PasaTanda payments API shutting down")


app = FastAPI(
    title="PasaTanda Payments API", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(verification_webhook.router)

register_error_handlers(app)
