"""deferq API - FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map DeferqError -> structured JSON responses
    - Database initialized on startup and disposed on shutdown via lifespan
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from deferq.api.error_handlers import register_error_handlers
from deferq.api.routes import health
from deferq.config import get_settings
from deferq.infrastructure import database
from deferq.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    manager = database.init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        echo=settings.database_echo,
    )
    logger.info("deferq API started")
    yield
    await manager.dispose()
    logger.info("deferq API shutting down")


app = FastAPI(title="deferq API", version="1.0.0", lifespan=lifespan)

app.include_router(health.router)

register_error_handlers(app)
