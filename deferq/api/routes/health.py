"""Health & Readiness Probes - liveness and readiness endpoints.

Invariants:
    - GET /api/v1/health/ always returns 200 if the process is up (liveness)
    - GET /api/v1/health/ready returns 503 if the database is unreachable (readiness)
    - The readiness check runs through the deferred core like any other query
"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from deferq.api.endpoint import endpoint
from deferq.core.container import ExecutionContainer
from deferq.core.deferred import fold_all
from deferq.core.errors import DeferqError
from deferq.infrastructure.database import get_container

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check():
    """Basic liveness probe. Returns 200 if the process is up."""
    return {"status": "healthy", "service": "deferq-api"}


def _ready(results: list) -> dict:
    ping, server_time = results
    return {
        "status": "ready",
        "checks": {"database": "healthy" if ping == 1 else "degraded"},
        "server_time": str(server_time),
    }


def _not_ready(error: Exception) -> JSONResponse:
    if not isinstance(error, DeferqError):
        raise error
    logger.warning(f"Readiness check failed: {error.message}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "not_ready", "reason": "database_unavailable"},
    )


@router.get("/ready")
@endpoint
async def readiness_check(container: ExecutionContainer = Depends(get_container)):
    """Readiness probe: ping and clock queries folded into one report."""
    health = container.queries["health"]
    return fold_all([health.ping(), health.server_time()], _ready).recover(_not_ready)
