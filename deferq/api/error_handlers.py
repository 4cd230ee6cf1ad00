"""Error Handlers - every exception escaping an endpoint leaves as a DeferqError envelope.

Invariants:
    - Status code and body always come from a DeferqError (http_status, to_response())
    - Request validation failures become InvalidRequestError with one entry per field
    - Exceptions outside the hierarchy are reported as InternalError; the original
      is logged with its traceback and never sent to the client
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from deferq.core.errors import DeferqError, InternalError, InvalidRequestError

logger = logging.getLogger(__name__)


def _respond(request: Request, error: DeferqError) -> JSONResponse:
    level = logging.ERROR if error.http_status >= 500 else logging.WARNING
    logger.log(
        level,
        f"{error.code} on {request.url.path}: {error.message}",
        extra={"error_code": error.code, "path": request.url.path},
    )
    return JSONResponse(status_code=error.http_status, content=error.to_response())


def _field_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {
            "field": ".".join(str(loc) for loc in e["loc"]),
            "message": e["msg"],
            "type": e["type"],
        }
        for e in exc.errors()
    ]


def register_error_handlers(app: FastAPI) -> None:
    """Register the structured, validation and catch-all handlers on app."""

    @app.exception_handler(DeferqError)
    async def structured_error_handler(request: Request, exc: DeferqError):
        return _respond(request, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _respond(request, InvalidRequestError(_field_errors(exc)))

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled exception on {request.url.path}: {exc}",
            exc_info=True,
            extra={"path": request.url.path},
        )
        return _respond(request, InternalError())
