"""Endpoint Hook - executes what a route handler returns against the request container.

Invariants:
    - Handlers are async and may return a plain value or a deferred value; the
      response body is always the fully resolved value
    - The wrapped handler must declare a `container` parameter (usually via Depends(get_container))
    - Errors propagate unchanged; error_handlers.py maps them to responses

Design Decisions:
    - functools.wraps keeps the handler signature visible to FastAPI's dependency injection
"""

import functools
from typing import Any, Callable

from deferq.core.deferred import settle


def endpoint(handler: Callable[..., Any]) -> Callable[..., Any]:
    """Resolve the handler's result (deferred, awaitable or plain) per request."""

    @functools.wraps(handler)
    async def run(*args, **kwargs):
        container = kwargs.get("container")
        if container is None:
            raise TypeError(
                f"endpoint {handler.__name__} must receive a 'container' argument",
            )
        return await settle(container, handler(*args, **kwargs))

    return run
