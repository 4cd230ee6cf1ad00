"""Boundary Protocols - what the deferred core needs from the storage layer.

Invariants:
    - Core NEVER imports from infrastructure; dependency arrows point inward only
    - transaction(work) commits when work's result settles successfully and
      rolls back when it raises, then propagates that outcome unchanged

Design Decisions:
    - Protocol over ABC: structural subtyping, tests can pass plain fakes (ADR: ExMA anti-pattern)
"""

from typing import Any, Awaitable, Callable, Protocol, TypeVar

T = TypeVar("T")


class DatabaseHandle(Protocol):
    """A plain connection pool or an open transaction."""

    async def fetch_all(self, statement: Any, params: dict | None = None) -> list[dict]: ...
    async def fetch_one(self, statement: Any, params: dict | None = None) -> dict | None: ...
    async def scalar(self, statement: Any, params: dict | None = None) -> Any: ...
    async def execute(self, statement: Any, params: dict | None = None) -> int: ...

    async def transaction(
        self, work: Callable[["DatabaseHandle"], Awaitable[T]],
    ) -> T: ...
