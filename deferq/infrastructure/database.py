"""Database Manager - async SQLAlchemy engine exposed as DatabaseHandles for the deferred core.

Invariants:
    - EngineHandle runs each statement on a pooled connection in its own short transaction
    - EngineHandle.transaction(work) commits when work returns, rolls back when it raises
    - TransactionHandle statements are serialized: concurrent fold siblings share one
      connection, and an AsyncConnection accepts one operation at a time
    - Every container built here translates SQLAlchemy errors via translate_database_error

Design Decisions:
    - Singleton db_manager initialized on startup: FastAPI lifespan manages lifecycle
      (ADR: no global import side effects)
    - AsyncEngine.begin() owns commit/rollback: the core only decides when to open one
    - Rows returned as plain dicts: results outlive the pooled connection they came from
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy import text
from sqlalchemy.engine import Result, make_url
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from deferq.core.container import ExecutionContainer
from deferq.core.query_module import QueryModule, build_query_modules
from deferq.infrastructure.error_translation import translate_database_error
from deferq.queries import QUERY_MODULES

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _executable(statement: Any) -> Any:
    return text(statement) if isinstance(statement, str) else statement


def _all_rows(result: Result) -> list[dict]:
    return [dict(row) for row in result.mappings().all()]


def _first_row(result: Result) -> dict | None:
    row = result.mappings().first()
    return dict(row) if row is not None else None


def _scalar(result: Result) -> Any:
    return result.scalar()


def _rowcount(result: Result) -> int:
    return result.rowcount


class _StatementRunner(ABC):
    """Read/write helpers shared by both handle types."""

    @abstractmethod
    async def _run(
        self, statement: Any, params: dict | None, consume: Callable[[Result], T],
    ) -> T:
        ...

    async def fetch_all(self, statement: Any, params: dict | None = None) -> list[dict]:
        return await self._run(statement, params, _all_rows)

    async def fetch_one(self, statement: Any, params: dict | None = None) -> dict | None:
        return await self._run(statement, params, _first_row)

    async def scalar(self, statement: Any, params: dict | None = None) -> Any:
        return await self._run(statement, params, _scalar)

    async def execute(self, statement: Any, params: dict | None = None) -> int:
        return await self._run(statement, params, _rowcount)


class TransactionHandle(_StatementRunner):
    """One connection inside an open transaction."""

    def __init__(self, connection: AsyncConnection):
        self.connection = connection
        self._lock = asyncio.Lock()

    async def _run(self, statement, params, consume):
        async with self._lock:
            result = await self.connection.execute(_executable(statement), params)
            return consume(result)

    async def transaction(self, work: Callable[["TransactionHandle"], Awaitable[T]]) -> T:
        """Run work inside a SAVEPOINT on this connection."""
        async with self._lock:
            savepoint = await self.connection.begin_nested()
        try:
            value = await work(self)
        except Exception:
            logger.debug("Rolling back to savepoint", extra={"transacting": True})
            async with self._lock:
                await savepoint.rollback()
            raise
        async with self._lock:
            await savepoint.commit()
        return value


class EngineHandle(_StatementRunner):
    """Pooled access; the handle a container holds before any transaction opens."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def _run(self, statement, params, consume):
        async with self.engine.begin() as connection:
            result = await connection.execute(_executable(statement), params)
            return consume(result)

    async def transaction(self, work: Callable[[TransactionHandle], Awaitable[T]]) -> T:
        async with self.engine.begin() as connection:
            return await work(TransactionHandle(connection))


class DatabaseManager:
    """Owns the engine and builds execution containers over it."""

    def __init__(
        self,
        database_url: str,
        pool_size: int = 20,
        max_overflow: int = 10,
        echo: bool = False,
    ):
        engine_kwargs: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
        # SQLite pools reject sizing arguments
        if make_url(database_url).get_backend_name() != "sqlite":
            engine_kwargs.update(
                pool_size=pool_size, max_overflow=max_overflow, pool_recycle=3600,
            )
        self.engine = create_async_engine(database_url, **engine_kwargs)
        self.handle = EngineHandle(self.engine)
        self.query_modules: dict[str, QueryModule] = build_query_modules(QUERY_MODULES)

    def container(self, **flags: bool) -> ExecutionContainer:
        """Fresh, non-transacting container for one evaluation."""
        return ExecutionContainer(
            db=self.handle,
            translate_error=translate_database_error,
            flags=flags,
            queries=self.query_modules,
        )

    async def dispose(self) -> None:
        await self.engine.dispose()


# Singleton (initialized on startup)
db_manager: DatabaseManager | None = None


def init_db(database_url: str, **kwargs) -> DatabaseManager:
    global db_manager
    db_manager = DatabaseManager(database_url, **kwargs)
    return db_manager


async def get_container() -> ExecutionContainer:
    """FastAPI dependency for execution containers."""
    if not db_manager:
        raise RuntimeError("Database not initialized")
    return db_manager.container()
