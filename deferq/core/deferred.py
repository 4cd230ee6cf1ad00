"""Deferred Operations - lazy query trees with transaction propagation and auto-flatten.

A query function is written as a plain function returning a DeferredOperation.
Callers compose deferred values with chain() and fold_all(); nothing touches the
database until execute() is awaited at the root. At that point the tree resolves
into one coroutine, with the transaction (if any node asks for one) opened once
and threaded down through the derived container.

Invariants:
    - Deferred values are immutable; mark_transacting() and chain() build new nodes
    - Every execute() re-runs its whole subtree (no memoization across calls)
    - A transaction is opened at most once per subtree: nodes below an open
      transaction see already_transacting=True and reuse it
    - If a continuation or fold returns a deferred value, its executed result is
      substituted (auto-flatten), against the same local container
    - Fold output order equals parent order, regardless of completion order
    - Leaf failures pass through container.translate_error before surfacing, and so
      do failures of a transaction opened at any node; continuation errors do not

Design Decisions:
    - Closed set of variants tagged by DeferredKind; the flatten check is an
      isinstance test against the Deferred base, not an attribute probe
    - run_in_scope is the only place that decides whether to open a transaction
    - Plain recursion over await: chains are dozens of nodes deep, not thousands
    - Fold waits for every sibling to settle before failing, so no sibling is
      still using a transaction handle when the transaction rolls back
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, ClassVar, Iterable, NoReturn

from deferq.core.container import ExecutionContainer
from deferq.core.errors import MissingContainerError

logger = logging.getLogger(__name__)

Factory = Callable[[ExecutionContainer], Any]
Continuation = Callable[[Any], Any]


class DeferredKind(str, Enum):
    """Variant tag for the three node types."""
    LEAF = "leaf"
    MAPPED = "mapped"
    FOLDED = "folded"


def identity(value: Any) -> Any:
    return value


def reraise(error: Exception) -> Any:
    raise error


async def settle(container: ExecutionContainer, value: Any) -> Any:
    """Await value if awaitable, then execute it if it is a deferred value."""
    if inspect.isawaitable(value):
        value = await value
    if isinstance(value, Deferred):
        return await value.execute(container)
    return value


async def run_in_scope(
    container: ExecutionContainer,
    transacting: bool,
    work: Callable[[ExecutionContainer], Any],
) -> Any:
    """Run work against container, opening a transaction first when required.

    Errors raised by the transaction itself (begin, commit, rollback) are passed
    through container.translate_error; errors raised by work propagate as they are.
    """
    if not transacting or container.already_transacting:
        return await settle(container, work(container))

    work_errors: list[Exception] = []

    async def in_transaction(handle) -> Any:
        local = container.with_transaction(handle)
        try:
            return await settle(local, work(local))
        except Exception as exc:
            work_errors.append(exc)
            raise

    logger.debug("Opening transaction", extra={"transacting": True})
    try:
        return await container.db.transaction(in_transaction)
    except Exception as exc:
        if any(exc is err for err in work_errors):
            raise
        _raise_translated(container, exc)


def _raise_translated(container: ExecutionContainer, error: Exception) -> NoReturn:
    translated = container.translate_error(error)
    if translated is error:
        raise error
    raise translated from error


@dataclass(frozen=True, eq=False, kw_only=True)
class Deferred(ABC):
    """Shared interface of the leaf, chain and fold nodes."""

    kind: ClassVar[DeferredKind]

    transacting: bool = False
    container: ExecutionContainer | None = None

    @abstractmethod
    async def execute(self, container: ExecutionContainer | None = None) -> Any:
        ...

    def _resolve_container(self, container: ExecutionContainer | None) -> ExecutionContainer:
        resolved = container if container is not None else self.container
        if resolved is None:
            raise MissingContainerError(self.kind.value)
        return resolved

    def mark_transacting(self) -> "Deferred":
        """Equivalent deferred value that must run inside a transaction."""
        if self.transacting:
            return self
        return replace(self, transacting=True)

    def chain(
        self,
        on_success: Continuation | None = None,
        on_failure: Continuation | None = None,
    ) -> "MappedDeferredOperation":
        return MappedDeferredOperation(
            self,
            on_success if on_success is not None else identity,
            on_failure if on_failure is not None else reraise,
            transacting=self.transacting,
            container=self.container,
        )

    def recover(self, on_failure: Continuation) -> "MappedDeferredOperation":
        return self.chain(identity, on_failure)


@dataclass(frozen=True, eq=False)
class DeferredOperation(Deferred):
    """Leaf: a factory producing the awaitable for one unit of database work."""

    kind: ClassVar[DeferredKind] = DeferredKind.LEAF

    factory: Factory

    async def execute(self, container: ExecutionContainer | None = None) -> Any:
        container = self._resolve_container(container)
        return await run_in_scope(container, self.transacting, self._produce)

    async def _produce(self, local: ExecutionContainer) -> Any:
        try:
            return await settle(local, self.factory(local))
        except Exception as exc:
            _raise_translated(local, exc)


@dataclass(frozen=True, eq=False)
class MappedDeferredOperation(Deferred):
    """Chain: parent, then on_success(value) or on_failure(error)."""

    kind: ClassVar[DeferredKind] = DeferredKind.MAPPED

    parent: Deferred
    on_success: Continuation = identity
    on_failure: Continuation = reraise

    async def execute(self, container: ExecutionContainer | None = None) -> Any:
        container = self._resolve_container(container)
        return await run_in_scope(container, self.transacting, self._evaluate)

    async def _evaluate(self, local: ExecutionContainer) -> Any:
        try:
            value = await self.parent.execute(local)
        except Exception as error:
            return await settle(local, self.on_failure(error))
        return await settle(local, self.on_success(value))


@dataclass(frozen=True, eq=False)
class FoldedDeferredOperation(Deferred):
    """Join: every parent concurrently, then fold(ordered results)."""

    kind: ClassVar[DeferredKind] = DeferredKind.FOLDED

    parents: tuple[Deferred, ...] = field(default_factory=tuple)
    fold: Callable[[list], Any] = identity
    on_failure: Continuation = reraise

    def __post_init__(self):
        object.__setattr__(self, "parents", tuple(self.parents))

    async def execute(self, container: ExecutionContainer | None = None) -> Any:
        container = self._resolve_container(container)
        return await run_in_scope(container, self.transacting, self._evaluate)

    async def _evaluate(self, local: ExecutionContainer) -> Any:
        try:
            results = await _gather_in_order(self.parents, local)
        except Exception as error:
            return await settle(local, self.on_failure(error))
        return await settle(local, self.fold(results))


async def _gather_in_order(
    parents: tuple[Deferred, ...], container: ExecutionContainer,
) -> list:
    """Run parents concurrently; results in parent order, first failure raised."""
    if not parents:
        return []
    tasks = [
        asyncio.ensure_future(settle(container, parent.execute(container)))
        for parent in parents
    ]
    completed: list[asyncio.Future] = []
    for task in tasks:
        task.add_done_callback(completed.append)
    await asyncio.wait(tasks)

    # retrieve every exception so none is reported as unobserved
    failures = [task.exception() for task in completed]
    for failure in failures:
        if failure is not None:
            raise failure
    return [task.result() for task in tasks]


def fold_all(
    parents: Iterable[Deferred],
    fold: Callable[[list], Any] | None = None,
    *,
    on_failure: Continuation | None = None,
    transacting: bool = False,
    container: ExecutionContainer | None = None,
) -> FoldedDeferredOperation:
    """Combine deferred values into one; fold receives their results in order."""
    parents = tuple(parents)
    if container is None:
        container = next(
            (p.container for p in parents if p.container is not None), None,
        )
    return FoldedDeferredOperation(
        parents,
        fold if fold is not None else identity,
        on_failure if on_failure is not None else reraise,
        transacting=transacting,
        container=container,
    )


def resolved(value: Any, container: ExecutionContainer | None = None) -> DeferredOperation:
    """Leaf that produces value without touching the database."""

    async def produce(_container: ExecutionContainer) -> Any:
        return value

    return DeferredOperation(produce, container=container)
