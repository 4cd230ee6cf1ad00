"""Query Modules - lift plain query functions into deferred-returning builders.

A query function has the shape (*args) -> (container -> awaitable). It never
opens transactions or translates errors itself; lifting it wraps the inner
function in a DeferredOperation so callers can chain, fold and mark it.

Invariants:
    - Calling a lifted query performs no IO; it only builds a DeferredOperation
    - Every lifted query is registered under its function name, visible in one place
    - Names that shadow QueryModule attributes are rejected at construction
"""

import functools
from typing import Any, Callable, Iterable

from deferq.core.container import ExecutionContainer
from deferq.core.deferred import DeferredOperation

QueryFunction = Callable[..., Callable[[ExecutionContainer], Any]]


def lift_query(
    fn: QueryFunction, container: ExecutionContainer | None = None,
) -> Callable[..., DeferredOperation]:
    """Wrap fn so that calling it returns a DeferredOperation."""

    @functools.wraps(fn)
    def build(*args, **kwargs) -> DeferredOperation:
        return DeferredOperation(fn(*args, **kwargs), container=container)

    return build


class QueryModule:
    """Named bundle of lifted query functions."""

    def __init__(
        self,
        name: str,
        functions: Iterable[QueryFunction],
        container: ExecutionContainer | None = None,
    ):
        self.name = name
        self.query_names: tuple[str, ...] = ()
        for fn in functions:
            query_name = fn.__name__
            if hasattr(self, query_name):
                raise ValueError(
                    f"Query '{query_name}' in module '{name}' is already defined",
                )
            setattr(self, query_name, lift_query(fn, container))
            self.query_names += (query_name,)

    def __repr__(self):
        return f"QueryModule({self.name!r}, {list(self.query_names)})"


def build_query_modules(
    modules: dict[str, Iterable[QueryFunction]],
    container: ExecutionContainer | None = None,
) -> dict[str, QueryModule]:
    """Build one QueryModule per entry of an explicit name -> functions mapping."""
    return {
        name: QueryModule(name, functions, container)
        for name, functions in modules.items()
    }
