"""Execution Container - immutable bag of resources threaded through evaluation.

Invariants:
    - Never mutated in place; a transaction upgrade derives a new container
    - already_transacting is True exactly when db is a handle bound to an open transaction
    - translate_error is the single hook that turns raw storage errors into DeferqError

Design Decisions:
    - Frozen dataclass + dataclasses.replace over dict merging: field set is explicit
"""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Mapping

from deferq.core.database_protocols import DatabaseHandle


def _passthrough(error: Exception) -> Exception:
    return error


@dataclass(frozen=True)
class ExecutionContainer:
    """Resources available to every node of one evaluation."""

    db: DatabaseHandle
    already_transacting: bool = False
    translate_error: Callable[[Exception], Exception] = _passthrough
    flags: Mapping[str, bool] = field(default_factory=dict)
    queries: Mapping[str, Any] = field(default_factory=dict)

    def with_transaction(self, handle: DatabaseHandle) -> "ExecutionContainer":
        """Derive a container whose db is the given transaction handle."""
        return replace(self, db=handle, already_transacting=True)

    def flag(self, name: str, default: bool = False) -> bool:
        return self.flags.get(name, default)
