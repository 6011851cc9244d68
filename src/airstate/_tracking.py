"""Dependency tracking scopes: the heart of airstate.

Each Runtime owns one WatcherContext. A tracked evaluation pushes a fresh
dependency set; every Cell read while that set is on top adds itself to it.
Nested evaluations push their own set, so a read always attributes to the
innermost evaluation and the outer one resumes tracking once the inner pops.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator

if TYPE_CHECKING:
    from airstate.cell import Cell


class WatcherContext:
    """Stack of active dependency-collecting scopes."""

    __slots__ = ("_stack",)

    def __init__(self) -> None:
        self._stack: list[set[Cell]] = []

    @property
    def active(self) -> set[Cell] | None:
        """The innermost scope, or None outside any tracked evaluation."""
        return self._stack[-1] if self._stack else None

    @property
    def depth(self) -> int:
        return len(self._stack)

    def track(self, cell: Cell) -> None:
        """Record a read of cell against the innermost scope, if any."""
        if self._stack:
            self._stack[-1].add(cell)

    @contextmanager
    def scope(self) -> Iterator[set[Cell]]:
        """Install a new dependency set for the duration of the block.

        The previous scope is restored on every exit path, including when the
        evaluated function raises.
        """
        collected: set[Cell] = set()
        self._stack.append(collected)
        try:
            yield collected
        finally:
            popped = self._stack.pop()
            if popped is not collected:
                raise RuntimeError("tracking scopes popped out of order")

    @contextmanager
    def untracked(self) -> Iterator[None]:
        """Suspend tracking: reads inside the block attribute to nothing."""
        saved = self._stack
        self._stack = []
        try:
            yield
        finally:
            self._stack = saved
