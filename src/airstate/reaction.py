"""Watchers: tracked evaluations that re-run when what they read changes.

Two flavors:
- Watcher (runtime.autorun(fn)): runs fn now and again whenever a cell it
  read changes.
- Reaction (runtime.reaction(data_fn, effect_fn)): tracks data_fn and calls
  effect_fn with the new result only when that result changes.

After each evaluation the watcher's subscriptions are diffed against the
cells just read: dropped cells are unsubscribed, new ones subscribed, and
cells read both times are left alone. A conditional branch therefore never
leaves a stale subscription behind.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar

if TYPE_CHECKING:
    from airstate.cell import Cell
    from airstate.runtime import Runtime

T = TypeVar("T")

_UNSET: Any = object()


class Watcher:
    """A tracked evaluation that re-runs itself on dependency changes."""

    __slots__ = ("_runtime", "_fn", "_dependencies", "_disposed", "_running", "_stale", "runs")

    def __init__(self, runtime: Runtime, fn: Callable[[], Any]) -> None:
        self._runtime = runtime
        self._fn = fn
        self._dependencies: set[Cell] = set()
        self._disposed = False
        self._running = False
        self._stale = False
        self.runs = 0

    @property
    def dependencies(self) -> frozenset[Cell]:
        return frozenset(self._dependencies)

    @property
    def dependency_keys(self) -> frozenset[str]:
        return frozenset(cell.key for cell in self._dependencies)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def run(self) -> Any:
        """Evaluate now. A change that lands mid-evaluation schedules one more pass."""
        if self._disposed:
            return None
        if self._running:
            self._stale = True
            return None
        self._running = True
        try:
            while True:
                self._stale = False
                result = self._evaluate(self._fn)
                self._react(result)
                if not self._stale or self._disposed:
                    return result
        finally:
            self._running = False

    def _evaluate(self, fn: Callable[[], Any]) -> Any:
        self.runs += 1
        collected: set[Cell] = set()
        try:
            with self._runtime.watchers.scope() as collected:
                return fn()
        finally:
            self._resubscribe(collected)

    def _react(self, result: Any) -> None:
        pass

    def _resubscribe(self, collected: set[Cell]) -> None:
        if self._disposed:
            return
        for cell in self._dependencies - collected:
            cell.remove_listener(self._on_change)
        for cell in collected - self._dependencies:
            cell.add_listener(self._on_change)
        self._dependencies = collected

    def _on_change(self, _value: Any) -> None:
        self.run()

    def dispose(self) -> None:
        """Stop watching. Unsubscribes from every dependency."""
        self._disposed = True
        for cell in self._dependencies:
            cell.remove_listener(self._on_change)
        self._dependencies = set()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "active"
        return f"{type(self).__name__}({getattr(self._fn, '__name__', self._fn)!r}, {state})"


class Reaction(Watcher, Generic[T]):
    """Tracks data_fn; calls effect_fn only when its result changes."""

    __slots__ = ("_effect_fn", "_last_value")

    def __init__(
        self,
        runtime: Runtime,
        data_fn: Callable[[], T],
        effect_fn: Callable[[T], None],
    ) -> None:
        super().__init__(runtime, data_fn)
        self._effect_fn = effect_fn
        self._last_value: Any = _UNSET

    @property
    def value(self) -> T:
        return self._last_value

    def prime(self) -> None:
        """Establish dependencies and the baseline value without firing the effect."""
        self._last_value = self._evaluate(self._fn)

    def _react(self, result: T) -> None:
        if self._last_value is not _UNSET and result == self._last_value:
            return
        self._last_value = result
        self._effect_fn(result)
