"""Push-based event stream with filter and debounce operators.

Used as the in-process transport behind LoggingDelegate and as the debounce
timer behind StatePersistence. Each operator returns a child stream;
disposing a child detaches it from its parent, disposing a parent tears down
every child.
"""

from __future__ import annotations

import threading
from typing import Callable, Generic, TypeVar

T = TypeVar("T")

Disposer = Callable[[], None]


class EventStream(Generic[T]):
    """Push-based event stream."""

    def __init__(self) -> None:
        self._subscribers: list[Callable[[T], None]] = []
        self._children: list[EventStream] = []
        self._cleanups: list[Disposer] = []
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def emit(self, value: T) -> None:
        """Push a value to all subscribers."""
        if self._disposed:
            return
        for cb in list(self._subscribers):
            cb(value)

    def subscribe(self, callback: Callable[[T], None]) -> Disposer:
        """Register a callback. Returns a function that removes it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass  # already removed

        return _unsubscribe

    def filter(self, fn: Callable[[T], bool]) -> EventStream[T]:
        """Only pass events where fn returns True."""
        child: EventStream[T] = self._spawn()
        child._cleanups.append(self.subscribe(lambda v: child.emit(v) if fn(v) else None))
        return child

    def debounce(self, seconds: float) -> EventStream[T]:
        """Emit the last event of a burst once seconds of quiet have passed.

        Every event cancels the pending threading.Timer and starts a new one,
        so a burst fires at most once per window. Disposing the child cancels
        any pending timer.
        """
        child: EventStream[T] = self._spawn()
        timer_lock = threading.Lock()
        pending: list[threading.Timer | None] = [None]

        def _on_event(value: T) -> None:
            with timer_lock:
                if pending[0] is not None:
                    pending[0].cancel()
                t = threading.Timer(seconds, child.emit, args=[value])
                t.daemon = True
                pending[0] = t
                t.start()

        def _cancel() -> None:
            with timer_lock:
                if pending[0] is not None:
                    pending[0].cancel()
                    pending[0] = None

        child._cleanups.append(self.subscribe(_on_event))
        child._cleanups.append(_cancel)
        return child

    def dispose(self) -> None:
        """Tear down this stream and all downstream children."""
        if self._disposed:
            return
        self._disposed = True
        self._subscribers.clear()
        for child in list(self._children):
            child.dispose()
        self._children.clear()
        for cleanup in self._cleanups:
            cleanup()
        self._cleanups.clear()

    def _spawn(self) -> EventStream:
        child: EventStream = EventStream()
        self._children.append(child)

        def _detach() -> None:
            try:
                self._children.remove(child)
            except ValueError:
                pass

        child._cleanups.append(_detach)
        return child
