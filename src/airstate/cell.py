"""Cells: named values that track their readers.

A Cell read inside a tracked evaluation registers itself with the runtime's
active scope. Writing a different value bumps the version, broadcasts the
change on the runtime's "state changed" channel, then calls the cell's own
listeners with the new value.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Generic, TypeVar

from airstate.errors import TypeConflict

if TYPE_CHECKING:
    from airstate.runtime import Runtime

T = TypeVar("T")

Listener = Callable[[T], None]

logger = logging.getLogger("airstate.cell")


def namespace_of(key: str) -> str | None:
    """Module prefix of a dotted key: "auth.user" -> "auth"."""
    if "." not in key:
        return None
    return key.split(".", 1)[0]


class Cell(Generic[T]):
    """A single named, versioned value with an ordered listener set."""

    __slots__ = ("key", "type", "nullable", "_value", "_version", "_listeners", "_runtime")

    def __init__(
        self,
        runtime: Runtime,
        key: str,
        value: T,
        type_: type | tuple[type, ...] = object,
        *,
        nullable: bool = True,
    ) -> None:
        self.key = key
        self.type = type_
        self.nullable = nullable
        self._value = value
        self._version = 0
        # dict as an insertion-ordered set
        self._listeners: dict[Listener, None] = {}
        self._runtime = runtime

    @property
    def version(self) -> int:
        return self._version

    @property
    def listeners(self) -> tuple[Listener, ...]:
        return tuple(self._listeners)

    def get(self) -> T:
        """Read the value. Inside a tracked evaluation, registers the dependency."""
        self._runtime.watchers.track(self)
        return self._value

    def peek(self) -> T:
        """Read the value without registering a dependency."""
        return self._value

    @property
    def value(self) -> T:
        return self.get()

    def set(
        self,
        value: T,
        *,
        source_module_id: str | None = None,
        silent: bool = False,
        force: bool = False,
    ) -> None:
        """Assign value and notify.

        Equal values are ignored unless force is set, which is how in-place
        mutation of a list or dict gets announced. silent assigns without
        notifying anyone. A value outside the bound type raises TypeConflict
        and leaves the cell untouched.
        """
        if not self.accepts(value):
            raise TypeConflict(self.key, self.type, type(value))
        old = self._value
        if not force and (old is value or old == value):
            return
        self._value = value
        self._version += 1
        self._audit(source_module_id)
        if not silent:
            self._notify()

    def accepts(self, value: object) -> bool:
        if value is None:
            return self.nullable
        return isinstance(value, self.type)

    def update(self, updater: Callable[[T], T], *, source_module_id: str | None = None) -> None:
        self.set(updater(self._value), source_module_id=source_module_id)

    def force_notify(self, *, source_module_id: str | None = None) -> None:
        """Re-broadcast the current value after it was mutated in place."""
        self._audit(source_module_id)
        self._notify()

    def add_listener(self, listener: Listener) -> None:
        self._listeners[listener] = None

    def remove_listener(self, listener: Listener) -> None:
        self._listeners.pop(listener, None)

    def _audit(self, source_module_id: str | None) -> None:
        if source_module_id is None:
            return
        target = namespace_of(self.key)
        if target is not None and target != source_module_id:
            self._runtime.delegate.record_interaction(source_module_id, target, "data", self.key)

    def _notify(self) -> None:
        value = self._value
        runtime = self._runtime
        with runtime.watchers.untracked():
            runtime.notify_state_change(self.key, value)
            # Snapshot: listeners may unsubscribe (or subscribe) while we deliver.
            for listener in list(self._listeners):
                try:
                    listener(value)
                except Exception:
                    logger.exception("Listener %r on %r failed", listener, self.key)

    def _dispose(self) -> None:
        self._listeners.clear()

    def __repr__(self) -> str:
        return f"Cell({self.key!r}, {self._value!r})"
