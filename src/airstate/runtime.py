"""Runtime: one isolated reactive store.

Owns the registry, the tracking scopes, the observer bus, the computed graph
and the typed action channels, and exposes them through one API. Runtimes
are ordinary objects: build one per application (or per test), pass it to
collaborators, close it when done.

Thread safety: call set_scheduler() once from the owning thread. After that,
write() from any other thread is handed to the scheduler; writes on the
owning thread stay synchronous.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Iterable, Mapping, TypeVar

from airstate._tracking import WatcherContext
from airstate.action import ActionEnvelope, ErrorCallback, Pulse, SuccessCallback
from airstate.bus import ActionBus, Channel, Observer
from airstate.cell import Cell
from airstate.computed import Compute, ComputedGraph, ComputedRegistration
from airstate.delegate import Delegate, LoggingDelegate
from airstate.errors import TypeConflict
from airstate.reaction import Reaction, Watcher
from airstate.registry import MISSING, Registry

T = TypeVar("T")

Scheduler = Callable[[Callable[[], None]], Any]


class Runtime:
    """A reactive value store with dependency tracking and an action bus."""

    def __init__(self, delegate: Delegate | None = None) -> None:
        self._owns_delegate = delegate is None
        self.delegate: Delegate = delegate if delegate is not None else LoggingDelegate()
        self.watchers = WatcherContext()
        self.bus = ActionBus()
        self.registry = Registry(self)
        self.computed = ComputedGraph(self)
        self._channels: dict[str, Pulse] = {}
        self._scheduler: Scheduler | None = None
        self._scheduler_thread: threading.Thread | None = None
        self._closed = False

    # ─── Configuration ───────────────────────────────────────────────────────

    def configure(self, *, delegate: Delegate) -> None:
        """Swap the host delegate."""
        self._release_delegate()
        self.delegate = delegate
        self._owns_delegate = False

    def set_scheduler(self, scheduler: Scheduler | None) -> None:
        """Marshal cross-thread writes through scheduler.

        Call from the owning thread, e.g. runtime.set_scheduler(app.call_from_thread).
        """
        self._scheduler = scheduler
        self._scheduler_thread = threading.current_thread() if scheduler is not None else None

    def marshal(self, fn: Callable[[], None]) -> None:
        """Run fn on the owning thread: inline if already there, else via the scheduler."""
        if self._scheduler is not None and threading.current_thread() != self._scheduler_thread:
            self._scheduler(fn)
        else:
            fn()

    # ─── State ───────────────────────────────────────────────────────────────

    def state(self, key: str, type_: Any = None, initial: Any = MISSING) -> Cell:
        """The cell for key, created with initial (or the type's zero value) if absent."""
        return self.registry.get_or_create(key, type_, initial)

    def read(self, key: str, default: Any = MISSING) -> Any:
        """Value of key. Tracked when called inside an evaluation."""
        cell = self.registry.get(key)
        if cell is None:
            if default is MISSING:
                raise KeyError(key)
            return default
        return cell.get()

    def write(
        self,
        key: str,
        value: Any,
        *,
        source_module_id: str | None = None,
        silent: bool = False,
        force: bool = False,
    ) -> None:
        """Assign value to key, creating the cell on first write."""
        self.marshal(
            lambda: self._write(key, value, source_module_id=source_module_id, silent=silent, force=force)
        )

    def _write(self, key: str, value: Any, *, source_module_id: str | None, silent: bool, force: bool) -> None:
        cell = self.registry.get(key)
        if cell is None:
            cell = self.registry.get_or_create(key, initial=value)
            force = True
        cell.set(value, source_module_id=source_module_id, silent=silent, force=force)

    def force_notify(self, key: str, *, source_module_id: str | None = None) -> None:
        """Re-broadcast key's current value after an in-place mutation."""
        cell = self.registry.get(key)
        if cell is None:
            raise KeyError(key)
        cell.force_notify(source_module_id=source_module_id)

    def exists(self, key: str) -> bool:
        return key in self.registry

    def remove(self, key: str) -> bool:
        return self.registry.remove(key)

    def snapshot(self) -> Mapping[str, Cell]:
        return self.registry.snapshot()

    def notify_state_change(self, key: str, value: Any) -> None:
        self.bus.dispatch(Channel.STATE, key, value)

    # ─── Observers ───────────────────────────────────────────────────────────

    def subscribe_action(self, callback: Observer) -> int:
        """callback(action, payload) on every pulse. Returns an observer ID."""
        return self.bus.subscribe(Channel.ACTION, callback)

    def unsubscribe_action(self, observer_id: int) -> bool:
        return self.bus.unsubscribe(Channel.ACTION, observer_id)

    def remove_action_observer(self, callback: Observer) -> int:
        """Remove by callback identity. Legacy; prefer unsubscribe_action."""
        return self.bus.unsubscribe_callback(Channel.ACTION, callback)

    def subscribe_state(self, callback: Observer) -> int:
        """callback(key, value) on every state change. Returns an observer ID."""
        return self.bus.subscribe(Channel.STATE, callback)

    def unsubscribe_state(self, observer_id: int) -> bool:
        return self.bus.unsubscribe(Channel.STATE, observer_id)

    def remove_state_observer(self, callback: Observer) -> int:
        """Remove by callback identity. Legacy; prefer unsubscribe_state."""
        return self.bus.unsubscribe_callback(Channel.STATE, callback)

    # ─── Actions ─────────────────────────────────────────────────────────────

    def channel(self, name: str, payload_type: type[T] | None = None) -> Pulse[T]:
        """The typed channel for name, registering it on first use.

        Raises TypeConflict if name is already bound to another payload type.
        """
        existing = self._channels.get(name)
        if existing is None:
            existing = self._channels[name] = Pulse(name, payload_type)
        elif existing.payload_type is not payload_type:
            raise TypeConflict(name, existing.payload_type, payload_type)
        return existing

    def pulse(
        self,
        action: str,
        payload: Any = None,
        *,
        source_module_id: str | None = None,
        on_success: SuccessCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        """Notify action observers, then hand an envelope to the delegate."""
        channel = self._channels.get(action)
        if channel is not None and not channel.accepts(payload):
            raise TypeConflict(action, channel.payload_type, type(payload))
        self.bus.dispatch(Channel.ACTION, action, payload)
        envelope = ActionEnvelope(
            action,
            payload,
            source_module_id=source_module_id,
            tag=channel.tag if channel is not None else None,
            on_success=on_success,
            on_error=on_error,
        )
        self.delegate.pulse(action, envelope, source_id=source_module_id)

    # ─── Tracked evaluation ──────────────────────────────────────────────────

    def evaluate(self, fn: Callable[[], T]) -> tuple[T, frozenset[str]]:
        """Run fn once, returning its result and the keys it read."""
        with self.watchers.scope() as collected:
            result = fn()
        return result, frozenset(cell.key for cell in collected)

    def autorun(self, fn: Callable[[], Any]) -> Watcher:
        """Run fn now and again whenever a cell it read changes."""
        watcher = Watcher(self, fn)
        watcher.run()
        return watcher

    def reaction(
        self,
        data_fn: Callable[[], T],
        effect_fn: Callable[[T], None],
        *,
        fire_immediately: bool = False,
    ) -> Reaction[T]:
        """Call effect_fn(result) whenever data_fn's result changes.

        Usage:
            runtime.write("first", "Alice")
            names = []
            r = runtime.reaction(lambda: runtime.read("first"), names.append)
            runtime.write("first", "Bob")   # names == ["Bob"]
            r.dispose()
        """
        r = Reaction(self, data_fn, effect_fn)
        if fire_immediately:
            r.run()
        else:
            r.prime()
        return r

    # ─── Computed ────────────────────────────────────────────────────────────

    def register_computed(
        self,
        target_key: str,
        dependencies: Iterable[str],
        compute: Compute,
        *,
        name: str | None = None,
    ) -> ComputedRegistration:
        return self.computed.register(target_key, dependencies, compute, name=name)

    def unregister_computed(self, target_key: str) -> bool:
        return self.computed.unregister(target_key)

    def is_computed(self, key: str) -> bool:
        return self.computed.is_computed(key)

    # ─── Lifecycle ───────────────────────────────────────────────────────────

    def clear(self) -> None:
        """Drop every cell. Observers and computed registrations stay."""
        self.registry.clear()

    def reset(self) -> None:
        """Drop every cell, observer, computed registration and channel."""
        self.computed.clear()
        self.registry.clear()
        self.bus.clear()
        self._channels.clear()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.reset()
        self._release_delegate()

    def _release_delegate(self) -> None:
        if self._owns_delegate and isinstance(self.delegate, LoggingDelegate):
            self.delegate.dispose()

    def __enter__(self) -> Runtime:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Runtime({len(self.registry)} cells, {len(self.bus)} observers)"
