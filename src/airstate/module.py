"""StateModule: base class for a logical module's business logic.

A module has an id, handles pulses through the runtime's delegate transport,
emits pulses and flows values attributed to itself, and releases every
subscription it made on dispose().

Usage:
    class Tasks(StateModule):
        added = Pulse("tasks.add", str)

        def on_init(self):
            self.flow("tasks.items", [])

        def on_pulses(self):
            self.on(self.added, self._add)

        def _add(self, title, on_success=None, on_error=None):
            self.runtime.state("tasks.items").update(lambda items: items + [title])
            if on_success:
                on_success()
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar

from airstate.action import ActionEnvelope, ErrorCallback, Pulse, SuccessCallback
from airstate.runtime import Runtime
from airstate.stream import Disposer

T = TypeVar("T")

Handler = Callable[..., None]


class StateModule:
    """Module-scoped pulse handlers and state writes with subscription cleanup."""

    def __init__(self, runtime: Runtime, module_id: str | None = None) -> None:
        self.runtime = runtime
        self.module_id = module_id
        self._subscriptions: list[Disposer] = []
        self.on_init()
        self.on_pulses()

    def on_init(self) -> None:
        """Seed state before any handler is registered."""

    def on_pulses(self) -> None:
        """Register pulse handlers with on() / on_raw()."""

    def on(self, pulse: Pulse[T], handler: Handler) -> None:
        """Handle pulse: handler(payload, on_success=..., on_error=...).

        The channel's payload type is checked here, once; a conflicting
        registration raises TypeConflict.
        """
        self.runtime.channel(pulse.name, pulse.payload_type)
        self._listen(pulse.name, handler)

    def on_raw(self, action: str, handler: Handler) -> None:
        """Handle an untyped action by name."""
        self._listen(action, handler)

    def _listen(self, action: str, handler: Handler) -> None:
        def _deliver(envelope: ActionEnvelope) -> None:
            handler(envelope.payload, on_success=envelope.on_success, on_error=envelope.on_error)

        self._subscriptions.append(self.runtime.delegate.subscribe(action, _deliver))

    def pulse(
        self,
        pulse: Pulse[T],
        payload: T,
        *,
        on_success: SuccessCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        """Emit pulse attributed to this module."""
        pulse.pulse(
            self.runtime,
            payload,
            source_module_id=self.module_id,
            on_success=on_success,
            on_error=on_error,
        )

    def pulse_raw(
        self,
        action: str,
        payload: Any = None,
        *,
        on_success: SuccessCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self.runtime.pulse(
            action,
            payload,
            source_module_id=self.module_id,
            on_success=on_success,
            on_error=on_error,
        )

    def flow(self, key: str, value: Any, *, source_module_id: str | None = None) -> None:
        """Write value into key, attributed to this module unless told otherwise."""
        self.runtime.write(key, value, source_module_id=source_module_id or self.module_id)

    def dispose(self) -> None:
        """Release every subscription this module made."""
        for dispose in self._subscriptions:
            dispose()
        self._subscriptions.clear()
