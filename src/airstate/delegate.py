"""Delegate: the seam between the runtime and its host.

The runtime logs, audits cross-module writes and forwards pulses through
this four-method capability set and never through a concrete transport.
LoggingDelegate is the default: it logs to the "airstate" logger and delivers
pulses in-process through an EventStream.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Protocol, runtime_checkable

from airstate.stream import Disposer, EventStream

logger = logging.getLogger("airstate")


@runtime_checkable
class Delegate(Protocol):
    def log(self, message: str, context: Mapping[str, Any] | None = None, is_error: bool = False) -> None:
        ...

    def record_interaction(self, source_id: str, target_id: str, kind: str, detail: str) -> None:
        ...

    def pulse(self, action: str, payload: Any, source_id: str | None = None) -> None:
        ...

    def subscribe(self, action: str, callback: Callable[[Any], None]) -> Disposer:
        ...


class LoggingDelegate:
    """Standalone delegate: stdlib logging plus an in-process pulse stream."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._logger = log or logger
        self._events: EventStream[tuple[str, Any, str | None]] = EventStream()

    def log(self, message: str, context: Mapping[str, Any] | None = None, is_error: bool = False) -> None:
        if is_error:
            self._logger.error("%s %s", message, dict(context or {}))
        else:
            self._logger.debug("%s %s", message, dict(context or {}))

    def record_interaction(self, source_id: str, target_id: str, kind: str, detail: str) -> None:
        self._logger.debug("Interaction %s -> %s (%s): %s", source_id, target_id, kind, detail)

    def pulse(self, action: str, payload: Any, source_id: str | None = None) -> None:
        self._events.emit((action, payload, source_id))

    def subscribe(self, action: str, callback: Callable[[Any], None]) -> Disposer:
        """Deliver the payload of every pulse named action to callback.

        Returns a disposer that detaches the subscription.
        """
        matching = self._events.filter(lambda event: event[0] == action)
        matching.subscribe(lambda event: callback(event[1]))
        return matching.dispose

    def dispose(self) -> None:
        self._events.dispose()
        self._events = EventStream()
