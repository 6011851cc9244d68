"""ActionBus: ID-addressable observer lists for actions and state changes.

Dispatch is synchronous and walks a point-in-time copy of the observer list,
so observers may subscribe or unsubscribe while being called: the change
shows up on the next dispatch, not the current one. Each observer is
isolated; one that raises is logged and the rest still run.
"""

from __future__ import annotations

import enum
import itertools
import logging
from typing import Any, Callable

logger = logging.getLogger("airstate.bus")

Observer = Callable[[str, Any], None]

# IDs are unique for the life of the process, across every bus and channel.
_id_counter = itertools.count(1)


class Channel(enum.Enum):
    ACTION = "action"
    STATE = "state"


class ActionBus:
    """Two independent, ordered observer lists keyed by registration ID."""

    def __init__(self) -> None:
        # dicts keep insertion order and give O(1) removal by ID
        self._observers: dict[Channel, dict[int, Observer]] = {channel: {} for channel in Channel}

    def subscribe(self, channel: Channel, callback: Observer) -> int:
        """Register callback on channel. Returns the ID used to remove it."""
        observer_id = next(_id_counter)
        self._observers[channel][observer_id] = callback
        return observer_id

    def unsubscribe(self, channel: Channel, observer_id: int) -> bool:
        return self._observers[channel].pop(observer_id, None) is not None

    def unsubscribe_callback(self, channel: Channel, callback: Observer) -> int:
        """Remove every registration of callback. Legacy; prefer IDs."""
        observers = self._observers[channel]
        stale = [oid for oid, cb in observers.items() if cb == callback]
        for oid in stale:
            del observers[oid]
        return len(stale)

    def dispatch(self, channel: Channel, name: str, payload: Any) -> None:
        """Call every observer on channel with (name, payload), in order."""
        for observer_id, callback in list(self._observers[channel].items()):
            try:
                callback(name, payload)
            except Exception:
                logger.exception(
                    "%s observer %d failed on %r", channel.value, observer_id, name
                )

    def count(self, channel: Channel) -> int:
        return len(self._observers[channel])

    def clear(self) -> None:
        for observers in self._observers.values():
            observers.clear()

    def __len__(self) -> int:
        return sum(len(observers) for observers in self._observers.values())
