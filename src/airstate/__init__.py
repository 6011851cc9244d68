"""airstate: a reactive value store with automatic dependency tracking."""

from importlib.metadata import version as _version

__version__ = _version("airstate")

from airstate.errors import (
    AirStateError,
    ComputeFailure,
    MissingInitialValue,
    PersistenceFailure,
    SerializationFallback,
    TypeConflict,
)
from airstate.cell import Cell
from airstate.registry import MISSING, Registry
from airstate.bus import ActionBus, Channel
from airstate.action import ActionEnvelope, Pulse
from airstate.reaction import Reaction, Watcher
from airstate.computed import ABSENT, ComputedGraph, ComputedRegistration
from airstate.delegate import Delegate, LoggingDelegate
from airstate.stream import EventStream
from airstate.runtime import Runtime
from airstate.module import StateModule
from airstate.persistence import (
    FileStorage,
    InMemoryStorage,
    PersistenceConfig,
    StatePersistence,
    deserialize,
    serialize,
)
# textual is not auto-imported; opt-in only

__all__ = [
    "ABSENT",
    "MISSING",
    "ActionBus",
    "ActionEnvelope",
    "AirStateError",
    "Cell",
    "Channel",
    "ComputeFailure",
    "ComputedGraph",
    "ComputedRegistration",
    "Delegate",
    "EventStream",
    "FileStorage",
    "InMemoryStorage",
    "LoggingDelegate",
    "MissingInitialValue",
    "PersistenceConfig",
    "PersistenceFailure",
    "Pulse",
    "Reaction",
    "Registry",
    "Runtime",
    "SerializationFallback",
    "StateModule",
    "StatePersistence",
    "TypeConflict",
    "Watcher",
    "deserialize",
    "serialize",
]
