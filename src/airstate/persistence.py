"""State persistence: save selected cells to a string store, debounced.

Stored envelope:

    {"version": 1, "timestamp": "<ISO-8601>", "data": {"<key>": <json value>}}

Values go through serialize(), a functools.singledispatch function. Custom
types opt in with @serialize.register; anything unregistered is stored as
str(value) and a SerializationFallback warning is logged.

Storage errors never escape: they are logged through the runtime's delegate
as PersistenceFailure and the operation becomes a no-op.
"""

from __future__ import annotations

import functools
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

from airstate.errors import PersistenceFailure, SerializationFallback, TypeConflict
from airstate.runtime import Runtime
from airstate.stream import EventStream

logger = logging.getLogger("airstate.persistence")

ENVELOPE_VERSION = 1
PERSISTENCE_SOURCE = "persistence"
_DATETIME_TAG = "DateTime"


# ─── Storage ─────────────────────────────────────────────────────────────────


class Storage(Protocol):
    def read(self, key: str) -> str | None:
        ...

    def write(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class InMemoryStorage:
    """Dict-backed storage, mostly for tests."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    def read(self, key: str) -> str | None:
        return self.data.get(key)

    def write(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class FileStorage:
    """One <key>.json file per storage key under directory."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def read(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._path(key).write_text(value, encoding="utf-8")

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


# ─── Codec ───────────────────────────────────────────────────────────────────


@functools.singledispatch
def serialize(value: Any) -> Any:
    """JSON-ready form of value. Unregistered types fall back to text."""
    logger.warning(
        "No serializer for %s; storing str(value)",
        type(value).__qualname__,
        extra={"condition": SerializationFallback.__name__},
    )
    return str(value)


@serialize.register(type(None))
@serialize.register(bool)
@serialize.register(int)
@serialize.register(float)
@serialize.register(str)
def _serialize_primitive(value: Any) -> Any:
    return value


@serialize.register(datetime)
def _serialize_datetime(value: datetime) -> dict[str, str]:
    return {"__type": _DATETIME_TAG, "value": value.isoformat()}


@serialize.register(list)
@serialize.register(tuple)
def _serialize_sequence(value: Iterable[Any]) -> list[Any]:
    return [serialize(item) for item in value]


@serialize.register(dict)
def _serialize_mapping(value: dict) -> dict[str, Any]:
    return {str(k): serialize(v) for k, v in value.items()}


def deserialize(value: Any) -> Any:
    """Reverse serialize() for the tagged forms it produces."""
    if isinstance(value, list):
        return [deserialize(item) for item in value]
    if isinstance(value, dict):
        if value.get("__type") == _DATETIME_TAG and set(value) == {"__type", "value"}:
            return datetime.fromisoformat(value["value"])
        return {k: deserialize(v) for k, v in value.items()}
    return value


# ─── Persistence ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PersistenceConfig:
    keys: tuple[str, ...]
    debounce: float = 0.5
    storage_key: str = "air_state"
    auto_restore: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "keys", tuple(self.keys))


class StatePersistence:
    """Saves configured keys to storage when they change, debounced."""

    def __init__(self, runtime: Runtime, storage: Storage | None = None) -> None:
        self._runtime = runtime
        self._storage: Storage = storage if storage is not None else InMemoryStorage()
        self._config: PersistenceConfig | None = None
        self._observer_id: int | None = None
        self._changes: EventStream[str] | None = None
        self._dirty = False
        self._listeners: list[Callable[[], None]] = []

    @property
    def config(self) -> PersistenceConfig | None:
        return self._config

    @property
    def is_configured(self) -> bool:
        return self._config is not None

    @property
    def storage(self) -> Storage:
        return self._storage

    def set_storage(self, storage: Storage) -> None:
        self._storage = storage

    def configure(self, config: PersistenceConfig) -> None:
        """Start watching config.keys; restore first if config.auto_restore."""
        self._detach()
        self._config = config
        keys = frozenset(config.keys)

        self._changes = EventStream()
        self._changes.debounce(config.debounce).subscribe(lambda _key: self._flush())

        def _on_state_change(key: str, _value: Any) -> None:
            if key in keys:
                self._mark_dirty(key)

        self._observer_id = self._runtime.subscribe_state(_on_state_change)
        self._runtime.delegate.log(
            "Configured state persistence",
            {"keys": list(config.keys), "storage_key": config.storage_key},
        )
        if config.auto_restore:
            self.restore()

    def _mark_dirty(self, key: str) -> None:
        self._dirty = True
        if self._changes is not None:
            self._changes.emit(key)

    def _flush(self) -> None:
        if self._dirty:
            self._dirty = False
            self._runtime.marshal(self.save)

    def save(self) -> None:
        """Write every configured key that has a cell to storage now."""
        config = self._config
        if config is None:
            self._runtime.delegate.log("State persistence not configured", is_error=True)
            return

        try:
            data = {}
            for key in config.keys:
                cell = self._runtime.registry.get(key)
                if cell is not None:
                    data[key] = serialize(cell.peek())
            payload = json.dumps(
                {"version": ENVELOPE_VERSION, "timestamp": datetime.now().isoformat(), "data": data}
            )
            self._storage.write(config.storage_key, payload)
        except Exception as exc:
            self._fail("save", exc)
            return

        self._runtime.delegate.log("State saved", {"keys": list(data)})
        for listener in list(self._listeners):
            listener()

    def restore(self) -> None:
        """Write stored values for configured keys back into the runtime."""
        config = self._config
        if config is None:
            self._runtime.delegate.log("State persistence not configured", is_error=True)
            return

        try:
            raw = self._storage.read(config.storage_key)
            if raw is None:
                self._runtime.delegate.log("No persisted state found")
                return
            data = json.loads(raw).get("data")
        except Exception as exc:
            self._fail("restore", exc)
            return

        if not data:
            return
        restored = []
        for key in data:
            if key not in config.keys:
                continue
            try:
                self._runtime.write(key, deserialize(data[key]), source_module_id=PERSISTENCE_SOURCE)
            except TypeConflict as exc:
                self._fail("restore", exc)
                continue
            restored.append(key)
        self._runtime.delegate.log("State restored", {"keys": restored})

    def clear(self) -> None:
        """Remove the persisted envelope from storage."""
        if self._config is None:
            return
        try:
            self._storage.remove(self._config.storage_key)
        except Exception as exc:
            self._fail("clear", exc)
            return
        self._runtime.delegate.log("Persisted state cleared")

    def add_save_listener(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def remove_save_listener(self, callback: Callable[[], None]) -> None:
        try:
            self._listeners.remove(callback)
        except ValueError:
            pass

    def dispose(self) -> None:
        """Stop watching, cancel any pending save and forget the config."""
        self._detach()
        self._listeners.clear()
        self._config = None

    def _detach(self) -> None:
        if self._changes is not None:
            self._changes.dispose()
            self._changes = None
        if self._observer_id is not None:
            self._runtime.unsubscribe_state(self._observer_id)
            self._observer_id = None
        self._dirty = False

    def _fail(self, operation: str, exc: Exception) -> None:
        failure = PersistenceFailure(operation, exc)
        self._runtime.delegate.log(str(failure), {"error": failure}, is_error=True)
