"""Tests for state persistence: codec, envelope, debounce and failure handling."""

import json
import logging
import threading
from datetime import datetime

from airstate import (
    Channel,
    FileStorage,
    InMemoryStorage,
    PersistenceConfig,
    PersistenceFailure,
    StatePersistence,
    deserialize,
    serialize,
)


class _BrokenStorage:
    def read(self, key):
        raise OSError("disk gone")

    def write(self, key, value):
        raise OSError("disk gone")

    def remove(self, key):
        raise OSError("disk gone")


class Point:
    def __init__(self, x, y):
        self.x = x
        self.y = y

    def __str__(self):
        return f"Point({self.x}, {self.y})"


def _configured(runtime, storage=None, **overrides):
    persistence = StatePersistence(runtime, storage)
    options = {"keys": ["counter", "name"], "debounce": 0.02, "auto_restore": False}
    options.update(overrides)
    persistence.configure(PersistenceConfig(**options))
    return persistence


class TestSerialize:
    def test_primitives_pass_through(self):
        for value in (None, True, 3, 2.5, "text"):
            assert serialize(value) == value

    def test_datetime(self):
        when = datetime(2024, 5, 1, 12, 30)
        assert serialize(when) == {"__type": "DateTime", "value": "2024-05-01T12:30:00"}

    def test_nested_structures(self):
        value = {"items": [1, (2, 3)], 4: {"at": datetime(2024, 1, 1)}}
        assert serialize(value) == {
            "items": [1, [2, 3]],
            "4": {"at": {"__type": "DateTime", "value": "2024-01-01T00:00:00"}},
        }

    def test_fallback_to_text_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="airstate.persistence"):
            assert serialize(Point(1, 2)) == "Point(1, 2)"
        assert "No serializer for Point" in caplog.text

    def test_registered_type(self):
        class Money:
            def __init__(self, cents):
                self.cents = cents

        @serialize.register(Money)
        def _(value):
            return {"cents": value.cents}

        assert serialize([Money(250)]) == [{"cents": 250}]

    def test_deserialize_datetime(self):
        when = datetime(2024, 5, 1, 12, 30)
        assert deserialize({"at": serialize(when), "list": [serialize(when)]}) == {
            "at": when,
            "list": [when],
        }

    def test_deserialize_leaves_plain_dicts(self):
        assert deserialize({"__type": "Other", "value": 1}) == {"__type": "Other", "value": 1}


class TestStatePersistence:
    def test_round_trip(self, runtime):
        storage = InMemoryStorage()
        runtime.write("counter", 5)
        runtime.write("name", "Alice")
        persistence = _configured(runtime, storage)
        persistence.save()

        runtime.clear()
        assert not runtime.exists("counter")

        persistence.restore()
        assert runtime.read("counter") == 5
        assert runtime.read("name") == "Alice"

    def test_envelope_format(self, runtime):
        storage = InMemoryStorage()
        runtime.write("counter", 5)
        runtime.write("other", 1)
        _configured(runtime, storage).save()

        envelope = json.loads(storage.data["air_state"])
        assert envelope["version"] == 1
        datetime.fromisoformat(envelope["timestamp"])
        assert envelope["data"] == {"counter": 5}

    def test_restore_only_configured_keys(self, runtime):
        storage = InMemoryStorage()
        storage.write(
            "air_state",
            json.dumps({"version": 1, "timestamp": "2024-01-01T00:00:00", "data": {"counter": 1, "stray": 2}}),
        )
        _configured(runtime, storage).restore()
        assert runtime.read("counter") == 1
        assert not runtime.exists("stray")

    def test_auto_restore(self, runtime):
        storage = InMemoryStorage()
        runtime.write("counter", 9)
        _configured(runtime, storage).save()
        runtime.clear()

        persistence = StatePersistence(runtime, storage)
        persistence.configure(PersistenceConfig(keys=["counter"], debounce=0.02))
        assert runtime.read("counter") == 9

    def test_restore_attributed_to_persistence(self, runtime, delegate):
        storage = InMemoryStorage()
        runtime.write("prefs.theme", "dark")
        persistence = _configured(runtime, storage, keys=["prefs.theme"])
        persistence.save()
        runtime.clear()
        persistence.restore()
        assert ("persistence", "prefs", "data", "prefs.theme") in delegate.interactions

    def test_restored_value_of_other_type_is_skipped(self, runtime, delegate):
        storage = InMemoryStorage()
        storage.write(
            "air_state",
            json.dumps({"version": 1, "timestamp": "2024-01-01T00:00:00", "data": {"counter": "five", "name": "Bo"}}),
        )
        runtime.state("counter", int, 3)
        _configured(runtime, storage).restore()
        assert runtime.read("counter") == 3
        assert runtime.read("name") == "Bo"
        [(_, context, _)] = delegate.errors()
        assert context["error"].operation == "restore"
        assert ("State restored", {"keys": ["name"]}, False) in delegate.logs

    def test_no_persisted_state(self, runtime, delegate):
        _configured(runtime).restore()
        assert ("No persisted state found", {}, False) in delegate.logs

    def test_debounced_save(self, runtime):
        storage = InMemoryStorage()
        persistence = _configured(runtime, storage, debounce=0.1)
        saved = threading.Event()
        saves = []

        def on_save():
            saves.append(storage.read("air_state"))
            saved.set()

        persistence.add_save_listener(on_save)
        for n in range(5):
            runtime.write("counter", n)
        runtime.write("unwatched", 1)

        assert saved.wait(timeout=1)
        assert len(saves) == 1
        assert json.loads(saves[0])["data"]["counter"] == 4

    def test_save_marshaled_through_scheduler(self, runtime):
        scheduled = []
        runtime.set_scheduler(scheduled.append)
        persistence = _configured(runtime, InMemoryStorage())
        done = threading.Event()
        persistence.add_save_listener(done.set)

        runtime.write("counter", 1)
        # The timer thread hands the save to the scheduler instead of running it.
        for _ in range(100):
            if scheduled:
                break
            done.wait(timeout=0.01)
        assert not done.is_set()
        assert len(scheduled) == 1
        scheduled[0]()
        assert done.is_set()

    def test_failures_are_logged_not_raised(self, runtime, delegate):
        runtime.write("counter", 1)
        persistence = _configured(runtime, _BrokenStorage())
        persistence.save()
        persistence.restore()
        persistence.clear()
        errors = delegate.errors()
        assert len(errors) == 3
        assert all(isinstance(context["error"], PersistenceFailure) for _, context, _ in errors)
        assert [context["error"].operation for _, context, _ in errors] == ["save", "restore", "clear"]

    def test_corrupt_envelope(self, runtime, delegate):
        storage = InMemoryStorage()
        storage.write("air_state", "{not json")
        _configured(runtime, storage).restore()
        assert len(delegate.errors()) == 1

    def test_not_configured(self, runtime, delegate):
        persistence = StatePersistence(runtime)
        assert not persistence.is_configured
        persistence.save()
        persistence.restore()
        assert len(delegate.errors()) == 2

    def test_clear(self, runtime):
        storage = InMemoryStorage()
        runtime.write("counter", 1)
        persistence = _configured(runtime, storage)
        persistence.save()
        persistence.clear()
        assert storage.read("air_state") is None

    def test_dispose_stops_watching(self, runtime):
        persistence = _configured(runtime)
        persistence.dispose()
        assert persistence.config is None
        assert runtime.bus.count(Channel.STATE) == 0

    def test_save_listener_removal(self, runtime):
        persistence = _configured(runtime)
        calls = []
        persistence.add_save_listener(lambda: calls.append(1))
        listener = calls.clear
        persistence.add_save_listener(listener)
        persistence.remove_save_listener(listener)
        persistence.remove_save_listener(listener)
        persistence.save()
        assert calls == [1]


class TestFileStorage:
    def test_read_write_remove(self, tmp_path):
        storage = FileStorage(tmp_path / "state")
        assert storage.read("air_state") is None
        storage.write("air_state", "{}")
        assert (tmp_path / "state" / "air_state.json").read_text() == "{}"
        assert storage.read("air_state") == "{}"
        storage.remove("air_state")
        storage.remove("air_state")
        assert storage.read("air_state") is None

    def test_round_trip_through_files(self, runtime, tmp_path):
        runtime.write("counter", 5)
        runtime.write("name", "Alice")
        persistence = _configured(runtime, FileStorage(tmp_path))
        persistence.save()
        runtime.clear()
        persistence.restore()
        assert runtime.read("counter") == 5
        assert runtime.read("name") == "Alice"
