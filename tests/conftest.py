"""Shared fixtures: a fresh Runtime per test, wired to a recording delegate."""

import pytest

from airstate import LoggingDelegate, Runtime


class RecordingDelegate(LoggingDelegate):
    """LoggingDelegate that also keeps what the runtime told it."""

    def __init__(self):
        super().__init__()
        self.logs = []
        self.interactions = []
        self.pulses = []

    def log(self, message, context=None, is_error=False):
        self.logs.append((message, dict(context or {}), is_error))
        super().log(message, context, is_error)

    def record_interaction(self, source_id, target_id, kind, detail):
        self.interactions.append((source_id, target_id, kind, detail))

    def pulse(self, action, payload, source_id=None):
        self.pulses.append((action, payload, source_id))
        super().pulse(action, payload, source_id)

    def errors(self):
        return [entry for entry in self.logs if entry[2]]


@pytest.fixture
def delegate():
    return RecordingDelegate()


@pytest.fixture
def runtime(delegate):
    rt = Runtime(delegate=delegate)
    yield rt
    rt.close()
