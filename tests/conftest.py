# python
import json
import threading

import pytest

from config_relay import Config, Fragment, MemorySource


def json_fragment(key, data):
    return Fragment(key=key, value=json.dumps(data).encode(), format="json")


class Recorder:
    """Observer that records calls and lets tests block until one arrives."""

    def __init__(self):
        self.calls = []
        self._event = threading.Event()

    def __call__(self, key, value):
        self.calls.append((key, value.load()))
        self._event.set()

    def wait(self, timeout=2.0):
        ok = self._event.wait(timeout)
        self._event.clear()
        return ok


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def make_config():
    created = []

    def factory(*sources, **kwargs):
        kwargs.setdefault("retry_backoff", 0.05)
        cfg = Config(*sources, **kwargs)
        created.append(cfg)
        return cfg

    yield factory
    for cfg in created:
        try:
            cfg.close()
        except Exception:
            pass


@pytest.fixture
def app_source():
    return MemorySource(json_fragment("app.json", {"level": "info", "workers": 4}))
