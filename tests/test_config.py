import threading
import time

import pytest

from config_relay import (
    Config,
    ConfigAlreadyLoadedError,
    ConfigClosedError,
    ConfigCloseError,
    ConfigDecodeError,
    ConfigNotFoundError,
    Fragment,
    MemorySource,
    WatcherCancelledError,
)
from config_relay.sources import QueueWatcher
from conftest import json_fragment


class ScriptedWatcher:
    """Watcher that replays a list of results, then blocks until stopped."""

    def __init__(self, script):
        self._script = list(script)
        self._stopped = threading.Event()
        self.calls = []

    def next(self):
        self.calls.append(time.monotonic())
        if self._script:
            item = self._script.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item
        self._stopped.wait()
        raise WatcherCancelledError("stopped")

    def stop(self):
        self._stopped.set()


class ScriptedSource:
    def __init__(self, fragments=(), watcher=None, load_error=None, watch_error=None):
        self._fragments = list(fragments)
        self.watcher = watcher or ScriptedWatcher([])
        self._load_error = load_error
        self._watch_error = watch_error

    def load(self):
        if self._load_error:
            raise self._load_error
        return list(self._fragments)

    def watch(self):
        if self._watch_error:
            raise self._watch_error
        return self.watcher


class FailingStopWatcher(ScriptedWatcher):
    def stop(self):
        super().stop()
        raise RuntimeError("stop failed")


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_later_source_wins(make_config):
    a = MemorySource(json_fragment("a.json", {"level": "info"}))
    b = MemorySource(json_fragment("b.json", {"level": "debug"}))
    cfg = make_config(a, b)
    cfg.load()
    assert cfg.value("level").load() == "debug"


def test_value_is_cached_with_stable_identity(make_config, app_source):
    cfg = make_config(app_source)
    cfg.load()
    first = cfg.value("level")
    assert first.found
    assert cfg.value("level") is first


def test_missing_value_is_not_cached(make_config, app_source):
    cfg = make_config(app_source)
    before = cfg.value("missing")
    assert not before.found and before.load() is None
    cfg.load()
    after = cfg.value("missing")
    assert not after.found and after.load() is None
    assert after is not before
    with pytest.raises(ConfigNotFoundError):
        after.as_str()


def test_missing_key_found_after_merge_gets_new_value(make_config, app_source, recorder):
    cfg = make_config(app_source)
    cfg.load()
    missing = cfg.value("timeout")
    assert not missing.found

    with pytest.raises(ConfigNotFoundError):
        cfg.watch("timeout", recorder)

    cfg.watch("workers", recorder)
    app_source.update(json_fragment("app.json", {"level": "info", "workers": 8, "timeout": 3}))
    assert recorder.wait()

    fresh = cfg.value("timeout")
    assert fresh.found and fresh.load() == 3
    assert not missing.found
    cfg.watch("timeout", recorder)


def test_update_is_visible_to_existing_holders(make_config, app_source, recorder):
    cfg = make_config(app_source)
    cfg.load()
    workers = cfg.value("workers")
    cfg.watch("workers", recorder)

    app_source.update(json_fragment("app.json", {"level": "info", "workers": 16}))
    assert recorder.wait()
    assert workers.load() == 16
    assert recorder.calls == [("workers", 16)]


def test_type_change_is_not_propagated(make_config, recorder):
    src = MemorySource(json_fragment("app.json", {"level": "debug", "workers": 4}))
    cfg = make_config(src)
    cfg.load()
    level = cfg.value("level")
    level_calls = []
    cfg.watch("level", lambda k, v: level_calls.append(v.load()))
    cfg.watch("workers", recorder)

    src.update(json_fragment("app.json", {"level": 5}))
    # a later change on the same source proves the first batch was processed
    src.update(json_fragment("app.json", {"workers": 5}))
    assert recorder.wait()

    assert level.load() == "debug"
    assert level_calls == []
    assert cfg.value("level") is level


def test_same_type_change_notifies_once(make_config, recorder):
    src = MemorySource(json_fragment("app.json", {"port": 80}))
    cfg = make_config(src)
    cfg.load()
    cfg.watch("port", recorder)

    src.update(json_fragment("app.json", {"port": 8080}))
    assert recorder.wait()
    # unchanged payload on the next batch does not notify again
    src.update(json_fragment("app.json", {"port": 8080}))
    src.update(json_fragment("app.json", {"port": 9090}))
    assert recorder.wait()
    assert recorder.calls == [("port", 8080), ("port", 9090)]


def test_watch_replaces_previous_observer(make_config, app_source, recorder):
    cfg = make_config(app_source)
    cfg.load()
    first_calls = []
    cfg.watch("workers", lambda k, v: first_calls.append(v.load()))
    cfg.watch("workers", recorder)

    app_source.update(json_fragment("app.json", {"workers": 2}))
    assert recorder.wait()
    assert first_calls == []
    assert recorder.calls == [("workers", 2)]


def test_unwatch(make_config, app_source):
    cfg = make_config(app_source)
    cfg.load()
    cfg.watch("workers", lambda k, v: None)
    assert cfg.unwatch("workers") is True
    assert cfg.unwatch("workers") is False


def test_watch_rejects_non_callable(make_config, app_source):
    cfg = make_config(app_source)
    cfg.load()
    with pytest.raises(TypeError):
        cfg.watch("workers", 123)  # type: ignore[arg-type]


def test_failing_observer_does_not_stop_loop(make_config, app_source, recorder):
    cfg = make_config(app_source)
    cfg.load()

    def bad(key, value):
        raise RuntimeError("boom")

    cfg.watch("level", bad)
    cfg.watch("workers", recorder)
    app_source.update(json_fragment("app.json", {"level": "warn", "workers": 1}))
    assert recorder.wait()
    app_source.update(json_fragment("app.json", {"workers": 2}))
    assert recorder.wait()
    assert cfg.value("level").load() == "warn"


def test_placeholders_resolved_on_load(make_config):
    src = MemorySource(
        json_fragment(
            "app.json",
            {"host": "db", "port": 5432, "dsn": "pg://${host}:${port}/${name:app}"},
        )
    )
    cfg = make_config(src)
    cfg.load()
    assert cfg.value("dsn").load() == "pg://db:5432/app"


def test_load_fails_on_source_error(make_config):
    src = ScriptedSource(load_error=OSError("unreachable"))
    cfg = make_config(src)
    with pytest.raises(OSError):
        cfg.load()


def test_load_merge_failure_keeps_earlier_sources(make_config):
    good = MemorySource(json_fragment("a.json", {"level": "info"}))
    bad = ScriptedSource([Fragment("b.toml", b"level = 1", "toml")])
    cfg = make_config(good, bad)
    with pytest.raises(ConfigDecodeError):
        cfg.load()
    assert cfg.value("level").load() == "info"


def test_load_watch_failure_propagates(make_config):
    src = ScriptedSource([json_fragment("a.json", {"a": 1})], watch_error=RuntimeError("no watch"))
    cfg = make_config(src)
    with pytest.raises(RuntimeError, match="no watch"):
        cfg.load()


def test_load_twice_raises(make_config, app_source):
    cfg = make_config(app_source)
    cfg.load()
    with pytest.raises(ConfigAlreadyLoadedError):
        cfg.load()


def test_cancellation_exits_without_backoff(make_config):
    watcher = ScriptedWatcher([WatcherCancelledError("cancelled")])
    src = ScriptedSource([json_fragment("a.json", {"a": 1})], watcher=watcher)
    cfg = make_config(src, retry_backoff=10)
    start = time.monotonic()
    cfg.load()
    assert wait_until(lambda: not any(t.is_alive() for t in cfg._threads))
    assert time.monotonic() - start < 5
    assert len(watcher.calls) == 1


def test_transient_errors_back_off_and_continue(make_config, recorder):
    watcher = ScriptedWatcher(
        [
            OSError("flaky"),
            OSError("flaky"),
            [json_fragment("a.json", {"a": 2})],
        ]
    )
    src = ScriptedSource([json_fragment("a.json", {"a": 1})], watcher=watcher)
    cfg = make_config(src, retry_backoff=0.2)
    cfg.load()
    cfg.watch("a", recorder)
    assert recorder.wait(timeout=5)
    assert recorder.calls == [("a", 2)]
    first, second, third = watcher.calls[:3]
    assert second - first >= 0.15
    assert third - second >= 0.15


def test_default_backoff_is_one_second():
    cfg = Config()
    assert cfg._retry_backoff == 1.0


def test_merge_error_during_reconcile_keeps_last_good_state(make_config, recorder):
    src = MemorySource(json_fragment("app.json", {"workers": 1}))
    cfg = make_config(src)
    cfg.load()
    workers = cfg.value("workers")
    cfg.watch("workers", recorder)

    src.update(Fragment("app.json", b"{not json", "json"))
    src.update(json_fragment("app.json", {"workers": 3}))
    assert recorder.wait()
    assert workers.load() == 3
    assert recorder.calls == [("workers", 3)]


def test_transient_error_from_memory_source(make_config, app_source, recorder):
    cfg = make_config(app_source)
    cfg.load()
    cfg.watch("workers", recorder)
    app_source.fail(OSError("transport"))
    app_source.update(json_fragment("app.json", {"workers": 7}))
    assert recorder.wait()
    assert cfg.value("workers").load() == 7


def test_scan_into_multiple_targets(make_config, app_source):
    from dataclasses import dataclass

    @dataclass
    class AppSettings:
        level: str = ""
        workers: int = 0

    cfg = make_config(app_source)
    cfg.load()
    first = {"stale": True}
    second = AppSettings()
    cfg.scan(first, second)
    assert first == {"level": "info", "workers": 4}
    assert second == AppSettings(level="info", workers=4)
    first["level"] = "changed"
    third = {}
    cfg.scan(third)
    assert third["level"] == "info"


def test_close_stops_all_watchers(make_config, app_source):
    other = MemorySource(json_fragment("b.json", {"b": 1}))
    cfg = make_config(app_source, other)
    cfg.load()
    watchers = list(cfg._watchers)
    cfg.close()
    assert cfg.closed
    assert all(isinstance(w, QueueWatcher) and w.stopped for w in watchers)
    assert not any(t.is_alive() for t in cfg._threads)
    # idempotent
    cfg.close()


def test_close_aggregates_stop_failures(make_config):
    first = ScriptedSource([json_fragment("a.json", {"a": 1})], watcher=FailingStopWatcher([]))
    second = ScriptedSource([json_fragment("b.json", {"b": 1})])
    cfg = make_config(first, second)
    cfg.load()
    with pytest.raises(ConfigCloseError) as ei:
        cfg.close()
    assert len(ei.value.errors) == 1
    assert isinstance(ei.value.__cause__, RuntimeError)
    assert second.watcher._stopped.is_set()


def test_operations_after_close(make_config, app_source):
    cfg = make_config(app_source)
    cfg.load()
    cfg.close()
    with pytest.raises(ConfigClosedError):
        cfg.watch("level", lambda k, v: None)
    with pytest.raises(ConfigClosedError):
        cfg.load()
    # reads still work
    assert cfg.value("level").load() == "info"


def test_context_manager_closes(app_source):
    with Config(app_source) as cfg:
        cfg.load()
        assert cfg.value("workers").load() == 4
    assert cfg.closed


def test_custom_reader_cannot_be_combined_with_reader_options():
    from config_relay import MergeReader

    with pytest.raises(ValueError):
        Config(reader=MergeReader(), decoder=lambda kv, target: None)


def test_repr(make_config, app_source):
    cfg = make_config(app_source)
    assert repr(cfg).startswith("<Config")
