from __future__ import annotations

import logging
import threading
from functools import wraps
from types import TracebackType
from typing import Any, Callable, List, Literal, Optional, Type, TypeVar, cast

from config_relay.cache import ValueCache
from config_relay.codecs import unmarshal_json
from config_relay.exceptions import (
    ConfigAlreadyLoadedError,
    ConfigClosedError,
    ConfigCloseError,
    ConfigNotFoundError,
    WatcherCancelledError,
)
from config_relay.observers import Observer, ObserverRegistry
from config_relay.reader import Decoder, MergeFunc, MergeReader, Reader, ReaderOptions
from config_relay.resolver import Resolver
from config_relay.source import Source, Watcher
from config_relay.value import Value

logger = logging.getLogger("config_relay.config")
logger.addHandler(logging.NullHandler())


F = TypeVar("F", bound=Callable[..., Any])

DEFAULT_RETRY_BACKOFF = 1.0
JOIN_TIMEOUT = 5.0


def ensure_open(func: F) -> F:
    """
    Decorator to check the config has not been closed before method execution.
    Raises ConfigClosedError if it has.
    """

    @wraps(func)
    def wrapper(self: "Config", *args: Any, **kwargs: Any) -> Any:
        if self.closed:
            logger.error(f"Attempted {func.__name__} after close.")
            raise ConfigClosedError("Config has been closed")
        return func(self, *args, **kwargs)

    return cast(F, wrapper)


class Config:
    """
    Live view over several configuration sources.

    ``load()`` merges every source in order (later sources win) and starts one
    background thread per source that folds its changes back into the merged view.
    ``value()`` hands out cached ``Value`` objects that are updated in place, and
    ``watch()`` registers a per-key observer fired on type-stable changes.
    """

    def __init__(
        self,
        *sources: Source,
        decoder: Optional[Decoder] = None,
        resolver: Optional[Resolver] = None,
        merge: Optional[MergeFunc] = None,
        reader: Optional[Reader] = None,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF,
        observer_failure_mode: Literal["ignore", "log"] = "log",
    ) -> None:
        if retry_backoff < 0:
            raise ValueError("retry_backoff must be >= 0")
        self._sources: List[Source] = list(sources)
        if reader is None:
            defaults = ReaderOptions()
            reader = MergeReader(
                ReaderOptions(
                    decoder=decoder or defaults.decoder,
                    resolver=resolver or defaults.resolver,
                    merge=merge or defaults.merge,
                )
            )
        elif decoder or resolver or merge:
            raise ValueError("decoder/resolver/merge cannot be combined with a custom reader")
        self._reader: Reader = reader
        self._retry_backoff = retry_backoff

        self._lock = threading.RLock()
        self._cache = ValueCache()
        self._observers = ObserverRegistry(observer_failure_mode)
        self._watchers: List[Watcher] = []
        self._threads: List[threading.Thread] = []
        self._closing = threading.Event()
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def closed(self) -> bool:
        return self._closing.is_set()

    # reconciliation
    def _watch(self, watcher: Watcher) -> None:
        while True:
            try:
                fragments = watcher.next()
            except WatcherCancelledError as exc:
                logger.info("Watcher cancelled: %s", exc)
                return
            except Exception as exc:
                logger.error("Failed to watch next config: %s", exc)
                if self._closing.wait(self._retry_backoff):
                    return
                continue
            if self._closing.is_set():
                return
            try:
                self._reader.merge(*fragments)
            except Exception as exc:
                logger.error("Failed to merge next config: %s", exc)
                continue
            try:
                self._reader.resolve()
            except Exception as exc:
                logger.error("Failed to resolve next config: %s", exc)
                continue
            self._propagate()

    def _propagate(self) -> None:
        for key, cached in self._cache.items():
            fresh = self._reader.value(key)
            if fresh is None:
                continue
            new, old = fresh.load(), cached.load()
            # a type change is not a comparable change
            if type(new) is not type(old) or new == old:
                continue
            cached.store(new)
            logger.debug("Config key=%r changed", key)
            self._observers.notify(key, cached)

    # public surface
    @ensure_open
    def load(self) -> None:
        """
        Load every source, start watching it, then resolve the merged view.

        A failure aborts the load; sources merged so far stay merged and the
        instance should be discarded.
        """
        with self._lock:
            if self._loaded:
                raise ConfigAlreadyLoadedError("Config.load() may only be called once")
            self._loaded = True
            for src in self._sources:
                fragments = src.load()
                for kv in fragments:
                    logger.debug("config loaded: %s format: %s", kv.key, kv.format)
                try:
                    self._reader.merge(*fragments)
                except Exception as exc:
                    logger.error("Failed to merge config source: %s", exc)
                    raise
                try:
                    watcher = src.watch()
                except Exception as exc:
                    logger.error("Failed to watch config source: %s", exc)
                    raise
                self._watchers.append(watcher)
                t = threading.Thread(
                    target=self._watch,
                    args=(watcher,),
                    name=f"config-relay-watch-{len(self._watchers)}",
                    daemon=True,
                )
                t.start()
                self._threads.append(t)
            try:
                self._reader.resolve()
            except Exception as exc:
                logger.error("Failed to resolve config source: %s", exc)
                raise

    def value(self, key: str) -> Value:
        """
        Return the live value for ``key``.

        Missing keys yield ``Value.missing(key)`` rather than raising; it is not
        cached, so a key that appears later is picked up on the next call.
        """
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        fresh = self._reader.value(key)
        if fresh is not None:
            return self._cache.load_or_store(key, fresh)
        return Value.missing(key)

    def scan(self, *targets: Any) -> None:
        """Decode the whole merged configuration into each target."""
        data = self._reader.source()
        for target in targets:
            unmarshal_json(data, target)

    @ensure_open
    def watch(self, key: str, observer: Observer) -> None:
        if self.value(key).load() is None:
            raise ConfigNotFoundError(key)
        self._observers.register(key, observer)

    def unwatch(self, key: str) -> bool:
        return self._observers.unregister(key)

    def close(self) -> None:
        """
        Stop every watcher and wait for the watch threads to exit.

        All watchers are stopped even if some fail; failures are raised together
        as ConfigCloseError afterwards.
        """
        with self._lock:
            if self._closing.is_set():
                return
            self._closing.set()
            errors: List[BaseException] = []
            for w in self._watchers:
                try:
                    w.stop()
                except Exception as exc:
                    logger.error("Failed to stop watcher %r: %s", w, exc)
                    errors.append(exc)
            for t in self._threads:
                if t is not threading.current_thread():
                    t.join(JOIN_TIMEOUT)
                    if t.is_alive():
                        logger.warning("Watch thread %s did not exit in time", t.name)
            self._observers.clear()
            logger.info("Config closed.")
        if errors:
            raise ConfigCloseError(errors) from errors[0]

    def __enter__(self) -> "Config":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"<Config sources={len(self._sources)} loaded={self._loaded} "
            f"closed={self.closed} cached={len(self._cache)}>"
        )
