from __future__ import annotations

import logging
import queue
import threading
from typing import Any, List

from config_relay.exceptions import WatcherCancelledError
from config_relay.source import Fragment

logger = logging.getLogger("config_relay.sources")
logger.addHandler(logging.NullHandler())

_STOP = object()


class QueueWatcher:
    """
    Watcher fed through a thread-safe queue.

    Producers call ``push()`` with a batch of fragments (or ``fail()`` with an
    exception); ``next()`` blocks for the next item. After ``stop()`` every pending
    and future ``next()`` raises WatcherCancelledError.
    """

    def __init__(self) -> None:
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._stopped = threading.Event()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def push(self, item: Any) -> None:
        if not self._stopped.is_set():
            self._queue.put(item)

    def fail(self, exc: BaseException) -> None:
        self.push(exc)

    def _convert(self, item: Any) -> List[Fragment]:
        return list(item)

    def next(self) -> List[Fragment]:
        if self._stopped.is_set():
            raise WatcherCancelledError("watcher stopped")
        item = self._queue.get()
        if item is _STOP:
            # keep the sentinel for any other blocked caller
            self._queue.put(_STOP)
            raise WatcherCancelledError("watcher stopped")
        if isinstance(item, BaseException):
            raise item
        return self._convert(item)

    def stop(self) -> None:
        if self._stopped.is_set():
            return
        self._stopped.set()
        self._queue.put(_STOP)
        logger.debug("%s stopped", type(self).__name__)
