from __future__ import annotations

import threading
from typing import Any, Dict, List, Mapping

from config_relay.codecs import get_codec
from config_relay.exceptions import ConfigDecodeError
from config_relay.source import Fragment

from .base import QueueWatcher, logger


class MemorySource:
    """In-process source; ``update()`` publishes changed fragments to live watchers."""

    def __init__(self, *fragments: Fragment) -> None:
        self._lock = threading.RLock()
        self._fragments: Dict[str, Fragment] = {kv.key: kv for kv in fragments}
        self._watchers: List[QueueWatcher] = []

    @classmethod
    def from_mapping(
        cls, key: str, data: Mapping[str, Any], format: str = "json"
    ) -> "MemorySource":
        return cls(encode_fragment(key, data, format))

    def load(self) -> List[Fragment]:
        with self._lock:
            return list(self._fragments.values())

    def watch(self) -> QueueWatcher:
        w = QueueWatcher()
        with self._lock:
            self._watchers = [x for x in self._watchers if not x.stopped]
            self._watchers.append(w)
        return w

    def update(self, *fragments: Fragment) -> None:
        with self._lock:
            for kv in fragments:
                self._fragments[kv.key] = kv
            watchers = list(self._watchers)
        logger.debug(
            "MemorySource update keys=%s watchers=%d", [kv.key for kv in fragments], len(watchers)
        )
        for w in watchers:
            w.push(fragments)

    def set(self, key: str, data: Mapping[str, Any], format: str = "json") -> None:
        self.update(encode_fragment(key, data, format))

    def fail(self, exc: BaseException) -> None:
        """Deliver ``exc`` to every live watcher as a transient watch error."""
        with self._lock:
            watchers = list(self._watchers)
        for w in watchers:
            w.fail(exc)


def encode_fragment(key: str, data: Mapping[str, Any], format: str = "json") -> Fragment:
    codec = get_codec(format)
    if codec is None:
        raise ConfigDecodeError(f"Unsupported format: {format}")
    return Fragment(key=key, value=codec.marshal(dict(data)), format=format)
