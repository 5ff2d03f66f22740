from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Callable, Dict, Literal, Optional

if TYPE_CHECKING:
    from config_relay.value import Value

logger = logging.getLogger("config_relay.observers")
logger.addHandler(logging.NullHandler())

Observer = Callable[[str, "Value"], None]


class ObserverRegistry:
    """At most one observer per key; registering again replaces the previous one."""

    def __init__(self, failure_mode: Literal["ignore", "log"] = "log") -> None:
        if failure_mode not in ("ignore", "log"):
            raise ValueError("failure_mode must be one of 'ignore', 'log'")
        self._failure_mode = failure_mode
        self._lock = threading.RLock()
        self._observers: Dict[str, Observer] = {}

    def register(self, key: str, func: Observer) -> None:
        if not callable(func):
            raise TypeError("Observer must be callable")
        with self._lock:
            replaced = key in self._observers
            self._observers[key] = func
        if replaced:
            logger.debug("Observer for key=%r replaced", key)

    def unregister(self, key: str) -> bool:
        with self._lock:
            return self._observers.pop(key, None) is not None

    def get(self, key: str) -> Optional[Observer]:
        with self._lock:
            return self._observers.get(key)

    def notify(self, key: str, value: "Value") -> bool:
        """Invoke the observer for ``key`` if any. Returns True if one was called."""
        func = self.get(key)
        if func is None:
            return False
        try:
            func(key, value)
        except Exception as exc:
            if self._failure_mode == "log":
                logger.error("Observer %r for key=%r failed: %s", func, key, exc)
            else:
                logger.debug("Observer %r for key=%r failed but ignored: %s", func, key, exc)
        return True

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._observers

    def __len__(self) -> int:
        with self._lock:
            return len(self._observers)

    def clear(self) -> None:
        with self._lock:
            self._observers.clear()
