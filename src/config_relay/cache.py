from __future__ import annotations

import logging
import threading
from typing import Dict, Iterator, List, Optional, Tuple

from config_relay.value import Value

logger = logging.getLogger("config_relay.cache")
logger.addHandler(logging.NullHandler())


class ValueCache:
    """Lock-guarded key -> Value map. Entries are never evicted or replaced."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._values: Dict[str, Value] = {}

    def get(self, key: str) -> Optional[Value]:
        with self._lock:
            return self._values.get(key)

    def load_or_store(self, key: str, value: Value) -> Value:
        with self._lock:
            existing = self._values.get(key)
            if existing is not None:
                return existing
            self._values[key] = value
        logger.debug("Cached value for key=%r", key)
        return value

    def items(self) -> List[Tuple[str, Value]]:
        with self._lock:
            return list(self._values.items())

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._values

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            return iter(tuple(self._values))
