from __future__ import annotations

import os
from typing import List, Optional, Tuple

from config_relay.source import Fragment

from .base import QueueWatcher


class EnvSource:
    """
    Environment variables as flat fragments with no format.

    With prefixes, only matching variables are kept and the prefix plus one leading
    underscore is stripped: ``APP_LEVEL`` with prefix ``APP`` becomes key ``LEVEL``.
    """

    def __init__(self, *prefixes: str) -> None:
        self._prefixes: Tuple[str, ...] = tuple(prefixes)

    def _match(self, name: str) -> Optional[str]:
        for p in self._prefixes:
            if name.startswith(p):
                return p
        return None

    def load(self) -> List[Fragment]:
        out: List[Fragment] = []
        for name, val in os.environ.items():
            key = name
            if self._prefixes:
                prefix = self._match(name)
                if prefix is None or len(prefix) == len(name):
                    continue
                key = name[len(prefix) :]
                if key.startswith("_"):
                    key = key[1:]
            if key:
                out.append(Fragment(key=key, value=val.encode("utf-8")))
        return out

    def watch(self) -> QueueWatcher:
        # The process environment has no change notifications.
        return QueueWatcher()
