from __future__ import annotations

from dataclasses import dataclass
from typing import List, Protocol

from typing_extensions import runtime_checkable


@dataclass(frozen=True)
class Fragment:
    """One raw unit of configuration emitted by a source.

    ``format`` names a registered codec (``json``, ``yaml``...). An empty format
    means ``value`` is a plain leaf addressed by the dotted ``key``.
    """

    key: str
    value: bytes
    format: str = ""


@runtime_checkable
class Watcher(Protocol):
    def next(self) -> List[Fragment]:  # raise WatcherCancelledError once stopped
        ...

    def stop(self) -> None: ...


@runtime_checkable
class Source(Protocol):
    def load(self) -> List[Fragment]: ...

    def watch(self) -> Watcher: ...
