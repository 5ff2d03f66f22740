from __future__ import annotations

import logging
import threading
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, MutableMapping, Optional, Protocol

from typing_extensions import runtime_checkable

from config_relay.codecs import get_codec
from config_relay.exceptions import ConfigDecodeError, ConfigResolveError
from config_relay.resolver import Resolver, default_resolver
from config_relay.source import Fragment
from config_relay.utils import (
    clone_tree,
    deep_merge,
    expand_key,
    normalize_keys,
    read_value,
    stable_serialize,
)
from config_relay.value import Value

logger = logging.getLogger("config_relay.reader")
logger.addHandler(logging.NullHandler())

__all__ = [
    "Decoder",
    "MergeFunc",
    "Reader",
    "ReaderOptions",
    "MergeReader",
    "default_decoder",
]

Decoder = Callable[[Fragment, Dict[str, Any]], None]
MergeFunc = Callable[[MutableMapping[str, Any], Mapping[str, Any]], None]


def default_decoder(src: Fragment, target: Dict[str, Any]) -> None:
    """Decode ``src`` into ``target``.

    Without a format the fragment is a single leaf placed at its dotted key;
    otherwise the codec registered for the format parses the payload, which must
    decode to a mapping.
    """
    if not src.format:
        target.update(expand_key(src.key, src.value.decode("utf-8")))
        return
    codec = get_codec(src.format)
    if codec is None:
        raise ConfigDecodeError(f"Unsupported key: {src.key} format: {src.format}")
    decoded = codec.unmarshal(src.value)
    if decoded is None:
        return
    if not isinstance(decoded, Mapping):
        raise ConfigDecodeError(
            f"Fragment {src.key!r} must decode to a mapping, got {type(decoded).__name__}"
        )
    target.update(decoded)


@runtime_checkable
class Reader(Protocol):
    def merge(self, *fragments: Fragment) -> None: ...

    def resolve(self) -> None: ...

    def value(self, key: str) -> Optional[Value]: ...

    def source(self) -> bytes: ...


@dataclass(frozen=True)
class ReaderOptions:
    decoder: Decoder = default_decoder
    resolver: Resolver = default_resolver
    merge: MergeFunc = deep_merge


class MergeReader:
    """
    In-memory merged key space.

    Every mutation works on a copy of the tree and swaps it in only on success,
    so a failing merge or resolve leaves the last good state in place. One lock
    serialises merges from concurrent watch loops against point lookups.
    """

    def __init__(self, options: Optional[ReaderOptions] = None) -> None:
        self._opts = options or ReaderOptions()
        self._lock = threading.RLock()
        self._values: Dict[str, Any] = {}

    def merge(self, *fragments: Fragment) -> None:
        with self._lock:
            merged = clone_tree(self._values)
            for kv in fragments:
                decoded: Dict[str, Any] = {}
                try:
                    self._opts.decoder(kv, decoded)
                except ConfigDecodeError:
                    logger.error("Failed to decode config key=%s format=%s", kv.key, kv.format)
                    raise
                except Exception as exc:
                    logger.error(
                        "Failed to decode config key=%s format=%s: %s", kv.key, kv.format, exc
                    )
                    raise ConfigDecodeError(f"Failed to decode {kv.key!r}: {exc}") from exc
                self._opts.merge(merged, normalize_keys(decoded))
            self._values = merged

    def resolve(self) -> None:
        with self._lock:
            resolved = clone_tree(self._values)
            try:
                self._opts.resolver(resolved)
            except ConfigResolveError:
                logger.error("Failed to resolve config")
                raise
            except Exception as exc:
                logger.error("Failed to resolve config: %s", exc)
                raise ConfigResolveError(str(exc)) from exc
            self._values = resolved

    def value(self, key: str) -> Optional[Value]:
        with self._lock:
            found, payload = read_value(self._values, key)
            if not found:
                return None
            return Value(deepcopy(payload), key=key)

    def source(self) -> bytes:
        with self._lock:
            return stable_serialize(self._values)
