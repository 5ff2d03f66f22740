from __future__ import annotations

import dataclasses
import json
import logging
import threading
from typing import Any, Dict, Mapping, MutableMapping, Optional, Protocol, Tuple

import yaml
from typing_extensions import runtime_checkable

from config_relay.exceptions import ConfigDecodeError, ConfigTypeError

logger = logging.getLogger("config_relay.codecs")
logger.addHandler(logging.NullHandler())

__all__ = [
    "Codec",
    "CodecRegistry",
    "JSONCodec",
    "YAMLCodec",
    "REGISTRY",
    "register_codec",
    "get_codec",
    "unmarshal_json",
]


@runtime_checkable
class Codec(Protocol):
    def marshal(self, value: Any) -> bytes: ...

    def unmarshal(self, data: bytes) -> Any: ...


class JSONCodec:
    def marshal(self, value: Any) -> bytes:
        return json.dumps(value).encode("utf-8")

    def unmarshal(self, data: bytes) -> Any:
        try:
            return json.loads(data)
        except ValueError as e:
            raise ConfigDecodeError(f"Invalid JSON: {e}") from e


class YAMLCodec:
    def marshal(self, value: Any) -> bytes:
        return yaml.safe_dump(value, sort_keys=True).encode("utf-8")

    def unmarshal(self, data: bytes) -> Any:
        try:
            return yaml.safe_load(data)
        except yaml.YAMLError as e:
            raise ConfigDecodeError(f"Invalid YAML: {e}") from e


class CodecRegistry:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._codecs: Dict[str, Codec] = {}

    @staticmethod
    def _canon(name: str) -> str:
        return name.strip().lower()

    def register(self, name: str, codec: Codec, override: bool = False) -> None:
        if not isinstance(codec, Codec):
            raise TypeError("Codec must provide marshal() and unmarshal()")
        key = self._canon(name)
        with self._lock:
            if not override and key in self._codecs:
                logger.error("Codec %r already registered", key)
                raise ValueError(f"Codec {key!r} already registered")
            self._codecs[key] = codec
        logger.debug("Codec registered: %r -> %r", key, type(codec).__name__)

    def get(self, name: str) -> Optional[Codec]:
        with self._lock:
            return self._codecs.get(self._canon(name))

    def names(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(sorted(self._codecs))


REGISTRY = CodecRegistry()
REGISTRY.register("json", JSONCodec())
REGISTRY.register("yaml", YAMLCodec())
REGISTRY.register("yml", REGISTRY.get("yaml"))  # type: ignore[arg-type]


def register_codec(name: str, codec: Codec, *, override: bool = False) -> None:
    REGISTRY.register(name, codec, override=override)


def get_codec(name: str) -> Optional[Codec]:
    return REGISTRY.get(name)


def unmarshal_json(data: bytes, target: Any) -> None:
    """
    Decode a JSON document into ``target`` in place.

    Mappings are cleared and refilled. Dataclass instances and plain objects get
    one attribute per top-level key; nested dataclass attributes are filled
    recursively when the decoded value is a mapping.
    """
    try:
        decoded = json.loads(data)
    except ValueError as e:
        raise ConfigDecodeError(f"Invalid JSON snapshot: {e}") from e
    _assign(target, decoded)


def _assign(target: Any, decoded: Any) -> None:
    if isinstance(target, MutableMapping):
        if not isinstance(decoded, Mapping):
            raise ConfigTypeError(
                f"Cannot scan {type(decoded).__name__} into {type(target).__name__}"
            )
        target.clear()
        target.update(decoded)
        return
    if isinstance(target, type) or not hasattr(target, "__dict__"):
        raise ConfigTypeError(f"Cannot scan into {type(target).__name__}; pass an instance")
    if not isinstance(decoded, Mapping):
        raise ConfigTypeError(f"Cannot scan {type(decoded).__name__} into an object")

    if dataclasses.is_dataclass(target):
        for f in dataclasses.fields(target):
            if f.name not in decoded:
                continue
            current = getattr(target, f.name, None)
            incoming = decoded[f.name]
            if (
                dataclasses.is_dataclass(current)
                and not isinstance(current, type)
                and isinstance(incoming, Mapping)
            ):
                _assign(current, incoming)
            else:
                setattr(target, f.name, incoming)
        return

    for key, val in decoded.items():
        setattr(target, key, val)
