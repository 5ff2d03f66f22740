from __future__ import annotations

import datetime
import enum
import json
import re
import threading
from typing import Any, Dict, List, Optional

from config_relay.codecs import unmarshal_json
from config_relay.exceptions import ConfigNotFoundError, ConfigTypeError, ImmutableValueError

__all__ = ["Value", "ValueKind"]

_TRUE = frozenset({"1", "t", "true", "yes"})
_FALSE = frozenset({"0", "f", "false", "no"})

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


class ValueKind(enum.Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"


class Value:
    """
    Holder for one resolved configuration leaf.

    A value is either FOUND for its whole life, in which case ``store()`` swaps the
    payload in place so every holder sees the update, or NOT_FOUND, in which case it
    is immutable, ``load()`` returns None and the typed accessors raise ``error``.
    """

    __slots__ = ("_lock", "_payload", "_kind", "_key", "_error")

    def __init__(self, payload: Any = None, *, key: Optional[str] = None) -> None:
        self._lock = threading.Lock()
        self._payload = payload
        self._kind = ValueKind.FOUND
        self._key = key
        self._error: Optional[ConfigNotFoundError] = None

    @classmethod
    def missing(cls, key: Optional[str] = None) -> "Value":
        v = cls(key=key)
        v._kind = ValueKind.NOT_FOUND
        v._error = ConfigNotFoundError(key)
        return v

    @property
    def kind(self) -> ValueKind:
        return self._kind

    @property
    def found(self) -> bool:
        return self._kind is ValueKind.FOUND

    @property
    def key(self) -> Optional[str]:
        return self._key

    @property
    def error(self) -> Optional[ConfigNotFoundError]:
        return self._error

    def load(self) -> Any:
        with self._lock:
            return self._payload

    def store(self, payload: Any) -> None:
        if self._kind is ValueKind.NOT_FOUND:
            raise ImmutableValueError(f"Cannot store into missing value for key {self._key!r}")
        with self._lock:
            self._payload = payload

    # typed accessors
    def _require(self) -> Any:
        if self._error is not None:
            raise self._error
        return self.load()

    def _type_error(self, payload: Any, target: str) -> ConfigTypeError:
        return ConfigTypeError(
            f"Cannot convert {type(payload).__name__} {payload!r} to {target}"
            + (f" (key: {self._key})" if self._key else "")
        )

    def as_bool(self) -> bool:
        payload = self._require()
        if isinstance(payload, bool):
            return payload
        if isinstance(payload, int) and payload in (0, 1):
            return payload == 1
        if isinstance(payload, (str, bytes)):
            text = payload.decode() if isinstance(payload, bytes) else payload
            lowered = text.strip().lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
        raise self._type_error(payload, "bool")

    def as_int(self) -> int:
        payload = self._require()
        if isinstance(payload, bool):
            return int(payload)
        if isinstance(payload, int):
            return payload
        if isinstance(payload, float):
            # inf raises OverflowError, nan raises ValueError
            try:
                return int(payload)
            except (OverflowError, ValueError):
                raise self._type_error(payload, "int") from None
        if isinstance(payload, (str, bytes)):
            for base in (10, 0):
                try:
                    return int(payload.strip(), base)
                except ValueError:
                    continue
        raise self._type_error(payload, "int")

    def as_float(self) -> float:
        payload = self._require()
        if isinstance(payload, (int, float)):
            return float(payload)
        if isinstance(payload, (str, bytes)):
            try:
                return float(payload.strip())
            except ValueError:
                pass
        raise self._type_error(payload, "float")

    def as_str(self) -> str:
        payload = self._require()
        if isinstance(payload, str):
            return payload
        if isinstance(payload, bool):
            return "true" if payload else "false"
        if isinstance(payload, (int, float)):
            return str(payload)
        if isinstance(payload, bytes):
            return payload.decode("utf-8")
        raise self._type_error(payload, "str")

    def as_duration(self) -> datetime.timedelta:
        """Numbers are seconds; strings may also use units, e.g. ``"1h30m"`` or ``"250ms"``."""
        payload = self._require()
        if isinstance(payload, datetime.timedelta):
            return payload
        seconds: Optional[float] = None
        if isinstance(payload, (int, float)) and not isinstance(payload, bool):
            seconds = payload
        elif isinstance(payload, str):
            seconds = _parse_duration(payload)
        if seconds is not None:
            try:
                return datetime.timedelta(seconds=seconds)
            except (OverflowError, ValueError):
                pass
        raise self._type_error(payload, "duration")

    def as_list(self) -> List[Any]:
        payload = self._require()
        if isinstance(payload, (list, tuple)):
            return list(payload)
        raise self._type_error(payload, "list")

    def as_dict(self) -> Dict[str, Any]:
        payload = self._require()
        if isinstance(payload, dict):
            return dict(payload)
        raise self._type_error(payload, "dict")

    def scan(self, target: Any) -> None:
        payload = self._require()
        unmarshal_json(json.dumps(payload, default=str).encode("utf-8"), target)

    def __repr__(self) -> str:
        if self._kind is ValueKind.NOT_FOUND:
            return f"<Value key={self._key!r} not found>"
        return f"<Value key={self._key!r} payload={self.load()!r}>"


def _parse_duration(text: str) -> Optional[float]:
    text = text.strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        pass
    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            return None
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        return None
    return sign * total
