from __future__ import annotations

import json
from copy import deepcopy
from typing import Any, Dict, Mapping, MutableMapping, Tuple

__all__ = [
    "KEY_SEPARATOR",
    "clone_tree",
    "normalize_keys",
    "expand_key",
    "read_value",
    "deep_merge",
    "stable_serialize",
]

KEY_SEPARATOR = "."


def clone_tree(tree: Mapping[str, Any]) -> Dict[str, Any]:
    try:
        return deepcopy(dict(tree))
    except Exception as e:
        raise ValueError("Config tree is not deepcopy-able") from e


def normalize_keys(value: Any) -> Any:
    """Recursively coerce mapping keys to ``str`` (YAML allows ints, bools...)."""
    if isinstance(value, Mapping):
        return {str(k): normalize_keys(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_keys(v) for v in value]
    return value


def expand_key(key: str, leaf: Any) -> Dict[str, Any]:
    # "a.b.c" -> {"a": {"b": {"c": leaf}}}
    out: Dict[str, Any] = {}
    node = out
    parts = key.split(KEY_SEPARATOR)
    for part in parts[:-1]:
        child: Dict[str, Any] = {}
        node[part] = child
        node = child
    node[parts[-1]] = leaf
    return out


def read_value(tree: Mapping[str, Any], path: str) -> Tuple[bool, Any]:
    node: Any = tree
    parts = path.split(KEY_SEPARATOR)
    last = len(parts) - 1
    for idx, part in enumerate(parts):
        if not isinstance(node, Mapping) or part not in node:
            return False, None
        if idx == last:
            return True, node[part]
        node = node[part]
    return False, None


def deep_merge(dst: MutableMapping[str, Any], src: Mapping[str, Any]) -> None:
    """Merge ``src`` into ``dst`` in place; ``src`` wins, mappings merge recursively."""
    for key, val in src.items():
        current = dst.get(key)
        if isinstance(current, MutableMapping) and isinstance(val, Mapping):
            deep_merge(current, val)
        else:
            dst[key] = deepcopy(val)


def stable_serialize(data: Mapping[str, Any]) -> bytes:
    # Canonical form: sorted keys, compact separators, non-JSON leaves stringified.
    return json.dumps(data, separators=(",", ":"), sort_keys=True, default=str).encode("utf-8")
