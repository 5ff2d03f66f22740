from __future__ import annotations

import logging
import re
from copy import deepcopy
from typing import Any, Callable, Dict, List, MutableMapping

from config_relay.utils import read_value

logger = logging.getLogger("config_relay.resolver")
logger.addHandler(logging.NullHandler())

__all__ = ["Resolver", "PLACEHOLDER", "make_resolver", "default_resolver"]

Resolver = Callable[[MutableMapping[str, Any]], None]

PLACEHOLDER = re.compile(r"\$\{(.*?)\}")


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def make_resolver(*, actual_types: bool = False) -> Resolver:
    """
    Build a resolver that expands ``${name}`` and ``${name:default}`` in string leaves.

    ``name`` is looked up as a dotted path in the tree being resolved. When
    ``actual_types`` is set and a string consists of exactly one placeholder, the
    referenced value replaces the string with its own type; mappings and lists are
    copied, so the two keys stay independent under later merges.
    """

    def resolve(tree: MutableMapping[str, Any]) -> None:
        def lookup(expr: str) -> Any:
            name, sep, default = expr.strip().partition(":")
            found, value = read_value(tree, name)
            if found:
                return value
            if sep:
                return default
            logger.debug("Placeholder %r has no value and no default", name)
            return ""

        def expand(text: str) -> Any:
            if actual_types:
                whole = PLACEHOLDER.fullmatch(text)
                if whole is not None:
                    # substituted containers must not alias the referenced subtree
                    return deepcopy(lookup(whole.group(1)))
            return PLACEHOLDER.sub(lambda m: _stringify(lookup(m.group(1))), text)

        def walk_list(items: List[Any]) -> None:
            for idx, item in enumerate(items):
                if isinstance(item, str):
                    items[idx] = expand(item)
                elif isinstance(item, dict):
                    walk(item)
                elif isinstance(item, list):
                    walk_list(item)

        def walk(node: Dict[str, Any]) -> None:
            for key, val in node.items():
                if isinstance(val, str):
                    node[key] = expand(val)
                elif isinstance(val, dict):
                    walk(val)
                elif isinstance(val, list):
                    walk_list(val)

        walk(tree)  # type: ignore[arg-type]

    return resolve


default_resolver: Resolver = make_resolver()
