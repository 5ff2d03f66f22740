"""
config_relay: a live view over many configuration sources.

- Merges fragments from every source into one key space; later sources win.
- Expands ``${key:default}`` references after every merge.
- Keeps handed-out values current as sources change, in place.
- Notifies one observer per key on type-stable changes.
"""

from __future__ import annotations

from config_relay.codecs import get_codec, register_codec
from config_relay.config import Config
from config_relay.exceptions import (
    ConfigAlreadyLoadedError,
    ConfigClosedError,
    ConfigCloseError,
    ConfigDecodeError,
    ConfigError,
    ConfigNotFoundError,
    ConfigResolveError,
    ConfigTypeError,
    ImmutableValueError,
    WatcherCancelledError,
)
from config_relay.observers import Observer
from config_relay.reader import MergeReader, Reader, ReaderOptions, default_decoder
from config_relay.resolver import default_resolver, make_resolver
from config_relay.source import Fragment, Source, Watcher
from config_relay.sources import EnvSource, FileSource, MemorySource
from config_relay.value import Value, ValueKind

__all__ = [
    "Config",
    "Value",
    "ValueKind",
    "Fragment",
    "Source",
    "Watcher",
    "Reader",
    "ReaderOptions",
    "MergeReader",
    "Observer",
    "MemorySource",
    "EnvSource",
    "FileSource",
    "default_decoder",
    "default_resolver",
    "make_resolver",
    "register_codec",
    "get_codec",
    "ConfigError",
    "ConfigNotFoundError",
    "ConfigTypeError",
    "ConfigDecodeError",
    "ConfigResolveError",
    "ImmutableValueError",
    "WatcherCancelledError",
    "ConfigAlreadyLoadedError",
    "ConfigClosedError",
    "ConfigCloseError",
]
