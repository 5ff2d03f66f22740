from __future__ import annotations

from config_relay.sources.base import QueueWatcher
from config_relay.sources.env import EnvSource
from config_relay.sources.file import FileSource, FileWatcher
from config_relay.sources.memory import MemorySource, encode_fragment

__all__ = [
    "QueueWatcher",
    "EnvSource",
    "FileSource",
    "FileWatcher",
    "MemorySource",
    "encode_fragment",
]
