from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional, Union

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from config_relay.source import Fragment

from .base import QueueWatcher, logger

_RELOAD_EVENTS = frozenset({"created", "modified", "moved"})


def _format_of(name: str) -> str:
    parts = name.split(".")
    return parts[-1] if len(parts) > 1 else ""


class FileSource:
    """A single config file, or every non-hidden file of a directory."""

    def __init__(self, path: Union[str, "os.PathLike[str]"]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load_file(self, path: Path) -> Fragment:
        data = path.read_bytes()
        return Fragment(key=path.name, value=data, format=_format_of(path.name))

    def load(self) -> List[Fragment]:
        if self._path.is_dir():
            return [
                self.load_file(p)
                for p in sorted(self._path.iterdir())
                if p.is_file() and not p.name.startswith(".")
            ]
        return [self.load_file(self._path)]

    def owns(self, path: Path) -> bool:
        if self._path.is_dir():
            return path.parent == self._path and not path.name.startswith(".")
        return path == self._path

    def watch(self) -> "FileWatcher":
        return FileWatcher(self)


class _Handler(FileSystemEventHandler):
    def __init__(self, watcher: "FileWatcher") -> None:
        super().__init__()
        self._watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _RELOAD_EVENTS:
            return
        raw = getattr(event, "dest_path", "") if event.event_type == "moved" else event.src_path
        path = Path(os.fsdecode(raw or event.src_path))
        if self._watcher.source.owns(path):
            self._watcher.push(path)


class FileWatcher(QueueWatcher):
    """Re-reads a file whenever watchdog reports it was created, modified or moved."""

    def __init__(self, source: FileSource, observer: Optional[Observer] = None) -> None:
        super().__init__()
        self.source = source
        self.handler = _Handler(self)
        directory = source.path if source.path.is_dir() else source.path.parent
        self._observer = observer if observer is not None else Observer()
        self._observer.schedule(self.handler, str(directory), recursive=False)
        self._observer.start()
        logger.debug("Watching %s", directory)

    def _convert(self, item: Path) -> List[Fragment]:
        # A vanished or unreadable file surfaces as a transient error for the caller.
        return [self.source.load_file(item)]

    def stop(self) -> None:
        if self.stopped:
            return
        super().stop()
        self._observer.stop()
        self._observer.join()
