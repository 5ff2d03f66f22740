from __future__ import annotations

from typing import List, Optional


class ConfigError(Exception):
    """Base config exception."""


class ConfigNotFoundError(ConfigError):
    """Raised when a requested key is absent from the resolved configuration."""

    def __init__(self, key: Optional[str] = None) -> None:
        self.key = key
        msg = "key not found" if key is None else f"key not found: {key!r}"
        super().__init__(msg)


class ConfigTypeError(ConfigError, TypeError):
    """Raised when a value cannot be converted to the requested type."""


class ConfigDecodeError(ConfigError):
    """Raised when a fragment cannot be decoded into the merged tree."""


class ConfigResolveError(ConfigError):
    """Raised when placeholder resolution fails."""


class ImmutableValueError(ConfigError):
    """Raised when storing into a not-found value."""


class WatcherCancelledError(ConfigError):
    """Raised by a watcher's next() once it has been stopped."""


class ConfigAlreadyLoadedError(ConfigError):
    """Raised if load() is called more than once."""


class ConfigClosedError(ConfigError):
    """Raised if operations are attempted after close()."""


class ConfigCloseError(ConfigError):
    """Raised when one or more watchers failed to stop."""

    def __init__(self, errors: List[BaseException]) -> None:
        self.errors = list(errors)
        super().__init__(f"Failed to stop {len(self.errors)} watcher(s): {self.errors}")
