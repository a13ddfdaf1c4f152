from __future__ import annotations

from pathlib import Path
from typing import Optional


class ScanError(RuntimeError):
    """Base class for scan engine failures."""


class ConfigurationError(ScanError, ValueError):
    """Raised when a scan cannot start because its configuration is invalid."""


class EnumerationError(ScanError):
    """A directory entry could not be listed or inspected."""

    def __init__(self, path: Path, cause: Optional[BaseException] = None) -> None:
        detail = f": {cause}" if cause else ""
        super().__init__(f"Could not enumerate {path}{detail}")
        self.path = path
        self.cause = cause


class FileSizeSkip(ScanError):
    """Signals that a file exceeds the configured size cap."""

    def __init__(self, path: Path, size: int, limit: int) -> None:
        super().__init__(f"{path} is {size} bytes (limit {limit})")
        self.path = path
        self.size = size
        self.limit = limit


class UnreadableFile(ScanError):
    """A file could not be opened or decoded as text."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Cannot read {path}: {reason}")
        self.path = path
        self.reason = reason
