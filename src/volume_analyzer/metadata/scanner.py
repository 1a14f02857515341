"""Interfejs skanera metadanych."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Event
from typing import Callable, Protocol

from volume_analyzer.core.models import DirectoryNode
from volume_analyzer.filesystems.base import ReadOnlyFilesystem


@dataclass(slots=True)
class MetadataResult:
    """Wynik skanowania metadanych."""

    root: DirectoryNode
    total_files: int
    total_directories: int


ProgressCallback = Callable[[int, str | None, str | None], None]


class MetadataScanCancelled(RuntimeError):
    """Sygnalizuje, że skanowanie metadanych zostało anulowane."""


CancelEvent = Event


class MetadataScanner(Protocol):
    """Interfejs dla komponentów zbierających metadane z zamontowanych wolumenów."""

    def scan(
        self,
        session: ReadOnlyFilesystem,
        *,
        progress: ProgressCallback | None = None,
        cancel_event: CancelEvent | None = None,
    ) -> MetadataResult:
        """Buduje drzewo katalogów wraz z metadanymi."""


__all__ = [
    "CancelEvent",
    "MetadataResult",
    "MetadataScanCancelled",
    "MetadataScanner",
    "ProgressCallback",
]
