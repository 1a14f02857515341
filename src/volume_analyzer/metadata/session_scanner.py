"""Skanowanie metadanych przez zamontowaną sesję tylko do odczytu."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import PurePosixPath
import stat
from threading import Event
from typing import List, Set, Tuple

from structlog import get_logger

from volume_analyzer.core.models import DirectoryNode, FileAttributes, FileEntryInfo, FileMetadata
from volume_analyzer.filesystems.base import ReadOnlyFilesystem
from .scanner import MetadataResult, MetadataScanCancelled, MetadataScanner, ProgressCallback


class _Cancelled(Exception):
    """Używane do wewnętrznego sygnalizowania anulowania."""


@dataclass(slots=True)
class _WorkItem:
    path: str
    node: DirectoryNode
    depth: int


class _ProgressTracker:
    """Śledzi postęp przetwarzania katalogów i wywołuje callback."""

    def __init__(self, callback: ProgressCallback | None, cancel_event: Event | None) -> None:
        self._callback = callback
        self._cancel_event = cancel_event
        self._processed = 0
        self._total_known = 1 if callback is not None else 0
        self._percent = 0
        if self._callback is not None:
            self._callback(0, None, None)

    def _check_cancel(self) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise _Cancelled()

    def add_children(self, count: int) -> None:
        self._check_cancel()
        if self._callback is None or count <= 0:
            return
        self._total_known += count

    def announce(self, kind: str | None, path: str | None) -> None:
        self._check_cancel()
        if self._callback is None:
            return
        self._callback(self._percent, kind, path)

    def mark_processed(self, kind: str | None, path: str | None) -> None:
        self._check_cancel()
        if self._callback is None:
            return
        self._processed += 1
        total = max(self._total_known, 1)
        self._percent = min(int((self._processed / total) * 100), 100)
        self._callback(self._percent, kind, path)


class SessionMetadataScanner(MetadataScanner):
    """Buduje drzewo katalogów z dowolnej sesji ``ReadOnlyFilesystem``.

    Przechodzenie korzysta z listy roboczej zamiast rekurencji; katalogi już
    odwiedzone (ten sam numer i-węzła) są pomijane, co chroni przed pętlami
    w uszkodzonych strukturach.
    """

    def __init__(self, *, max_depth: int | None = None) -> None:
        self._max_depth = max_depth
        self._logger = get_logger(__name__)

    def scan(
        self,
        session: ReadOnlyFilesystem,
        *,
        progress: ProgressCallback | None = None,
        cancel_event: Event | None = None,
    ) -> MetadataResult:
        root_info = session.stat("/")
        root_node = DirectoryNode(name="/", path=PurePosixPath("/"))
        if root_info.ok and root_info.value is not None:
            self._apply_times(root_node, root_info.value)
            root_node.attributes = self._extract_attributes(root_info.value)

        tracker = _ProgressTracker(progress, cancel_event)
        visited: Set[int] = set()
        if root_info.ok and root_info.value is not None:
            visited.add(root_info.value.inode)

        total_files = 0
        total_directories = 0
        pending: List[_WorkItem] = [_WorkItem(path="/", node=root_node, depth=0)]
        try:
            while pending:
                item = pending.pop()
                tracker.announce("directory", item.path)
                files, directories, children = self._process_directory(session, item, visited, tracker)
                total_files += files
                total_directories += directories
                tracker.mark_processed("directory", item.path)
                pending.extend(reversed(children))
        except _Cancelled as exc:
            raise MetadataScanCancelled() from exc

        return MetadataResult(root=root_node, total_files=total_files, total_directories=total_directories)

    # ------------------------------------------------------------------
    # Przetwarzanie katalogów
    # ------------------------------------------------------------------

    def _process_directory(
        self,
        session: ReadOnlyFilesystem,
        item: _WorkItem,
        visited: Set[int],
        tracker: _ProgressTracker,
    ) -> Tuple[int, int, List[_WorkItem]]:
        total_files = 0
        total_directories = 1
        children: List[_WorkItem] = []

        names = self._list_names(session, item.path)
        if names is None:
            return (0, 0, [])

        for name in names:
            child_path = (PurePosixPath(item.path) / name).as_posix()
            info = session.stat(child_path)
            if not info.ok or info.value is None:
                self._logger.warning("stat-failed", path=child_path, error=info.error.value)
                continue
            entry = info.value

            if FileAttributes.DIRECTORY in entry.attributes:
                tracker.announce("directory", child_path)
                child_node = DirectoryNode(
                    name=name,
                    path=PurePosixPath(child_path),
                    attributes=self._extract_attributes(entry),
                )
                self._apply_times(child_node, entry)
                item.node.subdirectories.append(child_node)
                if entry.inode in visited:
                    self._logger.warning("directory-loop", path=child_path, inode=entry.inode)
                    continue
                visited.add(entry.inode)
                if self._max_depth is None or item.depth < self._max_depth:
                    children.append(_WorkItem(path=child_path, node=child_node, depth=item.depth + 1))
                else:
                    total_directories += 1
                continue

            tracker.announce("file", child_path)
            metadata = FileMetadata(
                name=name,
                path=PurePosixPath(child_path),
                size=entry.length,
                created_at=self._format_timestamp(entry.creation_time),
                modified_at=self._format_timestamp(entry.last_write_time),
                accessed_at=self._format_timestamp(entry.access_time),
                attributes=self._extract_attributes(entry),
            )
            item.node.files.append(metadata)
            total_files += 1

        tracker.add_children(len(children))
        return total_files, total_directories, children

    def _list_names(self, session: ReadOnlyFilesystem, path: str) -> List[str] | None:
        handle = session.open_dir(path)
        if not handle.ok or handle.value is None:
            self._logger.warning("directory-open-failed", path=path, error=handle.error.value)
            return None
        names: List[str] = []
        try:
            while True:
                entry = session.read_dir(handle.value)
                if not entry.ok:
                    self._logger.warning("directory-read-failed", path=path, error=entry.error.value)
                    break
                if entry.value is None:
                    break
                names.append(entry.value)
        finally:
            session.close_dir(handle.value)
        return names

    def _apply_times(self, node: DirectoryNode, entry: FileEntryInfo) -> None:
        node.created_at = self._format_timestamp(entry.creation_time)
        node.modified_at = self._format_timestamp(entry.last_write_time)
        node.accessed_at = self._format_timestamp(entry.access_time)

    @staticmethod
    def _format_timestamp(value: datetime | None) -> str | None:
        if value is None:
            return None
        return value.isoformat()

    def _extract_attributes(self, entry: FileEntryInfo) -> Tuple[str, ...]:
        attributes: List[str] = [
            member.name.lower()
            for member in FileAttributes
            if member.value and member.name and member in entry.attributes
        ]
        mode_repr = self._format_mode(entry.mode)
        if mode_repr:
            attributes.append(f"mode:{mode_repr}")
        # Usuwamy duplikaty, zachowując kolejność.
        return tuple(dict.fromkeys(attributes))

    @staticmethod
    def _format_mode(mode: int | None) -> str | None:
        if mode is None:
            return None
        try:
            return stat.filemode(mode)
        except ValueError:  # pragma: no cover - wartości spoza zakresu POSIX
            return None


__all__ = ["SessionMetadataScanner"]
