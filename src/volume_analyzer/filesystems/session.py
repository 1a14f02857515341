"""Wspólny automat stanów sesji tylko do odczytu.

Konkretne formaty dostarczają dekodowanie wpisów (korzeń, lista dzieci,
``stat``, odczyt zakresu, mapowanie bloków); ta klasa pilnuje stanu
montowania, ważności uchwytów, rozwiązywania ścieżek oraz granic odczytu.
Żadna operacja warstwy plików nie zgłasza wyjątku: błędy źródła stają się
``IO_ERROR``, uszkodzone struktury ``INVALID_FILESYSTEM``.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Hashable, List, Mapping, Optional, Sequence, Tuple

from structlog import get_logger

from volume_analyzer.core.models import (
    ErrorNumber,
    FileEntryInfo,
    FileSystemInfo,
    FsResult,
    Partition,
)
from volume_analyzer.drivers.base import DriverError, SectorSource
from volume_analyzer.shared.text import resolve_encoding
from .base import (
    CorruptStructureError,
    DirNode,
    FileNode,
    MountOptions,
    read_partition_strict,
    split_path,
)

Children = List[Tuple[str, Any]]


class ReadOnlySession:
    """Baza sesji: stan montowania, uchwyty i granice odczytu."""

    #: Dozwolone przestrzenie nazw; pusta krotka oznacza brak wyboru.
    namespaces: Tuple[str, ...] = ()
    default_namespace: Optional[str] = None
    default_encoding: str = "ascii"
    case_sensitive: bool = True

    def __init__(self) -> None:
        self._logger = get_logger(type(self).__module__)
        self._mounted = False
        self._generation = 0
        self._source: SectorSource | None = None
        self._partition: Partition | None = None
        self._options: MountOptions | None = None
        self._root: Any = None
        self._children_cache: Dict[Hashable, Children] = {}

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def options(self) -> MountOptions | None:
        return self._options

    # ------------------------------------------------------------------
    # Cykl życia
    # ------------------------------------------------------------------

    def mount(
        self,
        source: SectorSource,
        partition: Partition,
        encoding: str | None = None,
        options: Mapping[str, str] | None = None,
        namespace: str | None = None,
    ) -> ErrorNumber:
        if self._mounted:
            self.unmount()

        selected = (namespace or self.default_namespace or "").lower() or None
        if selected is not None and selected not in self.namespaces:
            self._logger.warning("mount-failed", reason="unknown-namespace", namespace=namespace)
            return ErrorNumber.INVALID_ARGUMENT

        mount_options = MountOptions.build(
            encoding=resolve_encoding(encoding, self.default_encoding),
            namespace=selected,
            options=options,
        )
        self._source = source
        self._partition = partition
        self._options = mount_options
        try:
            error = self._mount(source, partition, mount_options)
        except DriverError as exc:
            self._logger.warning("mount-failed", partition=partition.name, error=str(exc))
            error = ErrorNumber.IO_ERROR
        except CorruptStructureError as exc:
            self._logger.warning("mount-failed", partition=partition.name, error=str(exc))
            error = ErrorNumber.INVALID_FILESYSTEM

        if error is not ErrorNumber.NO_ERROR:
            self._reset()
            return error

        self._mounted = True
        self._generation += 1
        self._logger.debug("mounted", partition=partition.name, namespace=selected)
        return ErrorNumber.NO_ERROR

    def unmount(self) -> ErrorNumber:
        if not self._mounted:
            return ErrorNumber.ACCESS_DENIED
        self._reset()
        self._generation += 1
        return ErrorNumber.NO_ERROR

    def _reset(self) -> None:
        self._release()
        self._children_cache.clear()
        self._mounted = False
        self._source = None
        self._partition = None
        self._options = None
        self._root = None

    # ------------------------------------------------------------------
    # Operacje warstwy plików
    # ------------------------------------------------------------------

    def stat(self, path: str) -> FsResult[FileEntryInfo]:
        return self._with_entry(path, lambda entry: FsResult.success(self._stat(entry)))

    def open_dir(self, path: str) -> FsResult[DirNode]:
        def _open(entry: Any) -> FsResult[DirNode]:
            if not self._is_directory(entry):
                return FsResult.failure(ErrorNumber.NOT_DIRECTORY)
            children = self._cached_children(entry)
            names = [name for name, _ in children]
            return FsResult.success(DirNode(path=path, generation=self._generation, names=names))

        return self._with_entry(path, _open)

    def read_dir(self, node: DirNode) -> FsResult[Optional[str]]:
        error = self._check_handle(node.generation, node.closed)
        if error is not ErrorNumber.NO_ERROR:
            return FsResult.failure(error)
        if node.position >= len(node.names):
            return FsResult.success(None)
        name = node.names[node.position]
        node.position += 1
        return FsResult.success(name)

    def close_dir(self, node: DirNode) -> ErrorNumber:
        error = self._check_handle(node.generation, node.closed)
        if error is not ErrorNumber.NO_ERROR:
            return error
        node.closed = True
        node.names = []
        return ErrorNumber.NO_ERROR

    def open_file(self, path: str) -> FsResult[FileNode]:
        def _open(entry: Any) -> FsResult[FileNode]:
            if self._is_directory(entry) and not self._debug:
                return FsResult.failure(ErrorNumber.IS_DIRECTORY)
            return FsResult.success(
                FileNode(path=path, generation=self._generation, entry=entry, length=self._file_length(entry))
            )

        return self._with_entry(path, _open)

    def read_file(self, node: FileNode, length: int) -> FsResult[bytes]:
        error = self._check_handle(node.generation, node.closed)
        if error is not ErrorNumber.NO_ERROR:
            return FsResult.failure(error)
        result = self._guarded("read_file", lambda: self._read_range(node.entry, node.offset, length))
        if result.ok and result.value:
            node.offset += len(result.value)
        return result

    def close_file(self, node: FileNode) -> ErrorNumber:
        error = self._check_handle(node.generation, node.closed)
        if error is not ErrorNumber.NO_ERROR:
            return error
        node.closed = True
        node.entry = None
        return ErrorNumber.NO_ERROR

    def read(self, path: str, offset: int, size: int) -> FsResult[bytes]:
        def _read(entry: Any) -> FsResult[bytes]:
            if self._is_directory(entry) and not self._debug:
                return FsResult.failure(ErrorNumber.IS_DIRECTORY)
            return self._read_range(entry, offset, size)

        return self._with_entry(path, _read)

    def map_block(self, path: str, block: int) -> FsResult[int]:
        def _map(entry: Any) -> FsResult[int]:
            if self._is_directory(entry) and not self._debug:
                return FsResult.failure(ErrorNumber.IS_DIRECTORY)
            if block < 0:
                return FsResult.failure(ErrorNumber.INVALID_ARGUMENT)
            return self._map_block(entry, block)

        return self._with_entry(path, _map)

    def list_xattr(self, path: str) -> FsResult[List[str]]:
        return self._with_entry(path, self._list_xattr)

    def get_xattr(self, path: str, name: str) -> FsResult[bytes]:
        return self._with_entry(path, lambda entry: self._get_xattr(entry, name))

    def read_link(self, path: str) -> FsResult[str]:
        return self._with_entry(path, self._read_link)

    def stat_fs(self) -> FsResult[FileSystemInfo]:
        if not self._mounted:
            return FsResult.failure(ErrorNumber.ACCESS_DENIED)
        return FsResult.success(self._stat_fs())

    # ------------------------------------------------------------------
    # Operacje pomocnicze
    # ------------------------------------------------------------------

    @property
    def _debug(self) -> bool:
        return bool(self._options and self._options.debug)

    def _check_handle(self, generation: int, closed: bool) -> ErrorNumber:
        if generation != self._generation or closed:
            return ErrorNumber.INVALID_ARGUMENT
        if not self._mounted:
            return ErrorNumber.ACCESS_DENIED
        return ErrorNumber.NO_ERROR

    def _with_entry(self, path: str, action: Callable[[Any], FsResult[Any]]) -> FsResult[Any]:
        if not self._mounted:
            return FsResult.failure(ErrorNumber.ACCESS_DENIED)

        def _run() -> FsResult[Any]:
            resolved = self._resolve(path)
            if not resolved.ok:
                return resolved
            return action(resolved.value)

        return self._guarded(path, _run)

    def _guarded(self, operation: str, func: Callable[[], FsResult[Any]]) -> FsResult[Any]:
        try:
            return func()
        except DriverError as exc:
            self._logger.warning("read-failed", operation=operation, error=str(exc))
            return FsResult.failure(ErrorNumber.IO_ERROR)
        except CorruptStructureError as exc:
            self._logger.warning("corrupt-structure", operation=operation, error=str(exc))
            return FsResult.failure(ErrorNumber.INVALID_FILESYSTEM)

    def _resolve(self, path: str) -> FsResult[Any]:
        entry = self._root
        for component in split_path(path):
            if not self._is_directory(entry):
                return FsResult.failure(ErrorNumber.NOT_DIRECTORY)
            match = self._find_child(self._cached_children(entry), component)
            if match is None:
                return FsResult.failure(ErrorNumber.NO_SUCH_FILE)
            entry = match
        return FsResult.success(entry)

    def _find_child(self, children: Sequence[Tuple[str, Any]], component: str) -> Any:
        for name, entry in children:
            if name == component:
                return entry
        if not self.case_sensitive:
            folded = component.casefold()
            for name, entry in children:
                if name.casefold() == folded:
                    return entry
        return None

    def _cached_children(self, entry: Any) -> Children:
        key = self._directory_key(entry)
        cached = self._children_cache.get(key)
        if cached is None:
            cached = self._children(entry)
            self._children_cache[key] = cached
        return cached

    def _read_range(self, entry: Any, offset: int, size: int) -> FsResult[bytes]:
        if offset < 0 or size < 0:
            return FsResult.failure(ErrorNumber.INVALID_ARGUMENT)
        if size == 0:
            return FsResult.success(b"")
        length = self._file_length(entry)
        if offset >= length:
            return FsResult.failure(ErrorNumber.INVALID_ARGUMENT)
        size = min(size, length - offset)
        return FsResult.success(self._read(entry, offset, size))

    def _read_bytes(self, offset: int, length: int) -> bytes:
        """Odczyt względem początku partycji; zgłasza ``DriverError``."""

        assert self._source is not None and self._partition is not None
        return read_partition_strict(self._source, self._partition, offset, length)

    # ------------------------------------------------------------------
    # Punkty rozszerzeń formatów
    # ------------------------------------------------------------------

    def _mount(self, source: SectorSource, partition: Partition, options: MountOptions) -> ErrorNumber:
        raise NotImplementedError

    def _release(self) -> None:
        """Zwalnia struktury specyficzne dla formatu."""

    def _is_directory(self, entry: Any) -> bool:
        raise NotImplementedError

    def _directory_key(self, entry: Any) -> Hashable:
        raise NotImplementedError

    def _children(self, entry: Any) -> Children:
        raise NotImplementedError

    def _stat(self, entry: Any) -> FileEntryInfo:
        raise NotImplementedError

    def _file_length(self, entry: Any) -> int:
        raise NotImplementedError

    def _read(self, entry: Any, offset: int, size: int) -> bytes:
        raise NotImplementedError

    def _map_block(self, entry: Any, block: int) -> FsResult[int]:
        return FsResult.failure(ErrorNumber.NOT_SUPPORTED)

    def _list_xattr(self, entry: Any) -> FsResult[List[str]]:
        return FsResult.failure(ErrorNumber.NOT_SUPPORTED)

    def _get_xattr(self, entry: Any, name: str) -> FsResult[bytes]:
        return FsResult.failure(ErrorNumber.NOT_SUPPORTED)

    def _read_link(self, entry: Any) -> FsResult[str]:
        return FsResult.failure(ErrorNumber.NOT_SUPPORTED)

    def _stat_fs(self) -> FileSystemInfo:
        raise NotImplementedError


__all__ = ["ReadOnlySession"]
