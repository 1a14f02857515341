"""Sesja tylko do odczytu dla wolumenów FAT12/16/32."""

from __future__ import annotations

from typing import Any, Hashable, List

from volume_analyzer.core.models import (
    ErrorNumber,
    FileAttributes,
    FileEntryInfo,
    FileSystemInfo,
    FsResult,
    Partition,
)
from volume_analyzer.drivers.base import SectorSource
from volume_analyzer.filesystems.base import CorruptStructureError, MountOptions
from volume_analyzer.filesystems.session import Children, ReadOnlySession
from .chain import AllocationTable
from .directory import ATTR_SUBDIRECTORY, FatDirEntry, parse_directory, unique_names
from .info import DEFAULT_ENCODING, FatLayout, FatType, compute_layout, identify

_FAT_BITS = {FatType.FAT12: 12, FatType.FAT16: 16, FatType.FAT32: 32}


class FatSession(ReadOnlySession):
    """Montowanie FAT: katalog główny, łańcuchy klastrów i nazwy długie."""

    namespaces = ("dos", "nt", "lfn", "ecs")
    default_namespace = "ecs"
    default_encoding = DEFAULT_ENCODING
    case_sensitive = False

    def __init__(self) -> None:
        super().__init__()
        self._layout: FatLayout | None = None
        self._table: AllocationTable | None = None

    # ------------------------------------------------------------------
    # Montowanie
    # ------------------------------------------------------------------

    def _mount(self, source: SectorSource, partition: Partition, options: MountOptions) -> ErrorNumber:
        if not identify(source, partition):
            return ErrorNumber.INVALID_FILESYSTEM
        layout = compute_layout(source, partition)
        if layout is None or layout.fats == 0 or layout.fat_size == 0:
            return ErrorNumber.INVALID_FILESYSTEM
        bits = _FAT_BITS.get(layout.fat_type, 32)
        if layout.fat_type == FatType.FAT32 and layout.root_cluster < 2:
            return ErrorNumber.INVALID_FILESYSTEM

        active = layout.active_fat if layout.active_fat < layout.fats else 0
        table_bytes = self._read_bytes(layout.fat_offset + active * layout.fat_size, layout.fat_size)
        self._layout = layout
        self._table = AllocationTable(table_bytes, bits, layout.clusters)
        self._root = FatDirEntry(
            name="",
            short_name="",
            long_name=None,
            attributes=ATTR_SUBDIRECTORY,
            start_cluster=layout.root_cluster,
            size=0,
            creation=None,
            access=None,
            modification=None,
        )
        self._logger.debug(
            "fat-mounted",
            fat_type=layout.fat_type,
            clusters=layout.clusters,
            cluster_size=layout.cluster_size,
        )
        return ErrorNumber.NO_ERROR

    def _release(self) -> None:
        self._layout = None
        self._table = None

    # ------------------------------------------------------------------
    # Wpisy
    # ------------------------------------------------------------------

    def _is_directory(self, entry: FatDirEntry) -> bool:
        return entry.is_directory

    def _directory_key(self, entry: FatDirEntry) -> Hashable:
        if entry is self._root:
            return "root"
        return entry.start_cluster

    def _is_fixed_root(self, entry: FatDirEntry) -> bool:
        assert self._layout is not None
        return entry is self._root and self._layout.fat_type != FatType.FAT32

    def _children(self, entry: FatDirEntry) -> Children:
        assert self._layout is not None and self._options is not None
        if self._is_fixed_root(entry):
            raw = self._read_bytes(self._layout.root_offset, self._layout.root_size)
        elif entry is not self._root and entry.start_cluster < 2:
            # Klastry 0 i 1 są zarezerwowane; podkatalog nie może się w nich zaczynać.
            raise CorruptStructureError(f"Katalog {entry.name} bez poprawnego klastra początkowego")
        else:
            raw = self._read_chain(entry.start_cluster)
        entries = parse_directory(
            raw,
            encoding=self._options.encoding,
            namespace=self._options.namespace or self.default_namespace,
            fat32=self._layout.fat_type == FatType.FAT32,
            high_cluster=self._layout.fat_type == FatType.FAT32,
            debug=self._options.debug,
        )
        return unique_names(entries)

    def _stat(self, entry: FatDirEntry) -> FileEntryInfo:
        assert self._layout is not None
        cluster_size = self._layout.cluster_size
        length = self._file_length(entry)
        return FileEntryInfo(
            attributes=entry.file_attributes() if entry is not self._root else FileAttributes.DIRECTORY,
            length=length,
            blocks=(length + cluster_size - 1) // cluster_size,
            block_size=cluster_size,
            inode=entry.start_cluster,
            links=1,
            access_time=entry.access,
            creation_time=entry.creation,
            last_write_time=entry.modification,
        )

    def _file_length(self, entry: FatDirEntry) -> int:
        assert self._layout is not None and self._table is not None
        if not entry.is_directory:
            return entry.size
        if self._is_fixed_root(entry):
            return self._layout.root_size
        return len(self._table.chain(entry.start_cluster)) * self._layout.cluster_size

    # ------------------------------------------------------------------
    # Odczyt danych
    # ------------------------------------------------------------------

    def _cluster_offset(self, cluster: int) -> int:
        assert self._layout is not None
        return self._layout.data_offset + (cluster - 2) * self._layout.cluster_size

    def _read_chain(self, start: int) -> bytes:
        assert self._layout is not None and self._table is not None
        size = self._layout.cluster_size
        return b"".join(self._read_bytes(self._cluster_offset(cluster), size) for cluster in self._table.chain(start))

    def _read(self, entry: FatDirEntry, offset: int, size: int) -> bytes:
        assert self._layout is not None and self._table is not None
        if self._is_fixed_root(entry):
            return self._read_bytes(self._layout.root_offset + offset, size)
        cluster_size = self._layout.cluster_size
        clusters = self._table.chain(entry.start_cluster)
        first = offset // cluster_size
        last = (offset + size - 1) // cluster_size
        if last >= len(clusters):
            raise CorruptStructureError(f"Łańcuch klastrów krótszy niż rozmiar pliku ({entry.name})")
        chunks: List[bytes] = [
            self._read_bytes(self._cluster_offset(cluster), cluster_size) for cluster in clusters[first : last + 1]
        ]
        data = b"".join(chunks)
        skip = offset - first * cluster_size
        return data[skip : skip + size]

    def _map_block(self, entry: FatDirEntry, block: int) -> FsResult[int]:
        assert self._layout is not None and self._table is not None
        assert self._source is not None and self._partition is not None
        if self._is_fixed_root(entry):
            return FsResult.failure(ErrorNumber.NOT_SUPPORTED)
        clusters = self._table.chain(entry.start_cluster)
        blocks = (self._file_length(entry) + self._layout.cluster_size - 1) // self._layout.cluster_size
        if block >= min(blocks, len(clusters)):
            return FsResult.failure(ErrorNumber.INVALID_ARGUMENT)
        byte_offset = self._cluster_offset(clusters[block])
        return FsResult.success(self._partition.start + byte_offset // self._source.sector_size)

    def _stat_fs(self) -> FileSystemInfo:
        assert self._layout is not None and self._table is not None
        layout = self._layout
        return FileSystemInfo(
            type=f"Microsoft {layout.fat_type}",
            blocks=layout.clusters,
            free_blocks=self._table.free_clusters(),
            files=0,
            free_files=0,
            filename_length=11,
            id=f"{layout.serial:08X}" if layout.serial is not None else None,
        )

    def _find_child(self, children: Any, component: str) -> Any:
        match = super()._find_child(children, component)
        if match is not None:
            return match
        folded = component.casefold()
        for _, entry in children:
            if entry.short_name.casefold() == folded:
                return entry
        return None


__all__ = ["FatSession"]
