"""FATX (Xbox, little-endian) i XTAF (Xbox 360, big-endian)."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Hashable, List, Optional

from structlog import get_logger

from volume_analyzer.core.models import (
    ErrorNumber,
    FileAttributes,
    FileEntryInfo,
    FileSystemInfo,
    FsResult,
    Partition,
    VolumeMetadata,
)
from volume_analyzer.drivers.base import SectorSource
from volume_analyzer.shared.dates import dos_to_datetime
from volume_analyzer.shared.text import c_string, resolve_encoding
from .base import CorruptStructureError, MountOptions, read_partition
from .fat.chain import AllocationTable
from .fat.directory import ATTR_SUBDIRECTORY, FatDirEntry
from .session import Children, ReadOnlySession

_logger = get_logger(__name__)

FATX_MAGIC = b"FATX"
XTAF_MAGIC = b"XTAF"

DEFAULT_ENCODING = "ascii"
SUPERBLOCK_SIZE = 0x1000
LOGICAL_SECTOR_SIZE = 512
ENTRY_SIZE = 64
MAX_NAME_LENGTH = 42

NAME_DELETED = 0xE5
NAME_FINISHED = (0x00, 0xFF)

XBOX_YEAR_BASE = 2000
XBOX360_YEAR_BASE = 1980


@dataclass(frozen=True, slots=True)
class FatxSuperblock:
    big_endian: bool
    volume_id: int
    sectors_per_cluster: int
    root_cluster: int
    label: bytes

    @property
    def cluster_size(self) -> int:
        return self.sectors_per_cluster * LOGICAL_SECTOR_SIZE

    @property
    def year_base(self) -> int:
        return XBOX360_YEAR_BASE if self.big_endian else XBOX_YEAR_BASE


def read_superblock(source: SectorSource, partition: Partition) -> FatxSuperblock | None:
    raw = read_partition(source, partition, 0, 0x32)
    if raw is None:
        return None
    magic = raw[:4]
    if magic == FATX_MAGIC:
        order = "<"
    elif magic == XTAF_MAGIC:
        order = ">"
    else:
        return None
    volume_id, spc, root = struct.unpack_from(order + "III", raw, 4)
    return FatxSuperblock(
        big_endian=order == ">",
        volume_id=volume_id,
        sectors_per_cluster=spc,
        root_cluster=root,
        label=bytes(raw[0x12:0x32]),
    )


def identify(source: SectorSource, partition: Partition) -> bool:
    if partition.size <= SUPERBLOCK_SIZE:
        return False
    superblock = read_superblock(source, partition)
    if superblock is None:
        return False
    spc = superblock.sectors_per_cluster
    return spc > 0 and spc & (spc - 1) == 0


def _label(superblock: FatxSuperblock) -> Optional[str]:
    codec = "utf-16-be" if superblock.big_endian else "utf-16-le"
    label = c_string(superblock.label, codec, two_byte=True).strip()
    return label or None


def _cluster_count(superblock: FatxSuperblock, partition: Partition) -> int:
    return (partition.size - SUPERBLOCK_SIZE) // superblock.cluster_size


def get_information(
    source: SectorSource,
    partition: Partition,
    encoding: str | None = None,
) -> VolumeMetadata:
    superblock = read_superblock(source, partition)
    if superblock is None or superblock.sectors_per_cluster == 0:
        return VolumeMetadata(type="FATX filesystem")
    return VolumeMetadata(
        type="FATX filesystem",
        clusters=_cluster_count(superblock, partition),
        cluster_size=superblock.cluster_size,
        volume_name=_label(superblock),
        volume_serial=f"{superblock.volume_id:08X}",
    )


def parse_directory(raw: bytes, *, big_endian: bool, encoding: str, year_base: int) -> List[FatDirEntry]:
    """64-bajtowe wpisy katalogu FATX; koniec przy 0x00 lub 0xFF w polu długości nazwy."""

    order = ">" if big_endian else "<"
    entries: List[FatDirEntry] = []
    for offset in range(0, len(raw) - ENTRY_SIZE + 1, ENTRY_SIZE):
        name_length = raw[offset]
        if name_length in NAME_FINISHED:
            break
        if name_length == NAME_DELETED or name_length > MAX_NAME_LENGTH:
            continue
        attributes = raw[offset + 1]
        name = raw[offset + 2 : offset + 2 + name_length].decode(encoding, errors="replace")
        (
            first_cluster,
            length,
            mtime,
            mdate,
            atime,
            adate,
            ctime,
            cdate,
        ) = struct.unpack_from(order + "IIHHHHHH", raw, offset + 44)
        entries.append(
            FatDirEntry(
                name=name,
                short_name=name,
                long_name=None,
                attributes=attributes,
                start_cluster=first_cluster,
                size=length,
                creation=dos_to_datetime(cdate, ctime, year_base=year_base),
                access=dos_to_datetime(adate, atime, year_base=year_base),
                modification=dos_to_datetime(mdate, mtime, year_base=year_base),
            )
        )
    return entries


class FatxSession(ReadOnlySession):
    """Montowanie wolumenów FATX/XTAF."""

    default_encoding = DEFAULT_ENCODING
    case_sensitive = False

    def __init__(self) -> None:
        super().__init__()
        self._superblock: FatxSuperblock | None = None
        self._table: AllocationTable | None = None
        self._data_offset = 0
        self._clusters = 0

    def _mount(self, source: SectorSource, partition: Partition, options: MountOptions) -> ErrorNumber:
        if not identify(source, partition):
            return ErrorNumber.INVALID_FILESYSTEM
        superblock = read_superblock(source, partition)
        assert superblock is not None
        clusters = _cluster_count(superblock, partition)
        if clusters <= 0:
            return ErrorNumber.INVALID_FILESYSTEM
        bits = 16 if clusters < 65525 else 32
        fat_size = (clusters + 1) * (bits // 8)
        if fat_size % SUPERBLOCK_SIZE:
            fat_size += SUPERBLOCK_SIZE - fat_size % SUPERBLOCK_SIZE

        table = AllocationTable(
            self._read_bytes(SUPERBLOCK_SIZE, fat_size),
            bits,
            clusters,
            big_endian=superblock.big_endian,
            first_data_cluster=1,
        )
        if not table.is_valid_cluster(superblock.root_cluster):
            raise CorruptStructureError(f"Klaster katalogu głównego poza zakresem: {superblock.root_cluster}")

        self._superblock = superblock
        self._table = table
        self._clusters = clusters
        self._data_offset = SUPERBLOCK_SIZE + fat_size
        self._root = FatDirEntry(
            name="",
            short_name="",
            long_name=None,
            attributes=ATTR_SUBDIRECTORY,
            start_cluster=superblock.root_cluster,
            size=0,
            creation=None,
            access=None,
            modification=None,
        )
        _logger.debug("fatx-mounted", big_endian=superblock.big_endian, clusters=clusters, fat_bits=bits)
        return ErrorNumber.NO_ERROR

    def _release(self) -> None:
        self._superblock = None
        self._table = None
        self._data_offset = 0
        self._clusters = 0

    def _is_directory(self, entry: FatDirEntry) -> bool:
        return entry.is_directory

    def _directory_key(self, entry: FatDirEntry) -> Hashable:
        return entry.start_cluster

    def _cluster_offset(self, cluster: int) -> int:
        assert self._superblock is not None
        return self._data_offset + (cluster - 1) * self._superblock.cluster_size

    def _children(self, entry: FatDirEntry) -> Children:
        assert self._superblock is not None and self._table is not None and self._options is not None
        size = self._superblock.cluster_size
        raw = b"".join(
            self._read_bytes(self._cluster_offset(cluster), size) for cluster in self._table.chain(entry.start_cluster)
        )
        entries = parse_directory(
            raw,
            big_endian=self._superblock.big_endian,
            encoding=self._options.encoding,
            year_base=self._superblock.year_base,
        )
        return [(item.name, item) for item in entries]

    def _stat(self, entry: FatDirEntry) -> FileEntryInfo:
        assert self._superblock is not None
        cluster_size = self._superblock.cluster_size
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
        assert self._superblock is not None and self._table is not None
        if entry.is_directory:
            return len(self._table.chain(entry.start_cluster)) * self._superblock.cluster_size
        return entry.size

    def _read(self, entry: FatDirEntry, offset: int, size: int) -> bytes:
        assert self._superblock is not None and self._table is not None
        cluster_size = self._superblock.cluster_size
        clusters = self._table.chain(entry.start_cluster)
        first = offset // cluster_size
        last = (offset + size - 1) // cluster_size
        if last >= len(clusters):
            raise CorruptStructureError(f"Łańcuch klastrów krótszy niż rozmiar pliku ({entry.name})")
        data = b"".join(
            self._read_bytes(self._cluster_offset(cluster), cluster_size) for cluster in clusters[first : last + 1]
        )
        skip = offset - first * cluster_size
        return data[skip : skip + size]

    def _map_block(self, entry: FatDirEntry, block: int) -> FsResult[int]:
        assert self._superblock is not None and self._table is not None
        assert self._source is not None and self._partition is not None
        clusters = self._table.chain(entry.start_cluster)
        cluster_size = self._superblock.cluster_size
        blocks = (self._file_length(entry) + cluster_size - 1) // cluster_size
        if block >= min(blocks, len(clusters)):
            return FsResult.failure(ErrorNumber.INVALID_ARGUMENT)
        byte_offset = self._cluster_offset(clusters[block])
        return FsResult.success(self._partition.start + byte_offset // self._source.sector_size)

    def _stat_fs(self) -> FileSystemInfo:
        assert self._superblock is not None and self._table is not None
        prefix = "Xbox 360" if self._superblock.big_endian else "Xbox"
        return FileSystemInfo(
            type=f"{prefix} FAT{self._table.bits}",
            blocks=self._clusters,
            free_blocks=self._table.free_clusters(),
            files=0,
            free_files=0,
            filename_length=MAX_NAME_LENGTH,
            id=f"{self._superblock.volume_id:08X}",
        )


class FatxFilesystem:
    """Wtyczka FATX."""

    name = "FATX Filesystem Plugin"

    def identify(self, source: SectorSource, partition: Partition) -> bool:
        return identify(source, partition)

    def get_information(
        self,
        source: SectorSource,
        partition: Partition,
        encoding: str | None = None,
    ) -> VolumeMetadata:
        return get_information(source, partition, resolve_encoding(encoding, DEFAULT_ENCODING))

    def create_session(self) -> FatxSession:
        return FatxSession()


__all__ = [
    "FatxFilesystem",
    "FatxSession",
    "FatxSuperblock",
    "get_information",
    "identify",
    "parse_directory",
    "read_superblock",
]
