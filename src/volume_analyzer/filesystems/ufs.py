"""BSD Fast File System (UFS1/UFS2), w obu kolejnościach bajtów."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterator, Optional

from structlog import get_logger

from volume_analyzer.core.models import Partition, VolumeMetadata
from volume_analyzer.drivers.base import SectorSource
from volume_analyzer.shared.dates import unix_signed_to_datetime, unix_to_datetime
from volume_analyzer.shared.text import c_string, resolve_encoding
from .base import read_partition

_logger = get_logger(__name__)

UFS_MAGIC = 0x00011954
UFS_MAGIC_BW = 0x0F242697
UFS2_MAGIC = 0x19540119
UFS_BAD_MAGIC = 0x19960408

MAGIC_OFFSET = 0x55C
SUPERBLOCK_BYTES = 0x600
BLOCK_SIZE = 8192

# Sektory: dyskietka, za blokiem rozruchowym, długi rozruch, "piggy", AT&T DSDD.
SECTOR_LOCATIONS = (0, 1, 8, 32, 14)
BYTE_LOCATIONS = (8192, 65536, 262144)

DEFAULT_ENCODING = "iso8859_15"

_MAGICS = (UFS_MAGIC, UFS_MAGIC_BW, UFS2_MAGIC, UFS_BAD_MAGIC)


def _swap32(value: int) -> int:
    return struct.unpack("<I", struct.pack(">I", value))[0]


@dataclass(frozen=True, slots=True)
class _Superblock:
    data: bytes
    order: str
    magic: int

    def i32(self, offset: int) -> int:
        return struct.unpack_from(self.order + "i", self.data, offset)[0]

    def i64(self, offset: int) -> int:
        return struct.unpack_from(self.order + "q", self.data, offset)[0]


def _locations(source: SectorSource, partition: Partition) -> Iterator[int]:
    sector_size = source.sector_size
    superblock_sectors = max(1, BLOCK_SIZE // sector_size)
    sectors = list(SECTOR_LOCATIONS) + [offset // sector_size for offset in BYTE_LOCATIONS]
    for sector in sectors:
        if partition.length - 1 > sector + superblock_sectors:
            yield sector


def _find_superblock(source: SectorSource, partition: Partition) -> Optional[_Superblock]:
    if partition.length <= 3:
        return None
    for sector in _locations(source, partition):
        data = read_partition(source, partition, sector * source.sector_size, SUPERBLOCK_BYTES)
        if data is None:
            continue
        magic = struct.unpack_from("<I", data, MAGIC_OFFSET)[0]
        if magic in _MAGICS:
            return _Superblock(data, "<", magic)
        if _swap32(magic) in _MAGICS:
            _logger.debug("ufs-big-endian", sector=sector)
            return _Superblock(data, ">", _swap32(magic))
    return None


def identify(source: SectorSource, partition: Partition) -> bool:
    return _find_superblock(source, partition) is not None


def get_information(
    source: SectorSource,
    partition: Partition,
    encoding: str | None = None,
) -> VolumeMetadata:
    encoding = resolve_encoding(encoding, DEFAULT_ENCODING)
    sb = _find_superblock(source, partition)
    if sb is None:
        return VolumeMetadata(type="UFS")

    fsize = sb.i32(0x34)
    dirty = sb.data[0xD0] == 1
    if sb.magic == UFS2_MAGIC:
        volume_name = c_string(sb.data[0x2A8:0x2C8], encoding)
        return VolumeMetadata(
            type="UFS2",
            clusters=sb.i64(0x420),
            cluster_size=fsize,
            volume_name=volume_name,
            modification_date=unix_to_datetime(sb.i64(0x418)),
            free_clusters=sb.i64(0x3F8),
            dirty=dirty,
        )

    return VolumeMetadata(
        type="UFS",
        clusters=sb.i32(0x24),
        cluster_size=fsize,
        modification_date=unix_signed_to_datetime(sb.i32(0x20)),
        free_clusters=sb.i32(0xC4),
        dirty=dirty,
    )


class UfsFilesystem:
    """Wtyczka UFS."""

    name = "BSD Fast File System (aka UNIX File System, UFS)"

    def identify(self, source: SectorSource, partition: Partition) -> bool:
        return identify(source, partition)

    def get_information(
        self,
        source: SectorSource,
        partition: Partition,
        encoding: str | None = None,
    ) -> VolumeMetadata:
        return get_information(source, partition, encoding)


__all__ = ["UfsFilesystem", "get_information", "identify"]
