"""Apple ProDOS: blok klucza katalogu głównego."""

from __future__ import annotations

import struct
from typing import Optional, Tuple

from structlog import get_logger

from volume_analyzer.core.models import Partition, VolumeMetadata
from volume_analyzer.drivers.base import SectorSource
from volume_analyzer.shared.dates import prodos_to_datetime
from volume_analyzer.shared.text import resolve_encoding
from .base import read_partition

_logger = get_logger(__name__)

BLOCK_SIZE = 512
ROOT_KEY_BLOCK = 2

ROOT_DIRECTORY_TYPE = 0x0F
STORAGE_TYPE_MASK = 0xF0
NAME_LENGTH_MASK = 0x0F
ENTRY_LENGTH = 0x27
ENTRIES_PER_BLOCK = 0x0D

# Obraz dysku twardego z mapą APM nagrany na CD: blok klucza w pierwszych sektorach.
CD_SECTOR_SIZES = (2048,)
CD_KEY_OFFSETS = (0, 0x200, 0x400, 0x600, 0x800, 0xA00)

DEFAULT_ENCODING = "ascii"


def _is_root_key_block(block: bytes, offset: int = 0) -> bool:
    return (
        struct.unpack_from("<H", block, offset)[0] == 0
        and (block[offset + 0x04] & STORAGE_TYPE_MASK) >> 4 == ROOT_DIRECTORY_TYPE
        and block[offset + 0x23] == ENTRY_LENGTH
        and block[offset + 0x24] == ENTRIES_PER_BLOCK
    )


def _read_key_block(source: SectorSource, partition: Partition) -> Optional[Tuple[bytes, bool]]:
    """Blok klucza i informacja, czy znaleziono go w obrazie z płyty."""

    if source.sector_size in CD_SECTOR_SIZES:
        head = read_partition(source, partition, 0, 2 * source.sector_size)
        if head is not None:
            for offset in CD_KEY_OFFSETS:
                if len(head) >= offset + BLOCK_SIZE and _is_root_key_block(head, offset):
                    return head[offset : offset + BLOCK_SIZE], True
    block = read_partition(source, partition, ROOT_KEY_BLOCK * BLOCK_SIZE, BLOCK_SIZE)
    if block is None:
        return None
    return block, False


def _partition_blocks(source: SectorSource, partition: Partition) -> int:
    return partition.length * source.sector_size // BLOCK_SIZE


def identify(source: SectorSource, partition: Partition) -> bool:
    if partition.length < 3:
        return False
    located = _read_key_block(source, partition)
    if located is None:
        return False
    block, from_cd = located
    if not _is_root_key_block(block):
        return False
    bitmap_pointer, total_blocks = struct.unpack_from("<HH", block, 0x27)
    available = _partition_blocks(source, partition)
    if bitmap_pointer >= available:
        return False
    if from_cd:
        total_blocks //= 4
    _logger.debug("prodos-key-block", total_blocks=total_blocks, available=available, from_cd=from_cd)
    return total_blocks <= available


def get_information(
    source: SectorSource,
    partition: Partition,
    encoding: str | None = None,
) -> VolumeMetadata:
    encoding = resolve_encoding(encoding, DEFAULT_ENCODING)
    located = _read_key_block(source, partition)
    if located is None:
        return VolumeMetadata(type="ProDOS")
    block, _ = located

    name_length = block[0x04] & NAME_LENGTH_MASK
    volume_name = block[0x05 : 0x05 + name_length].decode(encoding, errors="replace")
    date, time = struct.unpack_from("<HH", block, 0x1C)
    file_count, _, total_blocks = struct.unpack_from("<HHH", block, 0x25)

    return VolumeMetadata(
        type="ProDOS",
        clusters=total_blocks,
        cluster_size=partition.length * source.sector_size // total_blocks if total_blocks else None,
        volume_name=volume_name,
        creation_date=prodos_to_datetime(date, time),
        files=file_count,
    )


class ProdosFilesystem:
    """Wtyczka ProDOS."""

    name = "Apple ProDOS filesystem"

    def identify(self, source: SectorSource, partition: Partition) -> bool:
        return identify(source, partition)

    def get_information(
        self,
        source: SectorSource,
        partition: Partition,
        encoding: str | None = None,
    ) -> VolumeMetadata:
        return get_information(source, partition, encoding)


__all__ = ["ProdosFilesystem", "get_information", "identify"]
