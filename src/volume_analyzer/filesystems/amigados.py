"""AmigaDOS (OFS/FFS, muFS): blok rozruchowy i blok główny."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterator, Optional

from structlog import get_logger

from volume_analyzer.core.models import Partition, VolumeMetadata
from volume_analyzer.drivers.base import SectorSource
from volume_analyzer.shared.dates import amiga_to_datetime
from volume_analyzer.shared.text import pascal_string, resolve_encoding
from .base import read_sectors

_logger = get_logger(__name__)

FFS_MASK = 0x444F5300
MUFS_MASK = 0x6D754600

TYPE_HEADER = 2
SUBTYPE_ROOT = 1
BITMAP_VALID = 0xFFFFFFFF

DEFAULT_ENCODING = "iso8859_1"

_TYPES = {0: "aofs", 1: "affs", 2: "aofs", 3: "affs", 4: "aofs", 5: "affs", 6: "aofs2", 7: "affs2"}


def amiga_checksum(data: bytes) -> int:
    """Suma kontrolna bloku: negacja sumy słów 32-bitowych."""

    total = sum(struct.unpack(f">{len(data) // 4}I", data[: len(data) & ~3]))
    return (-total) & 0xFFFFFFFF


def amiga_boot_checksum(data: bytes) -> int:
    """Suma kontrolna bloku rozruchowego (z przeniesieniem)."""

    total = 0
    for (word,) in struct.iter_unpack(">I", data[: len(data) & ~3]):
        total += word
        if total > 0xFFFFFFFF:
            total = (total + 1) & 0xFFFFFFFF
    return ~total & 0xFFFFFFFF


def _is_dos_type(disk_type: int) -> bool:
    return disk_type & FFS_MASK == FFS_MASK or disk_type & MUFS_MASK == MUFS_MASK


@dataclass(slots=True)
class _BootBlock:
    disk_type: int
    checksum: int
    root_pointer: int
    valid: bool


@dataclass(slots=True)
class _RootBlock:
    pointer: int
    data: bytes
    checksum: int


def _read_boot_block(source: SectorSource, partition: Partition) -> Optional[_BootBlock]:
    sector = read_sectors(source, partition, 0, 2)
    if sector is None:
        return None
    disk_type = struct.unpack_from(">I", sector, 0)[0]
    # Dyskietki rozruchowe AROS mają blok rozruchowy przesunięty o sektor.
    if len(sector) >= 512 and sector[510:512] == b"\x55\xAA" and not _is_dos_type(disk_type):
        sector = read_sectors(source, partition, 1, 2)
        if sector is None:
            return None
        disk_type = struct.unpack_from(">I", sector, 0)[0]
    if not _is_dos_type(disk_type):
        return None
    checksum, root_pointer = struct.unpack_from(">II", sector, 4)
    cleared = sector[:4] + b"\x00\x00\x00\x00" + sector[8:]
    return _BootBlock(disk_type, checksum, root_pointer, amiga_boot_checksum(cleared) == checksum)


def _root_candidates(boot: _BootBlock, partition: Partition) -> Iterator[int]:
    half = partition.length // 2
    pointers = [boot.root_pointer if boot.valid else 0, half - 2, half - 1, half, half + 4]
    for pointer in pointers:
        if 0 <= pointer < partition.length - 1:
            yield pointer


def _find_root_block(source: SectorSource, partition: Partition, boot: _BootBlock) -> Optional[_RootBlock]:
    sector_size = source.sector_size
    for pointer in _root_candidates(boot, partition):
        first = read_sectors(source, partition, pointer)
        if first is None or struct.unpack_from(">I", first, 0)[0] != TYPE_HEADER:
            continue
        hash_table_size = struct.unpack_from(">I", first, 0x0C)[0]
        block_size = (hash_table_size + 56) * 4
        sectors_per_block = (block_size + sector_size - 1) // sector_size
        if pointer + sectors_per_block >= partition.length - 1:
            continue
        block = read_sectors(source, partition, pointer, sectors_per_block)
        if block is None:
            continue
        block = block[:block_size]
        checksum = struct.unpack_from(">I", block, 20)[0]
        cleared = block[:20] + b"\x00\x00\x00\x00" + block[24:]
        sec_type = struct.unpack_from(">I", block, len(block) - 4)[0]
        _logger.debug("amiga-root-candidate", pointer=pointer, block_size=block_size, sec_type=sec_type)
        if sec_type == SUBTYPE_ROOT and checksum == amiga_checksum(cleared):
            return _RootBlock(pointer, block, checksum)
    return None


def identify(source: SectorSource, partition: Partition) -> bool:
    if partition.length <= 5:
        return False
    boot = _read_boot_block(source, partition)
    if boot is None:
        return False
    return _find_root_block(source, partition, boot) is not None


def get_information(
    source: SectorSource,
    partition: Partition,
    encoding: str | None = None,
) -> VolumeMetadata:
    encoding = resolve_encoding(encoding, DEFAULT_ENCODING)
    boot = _read_boot_block(source, partition)
    root = _find_root_block(source, partition, boot) if boot is not None else None
    if boot is None or root is None:
        return VolumeMetadata(type="aofs")

    block = root.data
    tail = len(block) - 200
    bitmap_flag = struct.unpack_from(">I", block, tail)[0]
    v_days, v_mins, v_ticks, c_days, c_mins, c_ticks = struct.unpack_from(">6I", block, tail + 160)
    block_size = len(block)

    return VolumeMetadata(
        type=_TYPES.get(boot.disk_type & 0xFF, "aofs"),
        clusters=partition.length * source.sector_size // block_size,
        cluster_size=block_size,
        volume_name=pascal_string(block[tail + 120 : tail + 151], encoding),
        volume_serial=f"{root.checksum:08X}",
        bootable=boot.valid,
        creation_date=amiga_to_datetime(c_days, c_mins, c_ticks),
        modification_date=amiga_to_datetime(v_days, v_mins, v_ticks),
        dirty=bitmap_flag != BITMAP_VALID,
    )


class AmigaDosFilesystem:
    """Wtyczka AmigaDOS."""

    name = "Amiga DOS filesystem"

    def identify(self, source: SectorSource, partition: Partition) -> bool:
        return identify(source, partition)

    def get_information(
        self,
        source: SectorSource,
        partition: Partition,
        encoding: str | None = None,
    ) -> VolumeMetadata:
        return get_information(source, partition, encoding)


__all__ = ["AmigaDosFilesystem", "amiga_boot_checksum", "amiga_checksum", "get_information", "identify"]
