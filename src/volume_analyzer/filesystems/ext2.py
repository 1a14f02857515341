"""Rozpoznawanie ext2/ext3/ext4 na podstawie superbloku."""

from __future__ import annotations

import struct
import uuid
from typing import Optional

from volume_analyzer.core.models import Partition, VolumeMetadata
from volume_analyzer.drivers.base import SectorSource
from volume_analyzer.shared.dates import unix_unsigned_to_datetime
from volume_analyzer.shared.text import c_string, resolve_encoding
from .base import read_partition

SUPERBLOCK_OFFSET = 0x400
SUPERBLOCK_SIZE = 1024

EXT2_MAGIC = 0xEF53
EXT2_MAGIC_OLD = 0xEF51

EXT2_VALID_FS = 0x0001

COMPAT_HAS_JOURNAL = 0x00000004
INCOMPAT_RECOVER = 0x00000004
INCOMPAT_JOURNAL_DEV = 0x00000008
INCOMPAT_64BIT = 0x00000080

EXT4_RO_COMPAT = 0x00000008 | 0x00000010 | 0x00000020 | 0x00000040
EXT4_INCOMPAT = INCOMPAT_64BIT | 0x00000100 | 0x00000200 | 0x00000400 | 0x00001000

DEFAULT_ENCODING = "iso8859_15"

_CREATOR_OS = {
    0: "Linux",
    1: "Hurd",
    2: "MasIX",
    3: "FreeBSD",
    4: "Lites",
}


def _read_superblock(source: SectorSource, partition: Partition) -> Optional[bytes]:
    return read_partition(source, partition, SUPERBLOCK_OFFSET, SUPERBLOCK_SIZE)


def identify(source: SectorSource, partition: Partition) -> bool:
    superblock = _read_superblock(source, partition)
    if superblock is None:
        return False
    magic = struct.unpack_from("<H", superblock, 0x38)[0]
    return magic in (EXT2_MAGIC, EXT2_MAGIC_OLD)


def _variant(magic: int, compat: int, incompat: int, ro_compat: int) -> str:
    if magic == EXT2_MAGIC_OLD:
        return "ext2"
    if ro_compat & EXT4_RO_COMPAT or incompat & EXT4_INCOMPAT:
        return "ext4"
    if compat & COMPAT_HAS_JOURNAL or incompat & (INCOMPAT_RECOVER | INCOMPAT_JOURNAL_DEV):
        return "ext3"
    return "ext2"


def get_information(
    source: SectorSource,
    partition: Partition,
    encoding: str | None = None,
) -> VolumeMetadata:
    encoding = resolve_encoding(encoding, DEFAULT_ENCODING)
    sb = _read_superblock(source, partition)
    if sb is None:
        return VolumeMetadata(type="ext2")

    inodes, blocks, _, free_blocks, free_inodes = struct.unpack_from("<IIIII", sb, 0)
    log_block_size = struct.unpack_from("<I", sb, 0x18)[0]
    write_time = struct.unpack_from("<I", sb, 0x30)[0]
    magic, state = struct.unpack_from("<HH", sb, 0x38)
    creator_os = struct.unpack_from("<I", sb, 0x48)[0]
    compat, incompat, ro_compat = struct.unpack_from("<III", sb, 0x5C)
    raw_uuid = bytes(sb[0x68:0x78])
    mkfs_time = struct.unpack_from("<I", sb, 0x108)[0]

    if incompat & INCOMPAT_64BIT:
        blocks_hi, _, free_hi = struct.unpack_from("<III", sb, 0x150)
        blocks |= blocks_hi << 32
        free_blocks |= free_hi << 32

    volume_name = c_string(sb[0x78:0x88], encoding) or None
    serial = None
    if any(raw_uuid):
        serial = str(uuid.UUID(bytes_le=raw_uuid))

    return VolumeMetadata(
        type=_variant(magic, compat, incompat, ro_compat),
        clusters=blocks,
        cluster_size=1024 << (log_block_size & 0x1F),
        volume_name=volume_name,
        volume_serial=serial,
        system_identifier=_CREATOR_OS.get(creator_os, f"Unknown OS ({creator_os})"),
        creation_date=unix_unsigned_to_datetime(mkfs_time) if mkfs_time > 0 else None,
        modification_date=unix_unsigned_to_datetime(write_time) if write_time > 0 else None,
        files=max(0, inodes - free_inodes),
        free_clusters=free_blocks,
        dirty=state != EXT2_VALID_FS,
    )


class Ext2Filesystem:
    """Wtyczka ext2/3/4."""

    name = "Linux extended Filesystem 2, 3 and 4"

    def identify(self, source: SectorSource, partition: Partition) -> bool:
        return identify(source, partition)

    def get_information(
        self,
        source: SectorSource,
        partition: Partition,
        encoding: str | None = None,
    ) -> VolumeMetadata:
        return get_information(source, partition, encoding)


__all__ = ["Ext2Filesystem", "get_information", "identify"]
