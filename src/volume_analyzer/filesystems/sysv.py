"""Rodzina System V: XENIX, SVR2/SVR4, Coherent i UNIX V7.

Superblok leży w jednym z pierwszych 16 sektorów partycji; kolejność bajtów
wynika z odczytanej magii.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional

from structlog import get_logger

from volume_analyzer.core.models import Partition, VolumeMetadata
from volume_analyzer.drivers.base import SectorSource
from volume_analyzer.shared.dates import unix_signed_to_datetime, unix_unsigned_to_datetime
from volume_analyzer.shared.text import c_string, resolve_encoding
from .base import read_partition

_logger = get_logger(__name__)

XENIX_MAGIC = 0x002B5544
XENIX_CIGAM = 0x44552B00
SYSV_MAGIC = 0xFD187E20
SYSV_CIGAM = 0x207E18FD

COHERENT_MARKERS = (
    ("noname", "nopack"),
    ("xxxxx", "xxxxx"),
    ("xxxxx ", "xxxxx\n"),
)

V7_NICINOD = 100
V7_NICFREE = 100
V7_MAXSIZE = 0x00FFFFFF

SUPERBLOCK_SIZE = 0x400
SEARCH_SECTORS = 16
XENIX_CLEAN = 0x46
SYSV_STATE_BASE = 0x7C269D38

DEFAULT_ENCODING = "iso8859_15"


class SysvKind:
    XENIX = "xenixfs"
    XENIX3 = "xenix3"
    SYSV = "sysv"
    COHERENT = "coherent"
    UNIX7 = "unix7fs"


@dataclass(frozen=True, slots=True)
class _Located:
    kind: str
    sector: int
    big_endian: bool
    offset: int
    data: bytes


def _swap32(value: int) -> int:
    return struct.unpack("<I", struct.pack(">I", value))[0]


def _pdp32(value: int) -> int:
    """Kolejność PDP-11: zamiana 16-bitowych połówek."""

    return ((value & 0xFFFF) << 16) | (value >> 16)


def _u32(data: bytes, offset: int) -> int:
    return struct.unpack_from("<I", data, offset)[0]


def _u16(data: bytes, offset: int) -> int:
    return struct.unpack_from("<H", data, offset)[0]


def _coherent_markers(data: bytes) -> bool:
    fname = c_string(data[0x1E4:0x1EA], "latin-1")
    fpack = c_string(data[0x1EA:0x1F0], "latin-1")
    return (fname, fpack) in COHERENT_MARKERS


def _looks_like_v7(data: bytes, partition: Partition, sector_size: int) -> bool:
    fsize = _u32(data, 0x002)
    nfree = _u16(data, 0x006)
    ninode = _u16(data, 0x0D0)
    if not 0 < fsize < 0xFFFFFFFF or not 0 < nfree < 0xFFFF or not 0 < ninode < 0xFFFF:
        return False
    if fsize & 0xFF == 0 and nfree & 0xFF == 0 and ninode & 0xFF == 0:
        fsize = _swap32(fsize)
        nfree >>= 8
        ninode >>= 8
    if fsize & 0xFF000000 or nfree & 0xFF00 or ninode & 0xFF00:
        return False
    if fsize >= V7_MAXSIZE or nfree >= V7_NICFREE or ninode >= V7_NICINOD:
        return False
    sizes = (partition.length * sector_size, (partition.length - 1) * sector_size)
    return fsize * 1024 in sizes or fsize * 512 in sizes


def _classify(data: bytes, sector: int, partition: Partition, sector_size: int) -> Optional[_Located]:
    magic = _u32(data, 0x3F8)
    if magic in (XENIX_MAGIC, XENIX_CIGAM):
        return _Located(SysvKind.XENIX, sector, magic == XENIX_CIGAM, 0, data)
    if magic in (SYSV_MAGIC, SYSV_CIGAM):
        return _Located(SysvKind.SYSV, sector, magic == SYSV_CIGAM, 0x200, data)
    magic = _u32(data, 0x1F0)
    if magic in (XENIX_MAGIC, XENIX_CIGAM):
        return _Located(SysvKind.XENIX3, sector, magic == XENIX_CIGAM, 0, data)
    magic = _u32(data, 0x1F8)
    if magic in (SYSV_MAGIC, SYSV_CIGAM):
        return _Located(SysvKind.SYSV, sector, magic == SYSV_CIGAM, 0, data)
    if _coherent_markers(data):
        return _Located(SysvKind.COHERENT, sector, False, 0, data)
    if _looks_like_v7(data, partition, sector_size):
        return _Located(SysvKind.UNIX7, sector, False, 0, data)
    return None


def _locate(source: SectorSource, partition: Partition) -> Optional[_Located]:
    sector_size = source.sector_size
    superblock_sectors = max(1, SUPERBLOCK_SIZE // sector_size)
    if partition.length - 1 <= 5 * superblock_sectors:
        return None
    for sector in range(SEARCH_SECTORS):
        if sector + superblock_sectors >= partition.length:
            break
        data = read_partition(source, partition, sector * sector_size, SUPERBLOCK_SIZE)
        if data is None:
            continue
        located = _classify(data, sector, partition, sector_size)
        if located is not None:
            _logger.debug("sysv-superblock", kind=located.kind, sector=sector, big_endian=located.big_endian)
            return located
    return None


def identify(source: SectorSource, partition: Partition) -> bool:
    return _locate(source, partition) is not None


def _block_size(s_type: int) -> int:
    return {1: 512, 2: 1024, 3: 2048}.get(s_type, 512)


def _xenix(located: _Located, encoding: str) -> VolumeMetadata:
    data = located.data
    order = ">" if located.big_endian else "<"
    if located.kind == SysvKind.XENIX3:
        fields = dict(time=0x19E, tfree=0x1A2, fname=0x1B0, clean=0x1BC, type=0x1F4)
    else:
        fields = dict(time=0x266, tfree=0x26A, fname=0x278, clean=0x284, type=0x3FC)
    fsize = struct.unpack_from(order + "I", data, 0x002)[0]
    s_time = struct.unpack_from(order + "i", data, fields["time"])[0]
    tfree = struct.unpack_from(order + "I", data, fields["tfree"])[0]
    s_type = struct.unpack_from(order + "I", data, fields["type"])[0]
    return VolumeMetadata(
        type=SysvKind.XENIX,
        clusters=fsize,
        cluster_size=_block_size(s_type),
        volume_name=c_string(data[fields["fname"] : fields["fname"] + 6], encoding),
        modification_date=unix_signed_to_datetime(s_time) if s_time != 0 else None,
        free_clusters=tfree,
        dirty=data[fields["clean"]] != XENIX_CLEAN,
    )


def _sysv(located: _Located, partition: Partition, encoding: str) -> VolumeMetadata:
    data = located.data
    base = located.offset
    order = ">" if located.big_endian else "<"
    s_type = struct.unpack_from(order + "I", data, base + 0x1FC)[0]
    block_size = _block_size(s_type)
    r2_size = struct.unpack_from(order + "I", data, base + 0x002)[0]
    release4 = r2_size * block_size <= 0 or r2_size * block_size != partition.size
    if release4:
        fsize = struct.unpack_from(order + "I", data, base + 0x004)[0]
        s_time = struct.unpack_from(order + "I", data, base + 0x1A4)[0]
        tfree = struct.unpack_from(order + "I", data, base + 0x1B0)[0]
        fname_at = base + 0x1B6
    else:
        fsize = r2_size
        s_time = struct.unpack_from(order + "I", data, base + 0x19E)[0]
        tfree = struct.unpack_from(order + "I", data, base + 0x1AA)[0]
        fname_at = base + 0x1B0
    state = struct.unpack_from(order + "I", data, base + 0x1F4)[0]
    return VolumeMetadata(
        type="sysv_r4" if release4 else "sysv_r2",
        clusters=fsize,
        cluster_size=block_size,
        volume_name=c_string(data[fname_at : fname_at + 6], encoding),
        modification_date=unix_unsigned_to_datetime(s_time) if s_time != 0 else None,
        free_clusters=tfree,
        dirty=state != (SYSV_STATE_BASE - s_time) & 0xFFFFFFFF,
    )


def _coherent(located: _Located, encoding: str) -> VolumeMetadata:
    data = located.data
    s_time = _pdp32(_u32(data, 0x1D6))
    return VolumeMetadata(
        type=SysvKind.COHERENT,
        clusters=_pdp32(_u32(data, 0x002)),
        cluster_size=512,
        volume_name=c_string(data[0x1E4:0x1EA], encoding),
        modification_date=unix_unsigned_to_datetime(s_time) if s_time != 0 else None,
        free_clusters=_pdp32(_u32(data, 0x1DA)),
    )


def _unix7(located: _Located, encoding: str) -> VolumeMetadata:
    data = located.data
    s_time = _u32(data, 0x19E)
    return VolumeMetadata(
        type=SysvKind.UNIX7,
        clusters=_u32(data, 0x002),
        cluster_size=512,
        volume_name=c_string(data[0x1AC:0x1B2], encoding),
        modification_date=unix_unsigned_to_datetime(s_time) if s_time != 0 else None,
        free_clusters=_u32(data, 0x1A2),
    )


def get_information(
    source: SectorSource,
    partition: Partition,
    encoding: str | None = None,
) -> VolumeMetadata:
    encoding = resolve_encoding(encoding, DEFAULT_ENCODING)
    located = _locate(source, partition)
    if located is None:
        return VolumeMetadata(type=SysvKind.UNIX7)
    if located.kind in (SysvKind.XENIX, SysvKind.XENIX3):
        return _xenix(located, encoding)
    if located.kind == SysvKind.SYSV:
        return _sysv(located, partition, encoding)
    if located.kind == SysvKind.COHERENT:
        return _coherent(located, encoding)
    return _unix7(located, encoding)


class SysvFilesystem:
    """Wtyczka rodziny System V."""

    name = "UNIX System V filesystem"

    def identify(self, source: SectorSource, partition: Partition) -> bool:
        return identify(source, partition)

    def get_information(
        self,
        source: SectorSource,
        partition: Partition,
        encoding: str | None = None,
    ) -> VolumeMetadata:
        return get_information(source, partition, encoding)


__all__ = ["SysvFilesystem", "SysvKind", "get_information", "identify"]
