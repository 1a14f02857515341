"""Rozpoznawanie odmian BIOS Parameter Block (BPB) sektora rozruchowego FAT."""

from __future__ import annotations

import struct
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Optional, Tuple

from structlog import get_logger

from volume_analyzer.core.models import Partition
from volume_analyzer.drivers.base import SectorSource
from volume_analyzer.filesystems.base import read_partition

_logger = get_logger(__name__)

VALID_SECTORS_PER_CLUSTER = frozenset({1, 2, 4, 8, 16, 32, 64})

FSINFO_SIGNATURE1 = 0x41615252
FSINFO_SIGNATURE2 = 0x61417272
FSINFO_SIGNATURE3 = 0xAA550000

HPFS_MAGIC1 = 0xF995E849
HPFS_MAGIC2 = 0xFA53E9C5


class BpbKind(str, Enum):
    """Rodzaj bloku parametrów znaleziony w sektorze rozruchowym."""

    NONE = "none"
    HARDCODED = "hardcoded"
    ATARI = "atari"
    MSX = "msx"
    DOS2 = "dos2"
    DOS3 = "dos3"
    DOS32 = "dos32"
    DOS33 = "dos33"
    SHORT_EXTENDED = "short_extended"
    EXTENDED = "extended"
    SHORT_FAT32 = "short_fat32"
    LONG_FAT32 = "long_fat32"
    HUMAN = "human68k"
    APRICOT = "apricot"

    @property
    def is_fat32(self) -> bool:
        return self in (BpbKind.SHORT_FAT32, BpbKind.LONG_FAT32)


_MIN_BOOT_NEAR_JUMP: Dict[BpbKind, int] = {
    BpbKind.LONG_FAT32: 0x58,
    BpbKind.SHORT_FAT32: 0x57,
    BpbKind.EXTENDED: 0x3C,
    BpbKind.SHORT_EXTENDED: 0x29,
    BpbKind.DOS33: 0x22,
    BpbKind.DOS32: 0x1E,
    BpbKind.DOS3: 0x1C,
    BpbKind.DOS2: 0x16,
}


@dataclass(frozen=True, slots=True)
class BiosParameterBlock:
    """Znormalizowany BPB (pola nieobecne w danej odmianie mają wartość 0/None)."""

    jump: Optional[bytes]
    oem_name: Optional[bytes]
    bps: int
    spc: int
    rsectors: int
    fats_no: int
    root_ent: int
    sectors: int
    media: int
    spfat: int
    sptrk: int = 0
    heads: int = 0
    hsectors: int = 0
    big_sectors: int = 0
    drive_no: int = 0
    flags: int = 0
    signature: int = 0
    serial_no: int = 0
    volume_label: Optional[bytes] = None
    fs_type: Optional[bytes] = None
    # pola FAT32
    big_spfat: int = 0
    mirror_flags: int = 0
    version: int = 0
    root_cluster: int = 0
    fsinfo_sector: int = 0
    huge_sectors: int = 0


@dataclass(frozen=True, slots=True)
class BpbDetection:
    """Wynik klasyfikacji sektora rozruchowego."""

    kind: BpbKind
    bpb: BiosParameterBlock
    min_boot_near_jump: int = 0
    andos_oem: bool = False
    bootable: bool = False
    human_clusters: int = 0
    atari_serial: Optional[bytes] = None


# (media, sektory obrazu, rozmiar sektora) -> bps, spc, rsectors, fats, root, spfat, sptrk, heads
_HARDCODED_FLOPPIES: Dict[Tuple[int, int, int], Tuple[int, int, int, int, int, int, int, int]] = {
    (0xE5, 2002, 128): (128, 4, 1, 2, 64, 1, 26, 1),
    (0xFD, 4004, 128): (128, 4, 4, 2, 68, 6, 26, 2),
    (0xFD, 2002, 128): (128, 4, 4, 2, 68, 6, 26, 1),
    (0xFE, 2002, 128): (128, 4, 1, 2, 68, 6, 26, 1),
    (0xFE, 720, 128): (128, 2, 54, 2, 64, 4, 18, 1),
    (0xFE, 1232, 1024): (1024, 1, 1, 2, 192, 2, 8, 2),
    (0xFE, 320, 512): (512, 1, 1, 2, 64, 1, 8, 1),
    (0xFC, 360, 512): (512, 1, 1, 2, 64, 2, 9, 1),
    (0xFF, 640, 512): (512, 2, 1, 2, 112, 1, 8, 2),
    (0xFE, 640, 512): (512, 2, 1, 2, 112, 1, 8, 2),
    (0xFD, 720, 512): (512, 2, 1, 2, 112, 2, 9, 2),
    (0xF9, 1440, 512): (512, 2, 1, 2, 112, 3, 9, 2),
    (0xF9, 2400, 512): (512, 1, 1, 2, 224, 7, 15, 2),
    (0xF0, 2880, 512): (512, 1, 1, 2, 224, 9, 18, 2),
}


def count_bits(value: int) -> int:
    return bin(value).count("1")


def _u16(data: bytes, offset: int) -> int:
    return struct.unpack_from("<H", data, offset)[0]


def _u32(data: bytes, offset: int) -> int:
    return struct.unpack_from("<I", data, offset)[0]


def _all_at_least(data: bytes, floor: int = 0x20) -> bool:
    return all(byte >= floor for byte in data)


def parse_dos_bpb(sector: bytes) -> BiosParameterBlock:
    """BPB z EBPB DOS 4.0 (pola DOS 2.0 - 4.0 w jednym odczycie)."""

    return BiosParameterBlock(
        jump=bytes(sector[0:3]),
        oem_name=bytes(sector[3:11]),
        bps=_u16(sector, 0x0B),
        spc=sector[0x0D],
        rsectors=_u16(sector, 0x0E),
        fats_no=sector[0x10],
        root_ent=_u16(sector, 0x11),
        sectors=_u16(sector, 0x13),
        media=sector[0x15],
        spfat=_u16(sector, 0x16),
        sptrk=_u16(sector, 0x18),
        heads=_u16(sector, 0x1A),
        hsectors=_u32(sector, 0x1C),
        big_sectors=_u32(sector, 0x20),
        drive_no=sector[0x24],
        flags=sector[0x25],
        signature=sector[0x26],
        serial_no=_u32(sector, 0x27),
        volume_label=bytes(sector[0x2B:0x36]),
        fs_type=bytes(sector[0x36:0x3E]),
    )


def parse_fat32_bpb(sector: bytes) -> BiosParameterBlock:
    """BPB FAT32 (długi i krótki wariant dzielą początek struktury)."""

    return BiosParameterBlock(
        jump=bytes(sector[0:3]),
        oem_name=bytes(sector[3:11]),
        bps=_u16(sector, 0x0B),
        spc=sector[0x0D],
        rsectors=_u16(sector, 0x0E),
        fats_no=sector[0x10],
        root_ent=_u16(sector, 0x11),
        sectors=_u16(sector, 0x13),
        media=sector[0x15],
        spfat=_u16(sector, 0x16),
        sptrk=_u16(sector, 0x18),
        heads=_u16(sector, 0x1A),
        hsectors=_u32(sector, 0x1C),
        big_sectors=_u32(sector, 0x20),
        big_spfat=_u32(sector, 0x24),
        mirror_flags=_u16(sector, 0x28),
        version=_u16(sector, 0x2A),
        root_cluster=_u32(sector, 0x2C),
        fsinfo_sector=_u16(sector, 0x30),
        drive_no=sector[0x40],
        flags=sector[0x41],
        signature=sector[0x42],
        serial_no=_u32(sector, 0x43),
        volume_label=bytes(sector[0x47:0x52]),
        fs_type=bytes(sector[0x52:0x5A]),
        huge_sectors=struct.unpack_from("<Q", sector, 0x52)[0],
    )


def _parse_apricot(sector: bytes) -> BiosParameterBlock:
    return BiosParameterBlock(
        jump=None,
        oem_name=None,
        bps=_u16(sector, 0x50),
        spc=sector[0x52],
        rsectors=_u16(sector, 0x53),
        fats_no=sector[0x55],
        root_ent=_u16(sector, 0x56),
        sectors=_u16(sector, 0x58),
        media=sector[0x5A],
        spfat=_u16(sector, 0x5B),
        sptrk=_u16(sector, 0x10),
    )


@dataclass(frozen=True, slots=True)
class HumanParameterBlock:
    """BPB Human68k (big-endian)."""

    jump: bytes
    oem_name: bytes
    bpc: int
    root_ent: int
    clusters: int
    media: int
    cpfat: int
    big_clusters: int

    @classmethod
    def parse(cls, sector: bytes) -> "HumanParameterBlock":
        return cls(
            jump=bytes(sector[0:2]),
            oem_name=bytes(sector[2:18]),
            bpc=struct.unpack_from(">H", sector, 0x12)[0],
            root_ent=struct.unpack_from(">H", sector, 0x18)[0],
            clusters=struct.unpack_from(">H", sector, 0x1A)[0],
            media=sector[0x1C],
            cpfat=sector[0x1D],
            big_clusters=struct.unpack_from(">I", sector, 0x1E)[0],
        )

    def matches(self, sector: bytes, partition_size: int) -> bool:
        expected = partition_size // self.bpc if self.bpc > 0 else 0
        clusters_correct = (self.big_clusters if self.clusters == 0 else self.clusters) == expected
        branch_correct = sector[0] == 0x60 and 0x1C <= sector[1] < 0xFE
        return clusters_correct and _all_at_least(sector[2:18]) and branch_correct and expected > 0


def read_boot_sectors(source: SectorSource, partition: Partition) -> tuple[bytes, bytes] | None:
    """Zwraca (sektor BPB, kolejny sektor) lub ``None``; BPB ma zawsze co najmniej 512 bajtów."""

    bpb_length = max(512, source.sector_size)
    data = read_partition(source, partition, 0, bpb_length + source.sector_size)
    if data is None:
        return None
    return data[:bpb_length], data[bpb_length:]


def _is_atari_jump(sector: bytes, oem: bytes) -> bool:
    return sector[0] == 0x60 or (sector[0] == 0xE9 and sector[1] == 0x00 and oem != b"NEXT    ")


def detect_bpb_kind(sector: bytes, source: SectorSource, partition: Partition) -> BpbDetection:
    """Klasyfikuje sektor rozruchowy; wynik ``NONE`` oznacza brak rozpoznanego BPB."""

    human = HumanParameterBlock.parse(sector)
    if human.matches(sector, partition.size):
        spc = human.bpc // source.sector_size if source.sector_size else 0
        bpb = BiosParameterBlock(
            jump=human.jump,
            oem_name=human.oem_name,
            bps=source.sector_size,
            spc=spc,
            rsectors=1,
            fats_no=2,
            root_ent=human.root_ent,
            sectors=human.clusters,
            media=human.media,
            spfat=human.cpfat * spc,
            big_sectors=human.big_clusters,
        )
        clusters = human.clusters or human.big_clusters
        return BpbDetection(BpbKind.HUMAN, bpb, bootable=True, human_clusters=clusters)

    length = partition.length
    kind = BpbKind.NONE
    chosen: BiosParameterBlock | None = None
    andos = False

    if source.sector_size >= 256:
        ebpb = parse_dos_bpb(sector)
        fat32 = parse_fat32_bpb(sector)
        apricot = _parse_apricot(sector)
        oem = ebpb.oem_name or b""
        andos = oem[0] < 0x20 and _all_at_least(oem[1:8])

        def _good(bpb: BiosParameterBlock) -> bool:
            return count_bits(bpb.bps) == 1 and bpb.spc in VALID_SECTORS_PER_CLUSTER

        if _good(fat32) and fat32.fats_no <= 2 and fat32.spfat == 0 and fat32.signature == 0x29 and fat32.fs_type == b"FAT32   ":
            return BpbDetection(BpbKind.LONG_FAT32, fat32, _MIN_BOOT_NEAR_JUMP[BpbKind.LONG_FAT32])
        if _good(fat32) and fat32.fats_no <= 2 and fat32.sectors == 0 and fat32.spfat == 0 and fat32.signature == 0x28:
            short = replace(fat32, volume_label=None, fs_type=None)
            return BpbDetection(BpbKind.SHORT_FAT32, short, _MIN_BOOT_NEAR_JUMP[BpbKind.SHORT_FAT32])

        if (
            _good(ebpb)
            and ebpb.fats_no <= 2
            and ebpb.root_ent > 0
            and ebpb.sectors <= length
            and ebpb.spfat > 0
            and bytes(sector[0x20:0x26]) == b"VOL_ID"
        ):
            kind = BpbKind.MSX
            chosen = replace(
                ebpb,
                hsectors=_u16(sector, 0x1C),
                big_sectors=0,
                drive_no=0,
                flags=0,
                signature=0,
                serial_no=_u32(sector, 0x2C),
                volume_label=None,
                fs_type=None,
            )
        elif (
            _good(apricot)
            and apricot.fats_no <= 2
            and apricot.root_ent > 0
            and apricot.sectors <= length
            and apricot.spfat > 0
            and sector[0x0C] == 0
        ):
            kind = BpbKind.APRICOT
            chosen = apricot
        elif (
            _good(ebpb)
            and ebpb.fats_no <= 2
            and ebpb.root_ent > 0
            and ebpb.spfat > 0
            and (ebpb.signature in (0x28, 0x29) or andos)
        ):
            total = ebpb.big_sectors if ebpb.sectors == 0 else ebpb.sectors
            if total <= length:
                if ebpb.signature == 0x29 or andos:
                    kind, chosen = BpbKind.EXTENDED, ebpb
                else:
                    kind = BpbKind.SHORT_EXTENDED
                    chosen = replace(ebpb, volume_label=None, fs_type=None)
        elif (
            _good(ebpb)
            and ebpb.rsectors < length - 1
            and ebpb.fats_no <= 2
            and ebpb.root_ent > 0
            and ebpb.spfat > 0
        ):
            dos33 = replace(ebpb, drive_no=0, flags=0, signature=0, serial_no=0, volume_label=None, fs_type=None)
            if dos33.sectors == 0 and dos33.hsectors <= partition.start and 0 < dos33.big_sectors <= length:
                kind, chosen = BpbKind.DOS33, dos33
            elif dos33.big_sectors == 0 and dos33.hsectors <= partition.start and 0 < dos33.sectors <= length:
                if _is_atari_jump(sector, oem) or partition.type_tag in ("GEM", "BGM"):
                    kind = BpbKind.ATARI
                else:
                    kind = BpbKind.DOS33
                chosen = dos33
            else:
                hsectors16 = _u16(sector, 0x1C)
                total16 = _u16(sector, 0x1E)
                dos3 = replace(dos33, hsectors=hsectors16, big_sectors=0)
                if hsectors16 <= partition.start and hsectors16 + dos33.sectors == total16:
                    kind, chosen = BpbKind.DOS32, dos3
                elif 0 < dos33.sptrk < 64 and 0 < dos33.heads < 256:
                    kind = BpbKind.ATARI if _is_atari_jump(sector, oem) else BpbKind.DOS3
                    chosen = dos3
                else:
                    kind = BpbKind.ATARI if _is_atari_jump(sector, oem) else BpbKind.DOS2
                    chosen = replace(dos3, sptrk=0, heads=0, hsectors=0)

    if chosen is not None:
        if kind is BpbKind.ATARI:
            chosen = replace(chosen, jump=bytes(sector[0:2]), oem_name=bytes(sector[2:8]), hsectors=0)
            return BpbDetection(kind, chosen, atari_serial=bytes(sector[8:11]))
        if kind is BpbKind.MSX:
            return BpbDetection(kind, chosen, bootable=True)
        if kind is BpbKind.APRICOT:
            return BpbDetection(kind, chosen, bootable=sector[11] > 0)
        return BpbDetection(kind, chosen, _MIN_BOOT_NEAR_JUMP.get(kind, 0), andos_oem=andos)

    return _detect_hardcoded(sector, source, partition)


def _detect_hardcoded(sector: bytes, source: SectorSource, partition: Partition) -> BpbDetection:
    """Dyskietki DOS 1.x bez BPB: geometria wynika z bajtu nośnika w FAT."""

    empty = BiosParameterBlock(
        jump=None, oem_name=None, bps=0, spc=0, rsectors=0, fats_no=0, root_ent=0, sectors=0, media=0, spfat=0
    )
    boot = read_boot_sectors(source, partition)
    if boot is None or not boot[1]:
        return BpbDetection(BpbKind.NONE, empty)
    fat_id = boot[1][0]
    geometry = hardcoded_geometry(fat_id, source.sector_count, source.sector_size)
    bootable = (
        sector[0] == 0xFA
        or (sector[0] == 0xEB and sector[1] <= 0x7F)
        or (sector[0] == 0xE9 and _u16(sector, 1) <= 0x1FC)
    )
    if geometry is None:
        return BpbDetection(BpbKind.HARDCODED, empty, bootable=bootable)
    bps, spc, rsectors, fats_no, root_ent, spfat, sptrk, heads = geometry
    bpb = BiosParameterBlock(
        jump=None,
        oem_name=None,
        bps=bps,
        spc=spc,
        rsectors=rsectors,
        fats_no=fats_no,
        root_ent=root_ent,
        sectors=source.sector_count,
        media=fat_id,
        spfat=spfat,
        sptrk=sptrk,
        heads=heads,
    )
    _logger.debug("fat-bpb-kind", kind=BpbKind.HARDCODED.value, media=fat_id)
    return BpbDetection(BpbKind.HARDCODED, bpb, bootable=bootable)


def hardcoded_geometry(
    media: int, sectors: int, sector_size: int
) -> Tuple[int, int, int, int, int, int, int, int] | None:
    return _HARDCODED_FLOPPIES.get((media, sectors, sector_size))


__all__ = [
    "BiosParameterBlock",
    "BpbDetection",
    "BpbKind",
    "FSINFO_SIGNATURE1",
    "FSINFO_SIGNATURE2",
    "FSINFO_SIGNATURE3",
    "HPFS_MAGIC1",
    "HPFS_MAGIC2",
    "HumanParameterBlock",
    "VALID_SECTORS_PER_CLUSTER",
    "count_bits",
    "detect_bpb_kind",
    "hardcoded_geometry",
    "parse_dos_bpb",
    "parse_fat32_bpb",
    "read_boot_sectors",
]
