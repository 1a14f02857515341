"""Rozpoznawanie wolumenów FAT i dekodowanie ich metadanych."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from structlog import get_logger

from volume_analyzer.core.models import Partition, VolumeMetadata
from volume_analyzer.drivers.base import SectorSource
from volume_analyzer.filesystems.base import read_partition, read_sectors
from volume_analyzer.shared.dates import dos_to_datetime
from volume_analyzer.shared.text import c_string, decode_text, is_printable_ascii, resolve_encoding
from .bpb import (
    FSINFO_SIGNATURE1,
    FSINFO_SIGNATURE2,
    FSINFO_SIGNATURE3,
    HPFS_MAGIC1,
    HPFS_MAGIC2,
    VALID_SECTORS_PER_CLUSTER,
    BiosParameterBlock,
    BpbDetection,
    BpbKind,
    HumanParameterBlock,
    count_bits,
    detect_bpb_kind,
    hardcoded_geometry,
    parse_dos_bpb,
    parse_fat32_bpb,
    read_boot_sectors,
)

_logger = get_logger(__name__)

DEFAULT_ENCODING = "cp437"

FAT12_RESERVED = 0xFF0
FAT16_RESERVED = 0xFFF0

DIRENT_MIN = 0x20
DIRENT_E5 = 0x05
DIRENT_DELETED = 0xE5
DIRENT_SUBDIR = 0x2E

ATTR_VOLUME_LABEL = 0x08
CASE_LOWER_BASENAME = 0x08
CASE_LOWER_EXTENSION = 0x10


class FatType:
    FAT12 = "FAT12"
    FAT16 = "FAT16"
    FAT32 = "FAT32"
    FAT_PLUS = "FAT+"


@dataclass(frozen=True, slots=True)
class FatLayout:
    """Położenie struktur wolumenu w bajtach względem początku partycji."""

    fat_type: str
    bytes_per_sector: int
    sectors_per_cluster: int
    fat_offset: int
    fat_size: int
    fats: int
    root_offset: int
    root_size: int
    root_cluster: int
    data_offset: int
    clusters: int
    serial: Optional[int]
    active_fat: int = 0

    @property
    def cluster_size(self) -> int:
        return self.bytes_per_sector * self.sectors_per_cluster


# ----------------------------------------------------------------------
# Rozpoznawanie
# ----------------------------------------------------------------------


def identify(source: SectorSource, partition: Partition) -> bool:
    """Czy partycja zawiera wolumen FAT12/16/32."""

    if partition.length <= 3:
        return False
    boot = read_boot_sectors(source, partition)
    if boot is None:
        return False
    sector, fat_sector = boot

    if HumanParameterBlock.parse(sector).matches(sector, partition.size):
        return True

    ebpb = parse_dos_bpb(sector)
    fat32 = parse_fat32_bpb(sector)
    length = partition.length
    oem = bytes(sector[3:11])
    boot_signature = struct.unpack_from("<H", sector, 0x1FE)[0] if source.sector_size >= 512 else 0

    if oem in (b"EXFAT   ", b"FQNX4FS "):
        return False
    if oem == b"NTFS    " and boot_signature == 0xAA55 and ebpb.fats_no == 0 and ebpb.spfat == 0:
        return False

    if 16 < length:
        hpfs = read_sectors(source, partition, 16)
        if hpfs is not None and struct.unpack_from("<II", hpfs, 0) == (HPFS_MAGIC1, HPFS_MAGIC2):
            return False

    if count_bits(ebpb.bps) == 1 and ebpb.spc in VALID_SECTORS_PER_CLUSTER and ebpb.fats_no <= 2:
        total = ebpb.big_sectors if ebpb.sectors == 0 else ebpb.sectors
        if ebpb.spfat == 0 and fat32.signature == 0x29 and fat32.fs_type == b"FAT32   ":
            return True
        if ebpb.spfat == 0 and fat32.signature == 0x28:
            if ebpb.sectors:
                return ebpb.sectors <= length
            if ebpb.big_sectors:
                return ebpb.big_sectors <= length
            return fat32.huge_sectors <= length
        if ebpb.root_ent > 0 and ebpb.sectors <= length and ebpb.spfat > 0 and bytes(sector[0x20:0x26]) == b"VOL_ID":
            return True
        if ebpb.root_ent > 0 and ebpb.spfat > 0 and ebpb.signature in (0x28, 0x29):
            return total <= length
        if ebpb.rsectors < length - 1 and ebpb.root_ent > 0 and ebpb.spfat > 0:
            return total <= length

    apricot_bps = struct.unpack_from("<H", sector, 0x50)[0]
    if (
        count_bits(apricot_bps) == 1
        and sector[0x52] in VALID_SECTORS_PER_CLUSTER
        and struct.unpack_from("<H", sector, 0x53)[0] < length - 1
        and sector[0x55] <= 2
        and struct.unpack_from("<H", sector, 0x56)[0] > 0
        and struct.unpack_from("<H", sector, 0x5B)[0] > 0
        and struct.unpack_from("<H", sector, 0x58)[0] <= length
        and sector[0x0C] == 0
    ):
        return True

    # Dyskietki bez BPB występują wyłącznie jako cały nośnik.
    if partition.start != 0 or len(fat_sector) < 3:
        return False
    return _identify_bpbless(source, partition, fat_sector)


def _identify_bpbless(source: SectorSource, partition: Partition, fat_sector: bytes) -> bool:
    if ((fat_sector[1] << 8) + fat_sector[2]) & 0xFFF < FAT12_RESERVED:
        return False
    fat_id = fat_sector[0]
    geometry = hardcoded_geometry(fat_id, source.sector_count, source.sector_size)
    if geometry is not None:
        bps, _, rsectors, _, _, spfat, _, _ = geometry
        second_fat = (rsectors + spfat) * bps // source.sector_size
    elif fat_id >= 0xE8 and fat_id not in (0xFD, 0xFE, 0xFF):
        second_fat = 2
    else:
        return False
    if second_fat == 0 or second_fat >= partition.length:
        return False
    copy = read_sectors(source, partition, second_fat)
    if copy is None or ((copy[1] << 8) + copy[2]) & 0xFFF < FAT12_RESERVED:
        return False
    return copy[0] == fat_id


# ----------------------------------------------------------------------
# Metadane
# ----------------------------------------------------------------------


def _jump_is_bootable(jump: Optional[bytes], min_near_jump: int) -> bool:
    if not jump or len(jump) < 2:
        return False
    if jump[0] == 0xEB:
        return min_near_jump <= jump[1] < 0x80
    if jump[0] == 0xE9 and len(jump) >= 3:
        target = struct.unpack_from("<H", jump, 1)[0]
        return min_near_jump <= target <= 0x1FC
    return False


def _system_identifier(oem: Optional[bytes], encoding: str) -> Optional[str]:
    if oem is None or len(oem) < 8 or oem[5:8] == b"IHC":
        return None
    if is_printable_ascii(oem):
        return c_string(oem)
    if oem[0] < 0x20 and is_printable_ascii(oem[1:]):
        return c_string(oem, encoding, start=1)
    return None


def _label_from_bpb(label: Optional[bytes], encoding: str) -> Optional[str]:
    if label is None:
        return None
    return decode_text(label, encoding, strip_padding=True).replace("\x00", "")


def _total_sectors(bpb: BiosParameterBlock) -> int:
    return bpb.big_sectors if bpb.sectors == 0 else bpb.sectors


def _fat32_total_sectors(bpb: BiosParameterBlock) -> int:
    if bpb.big_sectors == 0 and bpb.signature == 0x28:
        return bpb.huge_sectors
    return _total_sectors(bpb)


def _decode_fat12(table: bytes, count: int) -> List[int]:
    entries: List[int] = []
    index = 0
    while index + 3 <= len(table) and len(entries) < count:
        entries.append(((table[index + 1] & 0x0F) << 8) + table[index])
        if len(entries) >= count:
            break
        entries.append(((table[index + 1] & 0xF0) >> 4) + (table[index + 2] << 4))
        index += 3
    return entries


def _guess_fat12(
    source: SectorSource,
    partition: Partition,
    bpb: BiosParameterBlock,
    clusters: int,
) -> bool:
    """FAT12 czy FAT16 dla małych wolumenów: walidacja tablicy, potem pole ``fs_type``."""

    fat_bytes = read_partition(source, partition, bpb.rsectors * bpb.bps, bpb.spfat * bpb.bps) or b""
    fat12 = _decode_fat12(fat_bytes, clusters)
    fat12_valid = len(fat12) >= 2 and fat12[0] >= FAT12_RESERVED and fat12[1] >= FAT12_RESERVED
    if fat12_valid:
        fat12_valid = all(entry >= FAT12_RESERVED or entry <= clusters for entry in fat12)

    fat16 = [value for (value,) in struct.iter_unpack("<H", fat_bytes[: len(fat_bytes) & ~1])]
    fat16_valid = len(fat16) >= 2 and fat16[0] >= FAT16_RESERVED and fat16[1] >= 0x3FF0
    if fat16_valid:
        fat16_valid = all(entry >= FAT16_RESERVED or entry <= clusters for entry in fat16)

    if fat12_valid == fat16_valid:
        fat12_valid = bpb.fs_type == b"FAT12   "
        fat16_valid = bpb.fs_type == b"FAT16   "
    return fat12_valid or not fat16_valid


@dataclass(slots=True)
class _LabelEntry:
    name: str
    creation: Optional[datetime]
    modification: Optional[datetime]


def _root_volume_label(root: bytes, encoding: str) -> Optional[_LabelEntry]:
    """Szuka wpisu etykiety woluminu w katalogu głównym."""

    for offset in range(0, len(root) - 31, 32):
        first = root[offset]
        if first < DIRENT_MIN and first != DIRENT_E5:
            continue
        if first in (DIRENT_SUBDIR, DIRENT_DELETED):
            continue
        if root[offset + 0x0B] not in (0x08, 0x28):
            continue
        name = decode_text(root[offset : offset + 11], encoding, strip_padding=True).lstrip()
        caseinfo = root[offset + 0x0C]
        ctime_ms = root[offset + 0x0D]
        ctime, cdate, _, _, mtime, mdate = struct.unpack_from("<HHHHHH", root, offset + 0x0E)
        creation = None
        if ctime > 0 and cdate > 0:
            creation = dos_to_datetime(cdate, ctime, centiseconds=ctime_ms)
        modification = None
        if mtime > 0 and mdate > 0:
            modification = dos_to_datetime(mdate, mtime)
        if name and caseinfo & (CASE_LOWER_BASENAME | CASE_LOWER_EXTENSION) == (CASE_LOWER_BASENAME | CASE_LOWER_EXTENSION):
            name = name.lower()
        return _LabelEntry(name=name, creation=creation, modification=modification)
    return None


def get_information(
    source: SectorSource,
    partition: Partition,
    encoding: str | None = None,
) -> VolumeMetadata:
    """Dekoduje BPB, FSINFO i etykietę katalogu głównego."""

    encoding = resolve_encoding(encoding, DEFAULT_ENCODING)
    boot = read_boot_sectors(source, partition)
    sector = boot[0] if boot is not None else bytes(512)
    detection = detect_bpb_kind(sector, source, partition)
    _logger.debug("fat-bpb-kind", kind=detection.kind.value, partition=partition.name)
    bpb = detection.bpb

    fields: dict = {
        "bootable": detection.bootable,
        "volume_name": None,
        "volume_serial": None,
        "system_identifier": None,
        "dirty": False,
    }
    root_offset = 0
    root_length = 0

    if detection.kind.is_fat32:
        fields["type"] = FatType.FAT_PLUS if bpb.version != 0 else FatType.FAT32
        fields["system_identifier"] = (
            None if bpb.oem_name is None or bpb.oem_name[5:8] == b"IHC" else c_string(bpb.oem_name)
        )
        fields["cluster_size"] = bpb.bps * bpb.spc
        fields["clusters"] = _fat32_total_sectors(bpb) // bpb.spc if bpb.spc else 0
        fields["volume_serial"] = f"{bpb.serial_no:08X}"
        fields["dirty"] = (bpb.flags & 0xF8) == 0 and bool(bpb.flags & 0x01)
        if bpb.signature == 0x29:
            fields["volume_name"] = _label_from_bpb(bpb.volume_label, encoding)
        fields["bootable"] = _jump_is_bootable(bpb.jump, detection.min_boot_near_jump)
        root_offset = ((bpb.root_cluster - 2) * bpb.spc + bpb.big_spfat * bpb.fats_no + bpb.rsectors) * bpb.bps
        root_length = bpb.bps
        fields["free_clusters"] = _fsinfo_free_clusters(source, partition, bpb)
    else:
        fields.update(_small_fat_fields(source, partition, detection, encoding))
        if bpb.bps:
            root_offset = (bpb.spfat * bpb.fats_no + bpb.rsectors) * bpb.bps
            root_length = bpb.root_ent * 32

    if root_length and root_offset < partition.length * source.sector_size:
        root = read_partition(source, partition, root_offset, root_length)
        label = _root_volume_label(root, encoding) if root else None
        if label is not None:
            if label.name:
                fields["volume_name"] = label.name
            fields["creation_date"] = label.creation
            fields["modification_date"] = label.modification

    return VolumeMetadata(**fields)


def _fsinfo_free_clusters(source: SectorSource, partition: Partition, bpb: BiosParameterBlock) -> Optional[int]:
    if bpb.fsinfo_sector >= partition.length:
        return None
    fsinfo = read_sectors(source, partition, bpb.fsinfo_sector)
    if fsinfo is None or len(fsinfo) < 512:
        return None
    signature1 = struct.unpack_from("<I", fsinfo, 0)[0]
    signature2, free_clusters = struct.unpack_from("<II", fsinfo, 0x1E4)
    signature3 = struct.unpack_from("<I", fsinfo, 0x1FC)[0]
    if (signature1, signature2, signature3) != (FSINFO_SIGNATURE1, FSINFO_SIGNATURE2, FSINFO_SIGNATURE3):
        return None
    return free_clusters if free_clusters < 0xFFFFFFFF else None


def _small_fat_fields(
    source: SectorSource,
    partition: Partition,
    detection: BpbDetection,
    encoding: str,
) -> dict:
    bpb = detection.bpb
    fields: dict = {}

    if detection.kind is BpbKind.HUMAN:
        clusters = detection.human_clusters
    else:
        total = _total_sectors(bpb)
        clusters = total // bpb.spc if bpb.spc else total

    if detection.kind in (BpbKind.HARDCODED, BpbKind.MSX, BpbKind.APRICOT):
        is_fat12 = True
    elif clusters < 4089:
        is_fat12 = _guess_fat12(source, partition, bpb, clusters)
    else:
        is_fat12 = False
    fields["type"] = FatType.FAT12 if is_fat12 else FatType.FAT16

    if detection.kind is BpbKind.ATARI:
        serial = detection.atari_serial or b""
        if serial[:3] != b"IHC" and len(serial) == 3:
            fields["volume_serial"] = serial.hex().upper()
        fields["system_identifier"] = c_string(bpb.oem_name or b"") or None
    else:
        fields["system_identifier"] = _system_identifier(bpb.oem_name, encoding)
        if bpb.signature in (0x28, 0x29):
            fields["volume_serial"] = f"{bpb.serial_no:08X}"

    fields["clusters"] = clusters
    fields["cluster_size"] = bpb.bps * bpb.spc

    if bpb.signature in (0x28, 0x29) or detection.andos_oem:
        fields["dirty"] = (bpb.flags & 0xF8) == 0 and bool(bpb.flags & 0x01)
        if bpb.signature == 0x29 or detection.andos_oem:
            fields["volume_name"] = _label_from_bpb(bpb.volume_label, encoding)

    jump = bpb.jump
    if jump is not None and fields["system_identifier"] == "PCX 2.0 ":
        jump = bytes([jump[0], (jump[1] + 8) & 0xFF]) + jump[2:]
    if not detection.bootable and jump is not None:
        fields["bootable"] = _jump_is_bootable(jump, detection.min_boot_near_jump)
    return fields


def compute_layout(source: SectorSource, partition: Partition) -> FatLayout | None:
    """Geometria potrzebna do montowania (położenie FAT, katalogu głównego, danych)."""

    boot = read_boot_sectors(source, partition)
    if boot is None:
        return None
    detection = detect_bpb_kind(boot[0], source, partition)
    bpb = detection.bpb
    if detection.kind is BpbKind.NONE or bpb.bps == 0 or bpb.spc == 0:
        return None

    if detection.kind.is_fat32:
        fat_size = bpb.big_spfat * bpb.bps
        fat_offset = bpb.rsectors * bpb.bps
        data_offset = fat_offset + fat_size * bpb.fats_no
        total = _fat32_total_sectors(bpb)
        return FatLayout(
            fat_type=FatType.FAT32,
            bytes_per_sector=bpb.bps,
            sectors_per_cluster=bpb.spc,
            fat_offset=fat_offset,
            fat_size=fat_size,
            fats=bpb.fats_no,
            root_offset=0,
            root_size=0,
            root_cluster=bpb.root_cluster,
            data_offset=data_offset,
            clusters=max(0, (total * bpb.bps - data_offset) // (bpb.bps * bpb.spc)),
            serial=bpb.serial_no,
            active_fat=bpb.mirror_flags & 0x0F if bpb.mirror_flags & 0x80 else 0,
        )

    info = _small_fat_fields(source, partition, detection, DEFAULT_ENCODING)
    fat_offset = bpb.rsectors * bpb.bps
    fat_size = bpb.spfat * bpb.bps
    root_offset = fat_offset + fat_size * bpb.fats_no
    root_size = bpb.root_ent * 32
    data_offset = root_offset + ((root_size + bpb.bps - 1) // bpb.bps) * bpb.bps
    total = detection.human_clusters * bpb.spc if detection.kind is BpbKind.HUMAN else _total_sectors(bpb)
    return FatLayout(
        fat_type=info["type"],
        bytes_per_sector=bpb.bps,
        sectors_per_cluster=bpb.spc,
        fat_offset=fat_offset,
        fat_size=fat_size,
        fats=bpb.fats_no,
        root_offset=root_offset,
        root_size=root_size,
        root_cluster=0,
        data_offset=data_offset,
        clusters=max(0, (total * bpb.bps - data_offset) // (bpb.bps * bpb.spc)),
        serial=bpb.serial_no if bpb.signature in (0x28, 0x29) else None,
    )


__all__ = [
    "DEFAULT_ENCODING",
    "FatLayout",
    "FatType",
    "compute_layout",
    "get_information",
    "identify",
]
