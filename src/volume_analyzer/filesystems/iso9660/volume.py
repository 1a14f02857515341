"""Dostęp do bloków logicznych ISO9660 i odczyt deskryptorów wolumenu.

Obrazy „gotowane” (sektory 512/1024/2048 bajtów) adresowane są bajtowo;
obrazy surowe (2336/2352 bajtów na sektor) niosą 2048 bajtów danych
użytkownika z przesunięciem nagłówka.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from structlog import get_logger

from volume_analyzer.core.models import Partition
from volume_analyzer.drivers.base import DriverError, SectorSource
from volume_analyzer.filesystems.base import read_partition_strict

_logger = get_logger(__name__)

LOGICAL_SECTOR = 2048
DESCRIPTORS_START = 16
MAX_DESCRIPTORS = 64

ISO_MAGIC = b"CD001"
HIGH_SIERRA_MAGIC = b"CDROM"
CDI_MAGIC = b"CD-I "
EL_TORITO_SYSTEM = b"EL TORITO SPECIFICATION"
JOLIET_ESCAPES = (b"%/@", b"%/C", b"%/E")

TYPE_BOOT = 0
TYPE_PRIMARY = 1
TYPE_SUPPLEMENTARY = 2
TYPE_PARTITION = 3
TYPE_TERMINATOR = 255

_RAW_USER_OFFSET = {2336: 8, 2352: 16}


class Flavor(str, Enum):
    """Odmiana standardu rozpoznana po magii deskryptora."""

    ISO9660 = "ISO9660"
    HIGH_SIERRA = "High Sierra Format"
    CDI = "CD-i"


def supports_sector_size(sector_size: int) -> bool:
    return sector_size in _RAW_USER_OFFSET or (sector_size > 0 and LOGICAL_SECTOR % sector_size == 0)


def user_block_count(source: SectorSource, partition: Partition) -> int:
    """Liczba 2048-bajtowych bloków danych użytkownika w partycji."""

    if source.sector_size in _RAW_USER_OFFSET:
        return partition.length
    return partition.length * source.sector_size // LOGICAL_SECTOR


def read_user_bytes(source: SectorSource, partition: Partition, offset: int, length: int) -> bytes:
    """Czyta dane użytkownika od bajtu ``offset``; zgłasza ``DriverError``."""

    skip = _RAW_USER_OFFSET.get(source.sector_size)
    if skip is None:
        return read_partition_strict(source, partition, offset, length)
    if offset < 0 or length < 0:
        raise DriverError(f"Nieprawidłowy zakres odczytu: {offset}+{length}")
    if length == 0:
        return b""
    first = offset // LOGICAL_SECTOR
    last = (offset + length - 1) // LOGICAL_SECTOR
    if last >= partition.length:
        raise DriverError(f"Odczyt poza partycją: {offset}+{length}")
    sector_size = source.sector_size
    raw = source.read_sectors(partition.start + first, last - first + 1)
    data = b"".join(
        raw[index * sector_size + skip : index * sector_size + skip + LOGICAL_SECTOR]
        for index in range(last - first + 1)
    )
    start = offset - first * LOGICAL_SECTOR
    chunk = data[start : start + length]
    if len(chunk) != length:
        raise DriverError("Niepełny odczyt sektorów partycji")
    return chunk


def read_block(source: SectorSource, partition: Partition, block: int) -> Optional[bytes]:
    """Jeden blok 2048 bajtów lub ``None`` przy błędzie odczytu."""

    try:
        return read_user_bytes(source, partition, block * LOGICAL_SECTOR, LOGICAL_SECTOR)
    except DriverError as exc:
        _logger.debug("iso9660-read-failed", block=block, error=str(exc))
        return None


def source_sector(source: SectorSource, partition: Partition, offset: int) -> int:
    """Bezwzględny sektor źródła zawierający bajt danych ``offset``."""

    if source.sector_size in _RAW_USER_OFFSET:
        return partition.start + offset // LOGICAL_SECTOR
    return partition.start + offset // source.sector_size


@dataclass(slots=True)
class VolumeDescriptors:
    """Deskryptory zebrane z sekwencji od sektora 16."""

    flavor: Flavor
    primary: Optional[bytes] = None
    joliet: Optional[bytes] = None
    boot: Optional[bytes] = None
    el_torito: bool = False
    partitions: int = 0


def classify(block: bytes) -> Optional[Flavor]:
    if block[1:6] == ISO_MAGIC:
        return Flavor.ISO9660
    if block[9:14] == HIGH_SIERRA_MAGIC:
        return Flavor.HIGH_SIERRA
    if block[1:6] == CDI_MAGIC:
        return Flavor.CDI
    return None


def descriptor_type(block: bytes, flavor: Flavor) -> int:
    """Bajt typu deskryptora; w High Sierra leży 8 bajtów dalej."""

    return block[8 if flavor is Flavor.HIGH_SIERRA else 0]


def is_joliet(block: bytes) -> bool:
    return block[6] == 1 and any(block[88:120].startswith(escape) for escape in JOLIET_ESCAPES)


def read_descriptors(source: SectorSource, partition: Partition) -> Optional[VolumeDescriptors]:
    """Przegląda deskryptory aż do terminatora lub niepoprawnej magii."""

    total = user_block_count(source, partition)
    descriptors: Optional[VolumeDescriptors] = None
    for index in range(MAX_DESCRIPTORS):
        block_number = DESCRIPTORS_START + index
        if block_number >= total:
            break
        block = read_block(source, partition, block_number)
        if block is None:
            break
        flavor = classify(block)
        if flavor is None:
            break
        if descriptors is None:
            descriptors = VolumeDescriptors(flavor=flavor)
        vd_type = descriptor_type(block, flavor)
        _logger.debug("iso9660-descriptor", block=block_number, type=vd_type, flavor=flavor.value)
        if vd_type == TYPE_TERMINATOR:
            break
        if vd_type == TYPE_BOOT:
            descriptors.boot = block
            descriptors.el_torito = block[7:39].startswith(EL_TORITO_SYSTEM)
        elif vd_type == TYPE_PRIMARY and descriptors.primary is None:
            descriptors.primary = block
        elif vd_type == TYPE_SUPPLEMENTARY and flavor is Flavor.ISO9660 and is_joliet(block):
            if descriptors.joliet is None:
                descriptors.joliet = block
        elif vd_type == TYPE_PARTITION:
            descriptors.partitions += 1
    return descriptors


__all__ = [
    "Flavor",
    "LOGICAL_SECTOR",
    "VolumeDescriptors",
    "classify",
    "descriptor_type",
    "is_joliet",
    "read_block",
    "read_descriptors",
    "read_user_bytes",
    "source_sector",
    "supports_sector_size",
    "user_block_count",
]
