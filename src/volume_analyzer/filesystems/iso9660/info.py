"""Rozpoznawanie ISO9660 (także High Sierra i CD-i) oraz metadane wolumenu."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from structlog import get_logger

from volume_analyzer.core.models import Partition, VolumeMetadata
from volume_analyzer.drivers.base import SectorSource
from volume_analyzer.shared.dates import iso9660_decimal_to_datetime
from volume_analyzer.shared.text import c_string, resolve_encoding
from .volume import (
    DESCRIPTORS_START,
    LOGICAL_SECTOR,
    TYPE_TERMINATOR,
    Flavor,
    VolumeDescriptors,
    classify,
    descriptor_type,
    read_block,
    read_descriptors,
    supports_sector_size,
    user_block_count,
)

_logger = get_logger(__name__)

DEFAULT_ENCODING = "ascii"


@dataclass(frozen=True, slots=True)
class DecodedDescriptor:
    """Pola tekstowe i daty deskryptora głównego lub Joliet."""

    system_identifier: str
    volume_identifier: str
    volume_set_identifier: str
    publisher_identifier: str
    data_preparer_identifier: str
    application_identifier: str
    space_size: int
    block_size: int
    creation: Optional[datetime]
    modification: Optional[datetime]
    expiration: Optional[datetime]
    effective: Optional[datetime]


def identify(source: SectorSource, partition: Partition) -> bool:
    if not supports_sector_size(source.sector_size):
        return False
    if user_block_count(source, partition) <= DESCRIPTORS_START + 1:
        return False
    block = read_block(source, partition, DESCRIPTORS_START)
    if block is None:
        return False
    flavor = classify(block)
    if flavor is None:
        return False
    return descriptor_type(block, flavor) != TYPE_TERMINATOR


def _ascii_field(data: bytes, encoding: str) -> str:
    return c_string(data, encoding).rstrip()


def _joliet_field(data: bytes) -> str:
    chunk = bytes(data[: len(data) & ~1])
    return chunk.decode("utf-16-be", errors="replace").replace("\x00", " ").rstrip()


def _hsf_date(raw: bytes) -> Optional[datetime]:
    return iso9660_decimal_to_datetime(bytes(raw[:16]) + b"\x00")


def decode_primary(block: bytes, encoding: str, *, joliet: bool = False) -> DecodedDescriptor:
    """Dekoduje deskryptor główny ISO9660 lub uzupełniający Joliet."""

    text = _joliet_field if joliet else (lambda data: _ascii_field(data, encoding))
    space_size = struct.unpack_from("<I", block, 80)[0]
    block_size = struct.unpack_from("<H", block, 128)[0]
    return DecodedDescriptor(
        system_identifier=text(block[8:40]),
        volume_identifier=text(block[40:72]),
        volume_set_identifier=text(block[190:318]),
        publisher_identifier=text(block[318:446]),
        data_preparer_identifier=text(block[446:574]),
        application_identifier=text(block[574:702]),
        space_size=space_size,
        block_size=block_size,
        creation=iso9660_decimal_to_datetime(block[813:830]),
        modification=iso9660_decimal_to_datetime(block[830:847]),
        expiration=iso9660_decimal_to_datetime(block[847:864]),
        effective=iso9660_decimal_to_datetime(block[864:881]),
    )


def decode_high_sierra(block: bytes, encoding: str) -> DecodedDescriptor:
    space_size = struct.unpack_from("<I", block, 88)[0]
    block_size = struct.unpack_from("<H", block, 136)[0]
    return DecodedDescriptor(
        system_identifier=_ascii_field(block[16:48], encoding),
        volume_identifier=_ascii_field(block[48:80], encoding),
        volume_set_identifier=_ascii_field(block[214:342], encoding),
        publisher_identifier=_ascii_field(block[342:470], encoding),
        data_preparer_identifier=_ascii_field(block[470:598], encoding),
        application_identifier=_ascii_field(block[598:726], encoding),
        space_size=space_size,
        block_size=block_size,
        creation=_hsf_date(block[790:806]),
        modification=_hsf_date(block[806:822]),
        expiration=_hsf_date(block[822:838]),
        effective=_hsf_date(block[838:854]),
    )


def decode_cdi(block: bytes, encoding: str) -> DecodedDescriptor:
    # Deskryptor struktury plików CD-i jest zapisany w porządku big-endian.
    space_size = struct.unpack_from(">I", block, 84)[0]
    block_size = struct.unpack_from(">H", block, 130)[0]
    return DecodedDescriptor(
        system_identifier=_ascii_field(block[8:40], encoding),
        volume_identifier=_ascii_field(block[40:72], encoding),
        volume_set_identifier=_ascii_field(block[190:318], encoding),
        publisher_identifier=_ascii_field(block[318:446], encoding),
        data_preparer_identifier=_ascii_field(block[446:574], encoding),
        application_identifier=_ascii_field(block[574:702], encoding),
        space_size=space_size,
        block_size=block_size,
        creation=iso9660_decimal_to_datetime(block[813:830]),
        modification=iso9660_decimal_to_datetime(block[830:847]),
        expiration=iso9660_decimal_to_datetime(block[847:864]),
        effective=iso9660_decimal_to_datetime(block[864:881]),
    )


def decode_descriptors(descriptors: VolumeDescriptors, encoding: str) -> Optional[DecodedDescriptor]:
    if descriptors.primary is None:
        return None
    if descriptors.flavor is Flavor.HIGH_SIERRA:
        return decode_high_sierra(descriptors.primary, encoding)
    if descriptors.flavor is Flavor.CDI:
        return decode_cdi(descriptors.primary, encoding)
    return decode_primary(descriptors.primary, encoding)


def _prefer(primary: str, joliet: str) -> str:
    """Joliet wygrywa, chyba że jest pusty albo krótszy niż pole główne."""

    if not joliet or len(primary) > len(joliet):
        return primary
    return joliet


def get_information(
    source: SectorSource,
    partition: Partition,
    encoding: str | None = None,
) -> VolumeMetadata:
    encoding = resolve_encoding(encoding, DEFAULT_ENCODING)
    descriptors = read_descriptors(source, partition)
    if descriptors is None:
        return VolumeMetadata(type=Flavor.ISO9660.value)
    decoded = decode_descriptors(descriptors, encoding)
    if decoded is None:
        _logger.debug("iso9660-no-primary-descriptor", flavor=descriptors.flavor.value)
        return VolumeMetadata(type=descriptors.flavor.value, bootable=descriptors.boot is not None)

    system_id = decoded.system_identifier
    volume_name = decoded.volume_identifier
    volume_set = decoded.volume_set_identifier
    publisher = decoded.publisher_identifier
    preparer = decoded.data_preparer_identifier
    application = decoded.application_identifier
    if descriptors.joliet is not None:
        joliet = decode_primary(descriptors.joliet, encoding, joliet=True)
        volume_name = joliet.volume_identifier
        system_id = _prefer(system_id, joliet.system_identifier)
        volume_set = _prefer(volume_set, joliet.volume_set_identifier)
        publisher = _prefer(publisher, joliet.publisher_identifier)
        preparer = _prefer(preparer, joliet.data_preparer_identifier)
        application = _prefer(application, joliet.application_identifier)

    _logger.debug(
        "iso9660-info",
        flavor=descriptors.flavor.value,
        joliet=descriptors.joliet is not None,
        el_torito=descriptors.el_torito,
        partitions=descriptors.partitions,
    )
    return VolumeMetadata(
        type=descriptors.flavor.value,
        clusters=decoded.space_size,
        cluster_size=decoded.block_size or LOGICAL_SECTOR,
        volume_name=volume_name,
        system_identifier=system_id,
        application_identifier=application,
        bootable=descriptors.boot is not None,
        volume_set_identifier=volume_set,
        publisher_identifier=publisher,
        data_preparer_identifier=preparer,
        creation_date=decoded.creation,
        modification_date=decoded.modification,
        expiration_date=decoded.expiration,
        effective_date=decoded.effective,
    )


__all__ = [
    "DEFAULT_ENCODING",
    "DecodedDescriptor",
    "decode_descriptors",
    "decode_primary",
    "get_information",
    "identify",
]
