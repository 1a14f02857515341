"""Rekordy katalogów ISO9660 / High Sierra."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from volume_analyzer.core.models import FileAttributes
from volume_analyzer.shared.dates import iso9660_decimal_to_datetime, iso9660_record_to_datetime

FLAG_HIDDEN = 0x01
FLAG_DIRECTORY = 0x02
FLAG_ASSOCIATED = 0x04
FLAG_MULTI_EXTENT = 0x80

RECORD_MIN_LENGTH = 34
VERSION_SUFFIX = ";1"

# Bity uprawnień rekordu EA -> bity trybu uniksowego.
_PERMISSION_BITS = (
    (0x0400, 0o010),
    (0x0100, 0o040),
    (0x0040, 0o100),
    (0x0010, 0o400),
    (0x4000, 0o001),
    (0x1000, 0o004),
)


@dataclass(slots=True)
class Extent:
    """Ciągły obszar danych: pierwszy blok (po rekordzie EA) i długość w bajtach."""

    block: int
    size: int


@dataclass(slots=True)
class IsoDirEntry:
    name: str
    flags: int
    xattr_length: int
    extent: int
    size: int
    date: Optional[datetime]
    extents: List[Extent] = field(default_factory=list)

    @property
    def is_directory(self) -> bool:
        return bool(self.flags & FLAG_DIRECTORY)

    def file_attributes(self) -> FileAttributes:
        attributes = FileAttributes.NONE
        if self.is_directory:
            attributes |= FileAttributes.DIRECTORY
        if self.flags & FLAG_HIDDEN:
            attributes |= FileAttributes.HIDDEN
        return attributes


def parse_record(
    raw: bytes,
    offset: int = 0,
    *,
    joliet: bool,
    high_sierra: bool,
    encoding: str,
) -> Tuple[IsoDirEntry, bytes]:
    """Dekoduje rekord pod ``offset``; zwraca wpis i surowe bajty nazwy."""

    xattr_length = raw[offset + 1]
    extent = struct.unpack_from("<I", raw, offset + 2)[0]
    size = struct.unpack_from("<I", raw, offset + 10)[0]
    if high_sierra:
        date = iso9660_record_to_datetime(bytes(raw[offset + 18 : offset + 24]) + b"\x00")
        flags = raw[offset + 24]
    else:
        date = iso9660_record_to_datetime(raw[offset + 18 : offset + 25])
        flags = raw[offset + 25]
    name_length = raw[offset + 32]
    name_bytes = bytes(raw[offset + 33 : offset + 33 + name_length])
    if joliet:
        name = name_bytes[: len(name_bytes) & ~1].decode("utf-16-be", errors="replace")
    else:
        name = name_bytes.decode(encoding, errors="replace")
    entry = IsoDirEntry(
        name=name,
        flags=flags,
        xattr_length=xattr_length,
        extent=extent,
        size=size,
        date=date,
        extents=[Extent(extent + xattr_length, size)],
    )
    return entry, name_bytes


def clean_name(name: str) -> str:
    """Usuwa końcową kropkę z nazw bez rozszerzenia (``FILE.;1`` -> ``FILE;1``)."""

    if name.endswith("." + VERSION_SUFFIX):
        name = name[: -len(VERSION_SUFFIX) - 1] + VERSION_SUFFIX
    if name.endswith("."):
        name = name[:-1]
    return name


def parse_directory(
    raw: bytes,
    *,
    joliet: bool,
    high_sierra: bool,
    encoding: str,
    block_size: int,
) -> List[IsoDirEntry]:
    """Rekordy katalogu bez ``.`` i ``..``; rekordy wieloobszarowe są scalane."""

    entries: Dict[str, IsoDirEntry] = {}
    offset = 0
    while offset < len(raw):
        length = raw[offset]
        if length == 0:
            # Rekordy nie przekraczają granicy bloku; zero dopełnia resztę bloku.
            offset = (offset // block_size + 1) * block_size
            continue
        if length < RECORD_MIN_LENGTH or offset + length > len(raw):
            break
        entry, name_bytes = parse_record(raw, offset, joliet=joliet, high_sierra=high_sierra, encoding=encoding)
        offset += length
        if len(name_bytes) == 1 and name_bytes[0] in (0, 1):
            continue
        if entry.flags & FLAG_ASSOCIATED:
            continue
        entry.name = clean_name(entry.name)
        previous = entries.get(entry.name)
        if previous is not None and previous.flags & FLAG_MULTI_EXTENT:
            previous.extents.extend(entry.extents)
            previous.size += entry.size
            previous.flags = (previous.flags & ~FLAG_MULTI_EXTENT) | (entry.flags & FLAG_MULTI_EXTENT)
            continue
        entries[entry.name] = entry
    return list(entries.values())


def parse_extended_attributes(raw: bytes) -> Tuple[int, int, int, Optional[datetime], Optional[datetime]]:
    """Właściciel, grupa, tryb uniksowy oraz daty z rekordu atrybutów rozszerzonych."""

    owner = struct.unpack_from("<H", raw, 0)[0]
    group = struct.unpack_from("<H", raw, 4)[0]
    permissions = struct.unpack_from("<H", raw, 8)[0]
    mode = 0
    for bit, value in _PERMISSION_BITS:
        if permissions & bit:
            mode |= value
    return (
        owner,
        group,
        mode,
        iso9660_decimal_to_datetime(raw[10:27]),
        iso9660_decimal_to_datetime(raw[27:44]),
    )


__all__ = [
    "Extent",
    "FLAG_DIRECTORY",
    "FLAG_HIDDEN",
    "IsoDirEntry",
    "VERSION_SUFFIX",
    "clean_name",
    "parse_directory",
    "parse_extended_attributes",
    "parse_record",
]
