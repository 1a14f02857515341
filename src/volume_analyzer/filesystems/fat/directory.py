"""Dekodowanie wpisów katalogów FAT (nazwy 8.3, LFN, bity wielkości liter NT)."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from volume_analyzer.core.models import FileAttributes
from volume_analyzer.shared.dates import dos_to_datetime
from volume_analyzer.shared.text import c_string

ENTRY_SIZE = 32

ATTR_READ_ONLY = 0x01
ATTR_HIDDEN = 0x02
ATTR_SYSTEM = 0x04
ATTR_VOLUME_LABEL = 0x08
ATTR_SUBDIRECTORY = 0x10
ATTR_ARCHIVE = 0x20
ATTR_DEVICE = 0x40
ATTR_LFN = 0x0F

DIRENT_FINISHED = 0x00
DIRENT_E5 = 0x05
DIRENT_MIN = 0x20
DIRENT_DELETED = 0xE5

LFN_ERASED = 0x80
LFN_LAST = 0x40
LFN_MASK = 0x1F

CASE_LOWER_BASENAME = 0x08
CASE_LOWER_EXTENSION = 0x10

EA_FILE_NAME = "EA DATA. SF"
SLASH_REPLACEMENT = "∕"


@dataclass(slots=True)
class FatDirEntry:
    """Wpis katalogowy z nazwą wybraną dla aktywnej przestrzeni nazw."""

    name: str
    short_name: str
    long_name: Optional[str]
    attributes: int
    start_cluster: int
    size: int
    creation: Optional[datetime]
    access: Optional[datetime]
    modification: Optional[datetime]

    @property
    def is_directory(self) -> bool:
        return bool(self.attributes & ATTR_SUBDIRECTORY)

    def file_attributes(self) -> FileAttributes:
        flags = FileAttributes.NONE
        mapping = (
            (ATTR_READ_ONLY, FileAttributes.READ_ONLY),
            (ATTR_HIDDEN, FileAttributes.HIDDEN),
            (ATTR_SYSTEM, FileAttributes.SYSTEM),
            (ATTR_VOLUME_LABEL, FileAttributes.VOLUME_LABEL),
            (ATTR_SUBDIRECTORY, FileAttributes.DIRECTORY),
            (ATTR_ARCHIVE, FileAttributes.ARCHIVE),
            (ATTR_DEVICE, FileAttributes.DEVICE),
        )
        for bit, flag in mapping:
            if self.attributes & bit:
                flags |= flag
        return flags


def lfn_checksum(short_name: bytes) -> int:
    """Suma kontrolna nazwy 8.3 zapisywana we wpisach LFN."""

    total = 0
    for byte in short_name[:11]:
        total = (((total & 1) << 7) + (total >> 1) + byte) & 0xFF
    return total


def _lfn_fragment(raw: bytes, offset: int) -> bytes:
    return (
        raw[offset + 1 : offset + 11]
        + raw[offset + 14 : offset + 26]
        + raw[offset + 28 : offset + 32]
    )


def parse_directory(
    raw: bytes,
    *,
    encoding: str,
    namespace: str,
    fat32: bool,
    high_cluster: bool,
    debug: bool = False,
) -> List[FatDirEntry]:
    """Przechodzi przez bufor katalogu i zwraca wpisy w kolejności na dysku.

    Pomija wpisy usunięte, ``.`` i ``..``, etykiety wolumenu oraz (poza
    FAT32) plik atrybutów rozszerzonych OS/2.
    """

    use_lfn = namespace in ("lfn", "ecs")
    entries: List[FatDirEntry] = []
    lfn_parts: Optional[List[bytes]] = None
    lfn_checksum_value = 0

    for offset in range(0, len(raw) - ENTRY_SIZE + 1, ENTRY_SIZE):
        first = raw[offset]
        if first == DIRENT_FINISHED:
            break
        attributes = raw[offset + 11]

        if attributes & ATTR_LFN == ATTR_LFN:
            if not use_lfn:
                continue
            sequence = raw[offset]
            if sequence & LFN_ERASED:
                continue
            index = sequence & LFN_MASK
            if sequence & LFN_LAST:
                lfn_parts = [b""] * index
                lfn_checksum_value = raw[offset + 13]
            if lfn_parts is None or raw[offset + 13] != lfn_checksum_value:
                continue
            if 0 < index <= len(lfn_parts):
                lfn_parts[index - 1] = _lfn_fragment(raw, offset)
            continue

        if first < DIRENT_MIN and first != DIRENT_E5:
            continue
        if first == DIRENT_DELETED:
            lfn_parts = None
            continue

        short_raw = bytearray(raw[offset : offset + 11])
        base_text = bytes(short_raw[:8]).decode(encoding, errors="replace").rstrip()
        if base_text in (".", ".."):
            continue
        if attributes & ATTR_VOLUME_LABEL:
            lfn_parts = None
            continue

        long_name = None
        if use_lfn and lfn_parts is not None and lfn_checksum(bytes(short_raw)) == lfn_checksum_value:
            long_name = c_string(b"".join(lfn_parts), "utf-16-le", two_byte=True)
        lfn_parts = None

        if short_raw[0] == DIRENT_E5:
            short_raw[0] = DIRENT_DELETED
        name = bytes(short_raw[:8]).decode(encoding, errors="replace").rstrip()
        extension = bytes(short_raw[8:11]).decode(encoding, errors="replace").rstrip()

        caseinfo = raw[offset + 12]
        if namespace == "nt":
            if caseinfo & CASE_LOWER_EXTENSION:
                extension = extension.lower()
            if caseinfo & CASE_LOWER_BASENAME:
                name = name.lower()

        (
            ctime_ms,
            ctime,
            cdate,
            adate,
            ea_handle,
            mtime,
            mdate,
            start_cluster,
            size,
        ) = struct.unpack_from("<BHHHHHHHI", raw, offset + 13)
        if high_cluster:
            start_cluster |= ea_handle << 16

        if not name and not extension:
            if not debug or (size > 0 and start_cluster == 0):
                continue
            name = ":{EMPTYNAME}:"
            extension = f"{len(entries):03d}"

        short_name = f"{name}.{extension}" if extension else name
        short_name = short_name.replace("/", SLASH_REPLACEMENT)
        if not fat32 and short_name == EA_FILE_NAME and not debug:
            continue

        display = long_name.replace("/", SLASH_REPLACEMENT) if long_name else short_name
        creation = None
        if cdate > 0:
            creation = dos_to_datetime(cdate, ctime)
            if creation is not None and ctime_ms:
                creation += timedelta(milliseconds=ctime_ms * 10)
        entries.append(
            FatDirEntry(
                name=display,
                short_name=short_name,
                long_name=long_name,
                attributes=attributes,
                start_cluster=start_cluster,
                size=size,
                creation=creation,
                access=dos_to_datetime(adate, 0) if adate > 0 else None,
                modification=dos_to_datetime(mdate, mtime) if mdate > 0 else None,
            )
        )
    return entries


def unique_names(entries: List[FatDirEntry]) -> List[Tuple[str, FatDirEntry]]:
    """Pary (nazwa, wpis); duplikaty nazw zachowują pierwszy wpis."""

    seen = set()
    result: List[Tuple[str, FatDirEntry]] = []
    for entry in entries:
        key = entry.name.casefold()
        if key in seen:
            continue
        seen.add(key)
        result.append((entry.name, entry))
    return result


__all__ = [
    "ATTR_SUBDIRECTORY",
    "ENTRY_SIZE",
    "FatDirEntry",
    "lfn_checksum",
    "parse_directory",
    "unique_names",
]
