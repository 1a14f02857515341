"""Budowanie małych, syntetycznych obrazów dysków w pamięci.

Każdy builder zwraca ``bytes`` z minimalnym, ale spójnym wolumenem danego
formatu. Pola zapisujemy bezpośrednio przez ``struct.pack_into``, tak jak
skrypt ``scripts/generate_test_images.py`` zapisujący te same obrazy na dysk.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Sequence, Tuple

SECTOR_SIZE = 512


# ----------------------------------------------------------------------
# Daty
# ----------------------------------------------------------------------


def dos_date(value: datetime, *, year_base: int = 1980) -> Tuple[int, int]:
    """Para (data, czas) w formacie MS-DOS."""

    date = ((value.year - year_base) << 9) | (value.month << 5) | value.day
    time = (value.hour << 11) | (value.minute << 5) | (value.second // 2)
    return date, time


# ----------------------------------------------------------------------
# FAT12
# ----------------------------------------------------------------------

FAT12_STAMP = datetime(1994, 3, 14, 10, 20, 30)


@dataclass(slots=True)
class FatFile:
    name: str
    ext: str
    data: bytes = b""
    attributes: int = 0x20
    long_name: str | None = None


@dataclass(slots=True)
class FatDir:
    name: str
    files: List[FatFile] = field(default_factory=list)


def _short_name(name: str, ext: str) -> bytes:
    return name.upper().ljust(8).encode("ascii")[:8] + ext.upper().ljust(3).encode("ascii")[:3]


def lfn_checksum(short_name: bytes) -> int:
    total = 0
    for byte in short_name[:11]:
        total = (((total & 1) << 7) + (total >> 1) + byte) & 0xFF
    return total


def _lfn_entries(long_name: str, short_name: bytes) -> List[bytes]:
    units = [ord(char) for char in long_name] + [0]
    while len(units) % 13:
        units.append(0xFFFF)
    chunks = [units[index : index + 13] for index in range(0, len(units), 13)]
    checksum = lfn_checksum(short_name)
    entries: List[bytes] = []
    for number, chunk in enumerate(chunks, start=1):
        raw = bytearray(32)
        raw[0] = number | (0x40 if number == len(chunks) else 0)
        struct.pack_into("<5H", raw, 1, *chunk[0:5])
        raw[11] = 0x0F
        raw[13] = checksum
        struct.pack_into("<6H", raw, 14, *chunk[5:11])
        struct.pack_into("<2H", raw, 28, *chunk[11:13])
        entries.append(bytes(raw))
    return list(reversed(entries))


def _dir_entry(short_name: bytes, attributes: int, cluster: int, size: int, stamp: datetime) -> bytes:
    raw = bytearray(32)
    raw[0:11] = short_name
    raw[11] = attributes
    date, time = dos_date(stamp)
    struct.pack_into("<BHHHHHHHI", raw, 13, 0, time, date, date, 0, time, date, cluster, size)
    return bytes(raw)


def _set_fat12(table: bytearray, cluster: int, value: int) -> None:
    offset = cluster + cluster // 2
    current = table[offset] | (table[offset + 1] << 8)
    if cluster & 1:
        current = (current & 0x000F) | (value << 4)
    else:
        current = (current & 0xF000) | (value & 0x0FFF)
    table[offset] = current & 0xFF
    table[offset + 1] = (current >> 8) & 0xFF


def build_fat12_floppy(
    *,
    oem: bytes = b"IBM  3.3",
    files: Sequence[FatFile] = (),
    directories: Sequence[FatDir] = (),
    label: str | None = None,
) -> bytes:
    """Dyskietka 720 x 512 B, 1 sektor na klaster, BPB DOS 3.3 bez EBPB."""

    total_sectors = 720
    reserved, fats, spfat, root_entries = 1, 2, 2, 112
    image = bytearray(total_sectors * SECTOR_SIZE)

    boot = bytearray(SECTOR_SIZE)
    boot[0:3] = b"\xEB\x3C\x90"
    boot[3:11] = oem
    struct.pack_into(
        "<HBHBHHBHHHI",
        boot,
        0x0B,
        SECTOR_SIZE,
        1,
        reserved,
        fats,
        root_entries,
        total_sectors,
        0xFD,
        spfat,
        9,
        2,
        0,
    )
    boot[0x1FE:0x200] = b"\x55\xAA"
    image[0:SECTOR_SIZE] = boot

    table = bytearray(spfat * SECTOR_SIZE)
    table[0:3] = b"\xFD\xFF\xFF"
    root_offset = (reserved + fats * spfat) * SECTOR_SIZE
    data_offset = root_offset + root_entries * 32
    next_cluster = 2

    def allocate(data: bytes) -> int:
        nonlocal next_cluster
        if not data:
            return 0
        count = (len(data) + SECTOR_SIZE - 1) // SECTOR_SIZE
        first = next_cluster
        for index in range(count):
            cluster = first + index
            _set_fat12(table, cluster, 0xFFF if index == count - 1 else cluster + 1)
            start = data_offset + (cluster - 2) * SECTOR_SIZE
            chunk = data[index * SECTOR_SIZE : (index + 1) * SECTOR_SIZE]
            image[start : start + len(chunk)] = chunk
        next_cluster += count
        return first

    def file_entries(items: Sequence[FatFile]) -> bytes:
        raw = bytearray()
        for item in items:
            short = _short_name(item.name, item.ext)
            if item.long_name:
                for lfn in _lfn_entries(item.long_name, short):
                    raw += lfn
            raw += _dir_entry(short, item.attributes, allocate(item.data), len(item.data), FAT12_STAMP)
        return bytes(raw)

    root = bytearray()
    if label is not None:
        root += _dir_entry(label.ljust(11).encode("ascii")[:11], 0x08, 0, 0, FAT12_STAMP)
    for directory in directories:
        cluster = next_cluster
        next_cluster += 1
        _set_fat12(table, cluster, 0xFFF)
        body = bytearray()
        body += _dir_entry(b".          ", 0x10, cluster, 0, FAT12_STAMP)
        body += _dir_entry(b"..         ", 0x10, 0, 0, FAT12_STAMP)
        body += file_entries(directory.files)
        start = data_offset + (cluster - 2) * SECTOR_SIZE
        image[start : start + len(body)] = body
        root += _dir_entry(_short_name(directory.name, ""), 0x10, cluster, 0, FAT12_STAMP)
    root += file_entries(files)
    image[root_offset : root_offset + len(root)] = root

    for copy in range(fats):
        start = (reserved + copy * spfat) * SECTOR_SIZE
        image[start : start + len(table)] = table
    return bytes(image)


def build_fat12_with_files() -> bytes:
    return build_fat12_floppy(
        files=[
            FatFile("README", "TXT", b"R" * 600),
            FatFile("LONGFI~1", "TXT", b"hello world", long_name="Long File Name.txt"),
        ],
        directories=[FatDir("DOCS", [FatFile("NOTE", "TXT", b"note\n", attributes=0x21)])],
    )


# ----------------------------------------------------------------------
# FATX
# ----------------------------------------------------------------------

FATX_STAMP = datetime(2004, 5, 17, 12, 30, 20)
FATX_TITLE_DIRECTORY = "49470015"
FATX_TITLE_CHILDREN = ("TitleImage.xbx", "TitleMeta.xbx", "SaveImage.xbx", "Saves")
FATX_TITLE_IMAGE_LENGTH = 10240
FATX_CLUSTER_SIZE = 512


def _fatx_entry(
    name: str,
    attributes: int,
    cluster: int,
    size: int,
    stamp: datetime,
    *,
    big_endian: bool,
    year_base: int,
) -> bytes:
    order = ">" if big_endian else "<"
    raw = bytearray(64)
    encoded = name.encode("ascii")
    raw[0] = len(encoded)
    raw[1] = attributes
    raw[2 : 2 + len(encoded)] = encoded
    date, time = dos_date(stamp, year_base=year_base)
    struct.pack_into(order + "IIHHHHHH", raw, 44, cluster, size, time, date, time, date, time, date)
    return bytes(raw)


def build_fatx(*, big_endian: bool = False, label: str = "XBOX", volume_id: int = 0x12345678) -> bytes:
    """Wolumen FATX (lub XTAF) z katalogiem tytułu ``49470015`` i czterema wpisami."""

    order = ">" if big_endian else "<"
    year_base = 1980 if big_endian else 2000
    cluster_size = FATX_CLUSTER_SIZE
    image = bytearray(0x1000 + 0x1000 + 40 * cluster_size)

    image[0:4] = b"XTAF" if big_endian else b"FATX"
    struct.pack_into(order + "III", image, 4, volume_id, 1, 1)
    codec = "utf-16-be" if big_endian else "utf-16-le"
    encoded_label = label.encode(codec)
    image[0x12 : 0x12 + len(encoded_label)] = encoded_label

    table = bytearray(0x1000)

    def set_entry(cluster: int, value: int) -> None:
        struct.pack_into(order + "H", table, cluster * 2, value)

    set_entry(0, 0xFFF8)
    data_offset = 0x2000

    def cluster_offset(cluster: int) -> int:
        return data_offset + (cluster - 1) * cluster_size

    def write_chain(first: int, data: bytes) -> None:
        count = max(1, (len(data) + cluster_size - 1) // cluster_size)
        for index in range(count):
            cluster = first + index
            set_entry(cluster, 0xFFFF if index == count - 1 else cluster + 1)
            chunk = data[index * cluster_size : (index + 1) * cluster_size]
            start = cluster_offset(cluster)
            image[start : start + len(chunk)] = chunk

    def directory(entries: Sequence[bytes]) -> bytes:
        body = b"".join(entries)
        return body + b"\xFF" * (cluster_size - len(body))

    def entry(name: str, attributes: int, cluster: int, size: int) -> bytes:
        return _fatx_entry(name, attributes, cluster, size, FATX_STAMP, big_endian=big_endian, year_base=year_base)

    title_image = bytes(index & 0xFF for index in range(FATX_TITLE_IMAGE_LENGTH))
    title_meta = b"[Default]\r\nTitleName=Test\r\n"
    write_chain(1, directory([entry(FATX_TITLE_DIRECTORY, 0x10, 2, 0)]))
    write_chain(
        2,
        directory(
            [
                entry("TitleImage.xbx", 0x00, 3, len(title_image)),
                entry("TitleMeta.xbx", 0x00, 23, len(title_meta)),
                entry("SaveImage.xbx", 0x00, 0, 0),
                entry("Saves", 0x10, 24, 0),
            ]
        ),
    )
    write_chain(3, title_image)
    write_chain(23, title_meta)
    write_chain(24, directory([]))
    image[0x1000:0x2000] = table
    return bytes(image)


# ----------------------------------------------------------------------
# ext2
# ----------------------------------------------------------------------

EXT2_UUID = bytes(range(1, 17))


def build_ext2(
    *,
    label: bytes = b"rootfs",
    compat: int = 0,
    incompat: int = 0,
    ro_compat: int = 0,
    state: int = 1,
    uuid: bytes = EXT2_UUID,
) -> bytes:
    image = bytearray(64 * 1024)
    sb = bytearray(1024)
    struct.pack_into("<IIIII", sb, 0, 128, 64, 0, 20, 100)
    struct.pack_into("<I", sb, 0x18, 0)
    struct.pack_into("<I", sb, 0x30, 1_600_000_000)
    struct.pack_into("<HH", sb, 0x38, 0xEF53, state)
    struct.pack_into("<I", sb, 0x48, 0)
    struct.pack_into("<III", sb, 0x5C, compat, incompat, ro_compat)
    sb[0x68:0x78] = uuid
    sb[0x78 : 0x78 + len(label)] = label
    struct.pack_into("<I", sb, 0x108, 1_500_000_000)
    image[1024:2048] = sb
    return bytes(image)


# ----------------------------------------------------------------------
# HFS+
# ----------------------------------------------------------------------

MAC_EPOCH_OFFSET = 2_082_844_800


def build_hfsplus(*, volume_name: str = "Macintosh HD", hfsx: bool = False, serial: Tuple[int, int] = (0, 0)) -> bytes:
    block_size = 512
    image = bytearray(32 * block_size)
    header = bytearray(512)
    struct.pack_into(
        ">HHI4sIIIIIIIIII",
        header,
        0,
        0x4858 if hfsx else 0x482B,
        5 if hfsx else 4,
        0x100,
        b"10.0",
        0,
        3_000_000_000,
        3_100_000_000,
        0,
        0,
        42,
        7,
        block_size,
        32,
        10,
    )
    finder = [0, 0, 0, 0, 0, 0, serial[0], serial[1]]
    struct.pack_into(">8I", header, 0x50, *finder)
    # Widelec katalogu: dwa bloki od bloku 8.
    struct.pack_into(">Q", header, 0x110, 2 * block_size)
    struct.pack_into(">II", header, 0x110 + 16, 8, 2)
    image[0x400:0x600] = header

    header_node = bytearray(block_size)
    header_node[8] = 1
    struct.pack_into(">H", header_node, 10, 3)
    struct.pack_into(">HIIII", header_node, 14, 1, 1, 1, 1, 1)
    struct.pack_into(">H", header_node, 32, block_size)
    image[8 * block_size : 9 * block_size] = header_node

    leaf = bytearray(block_size)
    leaf[8] = 0xFF
    leaf[9] = 1
    struct.pack_into(">H", leaf, 10, 1)
    name = volume_name.encode("utf-16-be")
    record = 14
    struct.pack_into(">HIH", leaf, record, 6 + len(name), 1, len(volume_name))
    leaf[record + 8 : record + 8 + len(name)] = name
    struct.pack_into(">H", leaf, block_size - 2, record)
    image[9 * block_size : 10 * block_size] = leaf
    return bytes(image)


# ----------------------------------------------------------------------
# AmigaDOS
# ----------------------------------------------------------------------


def _amiga_checksum(data: bytes) -> int:
    total = sum(struct.unpack(f">{len(data) // 4}I", data))
    return (-total) & 0xFFFFFFFF


def _amiga_boot_checksum(data: bytes) -> int:
    total = 0
    for (word,) in struct.iter_unpack(">I", data):
        total += word
        if total > 0xFFFFFFFF:
            total = (total + 1) & 0xFFFFFFFF
    return ~total & 0xFFFFFFFF


def build_amigados(*, name: bytes = b"Workbench", dos_type: int = 1, sectors: int = 40) -> bytes:
    image = bytearray(sectors * SECTOR_SIZE)
    root_pointer = sectors // 2

    boot = bytearray(1024)
    boot[0:4] = b"DOS" + bytes([dos_type])
    struct.pack_into(">I", boot, 8, root_pointer)
    struct.pack_into(">I", boot, 4, _amiga_boot_checksum(bytes(boot)))
    image[0:1024] = boot

    root = bytearray(SECTOR_SIZE)
    struct.pack_into(">I", root, 0, 2)
    struct.pack_into(">I", root, 0x0C, 72)
    tail = SECTOR_SIZE - 200
    struct.pack_into(">I", root, tail, 0xFFFFFFFF)
    root[tail + 120] = len(name)
    root[tail + 121 : tail + 121 + len(name)] = name
    struct.pack_into(">6I", root, tail + 160, 8000, 600, 100, 7000, 60, 0)
    struct.pack_into(">I", root, SECTOR_SIZE - 4, 1)
    struct.pack_into(">I", root, 20, _amiga_checksum(bytes(root)))
    image[root_pointer * SECTOR_SIZE : (root_pointer + 1) * SECTOR_SIZE] = root
    return bytes(image)


# ----------------------------------------------------------------------
# ISO9660
# ----------------------------------------------------------------------

ISO_BLOCK = 2048
ISO_ROOT_BLOCK = 20
ISO_DOCS_BLOCK = 21
ISO_README_BLOCK = 22
ISO_NOTE_BLOCK = 23
ISO_BLOCKS = 24
ISO_README = b"ISO readme contents\n" * 5
ISO_NOTE = b"note\n"
ISO_STAMP = (120, 1, 2, 3, 4, 5, 0)


def _both16(value: int) -> bytes:
    return struct.pack("<H", value) + struct.pack(">H", value)


def _both32(value: int) -> bytes:
    return struct.pack("<I", value) + struct.pack(">I", value)


def iso_record(name: bytes, extent: int, size: int, flags: int, *, xattr_length: int = 0) -> bytes:
    length = 33 + len(name) + (1 if len(name) % 2 == 0 else 0)
    raw = bytearray(length)
    raw[0] = length
    raw[1] = xattr_length
    raw[2:10] = _both32(extent)
    raw[10:18] = _both32(size)
    raw[18:25] = bytes(ISO_STAMP)
    raw[25] = flags
    raw[28:32] = _both16(1)
    raw[32] = len(name)
    raw[33 : 33 + len(name)] = name
    return bytes(raw)


def _iso_text(value: str, width: int) -> bytes:
    return value.ljust(width).encode("ascii")[:width]


def _joliet_text(value: str, width: int) -> bytes:
    encoded = value.encode("utf-16-be")
    return (encoded + " ".encode("utf-16-be") * width)[:width]


def _iso_date(text: str) -> bytes:
    return text.encode("ascii") + b"\x00"


def _descriptor(kind: int, *, joliet_name: str | None = None, volume_name: str = "TESTDISC") -> bytearray:
    block = bytearray(ISO_BLOCK)
    block[0] = kind
    block[1:6] = b"CD001"
    block[6] = 1
    if joliet_name is None:
        block[8:40] = _iso_text("LINUX", 32)
        block[40:72] = _iso_text(volume_name, 32)
        for start, end in ((190, 318), (318, 446), (446, 574)):
            block[start:end] = _iso_text("", end - start)
        block[574:702] = _iso_text("MKISOFS", 128)
    else:
        block[8:40] = _joliet_text("", 32)
        block[40:72] = _joliet_text(joliet_name, 32)
        block[88:91] = b"%/E"
        for start, end in ((190, 318), (318, 446), (446, 574), (574, 702)):
            block[start:end] = _joliet_text("", end - start)
    block[80:88] = _both32(ISO_BLOCKS)
    block[120:124] = _both16(1)
    block[124:128] = _both16(1)
    block[128:132] = _both16(ISO_BLOCK)
    block[156:190] = iso_record(b"\x00", ISO_ROOT_BLOCK, ISO_BLOCK, 0x02)
    block[813:830] = _iso_date("2020010112000000")
    block[830:847] = _iso_date("2021060708091000")
    block[847:864] = _iso_date("0000000000000000")
    block[864:881] = _iso_date("0000000000000000")
    return block


def build_iso9660(*, joliet_name: str | None = None, boot_record: bool = False, sector_size: int = 512) -> bytes:
    """Obraz ISO9660: katalog główny z ``DOCS/NOTE.TXT`` i ``README.TXT``."""

    image = bytearray(ISO_BLOCKS * ISO_BLOCK)
    descriptors: List[bytearray] = []
    if boot_record:
        boot = bytearray(ISO_BLOCK)
        boot[0] = 0
        boot[1:6] = b"CD001"
        boot[6] = 1
        boot[7:30] = b"EL TORITO SPECIFICATION"
        descriptors.append(boot)
    descriptors.append(_descriptor(1))
    if joliet_name is not None:
        descriptors.append(_descriptor(2, joliet_name=joliet_name))
    terminator = bytearray(ISO_BLOCK)
    terminator[0] = 255
    terminator[1:6] = b"CD001"
    terminator[6] = 1
    descriptors.append(terminator)
    assert 16 + len(descriptors) <= ISO_ROOT_BLOCK
    for index, block in enumerate(descriptors):
        start = (16 + index) * ISO_BLOCK
        image[start : start + ISO_BLOCK] = block

    root = (
        iso_record(b"\x00", ISO_ROOT_BLOCK, ISO_BLOCK, 0x02)
        + iso_record(b"\x01", ISO_ROOT_BLOCK, ISO_BLOCK, 0x02)
        + iso_record(b"DOCS", ISO_DOCS_BLOCK, ISO_BLOCK, 0x02)
        + iso_record(b"README.TXT;1", ISO_README_BLOCK, len(ISO_README), 0x00)
    )
    docs = (
        iso_record(b"\x00", ISO_DOCS_BLOCK, ISO_BLOCK, 0x02)
        + iso_record(b"\x01", ISO_ROOT_BLOCK, ISO_BLOCK, 0x02)
        + iso_record(b"NOTE.TXT;1", ISO_NOTE_BLOCK, len(ISO_NOTE), 0x00)
    )
    for block, payload in (
        (ISO_ROOT_BLOCK, root),
        (ISO_DOCS_BLOCK, docs),
        (ISO_README_BLOCK, ISO_README),
        (ISO_NOTE_BLOCK, ISO_NOTE),
    ):
        start = block * ISO_BLOCK
        image[start : start + len(payload)] = payload
    return bytes(image)



def build_high_sierra(*, terminator_first: bool = False) -> bytes:
    """Obraz High Sierra: typ deskryptora leży w bajcie 8, a bajty 0-7 to numer bloku."""

    image = bytearray(ISO_BLOCKS * ISO_BLOCK)
    kinds = [255] if terminator_first else [1, 255]
    for index, kind in enumerate(kinds):
        block = bytearray(ISO_BLOCK)
        block[0:8] = _both32(16 + index)
        block[8] = kind
        block[9:14] = b"CDROM"
        block[14] = 1
        if kind == 1:
            block[16:48] = _iso_text("HSFSYS", 32)
            block[48:80] = _iso_text("HSFDISC", 32)
            block[88:96] = _both32(ISO_BLOCKS)
            block[136:140] = _both16(ISO_BLOCK)
        start = (16 + index) * ISO_BLOCK
        image[start : start + ISO_BLOCK] = block
    return bytes(image)


# ----------------------------------------------------------------------
# System V / XENIX
# ----------------------------------------------------------------------


def build_xenix(*, fname: bytes = b"XENIX", clean: int = 0x46) -> bytes:
    image = bytearray(64 * SECTOR_SIZE)
    sb = bytearray(1024)
    struct.pack_into("<H", sb, 0, 0x10)
    struct.pack_into("<I", sb, 0x002, 30)
    struct.pack_into("<i", sb, 0x266, 600_000_000)
    struct.pack_into("<I", sb, 0x26A, 12)
    sb[0x278 : 0x278 + len(fname)] = fname
    sb[0x284] = clean
    struct.pack_into("<I", sb, 0x3F8, 0x002B5544)
    struct.pack_into("<I", sb, 0x3FC, 2)
    image[1024:2048] = sb
    return bytes(image)


# ----------------------------------------------------------------------
# UFS
# ----------------------------------------------------------------------


def build_ufs1(*, big_endian: bool = False) -> bytes:
    order = ">" if big_endian else "<"
    image = bytearray(128 * SECTOR_SIZE)
    sb = bytearray(0x600)
    struct.pack_into(order + "i", sb, 0x20, 1_000_000_000)
    struct.pack_into(order + "i", sb, 0x24, 64)
    struct.pack_into(order + "i", sb, 0x34, 1024)
    struct.pack_into(order + "i", sb, 0xC4, 17)
    struct.pack_into(order + "I", sb, 0x55C, 0x00011954)
    image[8192 : 8192 + len(sb)] = sb
    return bytes(image)


# ----------------------------------------------------------------------
# ProDOS
# ----------------------------------------------------------------------


def build_prodos(*, name: bytes = b"TESTDISK", blocks: int = 16) -> bytes:
    image = bytearray(blocks * 512)
    key = bytearray(512)
    struct.pack_into("<HH", key, 0, 0, 3)
    key[4] = 0xF0 | len(name)
    key[5 : 5 + len(name)] = name
    # 1999-12-31 23:59 -> rok 99
    struct.pack_into("<HH", key, 0x1C, (99 << 9) | (12 << 5) | 31, (23 << 8) | 59)
    key[0x23] = 0x27
    key[0x24] = 0x0D
    struct.pack_into("<HHH", key, 0x25, 3, 6, blocks)
    image[1024:1536] = key
    return bytes(image)


ALL_BUILDERS: Dict[str, Callable[[], bytes]] = {
    "FAT": build_fat12_floppy,
    "FATX": build_fatx,
    "EXT2": build_ext2,
    "HFS_PLUS": build_hfsplus,
    "AMIGADOS": build_amigados,
    "ISO9660": build_iso9660,
    "SYSV": build_xenix,
    "UFS": build_ufs1,
    "PRODOS": build_prodos,
}


def build_fat12_with_looping_directories() -> bytes:
    """Dyskietka, w której dwa podkatalogi wskazują klaster 0 (czyli katalog główny)."""

    image = bytearray(build_fat12_floppy())
    root_offset = 5 * SECTOR_SIZE
    for index, name in enumerate((b"LOOP1      ", b"LOOP2      ")):
        start = root_offset + index * 32
        image[start : start + 32] = _dir_entry(name, 0x10, 0, 0, FAT12_STAMP)
    return bytes(image)


def patch_fat12_entry(image: bytearray, cluster: int, value: int) -> None:
    """Zmienia wpis ``cluster`` w obu kopiach FAT obrazu z :func:`build_fat12_floppy`."""

    for copy in range(2):
        start = (1 + copy * 2) * SECTOR_SIZE
        table = bytearray(image[start : start + 2 * SECTOR_SIZE])
        _set_fat12(table, cluster, value)
        image[start : start + len(table)] = table
