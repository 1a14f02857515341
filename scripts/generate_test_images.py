"""Generate small disk images for manual runs of the CLI.

Writes one raw image per supported format (the same volumes the test suite
builds in memory) plus ``multi_volume.img``: an MBR disk holding a FAT12
partition and an ext2 partition, suitable for ``--partitions tsk``.

Default output directory:
- test_assets/generated/

Usage (from the project root):
  python -m scripts.generate_test_images
  python -m scripts.generate_test_images --force
"""

from __future__ import annotations

import argparse
import os
import struct
from pathlib import Path

from tests.synthetic_images import ALL_BUILDERS, build_ext2, build_fat12_with_files, build_iso9660

SECTOR_SIZE = 512

_FILE_NAMES = {
    "FAT": "fat12.img",
    "FATX": "fatx.img",
    "EXT2": "ext2.img",
    "HFS_PLUS": "hfsplus.img",
    "AMIGADOS": "amigados.adf",
    "ISO9660": "disc.iso",
    "SYSV": "xenix.img",
    "UFS": "ufs1.img",
    "PRODOS": "prodos.po",
}


def build_mbr(partitions: list[tuple[int, int, int]]) -> bytes:
    """MBR z wpisami ``(start_lba, size_sectors, ptype)``."""

    mbr = bytearray(SECTOR_SIZE)
    chs_max = bytes([0xFE, 0xFF, 0xFF])
    for index, (start_lba, size_sectors, ptype) in enumerate(partitions):
        entry = bytearray(16)
        entry[1:4] = chs_max
        entry[4] = ptype
        entry[5:8] = chs_max
        entry[8:12] = struct.pack("<I", start_lba)
        entry[12:16] = struct.pack("<I", size_sectors)
        offset = 446 + index * 16
        mbr[offset : offset + 16] = entry

    mbr[510:512] = b"\x55\xAA"
    return bytes(mbr)


def build_multi_volume() -> bytes:
    fat = build_fat12_with_files()
    ext2 = build_ext2()
    fat_start = 64
    ext2_start = fat_start + len(fat) // SECTOR_SIZE
    total_sectors = ext2_start + len(ext2) // SECTOR_SIZE + 64

    image = bytearray(total_sectors * SECTOR_SIZE)
    image[0:SECTOR_SIZE] = build_mbr(
        [
            (fat_start, len(fat) // SECTOR_SIZE, 0x01),
            (ext2_start, len(ext2) // SECTOR_SIZE, 0x83),
        ]
    )
    image[fat_start * SECTOR_SIZE : fat_start * SECTOR_SIZE + len(fat)] = fat
    image[ext2_start * SECTOR_SIZE : ext2_start * SECTOR_SIZE + len(ext2)] = ext2
    return bytes(image)


def _write(path: Path, data: bytes, *, force: bool) -> None:
    if path.exists() and not force:
        raise SystemExit(f"Refusing to overwrite existing file: {path} (use --force)")
    with path.open("wb") as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())
    print(f"Generated: {path} ({len(data)} bytes)")


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("test_assets/generated"),
        help="Directory for the generated images.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite output files if they exist.",
    )

    args = parser.parse_args()

    output_dir: Path = args.output_dir
    output_dir.mkdir(parents=True, exist_ok=True)

    for format_name, builder in ALL_BUILDERS.items():
        if format_name == "ISO9660":
            # Obraz płyty z natywnymi sektorami 2048 B (--sector-size 2048).
            data = build_iso9660(joliet_name="Płyta testowa", sector_size=2048)
        else:
            data = builder()
        _write(output_dir / _FILE_NAMES[format_name], data, force=args.force)

    _write(output_dir / "multi_volume.img", build_multi_volume(), force=args.force)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
