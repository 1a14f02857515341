"""Testy jednostkowe dla sterowników TSK.

pytsk3 jest podmieniany przez monkeypatch, więc testy nie wymagają
prawdziwych obrazów dysków, a jedynie zainstalowanych powiązań TSK.
"""

from __future__ import annotations

from pathlib import Path

import pytest

pytest.importorskip("pytsk3")

import volume_analyzer.drivers.tsk as tsk_mod  # noqa: E402
from volume_analyzer.core.models import DiskSource, SourceType  # noqa: E402
from volume_analyzer.drivers import MemorySectorSource  # noqa: E402
from volume_analyzer.drivers.base import DriverError  # noqa: E402
from volume_analyzer.drivers.tsk import TskImageDriver, TskPartitionProvider, TskSectorSource  # noqa: E402


class _Img:
    def __init__(self, _path: str = "", size: int = 4096):
        self._size = size
        self.reads: list[tuple[int, int]] = []

    def get_size(self) -> int:
        return self._size

    def read(self, offset: int, size: int) -> bytes:
        self.reads.append((offset, size))
        return b"\x00" * int(size)


class _Part:
    def __init__(self, start: int, length: int, desc: bytes, flags: int = 0):
        self.start = start
        self.len = length
        self.desc = desc
        self.flags = flags


class _VolumeInfo:
    def __init__(self, _img):
        self.info = type("Info", (), {"block_size": 512, "vstype": "dos"})()
        self._parts = [
            _Part(0, 1, b"Primary Table (#0)", flags=0x04),
            _Part(1, 3, b"DOS FAT12 (0x01)"),
            _Part(4, 0, b"Unallocated"),
            _Part(4, 4, b"Linux (0x83)"),
        ]

    def __iter__(self):
        return iter(self._parts)


def test_image_driver_rejects_missing_path() -> None:
    driver = TskImageDriver(image_paths=[])
    source = DiskSource(identifier="img", source_type=SourceType.DISK_IMAGE, display_name="img", path=None)

    with pytest.raises(DriverError):
        driver.open_source(source)


def test_image_driver_rejects_memory_sources() -> None:
    source = DiskSource(identifier="mem", source_type=SourceType.MEMORY, display_name="mem")

    with pytest.raises(DriverError):
        TskImageDriver().open_source(source)


def test_image_driver_opens_sector_source(monkeypatch, tmp_path: Path) -> None:
    image = tmp_path / "a.img"
    image.write_bytes(b"x" * 4096)
    monkeypatch.setattr(tsk_mod.pytsk3, "Img_Info", _Img)

    driver = TskImageDriver(image_paths=[image])
    source = driver.open_source(next(driver.enumerate_sources()))

    assert isinstance(source, TskSectorSource)
    assert source.sector_count == 8
    assert source.read_sectors(2, 2) == bytes(1024)
    assert source.img.reads == [(1024, 1024)]
    with pytest.raises(DriverError):
        source.read_sectors(7, 2)


def test_partition_provider_skips_meta_and_empty_entries(monkeypatch) -> None:
    monkeypatch.setattr(tsk_mod.pytsk3, "Volume_Info", _VolumeInfo)
    monkeypatch.setattr(tsk_mod.pytsk3, "TSK_VS_PART_FLAG_META", 0x04, raising=False)
    source = TskSectorSource(_Img(size=8 * 512))

    partitions = TskPartitionProvider().get_all(source)

    assert [(item.start, item.length) for item in partitions] == [(1, 3), (4, 4)]
    assert partitions[0].type_tag == "DOS FAT12 (0x01)"
    assert partitions[1].size == 4 * 512
    assert partitions[1].sequence == 3
    assert partitions[1].scheme == "dos"


def test_partition_provider_without_partition_table(monkeypatch) -> None:
    class _NoTable:
        def __init__(self, _img):
            raise RuntimeError("no partition table")

    monkeypatch.setattr(tsk_mod.pytsk3, "Volume_Info", _NoTable)

    assert TskPartitionProvider().get_all(TskSectorSource(_Img())) == []


def test_partition_provider_requires_tsk_source() -> None:
    with pytest.raises(DriverError):
        TskPartitionProvider().get_all(MemorySectorSource(bytes(512)))
