"""Wspólne fixture'y testów."""

from __future__ import annotations

from typing import Callable

import pytest

from volume_analyzer.core.models import MediaType, Partition
from volume_analyzer.drivers import DriverError, MemorySectorSource, whole_device_partition


class FlakySectorSource(MemorySectorSource):
    """Źródło w pamięci, które po przełączeniu ``failing`` zgłasza błędy odczytu."""

    def __init__(self, data: bytes, *, sector_size: int = 512) -> None:
        super().__init__(data, sector_size=sector_size)
        self.failing = False

    def read_sectors(self, start: int, count: int) -> bytes:
        if self.failing:
            raise DriverError("symulowany błąd nośnika")
        return super().read_sectors(start, count)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("VOLUMEANALYZER_DISABLE_DOTENV", "1")
    monkeypatch.setenv("VOLUMEANALYZER_ERROR_DIR", str(tmp_path / "error_reports"))
    for key in ("VOLUMEANALYZER_MAX_DEPTH", "VOLUMEANALYZER_ENCODING", "VOLUMEANALYZER_LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def memory_image() -> Callable[..., tuple[MemorySectorSource, Partition]]:
    """Zwraca fabrykę (źródło, partycja całego nośnika) dla obrazu w pamięci."""

    def _factory(
        data: bytes,
        *,
        sector_size: int = 512,
        media_type: MediaType = MediaType.BLOCK_MEDIA,
    ) -> tuple[MemorySectorSource, Partition]:
        source = MemorySectorSource(data, sector_size=sector_size, media_type=media_type)
        return source, whole_device_partition(source)

    return _factory


@pytest.fixture
def flaky_image() -> Callable[[bytes], tuple[FlakySectorSource, Partition]]:
    def _factory(data: bytes) -> tuple[FlakySectorSource, Partition]:
        source = FlakySectorSource(data)
        return source, whole_device_partition(source)

    return _factory
