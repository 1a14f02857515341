"""Źródła sektorów dla surowych obrazów oraz buforów w pamięci."""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, List

from structlog import get_logger

from volume_analyzer.core.models import DiskSource, MediaType, SourceType
from .base import DriverCapabilities, DriverError


class MemorySectorSource:
    """Źródło sektorów nad buforem bajtów."""

    def __init__(
        self,
        data: bytes,
        *,
        sector_size: int = 512,
        media_type: MediaType = MediaType.BLOCK_MEDIA,
    ) -> None:
        if sector_size <= 0:
            raise ValueError("Rozmiar sektora musi być dodatni")
        self._data = bytes(data)
        self._sector_size = sector_size
        self._media_type = media_type

    @property
    def sector_size(self) -> int:
        return self._sector_size

    @property
    def sector_count(self) -> int:
        return len(self._data) // self._sector_size

    @property
    def media_type(self) -> MediaType:
        return self._media_type

    def read_sectors(self, start: int, count: int) -> bytes:
        if start < 0 or count < 0 or start + count > self.sector_count:
            raise DriverError(f"Sektory poza zakresem źródła: {start}+{count}")
        offset = start * self._sector_size
        return self._data[offset : offset + count * self._sector_size]


class FileSectorSource:
    """Źródło sektorów czytające bezpośrednio z pliku obrazu."""

    def __init__(
        self,
        path: Path,
        *,
        sector_size: int = 512,
        media_type: MediaType = MediaType.BLOCK_MEDIA,
    ) -> None:
        if sector_size <= 0:
            raise ValueError("Rozmiar sektora musi być dodatni")
        self._path = Path(path)
        self._sector_size = sector_size
        self._media_type = media_type
        try:
            self._handle: BinaryIO | None = self._path.open("rb")
            self._size = self._path.stat().st_size
        except OSError as exc:
            raise DriverError(f"Nie udało się otworzyć obrazu dysku: {self._path}") from exc

    @property
    def sector_size(self) -> int:
        return self._sector_size

    @property
    def sector_count(self) -> int:
        return self._size // self._sector_size

    @property
    def media_type(self) -> MediaType:
        return self._media_type

    def read_sectors(self, start: int, count: int) -> bytes:
        if self._handle is None:
            raise DriverError("Źródło zostało zamknięte")
        if start < 0 or count < 0 or start + count > self.sector_count:
            raise DriverError(f"Sektory poza zakresem źródła: {start}+{count}")
        try:
            self._handle.seek(start * self._sector_size)
            data = self._handle.read(count * self._sector_size)
        except OSError as exc:
            raise DriverError("Nie udało się odczytać danych z obrazu") from exc
        if len(data) != count * self._sector_size:
            raise DriverError("Niepełny odczyt sektorów z obrazu")
        return data

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None


class RawImageDriver:
    """Sterownik dla surowych obrazów (dd/img/iso) bez warstwy kontenera."""

    name = "raw-image"
    capabilities = DriverCapabilities(
        supports_disk_images=True,
        supported_formats=("raw", "img", "dd", "iso", "bin", "ima"),
    )

    def __init__(self, *, image_paths: Iterable[Path] | None = None, sector_size: int = 512) -> None:
        self._logger = get_logger(__name__)
        self._image_paths: List[Path] = [Path(path) for path in image_paths] if image_paths else []
        self._sector_size = sector_size
        self._current: FileSectorSource | None = None

    # ------------------------------------------------------------------
    # Implementacja DataSourceDriver
    # ------------------------------------------------------------------

    def enumerate_sources(self) -> Iterator[DiskSource]:
        for path in self._image_paths:
            yield DiskSource(
                identifier=path.name,
                source_type=SourceType.DISK_IMAGE,
                display_name=path.name,
                path=path,
            )

    def open_source(self, source: DiskSource) -> FileSectorSource:
        if source.source_type is not SourceType.DISK_IMAGE:
            raise DriverError("RawImageDriver obsługuje wyłącznie obrazy dysków")
        if source.path is None:
            raise DriverError("Źródło obrazu dysku wymaga ścieżki do pliku")

        self.close()
        self._logger.info("opening-image", path=str(source.path), sector_size=self._sector_size)
        media_type = MediaType.OPTICAL_DISC if source.path.suffix.lower() == ".iso" else MediaType.BLOCK_MEDIA
        self._current = FileSectorSource(source.path, sector_size=self._sector_size, media_type=media_type)
        return self._current

    def close(self) -> None:
        if self._current is not None:
            self._current.close()
            self._current = None


__all__ = ["FileSectorSource", "MemorySectorSource", "RawImageDriver"]
