"""Sterownik wykorzystujący pytsk3 do pracy z obrazami dysków."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator, List

import pytsk3
from structlog import get_logger

from volume_analyzer.core.models import DiskSource, MediaType, Partition, SourceType
from .base import DriverCapabilities, DriverError, SectorSource


class TskSectorSource:
    """Źródło sektorów nad ``pytsk3.Img_Info`` (obsługuje kontenery znane TSK)."""

    def __init__(self, img: pytsk3.Img_Info, *, sector_size: int = 512) -> None:
        self._img = img
        self._sector_size = sector_size
        try:
            self._size = int(img.get_size())
        except (IOError, RuntimeError) as exc:  # pragma: no cover - zależne od środowiska
            raise DriverError("Nie udało się ustalić rozmiaru obrazu") from exc

    @property
    def img(self) -> pytsk3.Img_Info:
        return self._img

    @property
    def sector_size(self) -> int:
        return self._sector_size

    @property
    def sector_count(self) -> int:
        return self._size // self._sector_size

    @property
    def media_type(self) -> MediaType:
        return MediaType.BLOCK_MEDIA

    def read_sectors(self, start: int, count: int) -> bytes:
        if start < 0 or count < 0 or start + count > self.sector_count:
            raise DriverError(f"Sektory poza zakresem źródła: {start}+{count}")
        try:
            return self._img.read(start * self._sector_size, count * self._sector_size)
        except (IOError, RuntimeError) as exc:  # pragma: no cover - zależne od środowiska
            raise DriverError("Nie udało się odczytać danych z obrazu") from exc


class TskPartitionProvider:
    """Lista partycji odczytana przez ``pytsk3.Volume_Info``."""

    def __init__(self) -> None:
        self._logger = get_logger(__name__)

    def get_all(self, source: SectorSource) -> List[Partition]:
        if not isinstance(source, TskSectorSource):
            raise DriverError("TskPartitionProvider wymaga źródła TskSectorSource")

        try:
            volume_info = pytsk3.Volume_Info(source.img)
        except (IOError, RuntimeError) as exc:
            self._logger.info("no-partition-table", error=str(exc))
            return []

        block_size = volume_info.info.block_size
        partitions: List[Partition] = []
        for index, part in enumerate(volume_info):
            if part.len <= 0:
                continue  # pomijamy puste wpisy
            flags = getattr(part, "flags", 0)
            if flags & getattr(pytsk3, "TSK_VS_PART_FLAG_META", 0):
                continue  # wpisy opisujące samą tablicę partycji

            desc = part.desc.decode("utf-8", "replace") if isinstance(part.desc, bytes) else str(part.desc)
            start = part.start * block_size // source.sector_size
            length = part.len * block_size // source.sector_size
            partitions.append(
                Partition(
                    name=f"partition {index}",
                    start=start,
                    length=length,
                    size=part.len * block_size,
                    type_tag=desc,
                    sequence=index,
                    scheme=str(getattr(volume_info.info, "vstype", "")),
                )
            )
        return partitions


class TskImageDriver:
    """Sterownik bazujący na The Sleuth Kit (pytsk3) dla obrazów dysków."""

    name = "tsk-image"
    capabilities = DriverCapabilities(
        supports_disk_images=True,
        supports_partition_tables=True,
        supported_formats=("raw", "img", "dd", "001", "e01", "vhd", "vhdx"),
    )

    def __init__(self, *, image_paths: Iterable[Path] | None = None, sector_size: int = 512) -> None:
        self._logger = get_logger(__name__)
        self._image_paths: List[Path] = [Path(path) for path in image_paths] if image_paths else []
        self._sector_size = sector_size
        self._img: pytsk3.Img_Info | None = None

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

    def open_source(self, source: DiskSource) -> TskSectorSource:
        if source.source_type is not SourceType.DISK_IMAGE:
            raise DriverError("TskImageDriver obsługuje wyłącznie obrazy dysków")
        if source.path is None:
            raise DriverError("Źródło obrazu dysku wymaga ścieżki do pliku")

        self._logger.info("opening-image", path=str(source.path))
        try:
            self._img = pytsk3.Img_Info(str(source.path))
        except (OSError, RuntimeError, IOError) as exc:  # pragma: no cover - zależne od środowiska
            self.close()
            raise DriverError(f"Nie udało się otworzyć obrazu dysku: {source.path}") from exc
        return TskSectorSource(self._img, sector_size=self._sector_size)

    def close(self) -> None:
        self._img = None


__all__ = ["TskImageDriver", "TskPartitionProvider", "TskSectorSource"]
