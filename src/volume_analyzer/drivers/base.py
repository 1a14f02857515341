"""Interfejs bazowy dla sterowników źródeł sektorów."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Protocol

from volume_analyzer.core.models import DiskSource, MediaType, Partition


class DriverError(RuntimeError):
    """Błąd specyficzny sterowników danych."""


@dataclass(slots=True)
class DriverCapabilities:
    """Opis obsługiwanych funkcji sterownika."""

    supports_disk_images: bool = False
    supports_partition_tables: bool = False
    supported_formats: tuple[str, ...] = ()


class SectorSource(Protocol):
    """Dostęp swobodny do sektorów o stałym rozmiarze (tylko odczyt)."""

    @property
    def sector_size(self) -> int:
        """Rozmiar sektora w bajtach."""

    @property
    def sector_count(self) -> int:
        """Liczba sektorów dostępnych w źródle."""

    @property
    def media_type(self) -> MediaType:
        """Rodzaj nośnika."""

    def read_sectors(self, start: int, count: int) -> bytes:
        """Czyta ``count`` sektorów od sektora ``start``; zgłasza ``DriverError``."""


class PartitionProvider(Protocol):
    """Źródło listy partycji (MBR/GPT/APM/... poza rdzeniem)."""

    def get_all(self, source: SectorSource) -> List[Partition]:
        """Zwraca partycje zdefiniowane na źródle."""


class DataSourceDriver(Protocol):
    """Minimalny interfejs dla implementacji sterowników."""

    name: str
    capabilities: DriverCapabilities

    def enumerate_sources(self) -> Iterable[DiskSource]:
        """Zwraca dostępne źródła danych."""

    def open_source(self, source: DiskSource) -> SectorSource:
        """Otwiera źródło (tylko do odczytu) i zwraca dostęp sektorowy."""

    def close(self) -> None:
        """Zwalnia zasoby sterownika."""


def whole_device_partition(source: SectorSource, *, name: str = "whole device") -> Partition:
    """Syntetyczna partycja obejmująca całe źródło."""

    return Partition(
        name=name,
        start=0,
        length=source.sector_count,
        size=source.sector_count * source.sector_size,
        type_tag="",
        scheme="",
    )


class WholeDevicePartitionProvider:
    """Dostawca zwracający jedną partycję obejmującą całe źródło."""

    def get_all(self, source: SectorSource) -> List[Partition]:
        if source.sector_count <= 0:
            return []
        return [whole_device_partition(source)]


__all__ = [
    "DataSourceDriver",
    "DriverCapabilities",
    "DriverError",
    "PartitionProvider",
    "SectorSource",
    "WholeDevicePartitionProvider",
    "whole_device_partition",
]
