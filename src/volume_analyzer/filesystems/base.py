"""Kontrakt wtyczek systemów plików oraz pomocnicze operacje odczytu."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol

from structlog import get_logger

from volume_analyzer.core.models import (
    ErrorNumber,
    FileEntryInfo,
    FileSystemInfo,
    FsResult,
    Partition,
    VolumeMetadata,
)
from volume_analyzer.drivers.base import DriverError, SectorSource

_logger = get_logger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


class FilesystemError(RuntimeError):
    """Błąd użycia rejestru lub wtyczki systemu plików."""


class CorruptStructureError(FilesystemError):
    """Uszkodzona struktura na dysku (pętla w łańcuchu, wskaźnik poza zakresem)."""


class Filesystem(Protocol):
    """Wtyczka rozpoznająca format i odczytująca metadane wolumenu."""

    name: str

    def identify(self, source: SectorSource, partition: Partition) -> bool:
        """Czy partycja zawiera ten format; nigdy nie zgłasza wyjątków."""

    def get_information(
        self,
        source: SectorSource,
        partition: Partition,
        encoding: str | None = None,
    ) -> VolumeMetadata:
        """Dekoduje superblok do kanonicznego ``VolumeMetadata``."""


class ReadOnlyFilesystem(Protocol):
    """Sesja tylko do odczytu po zamontowaniu wolumenu."""

    def mount(
        self,
        source: SectorSource,
        partition: Partition,
        encoding: str | None = None,
        options: Mapping[str, str] | None = None,
        namespace: str | None = None,
    ) -> ErrorNumber:
        """Montuje wolumen."""

    def unmount(self) -> ErrorNumber:
        """Zwalnia wszystkie struktury sesji."""

    def stat(self, path: str) -> FsResult[FileEntryInfo]:
        """Zwraca informacje o wpisie."""

    def open_dir(self, path: str) -> FsResult["DirNode"]:
        """Otwiera katalog do iteracji."""

    def read_dir(self, node: "DirNode") -> FsResult[Optional[str]]:
        """Zwraca kolejną nazwę lub ``None`` na końcu katalogu."""

    def close_dir(self, node: "DirNode") -> ErrorNumber:
        """Zamyka uchwyt katalogu."""

    def open_file(self, path: str) -> FsResult["FileNode"]:
        """Otwiera plik do odczytu."""

    def read_file(self, node: "FileNode", length: int) -> FsResult[bytes]:
        """Czyta od bieżącej pozycji uchwytu."""

    def close_file(self, node: "FileNode") -> ErrorNumber:
        """Zamyka uchwyt pliku."""

    def map_block(self, path: str, block: int) -> FsResult[int]:
        """Tłumaczy blok logiczny pliku na blok fizyczny."""

    def list_xattr(self, path: str) -> FsResult[List[str]]:
        """Zwraca nazwy atrybutów rozszerzonych."""

    def get_xattr(self, path: str, name: str) -> FsResult[bytes]:
        """Zwraca zawartość atrybutu rozszerzonego."""

    def read_link(self, path: str) -> FsResult[str]:
        """Zwraca cel dowiązania symbolicznego."""

    def stat_fs(self) -> FsResult[FileSystemInfo]:
        """Zwraca informacje o całym systemie plików."""


@dataclass(slots=True)
class MountOptions:
    """Opcje aktywnego montowania."""

    encoding: str
    namespace: str | None = None
    debug: bool = False
    extra: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        *,
        encoding: str,
        namespace: str | None,
        options: Mapping[str, str] | None,
    ) -> "MountOptions":
        values = {str(key).lower(): str(value) for key, value in (options or {}).items()}
        debug = values.pop("debug", "false").strip().lower() in _TRUE_VALUES
        return cls(encoding=encoding, namespace=namespace, debug=debug, extra=values)


@dataclass(slots=True)
class DirNode:
    """Kursor katalogu wydany przez sesję."""

    path: str
    generation: int
    names: List[str]
    position: int = 0
    closed: bool = False


@dataclass(slots=True)
class FileNode:
    """Kursor pliku wydany przez sesję; ``offset`` to bieżąca pozycja odczytu."""

    path: str
    generation: int
    entry: Any
    length: int
    offset: int = 0
    closed: bool = False


def split_path(path: str) -> List[str]:
    """Dzieli ścieżkę na składniki; ``""`` i ``"/"`` oznaczają katalog główny."""

    return [part for part in path.split("/") if part]


def read_partition(
    source: SectorSource,
    partition: Partition,
    offset: int,
    length: int,
) -> bytes | None:
    """Czyta ``length`` bajtów od bajtu ``offset`` partycji.

    Zwraca ``None``, gdy zakres wychodzi poza partycję lub źródło zgłosi błąd;
    detektory traktują to jako odrzucenie formatu.
    """

    try:
        return read_partition_strict(source, partition, offset, length)
    except DriverError as exc:
        _logger.debug("partition-read-failed", offset=offset, length=length, error=str(exc))
        return None


def read_partition_strict(
    source: SectorSource,
    partition: Partition,
    offset: int,
    length: int,
) -> bytes:
    """Jak :func:`read_partition`, ale zgłasza ``DriverError``."""

    if offset < 0 or length < 0:
        raise DriverError(f"Nieprawidłowy zakres odczytu: {offset}+{length}")
    if length == 0:
        return b""
    sector_size = source.sector_size
    if offset + length > partition.length * sector_size:
        raise DriverError(f"Odczyt poza partycją: {offset}+{length}")
    first = offset // sector_size
    last = (offset + length - 1) // sector_size
    data = source.read_sectors(partition.start + first, last - first + 1)
    skip = offset - first * sector_size
    chunk = bytes(data[skip : skip + length])
    if len(chunk) != length:
        raise DriverError("Niepełny odczyt sektorów partycji")
    return chunk


def read_sectors(source: SectorSource, partition: Partition, sector: int, count: int = 1) -> bytes | None:
    """Czyta sektory względem początku partycji; ``None`` przy błędzie."""

    if sector < 0 or count <= 0 or sector + count > partition.length:
        return None
    try:
        return source.read_sectors(partition.start + sector, count)
    except DriverError as exc:
        _logger.debug("partition-read-failed", sector=sector, count=count, error=str(exc))
        return None


__all__ = [
    "CorruptStructureError",
    "DirNode",
    "FileNode",
    "Filesystem",
    "FilesystemError",
    "MountOptions",
    "ReadOnlyFilesystem",
    "read_partition",
    "read_partition_strict",
    "read_sectors",
    "split_path",
]
