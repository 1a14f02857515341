"""Modele danych używane w rdzeniu aplikacji."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, Flag, auto
from pathlib import Path, PurePosixPath
from typing import Generic, Iterable, List, Optional, TypeVar, TYPE_CHECKING

if TYPE_CHECKING:
    from volume_analyzer.metadata.scanner import MetadataResult


T = TypeVar("T")


class SourceType(str, Enum):
    """Rodzaj analizowanego źródła danych."""

    DISK_IMAGE = "disk_image"
    MEMORY = "memory"


class MediaType(str, Enum):
    """Ogólna klasa nośnika udostępnianego przez źródło sektorów."""

    BLOCK_MEDIA = "block_media"
    OPTICAL_DISC = "optical_disc"
    UNKNOWN = "unknown"


class ErrorNumber(str, Enum):
    """Kody wyniku operacji warstwy plików."""

    NO_ERROR = "no_error"
    NO_SUCH_FILE = "no_such_file"
    IS_DIRECTORY = "is_directory"
    NOT_DIRECTORY = "not_directory"
    INVALID_ARGUMENT = "invalid_argument"
    NOT_SUPPORTED = "not_supported"
    OUT_OF_RANGE = "out_of_range"
    NO_SUCH_EXTENDED_ATTRIBUTE = "no_such_extended_attribute"
    ACCESS_DENIED = "access_denied"
    IO_ERROR = "io_error"
    INVALID_FILESYSTEM = "invalid_filesystem"


class FileAttributes(Flag):
    """Atrybuty wpisu katalogowego w postaci zbioru flag."""

    NONE = 0
    ARCHIVE = auto()
    HIDDEN = auto()
    READ_ONLY = auto()
    SYSTEM = auto()
    DIRECTORY = auto()
    FILE = auto()
    SYMLINK = auto()
    VOLUME_LABEL = auto()
    DEVICE = auto()
    EXTENTS = auto()
    ALIAS = auto()


@dataclass(slots=True)
class DiskSource:
    """Opis źródła danych (obraz dysku)."""

    identifier: str
    source_type: SourceType
    display_name: str
    path: Optional[Path] = None


@dataclass(frozen=True, slots=True)
class Partition:
    """Nazwane okno (w sektorach) nad źródłem sektorów.

    Wartość niezmienna, tworzona przez warstwę tablic partycji. ``type_tag``
    jest jedynie podpowiedzią dla wywołującego i nie bierze udziału w
    rozpoznawaniu formatu.
    """

    name: str
    start: int
    length: int
    size: int
    type_tag: str = ""
    sequence: int = 0
    scheme: str = ""

    @property
    def end(self) -> int:
        """Ostatni sektor partycji (włącznie)."""

        return self.start + self.length - 1


@dataclass(frozen=True, slots=True)
class VolumeMetadata:
    """Kanoniczny opis wolumenu zwracany przez ``get_information``.

    ``None`` oznacza brak pola w formacie, ``""`` pole obecne, ale puste.
    """

    type: str
    clusters: Optional[int] = None
    cluster_size: Optional[int] = None
    volume_name: Optional[str] = None
    volume_serial: Optional[str] = None
    system_identifier: Optional[str] = None
    application_identifier: Optional[str] = None
    bootable: bool = False
    volume_set_identifier: Optional[str] = None
    publisher_identifier: Optional[str] = None
    data_preparer_identifier: Optional[str] = None
    creation_date: Optional[datetime] = None
    modification_date: Optional[datetime] = None
    backup_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    effective_date: Optional[datetime] = None
    files: Optional[int] = None
    free_clusters: Optional[int] = None
    dirty: bool = False


@dataclass(slots=True)
class FileEntryInfo:
    """Wynik operacji ``stat``."""

    attributes: FileAttributes = FileAttributes.NONE
    length: int = 0
    blocks: int = 0
    block_size: int = 0
    inode: int = 0
    links: int = 1
    access_time: Optional[datetime] = None
    creation_time: Optional[datetime] = None
    last_write_time: Optional[datetime] = None
    status_change_time: Optional[datetime] = None
    backup_time: Optional[datetime] = None
    mode: Optional[int] = None
    uid: Optional[int] = None
    gid: Optional[int] = None
    device_no: Optional[int] = None


@dataclass(slots=True)
class FileSystemInfo:
    """Wynik operacji ``stat_fs``."""

    type: str
    blocks: int = 0
    free_blocks: int = 0
    files: int = 0
    free_files: int = 0
    filename_length: int = 0
    id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class FsResult(Generic[T]):
    """Kod błędu wraz z (opcjonalną) wartością operacji."""

    error: ErrorNumber
    value: Optional[T] = None

    @property
    def ok(self) -> bool:
        return self.error is ErrorNumber.NO_ERROR

    @classmethod
    def success(cls, value: T) -> "FsResult[T]":
        return cls(ErrorNumber.NO_ERROR, value)

    @classmethod
    def failure(cls, error: ErrorNumber) -> "FsResult[T]":
        return cls(error, None)


@dataclass(slots=True)
class FileMetadata:
    """Metadane pojedynczego pliku zebrane podczas przeglądania wolumenu."""

    name: str
    path: PurePosixPath
    size: int
    created_at: Optional[str] = None
    modified_at: Optional[str] = None
    accessed_at: Optional[str] = None
    attributes: tuple[str, ...] = ()


@dataclass(slots=True)
class DirectoryNode:
    """Węzeł drzewa katalogów."""

    name: str
    path: PurePosixPath
    created_at: Optional[str] = None
    modified_at: Optional[str] = None
    accessed_at: Optional[str] = None
    attributes: tuple[str, ...] = ()
    files: List[FileMetadata] = field(default_factory=list)
    subdirectories: List["DirectoryNode"] = field(default_factory=list)

    def iter_files(self) -> Iterable[FileMetadata]:
        """Iteruje po wszystkich plikach w węźle (bez rekurencji stosu wywołań)."""

        pending: List[DirectoryNode] = [self]
        while pending:
            node = pending.pop()
            yield from node.files
            pending.extend(reversed(node.subdirectories))


@dataclass(slots=True)
class PartitionAnalysis:
    """Wynik analizy pojedynczej partycji."""

    partition: Partition
    formats: List[str] = field(default_factory=list)
    metadata: Optional[VolumeMetadata] = None
    tree: "MetadataResult | None" = None
    error: Optional[str] = None


@dataclass(slots=True)
class AnalysisResult:
    """Podsumowanie całej analizy źródła danych."""

    source: DiskSource
    partitions: List[PartitionAnalysis] = field(default_factory=list)

    def total_files(self) -> int:
        """Łączna liczba plików w analizie."""

        return sum(entry.tree.total_files for entry in self.partitions if entry.tree)

    def total_directories(self) -> int:
        """Łączna liczba katalogów w analizie."""

        return sum(entry.tree.total_directories for entry in self.partitions if entry.tree)

    def recognized(self) -> List[PartitionAnalysis]:
        """Partycje, dla których rozpoznano co najmniej jeden format."""

        return [entry for entry in self.partitions if entry.formats]
