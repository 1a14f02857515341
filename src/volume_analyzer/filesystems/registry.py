"""Zamknięty rejestr formatów systemów plików."""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Sequence

from structlog import get_logger

from volume_analyzer.core.models import Partition, VolumeMetadata
from volume_analyzer.drivers.base import SectorSource
from .amigados import AmigaDosFilesystem
from .base import Filesystem, FilesystemError
from .ext2 import Ext2Filesystem
from .fat import FatFilesystem
from .fatx import FatxFilesystem
from .hfsplus import HfsPlusFilesystem
from .iso9660 import Iso9660Filesystem
from .prodos import ProdosFilesystem
from .session import ReadOnlySession
from .sysv import SysvFilesystem
from .ufs import UfsFilesystem

_logger = get_logger(__name__)


class FormatId(str, Enum):
    """Identyfikatory formatów w kolejności rejestracji."""

    FAT = "FAT"
    FATX = "FATX"
    EXT2 = "EXT2"
    HFS_PLUS = "HFS_PLUS"
    AMIGADOS = "AMIGADOS"
    ISO9660 = "ISO9660"
    SYSV = "SYSV"
    UFS = "UFS"
    PRODOS = "PRODOS"


_PLUGINS: Dict[FormatId, Filesystem] = {
    FormatId.FAT: FatFilesystem(),
    FormatId.FATX: FatxFilesystem(),
    FormatId.EXT2: Ext2Filesystem(),
    FormatId.HFS_PLUS: HfsPlusFilesystem(),
    FormatId.AMIGADOS: AmigaDosFilesystem(),
    FormatId.ISO9660: Iso9660Filesystem(),
    FormatId.SYSV: SysvFilesystem(),
    FormatId.UFS: UfsFilesystem(),
    FormatId.PRODOS: ProdosFilesystem(),
}


def plugin(format_id: FormatId) -> Filesystem:
    return _PLUGINS[FormatId(format_id)]


def supports_session(format_id: FormatId) -> bool:
    return hasattr(plugin(format_id), "create_session")


def identify(format_id: FormatId, source: SectorSource, partition: Partition) -> bool:
    """Pojedynczy detektor; wyjątek detektora liczy się jako odrzucenie."""

    candidate = plugin(format_id)
    try:
        return bool(candidate.identify(source, partition))
    except Exception as exc:
        _logger.warning(
            "identify-failed",
            format=FormatId(format_id).value,
            partition=partition.name,
            error=str(exc),
        )
        return False


def identify_all(source: SectorSource, partition: Partition) -> List[FormatId]:
    """Wszystkie formaty akceptujące partycję, w kolejności rejestracji."""

    matches = [format_id for format_id in FormatId if identify(format_id, source, partition)]
    _logger.debug("identify-all", partition=partition.name, matches=[match.value for match in matches])
    return matches


def last_match(matches: Sequence[FormatId]) -> Optional[FormatId]:
    """Polityka „ostatnie dopasowanie wygrywa”."""

    return matches[-1] if matches else None


def get_information(
    format_id: FormatId,
    source: SectorSource,
    partition: Partition,
    encoding: str | None = None,
) -> VolumeMetadata:
    return plugin(format_id).get_information(source, partition, encoding)


def create_session(format_id: FormatId) -> ReadOnlySession:
    """Nowa sesja tylko do odczytu dla formatu."""

    candidate = plugin(format_id)
    factory = getattr(candidate, "create_session", None)
    if factory is None:
        raise FilesystemError(f"Format {FormatId(format_id).value} nie obsługuje montowania")
    return factory()


__all__ = [
    "FormatId",
    "create_session",
    "get_information",
    "identify",
    "identify_all",
    "last_match",
    "plugin",
    "supports_session",
]
