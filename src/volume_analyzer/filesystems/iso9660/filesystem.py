"""Wtyczka ISO9660 dla rejestru formatów."""

from __future__ import annotations

from volume_analyzer.core.models import Partition, VolumeMetadata
from volume_analyzer.drivers.base import SectorSource
from . import info
from .session import Iso9660Session


class Iso9660Filesystem:
    """ISO9660, High Sierra i CD-i; rozszerzenie Joliet i rekord rozruchowy El Torito."""

    name = "ISO9660 Filesystem"

    def identify(self, source: SectorSource, partition: Partition) -> bool:
        return info.identify(source, partition)

    def get_information(
        self,
        source: SectorSource,
        partition: Partition,
        encoding: str | None = None,
    ) -> VolumeMetadata:
        return info.get_information(source, partition, encoding)

    def create_session(self) -> Iso9660Session:
        return Iso9660Session()


__all__ = ["Iso9660Filesystem"]
