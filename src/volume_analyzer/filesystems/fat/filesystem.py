"""Wtyczka FAT dla rejestru formatów."""

from __future__ import annotations

from volume_analyzer.core.models import Partition, VolumeMetadata
from volume_analyzer.drivers.base import SectorSource
from . import info
from .session import FatSession


class FatFilesystem:
    """FAT12, FAT16, FAT32 i FAT+ wraz z odmianami BPB (Atari, MSX, Human68k, Apricot)."""

    name = "Microsoft File Allocation Table"

    def identify(self, source: SectorSource, partition: Partition) -> bool:
        return info.identify(source, partition)

    def get_information(
        self,
        source: SectorSource,
        partition: Partition,
        encoding: str | None = None,
    ) -> VolumeMetadata:
        return info.get_information(source, partition, encoding)

    def create_session(self) -> FatSession:
        return FatSession()


__all__ = ["FatFilesystem"]
