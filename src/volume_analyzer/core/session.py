"""Obsługa cyklu życia sesji analitycznej."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

from .models import DiskSource, Partition

if TYPE_CHECKING:
    from volume_analyzer.drivers.base import SectorSource


@dataclass(slots=True)
class AnalysisSession:
    """Otwarte źródło sektorów wraz z listą jego partycji."""

    source: DiskSource
    sectors: "SectorSource"
    partitions: List[Partition] = field(default_factory=list)

    def add_partition(self, partition: Partition) -> None:
        """Dodaje partycję do sesji, unikając duplikatów nazw."""

        if partition.name not in {existing.name for existing in self.partitions}:
            self.partitions.append(partition)

    def find(self, name: str) -> Optional[Partition]:
        for partition in self.partitions:
            if partition.name == name:
                return partition
        return None
