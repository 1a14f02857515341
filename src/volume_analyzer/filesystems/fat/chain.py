"""Tablica alokacji FAT i łańcuchy klastrów (wspólne dla FAT i FATX)."""

from __future__ import annotations

import struct
from typing import List

from volume_analyzer.filesystems.base import CorruptStructureError


class AllocationTable:
    """Zdekodowana tablica FAT o wpisach 12-, 16- lub 32-bitowych.

    ``first_data_cluster`` to numer pierwszego klastra danych (2 w FAT,
    1 w FATX); wartości powyżej ``end_marker`` kończą łańcuch.
    """

    def __init__(
        self,
        table: bytes,
        bits: int,
        clusters: int,
        *,
        big_endian: bool = False,
        first_data_cluster: int = 2,
    ) -> None:
        if bits not in (12, 16, 32):
            raise ValueError(f"Nieobsługiwana szerokość wpisu FAT: {bits}")
        self.bits = bits
        self.clusters = clusters
        self.first_data_cluster = first_data_cluster
        self._table = table
        self._big_endian = big_endian
        if bits == 12:
            self.end_marker = 0xFF8
            self.bad_marker = 0xFF7
        elif bits == 16:
            self.end_marker = 0xFFF8
            self.bad_marker = 0xFFF7
        else:
            self.end_marker = 0x0FFFFFF8 if first_data_cluster == 2 else 0xFFFFFFF8
            self.bad_marker = self.end_marker - 1

    def entry(self, cluster: int) -> int:
        """Wartość wpisu dla klastra; zgłasza ``CorruptStructureError`` poza tablicą."""

        if self.bits == 12:
            offset = cluster + cluster // 2
            if offset + 2 > len(self._table):
                raise CorruptStructureError(f"Klaster {cluster} poza tablicą FAT")
            value = self._table[offset] | (self._table[offset + 1] << 8)
            return value >> 4 if cluster & 1 else value & 0x0FFF
        width = self.bits // 8
        offset = cluster * width
        if offset + width > len(self._table):
            raise CorruptStructureError(f"Klaster {cluster} poza tablicą FAT")
        order = ">" if self._big_endian else "<"
        code = "H" if width == 2 else "I"
        value = struct.unpack_from(order + code, self._table, offset)[0]
        if self.bits == 32 and self.first_data_cluster == 2:
            value &= 0x0FFFFFFF
        return value

    def is_valid_cluster(self, cluster: int) -> bool:
        return self.first_data_cluster <= cluster < self.clusters + self.first_data_cluster

    def chain(self, start: int) -> List[int]:
        """Kolejne klastry pliku od ``start``; pętla lub zły wskaźnik to ``CorruptStructureError``."""

        if start == 0:
            return []
        clusters: List[int] = []
        seen = set()
        current = start
        while True:
            if not self.is_valid_cluster(current):
                raise CorruptStructureError(f"Klaster {current} poza zakresem wolumenu")
            if current in seen:
                raise CorruptStructureError(f"Pętla w łańcuchu klastrów od {start}")
            seen.add(current)
            clusters.append(current)
            following = self.entry(current)
            if following >= self.end_marker:
                break
            if following == self.bad_marker or following == 0:
                raise CorruptStructureError(f"Przerwany łańcuch klastrów od {start}")
            current = following
        return clusters

    def free_clusters(self) -> int:
        free = 0
        for cluster in range(self.first_data_cluster, self.clusters + self.first_data_cluster):
            try:
                if self.entry(cluster) == 0:
                    free += 1
            except CorruptStructureError:
                break
        return free


__all__ = ["AllocationTable"]
