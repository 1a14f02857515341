"""HFS+ i HFSX: nagłówek wolumenu oraz nazwa z drzewa katalogu (B-tree)."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import List, Optional, Tuple

from structlog import get_logger

from volume_analyzer.core.models import Partition, VolumeMetadata
from volume_analyzer.drivers.base import SectorSource
from volume_analyzer.shared.dates import mac_to_datetime
from .base import read_partition

_logger = get_logger(__name__)

HFS_MAGIC = 0x4244
HFSP_MAGIC = 0x482B
HFSX_MAGIC = 0x4858

VOLUME_HEADER_OFFSET = 0x400
VOLUME_HEADER_SIZE = 0x200
CATALOG_FORK_OFFSET = 0x110
VOLUME_UNMOUNTED = 0x100
ROOT_PARENT_ID = 1
LEAF_NODE = -1


@dataclass(frozen=True, slots=True)
class ForkData:
    logical_size: int
    extents: Tuple[Tuple[int, int], ...]

    @classmethod
    def parse(cls, data: bytes, offset: int) -> "ForkData":
        logical_size = struct.unpack_from(">Q", data, offset)[0]
        pairs = struct.unpack_from(">16I", data, offset + 16)
        extents = tuple((pairs[index], pairs[index + 1]) for index in range(0, 16, 2) if pairs[index + 1])
        return cls(logical_size, extents)

    def block_offset(self, block: int) -> Optional[int]:
        """Numer bloku alokacji dla bloku logicznego ``block`` widelca."""

        for start, count in self.extents:
            if block < count:
                return start + block
            block -= count
        return None


def _volume_offset(source: SectorSource, partition: Partition) -> Tuple[int, bool] | None:
    """Położenie nagłówka HFS+ (w bajtach) i informacja o opakowaniu w HFS."""

    mdb = read_partition(source, partition, 0, 0x800)
    if mdb is None:
        return None
    if struct.unpack_from(">H", mdb, 0x400)[0] == HFS_MAGIC and struct.unpack_from(">H", mdb, 0x47C)[0] == HFSP_MAGIC:
        embedded_start = struct.unpack_from(">H", mdb, 0x47E)[0]
        block_size = struct.unpack_from(">I", mdb, 0x414)[0]
        first_block = struct.unpack_from(">H", mdb, 0x41C)[0]
        return first_block * 512 + embedded_start * block_size, True
    return 0, False


def _read_header(source: SectorSource, partition: Partition) -> Tuple[bytes, int, bool] | None:
    located = _volume_offset(source, partition)
    if located is None:
        return None
    offset, wrapped = located
    header = read_partition(source, partition, offset + VOLUME_HEADER_OFFSET, VOLUME_HEADER_SIZE)
    if header is None:
        return None
    if struct.unpack_from(">H", header, 0)[0] not in (HFSP_MAGIC, HFSX_MAGIC):
        return None
    return header, offset, wrapped


def identify(source: SectorSource, partition: Partition) -> bool:
    if partition.length <= 2:
        return False
    return _read_header(source, partition) is not None


def _catalog_node(
    source: SectorSource,
    partition: Partition,
    volume_offset: int,
    block_size: int,
    catalog: ForkData,
    node_size: int,
    node: int,
) -> Optional[bytes]:
    first_byte = node * node_size
    chunks: List[bytes] = []
    for position in range(first_byte, first_byte + node_size, block_size):
        block = catalog.block_offset(position // block_size)
        if block is None:
            return None
        within = position % block_size
        length = min(block_size - within, first_byte + node_size - position)
        chunk = read_partition(source, partition, volume_offset + block * block_size + within, length)
        if chunk is None:
            return None
        chunks.append(chunk)
    return b"".join(chunks)


def read_volume_name(
    source: SectorSource,
    partition: Partition,
    volume_offset: int,
    header: bytes,
) -> Optional[str]:
    """Nazwa wolumenu: pierwszy rekord pierwszego liścia katalogu (rodzic 1)."""

    block_size = struct.unpack_from(">I", header, 0x28)[0]
    if block_size == 0:
        return None
    catalog = ForkData.parse(header, CATALOG_FORK_OFFSET)
    if not catalog.extents:
        return None

    first_block = read_partition(source, partition, volume_offset + catalog.extents[0][0] * block_size, 512)
    if first_block is None:
        return None
    first_leaf = struct.unpack_from(">I", first_block, 24)[0]
    node_size = struct.unpack_from(">H", first_block, 32)[0]
    if node_size < 512 or first_leaf == 0:
        return None

    node = _catalog_node(source, partition, volume_offset, block_size, catalog, node_size, first_leaf)
    if node is None:
        return None
    kind = struct.unpack_from(">b", node, 8)[0]
    records = struct.unpack_from(">H", node, 10)[0]
    if kind != LEAF_NODE or records == 0:
        return None
    record = struct.unpack_from(">H", node, node_size - 2)[0]
    if record + 8 > node_size:
        return None
    parent_id = struct.unpack_from(">I", node, record + 2)[0]
    name_length = struct.unpack_from(">H", node, record + 6)[0]
    if parent_id != ROOT_PARENT_ID or record + 8 + name_length * 2 > node_size:
        return None
    return node[record + 8 : record + 8 + name_length * 2].decode("utf-16-be", errors="replace")


def get_information(
    source: SectorSource,
    partition: Partition,
    encoding: str | None = None,
) -> VolumeMetadata:
    """Nagłówek wolumenu; kodowanie nazw HFS+ jest zawsze UTF-16BE."""

    located = _read_header(source, partition)
    if located is None:
        return VolumeMetadata(type="HFS+")
    header, volume_offset, wrapped = located
    (
        signature,
        version,
        attributes,
        last_mounted,
        _,
        create_date,
        modify_date,
        backup_date,
        _,
        file_count,
        _,
        block_size,
        total_blocks,
        free_blocks,
    ) = struct.unpack_from(">HHI4sIIIIIIIIII", header, 0)
    finder = struct.unpack_from(">8I", header, 0x50)
    _logger.debug("hfsplus-header", version=version, wrapped=wrapped)

    serial = None
    if finder[6] != 0 and finder[7] != 0:
        serial = f"{finder[6]:08X}{finder[7]:08X}"

    return VolumeMetadata(
        type="HFSX" if signature == HFSX_MAGIC else "HFS+",
        clusters=total_blocks,
        cluster_size=block_size,
        volume_name=read_volume_name(source, partition, volume_offset, header),
        volume_serial=serial,
        system_identifier=last_mounted.decode("ascii", errors="replace"),
        bootable=finder[0] != 0 or finder[3] != 0 or finder[5] != 0,
        creation_date=mac_to_datetime(create_date) if create_date > 0 else None,
        modification_date=mac_to_datetime(modify_date) if modify_date > 0 else None,
        backup_date=mac_to_datetime(backup_date) if backup_date > 0 else None,
        files=file_count,
        free_clusters=free_blocks,
        dirty=(attributes & VOLUME_UNMOUNTED) != VOLUME_UNMOUNTED,
    )


class HfsPlusFilesystem:
    """Wtyczka HFS+/HFSX (również osadzone w opakowaniu HFS)."""

    name = "Apple HFS+ filesystem"

    def identify(self, source: SectorSource, partition: Partition) -> bool:
        return identify(source, partition)

    def get_information(
        self,
        source: SectorSource,
        partition: Partition,
        encoding: str | None = None,
    ) -> VolumeMetadata:
        return get_information(source, partition, encoding)


__all__ = ["ForkData", "HfsPlusFilesystem", "get_information", "identify", "read_volume_name"]
