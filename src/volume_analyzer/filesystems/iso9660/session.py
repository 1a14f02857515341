"""Sesja tylko do odczytu dla ISO9660 / High Sierra (z rozszerzeniem Joliet)."""

from __future__ import annotations

import struct
from typing import Any, Hashable, List

from volume_analyzer.core.models import (
    ErrorNumber,
    FileEntryInfo,
    FileSystemInfo,
    FsResult,
    Partition,
)
from volume_analyzer.drivers.base import SectorSource
from volume_analyzer.filesystems.base import MountOptions
from volume_analyzer.filesystems.session import Children, ReadOnlySession
from .directory import VERSION_SUFFIX, IsoDirEntry, parse_directory, parse_extended_attributes, parse_record
from .info import DEFAULT_ENCODING, identify
from .volume import LOGICAL_SECTOR, Flavor, VolumeDescriptors, read_descriptors, read_user_bytes, source_sector

EA_XATTR = "org.iso.9660.ea"

JOLIET_NAME_LENGTH = 110
NAME_LENGTH = 255


class Iso9660Session(ReadOnlySession):
    """Montowanie płyt ISO9660; przestrzeń nazw ``joliet`` wymaga deskryptora Joliet."""

    namespaces = ("normal", "vms", "joliet", "romeo")
    default_namespace = "joliet"
    default_encoding = DEFAULT_ENCODING
    case_sensitive = False

    def __init__(self) -> None:
        super().__init__()
        self._descriptors: VolumeDescriptors | None = None
        self._block_size = LOGICAL_SECTOR
        self._space_size = 0
        self._joliet = False
        self._namespace = "normal"

    # ------------------------------------------------------------------
    # Montowanie
    # ------------------------------------------------------------------

    def _mount(self, source: SectorSource, partition: Partition, options: MountOptions) -> ErrorNumber:
        if not identify(source, partition):
            return ErrorNumber.INVALID_FILESYSTEM
        descriptors = read_descriptors(source, partition)
        if descriptors is None or descriptors.primary is None:
            return ErrorNumber.INVALID_FILESYSTEM
        if descriptors.flavor is Flavor.CDI:
            self._logger.info("mount-failed", reason="cdi-not-supported")
            return ErrorNumber.NOT_SUPPORTED

        namespace = options.namespace or self.default_namespace or "normal"
        joliet = namespace == "joliet" and descriptors.joliet is not None
        if namespace == "joliet" and not joliet:
            namespace = "normal"
        high_sierra = descriptors.flavor is Flavor.HIGH_SIERRA

        descriptor = descriptors.joliet if joliet else descriptors.primary
        assert descriptor is not None
        if high_sierra:
            space_size = struct.unpack_from("<I", descriptor, 88)[0]
            block_size = struct.unpack_from("<H", descriptor, 136)[0]
            root_offset = 180
        else:
            space_size = struct.unpack_from("<I", descriptor, 80)[0]
            block_size = struct.unpack_from("<H", descriptor, 128)[0]
            root_offset = 156

        self._descriptors = descriptors
        self._block_size = block_size or LOGICAL_SECTOR
        self._space_size = space_size
        self._joliet = joliet
        self._namespace = namespace
        root, _ = parse_record(
            descriptor,
            root_offset,
            joliet=joliet,
            high_sierra=high_sierra,
            encoding=options.encoding,
        )
        root.name = ""
        self._root = root
        self._logger.debug(
            "iso9660-mounted",
            flavor=descriptors.flavor.value,
            namespace=namespace,
            block_size=self._block_size,
            root_extent=root.extent,
        )
        return ErrorNumber.NO_ERROR

    def _release(self) -> None:
        self._descriptors = None
        self._block_size = LOGICAL_SECTOR
        self._space_size = 0
        self._joliet = False
        self._namespace = "normal"

    # ------------------------------------------------------------------
    # Wpisy
    # ------------------------------------------------------------------

    def _is_directory(self, entry: IsoDirEntry) -> bool:
        return entry.is_directory

    def _directory_key(self, entry: IsoDirEntry) -> Hashable:
        return entry.extent

    def _display_name(self, name: str) -> str:
        if self._namespace in ("normal", "joliet") and name.endswith(VERSION_SUFFIX):
            return name[: -len(VERSION_SUFFIX)]
        return name

    def _children(self, entry: IsoDirEntry) -> Children:
        assert self._descriptors is not None and self._options is not None
        entries = parse_directory(
            self._read(entry, 0, entry.size),
            joliet=self._joliet,
            high_sierra=self._descriptors.flavor is Flavor.HIGH_SIERRA,
            encoding=self._options.encoding,
            block_size=self._block_size,
        )
        return [(self._display_name(item.name), item) for item in entries]

    def _find_child(self, children: Any, component: str) -> Any:
        match = super()._find_child(children, component)
        if match is None and not self._joliet and not component.endswith(VERSION_SUFFIX):
            match = super()._find_child(children, component + VERSION_SUFFIX)
        return match

    def _stat(self, entry: IsoDirEntry) -> FileEntryInfo:
        info = FileEntryInfo(
            attributes=entry.file_attributes(),
            length=entry.size,
            blocks=(entry.size + self._block_size - 1) // self._block_size,
            block_size=self._block_size,
            inode=entry.extent,
            links=1,
            last_write_time=entry.date,
        )
        if entry.xattr_length > 0:
            owner, group, mode, created, modified = parse_extended_attributes(self._extended_attributes(entry))
            info.uid = owner
            info.gid = group
            info.mode = mode
            info.creation_time = created
            if modified is not None:
                info.last_write_time = modified
        return info

    def _file_length(self, entry: IsoDirEntry) -> int:
        return entry.size

    # ------------------------------------------------------------------
    # Odczyt danych
    # ------------------------------------------------------------------

    def _read_user(self, offset: int, length: int) -> bytes:
        assert self._source is not None and self._partition is not None
        return read_user_bytes(self._source, self._partition, offset, length)

    def _extended_attributes(self, entry: IsoDirEntry) -> bytes:
        return self._read_user(entry.extent * self._block_size, entry.xattr_length * self._block_size)

    def _read(self, entry: IsoDirEntry, offset: int, size: int) -> bytes:
        chunks: List[bytes] = []
        position = 0
        end = offset + size
        for extent in entry.extents:
            start = max(offset, position)
            stop = min(end, position + extent.size)
            if start < stop:
                base = extent.block * self._block_size
                chunks.append(self._read_user(base + start - position, stop - start))
            position += extent.size
            if position >= end:
                break
        return b"".join(chunks)

    def _map_block(self, entry: IsoDirEntry, block: int) -> FsResult[int]:
        assert self._source is not None and self._partition is not None
        blocks = (entry.size + self._block_size - 1) // self._block_size
        if block >= blocks:
            return FsResult.failure(ErrorNumber.INVALID_ARGUMENT)
        remaining = block
        for extent in entry.extents:
            extent_blocks = (extent.size + self._block_size - 1) // self._block_size
            if remaining < extent_blocks:
                offset = (extent.block + remaining) * self._block_size
                return FsResult.success(source_sector(self._source, self._partition, offset))
            remaining -= extent_blocks
        return FsResult.failure(ErrorNumber.INVALID_ARGUMENT)

    def _list_xattr(self, entry: IsoDirEntry) -> FsResult[List[str]]:
        return FsResult.success([EA_XATTR] if entry.xattr_length > 0 else [])

    def _get_xattr(self, entry: IsoDirEntry, name: str) -> FsResult[bytes]:
        if name != EA_XATTR or entry.xattr_length == 0:
            return FsResult.failure(ErrorNumber.NO_SUCH_EXTENDED_ATTRIBUTE)
        return FsResult.success(self._extended_attributes(entry))

    def _stat_fs(self) -> FileSystemInfo:
        assert self._descriptors is not None
        return FileSystemInfo(
            type=self._descriptors.flavor.value,
            blocks=self._space_size,
            free_blocks=0,
            files=0,
            free_files=0,
            filename_length=JOLIET_NAME_LENGTH if self._joliet else NAME_LENGTH,
            id=None,
        )


__all__ = ["EA_XATTR", "Iso9660Session"]
