from __future__ import annotations

import pytest

from volume_analyzer.core.models import ErrorNumber, FileAttributes
from volume_analyzer.filesystems.fatx import FatxFilesystem, FatxSession, parse_directory
from tests.synthetic_images import (
    FATX_CLUSTER_SIZE,
    FATX_STAMP,
    FATX_TITLE_CHILDREN,
    FATX_TITLE_DIRECTORY,
    FATX_TITLE_IMAGE_LENGTH,
    build_fatx,
)


@pytest.fixture
def session(memory_image):
    source, partition = memory_image(build_fatx())
    session = FatxSession()
    assert session.mount(source, partition) is ErrorNumber.NO_ERROR
    yield session
    session.unmount()


def _names(session: FatxSession, path: str) -> list[str]:
    handle = session.open_dir(path).value
    names = []
    entry = session.read_dir(handle).value
    while entry is not None:
        names.append(entry)
        entry = session.read_dir(handle).value
    session.close_dir(handle)
    return names


def test_information(memory_image) -> None:
    source, partition = memory_image(build_fatx())
    plugin = FatxFilesystem()

    assert plugin.identify(source, partition) is True
    info = plugin.get_information(source, partition)

    assert info.type == "FATX filesystem"
    assert info.clusters == 48
    assert info.cluster_size == FATX_CLUSTER_SIZE
    assert info.volume_name == "XBOX"
    assert info.volume_serial == "12345678"


def test_blank_label_is_absent(memory_image) -> None:
    source, partition = memory_image(build_fatx(label=""))

    assert FatxFilesystem().get_information(source, partition).volume_name is None


def test_title_directory_listing(session) -> None:
    assert _names(session, "/") == [FATX_TITLE_DIRECTORY]
    assert _names(session, FATX_TITLE_DIRECTORY) == list(FATX_TITLE_CHILDREN)
    assert _names(session, f"{FATX_TITLE_DIRECTORY}/Saves") == []


def test_title_image_stat(session) -> None:
    info = session.stat(f"{FATX_TITLE_DIRECTORY}/TitleImage.xbx").value

    assert info.length == FATX_TITLE_IMAGE_LENGTH
    assert info.attributes == FileAttributes.NONE
    assert info.blocks == FATX_TITLE_IMAGE_LENGTH // FATX_CLUSTER_SIZE
    assert info.creation_time == FATX_STAMP
    assert info.last_write_time == FATX_STAMP
    assert info.access_time == FATX_STAMP


def test_lookup_ignores_case(session) -> None:
    assert session.stat(f"{FATX_TITLE_DIRECTORY}/titleimage.XBX").ok


def test_read_spans_clusters(session) -> None:
    path = f"{FATX_TITLE_DIRECTORY}/TitleImage.xbx"
    expected = bytes(index & 0xFF for index in range(FATX_TITLE_IMAGE_LENGTH))

    assert session.read(path, 500, 100).value == expected[500:600]
    assert session.read(path, FATX_TITLE_IMAGE_LENGTH - 4, 64).value == expected[-4:]
    assert session.read(path, FATX_TITLE_IMAGE_LENGTH, 1).error is ErrorNumber.INVALID_ARGUMENT


def test_sequential_file_reads(session) -> None:
    node = session.open_file(f"{FATX_TITLE_DIRECTORY}/TitleMeta.xbx").value

    assert session.read_file(node, 9).value == b"[Default]"
    assert session.read_file(node, 100).value == b"\r\nTitleName=Test\r\n"
    assert node.offset == node.length
    assert session.close_file(node) is ErrorNumber.NO_ERROR


def test_empty_file(session) -> None:
    path = f"{FATX_TITLE_DIRECTORY}/SaveImage.xbx"

    assert session.stat(path).value.length == 0
    assert session.read(path, 0, 0).value == b""
    assert session.read(path, 0, 16).error is ErrorNumber.INVALID_ARGUMENT
    assert session.map_block(path, 0).error is ErrorNumber.INVALID_ARGUMENT


def test_map_block(session) -> None:
    path = f"{FATX_TITLE_DIRECTORY}/TitleImage.xbx"

    # Klaster 3 leży 2 klastry za początkiem danych (0x2000).
    assert session.map_block(path, 0).value == (0x2000 + 2 * FATX_CLUSTER_SIZE) // 512
    assert session.map_block(path, 19).value == (0x2000 + 21 * FATX_CLUSTER_SIZE) // 512
    assert session.map_block(path, 20).error is ErrorNumber.INVALID_ARGUMENT


def test_no_extended_attributes(session) -> None:
    path = f"{FATX_TITLE_DIRECTORY}/TitleImage.xbx"

    assert session.list_xattr(path).error is ErrorNumber.NOT_SUPPORTED
    assert session.get_xattr(path, "any").error is ErrorNumber.NOT_SUPPORTED


def test_stat_fs(session) -> None:
    info = session.stat_fs().value

    assert info.type == "Xbox FAT16"
    assert info.blocks == 48
    assert info.filename_length == 42
    assert info.id == "12345678"


def test_namespaces_are_rejected(memory_image) -> None:
    source, partition = memory_image(build_fatx())

    assert FatxSession().mount(source, partition, namespace="lfn") is ErrorNumber.INVALID_ARGUMENT


def test_xbox360_big_endian_volume(memory_image) -> None:
    source, partition = memory_image(build_fatx(big_endian=True, label="X360"))
    info = FatxFilesystem().get_information(source, partition)
    session = FatxSession()

    assert info.volume_name == "X360"
    assert session.mount(source, partition) is ErrorNumber.NO_ERROR
    assert session.stat_fs().value.type == "Xbox 360 FAT16"
    stat = session.stat(f"{FATX_TITLE_DIRECTORY}/TitleMeta.xbx").value
    assert stat.last_write_time == FATX_STAMP


def test_directory_parser_skips_deleted_entries() -> None:
    deleted = bytearray(64)
    deleted[0] = 0xE5
    live = bytearray(64)
    live[0] = 4
    live[2:6] = b"GAME"
    raw = bytes(deleted) + bytes(live) + b"\xFF" * 64

    entries = parse_directory(raw, big_endian=False, encoding="ascii", year_base=2000)

    assert [entry.name for entry in entries] == ["GAME"]
    assert entries[0].creation is None
