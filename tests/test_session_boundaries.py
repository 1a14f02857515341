"""Automat stanów sesji: montowanie, ważność uchwytów i opcje."""

from __future__ import annotations

import pytest

from volume_analyzer.core.models import ErrorNumber
from volume_analyzer.filesystems.fat import FatSession
from volume_analyzer.filesystems.fatx import FatxSession
from volume_analyzer.filesystems.iso9660 import Iso9660Session
from tests.synthetic_images import build_fat12_with_files, build_fatx, build_iso9660


@pytest.fixture
def fat(memory_image):
    return memory_image(build_fat12_with_files())


@pytest.mark.parametrize("session_type", [FatSession, FatxSession, Iso9660Session])
def test_operations_before_mount_are_denied(session_type) -> None:
    session = session_type()

    assert session.mounted is False
    assert session.stat("/").error is ErrorNumber.ACCESS_DENIED
    assert session.open_dir("/").error is ErrorNumber.ACCESS_DENIED
    assert session.open_file("x").error is ErrorNumber.ACCESS_DENIED
    assert session.read("x", 0, 1).error is ErrorNumber.ACCESS_DENIED
    assert session.map_block("x", 0).error is ErrorNumber.ACCESS_DENIED
    assert session.list_xattr("x").error is ErrorNumber.ACCESS_DENIED
    assert session.get_xattr("x", "y").error is ErrorNumber.ACCESS_DENIED
    assert session.read_link("x").error is ErrorNumber.ACCESS_DENIED
    assert session.stat_fs().error is ErrorNumber.ACCESS_DENIED
    assert session.unmount() is ErrorNumber.ACCESS_DENIED


def test_unmount_then_operations_are_denied(fat) -> None:
    source, partition = fat
    session = FatSession()
    session.mount(source, partition)

    assert session.unmount() is ErrorNumber.NO_ERROR
    assert session.mounted is False
    assert session.stat("README.TXT").error is ErrorNumber.ACCESS_DENIED
    assert session.unmount() is ErrorNumber.ACCESS_DENIED


def test_handles_from_previous_mount_are_stale(fat) -> None:
    source, partition = fat
    session = FatSession()
    session.mount(source, partition)
    directory = session.open_dir("/").value
    file_node = session.open_file("README.TXT").value

    session.unmount()
    session.mount(source, partition)

    assert session.read_dir(directory).error is ErrorNumber.INVALID_ARGUMENT
    assert session.close_dir(directory) is ErrorNumber.INVALID_ARGUMENT
    assert session.read_file(file_node, 10).error is ErrorNumber.INVALID_ARGUMENT
    assert session.close_file(file_node) is ErrorNumber.INVALID_ARGUMENT


def test_handles_after_unmount_are_invalid(fat) -> None:
    source, partition = fat
    session = FatSession()
    session.mount(source, partition)
    file_node = session.open_file("README.TXT").value

    session.unmount()

    assert session.read_file(file_node, 10).error is ErrorNumber.INVALID_ARGUMENT


def test_closed_handles_are_invalid(fat) -> None:
    source, partition = fat
    session = FatSession()
    session.mount(source, partition)
    directory = session.open_dir("/").value
    file_node = session.open_file("README.TXT").value

    assert session.close_dir(directory) is ErrorNumber.NO_ERROR
    assert session.close_file(file_node) is ErrorNumber.NO_ERROR

    assert session.read_dir(directory).error is ErrorNumber.INVALID_ARGUMENT
    assert session.close_dir(directory) is ErrorNumber.INVALID_ARGUMENT
    assert session.read_file(file_node, 1).error is ErrorNumber.INVALID_ARGUMENT
    assert session.close_file(file_node) is ErrorNumber.INVALID_ARGUMENT


def test_remount_replaces_previous_volume(memory_image, fat) -> None:
    source, partition = fat
    session = FatSession()
    session.mount(source, partition)
    stale = session.open_dir("/").value

    other_source, other_partition = memory_image(build_fat12_with_files())
    assert session.mount(other_source, other_partition) is ErrorNumber.NO_ERROR

    assert session.read_dir(stale).error is ErrorNumber.INVALID_ARGUMENT
    assert session.stat("DOCS/NOTE.TXT").ok


def test_unknown_namespace_is_rejected(fat) -> None:
    source, partition = fat
    session = FatSession()

    assert session.mount(source, partition, namespace="klingon") is ErrorNumber.INVALID_ARGUMENT
    assert session.mounted is False


def test_namespace_names_are_case_insensitive(fat) -> None:
    source, partition = fat
    session = FatSession()

    assert session.mount(source, partition, namespace="DOS") is ErrorNumber.NO_ERROR
    assert session.options.namespace == "dos"


def test_unknown_encoding_falls_back_to_default(fat) -> None:
    source, partition = fat
    session = FatSession()

    assert session.mount(source, partition, encoding="no-such-codec") is ErrorNumber.NO_ERROR
    assert session.options.encoding == session.default_encoding


def test_extra_options_are_kept(fat) -> None:
    source, partition = fat
    session = FatSession()

    session.mount(source, partition, options={"Debug": "0", "cache": "off"})

    assert session.options.debug is False
    assert session.options.extra == {"cache": "off"}


@pytest.mark.parametrize(
    ("session_type", "image"),
    [
        (FatSession, build_iso9660),
        (FatxSession, build_fat12_with_files),
        (Iso9660Session, build_fatx),
    ],
)
def test_mounting_foreign_format_fails(memory_image, session_type, image) -> None:
    source, partition = memory_image(image())
    session = session_type()

    assert session.mount(source, partition) is ErrorNumber.INVALID_FILESYSTEM
    assert session.mounted is False


def test_mount_io_failure(flaky_image) -> None:
    source, partition = flaky_image(build_fat12_with_files())
    source.failing = True

    session = FatSession()

    # Błąd odczytu w detektorze oznacza brak rozpoznanego formatu.
    assert session.mount(source, partition) is ErrorNumber.INVALID_FILESYSTEM
    assert session.mounted is False
