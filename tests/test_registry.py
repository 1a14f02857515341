from __future__ import annotations

import pytest

from volume_analyzer.filesystems import registry
from volume_analyzer.filesystems.base import FilesystemError
from volume_analyzer.filesystems.fat import FatSession
from volume_analyzer.filesystems.registry import FormatId
from tests.synthetic_images import ALL_BUILDERS, build_fat12_with_files


def test_registration_order() -> None:
    assert [format_id.value for format_id in FormatId] == [
        "FAT",
        "FATX",
        "EXT2",
        "HFS_PLUS",
        "AMIGADOS",
        "ISO9660",
        "SYSV",
        "UFS",
        "PRODOS",
    ]


@pytest.mark.parametrize("format_name", sorted(ALL_BUILDERS))
def test_each_image_matches_exactly_one_format(memory_image, format_name: str) -> None:
    source, partition = memory_image(ALL_BUILDERS[format_name]())

    assert registry.identify_all(source, partition) == [FormatId(format_name)]


def test_blank_media_matches_nothing(memory_image) -> None:
    source, partition = memory_image(bytes(720 * 512))

    assert registry.identify_all(source, partition) == []


def test_last_match_wins() -> None:
    assert registry.last_match([FormatId.FAT, FormatId.SYSV]) is FormatId.SYSV
    assert registry.last_match([]) is None


def test_information_dispatch(memory_image) -> None:
    source, partition = memory_image(build_fat12_with_files())

    info = registry.get_information(FormatId.FAT, source, partition)

    assert info.type == "FAT12"
    assert registry.get_information("FAT", source, partition) == info


def test_detector_exception_counts_as_rejection(memory_image, monkeypatch) -> None:
    source, partition = memory_image(build_fat12_with_files())

    class Exploding:
        name = "exploding"

        def identify(self, source, partition):
            raise RuntimeError("uszkodzony detektor")

    monkeypatch.setitem(registry._PLUGINS, FormatId.FAT, Exploding())

    assert registry.identify(FormatId.FAT, source, partition) is False
    assert registry.identify_all(source, partition) == []


@pytest.mark.parametrize(
    ("format_id", "expected"),
    [
        (FormatId.FAT, True),
        (FormatId.FATX, True),
        (FormatId.ISO9660, True),
        (FormatId.EXT2, False),
        (FormatId.HFS_PLUS, False),
        (FormatId.AMIGADOS, False),
        (FormatId.SYSV, False),
        (FormatId.UFS, False),
        (FormatId.PRODOS, False),
    ],
)
def test_session_capability(format_id: FormatId, expected: bool) -> None:
    assert registry.supports_session(format_id) is expected


def test_create_session() -> None:
    first = registry.create_session(FormatId.FAT)
    second = registry.create_session(FormatId.FAT)

    assert isinstance(first, FatSession)
    assert first is not second
    assert first.mounted is False


def test_create_session_for_detection_only_format() -> None:
    with pytest.raises(FilesystemError):
        registry.create_session(FormatId.EXT2)


def test_unknown_format_name() -> None:
    with pytest.raises(ValueError):
        registry.plugin("NTFS")
