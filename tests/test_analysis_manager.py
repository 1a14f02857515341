"""Testy menedżera analizy na syntetycznych obrazach wielopartycyjnych."""

from __future__ import annotations

from pathlib import Path
from threading import Event
from typing import List, Tuple

import pytest

from volume_analyzer.core.analysis_manager import (
    AnalysisCancelledError,
    AnalysisManager,
    UnknownFilesystemError,
)
from volume_analyzer.core.models import AnalysisResult, DiskSource, Partition, SourceType
from volume_analyzer.drivers import DriverError, MemorySectorSource, SectorSource
from volume_analyzer.filesystems import registry
from volume_analyzer.filesystems.registry import FormatId
from volume_analyzer.metadata import SessionMetadataScanner
from volume_analyzer.reporting import ExportFormat, ReportExporter
from tests.synthetic_images import build_ext2, build_fat12_with_files

FAT_SECTORS = 720
EXT2_SECTORS = 128
EMPTY_SECTORS = 64


class StubDriver:
    """Sterownik zwracający obraz z pamięci."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self.source = DiskSource(
            identifier="stub-image",
            source_type=SourceType.DISK_IMAGE,
            display_name="Stub Image",
            path=Path("/tmp/stub.img"),
        )
        self.closed = False

    def enumerate_sources(self) -> List[DiskSource]:
        return [self.source]

    def open_source(self, source: DiskSource) -> MemorySectorSource:
        if source is not self.source:
            raise DriverError("Nieznane źródło")
        return MemorySectorSource(self._data)

    def close(self) -> None:
        self.closed = True


class StubPartitionProvider:
    def __init__(self, partitions: List[Partition]) -> None:
        self._partitions = partitions

    def get_all(self, source: SectorSource) -> List[Partition]:
        return list(self._partitions)


class RecordingReporter:
    def __init__(self) -> None:
        self.updates: List[Tuple[str, int | None]] = []

    def update(self, message: str, *, percentage: int | None = None) -> None:
        self.updates.append((message, percentage))


class DummyExporter(ReportExporter):
    """Eksporter zapamiętujący dane wywołania."""

    def __init__(self) -> None:
        self.last_call: tuple[AnalysisResult, Path, ExportFormat] | None = None

    def export(self, result: AnalysisResult, destination: Path, fmt: ExportFormat) -> Path:
        self.last_call = (result, destination, fmt)
        return destination


PARTITIONS = [
    Partition(name="p1", start=0, length=FAT_SECTORS, size=FAT_SECTORS * 512, type_tag="0x01", sequence=0, scheme="mbr"),
    Partition(
        name="p2",
        start=FAT_SECTORS,
        length=EXT2_SECTORS,
        size=EXT2_SECTORS * 512,
        type_tag="0x83",
        sequence=1,
        scheme="mbr",
    ),
    Partition(
        name="p3",
        start=FAT_SECTORS + EXT2_SECTORS,
        length=EMPTY_SECTORS,
        size=EMPTY_SECTORS * 512,
        type_tag="0x00",
        sequence=2,
        scheme="mbr",
    ),
]


def _disk() -> bytes:
    return build_fat12_with_files() + build_ext2() + bytes(EMPTY_SECTORS * 512)


def _manager(partitions: List[Partition] | None = PARTITIONS) -> tuple[AnalysisManager, StubDriver, RecordingReporter, DummyExporter]:
    driver = StubDriver(_disk())
    reporter = RecordingReporter()
    exporter = DummyExporter()
    manager = AnalysisManager(
        driver=driver,
        metadata_scanner=SessionMetadataScanner(),
        report_exporter=exporter,
        partition_provider=StubPartitionProvider(partitions or []),
        progress_reporter=reporter,
    )
    manager.start_session(driver.source)
    return manager, driver, reporter, exporter


def test_analyze_all_partitions() -> None:
    manager, _, reporter, _ = _manager()

    result = manager.analyze()

    fat, ext2, empty = result.partitions
    assert fat.formats == ["FAT"]
    assert fat.metadata is not None and fat.metadata.type == "FAT12"
    assert fat.tree is not None and fat.tree.total_files == 3
    assert fat.error is None

    assert ext2.formats == ["EXT2"]
    assert ext2.metadata is not None and ext2.metadata.volume_name == "rootfs"
    # ext2 nie ma sesji, więc drzewo plików nie jest budowane.
    assert ext2.tree is None

    assert empty.formats == []
    assert empty.metadata is None

    assert [entry.partition.name for entry in result.recognized()] == ["p1", "p2"]
    assert result.total_files() == 3
    assert result.total_directories() == 2
    assert reporter.updates[-1] == ("Analiza zakończona", 95)


def test_analyze_selected_partitions() -> None:
    manager, _, _, _ = _manager()

    result = manager.analyze(["p2"], collect_metadata=False)

    assert [entry.partition.name for entry in result.partitions] == ["p2"]


def test_collect_metadata_disabled_skips_tree() -> None:
    manager, _, _, _ = _manager()

    result = manager.analyze(["p1"], collect_metadata=False)

    assert result.partitions[0].metadata is not None
    assert result.partitions[0].tree is None


def test_analyze_rejects_unknown_selection() -> None:
    manager, _, _, _ = _manager()

    with pytest.raises(ValueError):
        manager.analyze(["missing"])


def test_detect_format_and_information() -> None:
    manager, _, _, _ = _manager()
    session = manager.session()

    assert manager.identify(session.find("p1")) == [FormatId.FAT]
    assert manager.detect_format(session.find("p2")) is FormatId.EXT2
    assert manager.information(session.find("p2")).type == "ext2"
    with pytest.raises(UnknownFilesystemError):
        manager.detect_format(session.find("p3"))


def test_information_failure_is_recorded(monkeypatch) -> None:
    manager, _, _, _ = _manager()

    def failing(*_args, **_kwargs):
        raise DriverError("odczyt nieudany")

    monkeypatch.setattr(registry, "get_information", failing)

    entry = manager.analyze(["p1"]).partitions[0]

    assert entry.formats == ["FAT"]
    assert entry.metadata is None
    assert entry.error == "odczyt nieudany"


def test_unexpected_decoder_error_stays_with_its_partition(monkeypatch) -> None:
    manager, _, _, _ = _manager()

    def failing(source, partition, encoding=None):
        raise LookupError("'hex' is not a text encoding")

    monkeypatch.setattr(registry.plugin(FormatId.EXT2), "get_information", failing)

    result = manager.analyze()

    fat, ext2, _ = result.partitions
    assert fat.metadata is not None and fat.tree is not None
    assert ext2.formats == ["EXT2"]
    assert ext2.metadata is None
    assert ext2.error == "'hex' is not a text encoding"


def test_cancelled_analysis() -> None:
    manager, _, _, _ = _manager()
    cancel = Event()
    cancel.set()

    with pytest.raises(AnalysisCancelledError):
        manager.analyze(cancel_event=cancel)


def test_missing_partition_table_falls_back_to_whole_device() -> None:
    manager, _, _, _ = _manager(partitions=None)

    partitions = manager.session().partitions

    assert len(partitions) == 1
    assert partitions[0].length == FAT_SECTORS + EXT2_SECTORS + EMPTY_SECTORS
    # Na początku całego nośnika leży sektor rozruchowy FAT.
    assert FormatId.FAT in manager.identify(partitions[0])


def test_export_report_reports_completion(tmp_path: Path) -> None:
    manager, _, reporter, exporter = _manager()
    result = manager.analyze(["p2"])

    path = manager.export_report(result, tmp_path / "report.json", ExportFormat.JSON)

    assert path == tmp_path / "report.json"
    assert exporter.last_call == (result, tmp_path / "report.json", ExportFormat.JSON)
    assert reporter.updates[-1] == ("Raport został zapisany", 100)


def test_session_lifecycle() -> None:
    manager, driver, _, _ = _manager()

    manager.close()

    assert driver.closed is True
    with pytest.raises(RuntimeError):
        manager.session()
