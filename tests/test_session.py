"""Unit tests for AnalysisSession."""

from __future__ import annotations

from pathlib import Path

from volume_analyzer.core.models import DiskSource, Partition, SourceType
from volume_analyzer.core.session import AnalysisSession
from volume_analyzer.drivers import MemorySectorSource


def _session() -> AnalysisSession:
    source = DiskSource(identifier="s", source_type=SourceType.DISK_IMAGE, display_name="s", path=Path("/tmp/a"))
    return AnalysisSession(source=source, sectors=MemorySectorSource(bytes(4096)))


def test_session_add_partition_deduplicates_by_name() -> None:
    session = _session()

    session.add_partition(Partition(name="p1", start=0, length=4, size=2048))
    session.add_partition(Partition(name="p1", start=4, length=4, size=2048))

    assert len(session.partitions) == 1
    assert session.partitions[0].start == 0


def test_session_find() -> None:
    session = _session()
    session.add_partition(Partition(name="p1", start=0, length=4, size=2048))
    session.add_partition(Partition(name="p2", start=4, length=4, size=2048))

    assert session.find("p2").start == 4
    assert session.find("p3") is None
