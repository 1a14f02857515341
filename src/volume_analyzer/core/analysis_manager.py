"""Zarządzanie pełnym cyklem analizy źródła danych."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from threading import Event
from typing import List, Protocol, Sequence

import structlog
from structlog.stdlib import BoundLogger

from volume_analyzer.core.models import (
    AnalysisResult,
    DiskSource,
    ErrorNumber,
    Partition,
    PartitionAnalysis,
    VolumeMetadata,
)
from volume_analyzer.drivers import (
    DataSourceDriver,
    PartitionProvider,
    WholeDevicePartitionProvider,
    whole_device_partition,
)
from volume_analyzer.filesystems import registry
from volume_analyzer.filesystems.registry import FormatId
from volume_analyzer.metadata import MetadataResult, MetadataScanCancelled, MetadataScanner
from volume_analyzer.reporting import ExportFormat, ReportExporter
from .session import AnalysisSession


class ProgressReporter(Protocol):
    """Minimalny interfejs raportowania postępu analizy."""

    def update(self, message: str, *, percentage: int | None = None) -> None:
        """Przekazuje informację o postępie."""


class UnknownFilesystemError(RuntimeError):
    """Żaden zarejestrowany format nie rozpoznał partycji."""


class AnalysisCancelledError(RuntimeError):
    """Analiza została przerwana przez użytkownika."""


@dataclass
class DefaultProgressReporter:
    """Prosty reporter postępu logujący zdarzenia do konsoli."""

    logger: BoundLogger = field(default_factory=lambda: structlog.get_logger(__name__))

    def update(self, message: str, *, percentage: int | None = None) -> None:
        if percentage is not None:
            self.logger.info("progress", message=message, percentage=percentage)
        else:
            self.logger.info("progress", message=message)


class AnalysisManager:
    """Orkiestrator: partycje, rozpoznanie formatu, metadane wolumenu i drzewo plików."""

    def __init__(
        self,
        *,
        driver: DataSourceDriver,
        metadata_scanner: MetadataScanner,
        report_exporter: ReportExporter,
        partition_provider: PartitionProvider | None = None,
        progress_reporter: ProgressReporter | None = None,
        encoding: str | None = None,
    ) -> None:
        self._driver = driver
        self._partition_provider = partition_provider or WholeDevicePartitionProvider()
        self._metadata_scanner = metadata_scanner
        self._report_exporter = report_exporter
        self._progress_reporter = progress_reporter or DefaultProgressReporter()
        self._encoding = encoding
        self._logger = structlog.get_logger(__name__)
        self._session: AnalysisSession | None = None

    # ------------------------------------------------------------------
    # Zarządzanie sesją
    # ------------------------------------------------------------------

    def start_session(self, source: DiskSource) -> AnalysisSession:
        """Otwiera źródło i wczytuje listę partycji."""

        self._progress("Inicjalizacja sesji", percentage=5)
        sectors = self._driver.open_source(source)
        partitions = list(self._partition_provider.get_all(sectors))
        if not partitions and sectors.sector_count > 0:
            # Brak tablicy partycji: analizujemy całe urządzenie.
            partitions = [whole_device_partition(sectors)]
        self._session = AnalysisSession(source=source, sectors=sectors, partitions=partitions)
        self._progress(f"Wykryto {len(partitions)} partycj(e)", percentage=15)
        return self._session

    def session(self) -> AnalysisSession:
        """Zwraca aktywną sesję lub zgłasza błąd, jeśli brak."""

        if self._session is None:
            raise RuntimeError("Sesja analizy nie została zainicjalizowana")
        return self._session

    def close(self) -> None:
        """Kończy pracę z bieżącym sterownikiem."""

        self._driver.close()
        self._session = None

    # ------------------------------------------------------------------
    # Rozpoznawanie
    # ------------------------------------------------------------------

    def identify(self, partition: Partition) -> List[FormatId]:
        """Wszystkie formaty akceptujące partycję."""

        return registry.identify_all(self.session().sectors, partition)

    def detect_format(self, partition: Partition) -> FormatId:
        """Format wybrany regułą „ostatnie dopasowanie wygrywa”."""

        chosen = registry.last_match(self.identify(partition))
        if chosen is None:
            raise UnknownFilesystemError(f"Nie rozpoznano systemu plików na partycji {partition.name}")
        return chosen

    def information(self, partition: Partition, format_id: FormatId | None = None) -> VolumeMetadata:
        """Metadane wolumenu dla wskazanego (lub wykrytego) formatu."""

        chosen = format_id or self.detect_format(partition)
        return registry.get_information(chosen, self.session().sectors, partition, self._encoding)

    # ------------------------------------------------------------------
    # Analiza
    # ------------------------------------------------------------------

    def analyze(
        self,
        partition_names: Sequence[str] | None = None,
        *,
        collect_metadata: bool = True,
        cancel_event: Event | None = None,
    ) -> AnalysisResult:
        """Analizuje wybrane (domyślnie wszystkie) partycje i zwraca wyniki."""

        session = self.session()
        if partition_names is None:
            selected = list(session.partitions)
        else:
            wanted = set(partition_names)
            selected = [partition for partition in session.partitions if partition.name in wanted]
        if not selected:
            raise ValueError("Brak wybranych partycji do analizy")

        analysis = AnalysisResult(source=session.source)

        for index, partition in enumerate(selected, start=1):
            if cancel_event is not None and cancel_event.is_set():
                raise AnalysisCancelledError("Analiza została anulowana")
            self._progress(
                f"Analiza partycji {partition.name}",
                percentage=self._progress_percentage(index, len(selected)),
            )
            analysis.partitions.append(
                self._analyze_partition(partition, collect_metadata=collect_metadata, cancel_event=cancel_event)
            )

        self._progress("Analiza zakończona", percentage=95)
        return analysis

    # ------------------------------------------------------------------
    # Raportowanie
    # ------------------------------------------------------------------

    def export_report(self, result: AnalysisResult, destination: Path, fmt: ExportFormat) -> Path:
        """Eksportuje raport do wskazanego pliku."""

        path = self._report_exporter.export(result, destination, fmt)
        self._progress("Raport został zapisany", percentage=100)
        return path

    # ------------------------------------------------------------------
    # Operacje pomocnicze
    # ------------------------------------------------------------------

    def _analyze_partition(
        self,
        partition: Partition,
        *,
        collect_metadata: bool,
        cancel_event: Event | None,
    ) -> PartitionAnalysis:
        matches = self.identify(partition)
        entry = PartitionAnalysis(partition=partition, formats=[match.value for match in matches])
        chosen = registry.last_match(matches)
        if chosen is None:
            self._logger.info("filesystem-unknown", partition=partition.name)
            return entry

        try:
            entry.metadata = self.information(partition, chosen)
        except Exception as exc:
            self._logger.warning(
                "information-failed",
                partition=partition.name,
                format=chosen.value,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            entry.error = str(exc)
            return entry

        if collect_metadata and registry.supports_session(chosen):
            tree, error = self._scan(chosen, partition, cancel_event)
            entry.tree = tree
            entry.error = error
        return entry

    def _scan(
        self,
        format_id: FormatId,
        partition: Partition,
        cancel_event: Event | None,
    ) -> tuple[MetadataResult | None, str | None]:
        fs_session = registry.create_session(format_id)
        error = fs_session.mount(self.session().sectors, partition, self._encoding)
        if error is not ErrorNumber.NO_ERROR:
            self._logger.warning("mount-failed", partition=partition.name, format=format_id.value, error=error.value)
            return None, f"mount: {error.value}"

        try:
            return self._metadata_scanner.scan(fs_session, cancel_event=cancel_event), None
        except MetadataScanCancelled as exc:
            raise AnalysisCancelledError("Analiza została anulowana") from exc
        finally:
            fs_session.unmount()

    def _progress(self, message: str, *, percentage: int | None = None) -> None:
        self._progress_reporter.update(message, percentage=percentage)

    @staticmethod
    def _progress_percentage(current: int, total: int) -> int:
        if total == 0:
            return 50
        return int((current / total) * 80) + 15


__all__ = [
    "AnalysisCancelledError",
    "AnalysisManager",
    "DefaultProgressReporter",
    "ProgressReporter",
    "UnknownFilesystemError",
]
