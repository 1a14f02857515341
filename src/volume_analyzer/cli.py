"""Interfejs wiersza poleceń do uruchamiania analiz."""

from __future__ import annotations

import sys
from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import List

import structlog

from volume_analyzer.core.analysis_manager import AnalysisManager
from volume_analyzer.drivers import (
    DataSourceDriver,
    PartitionProvider,
    RawImageDriver,
    TskImageDriver,
    TskPartitionProvider,
    WholeDevicePartitionProvider,
)
from volume_analyzer.metadata import SessionMetadataScanner
from volume_analyzer.reporting import DefaultReportExporter, ExportFormat
from volume_analyzer.shared import AppConfig, configure_logging, install_crash_reporting, write_error_report


def _build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="volume-analyzer",
        description="Rozpoznaje systemy plików w obrazie dysku i zapisuje raport z ich metadanymi.",
    )
    parser.add_argument(
        "source",
        type=Path,
        help="Ścieżka do obrazu dysku",
    )
    parser.add_argument(
        "--partitions",
        choices=["whole", "tsk"],
        default="whole",
        help="Źródło listy partycji: całe urządzenie lub tablica partycji przez pytsk3 (domyślnie: whole)",
    )
    parser.add_argument(
        "--sector-size",
        type=int,
        default=512,
        help="Rozmiar sektora obrazu w bajtach (domyślnie: 512)",
    )
    parser.add_argument(
        "--encoding",
        help="Kodowanie nazw nadpisujące domyślne kodowanie formatu",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("report.json"),
        help="Ścieżka do pliku wynikowego (domyślnie: report.json)",
    )
    parser.add_argument(
        "--format",
        choices=["json", "csv"],
        default="json",
        help="Format raportu (domyślnie: json)",
    )
    parser.add_argument(
        "--max-depth",
        type=int,
        help="Maksymalna głębokość skanowania katalogów (domyślnie: z konfiguracji)",
    )
    parser.add_argument(
        "--skip-metadata",
        action="store_true",
        help="Pomija montowanie wolumenów i zbieranie metadanych plików",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Wyświetla szczegółowe logi",
    )
    return parser


def _build_driver(args: Namespace) -> tuple[DataSourceDriver, PartitionProvider] | None:
    logger = structlog.get_logger(__name__)
    if args.partitions == "tsk":
        if TskImageDriver is None or TskPartitionProvider is None:
            logger.error("pytsk3-not-available")
            return None
        return (
            TskImageDriver(image_paths=[args.source], sector_size=args.sector_size),
            TskPartitionProvider(),
        )
    return RawImageDriver(image_paths=[args.source], sector_size=args.sector_size), WholeDevicePartitionProvider()


def _run_analysis(args: Namespace, config: AppConfig) -> int:
    logger = structlog.get_logger(__name__)
    manager: AnalysisManager | None = None

    if not args.source.exists():
        logger.error("image-not-found", path=str(args.source))
        return 1

    built = _build_driver(args)
    if built is None:
        return 1
    driver, partition_provider = built

    try:
        max_depth = args.max_depth if args.max_depth is not None else config.max_depth
        manager = AnalysisManager(
            driver=driver,
            partition_provider=partition_provider,
            metadata_scanner=SessionMetadataScanner(max_depth=max_depth),
            report_exporter=DefaultReportExporter(),
            encoding=args.encoding or config.default_encoding,
        )

        logger.info("starting-analysis", source=str(args.source), partitions=args.partitions)
        sources = list(driver.enumerate_sources())
        if not sources:
            logger.error("no-sources-found")
            return 1

        session = manager.start_session(sources[0])
        partition_names: List[str] = [partition.name for partition in session.partitions]
        if not partition_names:
            logger.warning("no-partitions-detected")
            return 0

        logger.info("analyzing-partitions", count=len(partition_names))
        result = manager.analyze(partition_names, collect_metadata=not args.skip_metadata)

        fmt = ExportFormat(args.format)
        output_path = manager.export_report(result, args.output, fmt)

        logger.info(
            "analysis-complete",
            partitions=len(result.partitions),
            recognized=len(result.recognized()),
            files=result.total_files(),
            directories=result.total_directories(),
            report=str(output_path),
        )
        return 0

    except Exception as exc:  # pragma: no cover - obsługa błędów środowiskowych
        logger.exception("analysis-failed", error=str(exc))
        try:
            report = write_error_report(exc, where="cli", context={"source": str(args.source)})
            logger.info("error-report-written", path=str(report.path))
        except OSError:
            pass
        return 1
    finally:
        if manager is not None:
            manager.close()
        else:
            driver.close()


def main(argv: List[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    config = AppConfig.from_env()
    configure_logging(level="DEBUG" if args.verbose else config.log_level)
    install_crash_reporting()
    return _run_analysis(args, config)


if __name__ == "__main__":
    sys.exit(main())
