"""Domyślna implementacja eksportu raportów (CSV/JSON).

Raport JSON zachowuje rozróżnienie ``None``/``""`` pól ``VolumeMetadata``
(``null`` kontra pusty napis); CSV zapisuje oba jako pustą komórkę.
"""

from __future__ import annotations

import csv
from dataclasses import fields
from datetime import datetime
import json
from pathlib import Path
from typing import Dict, Iterable, Iterator, List

from volume_analyzer.core.models import (
    AnalysisResult,
    DirectoryNode,
    FileMetadata,
    PartitionAnalysis,
    VolumeMetadata,
)
from volume_analyzer.metadata import MetadataResult
from .exporter import ExportFormat, ReportExporter

_METADATA_FIELDS: List[str] = [item.name for item in fields(VolumeMetadata)]


class DefaultReportExporter(ReportExporter):
    """Eksporter zapisujący wyniki analizy do plików CSV lub JSON."""

    def export(self, result: AnalysisResult, destination: Path, fmt: ExportFormat) -> Path:
        destination.parent.mkdir(parents=True, exist_ok=True)

        if fmt is ExportFormat.JSON:
            payload = self._build_json_payload(result)
            destination.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        elif fmt is ExportFormat.CSV:
            self._write_csv(result, destination)
        else:  # pragma: no cover - obsługa przyszłych formatów
            raise ValueError(f"Nieobsługiwany format eksportu: {fmt}")

        return destination

    # ------------------------------------------------------------------
    # JSON
    # ------------------------------------------------------------------

    def _build_json_payload(self, result: AnalysisResult) -> Dict[str, object]:
        return {
            "source": {
                "identifier": result.source.identifier,
                "type": result.source.source_type.value,
                "display_name": result.source.display_name,
                "path": str(result.source.path) if result.source.path else None,
            },
            "totals": {
                "partitions": len(result.partitions),
                "recognized": len(result.recognized()),
                "files": result.total_files(),
                "directories": result.total_directories(),
            },
            "partitions": [self._partition_to_dict(entry) for entry in result.partitions],
        }

    def _partition_to_dict(self, analysis: PartitionAnalysis) -> Dict[str, object]:
        partition = analysis.partition
        return {
            "name": partition.name,
            "start": partition.start,
            "length": partition.length,
            "size": partition.size,
            "type_tag": partition.type_tag,
            "scheme": partition.scheme,
            "formats": list(analysis.formats),
            "volume": self._volume_to_dict(analysis.metadata) if analysis.metadata else None,
            "metadata": self._metadata_to_dict(analysis.tree) if analysis.tree else None,
            "error": analysis.error,
        }

    @classmethod
    def _volume_to_dict(cls, metadata: VolumeMetadata) -> Dict[str, object]:
        return {name: cls._plain(getattr(metadata, name)) for name in _METADATA_FIELDS}

    def _metadata_to_dict(self, metadata: MetadataResult) -> Dict[str, object]:
        return {
            "total_files": metadata.total_files,
            "total_directories": metadata.total_directories,
            "tree": self._directory_to_dict(metadata.root),
        }

    def _directory_to_dict(self, node: DirectoryNode) -> Dict[str, object]:
        return {
            "name": node.name,
            "path": str(node.path),
            "created_at": node.created_at,
            "modified_at": node.modified_at,
            "accessed_at": node.accessed_at,
            "attributes": list(node.attributes),
            "files": [self._file_to_dict(file) for file in node.files],
            "subdirectories": [self._directory_to_dict(sub) for sub in node.subdirectories],
        }

    @staticmethod
    def _file_to_dict(file: FileMetadata) -> Dict[str, object]:
        return {
            "name": file.name,
            "path": str(file.path),
            "size": file.size,
            "created_at": file.created_at,
            "modified_at": file.modified_at,
            "accessed_at": file.accessed_at,
            "attributes": list(file.attributes),
        }

    @staticmethod
    def _plain(value: object) -> object:
        if isinstance(value, datetime):
            return value.isoformat()
        return value

    # ------------------------------------------------------------------
    # CSV
    # ------------------------------------------------------------------

    def _write_csv(self, result: AnalysisResult, destination: Path) -> None:
        fieldnames = [
            "partition",
            "format",
            "entry_type",
            "path",
            "name",
            "size",
            "created_at",
            "modified_at",
            "accessed_at",
            "attributes",
            *(f"volume_{name}" for name in _METADATA_FIELDS),
        ]
        with destination.open("w", newline="", encoding="utf-8") as handle:
            writer = csv.DictWriter(handle, fieldnames=fieldnames)
            writer.writeheader()
            for row in self._iter_csv_rows(result):
                writer.writerow(row)

    def _iter_csv_rows(self, result: AnalysisResult) -> Iterator[Dict[str, object]]:
        for analysis in result.partitions:
            base_row: Dict[str, object] = {
                "partition": analysis.partition.name,
                "format": analysis.formats[-1] if analysis.formats else None,
            }
            volume_row: Dict[str, object] = {
                **base_row,
                "entry_type": "volume",
                "size": analysis.partition.size,
            }
            if analysis.metadata is not None:
                for name in _METADATA_FIELDS:
                    volume_row[f"volume_{name}"] = self._plain(getattr(analysis.metadata, name))
            yield volume_row

            if analysis.tree is not None:
                yield from self._iter_directory_rows(analysis.tree.root, base_row)

    def _iter_directory_rows(
        self,
        node: DirectoryNode,
        base_row: Dict[str, object],
    ) -> Iterable[Dict[str, object]]:
        pending: List[DirectoryNode] = [node]
        while pending:
            current = pending.pop()
            yield {
                **base_row,
                "entry_type": "directory",
                "path": str(current.path),
                "name": current.name,
                "created_at": current.created_at,
                "modified_at": current.modified_at,
                "accessed_at": current.accessed_at,
                "attributes": ";".join(current.attributes),
            }
            for file_metadata in current.files:
                yield self._file_row(file_metadata, base_row)
            pending.extend(reversed(current.subdirectories))

    @staticmethod
    def _file_row(file_metadata: FileMetadata, base_row: Dict[str, object]) -> Dict[str, object]:
        return {
            **base_row,
            "entry_type": "file",
            "path": str(file_metadata.path),
            "name": file_metadata.name,
            "size": file_metadata.size,
            "created_at": file_metadata.created_at,
            "modified_at": file_metadata.modified_at,
            "accessed_at": file_metadata.accessed_at,
            "attributes": ";".join(file_metadata.attributes),
        }


__all__ = ["DefaultReportExporter"]
