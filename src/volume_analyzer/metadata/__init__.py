"""Skanowanie struktur katalogów i zbieranie metadanych."""

from .scanner import CancelEvent, MetadataResult, MetadataScanCancelled, MetadataScanner, ProgressCallback
from .session_scanner import SessionMetadataScanner

__all__ = [
	"CancelEvent",
	"MetadataResult",
	"MetadataScanCancelled",
	"MetadataScanner",
	"ProgressCallback",
	"SessionMetadataScanner",
]
