"""Rozpoznawanie formatów systemów plików i sesje tylko do odczytu."""

from .base import (
	CorruptStructureError,
	DirNode,
	FileNode,
	Filesystem,
	FilesystemError,
	MountOptions,
	ReadOnlyFilesystem,
)
from .registry import (
	FormatId,
	create_session,
	get_information,
	identify,
	identify_all,
	last_match,
	supports_session,
)
from .session import ReadOnlySession

__all__ = [
	"CorruptStructureError",
	"DirNode",
	"FileNode",
	"Filesystem",
	"FilesystemError",
	"FormatId",
	"MountOptions",
	"ReadOnlyFilesystem",
	"ReadOnlySession",
	"create_session",
	"get_information",
	"identify",
	"identify_all",
	"last_match",
	"supports_session",
]
