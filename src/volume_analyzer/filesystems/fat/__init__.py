"""Obsługa rodziny FAT."""

from .filesystem import FatFilesystem
from .session import FatSession

__all__ = [
	"FatFilesystem",
	"FatSession",
]
