"""Obsługa ISO9660 i pokrewnych formatów płyt optycznych."""

from .filesystem import Iso9660Filesystem
from .session import Iso9660Session

__all__ = [
	"Iso9660Filesystem",
	"Iso9660Session",
]
