"""Dekodowanie pól tekstowych o stałej szerokości.

Każda funkcja jawnie określa, co dzieje się z wypełnieniem pola: formaty
różnią się tym, czy końcowe spacje są częścią nazwy (np. identyfikatory OEM
w FAT), czy tylko dopełnieniem. Wywołujący zawsze wybiera zachowanie sam.
"""

from __future__ import annotations

import codecs

from structlog import get_logger

_logger = get_logger(__name__)


def resolve_encoding(encoding: str | None, default: str) -> str:
    """Zwraca nazwę kodeka; nieznane kodowanie zastępuje domyślnym formatu."""

    if not encoding:
        return default
    try:
        return codecs.lookup(encoding).name
    except LookupError:
        _logger.warning("unknown-encoding", encoding=encoding, fallback=default)
        return default


def _decode(data: bytes, encoding: str) -> str:
    return data.decode(encoding, errors="replace")


def c_string(data: bytes, encoding: str = "ascii", *, start: int = 0, two_byte: bool = False) -> str:
    """Tekst zakończony znakiem NUL; bez terminatora używana jest całość pola."""

    chunk = bytes(data[start:])
    if two_byte:
        for index in range(0, len(chunk) - 1, 2):
            if chunk[index] == 0 and chunk[index + 1] == 0:
                chunk = chunk[:index]
                break
        else:
            chunk = chunk[: len(chunk) - (len(chunk) % 2)]
    else:
        end = chunk.find(b"\x00")
        if end >= 0:
            chunk = chunk[:end]
    return _decode(chunk, encoding)


def pascal_string(data: bytes, encoding: str = "ascii", *, start: int = 0) -> str:
    """Tekst poprzedzony bajtem długości (BCPL/Pascal)."""

    if start >= len(data):
        return ""
    length = data[start]
    chunk = bytes(data[start + 1 : start + 1 + length])
    return _decode(chunk, encoding)


def decode_text(data: bytes, encoding: str, *, strip_padding: bool, padding: bytes = b" \x00") -> str:
    """Dekoduje pole, usuwając (``strip_padding``) lub zachowując dopełnienie."""

    chunk = bytes(data)
    if strip_padding:
        chunk = chunk.rstrip(padding)
    return _decode(chunk, encoding)


def is_printable_ascii(data: bytes) -> bool:
    """Czy wszystkie bajty leżą w zakresie 0x20-0x7F."""

    return all(0x20 <= byte <= 0x7F for byte in data)


__all__ = [
    "c_string",
    "decode_text",
    "is_printable_ascii",
    "pascal_string",
    "resolve_encoding",
]
