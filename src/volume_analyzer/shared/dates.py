"""Konwersje dat zapisanych w strukturach dyskowych.

Formaty przechowujące czas UTC (epoki uniksowe, deskryptory ISO9660 z
przesunięciem strefy) dają wartości ze strefą UTC. Formaty zapisujące czas
lokalny bez przesunięcia (DOS, Xbox, Amiga, Mac, ProDOS) dają naiwne
``datetime`` bez modyfikacji.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

_MAC_EPOCH = datetime(1904, 1, 1)
_AMIGA_EPOCH = datetime(1978, 1, 1)
_UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def dos_to_datetime(date: int, time: int, *, year_base: int = 1980, centiseconds: int = 0) -> datetime | None:
    """Data/czas w formacie MS-DOS (czas lokalny)."""

    year = ((date >> 9) & 0x7F) + year_base
    month = (date >> 5) & 0x0F
    day = date & 0x1F
    hour = (time >> 11) & 0x1F
    minute = (time >> 5) & 0x3F
    second = (time & 0x1F) * 2
    try:
        value = datetime(year, month, day, hour, minute, min(second, 59))
    except ValueError:
        return None
    if centiseconds:
        value += timedelta(milliseconds=centiseconds * 10)
    return value


def unix_to_datetime(seconds: int) -> datetime | None:
    """Sekundy od 1970-01-01 UTC."""

    try:
        return _UNIX_EPOCH + timedelta(seconds=seconds)
    except OverflowError:
        return None


def unix_unsigned_to_datetime(seconds: int) -> datetime | None:
    return unix_to_datetime(seconds & 0xFFFFFFFF)


def unix_signed_to_datetime(seconds: int) -> datetime | None:
    seconds &= 0xFFFFFFFF
    if seconds & 0x80000000:
        seconds -= 0x100000000
    return unix_to_datetime(seconds)


def mac_to_datetime(seconds: int) -> datetime | None:
    """Sekundy od 1904-01-01 (czas lokalny)."""

    try:
        return _MAC_EPOCH + timedelta(seconds=seconds)
    except OverflowError:
        return None


def amiga_to_datetime(days: int, minutes: int, ticks: int) -> datetime | None:
    """Dni/minuty/tyknięcia (1/50 s) od 1978-01-01 (czas lokalny)."""

    try:
        return _AMIGA_EPOCH + timedelta(days=days, minutes=minutes, seconds=ticks / 50)
    except OverflowError:
        return None


def prodos_to_datetime(date: int, time: int) -> datetime | None:
    """Data ProDOS (rok od 1900, lata < 40 to XXI wiek)."""

    year = (date >> 9) & 0x7F
    month = (date >> 5) & 0x0F
    day = date & 0x1F
    hour = (time >> 8) & 0x1F
    minute = time & 0x3F
    year += 1900
    if year < 1940:
        year += 100
    try:
        return datetime(year, month, day, hour, minute)
    except ValueError:
        return None


def iso9660_decimal_to_datetime(raw: bytes) -> datetime | None:
    """Data 17-bajtowa ``YYYYMMDDHHMMSSCC`` z przesunięciem strefy (co 15 min)."""

    if len(raw) < 17:
        return None
    digits = raw[:16]
    if digits.strip(b"0\x00 ") == b"":
        return None
    try:
        text = digits.decode("ascii")
        year, month, day = int(text[0:4]), int(text[4:6]), int(text[6:8])
        hour, minute, second = int(text[8:10]), int(text[10:12]), int(text[12:14])
        hundredths = int(text[14:16])
        offset = raw[16] - 256 if raw[16] > 127 else raw[16]
        local = datetime(
            year, month, day, hour, minute, second, hundredths * 10000,
            tzinfo=timezone(timedelta(minutes=15 * offset)),
        )
    except ValueError:
        return None
    return local.astimezone(timezone.utc)


def iso9660_record_to_datetime(raw: bytes) -> datetime | None:
    """Data 7-bajtowa rekordu katalogu (rok od 1900, przesunięcie strefy)."""

    if len(raw) < 7 or not any(raw[:6]):
        return None
    offset = raw[6] - 256 if raw[6] > 127 else raw[6]
    try:
        local = datetime(
            1900 + raw[0], raw[1], raw[2], raw[3], raw[4], raw[5],
            tzinfo=timezone(timedelta(minutes=15 * offset)),
        )
    except ValueError:
        return None
    return local.astimezone(timezone.utc)


__all__ = [
    "amiga_to_datetime",
    "dos_to_datetime",
    "iso9660_decimal_to_datetime",
    "iso9660_record_to_datetime",
    "mac_to_datetime",
    "prodos_to_datetime",
    "unix_signed_to_datetime",
    "unix_to_datetime",
    "unix_unsigned_to_datetime",
]
