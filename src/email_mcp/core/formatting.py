"""Normalisation helpers turning protocol values into output fields."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, date, datetime
from email.header import decode_header, make_header
from typing import Protocol

__all__ = [
    "decode_text",
    "format_address",
    "format_addresses",
    "normalize_flags",
    "parse_search_date",
    "serialize_datetime",
]


class AddressLike(Protocol):
    """Structural view of an ENVELOPE address as produced by ``imapclient``."""

    name: bytes | str | None
    mailbox: bytes | str | None
    host: bytes | str | None


def decode_text(value: bytes | str | None) -> str | None:
    """Decode raw header bytes, expanding RFC 2047 encoded words."""
    if value is None:
        return None
    text = value.decode("utf-8", "replace") if isinstance(value, bytes) else value
    if "=?" not in text:
        return text
    try:
        return str(make_header(decode_header(text)))
    except (LookupError, UnicodeDecodeError, ValueError):
        return text


def format_address(name: str | None, address: str) -> str:
    """Render ``Name <address>`` or the bare address when there is no name."""
    if name:
        return f"{name} <{address}>"
    return address


def format_addresses(addresses: Iterable[AddressLike] | None) -> list[str] | None:
    """Format an ENVELOPE address list, returning ``None`` when it is empty.

    RFC 3501 group markers (entries without a host) are skipped.
    """
    if not addresses:
        return None
    formatted: list[str] = []
    for entry in addresses:
        mailbox = decode_text(entry.mailbox)
        host = decode_text(entry.host)
        if not mailbox or not host:
            continue
        formatted.append(format_address(decode_text(entry.name), f"{mailbox}@{host}"))
    return formatted or None


def serialize_datetime(value: datetime | str | None) -> str | None:
    """Serialise a timestamp to ISO 8601 in UTC, passing raw strings through.

    Naive values are taken as host local time, which is what ``imapclient``
    produces when time normalisation is on. ``imapclient`` drops ENVELOPE
    dates it cannot parse, so such messages serialise to ``None`` rather
    than to the raw header text.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return value.astimezone(UTC).isoformat()


def normalize_flags(flags: Iterable[bytes | str] | None) -> list[str]:
    """Decode a FLAGS response into a list of strings."""
    if not flags:
        return []
    return [
        flag.decode("ascii", errors="replace") if isinstance(flag, bytes) else flag
        for flag in flags
    ]


def parse_search_date(value: str | date) -> date:
    """Parse an ISO 8601 date or timestamp into the date SEARCH expects.

    Raises:
        ValueError: If the value is not ISO 8601.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError as exc:
        raise ValueError(f"Invalid date '{value}': expected ISO 8601") from exc
