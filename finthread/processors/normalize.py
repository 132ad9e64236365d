from __future__ import annotations

import html
import re
from datetime import datetime, timezone
from typing import Union

from bs4 import BeautifulSoup

from ..errors import DateParseError

_whitespace_re = re.compile(r"\s+")
_unicode_escape_re = re.compile(r"\\u([0-9A-Fa-f]{4})")
_named_zone_re = re.compile(r"\s[A-Za-z]{1,5}$")
_non_number_re = re.compile(r"[^0-9.,]+")

# Unix timestamps above this value are milliseconds.
_MAX_EPOCH_SECONDS = 9_999_999_999

# Tried in order, first layout that parses wins.
_DATE_LAYOUTS = (
    "%a, %d %b %Y %H:%M:%S %Z",  # RFC 1123
    "%a, %d %b %Y %H:%M:%S %z",  # RFC 1123 with numeric zone
    "%Y-%m-%dT%H:%M:%S%z",  # RFC 3339
    "%Y-%m-%dT%H:%M:%S.%f%z",  # RFC 3339 with fractional seconds
    "%Y-%m-%dT%H:%M:%S",  # ISO 8601 without zone
)

Datable = Union[str, int, None]


def clean_html_to_text(raw_html: str | None) -> str:
    """Clean HTML to normalized plain text.

    - Strip tags
    - Unescape HTML entities
    - Replace literal ``\\uXXXX`` escape sequences
    - Collapse whitespace
    """
    if not raw_html:
        return ""

    soup = BeautifulSoup(raw_html, "html.parser")
    text = soup.get_text(" ")
    text = html.unescape(text)
    text = replace_unicode_symbols(text)
    text = _whitespace_re.sub(" ", text)
    return text.strip()


def replace_unicode_symbols(text: str) -> str:
    """Replace escaped code points such as ``\\u0026`` with the character itself."""

    def _decode(match: re.Match) -> str:
        return chr(int(match.group(1), 16))

    return _unicode_escape_re.sub(_decode, text)


def _from_epoch(timestamp: int) -> datetime:
    if timestamp > _MAX_EPOCH_SECONDS:
        timestamp //= 1000
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def parse_date(value: Datable) -> datetime:
    """Parse a feed date into an aware UTC ``datetime``.

    Accepts RFC 1123 (named zones are read as UTC), RFC 1123 with a numeric
    zone, RFC 3339, zone-less ISO 8601 (read as UTC) and Unix epoch seconds
    or milliseconds. Raises ``DateParseError`` when nothing matches.
    """
    if value is None or isinstance(value, bool):
        raise DateParseError(value)
    if isinstance(value, int):
        return _from_epoch(value)

    text = str(value).strip()
    if not text:
        raise DateParseError(value)
    if text.isdigit():
        return _from_epoch(int(text))

    for fmt in _DATE_LAYOUTS:
        candidate = text
        if fmt.endswith("%Z"):
            # strptime only knows UTC/GMT, any other abbreviation is read as UTC
            candidate = _named_zone_re.sub(" GMT", text)
        try:
            parsed = datetime.strptime(candidate, fmt)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)

    raise DateParseError(value)


def str_value_to_float(value: str) -> float:
    """Extract a number from strings like ``"4.5 M"`` or ``"€30.8b"``; 0.0 if none."""
    cleaned = _non_number_re.sub("", value or "").replace(",", ".", 1)
    try:
        return float(cleaned)
    except ValueError:
        return 0.0
