# -*- coding: utf-8 -*-

# Schema Gate
# Copyright (C) 2025 Jwadow
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Request header parsing helpers.

Stateless functions used by the header checks:
- Accept / Accept-Charset preference lists (q-values honoured, q=0 dropped)
- Content-Type media type and charset
- Connection / Upgrade tokens for WebSocket handshake recognition
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from python_multipart.multipart import parse_options_header

UTF8_CHARSETS = ("utf-8", "utf8")


def _parse_quality(params: List[str]) -> float:
    """Return the q parameter of one list entry (default 1.0, invalid -> 0)."""
    for param in params:
        name, _, value = param.partition("=")
        if name.strip().lower() == "q":
            try:
                quality = float(value.strip())
            except ValueError:
                return 0.0
            return min(max(quality, 0.0), 1.0)
    return 1.0


def _preferences(header: Optional[str]) -> List[Tuple[str, float]]:
    """Split a comma-separated header into (lowercase token, quality) pairs."""
    if not header:
        return []
    entries: List[Tuple[str, float]] = []
    for raw in header.split(","):
        parts = [part.strip() for part in raw.split(";")]
        token = parts[0].lower()
        if not token:
            continue
        entries.append((token, _parse_quality(parts[1:])))
    return entries


def preferred_media_types(header: Optional[str]) -> List[str]:
    """
    Return acceptable media types from an Accept header, most preferred first.

    Entries with q=0 are excluded; malformed entries (no "/") are skipped.

    Example:
        >>> preferred_media_types("text/html;q=0.5, application/json")
        ['application/json', 'text/html']
    """
    entries = [
        (token, quality)
        for token, quality in _preferences(header)
        if quality > 0 and "/" in token
    ]
    entries.sort(key=lambda entry: entry[1], reverse=True)
    return [token for token, _ in entries]


def preferred_charsets(header: Optional[str]) -> List[str]:
    """Return acceptable charsets from an Accept-Charset header, most preferred first."""
    entries = [(token, quality) for token, quality in _preferences(header) if quality > 0]
    entries.sort(key=lambda entry: entry[1], reverse=True)
    return [token for token, _ in entries]


def is_utf8_charset(charset: Optional[str]) -> bool:
    return charset is not None and charset.strip().lower() in UTF8_CHARSETS


@dataclass(frozen=True)
class ContentType:
    """Parsed Content-Type header."""

    media_type: str
    charset: Optional[str] = None
    boundary: Optional[str] = None


def parse_content_type(header: Optional[str]) -> Optional[ContentType]:
    """
    Parse a Content-Type header.

    Returns:
        ContentType with lower-case media type, or None when absent/empty
    """
    if not header:
        return None
    media_type, options = parse_options_header(header)
    if not media_type:
        return None
    charset = options.get(b"charset")
    boundary = options.get(b"boundary")
    return ContentType(
        media_type=media_type.decode("latin-1"),
        charset=charset.decode("latin-1").lower() if charset else None,
        boundary=boundary.decode("latin-1") if boundary else None,
    )


def is_utf8_json_content_type(header: Optional[str]) -> bool:
    """True for ``application/json`` with an explicit UTF-8 charset."""
    content_type = parse_content_type(header)
    return (
        content_type is not None
        and content_type.media_type == "application/json"
        and is_utf8_charset(content_type.charset)
    )


def header_tokens(header: Optional[str]) -> List[str]:
    """Split a comma-separated token header (e.g. Connection) into lower-case tokens."""
    if not header:
        return []
    return [token.strip().lower() for token in header.split(",") if token.strip()]


def parse_content_length(header: Optional[str]) -> Optional[int]:
    """Return the Content-Length as a non-negative int, or None when missing/invalid."""
    if header is None:
        return None
    value = header.strip()
    if not (value.isascii() and value.isdigit()):
        return None
    return int(value)
