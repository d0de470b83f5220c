# -*- coding: utf-8 -*-

"""
Unit tests for header parsing helpers.
"""

import pytest

from schemagate.headers import (
    header_tokens,
    is_utf8_charset,
    is_utf8_json_content_type,
    parse_content_length,
    parse_content_type,
    preferred_charsets,
    preferred_media_types,
)


class TestPreferredMediaTypes:
    """Tests for Accept parsing."""

    def test_sorted_by_quality(self):
        """
        What it does: Verifies entries are ordered by q-value.
        Purpose: Most preferred types come first.
        """
        result = preferred_media_types("text/html;q=0.5, application/json")

        print(f"Result: {result}")
        assert result == ["application/json", "text/html"]

    def test_zero_quality_excluded(self):
        """
        What it does: Verifies q=0 entries are dropped.
        Purpose: q=0 means "not acceptable".
        """
        assert preferred_media_types("application/json;q=0, text/html") == ["text/html"]

    def test_malformed_entries_skipped(self):
        assert preferred_media_types("garbage, */*") == ["*/*"]

    def test_missing_header(self):
        assert preferred_media_types(None) == []
        assert preferred_media_types("") == []

    def test_case_insensitive(self):
        assert preferred_media_types("Application/JSON") == ["application/json"]


class TestCharsets:
    """Tests for Accept-Charset parsing."""

    def test_preferred_charsets(self):
        result = preferred_charsets("iso-8859-1;q=0.2, UTF-8")

        print(f"Result: {result}")
        assert result == ["utf-8", "iso-8859-1"]

    @pytest.mark.parametrize("charset, expected", [
        ("utf-8", True),
        ("UTF-8", True),
        ("utf8", True),
        ("latin-1", False),
        (None, False),
    ])
    def test_is_utf8_charset(self, charset, expected):
        """
        What it does: Verifies both UTF-8 spellings are recognized.
        Purpose: Clients send "utf-8" and "utf8".
        """
        assert is_utf8_charset(charset) is expected


class TestContentType:
    """Tests for Content-Type parsing."""

    def test_parse_json_content_type(self):
        content_type = parse_content_type("application/json; charset=UTF-8")

        print(f"Parsed: {content_type}")
        assert content_type.media_type == "application/json"
        assert content_type.charset == "utf-8"

    def test_parse_multipart_boundary(self):
        """
        What it does: Verifies the boundary parameter is extracted.
        Purpose: The multipart reader needs it.
        """
        content_type = parse_content_type('multipart/form-data; boundary="abc123"')

        assert content_type.media_type == "multipart/form-data"
        assert content_type.boundary == "abc123"

    def test_missing_content_type(self):
        assert parse_content_type(None) is None
        assert parse_content_type("") is None

    @pytest.mark.parametrize("header, expected", [
        ("application/json; charset=utf-8", True),
        ("application/json;charset=utf8", True),
        ("application/json", False),
        ("application/json; charset=latin-1", False),
        ("text/plain; charset=utf-8", False),
        (None, False),
    ])
    def test_is_utf8_json_content_type(self, header, expected):
        """
        What it does: Verifies JSON bodies need an explicit UTF-8 charset.
        Purpose: The body reader only decodes UTF-8.
        """
        assert is_utf8_json_content_type(header) is expected


class TestTokensAndLength:
    """Tests for token lists and Content-Length."""

    def test_header_tokens(self):
        assert header_tokens("keep-alive, Upgrade") == ["keep-alive", "upgrade"]
        assert header_tokens(None) == []

    @pytest.mark.parametrize("header, expected", [
        ("0", 0),
        ("500", 500),
        (" 42 ", 42),
        ("-1", None),
        ("1.5", None),
        ("abc", None),
        ("", None),
        (None, None),
    ])
    def test_parse_content_length(self, header, expected):
        """
        What it does: Verifies Content-Length parsing.
        Purpose: Only non-negative integers are valid lengths.
        """
        assert parse_content_length(header) == expected
