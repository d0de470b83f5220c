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
Tagged request errors and their client-facing descriptions.

Architecture:
- ErrorTag: Closed set of tags produced by the built-in stages
- TaggedError: Immutable error value (tag + diagnostic context)
- *_ERRORS: Per-stage tag groups; an endpoint's error set is their union
- describe_error(): Maps any tagged error to an HTTP status and message
- ContractViolation: Raised when business logic breaks the declared contract

Example:
    >>> info = describe_error(TaggedError(ErrorTag.AUTH_REQUIRED))
    >>> info.status
    401
    >>> info.message
    'Authentication is required.'
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping

from loguru import logger


class ErrorTag(str, Enum):
    """Tags emitted by the built-in stages."""

    # Protocol contract
    WRONG_METHOD = "WrongMethod"
    UPGRADE_DENIED = "UpgradeDenied"
    UPGRADE_REQUIRED = "UpgradeRequired"
    UPGRADE_ERROR = "UpgradeError"

    # Auth
    CSRF_HEADER_REQUIRED = "CSRFHeaderRequired"
    AUTH_REQUIRED = "AuthRequired"

    # Negotiation
    INVALID_ACCEPT_HEADER = "InvalidAcceptHeader"
    INVALID_ACCEPT_CHARSET_HEADER = "InvalidAcceptCharsetHeader"

    # Content
    INVALID_CONTENT_TYPE_HEADER = "InvalidContentTypeHeader"
    UNSUPPORTED_CONTENT_ENCODING_HEADER = "UnsupportedContentEncodingHeader"
    INVALID_CONTENT_LENGTH_HEADER = "InvalidContentLengthHeader"

    # URL query input (GET)
    URL_QUERY_REQUIRED = "URLQueryRequired"
    URL_QUERY_MALFORMED = "URLQueryMalformed"
    URL_QUERY_INPUT_INVALID = "URLQueryInputInvalid"

    # Multipart body
    MULTIPART_STREAM_CLOSED = "MultipartStreamClosed"
    MULTIPART_FILE_BELOW_MINIMUM_SIZE = "MultipartFileBelowMinimumSize"
    MULTIPART_MAXIMUM_FILE_COUNT_EXCEEDED = "MultipartMaximumFileCountExceeded"
    MULTIPART_MAXIMUM_FILE_SIZE_EXCEEDED = "MultipartMaximumFileSizeExceeded"
    MULTIPART_MAXIMUM_TOTAL_FILE_SIZE_EXCEEDED = "MultipartMaximumTotalFileSizeExceeded"
    MULTIPART_MAXIMUM_FIELDS_COUNT_EXCEEDED = "MultipartMaximumFieldsCountExceeded"
    MULTIPART_MAXIMUM_FIELDS_SIZE_EXCEEDED = "MultipartMaximumFieldsSizeExceeded"
    MULTIPART_UNKNOWN_PARSE_ERROR = "MultipartUnknownParseError"
    MULTIPART_FILES_INVALID = "MultipartFilesInvalid"
    MULTIPART_JSON_FIELD_REQUIRED = "MultipartJSONFieldRequired"
    MULTIPART_JSON_FIELD_MALFORMED = "MultipartJSONFieldMalformed"
    MULTIPART_JSON_FIELD_INPUT_INVALID = "MultipartJSONFieldInputInvalid"

    # JSON body
    JSON_TOO_LARGE = "JSONTooLarge"
    JSON_STREAM_CLOSED = "JSONStreamClosed"
    JSON_STREAM_MALFORMED = "JSONStreamMalformed"
    JSON_STREAM_UNKNOWN_PARSE_ERROR = "JSONStreamUnknownParseError"
    JSON_INPUT_INVALID = "JSONInputInvalid"

    # Inbound WebSocket frames
    NON_STRING_MESSAGE = "NonStringMessage"
    NON_JSON_MESSAGE = "NonJSONMessage"
    INVALID_MESSAGE = "InvalidMessage"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TaggedError:
    """
    Request-level failure value.

    Created where the violation is detected and handed on unchanged.
    User stages may create their own tags; an optional ``status`` lets them
    choose the HTTP status their error maps to.

    Attributes:
        tag: Error tag (an ErrorTag or any user-defined string)
        context: Diagnostic details (offending header, input, diagnostic...)
        status: Optional HTTP status override for user-defined errors
    """

    tag: str
    context: Mapping[str, Any] = field(default_factory=dict)
    status: Any = None

    def __post_init__(self) -> None:
        if isinstance(self.tag, ErrorTag):
            object.__setattr__(self, "tag", self.tag.value)

    def __getitem__(self, key: str) -> Any:
        return self.context[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.context.get(key, default)


def tagged(tag: str, **context: Any) -> TaggedError:
    """Shorthand for TaggedError(tag, context)."""
    return TaggedError(tag=tag, context=context)


class ContractViolation(RuntimeError):
    """
    Business logic produced something the endpoint never declared.

    This is a programming error (unexpected status or response kind), not a
    client fault. It is never turned into a tagged error response.
    """

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.details = details


# ==================================================================================================
# Per-stage tag groups
# ==================================================================================================

METHOD_ERRORS = frozenset({ErrorTag.WRONG_METHOD.value})
UPGRADE_ERRORS = frozenset({
    ErrorTag.UPGRADE_DENIED.value,
    ErrorTag.UPGRADE_REQUIRED.value,
    ErrorTag.UPGRADE_ERROR.value,
})
AUTH_ERRORS = frozenset({
    ErrorTag.CSRF_HEADER_REQUIRED.value,
    ErrorTag.AUTH_REQUIRED.value,
})
NEGOTIATION_ERRORS = frozenset({
    ErrorTag.INVALID_ACCEPT_HEADER.value,
    ErrorTag.INVALID_ACCEPT_CHARSET_HEADER.value,
})
CONTENT_ERRORS = frozenset({
    ErrorTag.INVALID_CONTENT_TYPE_HEADER.value,
    ErrorTag.UNSUPPORTED_CONTENT_ENCODING_HEADER.value,
    ErrorTag.INVALID_CONTENT_LENGTH_HEADER.value,
})
URL_QUERY_ERRORS = frozenset({
    ErrorTag.URL_QUERY_REQUIRED.value,
    ErrorTag.URL_QUERY_MALFORMED.value,
    ErrorTag.URL_QUERY_INPUT_INVALID.value,
})
MULTIPART_STREAM_ERRORS = frozenset({
    ErrorTag.MULTIPART_STREAM_CLOSED.value,
    ErrorTag.MULTIPART_FILE_BELOW_MINIMUM_SIZE.value,
    ErrorTag.MULTIPART_MAXIMUM_FILE_COUNT_EXCEEDED.value,
    ErrorTag.MULTIPART_MAXIMUM_FILE_SIZE_EXCEEDED.value,
    ErrorTag.MULTIPART_MAXIMUM_TOTAL_FILE_SIZE_EXCEEDED.value,
    ErrorTag.MULTIPART_MAXIMUM_FIELDS_COUNT_EXCEEDED.value,
    ErrorTag.MULTIPART_MAXIMUM_FIELDS_SIZE_EXCEEDED.value,
    ErrorTag.MULTIPART_UNKNOWN_PARSE_ERROR.value,
    ErrorTag.MULTIPART_FILES_INVALID.value,
})
MULTIPART_JSON_FIELD_ERRORS = frozenset({
    ErrorTag.MULTIPART_JSON_FIELD_REQUIRED.value,
    ErrorTag.MULTIPART_JSON_FIELD_MALFORMED.value,
    ErrorTag.MULTIPART_JSON_FIELD_INPUT_INVALID.value,
})
JSON_BODY_ERRORS = frozenset({
    ErrorTag.JSON_TOO_LARGE.value,
    ErrorTag.JSON_STREAM_CLOSED.value,
    ErrorTag.JSON_STREAM_MALFORMED.value,
    ErrorTag.JSON_STREAM_UNKNOWN_PARSE_ERROR.value,
    ErrorTag.JSON_INPUT_INVALID.value,
})
WEBSOCKET_MESSAGE_ERRORS = frozenset({
    ErrorTag.NON_STRING_MESSAGE.value,
    ErrorTag.NON_JSON_MESSAGE.value,
    ErrorTag.INVALID_MESSAGE.value,
})


# ==================================================================================================
# Client-facing descriptions
# ==================================================================================================


@dataclass(frozen=True)
class ErrorInfo:
    """
    Client-facing description of a tagged error.

    Attributes:
        tag: Error tag
        status: HTTP status the error maps to
        title: Short summary (RFC 7807 title)
        message: Human-readable explanation
    """

    tag: str
    status: int
    title: str
    message: str


# tag -> (status, title, message)
_ERROR_DESCRIPTIONS: Dict[str, tuple] = {
    "WrongMethod": (405, "Method Not Allowed", "This endpoint does not accept the request method."),
    "UpgradeDenied": (400, "Bad Request", "This endpoint does not support protocol upgrades."),
    "UpgradeRequired": (426, "Upgrade Required", "This endpoint requires a WebSocket connection."),
    "UpgradeError": (400, "Bad Request", "The WebSocket handshake headers are invalid."),
    "CSRFHeaderRequired": (403, "Forbidden", "The CSRF header is required."),
    "AuthRequired": (401, "Unauthorized", "Authentication is required."),
    "InvalidAcceptHeader": (406, "Not Acceptable", "None of the accepted media types can be produced."),
    "InvalidAcceptCharsetHeader": (406, "Not Acceptable", "UTF-8 must be an accepted charset."),
    "InvalidContentTypeHeader": (415, "Unsupported Media Type", "The request Content-Type is not supported."),
    "UnsupportedContentEncodingHeader": (415, "Unsupported Media Type", "Content-Encoding is not supported."),
    "InvalidContentLengthHeader": (411, "Length Required", "A valid Content-Length header is required."),
    "URLQueryRequired": (400, "Bad Request", "The JSON query parameter is required."),
    "URLQueryMalformed": (400, "Bad Request", "The JSON query parameter is not valid JSON."),
    "URLQueryInputInvalid": (400, "Bad Request", "The JSON query parameter does not match the expected input."),
    "MultipartStreamClosed": (400, "Bad Request", "The upload was interrupted."),
    "MultipartFileBelowMinimumSize": (400, "Bad Request", "An uploaded file is smaller than allowed."),
    "MultipartMaximumFileCountExceeded": (413, "Content Too Large", "Too many files were uploaded."),
    "MultipartMaximumFileSizeExceeded": (413, "Content Too Large", "An uploaded file is larger than allowed."),
    "MultipartMaximumTotalFileSizeExceeded": (413, "Content Too Large", "The uploaded files are larger than allowed in total."),
    "MultipartMaximumFieldsCountExceeded": (413, "Content Too Large", "Too many form fields were sent."),
    "MultipartMaximumFieldsSizeExceeded": (413, "Content Too Large", "The form fields are larger than allowed."),
    "MultipartUnknownParseError": (500, "Internal Server Error", "The upload could not be processed."),
    "MultipartFilesInvalid": (400, "Bad Request", "The uploaded files do not match the expected files."),
    "MultipartJSONFieldRequired": (400, "Bad Request", "The JSON form field is required."),
    "MultipartJSONFieldMalformed": (400, "Bad Request", "The JSON form field is not valid JSON."),
    "MultipartJSONFieldInputInvalid": (400, "Bad Request", "The JSON form field does not match the expected input."),
    "JSONTooLarge": (413, "Content Too Large", "The JSON body is larger than allowed."),
    "JSONStreamClosed": (400, "Bad Request", "The request body was interrupted."),
    "JSONStreamMalformed": (400, "Bad Request", "The request body is not valid UTF-8 JSON."),
    "JSONStreamUnknownParseError": (500, "Internal Server Error", "The request body could not be processed."),
    "JSONInputInvalid": (400, "Bad Request", "The request body does not match the expected input."),
}

_DEFAULT_USER_ERROR_STATUS = 400


def describe_error(error: Any) -> ErrorInfo:
    """
    Maps a stage error to its client-facing description.

    Built-in tags have fixed statuses. User-defined TaggedErrors use their own
    ``status`` (default 400). Anything that is not a TaggedError maps to 500.

    Args:
        error: Error value produced by a stage

    Returns:
        ErrorInfo with status, title and message

    Example:
        >>> describe_error(TaggedError("SessionExpired", status=401)).status
        401
    """
    if not isinstance(error, TaggedError):
        logger.error("[Errors] Non-tagged stage error cannot be described: {!r}", error)
        return ErrorInfo(
            tag="UnknownError",
            status=500,
            title="Internal Server Error",
            message="The request could not be processed.",
        )

    known = _ERROR_DESCRIPTIONS.get(error.tag)
    if known is not None:
        status, title, message = known
        return ErrorInfo(tag=error.tag, status=status, title=title, message=message)

    status = int(error.status) if error.status is not None else _DEFAULT_USER_ERROR_STATUS
    message = error.context.get("message") if isinstance(error.context.get("message"), str) else None
    return ErrorInfo(
        tag=error.tag,
        status=status,
        title=error.tag,
        message=message or f"Request failed ({error.tag}).",
    )
