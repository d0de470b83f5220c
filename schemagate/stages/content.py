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
Request body header checks.

Order inside each check:
  1. Content-Encoding  - no encoding is supported, any value is rejected
  2. Content-Type      - multipart/form-data or UTF-8 application/json
  3. Content-Length    - only when size limits are configured

Length checks run before a single body byte is read, so oversized
uploads are refused at the headers stage.
"""

from schemagate.errors import ErrorTag, tagged
from schemagate.headers import is_utf8_json_content_type, parse_content_length, parse_content_type
from schemagate.result import Err, Ok, Result
from schemagate.state import RequestState

MULTIPART_FORM_DATA = "multipart/form-data"


def _check_no_encoding(state: RequestState) -> Result:
    encoding = state.header("Content-Encoding")
    if encoding is not None:
        return Err(tagged(ErrorTag.UNSUPPORTED_CONTENT_ENCODING_HEADER, header=encoding))
    return Ok(None)


def check_multipart_content(state: RequestState) -> Result:
    """Content checks for endpoints that accept file uploads."""
    result = _check_no_encoding(state)
    if not result.ok:
        return result

    header = state.header("Content-Type")
    content_type = parse_content_type(header)
    if content_type is None or content_type.media_type != MULTIPART_FORM_DATA:
        return Err(tagged(ErrorTag.INVALID_CONTENT_TYPE_HEADER, header=header))

    limits = state.config.multipart
    if not limits.has_size_limits:
        return Ok(None)

    length_header = state.header("Content-Length")
    length = parse_content_length(length_header)
    if length is None:
        return Err(tagged(ErrorTag.INVALID_CONTENT_LENGTH_HEADER, header=length_header))

    if limits.minimum_file_size is not None and length < limits.minimum_file_size:
        return Err(tagged(ErrorTag.MULTIPART_FILE_BELOW_MINIMUM_SIZE, header=length_header))

    maximum_total = limits.maximum_total_file_size
    if maximum_total is not None:
        maximum_length = maximum_total + (limits.maximum_fields_size or 0)
        if length > maximum_length:
            return Err(tagged(ErrorTag.MULTIPART_MAXIMUM_TOTAL_FILE_SIZE_EXCEEDED, header=length_header))

    return Ok(None)


def check_json_content(state: RequestState) -> Result:
    """Content checks for endpoints that accept a JSON body."""
    result = _check_no_encoding(state)
    if not result.ok:
        return result

    header = state.header("Content-Type")
    if not is_utf8_json_content_type(header):
        return Err(tagged(ErrorTag.INVALID_CONTENT_TYPE_HEADER, header=header))

    maximum_size = state.config.json.maximum_size
    if maximum_size is None:
        return Ok(None)

    length_header = state.header("Content-Length")
    length = parse_content_length(length_header)
    if length is None:
        return Err(tagged(ErrorTag.INVALID_CONTENT_LENGTH_HEADER, header=length_header))
    if length > maximum_size:
        return Err(tagged(ErrorTag.JSON_TOO_LARGE, header=length_header))

    return Ok(None)


def skip_content(state: RequestState) -> Result:
    """Endpoint that reads no body."""
    return Ok(None)
