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
Body parsing and input validation strategies.

One strategy is picked per endpoint by the compiler, from (method, files, input):
  - GET + input        -> parse_query_input: JSON carried in the ``json`` query key
  - body + files       -> parse_multipart_input: files, plus the ``json`` form field if input
  - body + input only  -> parse_json_input: UTF-8 JSON request body
  - anything else      -> no_body: state passes through unchanged

Every strategy is an async callable ``(state, stream) -> Result``; on
success the Ok value is the state extended with ``input`` and/or ``files``.
Reader faults are mapped one-to-one onto request error tags here.
"""

import os
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Mapping, Optional

from loguru import logger

from schemagate.body_reader import (
    FileEntry,
    JSONFault,
    MultipartBody,
    MultipartFault,
    parse_json,
    read_json,
    read_multipart,
)
from schemagate.config import JSON_KEY
from schemagate.errors import ErrorTag, tagged
from schemagate.headers import parse_content_type
from schemagate.result import Err, Ok, Result
from schemagate.schema import FileShape
from schemagate.state import RequestState
from schemagate.validator import Shape

BodyStream = Optional[AsyncIterator[bytes]]
BodyStrategy = Callable[[RequestState, BodyStream], Awaitable[Result]]

_JSON_FAULT_TAGS = {
    JSONFault.MAXIMUM_SIZE_EXCEEDED: ErrorTag.JSON_TOO_LARGE,
    JSONFault.READ_ERROR: ErrorTag.JSON_STREAM_CLOSED,
    JSONFault.DECODE_ERROR: ErrorTag.JSON_STREAM_MALFORMED,
    JSONFault.INVALID_SYNTAX: ErrorTag.JSON_STREAM_MALFORMED,
    JSONFault.UNKNOWN_ERROR: ErrorTag.JSON_STREAM_UNKNOWN_PARSE_ERROR,
}

_MULTIPART_FAULT_TAGS = {
    MultipartFault.REQUEST_ABORTED: ErrorTag.MULTIPART_STREAM_CLOSED,
    MultipartFault.BELOW_MINIMUM_FILE_SIZE: ErrorTag.MULTIPART_FILE_BELOW_MINIMUM_SIZE,
    MultipartFault.MAXIMUM_FILE_COUNT_EXCEEDED: ErrorTag.MULTIPART_MAXIMUM_FILE_COUNT_EXCEEDED,
    MultipartFault.MAXIMUM_FILE_SIZE_EXCEEDED: ErrorTag.MULTIPART_MAXIMUM_FILE_SIZE_EXCEEDED,
    MultipartFault.MAXIMUM_TOTAL_FILE_SIZE_EXCEEDED: ErrorTag.MULTIPART_MAXIMUM_TOTAL_FILE_SIZE_EXCEEDED,
    MultipartFault.MAXIMUM_FIELDS_COUNT_EXCEEDED: ErrorTag.MULTIPART_MAXIMUM_FIELDS_COUNT_EXCEEDED,
    MultipartFault.MAXIMUM_FIELDS_SIZE_EXCEEDED: ErrorTag.MULTIPART_MAXIMUM_FIELDS_SIZE_EXCEEDED,
    MultipartFault.UNKNOWN_ERROR: ErrorTag.MULTIPART_UNKNOWN_PARSE_ERROR,
}


async def _empty_stream() -> AsyncIterator[bytes]:
    return
    yield  # pragma: no cover


async def no_body(state: RequestState, stream: BodyStream = None) -> Result:
    return Ok(state)


# ==================================================================================================
# GET: JSON in the URL query
# ==================================================================================================


def make_query_input_parser(input_shape: Shape) -> BodyStrategy:
    """Build the strategy reading JSON input from the ``json`` query key."""

    async def parse_query_input(state: RequestState, stream: BodyStream = None) -> Result:
        raw = state.query.get(JSON_KEY)
        if raw is None:
            return Err(tagged(ErrorTag.URL_QUERY_REQUIRED))

        try:
            value = parse_json(raw)
        except (ValueError, RecursionError) as e:
            return Err(tagged(ErrorTag.URL_QUERY_MALFORMED, query=raw, error=str(e)))

        validation = input_shape.validate(value)
        if not validation.success:
            return Err(tagged(
                ErrorTag.URL_QUERY_INPUT_INVALID,
                input=value,
                diagnostic=validation.diagnostic,
            ))
        return Ok(state.evolve(input=validation.value))

    return parse_query_input


# ==================================================================================================
# Body: JSON
# ==================================================================================================


def make_json_parser(input_shape: Shape) -> BodyStrategy:
    """Build the strategy reading a JSON request body."""

    async def parse_json_input(state: RequestState, stream: BodyStream = None) -> Result:
        read = await read_json(stream or _empty_stream(), state.config.json)
        if not read.ok:
            fault = read.error
            tag = _JSON_FAULT_TAGS[fault.kind]
            if tag == ErrorTag.JSON_STREAM_UNKNOWN_PARSE_ERROR:
                return Err(tagged(tag, error=repr(fault.error)))
            return Err(tagged(tag))

        validation = input_shape.validate(read.value)
        if not validation.success:
            return Err(tagged(
                ErrorTag.JSON_INPUT_INVALID,
                input=read.value,
                diagnostic=validation.diagnostic,
            ))
        return Ok(state.evolve(input=validation.value))

    return parse_json_input


# ==================================================================================================
# Body: multipart
# ==================================================================================================


def _remove_files(files: Mapping[str, FileEntry]) -> None:
    for entry in files.values():
        try:
            os.remove(entry.path)
        except FileNotFoundError:
            pass


def validate_files(
    definitions: Mapping[str, FileShape],
    files: Mapping[str, FileEntry],
) -> Result:
    """
    Validate uploaded files against the declared per-field FileShapes.

    Every declared field must carry a file. Only declared attributes are
    validated and kept on the resulting entries; ``path`` is always kept.

    Returns:
        Ok(dict of validated FileEntry) or Err(diagnostic by field name)
    """
    validated: Dict[str, FileEntry] = {}
    diagnostics: Dict[str, Any] = {}

    for field_name, definition in definitions.items():
        entry = files.get(field_name)
        if entry is None:
            diagnostics[field_name] = "missing"
            continue

        attributes: Dict[str, Any] = {}
        for attribute, shape in definition.declared().items():
            validation = shape.validate(getattr(entry, attribute))
            if not validation.success:
                diagnostics.setdefault(field_name, {})[attribute] = validation.diagnostic
            else:
                attributes[attribute] = validation.value

        if field_name not in diagnostics:
            validated[field_name] = FileEntry(path=entry.path, **attributes)

    if diagnostics:
        return Err(diagnostics)
    return Ok(validated)


def make_multipart_parser(
    definitions: Mapping[str, FileShape],
    input_shape: Optional[Shape],
) -> BodyStrategy:
    """
    Build the strategy reading a multipart/form-data body.

    Uploaded files are removed again whenever the strategy fails, and files
    for undeclared fields are always removed.
    """

    def _parse_json_field(body: MultipartBody) -> Result:
        raw = body.fields.get(JSON_KEY)
        if raw is None:
            return Err(tagged(ErrorTag.MULTIPART_JSON_FIELD_REQUIRED))
        try:
            value = parse_json(raw)
        except (ValueError, RecursionError) as e:
            return Err(tagged(ErrorTag.MULTIPART_JSON_FIELD_MALFORMED, field=raw, error=str(e)))
        validation = input_shape.validate(value)
        if not validation.success:
            return Err(tagged(
                ErrorTag.MULTIPART_JSON_FIELD_INPUT_INVALID,
                input=value,
                diagnostic=validation.diagnostic,
            ))
        return Ok(validation.value)

    async def parse_multipart_input(state: RequestState, stream: BodyStream = None) -> Result:
        content_type = parse_content_type(state.header("Content-Type"))
        boundary = content_type.boundary if content_type is not None else None

        read = await read_multipart(stream or _empty_stream(), boundary, state.config.multipart)
        if not read.ok:
            fault = read.error
            tag = _MULTIPART_FAULT_TAGS[fault.kind]
            if tag == ErrorTag.MULTIPART_UNKNOWN_PARSE_ERROR:
                return Err(tagged(tag, error=repr(fault.error)))
            return Err(tagged(tag))

        body: MultipartBody = read.value
        undeclared = {name: entry for name, entry in body.files.items() if name not in definitions}
        if undeclared:
            logger.debug("[Body] Discarding undeclared upload fields: {}", sorted(undeclared))
            _remove_files(undeclared)
        declared = {name: entry for name, entry in body.files.items() if name in definitions}

        checked = validate_files(definitions, declared)
        if not checked.ok:
            _remove_files(declared)
            return Err(tagged(
                ErrorTag.MULTIPART_FILES_INVALID,
                files=declared,
                diagnostic=checked.error,
            ))

        changes: Dict[str, Any] = {"files": checked.value}
        if input_shape is not None:
            field_result = _parse_json_field(body)
            if not field_result.ok:
                _remove_files(declared)
                return field_result
            changes["input"] = field_result.value

        return Ok(state.evolve(**changes))

    return parse_multipart_input
