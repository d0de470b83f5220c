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
Streaming request body readers.

Two readers are provided, both consuming an async iterator of byte chunks:

1) read_json(): buffers up to a size limit, decodes UTF-8, parses JSON.
2) read_multipart(): parses multipart/form-data with python-multipart,
   writing files to disk and enforcing count/size limits while streaming.

Readers never raise for stream-level faults. They return ``Ok(value)`` or
``Err(BodyFault)``; mapping faults onto request error tags is the body
stage's job.
"""

import json
import os
import secrets
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from loguru import logger
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.concurrency import run_in_threadpool

from schemagate.result import Err, Ok, Result


class StreamAborted(Exception):
    """Raised by a body stream when the client went away mid-request."""


# ==================================================================================================
# Limits
# ==================================================================================================


@dataclass(frozen=True)
class MultipartLimits:
    """
    Limits for multipart bodies. None means unbounded.

    Attributes:
        minimum_file_size: Smallest accepted single file (bytes)
        maximum_file_size: Largest accepted single file (bytes)
        maximum_file_count: Maximum number of files
        maximum_fields_count: Maximum number of non-file fields
        maximum_fields_size: Maximum total bytes of all field values
        save_directory: Where uploads are written (system temp dir if None)
        keep_file_extensions: Keep the client file extension on saved files
    """

    minimum_file_size: Optional[int] = None
    maximum_file_size: Optional[int] = None
    maximum_file_count: Optional[int] = None
    maximum_fields_count: Optional[int] = None
    maximum_fields_size: Optional[int] = None
    save_directory: Optional[str] = None
    keep_file_extensions: bool = False

    @property
    def maximum_total_file_size(self) -> Optional[int]:
        if self.maximum_file_size is None or self.maximum_file_count is None:
            return None
        return self.maximum_file_size * self.maximum_file_count

    @property
    def has_size_limits(self) -> bool:
        return self.minimum_file_size is not None or self.maximum_total_file_size is not None


@dataclass(frozen=True)
class JSONLimits:
    """Limits for JSON bodies. None means unbounded."""

    maximum_size: Optional[int] = None


@dataclass(frozen=True)
class RequestConfig:
    """Body limits attached to each request's initial state."""

    multipart: MultipartLimits = field(default_factory=MultipartLimits)
    json: JSONLimits = field(default_factory=JSONLimits)


# ==================================================================================================
# Results
# ==================================================================================================


class JSONFault(str, Enum):
    MAXIMUM_SIZE_EXCEEDED = "MaximumSizeExceeded"
    READ_ERROR = "ReadError"
    DECODE_ERROR = "DecodeError"
    INVALID_SYNTAX = "InvalidSyntax"
    UNKNOWN_ERROR = "UnknownError"


class MultipartFault(str, Enum):
    REQUEST_ABORTED = "RequestAborted"
    BELOW_MINIMUM_FILE_SIZE = "BelowMinimumFileSize"
    MAXIMUM_FILE_COUNT_EXCEEDED = "MaximumFileCountExceeded"
    MAXIMUM_FILE_SIZE_EXCEEDED = "MaximumFileSizeExceeded"
    MAXIMUM_TOTAL_FILE_SIZE_EXCEEDED = "MaximumTotalFileSizeExceeded"
    MAXIMUM_FIELDS_COUNT_EXCEEDED = "MaximumFieldsCountExceeded"
    MAXIMUM_FIELDS_SIZE_EXCEEDED = "MaximumFieldsSizeExceeded"
    UNKNOWN_ERROR = "UnknownError"


@dataclass(frozen=True)
class BodyFault:
    """
    Stream-level failure reported by a reader.

    Attributes:
        kind: JSONFault or MultipartFault
        error: Underlying exception, when there is one
    """

    kind: Any
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class FileEntry:
    """
    One uploaded file.

    The reader fills every attribute; after validation only the attributes
    the endpoint declared are kept (the rest are None).
    """

    path: str
    name: Optional[str] = None
    mimetype: Optional[str] = None
    size: Optional[int] = None
    date_modified: Optional[datetime] = None


@dataclass(frozen=True)
class MultipartBody:
    """Parsed multipart body: decoded field values and saved files by field name."""

    fields: Dict[str, str]
    files: Dict[str, FileEntry]


# ==================================================================================================
# JSON
# ==================================================================================================


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def parse_json(text: str) -> Any:
    """Parse JSON text, rejecting the NaN and Infinity literals Python accepts by default."""
    return json.loads(text, parse_constant=_reject_constant)


async def read_json(stream: AsyncIterator[bytes], limits: Optional[JSONLimits] = None) -> Result:
    """
    Read and parse a UTF-8 JSON body.

    Args:
        stream: Async iterator of body chunks
        limits: Optional size limit

    Returns:
        Ok(parsed value) or Err(BodyFault(JSONFault...))
    """
    maximum_size = limits.maximum_size if limits is not None else None
    chunks: List[bytes] = []
    received = 0

    try:
        async for chunk in stream:
            received += len(chunk)
            if maximum_size is not None and received > maximum_size:
                logger.debug("[BodyReader] JSON body exceeds {} bytes", maximum_size)
                return Err(BodyFault(JSONFault.MAXIMUM_SIZE_EXCEEDED))
            chunks.append(chunk)
    except (StreamAborted, ConnectionError) as e:
        logger.debug("[BodyReader] JSON body stream closed: {}", e)
        return Err(BodyFault(JSONFault.READ_ERROR, e))

    try:
        text = b"".join(chunks).decode("utf-8")
    except UnicodeDecodeError as e:
        return Err(BodyFault(JSONFault.DECODE_ERROR, e))

    try:
        return Ok(parse_json(text))
    except ValueError as e:
        return Err(BodyFault(JSONFault.INVALID_SYNTAX, e))
    except RecursionError as e:
        return Err(BodyFault(JSONFault.UNKNOWN_ERROR, e))


# ==================================================================================================
# Multipart
# ==================================================================================================


class _LimitExceeded(Exception):
    def __init__(self, fault: MultipartFault):
        super().__init__(fault.value)
        self.fault = fault


@dataclass
class _Part:
    field_name: str = ""
    file_name: Optional[str] = None
    content_type: Optional[str] = None
    data: bytearray = field(default_factory=bytearray)
    path: Optional[str] = None
    handle: Any = None
    size: int = 0


class _MultipartCollector:
    """
    Turns python-multipart callbacks into fields and saved files, enforcing limits.

    Parser callbacks are synchronous, so disk work is only queued there.
    ``flush()`` runs the queued operations in the thread pool, in order,
    after every chunk fed to the parser.
    """

    def __init__(self, limits: MultipartLimits):
        self.limits = limits
        self.directory = limits.save_directory or tempfile.gettempdir()
        self.fields: Dict[str, str] = {}
        self.files: Dict[str, FileEntry] = {}
        self.written: List[str] = []
        self.file_count = 0
        self.fields_count = 0
        self.fields_size = 0
        self.total_file_size = 0
        self._part = _Part()
        self._header_field = bytearray()
        self._header_value = bytearray()
        self._headers: List[Tuple[bytes, bytes]] = []
        self._pending: List[Tuple[str, Optional[_Part], Any]] = []
        self._open_parts: List[_Part] = []
        self.finished = False

    def callbacks(self) -> Dict[str, Any]:
        return {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
            "on_end": self.on_end,
        }

    def on_part_begin(self) -> None:
        self._part = _Part()
        self._headers = []

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field.extend(data[start:end])

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value.extend(data[start:end])

    def on_header_end(self) -> None:
        self._headers.append((bytes(self._header_field).lower(), bytes(self._header_value)))
        self._header_field = bytearray()
        self._header_value = bytearray()

    def on_headers_finished(self) -> None:
        part = self._part
        for name, value in self._headers:
            if name == b"content-disposition":
                _, options = parse_options_header(value)
                part.field_name = options.get(b"name", b"").decode("utf-8")
                if b"filename" in options:
                    part.file_name = options[b"filename"].decode("utf-8")
            elif name == b"content-type":
                part.content_type = value.decode("latin-1").strip() or None

        if part.file_name is None:
            self.fields_count += 1
            limit = self.limits.maximum_fields_count
            if limit is not None and self.fields_count > limit:
                raise _LimitExceeded(MultipartFault.MAXIMUM_FIELDS_COUNT_EXCEEDED)
            return

        if part.file_name == "":
            # Browsers send an empty file part when no file was chosen
            return

        self.file_count += 1
        limit = self.limits.maximum_file_count
        if limit is not None and self.file_count > limit:
            raise _LimitExceeded(MultipartFault.MAXIMUM_FILE_COUNT_EXCEEDED)

        part.path = os.path.join(self.directory, self._file_name_for(part.file_name))
        self.written.append(part.path)
        self._pending.append(("open", part, b""))

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        part = self._part
        chunk = data[start:end]

        if part.file_name is None:
            self.fields_size += len(chunk)
            limit = self.limits.maximum_fields_size
            if limit is not None and self.fields_size > limit:
                raise _LimitExceeded(MultipartFault.MAXIMUM_FIELDS_SIZE_EXCEEDED)
            part.data.extend(chunk)
            return

        if part.path is None:
            return

        part.size += len(chunk)
        self.total_file_size += len(chunk)
        if self.limits.maximum_file_size is not None and part.size > self.limits.maximum_file_size:
            raise _LimitExceeded(MultipartFault.MAXIMUM_FILE_SIZE_EXCEEDED)
        total_limit = self.limits.maximum_total_file_size
        if total_limit is not None and self.total_file_size > total_limit:
            raise _LimitExceeded(MultipartFault.MAXIMUM_TOTAL_FILE_SIZE_EXCEEDED)
        self._pending.append(("write", part, chunk))

    def on_part_end(self) -> None:
        part = self._part
        if part.file_name is None:
            self.fields[part.field_name] = part.data.decode("utf-8")
            return
        if part.path is None:
            return

        self._pending.append(("close", part, b""))
        minimum = self.limits.minimum_file_size
        if minimum is not None and part.size < minimum:
            raise _LimitExceeded(MultipartFault.BELOW_MINIMUM_FILE_SIZE)

        previous = self.files.get(part.field_name)
        if previous is not None:
            self._pending.append(("remove", None, previous.path))
        self.files[part.field_name] = FileEntry(
            path=part.path,
            name=part.file_name,
            mimetype=part.content_type,
            size=part.size,
            date_modified=datetime.now(timezone.utc),
        )

    def on_end(self) -> None:
        self.finished = True

    async def flush(self) -> None:
        """Run the queued disk operations off the event loop."""
        pending, self._pending = self._pending, []
        for operation, part, payload in pending:
            if operation == "open":
                part.handle = await run_in_threadpool(open, part.path, "wb")
                self._open_parts.append(part)
            elif operation == "write":
                await run_in_threadpool(part.handle.write, payload)
            elif operation == "close":
                await run_in_threadpool(part.handle.close)
                part.handle = None
                self._open_parts.remove(part)
            else:
                await run_in_threadpool(_remove_quietly, payload)

    async def discard(self) -> None:
        """Close open files and remove everything written so far."""
        open_parts, self._open_parts = self._open_parts, []
        self._pending = []
        await run_in_threadpool(_discard_files, open_parts, list(self.written))

    def _file_name_for(self, original: str) -> str:
        name = secrets.token_hex(16)
        if self.limits.keep_file_extensions:
            _, extension = os.path.splitext(os.path.basename(original))
            name += extension
        return name


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def _discard_files(open_parts: List[_Part], paths: List[str]) -> None:
    for part in open_parts:
        part.handle.close()
        part.handle = None
    for path in paths:
        _remove_quietly(path)


async def read_multipart(
    stream: AsyncIterator[bytes],
    boundary: str,
    limits: Optional[MultipartLimits] = None,
) -> Result:
    """
    Parse a multipart/form-data body.

    Args:
        stream: Async iterator of body chunks
        boundary: Boundary parameter from the Content-Type header
        limits: Optional count/size limits and save options

    Returns:
        Ok(MultipartBody) or Err(BodyFault(MultipartFault...))
    """
    limits = limits or MultipartLimits()
    if not boundary:
        return Err(BodyFault(MultipartFault.UNKNOWN_ERROR, ValueError("Missing multipart boundary")))

    collector = _MultipartCollector(limits)
    parser = MultipartParser(boundary, collector.callbacks())

    try:
        async for chunk in stream:
            parser.write(chunk)
            await collector.flush()
        parser.finalize()
        await collector.flush()
    except _LimitExceeded as e:
        await collector.discard()
        logger.debug("[BodyReader] Multipart limit hit: {}", e.fault.value)
        return Err(BodyFault(e.fault))
    except (StreamAborted, ConnectionError) as e:
        await collector.discard()
        logger.debug("[BodyReader] Multipart stream closed: {}", e)
        return Err(BodyFault(MultipartFault.REQUEST_ABORTED, e))
    except (MultipartParseError, UnicodeDecodeError, OSError) as e:
        await collector.discard()
        logger.debug("[BodyReader] Multipart body malformed: {}", e)
        return Err(BodyFault(MultipartFault.UNKNOWN_ERROR, e))

    if not collector.finished:
        await collector.discard()
        logger.debug("[BodyReader] Multipart body ended before the closing boundary")
        return Err(BodyFault(MultipartFault.UNKNOWN_ERROR, ValueError("Incomplete multipart body")))

    logger.debug(
        "[BodyReader] Multipart parsed: {} fields, {} files",
        len(collector.fields),
        len(collector.files),
    )
    return Ok(MultipartBody(fields=collector.fields, files=collector.files))
