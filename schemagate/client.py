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
Schema-driven HTTP client.

Calls endpoints of a Schema over httpx and checks every answer against the
endpoint's declared responses:
  - undeclared status               -> UnexpectedStatus
  - wrong media type / charset      -> UnexpectedContentType
  - body that cannot be decoded     -> OutputDecodeError
  - JSON failing the declared shape -> OutputValidationError
  - transport failure               -> NetworkError

Example:
    async with httpx.AsyncClient(base_url="http://localhost:8000") as http:
        client = SchemaClient(api, http)
        result = await client.fetch("users", input={"page": 1})
        if result.ok:
            print(result.value.body)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

import httpx
from loguru import logger

from schemagate.body_reader import parse_json
from schemagate.config import CSRF_HEADER, JSON_KEY
from schemagate.errors import TaggedError
from schemagate.headers import is_utf8_charset, parse_content_type
from schemagate.result import Err, Ok, Result
from schemagate.schema import AUTH_NONE, GET, Schema
from schemagate.shaper import encode_json, message_to_result
from schemagate.state import BinaryBody
from schemagate.validator import Shape, guard


class ClientErrorTag(str, Enum):
    NETWORK_ERROR = "NetworkError"
    UNEXPECTED_STATUS = "UnexpectedStatus"
    UNEXPECTED_CONTENT_TYPE = "UnexpectedContentType"
    OUTPUT_DECODE_ERROR = "OutputDecodeError"
    OUTPUT_VALIDATION_ERROR = "OutputValidationError"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ClientResponse:
    """
    Validated endpoint answer.

    ``body`` is a str for html, the validated value for json, and a
    BinaryBody for binary responses.
    """

    status: int
    body: Any
    headers: Mapping[str, str] = field(default_factory=dict)


_ACCEPT_BY_KIND = {
    "json": "application/json",
    "html": "text/html",
    "binary": "*/*",
}


def _encode_json(value: Any) -> str:
    return encode_json(value).decode("utf-8")


def build_url(api: Schema, name: str, input: Any = None) -> str:
    """
    Return the path of an endpoint, with JSON input in the query for GET.

    Example:
        >>> build_url(api, "search", {"q": "a b"})
        '/api/search?json=%7B%22q%22%3A%22a%20b%22%7D'
    """
    url = api.path_for(name)
    definition = api.endpoints[name]
    if definition.method == GET and input is not None:
        url = f"{url}?{JSON_KEY}={quote(_encode_json(input), safe='')}"
    return url


def _error(tag: ClientErrorTag, **context: Any) -> Err:
    return Err(TaggedError(tag=tag.value, context=context))


class SchemaClient:
    """
    Client for the endpoints of one schema.

    Args:
        api: Schema describing the server
        http_client: httpx.AsyncClient; its base_url points at the server
    """

    def __init__(self, api: Schema, http_client: httpx.AsyncClient):
        self.schema = api
        self.http_client = http_client

    def _request_headers(self, name: str) -> Dict[str, str]:
        definition = self.schema.endpoints[name]
        kinds = sorted(definition.response_kinds)
        headers = {
            "Accept": ", ".join(_ACCEPT_BY_KIND[kind] for kind in kinds) or "*/*",
            "Accept-Charset": "utf-8",
        }
        if definition.auth != AUTH_NONE:
            headers[CSRF_HEADER] = ""
        return headers

    async def fetch(
        self,
        name: str,
        input: Any = None,
        files: Optional[Mapping[str, Any]] = None,
    ) -> Result:
        """
        Call an endpoint and validate its answer.

        Args:
            name: Endpoint name
            input: JSON input (query for GET, body or form field otherwise)
            files: Mapping of field name to an httpx file value, e.g.
                ``("photo.png", b"...", "image/png")``

        Returns:
            Ok(ClientResponse) or Err(TaggedError) with a ClientErrorTag
        """
        definition = self.schema.endpoints[name]
        if not definition.has_responses:
            raise ValueError(f"Endpoint '{name}' only accepts WebSocket connections")

        headers = self._request_headers(name)
        request_kwargs: Dict[str, Any] = {}

        if definition.method == GET:
            url = build_url(self.schema, name, input)
        else:
            url = self.schema.path_for(name)
            if files is not None:
                request_kwargs["files"] = dict(files)
                if input is not None:
                    request_kwargs["data"] = {JSON_KEY: _encode_json(input)}
            elif input is not None:
                request_kwargs["content"] = _encode_json(input).encode("utf-8")
                headers["Content-Type"] = "application/json; charset=utf-8"

        try:
            response = await self.http_client.request(
                definition.method, url, headers=headers, **request_kwargs
            )
        except httpx.TransportError as e:
            logger.warning("[Client] {} {} failed: {}", definition.method, url, e)
            return _error(ClientErrorTag.NETWORK_ERROR, exception=e)

        return self._check_response(name, response)

    def _check_response(self, name: str, response: httpx.Response) -> Result:
        definition = self.schema.endpoints[name]
        declared = definition.responses.get(response.status_code)
        if declared is None:
            return _error(ClientErrorTag.UNEXPECTED_STATUS, response=response)

        content_type = parse_content_type(response.headers.get("Content-Type"))
        if content_type is None:
            return _error(ClientErrorTag.UNEXPECTED_CONTENT_TYPE, response=response)

        headers = dict(response.headers)

        if declared.kind == "binary":
            if not guard(declared.mimetype, content_type.media_type):
                return _error(ClientErrorTag.UNEXPECTED_CONTENT_TYPE, response=response)
            body = BinaryBody(data=response.content, mimetype=content_type.media_type)
            return Ok(ClientResponse(status=response.status_code, body=body, headers=headers))

        if not is_utf8_charset(content_type.charset):
            return _error(ClientErrorTag.UNEXPECTED_CONTENT_TYPE, response=response)

        try:
            text = response.content.decode("utf-8")
        except UnicodeDecodeError as e:
            return _error(ClientErrorTag.OUTPUT_DECODE_ERROR, response=response, exception=e)

        if declared.kind == "html":
            if content_type.media_type != "text/html":
                return _error(ClientErrorTag.UNEXPECTED_CONTENT_TYPE, response=response)
            return Ok(ClientResponse(status=response.status_code, body=text, headers=headers))

        if content_type.media_type != "application/json":
            return _error(ClientErrorTag.UNEXPECTED_CONTENT_TYPE, response=response)
        try:
            output = parse_json(text)
        except ValueError as e:
            return _error(ClientErrorTag.OUTPUT_DECODE_ERROR, response=response, exception=e)

        validation = declared.data.validate(output)
        if not validation.success:
            return _error(
                ClientErrorTag.OUTPUT_VALIDATION_ERROR,
                response=response,
                output=output,
                diagnostic=validation.diagnostic,
            )
        return Ok(ClientResponse(status=response.status_code, body=validation.value, headers=headers))


def validate_websocket_message(message: Any, down: Shape) -> Result:
    """
    Validate one frame received from the server.

    Returns:
        Ok(value) or Err with NonStringMessage, NonJSONMessage or InvalidMessage
    """
    return message_to_result(message, down)
