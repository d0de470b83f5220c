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
Declarative endpoint descriptions.

An ``Endpoint`` states what one endpoint accepts and what it may answer:
method, auth policy, input shape, uploaded files, allowed responses per
status code and an optional WebSocket message contract. A ``Schema`` groups
endpoints under a literal path prefix.

Descriptors are immutable and validated on construction, so every
``Endpoint`` that exists is a legal combination.

Example:
    >>> api = schema("/api/", {
    ...     "users": endpoint(
    ...         input=Dict[str, int],
    ...         responses={200: json_response(List[str])},
    ...     ),
    ... })
    >>> api.path_for("users")
    '/api/users'
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

from schemagate.validator import Shape, as_shape, optional_shape

GET = "GET"
BODY_METHODS = ("PUT", "POST", "PATCH", "DELETE")
METHODS = (GET,) + BODY_METHODS

AUTH_REQUIRED = "required"
AUTH_OPTIONAL = "optional"
AUTH_NONE = "none"
AUTH_MODES = (AUTH_REQUIRED, AUTH_OPTIONAL, AUTH_NONE)

# Reserved for the WebSocket upgrade; never a declared response.
SWITCHING_PROTOCOLS = 101


# ==================================================================================================
# Response kinds
# ==================================================================================================


@dataclass(frozen=True)
class HTMLResponse:
    """Body is an HTML string."""

    kind: str = field(default="html", init=False)


@dataclass(frozen=True)
class JSONResponse:
    """Body is any value satisfying ``data``; serialized as JSON."""

    data: Shape
    kind: str = field(default="json", init=False)


@dataclass(frozen=True)
class BinaryResponse:
    """Body is raw bytes whose mimetype satisfies ``mimetype``."""

    mimetype: Shape
    kind: str = field(default="binary", init=False)


ResponseKind = Union[HTMLResponse, JSONResponse, BinaryResponse]


def html() -> HTMLResponse:
    return HTMLResponse()


def json_response(data: Any) -> JSONResponse:
    return JSONResponse(data=as_shape(data))


def binary(mimetype: Any) -> BinaryResponse:
    return BinaryResponse(mimetype=as_shape(mimetype))


# ==================================================================================================
# Files and WebSocket contracts
# ==================================================================================================


@dataclass(frozen=True)
class FileShape:
    """
    Per-field description of an uploaded file.

    Only declared attributes are validated and carried into the request
    state; ``path`` is always present.

    Attributes:
        name: Shape for the client-supplied file name
        mimetype: Shape for the client-supplied content type
        size: Shape for the size in bytes
        date_modified: Shape for the time the upload finished
    """

    name: Optional[Shape] = None
    mimetype: Optional[Shape] = None
    size: Optional[Shape] = None
    date_modified: Optional[Shape] = None

    def declared(self) -> Dict[str, Shape]:
        """Return the declared attribute shapes by attribute name."""
        attributes = {
            "name": self.name,
            "mimetype": self.mimetype,
            "size": self.size,
            "date_modified": self.date_modified,
        }
        return {key: value for key, value in attributes.items() if value is not None}


def file_shape(
    name: Any = None,
    mimetype: Any = None,
    size: Any = None,
    date_modified: Any = None,
) -> FileShape:
    return FileShape(
        name=optional_shape(name),
        mimetype=optional_shape(mimetype),
        size=optional_shape(size),
        date_modified=optional_shape(date_modified),
    )


@dataclass(frozen=True)
class WebSocketContract:
    """Shapes for client-to-server (``up``) and server-to-client (``down``) messages."""

    up: Shape
    down: Shape


def websocket(up: Any, down: Any) -> WebSocketContract:
    return WebSocketContract(up=as_shape(up), down=as_shape(down))


# ==================================================================================================
# Endpoint and Schema
# ==================================================================================================


@dataclass(frozen=True)
class Endpoint:
    """
    Static description of one endpoint.

    Use ``endpoint()`` to build one; it normalizes shapes and rejects
    illegal combinations.
    """

    method: str = GET
    auth: str = AUTH_NONE
    input: Optional[Shape] = None
    files: Optional[Mapping[str, FileShape]] = None
    responses: Mapping[int, ResponseKind] = field(default_factory=dict)
    websocket: Optional[WebSocketContract] = None

    @property
    def has_body(self) -> bool:
        return self.method != GET

    @property
    def has_responses(self) -> bool:
        return bool(self.responses)

    @property
    def response_kinds(self) -> frozenset:
        return frozenset(response.kind for response in self.responses.values())

    @property
    def has_html_response(self) -> bool:
        return "html" in self.response_kinds

    @property
    def has_json_response(self) -> bool:
        return "json" in self.response_kinds

    @property
    def has_binary_response(self) -> bool:
        return "binary" in self.response_kinds


def endpoint(
    method: str = GET,
    auth: str = AUTH_NONE,
    input: Any = None,
    files: Optional[Mapping[str, FileShape]] = None,
    responses: Optional[Mapping[int, ResponseKind]] = None,
    websocket: Optional[WebSocketContract] = None,
) -> Endpoint:
    """
    Build a validated endpoint descriptor.

    Args:
        method: GET, PUT, POST, PATCH or DELETE (default GET)
        auth: "required", "optional" or "none" (default "none")
        input: Shape or annotation for the JSON input
        files: Mapping of multipart field name to FileShape (body methods only)
        responses: Mapping of status code to response kind
        websocket: WebSocket message contract (GET only)

    Returns:
        Immutable Endpoint

    Raises:
        ValueError: For illegal method/auth values or combinations
    """
    method = str(method).upper()
    if method not in METHODS:
        raise ValueError(f"Unknown method '{method}', expected one of {METHODS}")
    if auth not in AUTH_MODES:
        raise ValueError(f"Unknown auth mode '{auth}', expected one of {AUTH_MODES}")
    if files is not None and method == GET:
        raise ValueError("File uploads require a body method (PUT, POST, PATCH or DELETE)")
    if websocket is not None and method != GET:
        raise ValueError("WebSocket endpoints must use GET")

    checked: Dict[int, ResponseKind] = {}
    for status, response in (responses or {}).items():
        if isinstance(status, bool) or not isinstance(status, int):
            raise ValueError(f"Status code must be an integer, got {status!r}")
        if status == SWITCHING_PROTOCOLS:
            raise ValueError("Status 101 is reserved for WebSocket upgrades")
        if not 100 <= status <= 599:
            raise ValueError(f"Status code {status} is out of range")
        if not isinstance(response, (HTMLResponse, JSONResponse, BinaryResponse)):
            raise ValueError(f"Unknown response kind for status {status}: {response!r}")
        checked[status] = response

    if websocket is None and not checked:
        raise ValueError("Endpoint must declare at least one response or a WebSocket contract")

    frozen_files = None
    if files is not None:
        for name, definition in files.items():
            if not isinstance(definition, FileShape):
                raise ValueError(f"File field '{name}' must be described by a FileShape")
        frozen_files = MappingProxyType(dict(files))

    return Endpoint(
        method=method,
        auth=auth,
        input=optional_shape(input),
        files=frozen_files,
        responses=MappingProxyType(checked),
        websocket=websocket,
    )


@dataclass(frozen=True)
class Schema:
    """
    Endpoints published under one literal path prefix.

    The externally visible path of an endpoint is ``prefix + name``.
    """

    prefix: str
    endpoints: Mapping[str, Endpoint]

    def path_for(self, name: str) -> str:
        if name not in self.endpoints:
            raise KeyError(name)
        return self.prefix + name

    def websocket_endpoints(self) -> Dict[str, Endpoint]:
        return {
            name: definition
            for name, definition in self.endpoints.items()
            if definition.websocket is not None
        }


def schema(prefix: str, endpoints: Mapping[str, Endpoint]) -> Schema:
    """Build a Schema; endpoint names must be non-empty."""
    for name, definition in endpoints.items():
        if not name:
            raise ValueError("Endpoint names must be non-empty")
        if not isinstance(definition, Endpoint):
            raise ValueError(f"Endpoint '{name}' must be built with endpoint()")
    return Schema(prefix=prefix, endpoints=MappingProxyType(dict(endpoints)))
