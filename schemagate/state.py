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
Per-request records threaded through the pipeline.

RequestState grows monotonically as stages run:
    protocol facts -> + is_websocket_request, token -> + session -> + input, files

Each stage returns a new record via ``evolve()``; records are never mutated.
Business logic then answers with a HandlerResponse or a WebSocketAccept.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from schemagate.body_reader import FileEntry, RequestConfig


@dataclass(frozen=True)
class RequestState:
    """
    Immutable pipeline state for one request.

    Attributes:
        method: Upper-case HTTP method
        path: URL path
        query: Single-valued URL query parameters
        headers: Request headers (lower-case names)
        cookies: Request cookies
        config: Body limits for this request
        is_websocket_request: Set by the headers stage
        token: Auth cookie value, set by the headers stage
        session: Set by the user session stage
        input: Validated JSON input, set by the body stage
        files: Validated uploaded files, set by the body stage
    """

    method: str
    path: str
    query: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    cookies: Mapping[str, str] = field(default_factory=dict)
    config: RequestConfig = field(default_factory=RequestConfig)
    is_websocket_request: bool = False
    token: Optional[str] = None
    session: Any = None
    input: Any = None
    files: Optional[Mapping[str, FileEntry]] = None

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower())

    def evolve(self, **changes: Any) -> "RequestState":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


def make_request_state(
    method: str,
    path: str,
    query: Optional[Mapping[str, str]] = None,
    headers: Optional[Mapping[str, str]] = None,
    cookies: Optional[Mapping[str, str]] = None,
    config: Optional[RequestConfig] = None,
) -> RequestState:
    """
    Build the initial state from raw protocol facts.

    Header names are lower-cased so lookups are case-insensitive.
    """
    return RequestState(
        method=method.upper(),
        path=path,
        query=dict(query or {}),
        headers={str(name).lower(): value for name, value in (headers or {}).items()},
        cookies=dict(cookies or {}),
        config=config or RequestConfig(),
    )


# ==================================================================================================
# Business logic outcomes
# ==================================================================================================


@dataclass(frozen=True)
class HandlerResponse:
    """
    Ordinary response produced by business logic.

    ``status`` must be declared in the endpoint's responses; ``body`` must
    match the kind declared for that status.
    """

    status: int
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class BinaryBody:
    """Body of a binary response: raw bytes (or an async byte stream) plus mimetype."""

    data: Any
    mimetype: str


OpenCallback = Callable[[], Any]
MessageCallback = Callable[[Any], Any]
CloseCallback = Callable[[int, str], Optional[Awaitable[None]]]
SendErrorCallback = Callable[[Any, BaseException], Optional[Awaitable[None]]]


@dataclass(frozen=True)
class WebSocketAccept:
    """
    Business logic accepting a WebSocket upgrade.

    Attributes:
        on_open: Called once after the handshake; yields messages to send
        on_message: Called per inbound frame with Ok(value) or Err(TaggedError);
            yields messages to send
        on_close: Called with (code, reason) when the socket closes
        on_send_error: Called with (message, exception) when a send fails
    """

    on_open: Optional[OpenCallback] = None
    on_message: Optional[MessageCallback] = None
    on_close: Optional[CloseCallback] = None
    on_send_error: Optional[SendErrorCallback] = None


BusinessOutcome = Union[HandlerResponse, WebSocketAccept]


# ==================================================================================================
# Wire-level outcomes
# ==================================================================================================


@dataclass(frozen=True)
class WireResponse:
    """
    Response ready for the transport.

    ``body`` is str, bytes or an async iterator of bytes.
    """

    status: int
    body: Any = b""
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class WebSocketUpgrade:
    """
    Accepted upgrade with JSON-wrapped callbacks.

    ``on_open`` and ``on_message`` return async iterators of already-encoded
    JSON text frames.
    """

    on_open: Optional[Callable[[], Any]]
    on_message: Callable[[Any], Any]
    on_close: Optional[CloseCallback] = None
    on_send_error: Optional[SendErrorCallback] = None
