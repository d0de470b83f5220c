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
Response shaping.

Turns the business logic outcome into what goes on the wire:
  - HandlerResponse -> WireResponse, formatted by the kind declared for its status
      html   -> body unchanged, text/html; charset=utf-8 by default
      json   -> JSON-encoded body, application/json; charset=utf-8 by default
      binary -> BinaryBody data, its mimetype as Content-Type by default
  - WebSocketAccept -> WebSocketUpgrade whose callbacks JSON-encode every
    outbound message and validate every inbound frame

A status or kind the endpoint never declared raises ContractViolation.
Failed requests are answered by problem_response() (RFC 7807).
"""

import inspect
import json
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Union

from loguru import logger
from pydantic import TypeAdapter

from schemagate.body_reader import parse_json
from schemagate.errors import ContractViolation, ErrorTag, describe_error, tagged
from schemagate.result import Err, Ok, Result
from schemagate.schema import SWITCHING_PROTOCOLS, Endpoint
from schemagate.state import (
    BinaryBody,
    BusinessOutcome,
    HandlerResponse,
    RequestState,
    WebSocketAccept,
    WebSocketUpgrade,
    WireResponse,
)
from schemagate.validator import Shape

JSON_CONTENT_TYPE = "application/json; charset=utf-8"
HTML_CONTENT_TYPE = "text/html; charset=utf-8"
PROBLEM_MEDIA_TYPE = "application/problem+json"

_ANY_VALUE = TypeAdapter(Any)


def encode_json(value: Any) -> bytes:
    """Serialize any JSON-compatible value (pydantic models included) to UTF-8 JSON."""
    return _ANY_VALUE.dump_json(value)


def _has_header(headers: Mapping[str, str], name: str) -> bool:
    wanted = name.lower()
    return any(key.lower() == wanted for key in headers)


def _with_default_content_type(headers: Mapping[str, str], content_type: str) -> Dict[str, str]:
    shaped = dict(headers)
    if not _has_header(shaped, "Content-Type"):
        shaped["Content-Type"] = content_type
    return shaped


# ==================================================================================================
# Ordinary responses
# ==================================================================================================


def _shape_handler_response(definition: Endpoint, response: HandlerResponse) -> WireResponse:
    declared = definition.responses.get(response.status)
    if declared is None:
        raise ContractViolation(
            f"Unexpected response status {response.status}",
            status=response.status,
            declared=sorted(definition.responses),
        )

    if declared.kind == "html":
        if not isinstance(response.body, str):
            raise ContractViolation(
                f"Status {response.status} is declared as html but the body is "
                f"{type(response.body).__name__}",
                status=response.status,
                kind="html",
            )
        return WireResponse(
            status=response.status,
            body=response.body,
            headers=_with_default_content_type(response.headers, HTML_CONTENT_TYPE),
        )

    if declared.kind == "json":
        return WireResponse(
            status=response.status,
            body=encode_json(response.body),
            headers=_with_default_content_type(response.headers, JSON_CONTENT_TYPE),
        )

    body = response.body
    if not isinstance(body, BinaryBody):
        raise ContractViolation(
            f"Status {response.status} is declared as binary but the body is "
            f"{type(body).__name__}",
            status=response.status,
            kind="binary",
        )
    if not declared.mimetype.validate(body.mimetype).success:
        raise ContractViolation(
            f"Mimetype '{body.mimetype}' is not allowed for status {response.status}",
            status=response.status,
            kind="binary",
        )
    return WireResponse(
        status=response.status,
        body=body.data,
        headers=_with_default_content_type(response.headers, body.mimetype),
    )


# ==================================================================================================
# WebSocket
# ==================================================================================================


def message_to_result(message: Any, up: Shape) -> Result:
    """
    Decode and validate one inbound WebSocket frame.

    Args:
        message: Raw frame payload (str for text frames, bytes for binary)
        up: Shape of client-to-server messages

    Returns:
        Ok(validated value), or Err with NonStringMessage, NonJSONMessage
        or InvalidMessage
    """
    if not isinstance(message, str):
        return Err(tagged(ErrorTag.NON_STRING_MESSAGE))
    try:
        value = parse_json(message)
    except (ValueError, RecursionError) as e:
        return Err(tagged(ErrorTag.NON_JSON_MESSAGE, error=str(e)))
    validation = up.validate(value)
    if not validation.success:
        return Err(tagged(ErrorTag.INVALID_MESSAGE, input=value, diagnostic=validation.diagnostic))
    return Ok(validation.value)


async def encode_messages(produced: Any) -> AsyncIterator[str]:
    """
    JSON-encode every message produced by a user WebSocket callback.

    ``produced`` is what the callback returned: None, a sync or async
    iterable of messages, or an awaitable resolving to one of those.
    """
    if inspect.isawaitable(produced):
        produced = await produced
    if produced is None:
        return

    if hasattr(produced, "__aiter__"):
        async for message in produced:
            yield encode_json(message).decode("utf-8")
        return

    if isinstance(produced, (str, bytes, Mapping)) or not hasattr(produced, "__iter__"):
        raise ContractViolation(
            "WebSocket callbacks must return an iterable of messages",
            returned=type(produced).__name__,
        )
    for message in produced:
        yield encode_json(message).decode("utf-8")


def wrap_websocket(definition: Endpoint, accept: WebSocketAccept) -> WebSocketUpgrade:
    """Wrap the user's callbacks with JSON encoding and inbound frame validation."""
    up = definition.websocket.up
    user_open = accept.on_open
    user_message = accept.on_message

    on_open = None
    if user_open is not None:
        def on_open() -> AsyncIterator[str]:
            return encode_messages(user_open())

    def on_message(message: Any) -> AsyncIterator[str]:
        result = message_to_result(message, up)
        if not result.ok:
            logger.debug("[WebSocket] Inbound frame rejected: {}", result.error.tag)
        if user_message is None:
            return encode_messages(None)
        return encode_messages(user_message(result))

    return WebSocketUpgrade(
        on_open=on_open,
        on_message=on_message,
        on_close=accept.on_close,
        on_send_error=accept.on_send_error,
    )


# ==================================================================================================
# Entry points
# ==================================================================================================


def shape_response(
    definition: Endpoint,
    outcome: BusinessOutcome,
    state: RequestState,
) -> Union[WireResponse, WebSocketUpgrade]:
    """
    Format the business logic outcome according to the endpoint's contract.

    Args:
        definition: Endpoint descriptor
        outcome: HandlerResponse or WebSocketAccept from business logic
        state: Final request state

    Returns:
        WireResponse, or WebSocketUpgrade (status 101) for accepted upgrades

    Raises:
        ContractViolation: Undeclared status, wrong body kind, or a
            WebSocket accept where no upgrade is possible
    """
    if isinstance(outcome, WebSocketAccept):
        if definition.websocket is None:
            raise ContractViolation("WebSocket accepted on an endpoint without a WebSocket contract")
        if not state.is_websocket_request:
            raise ContractViolation("WebSocket accepted for a request that is not a WebSocket handshake")
        logger.debug("[Shaper] Upgrading to WebSocket ({})", SWITCHING_PROTOCOLS)
        return wrap_websocket(definition, outcome)

    if isinstance(outcome, HandlerResponse):
        return _shape_handler_response(definition, outcome)

    raise ContractViolation(
        f"Business logic returned {type(outcome).__name__}, expected HandlerResponse or WebSocketAccept",
    )


def problem_response(error: Any, state: Optional[RequestState] = None) -> WireResponse:
    """
    Default failure response: an RFC 7807 problem document.

    Example body:
        {"type": "about:blank", "title": "Unauthorized", "status": 401,
         "detail": "Authentication is required.", "tag": "AuthRequired"}
    """
    info = describe_error(error)
    document = {
        "type": "about:blank",
        "title": info.title,
        "status": info.status,
        "detail": info.message,
        "tag": info.tag,
    }
    headers = {"Content-Type": PROBLEM_MEDIA_TYPE}
    if info.tag == ErrorTag.UPGRADE_REQUIRED.value:
        headers["Upgrade"] = "websocket"
    return WireResponse(
        status=info.status,
        body=json.dumps(document).encode("utf-8"),
        headers=headers,
    )
