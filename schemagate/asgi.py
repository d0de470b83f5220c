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
ASGI transport glue.

SchemaMiddleware sits in front of any ASGI app (FastAPI, Starlette):
  - HTTP and WebSocket scopes whose path resolves to a schema endpoint are
    run through that endpoint's pipeline
  - Everything else falls through to the wrapped app (which answers 404
    for unknown paths)

Usage:
    app = FastAPI()
    app.add_middleware(SchemaMiddleware, router=create_schema_handler(api, handlers))
"""

import asyncio
import inspect
from typing import Any, AsyncIterator, Dict, Optional, Set

from loguru import logger
from starlette.requests import ClientDisconnect, Request
from starlette.responses import PlainTextResponse, Response, StreamingResponse
from starlette.status import WS_1008_POLICY_VIOLATION, WS_1011_INTERNAL_ERROR
from starlette.types import ASGIApp, Receive, Scope, Send
from starlette.websockets import WebSocket, WebSocketDisconnect

from schemagate.body_reader import RequestConfig, StreamAborted
from schemagate.config import build_request_config
from schemagate.errors import ContractViolation
from schemagate.pipeline import EndpointPipeline
from schemagate.router import SchemaRouter
from schemagate.state import RequestState, WebSocketUpgrade, WireResponse, make_request_state

DENIAL_RESPONSE_EXTENSION = "websocket.http.response"


async def _body_stream(request: Request) -> AsyncIterator[bytes]:
    """Request body chunks; a client disconnect surfaces as StreamAborted."""
    try:
        async for chunk in request.stream():
            if chunk:
                yield chunk
    except ClientDisconnect as e:
        raise StreamAborted("Client disconnected while sending the body") from e


def to_starlette_response(response: WireResponse) -> Response:
    """Convert a WireResponse into a Starlette response."""
    body = response.body
    if body is None or isinstance(body, (str, bytes, bytearray)):
        return Response(content=body, status_code=response.status, headers=response.headers)
    return StreamingResponse(body, status_code=response.status, headers=response.headers)


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class SchemaMiddleware:
    """
    ASGI middleware serving a SchemaRouter.

    Args:
        app: Wrapped ASGI app, receives every unmatched scope
        router: Router built with create_schema_handler()
        config: Body limits for every request (defaults to the env config)
    """

    def __init__(self, app: ASGIApp, router: SchemaRouter, config: Optional[RequestConfig] = None):
        self.app = app
        self.router = router
        self.config = config or build_request_config()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        pipeline = self.router.resolve(scope["path"])
        if pipeline is None:
            await self.app(scope, receive, send)
            return

        if scope["type"] == "http":
            await self._serve_http(pipeline, scope, receive, send)
        else:
            await self._serve_websocket(pipeline, scope, receive, send)

    # ==============================================================================================
    # HTTP
    # ==============================================================================================

    async def _serve_http(
        self,
        pipeline: EndpointPipeline,
        scope: Scope,
        receive: Receive,
        send: Send,
    ) -> None:
        request = Request(scope, receive)
        state = make_request_state(
            method=request.method,
            path=request.url.path,
            query=dict(request.query_params),
            headers=dict(request.headers),
            cookies=request.cookies,
            config=self.config,
        )

        try:
            outcome = await pipeline.handle(state, body=_body_stream(request))
        except ContractViolation:
            response: Response = PlainTextResponse("Internal Server Error", status_code=500)
        else:
            if isinstance(outcome.response, WebSocketUpgrade):
                logger.error("[ASGI] {} accepted a WebSocket upgrade on a plain HTTP connection", pipeline.name)
                response = PlainTextResponse("Internal Server Error", status_code=500)
            else:
                response = to_starlette_response(outcome.response)

        await response(scope, receive, send)

    # ==============================================================================================
    # WebSocket
    # ==============================================================================================

    def _websocket_state(self, websocket: WebSocket) -> RequestState:
        headers: Dict[str, str] = dict(websocket.headers)
        # The server completed the handshake, some servers drop these two headers from the scope
        headers.setdefault("upgrade", "websocket")
        headers.setdefault("connection", "upgrade")
        return make_request_state(
            method="GET",
            path=websocket.url.path,
            query=dict(websocket.query_params),
            headers=headers,
            cookies=websocket.cookies,
            config=self.config,
        )

    async def _serve_websocket(
        self,
        pipeline: EndpointPipeline,
        scope: Scope,
        receive: Receive,
        send: Send,
    ) -> None:
        websocket = WebSocket(scope, receive, send)
        state = self._websocket_state(websocket)

        try:
            outcome = await pipeline.handle(state)
        except ContractViolation:
            await websocket.close(code=WS_1011_INTERNAL_ERROR)
            return

        if outcome.failed:
            reason = str(getattr(outcome.error, "tag", "Error"))
            logger.debug("[WebSocket] Handshake refused for {}: {}", pipeline.name, reason)
            await websocket.close(code=WS_1008_POLICY_VIOLATION, reason=reason)
            return

        if isinstance(outcome.response, WireResponse):
            if DENIAL_RESPONSE_EXTENSION in scope.get("extensions", {}):
                await websocket.send_denial_response(to_starlette_response(outcome.response))
            else:
                await websocket.close(code=WS_1008_POLICY_VIOLATION, reason=str(outcome.response.status))
            return

        await run_websocket(websocket, outcome.response)


async def run_websocket(websocket: WebSocket, upgrade: WebSocketUpgrade) -> None:
    """
    Drive an accepted WebSocket until the client disconnects.

    The open stream and every inbound frame are handled by their own task,
    so a slow handler never blocks the receive loop. Frames are sent under
    a lock, one at a time.
    """
    await websocket.accept()
    send_lock = asyncio.Lock()
    tasks: Set[asyncio.Task] = set()

    async def pump(frames: AsyncIterator[str]) -> None:
        try:
            async for frame in frames:
                try:
                    async with send_lock:
                        await websocket.send_text(frame)
                except (WebSocketDisconnect, RuntimeError, OSError) as e:
                    if upgrade.on_send_error is None:
                        logger.warning("[WebSocket] Send failed: {}", e)
                    else:
                        await _resolve(upgrade.on_send_error(frame, e))
                    return
        except ContractViolation as e:
            logger.error("[WebSocket] Callback broke the message contract: {} {}", e, e.details)
        except Exception as e:
            logger.exception("[WebSocket] Message handler failed: {}", e)

    def spawn(frames: AsyncIterator[str]) -> None:
        task = asyncio.create_task(pump(frames))
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    if upgrade.on_open is not None:
        spawn(upgrade.on_open())

    code, reason = 1000, ""
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                code = message.get("code", 1000)
                reason = message.get("reason") or ""
                break
            payload = message.get("text")
            if payload is None:
                payload = message.get("bytes")
            spawn(upgrade.on_message(payload))
    finally:
        for task in list(tasks):
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug("[WebSocket] Closed with code {}", code)
        if upgrade.on_close is not None:
            await _resolve(upgrade.on_close(code, reason))
