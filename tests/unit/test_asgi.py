# -*- coding: utf-8 -*-

"""
Unit tests for the ASGI transport glue.
Tests to_starlette_response(), SchemaMiddleware and run_websocket().
"""

import asyncio
from typing import Literal

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.responses import StreamingResponse
from starlette.testclient import WebSocketDenialResponse

from schemagate.asgi import SchemaMiddleware, run_websocket, to_starlette_response
from schemagate.router import create_schema_handler
from schemagate.schema import binary, endpoint, html, schema, websocket
from schemagate.shaper import wrap_websocket
from schemagate.state import BinaryBody, HandlerResponse, WebSocketAccept, WireResponse

HTML_ACCEPT = {"Accept": "text/html", "Accept-Charset": "utf-8"}

API = schema("/rpc/", {
    "image": endpoint(responses={200: binary(Literal["image/png"])}),
    "broken": endpoint(responses={200: html()}),
    "live": endpoint(responses={200: html()}, websocket=websocket(up=str, down=str)),
})


async def png_chunks():
    yield b"\x89PNG"
    yield b"rest"


def live_handler(state):
    if state.is_websocket_request:
        return WebSocketAccept(on_message=lambda result: [result.value.upper()])
    return HandlerResponse(200, "<p>live</p>")


@pytest.fixture
def client():
    app = FastAPI()
    router = create_schema_handler(API, {
        "image": lambda state: HandlerResponse(200, BinaryBody(png_chunks(), "image/png")),
        "broken": lambda state: HandlerResponse(302, "moved"),
        "live": live_handler,
    })
    app.add_middleware(SchemaMiddleware, router=router)
    with TestClient(app) as test_client:
        yield test_client


class FakeWebSocket:
    """In-memory stand-in for a Starlette WebSocket."""

    def __init__(self, incoming, fail_on=None):
        self.incoming = list(incoming)
        self.sent = []
        self.accepted = False
        self.fail_on = fail_on

    async def accept(self):
        self.accepted = True

    async def send_text(self, text):
        if text == self.fail_on:
            raise RuntimeError("socket closed")
        self.sent.append(text)

    async def receive(self):
        message = self.incoming.pop(0)
        if message["type"] == "websocket.disconnect":
            # let the spawned senders finish first
            await asyncio.sleep(0.05)
        return message


def disconnect(code=1000):
    return {"type": "websocket.disconnect", "code": code}


def text(payload):
    return {"type": "websocket.receive", "text": payload}


class TestToStarletteResponse:
    """Tests for to_starlette_response()."""

    def test_bytes_body(self):
        response = to_starlette_response(WireResponse(201, b"{}", {"Content-Type": "application/json"}))

        assert response.status_code == 201
        assert response.body == b"{}"
        assert response.headers["content-type"] == "application/json"

    def test_async_body_streams(self):
        """
        What it does: Verifies async iterator bodies become StreamingResponse.
        Purpose: Large binary bodies are never buffered.
        """
        response = to_starlette_response(WireResponse(200, png_chunks(), {"Content-Type": "image/png"}))

        assert isinstance(response, StreamingResponse)


class TestSchemaMiddleware:
    """Tests for SchemaMiddleware over HTTP and WebSocket."""

    def test_streamed_binary_response(self, client):
        """
        What it does: Verifies a streamed binary body reaches the client intact.
        Purpose: Binary endpoints can stream.
        """
        response = client.get("/rpc/image", headers={"Accept": "image/png"})

        print(f"Response: {response.status_code} {response.headers}")
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.content == b"\x89PNGrest"

    def test_contract_violation_is_500(self, client):
        """
        What it does: Verifies an undeclared status becomes a plain 500.
        Purpose: Contract breaks never leak as declared responses.
        """
        response = client.get("/rpc/broken", headers=HTML_ACCEPT)

        assert response.status_code == 500
        assert response.text == "Internal Server Error"

    def test_mixed_endpoint_over_http(self, client):
        response = client.get("/rpc/live", headers=HTML_ACCEPT)

        assert response.text == "<p>live</p>"

    def test_mixed_endpoint_over_websocket(self, client):
        """
        What it does: Verifies the same endpoint accepts a WebSocket handshake.
        Purpose: Endpoints with responses and a WebSocket contract serve both.
        """
        with client.websocket_connect("/rpc/live") as ws:
            ws.send_text('"hi"')
            reply = ws.receive_json()

        print(f"Reply: {reply}")
        assert reply == "HI"

    def test_handshake_answered_with_denial_response(self):
        """
        What it does: Verifies an ordinary response to a handshake is sent as a denial response.
        Purpose: The client receives the real status and body instead of a bare close.
        """
        app = FastAPI()
        router = create_schema_handler(API, {"live": lambda state: HandlerResponse(200, "<p>no socket</p>")})
        app.add_middleware(SchemaMiddleware, router=router)

        with TestClient(app) as test_client:
            with pytest.raises(WebSocketDenialResponse) as exc_info:
                with test_client.websocket_connect("/rpc/live"):
                    pass

        print(f"Denial: {exc_info.value.status_code}")
        assert exc_info.value.status_code == 200
        assert exc_info.value.text == "<p>no socket</p>"


class TestRunWebSocket:
    """Tests for run_websocket()."""

    @pytest.mark.asyncio
    async def test_open_messages_and_close(self):
        """
        What it does: Verifies the open stream, replies and the close callback.
        Purpose: The full lifecycle of an accepted socket.
        """
        definition = endpoint(websocket=websocket(up=str, down=str))
        closed = []
        accept = WebSocketAccept(
            on_open=lambda: ["welcome"],
            on_message=lambda result: [result.value * 2],
            on_close=lambda code, reason: closed.append((code, reason)),
        )
        socket = FakeWebSocket([text('"ab"'), disconnect(1001)])

        await run_websocket(socket, wrap_websocket(definition, accept))

        print(f"Sent: {socket.sent}, closed: {closed}")
        assert socket.accepted
        assert sorted(socket.sent) == sorted(['"welcome"', '"abab"'])
        assert closed == [(1001, "")]

    @pytest.mark.asyncio
    async def test_send_error_callback(self):
        """
        What it does: Verifies failed sends are reported to on_send_error.
        Purpose: Business logic learns which message was lost.
        """
        definition = endpoint(websocket=websocket(up=str, down=str))
        errors = []

        async def on_send_error(frame, error):
            errors.append((frame, str(error)))

        accept = WebSocketAccept(on_open=lambda: ["lost"], on_send_error=on_send_error)
        socket = FakeWebSocket([disconnect()], fail_on='"lost"')

        await run_websocket(socket, wrap_websocket(definition, accept))

        assert errors == [('"lost"', "socket closed")]

    @pytest.mark.asyncio
    async def test_broken_callback_keeps_socket_open(self):
        """
        What it does: Verifies a callback returning a bare dict does not stop the receive loop.
        Purpose: One bad handler call never kills the connection.
        """
        definition = endpoint(websocket=websocket(up=str, down=str))
        accept = WebSocketAccept(
            on_message=lambda result: {"not": "iterable of messages"} if result.value == "bad" else ["ok"],
        )
        socket = FakeWebSocket([text('"bad"'), text('"good"'), disconnect()])

        await run_websocket(socket, wrap_websocket(definition, accept))

        assert socket.sent == ['"ok"']
