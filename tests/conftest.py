# -*- coding: utf-8 -*-

"""
Shared fixtures for Schema Gate tests.

Provides request state builders, in-memory body streams, a multipart body
encoder and a TestClient around the demo app.
"""

from typing import Any, AsyncIterator, Dict, Iterable, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from schemagate.body_reader import JSONLimits, MultipartLimits, RequestConfig, StreamAborted
from schemagate.state import make_request_state

BOUNDARY = "schemagate-test-boundary"

WEBSOCKET_HEADERS = {
    "Upgrade": "websocket",
    "Connection": "Upgrade",
    "Sec-WebSocket-Key": "dGhlIHNhbXBsZSBub25jZQ==",
    "Sec-WebSocket-Version": "13",
}

JSON_ACCEPT_HEADERS = {
    "Accept": "application/json",
    "Accept-Charset": "utf-8",
}


async def stream_chunks(*chunks: bytes) -> AsyncIterator[bytes]:
    """Async body stream yielding the given chunks."""
    for chunk in chunks:
        yield chunk


async def aborted_stream(*chunks: bytes) -> AsyncIterator[bytes]:
    """Async body stream that fails with StreamAborted after its chunks."""
    for chunk in chunks:
        yield chunk
    raise StreamAborted("client went away")


def encode_multipart(
    fields: Optional[Dict[str, str]] = None,
    files: Iterable[Tuple[str, str, bytes, str]] = (),
    boundary: str = BOUNDARY,
) -> bytes:
    """
    Encode a multipart/form-data body.

    Args:
        fields: Plain field name -> value
        files: (field name, file name, content, content type) tuples
        boundary: Boundary string
    """
    parts = []
    for name, value in (fields or {}).items():
        parts.append(
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode("utf-8")
            + value.encode("utf-8")
            + b"\r\n"
        )
    for name, filename, content, content_type in files:
        parts.append(
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
            f"Content-Type: {content_type}\r\n\r\n".encode("utf-8")
            + content
            + b"\r\n"
        )
    parts.append(f"--{boundary}--\r\n".encode("utf-8"))
    return b"".join(parts)


@pytest.fixture
def make_state():
    """
    Factory for initial request states.

    Usage:
        state = make_state("POST", headers={...}, cookies={...})
    """

    def _make(
        method: str = "GET",
        path: str = "/api/test",
        query: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
        cookies: Optional[Dict[str, str]] = None,
        config: Optional[RequestConfig] = None,
    ):
        return make_request_state(method, path, query, headers, cookies, config)

    return _make


@pytest.fixture
def json_headers():
    """Headers of a well-formed JSON request."""
    return {
        **JSON_ACCEPT_HEADERS,
        "Content-Type": "application/json; charset=utf-8",
    }


@pytest.fixture
def multipart_headers():
    """Headers of a well-formed multipart request (no Content-Length)."""
    return {
        **JSON_ACCEPT_HEADERS,
        "Content-Type": f"multipart/form-data; boundary={BOUNDARY}",
    }


@pytest.fixture
def upload_config(tmp_path):
    """RequestConfig writing uploads into a per-test temp directory."""
    return RequestConfig(
        multipart=MultipartLimits(save_directory=str(tmp_path)),
        json=JSONLimits(),
    )


@pytest.fixture
def test_client(tmp_path):
    """TestClient around the demo app, uploads stored in a temp directory."""
    from main import build_demo_router
    from fastapi import FastAPI
    from schemagate.asgi import SchemaMiddleware

    app = FastAPI()

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"status": "healthy"}

    app.add_middleware(
        SchemaMiddleware,
        router=build_demo_router(),
        config=RequestConfig(multipart=MultipartLimits(save_directory=str(tmp_path))),
    )
    with TestClient(app) as client:
        yield client


@pytest.fixture
def chunks():
    """``chunks(b"a", b"b")`` -> async body stream."""
    return stream_chunks


@pytest.fixture
def aborted_chunks():
    """``aborted_chunks(b"a")`` -> async body stream ending in StreamAborted."""
    return aborted_stream


@pytest.fixture
def multipart_encoder():
    """``multipart_encoder(fields, files)`` -> multipart body bytes."""
    return encode_multipart


@pytest.fixture
def websocket_headers():
    """Complete WebSocket handshake headers."""
    return dict(WEBSOCKET_HEADERS)
