# -*- coding: utf-8 -*-

"""
Unit tests for the schema-driven HTTP client.
Tests request building and response checking against a mocked transport.
"""

import json
from typing import Dict, List, Literal
from unittest.mock import patch
from urllib.parse import unquote

import httpx
import pytest

from schemagate.client import ClientErrorTag, ClientResponse, SchemaClient, build_url, validate_websocket_message
from schemagate.errors import ErrorTag
from schemagate.schema import binary, endpoint, file_shape, html, json_response, schema, websocket
from schemagate.state import BinaryBody
from schemagate.validator import as_shape, guard

API = schema("/api/", {
    "search": endpoint(input=Dict[str, str], responses={200: json_response(List[str])}),
    "page": endpoint(responses={200: html()}),
    "create": endpoint(method="POST", auth="required", input=Dict[str, int], responses={201: json_response(Dict[str, int])}),
    "upload": endpoint(method="POST", input=Dict[str, str], files={"photo": file_shape()}, responses={200: json_response(int)}),
    "image": endpoint(responses={200: binary(Literal["image/png"])}),
    "chat": endpoint(websocket=websocket(up=str, down=str)),
})

JSON_TYPE = "application/json; charset=utf-8"


def make_client(handler):
    """SchemaClient whose transport answers every request with ``handler``."""
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://testserver")
    return SchemaClient(API, http)


class TestBuildURL:
    """Tests for build_url()."""

    def test_get_input_in_query(self):
        """
        What it does: Verifies GET input is JSON-encoded into the json query key.
        Purpose: GET requests carry no body.
        """
        url = build_url(API, "search", {"q": "a b"})

        print(f"URL: {url}")
        path, query = url.split("?", 1)
        assert path == "/api/search"
        assert query.startswith("json=")
        assert json.loads(unquote(query[len("json="):])) == {"q": "a b"}

    def test_no_input(self):
        assert build_url(API, "page") == "/api/page"

    def test_body_method_has_no_query(self):
        assert build_url(API, "create", {"n": 1}) == "/api/create"


class TestFetchRequests:
    """Tests for the requests the client sends."""

    @pytest.mark.asyncio
    async def test_json_body_request(self):
        """
        What it does: Verifies POST input is sent as a UTF-8 JSON body with CSRF header.
        Purpose: Requests pass the server's content and auth checks.
        """
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(201, json={"n": 1}, headers={"Content-Type": JSON_TYPE})

        client = make_client(handler)

        result = await client.fetch("create", {"n": 1})

        request = seen["request"]
        print(f"Headers: {dict(request.headers)}")
        assert result.ok
        assert request.method == "POST"
        assert request.url.path == "/api/create"
        assert request.headers["Content-Type"] == "application/json; charset=utf-8"
        assert request.headers["Accept"] == "application/json"
        assert request.headers["Accept-Charset"] == "utf-8"
        assert request.headers["X-CSRF"] == ""
        assert json.loads(request.content) == {"n": 1}

    @pytest.mark.asyncio
    async def test_multipart_request(self):
        """
        What it does: Verifies files and the json field are sent as multipart.
        Purpose: Upload endpoints receive both in one request.
        """
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = request.read()
            seen["type"] = request.headers["Content-Type"]
            return httpx.Response(200, content=b"3", headers={"Content-Type": JSON_TYPE})

        client = make_client(handler)

        result = await client.fetch("upload", {"caption": "cat"}, files={"photo": ("cat.png", b"PNG", "image/png")})

        print(f"Content-Type: {seen['type']}")
        assert result.value.body == 3
        assert seen["type"].startswith("multipart/form-data")
        assert b'name="json"' in seen["body"]
        assert b'{"caption":"cat"}' in seen["body"]
        assert b'filename="cat.png"' in seen["body"]

    @pytest.mark.asyncio
    async def test_websocket_only_endpoint_raises(self):
        client = make_client(lambda request: httpx.Response(500))

        with pytest.raises(ValueError):
            await client.fetch("chat")

    @pytest.mark.asyncio
    async def test_network_error(self):
        """
        What it does: Verifies transport failures become NetworkError.
        Purpose: Callers handle every failure through the result value.
        """

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        result = await client.fetch("page")

        print(f"Result: {result}")
        assert result.error.tag == ClientErrorTag.NETWORK_ERROR


class TestResponseChecks:
    """Tests for response validation."""

    @pytest.mark.asyncio
    async def test_valid_json_response(self):
        client = make_client(lambda request: httpx.Response(200, content=b'["a", "b"]', headers={"Content-Type": JSON_TYPE}))

        result = await client.fetch("search", {"q": "x"})

        assert isinstance(result.value, ClientResponse)
        assert result.value.body == ["a", "b"]

    @pytest.mark.asyncio
    async def test_unexpected_status(self):
        """
        What it does: Verifies undeclared statuses are reported.
        Purpose: Error responses are never mistaken for data.
        """
        client = make_client(lambda request: httpx.Response(404, content=b"{}", headers={"Content-Type": JSON_TYPE}))

        result = await client.fetch("search", {"q": "x"})

        assert result.error.tag == ClientErrorTag.UNEXPECTED_STATUS

    @pytest.mark.parametrize("content_type", [
        "text/html; charset=utf-8",
        "application/json",
        "application/json; charset=latin-1",
    ])
    @pytest.mark.asyncio
    async def test_unexpected_content_type(self, content_type):
        """
        What it does: Verifies wrong media types and charsets are reported.
        Purpose: Text responses must be UTF-8 of the declared kind.
        """
        client = make_client(lambda request: httpx.Response(200, content=b"[]", headers={"Content-Type": content_type}))

        result = await client.fetch("search", {"q": "x"})

        print(f"{content_type} -> {result}")
        assert result.error.tag == ClientErrorTag.UNEXPECTED_CONTENT_TYPE

    @pytest.mark.asyncio
    async def test_decode_error(self):
        client = make_client(lambda request: httpx.Response(200, content=b"[oops", headers={"Content-Type": JSON_TYPE}))

        result = await client.fetch("search", {"q": "x"})

        assert result.error.tag == ClientErrorTag.OUTPUT_DECODE_ERROR

    @pytest.mark.asyncio
    async def test_non_finite_literal_is_decode_error(self):
        client = make_client(lambda request: httpx.Response(200, content=b"[NaN]", headers={"Content-Type": JSON_TYPE}))

        result = await client.fetch("search", {"q": "x"})

        assert result.error.tag == ClientErrorTag.OUTPUT_DECODE_ERROR

    @pytest.mark.asyncio
    async def test_validation_error(self):
        """
        What it does: Verifies JSON not matching the declared shape is reported with diagnostic.
        Purpose: Clients never see unvalidated data.
        """
        client = make_client(lambda request: httpx.Response(200, content=b"[1, {}]", headers={"Content-Type": JSON_TYPE}))

        result = await client.fetch("search", {"q": "x"})

        assert result.error.tag == ClientErrorTag.OUTPUT_VALIDATION_ERROR
        assert result.error["output"] == [1, {}]
        assert result.error["diagnostic"]

    @pytest.mark.asyncio
    async def test_html_response(self):
        client = make_client(lambda request: httpx.Response(200, content=b"<p>hi</p>", headers={"Content-Type": "text/html; charset=utf-8"}))

        result = await client.fetch("page")

        assert result.value.body == "<p>hi</p>"

    @pytest.mark.asyncio
    async def test_binary_response(self):
        """
        What it does: Verifies binary responses need no charset and keep raw bytes.
        Purpose: Charsets do not apply to binary data.
        """
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["accept"] = request.headers["Accept"]
            return httpx.Response(200, content=b"\x89PNG", headers={"Content-Type": "image/png"})

        client = make_client(handler)

        result = await client.fetch("image")

        assert seen["accept"] == "*/*"
        assert result.value.body == BinaryBody(data=b"\x89PNG", mimetype="image/png")

    @pytest.mark.asyncio
    async def test_binary_wrong_mimetype(self):
        client = make_client(lambda request: httpx.Response(200, content=b"GIF", headers={"Content-Type": "image/gif"}))

        result = await client.fetch("image")

        assert result.error.tag == ClientErrorTag.UNEXPECTED_CONTENT_TYPE

    @pytest.mark.asyncio
    async def test_binary_mimetype_checked_with_guard(self):
        """
        What it does: Verifies the response mimetype is checked through validator.guard().
        Purpose: Binary mimetypes use the same shape check as the server side.
        """
        client = make_client(lambda request: httpx.Response(200, content=b"PNG", headers={"Content-Type": "image/png"}))

        with patch("schemagate.client.guard", wraps=guard) as guarded:
            result = await client.fetch("image")

        print(f"guard calls: {guarded.call_args_list}")
        assert result.ok
        assert guarded.call_args.args[1] == "image/png"


class TestWebSocketMessageValidation:
    """Tests for validate_websocket_message()."""

    def test_valid_and_invalid(self):
        shape = as_shape(str)

        assert validate_websocket_message('"hi"', shape).value == "hi"
        assert validate_websocket_message("5", shape).error.tag == ErrorTag.INVALID_MESSAGE
        assert validate_websocket_message(b"x", shape).error.tag == ErrorTag.NON_STRING_MESSAGE
