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
Schema Gate - demo server.

Serves a small example schema behind SchemaMiddleware:
    GET  /api/hello    ?json={"name": "..."}      -> JSON greeting
    GET  /api/page                                 -> HTML page
    POST /api/notes    (auth cookie + X-CSRF)      -> JSON note
    POST /api/upload   multipart file + json field -> JSON file summary
    GET  /api/chat     WebSocket echo

Usage:
    python main.py
    python main.py --port 9000
    python main.py -H 127.0.0.1 -p 8080
"""

import argparse
import logging
import os
import sys
from typing import Any, Dict, List, Optional, Tuple

import uvicorn
from fastapi import FastAPI
from loguru import logger
from pydantic import BaseModel, Field

from schemagate.asgi import SchemaMiddleware
from schemagate.config import (
    APP_DESCRIPTION,
    APP_TITLE,
    APP_VERSION,
    DEFAULT_SERVER_HOST,
    DEFAULT_SERVER_PORT,
    LOG_LEVEL,
    SERVER_HOST,
    SERVER_PORT,
    build_request_config,
)
from schemagate.errors import TaggedError
from schemagate.pipeline import EndpointPipeline
from schemagate.result import Err, Ok
from schemagate.router import SchemaRouter, create_schema_handler
from schemagate.schema import Schema, endpoint, file_shape, html, json_response, schema, websocket
from schemagate.state import HandlerResponse, RequestState, WebSocketAccept

# ==================================================================================================
# Logging
# ==================================================================================================


class InterceptHandler(logging.Handler):
    """Forwards standard logging records (uvicorn) to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Configure the loguru sink and route uvicorn's loggers into it."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        colorize=True,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
        "<cyan>{name}</cyan> - <level>{message}</level>",
    )
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = [InterceptHandler()]
        uvicorn_logger.propagate = False


# ==================================================================================================
# Demo schema
# ==================================================================================================


class Greeting(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class NoteIn(BaseModel):
    title: str = Field(min_length=1)
    body: str = ""


class Note(BaseModel):
    id: int
    owner: str
    title: str
    body: str


class UploadSummary(BaseModel):
    name: str
    size: int
    caption: Optional[str] = None


class ChatMessage(BaseModel):
    text: str


DEMO_SCHEMA: Schema = schema("/api/", {
    "hello": endpoint(
        input=Greeting,
        responses={200: json_response(Dict[str, str])},
    ),
    "page": endpoint(
        responses={200: html()},
    ),
    "notes": endpoint(
        method="POST",
        auth="required",
        input=NoteIn,
        responses={201: json_response(Note)},
    ),
    "upload": endpoint(
        method="POST",
        input=Dict[str, str],
        files={"file": file_shape(name=str, size=int)},
        responses={200: json_response(UploadSummary)},
    ),
    "chat": endpoint(
        websocket=websocket(up=ChatMessage, down=ChatMessage),
    ),
})


def _hello(state: RequestState) -> HandlerResponse:
    return HandlerResponse(200, {"message": f"Hello, {state.input.name}!"})


def _page(state: RequestState) -> HandlerResponse:
    return HandlerResponse(200, "<!doctype html><title>Schema Gate</title><h1>Schema Gate</h1>")


def _session(state: RequestState):
    # Demo only: the cookie value is the user name
    if not state.token:
        return Err(TaggedError("SessionInvalid", status=401))
    return Ok(state.evolve(session={"user": state.token}))


def _make_notes_handler():
    notes: List[Note] = []

    def create_note(state: RequestState) -> HandlerResponse:
        note = Note(
            id=len(notes) + 1,
            owner=state.session["user"],
            title=state.input.title,
            body=state.input.body,
        )
        notes.append(note)
        return HandlerResponse(201, note)

    return create_note


def _upload(state: RequestState) -> HandlerResponse:
    upload = state.files["file"]
    try:
        summary = UploadSummary(name=upload.name, size=upload.size, caption=state.input.get("caption"))
    finally:
        os.remove(upload.path)
    return HandlerResponse(200, summary)


def _chat(state: RequestState) -> WebSocketAccept:
    def on_open():
        yield {"text": "connected"}

    def on_message(result):
        if result.ok:
            yield {"text": result.value.text}
        else:
            yield {"text": f"error: {result.error.tag}"}

    return WebSocketAccept(on_open=on_open, on_message=on_message)


def build_demo_router(api: Schema = DEMO_SCHEMA) -> SchemaRouter:
    """Wire the demo handlers to the demo schema."""
    return create_schema_handler(api, {
        "hello": _hello,
        "page": _page,
        "notes": EndpointPipeline(
            api.endpoints["notes"],
            body_handler=_make_notes_handler(),
            session_handler=_session,
            name="notes",
        ),
        "upload": _upload,
        "chat": _chat,
    })


def create_app(router: Optional[SchemaRouter] = None) -> FastAPI:
    """Build the FastAPI app with the schema middleware in front."""
    app = FastAPI(title=APP_TITLE, description=APP_DESCRIPTION, version=APP_VERSION)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"status": "healthy", "version": APP_VERSION}

    app.add_middleware(
        SchemaMiddleware,
        router=router or build_demo_router(),
        config=build_request_config(),
    )
    return app


# ==================================================================================================
# CLI
# ==================================================================================================


def parse_cli_args() -> argparse.Namespace:
    """
    Parse command-line arguments.

    Host and port default to None so that resolve_server_config() can tell
    "not given" apart from an explicit value.
    """
    parser = argparse.ArgumentParser(
        description=f"{APP_TITLE} - schema-checked HTTP and WebSocket endpoints",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Configuration priority: CLI arguments > environment variables > defaults\n"
            "Examples:\n"
            "  python main.py --port 9000\n"
            "  python main.py -H 127.0.0.1 -p 8080"
        ),
    )
    parser.add_argument(
        "-H", "--host",
        type=str,
        default=None,
        metavar="HOST",
        help=f"Server host address (default: {DEFAULT_SERVER_HOST})",
    )
    parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        metavar="PORT",
        help=f"Server port (default: {DEFAULT_SERVER_PORT})",
    )
    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"%(prog)s {APP_VERSION}",
    )
    return parser.parse_args()


def resolve_server_config(args: argparse.Namespace) -> Tuple[str, int]:
    """
    Resolve host and port: CLI > environment > default.

    Returns:
        (host, port)
    """
    host = args.host if args.host is not None else SERVER_HOST
    port = args.port if args.port is not None else SERVER_PORT
    if args.host is None and SERVER_HOST != DEFAULT_SERVER_HOST:
        logger.debug("Host from environment: {}", SERVER_HOST)
    if args.port is None and SERVER_PORT != DEFAULT_SERVER_PORT:
        logger.debug("Port from environment: {}", SERVER_PORT)
    return host, port


def validate_configuration() -> None:
    """Exit with code 1 when the body limits contradict each other."""
    config = build_request_config()
    limits = config.multipart
    errors: List[str] = []

    if (
        limits.minimum_file_size is not None
        and limits.maximum_file_size is not None
        and limits.minimum_file_size > limits.maximum_file_size
    ):
        errors.append("MULTIPART_MINIMUM_FILE_SIZE is larger than MULTIPART_MAXIMUM_FILE_SIZE")
    if limits.save_directory is not None and not os.path.isdir(limits.save_directory):
        errors.append(f"MULTIPART_SAVE_DIRECTORY does not exist: {limits.save_directory}")

    if errors:
        for message in errors:
            logger.error("Configuration error: {}", message)
        sys.exit(1)


def print_startup_banner(host: str, port: int, api: Schema = DEMO_SCHEMA) -> None:
    """Print the server address and every schema endpoint with its method."""
    display_host = "localhost" if host == "0.0.0.0" else host
    base_url = f"http://{display_host}:{port}"
    print()
    print(f"  {APP_TITLE} v{APP_VERSION}")
    print(f"  Server:   {base_url}")
    print(f"  Health:   {base_url}/health")
    print(f"  Schema:   {base_url}{api.prefix}")
    for name, definition in api.endpoints.items():
        path = api.path_for(name)
        if definition.websocket is not None and not definition.has_responses:
            print(f"    WS     ws://{display_host}:{port}{path}")
        else:
            print(f"    {definition.method:<6} {path}")
    print()


def main() -> None:
    args = parse_cli_args()
    setup_logging()
    validate_configuration()
    host, port = resolve_server_config(args)
    print_startup_banner(host, port)
    logger.info("Starting {} on {}:{}", APP_TITLE, host, port)
    uvicorn.run(create_app(), host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
