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
Schema Gate - schema-checked HTTP and WebSocket endpoints.

An endpoint is declared once (method, auth, input, files, responses,
WebSocket messages); the package compiles it into a fixed pipeline that
checks every request and shapes every response against that declaration.

Modules:
    - config: Configuration and fixed request conventions
    - validator: Shape protocol and pydantic-backed shapes
    - schema: Endpoint descriptors and schemas
    - errors: Tagged error taxonomy and status mapping
    - body_reader: Streaming JSON and multipart readers
    - stages: Individual request checks
    - compiler: Endpoint -> compiled stage functions
    - pipeline: Per-request executor
    - shaper: Response and WebSocket shaping
    - router: Literal-prefix path router
    - asgi: ASGI middleware
    - client: Schema-driven httpx client
"""

# Version is imported from config.py, the single source of truth
from schemagate.config import APP_VERSION as __version__

__author__ = "Jwadow"

# Descriptors
from schemagate.schema import (
    Endpoint,
    Schema,
    binary,
    endpoint,
    file_shape,
    html,
    json_response,
    schema,
    websocket,
)
from schemagate.validator import PydanticShape, Shape, ValidationResult, as_shape

# Results and errors
from schemagate.result import Err, Ok, Result
from schemagate.errors import ContractViolation, ErrorTag, TaggedError, describe_error, tagged

# Request state and outcomes
from schemagate.body_reader import JSONLimits, MultipartLimits, RequestConfig
from schemagate.state import (
    BinaryBody,
    HandlerResponse,
    RequestState,
    WebSocketAccept,
    make_request_state,
)

# Pipeline
from schemagate.compiler import CompiledEndpoint, compile_endpoint, compile_schema
from schemagate.pipeline import EndpointPipeline, PipelineOutcome, PipelinePhase, create_endpoint_handler
from schemagate.shaper import problem_response, shape_response
from schemagate.router import SchemaRouter, create_schema_handler

# Transport and client
from schemagate.asgi import SchemaMiddleware
from schemagate.client import SchemaClient, build_url, validate_websocket_message

__all__ = [
    # Version
    "__version__",

    # Descriptors
    "Endpoint",
    "Schema",
    "binary",
    "endpoint",
    "file_shape",
    "html",
    "json_response",
    "schema",
    "websocket",
    "PydanticShape",
    "Shape",
    "ValidationResult",
    "as_shape",

    # Results and errors
    "Err",
    "Ok",
    "Result",
    "ContractViolation",
    "ErrorTag",
    "TaggedError",
    "describe_error",
    "tagged",

    # Request state
    "JSONLimits",
    "MultipartLimits",
    "RequestConfig",
    "BinaryBody",
    "HandlerResponse",
    "RequestState",
    "WebSocketAccept",
    "make_request_state",

    # Pipeline
    "CompiledEndpoint",
    "compile_endpoint",
    "compile_schema",
    "EndpointPipeline",
    "PipelineOutcome",
    "PipelinePhase",
    "create_endpoint_handler",
    "problem_response",
    "shape_response",
    "SchemaRouter",
    "create_schema_handler",

    # Transport and client
    "SchemaMiddleware",
    "SchemaClient",
    "build_url",
    "validate_websocket_message",
]
