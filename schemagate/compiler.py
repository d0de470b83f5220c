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
Stage compiler.

Turns one Endpoint into a fixed set of check functions, selected once by
inspecting the descriptor. Requests never branch on the descriptor shape
again; they only call the selected functions.

Selection rules:
  upgrade  - no websocket            -> deny_upgrade
             websocket, no responses -> require_upgrade
             websocket + responses   -> detect_upgrade
  auth     - required / optional / none
  accept   - responses declared      -> check_accept (charset only for html/json)
             no responses            -> skip_accept
  content  - body method + files     -> check_multipart_content
             body method + input     -> check_json_content
             otherwise               -> skip_content
  body     - GET + input             -> query parser
             body method + files     -> multipart parser
             body method + input     -> JSON parser
             otherwise               -> no_body

The compiler is a pure function of the descriptor: compiling the same
Endpoint twice yields stages with identical behaviour.
"""

from dataclasses import dataclass
from functools import partial
from typing import Callable, Dict, FrozenSet

from loguru import logger

from schemagate.errors import (
    AUTH_ERRORS,
    CONTENT_ERRORS,
    JSON_BODY_ERRORS,
    METHOD_ERRORS,
    MULTIPART_JSON_FIELD_ERRORS,
    MULTIPART_STREAM_ERRORS,
    NEGOTIATION_ERRORS,
    URL_QUERY_ERRORS,
    ErrorTag,
    tagged,
)
from schemagate.result import Err, Ok, Result
from schemagate.schema import AUTH_OPTIONAL, AUTH_REQUIRED, GET, Endpoint, Schema
from schemagate.stages.auth import check_optional_auth, check_required_auth, read_auth_token
from schemagate.stages.body import (
    BodyStrategy,
    make_json_parser,
    make_multipart_parser,
    make_query_input_parser,
    no_body,
)
from schemagate.stages.content import check_json_content, check_multipart_content, skip_content
from schemagate.stages.negotiation import build_media_type_matcher, check_accept, skip_accept
from schemagate.stages.upgrade import deny_upgrade, detect_upgrade, require_upgrade
from schemagate.state import RequestState

Check = Callable[[RequestState], Result]
AcceptCheck = Callable[[RequestState, bool], Result]


@dataclass(frozen=True)
class CompiledEndpoint:
    """
    Stage functions selected for one endpoint.

    Attributes:
        endpoint: The descriptor this was compiled from
        check_upgrade: Returns Ok(is_websocket_request)
        check_auth: Returns Ok(token or None)
        check_accept: Takes (state, is_websocket_request)
        check_content: Body header checks
        parse_body: Async body strategy returning Ok(state with input/files)
        error_tags: Every built-in tag this endpoint can fail with
    """

    endpoint: Endpoint
    check_upgrade: Check
    check_auth: Check
    check_accept: AcceptCheck
    check_content: Check
    parse_body: BodyStrategy
    error_tags: FrozenSet[str]

    def check_headers(self, state: RequestState) -> Result:
        """
        Run the headers stage: method, upgrade, auth, accept, content.

        Returns:
            Ok(state with is_websocket_request and token) or the first Err
        """
        if state.method != self.endpoint.method:
            return Err(tagged(ErrorTag.WRONG_METHOD, method=state.method))

        upgrade = self.check_upgrade(state)
        if not upgrade.ok:
            return upgrade
        is_websocket_request = upgrade.value

        auth = self.check_auth(state)
        if not auth.ok:
            return auth

        accept = self.check_accept(state, is_websocket_request)
        if not accept.ok:
            return accept

        content = self.check_content(state)
        if not content.ok:
            return content

        return Ok(state.evolve(is_websocket_request=is_websocket_request, token=auth.value))


def _select_upgrade(definition: Endpoint) -> Check:
    if definition.websocket is None:
        return deny_upgrade
    if not definition.has_responses:
        return require_upgrade
    return detect_upgrade


def _select_auth(definition: Endpoint) -> Check:
    if definition.auth == AUTH_REQUIRED:
        return check_required_auth
    if definition.auth == AUTH_OPTIONAL:
        return check_optional_auth
    return read_auth_token


def _select_accept(definition: Endpoint) -> AcceptCheck:
    if not definition.has_responses:
        return skip_accept
    return partial(
        check_accept,
        matcher=build_media_type_matcher(definition),
        require_utf8=definition.has_html_response or definition.has_json_response,
    )


def _select_content(definition: Endpoint) -> Check:
    if definition.method == GET:
        return skip_content
    if definition.files is not None:
        return check_multipart_content
    if definition.input is not None:
        return check_json_content
    return skip_content


def _select_body(definition: Endpoint) -> BodyStrategy:
    if definition.method == GET:
        if definition.input is not None:
            return make_query_input_parser(definition.input)
        return no_body
    if definition.files is not None:
        return make_multipart_parser(definition.files, definition.input)
    if definition.input is not None:
        return make_json_parser(definition.input)
    return no_body


def _collect_error_tags(definition: Endpoint) -> FrozenSet[str]:
    tags = set(METHOD_ERRORS)

    if definition.websocket is None:
        tags.add(ErrorTag.UPGRADE_DENIED.value)
    elif not definition.has_responses:
        tags.update((ErrorTag.UPGRADE_REQUIRED.value, ErrorTag.UPGRADE_ERROR.value))

    if definition.auth == AUTH_REQUIRED:
        tags.update(AUTH_ERRORS)
    elif definition.auth == AUTH_OPTIONAL:
        tags.add(ErrorTag.CSRF_HEADER_REQUIRED.value)

    if definition.has_responses:
        tags.add(ErrorTag.INVALID_ACCEPT_HEADER.value)
        if definition.has_html_response or definition.has_json_response:
            tags.update(NEGOTIATION_ERRORS)

    if definition.method == GET:
        if definition.input is not None:
            tags.update(URL_QUERY_ERRORS)
    elif definition.files is not None:
        tags.update(CONTENT_ERRORS)
        tags.update(MULTIPART_STREAM_ERRORS)
        if definition.input is not None:
            tags.update(MULTIPART_JSON_FIELD_ERRORS)
    elif definition.input is not None:
        tags.update(CONTENT_ERRORS)
        tags.update(JSON_BODY_ERRORS)

    return frozenset(tags)


def compile_endpoint(definition: Endpoint) -> CompiledEndpoint:
    """
    Select the stage functions for one endpoint.

    Args:
        definition: Validated endpoint descriptor

    Returns:
        CompiledEndpoint ready to be shared by any number of requests
    """
    compiled = CompiledEndpoint(
        endpoint=definition,
        check_upgrade=_select_upgrade(definition),
        check_auth=_select_auth(definition),
        check_accept=_select_accept(definition),
        check_content=_select_content(definition),
        parse_body=_select_body(definition),
        error_tags=_collect_error_tags(definition),
    )
    logger.debug(
        "[Compiler] Compiled {} endpoint: upgrade={}, auth={}, content={}, body={}",
        definition.method,
        getattr(compiled.check_upgrade, "__name__", "?"),
        definition.auth,
        getattr(compiled.check_content, "__name__", "?"),
        getattr(compiled.parse_body, "__name__", "?"),
    )
    return compiled


def compile_schema(api: Schema) -> Dict[str, CompiledEndpoint]:
    """Compile every endpoint of a schema, keyed by endpoint name."""
    return {name: compile_endpoint(definition) for name, definition in api.endpoints.items()}
