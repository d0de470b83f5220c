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
Accept / Accept-Charset negotiation.

The compiler builds one media type matcher per endpoint from its declared
response kinds:
  - html   -> text/html
  - json   -> application/json
  - binary -> any media type the declared mimetype shape accepts, or a
              subtype wildcard such as image/*
``*/*`` is always acceptable.

Charset negotiation applies only to endpoints that answer with text
(html or json); UTF-8 must be among the preferred charsets.
"""

from typing import Callable, List, Optional

from schemagate.errors import ErrorTag, tagged
from schemagate.headers import is_utf8_charset, preferred_charsets, preferred_media_types
from schemagate.result import Err, Ok, Result
from schemagate.schema import Endpoint
from schemagate.state import RequestState

MediaTypeMatcher = Callable[[str], bool]

HTML_MEDIA_TYPE = "text/html"
JSON_MEDIA_TYPE = "application/json"
ANY_MEDIA_TYPE = "*/*"


def build_media_type_matcher(definition: Endpoint) -> MediaTypeMatcher:
    """
    Build the predicate deciding whether one requested media type can be served.

    Args:
        definition: Endpoint whose response kinds are matched

    Returns:
        Callable taking a lower-case media type
    """
    accepted = {ANY_MEDIA_TYPE}
    if definition.has_html_response:
        accepted.add(HTML_MEDIA_TYPE)
    if definition.has_json_response:
        accepted.add(JSON_MEDIA_TYPE)

    mimetype_shapes = [
        response.mimetype
        for response in definition.responses.values()
        if response.kind == "binary"
    ]

    def matches(media_type: str) -> bool:
        if media_type in accepted:
            return True
        if not mimetype_shapes:
            return False
        if media_type.endswith("/*"):
            return True
        return any(shape.validate(media_type).success for shape in mimetype_shapes)

    return matches


def check_accept(
    state: RequestState,
    is_websocket_request: bool,
    matcher: MediaTypeMatcher,
    require_utf8: bool,
) -> Result:
    """
    Check Accept and (optionally) Accept-Charset against the endpoint.

    WebSocket handshakes are never negotiated.

    Returns:
        Ok(None) or Err(TaggedError)
    """
    if is_websocket_request:
        return Ok(None)

    accept = state.header("Accept")
    media_types: List[str] = preferred_media_types(accept)
    if not any(matcher(media_type) for media_type in media_types):
        return Err(tagged(ErrorTag.INVALID_ACCEPT_HEADER, header=accept))

    if require_utf8:
        accept_charset: Optional[str] = state.header("Accept-Charset")
        if not any(is_utf8_charset(charset) for charset in preferred_charsets(accept_charset)):
            return Err(tagged(ErrorTag.INVALID_ACCEPT_CHARSET_HEADER, header=accept_charset))

    return Ok(None)


def skip_accept(state: RequestState, is_websocket_request: bool) -> Result:
    """Endpoint without ordinary responses: nothing to negotiate."""
    return Ok(None)
