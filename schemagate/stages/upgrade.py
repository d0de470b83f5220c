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
WebSocket upgrade checks.

Three policies, chosen per endpoint by the compiler:
  1. deny_upgrade      - plain HTTP endpoints; any Upgrade header is rejected
  2. require_upgrade   - WebSocket-only endpoints; a valid handshake is mandatory
  3. detect_upgrade    - WebSocket endpoints that also answer plain HTTP;
                         the handshake result is carried, never an error

Each policy returns Ok(is_websocket_request) or Err(TaggedError).
"""

from dataclasses import dataclass
from typing import Optional

from schemagate.errors import ErrorTag, tagged
from schemagate.headers import header_tokens
from schemagate.result import Err, Ok, Result
from schemagate.state import RequestState

SUPPORTED_WEBSOCKET_VERSION = "13"


@dataclass(frozen=True)
class UpgradeInspection:
    """
    Result of looking at the handshake headers.

    Attributes:
        requested: An Upgrade header is present
        valid: The request is a complete WebSocket handshake
        reason: Why an attempted handshake is invalid
    """

    requested: bool
    valid: bool
    reason: Optional[str] = None


def inspect_upgrade(state: RequestState) -> UpgradeInspection:
    """Classify the request's upgrade headers."""
    upgrade = state.header("Upgrade")
    if upgrade is None:
        return UpgradeInspection(requested=False, valid=False)

    if upgrade.strip().lower() != "websocket":
        return UpgradeInspection(True, False, f"Unsupported upgrade protocol '{upgrade}'")
    if state.method != "GET":
        return UpgradeInspection(True, False, "WebSocket handshake must use GET")
    if "upgrade" not in header_tokens(state.header("Connection")):
        return UpgradeInspection(True, False, "Connection header must contain 'upgrade'")
    if not state.header("Sec-WebSocket-Key"):
        return UpgradeInspection(True, False, "Missing Sec-WebSocket-Key header")
    if (state.header("Sec-WebSocket-Version") or "").strip() != SUPPORTED_WEBSOCKET_VERSION:
        return UpgradeInspection(True, False, "Sec-WebSocket-Version must be 13")
    return UpgradeInspection(requested=True, valid=True)


def deny_upgrade(state: RequestState) -> Result:
    """Plain HTTP endpoint: reject any upgrade attempt."""
    if state.header("Upgrade") is not None:
        return Err(tagged(ErrorTag.UPGRADE_DENIED))
    return Ok(False)


def require_upgrade(state: RequestState) -> Result:
    """WebSocket-only endpoint: the request must be a valid handshake."""
    inspection = inspect_upgrade(state)
    if not inspection.requested:
        return Err(tagged(ErrorTag.UPGRADE_REQUIRED))
    if not inspection.valid:
        return Err(tagged(ErrorTag.UPGRADE_ERROR, reason=inspection.reason))
    return Ok(True)


def detect_upgrade(state: RequestState) -> Result:
    """
    WebSocket endpoint that also serves plain HTTP.

    Not being a WebSocket request is a legal path here, and so is an
    incomplete handshake: it is served as an ordinary request.
    """
    return Ok(inspect_upgrade(state).valid)
