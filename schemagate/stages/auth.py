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
Cookie authentication checks.

The CSRF header must be present (any value, including empty) whenever an
endpoint reads the auth cookie. It is checked before the cookie so a
forged cross-site request never learns whether a session exists.

Each check returns Ok(token or None) or Err(TaggedError).
"""

from schemagate.config import AUTH_COOKIE_NAME, CSRF_HEADER
from schemagate.errors import ErrorTag, tagged
from schemagate.result import Err, Ok, Result
from schemagate.state import RequestState


def check_required_auth(state: RequestState) -> Result:
    """Require both the CSRF header and the auth cookie."""
    if state.header(CSRF_HEADER) is None:
        return Err(tagged(ErrorTag.CSRF_HEADER_REQUIRED))
    token = state.cookies.get(AUTH_COOKIE_NAME)
    if token is None:
        return Err(tagged(ErrorTag.AUTH_REQUIRED))
    return Ok(token)


def check_optional_auth(state: RequestState) -> Result:
    """Read the auth cookie when present; the CSRF header is still required."""
    if state.header(CSRF_HEADER) is None:
        return Err(tagged(ErrorTag.CSRF_HEADER_REQUIRED))
    return Ok(state.cookies.get(AUTH_COOKIE_NAME))


def read_auth_token(state: RequestState) -> Result:
    """Endpoint without auth: pass the cookie through, no CSRF header needed."""
    return Ok(state.cookies.get(AUTH_COOKIE_NAME))
