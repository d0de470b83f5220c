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
Request check stages.

Architecture:
    Each stage module holds small pure functions over RequestState that
    return Ok/Err. The compiler picks one function per stage for an
    endpoint; the pipeline runs them in a fixed order.

Headers stage order:
    1. method       - WrongMethod
    2. upgrade      - UpgradeDenied / UpgradeRequired / UpgradeError
    3. auth         - CSRFHeaderRequired / AuthRequired
    4. negotiation  - InvalidAcceptHeader / InvalidAcceptCharsetHeader
    5. content      - Content-Encoding, Content-Type, Content-Length

Body stage:
    body            - URL query, multipart or JSON input
"""

from schemagate.stages.auth import check_optional_auth, check_required_auth, read_auth_token
from schemagate.stages.body import (
    make_json_parser,
    make_multipart_parser,
    make_query_input_parser,
    no_body,
    validate_files,
)
from schemagate.stages.content import check_json_content, check_multipart_content, skip_content
from schemagate.stages.negotiation import build_media_type_matcher, check_accept, skip_accept
from schemagate.stages.upgrade import deny_upgrade, detect_upgrade, inspect_upgrade, require_upgrade

__all__ = [
    "check_optional_auth",
    "check_required_auth",
    "read_auth_token",
    "make_json_parser",
    "make_multipart_parser",
    "make_query_input_parser",
    "no_body",
    "validate_files",
    "check_json_content",
    "check_multipart_content",
    "skip_content",
    "build_media_type_matcher",
    "check_accept",
    "skip_accept",
    "deny_upgrade",
    "detect_upgrade",
    "inspect_upgrade",
    "require_upgrade",
]
