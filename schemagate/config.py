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
Schema Gate Configuration.

Centralized storage for all settings and fixed request conventions.
Loads environment variables and provides typed access to them.
"""

import os
from typing import Optional

from dotenv import load_dotenv

from schemagate.body_reader import JSONLimits, MultipartLimits, RequestConfig

# Load environment variables
load_dotenv()


_TRUTHY = ("true", "1", "yes", "enabled", "on")


def _get_optional_limit(var_name: str) -> Optional[int]:
    """
    Read a size/count limit from the environment.

    Empty, missing or non-positive values mean "unbounded" and yield None.

    Args:
        var_name: Environment variable name

    Returns:
        Positive integer limit or None
    """
    raw = os.getenv(var_name, "").strip()
    if not raw:
        return None
    value = int(raw)
    if value <= 0:
        return None
    return value


# ==================================================================================================
# Server Settings
# ==================================================================================================

# Server host (default: 0.0.0.0 - listen on all interfaces)
# Use "127.0.0.1" to only allow local connections
DEFAULT_SERVER_HOST: str = "0.0.0.0"
SERVER_HOST: str = os.getenv("SERVER_HOST", DEFAULT_SERVER_HOST)

# Server port (default: 8000)
# Can be overridden by CLI: python main.py --port 9000
DEFAULT_SERVER_PORT: int = 8000
SERVER_PORT: int = int(os.getenv("SERVER_PORT", str(DEFAULT_SERVER_PORT)))

# ==================================================================================================
# Fixed Request Conventions
# ==================================================================================================

# URL query key (GET) and multipart field name (file uploads) that carry JSON input.
JSON_KEY: str = "json"

# Header that must be present on auth-enabled endpoints.
# Browsers never attach custom headers to cross-site form posts, so its presence
# is enough; the value is not inspected.
CSRF_HEADER: str = "X-CSRF"

# Cookie holding the session token.
AUTH_COOKIE_NAME: str = "auth"

# ==================================================================================================
# Multipart Limits
# ==================================================================================================

# All limits are optional. Leave empty (or set to 0) for "unbounded".
#
# Example:
#   MULTIPART_MAXIMUM_FILE_SIZE=10485760
#   MULTIPART_MAXIMUM_FILE_COUNT=4

# Smallest accepted single file, in bytes.
MULTIPART_MINIMUM_FILE_SIZE: Optional[int] = _get_optional_limit("MULTIPART_MINIMUM_FILE_SIZE")

# Largest accepted single file, in bytes.
MULTIPART_MAXIMUM_FILE_SIZE: Optional[int] = _get_optional_limit("MULTIPART_MAXIMUM_FILE_SIZE")

# Maximum number of files in one request.
MULTIPART_MAXIMUM_FILE_COUNT: Optional[int] = _get_optional_limit("MULTIPART_MAXIMUM_FILE_COUNT")

# Maximum number of non-file fields in one request.
MULTIPART_MAXIMUM_FIELDS_COUNT: Optional[int] = _get_optional_limit("MULTIPART_MAXIMUM_FIELDS_COUNT")

# Maximum total size of all non-file field values, in bytes.
MULTIPART_MAXIMUM_FIELDS_SIZE: Optional[int] = _get_optional_limit("MULTIPART_MAXIMUM_FIELDS_SIZE")

# Directory uploaded files are written to (default: system temp directory).
MULTIPART_SAVE_DIRECTORY: Optional[str] = os.getenv("MULTIPART_SAVE_DIRECTORY") or None

# Keep the client-supplied file extension on saved uploads.
MULTIPART_KEEP_FILE_EXTENSIONS: bool = (
    os.getenv("MULTIPART_KEEP_FILE_EXTENSIONS", "false").lower() in _TRUTHY
)

# ==================================================================================================
# JSON Body Limits
# ==================================================================================================

# Largest accepted JSON request body, in bytes (default: unbounded).
JSON_MAXIMUM_SIZE: Optional[int] = _get_optional_limit("JSON_MAXIMUM_SIZE")

# ==================================================================================================
# Logging Settings
# ==================================================================================================

# Log level for the application
# Available levels: TRACE, DEBUG, INFO, WARNING, ERROR, CRITICAL
# Default: INFO (recommended for production)
# Set to DEBUG to see every stage failure with its tag
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# ==================================================================================================
# Application Version
# ==================================================================================================

APP_VERSION: str = "1.0"
APP_TITLE: str = "Schema Gate"
APP_DESCRIPTION: str = "Schema-driven request/response contracts for HTTP and WebSocket endpoints."


def build_request_config() -> RequestConfig:
    """
    Build the per-request body limits from environment settings.

    Returns:
        RequestConfig carrying multipart and JSON limits
    """
    return RequestConfig(
        multipart=MultipartLimits(
            minimum_file_size=MULTIPART_MINIMUM_FILE_SIZE,
            maximum_file_size=MULTIPART_MAXIMUM_FILE_SIZE,
            maximum_file_count=MULTIPART_MAXIMUM_FILE_COUNT,
            maximum_fields_count=MULTIPART_MAXIMUM_FIELDS_COUNT,
            maximum_fields_size=MULTIPART_MAXIMUM_FIELDS_SIZE,
            save_directory=MULTIPART_SAVE_DIRECTORY,
            keep_file_extensions=MULTIPART_KEEP_FILE_EXTENSIONS,
        ),
        json=JSONLimits(maximum_size=JSON_MAXIMUM_SIZE),
    )
