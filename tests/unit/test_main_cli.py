# -*- coding: utf-8 -*-

"""
Unit tests for the demo server entry point in main.py.
Tests argument parsing, host/port resolution, the startup banner,
configuration checks, logging setup, create_app() and main().
"""

import argparse
import logging
import sys
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from loguru import logger

from schemagate.body_reader import MultipartLimits, RequestConfig
from schemagate.config import APP_TITLE, APP_VERSION
from schemagate.schema import endpoint, html, schema, websocket
from schemagate.state import HandlerResponse


class TestParseCliArgs:
    """Tests for parse_cli_args()."""

    def test_nothing_given_leaves_host_and_port_unset(self):
        """
        What it does: Verifies host and port default to None.
        Purpose: resolve_server_config() must be able to fall back to the environment.
        """
        from main import parse_cli_args

        print("Action: Parsing an empty command line...")
        with patch.object(sys, "argv", ["main.py"]):
            args = parse_cli_args()

        print(f"Parsed: {args}")
        assert args.host is None
        assert args.port is None

    def test_short_and_long_forms(self):
        from main import parse_cli_args

        with patch.object(sys, "argv", ["main.py", "-H", "127.0.0.1", "--port", "9100"]):
            args = parse_cli_args()

        assert args.host == "127.0.0.1"
        assert args.port == 9100

    def test_non_numeric_port_is_rejected(self, capsys):
        """
        What it does: Verifies argparse refuses a port that is not an integer.
        Purpose: A typo in --port stops the server before uvicorn sees it.
        """
        from main import parse_cli_args

        with patch.object(sys, "argv", ["main.py", "--port", "http"]):
            with pytest.raises(SystemExit) as exc_info:
                parse_cli_args()

        captured = capsys.readouterr()
        print(f"Exit code: {exc_info.value.code}, stderr: {captured.err}")
        assert exc_info.value.code == 2
        assert "--port" in captured.err

    def test_help_describes_priority(self, capsys):
        from main import parse_cli_args

        with patch.object(sys, "argv", ["main.py", "--help"]):
            with pytest.raises(SystemExit) as exc_info:
                parse_cli_args()

        captured = capsys.readouterr()
        assert exc_info.value.code == 0
        assert APP_TITLE in captured.out
        assert "CLI arguments > environment variables > defaults" in captured.out

    def test_version_flag(self, capsys):
        from main import parse_cli_args

        with patch.object(sys, "argv", ["main.py", "--version"]):
            with pytest.raises(SystemExit) as exc_info:
                parse_cli_args()

        assert exc_info.value.code == 0
        assert APP_VERSION in capsys.readouterr().out


class TestResolveServerConfig:
    """Tests for resolve_server_config(): CLI > environment > default."""

    @pytest.mark.parametrize("cli_host, cli_port, env_host, env_port, expected", [
        ("127.0.0.1", 9100, "10.0.0.5", 3000, ("127.0.0.1", 9100)),
        (None, None, "10.0.0.5", 3000, ("10.0.0.5", 3000)),
        (None, 9100, "10.0.0.5", 3000, ("10.0.0.5", 9100)),
        (None, None, "0.0.0.0", 8000, ("0.0.0.0", 8000)),
    ])
    def test_priority(self, cli_host, cli_port, env_host, env_port, expected):
        """
        What it does: Verifies each value is taken from the first source that sets it.
        Purpose: Host and port are resolved independently of each other.
        """
        from main import resolve_server_config

        args = argparse.Namespace(host=cli_host, port=cli_port)

        print(f"Action: Resolving CLI=({cli_host}, {cli_port}) env=({env_host}, {env_port})...")
        with patch("main.SERVER_HOST", env_host), patch("main.SERVER_PORT", env_port):
            resolved = resolve_server_config(args)

        print(f"Resolved: {resolved}")
        assert resolved == expected


class TestPrintStartupBanner:
    """Tests for print_startup_banner()."""

    def test_lists_demo_endpoints(self, capsys):
        """
        What it does: Verifies the banner lists health, the schema prefix and every endpoint.
        Purpose: The operator sees what the server answers without reading code.
        """
        from main import print_startup_banner

        print_startup_banner("0.0.0.0", 8000)

        out = capsys.readouterr().out
        assert "http://localhost:8000/health" in out
        assert "Schema:   http://localhost:8000/api/" in out
        assert "GET    /api/hello" in out
        assert "POST   /api/notes" in out
        assert "POST   /api/upload" in out
        assert "WS     ws://localhost:8000/api/chat" in out
        assert "0.0.0.0" not in out

    def test_custom_schema_and_host(self, capsys):
        from main import print_startup_banner

        api = schema("/v2/", {
            "status": endpoint(responses={200: html()}),
            "live": endpoint(responses={200: html()}, websocket=websocket(up=str, down=str)),
        })

        print_startup_banner("127.0.0.1", 9100, api)

        out = capsys.readouterr().out
        print(f"Banner: {out}")
        assert "Schema:   http://127.0.0.1:9100/v2/" in out
        assert "GET    /v2/status" in out
        # Endpoints with plain responses are listed by method even if they also upgrade
        assert "GET    /v2/live" in out
        assert "/api/" not in out


class TestValidateConfiguration:
    """Tests for validate_configuration() startup checks on body limits."""

    @pytest.mark.parametrize("limits", [
        MultipartLimits(minimum_file_size=100, maximum_file_size=10),
        MultipartLimits(save_directory="/nonexistent/schemagate-uploads"),
    ])
    def test_contradicting_limits_exit(self, limits):
        """
        What it does: Verifies startup stops with exit code 1 on unusable limits.
        Purpose: Uploads would otherwise fail on every request.
        """
        from main import validate_configuration

        print(f"Action: Validating {limits}...")
        with patch("main.build_request_config", return_value=RequestConfig(multipart=limits)):
            with pytest.raises(SystemExit) as exc_info:
                validate_configuration()

        assert exc_info.value.code == 1

    def test_valid_limits_pass(self, tmp_path):
        from main import validate_configuration

        config = RequestConfig(multipart=MultipartLimits(
            minimum_file_size=1,
            maximum_file_size=10,
            save_directory=str(tmp_path),
        ))

        with patch("main.build_request_config", return_value=config):
            validate_configuration()

    def test_unbounded_defaults_pass(self):
        from main import validate_configuration

        with patch("main.build_request_config", return_value=RequestConfig()):
            validate_configuration()


class TestLogging:
    """Tests for setup_logging() and InterceptHandler."""

    def test_intercept_handler_forwards_to_loguru(self):
        """
        What it does: Verifies a standard logging record reaches loguru with its level.
        Purpose: uvicorn messages show up in the same sink as ours.
        """
        from main import InterceptHandler

        seen = []
        sink_id = logger.add(lambda message: seen.append(message.record), level="DEBUG")
        try:
            record = logging.LogRecord("uvicorn.error", logging.WARNING, __file__, 1, "port %s busy", (8000,), None)
            InterceptHandler().emit(record)
        finally:
            logger.remove(sink_id)

        print(f"Seen: {[(r['level'].name, r['message']) for r in seen]}")
        assert seen[-1]["level"].name == "WARNING"
        assert seen[-1]["message"] == "port 8000 busy"

    def test_uvicorn_loggers_are_intercepted(self):
        from main import InterceptHandler, setup_logging

        names = ("uvicorn", "uvicorn.error", "uvicorn.access")
        saved = {name: (logging.getLogger(name).handlers, logging.getLogger(name).propagate) for name in names}
        try:
            with patch("main.logger"), patch("main.logging.basicConfig"):
                setup_logging("DEBUG")

            for name in names:
                uvicorn_logger = logging.getLogger(name)
                assert [type(h) for h in uvicorn_logger.handlers] == [InterceptHandler]
                assert uvicorn_logger.propagate is False
        finally:
            for name, (handlers, propagate) in saved.items():
                logging.getLogger(name).handlers = handlers
                logging.getLogger(name).propagate = propagate


class TestCreateApp:
    """Tests for create_app()."""

    def test_health_and_schema_endpoints(self):
        """
        What it does: Verifies the app serves /health and the demo schema side by side.
        Purpose: Monitoring keeps working behind the middleware.
        """
        from main import create_app

        with TestClient(create_app()) as client:
            print("Action: GET /health and /api/page...")
            health = client.get("/health")
            page = client.get("/api/page", headers={"Accept": "text/html", "Accept-Charset": "utf-8"})

        assert health.json() == {"status": "healthy", "version": APP_VERSION}
        assert page.status_code == 200
        assert "Schema Gate" in page.text

    def test_custom_router(self):
        from main import create_app
        from schemagate.router import create_schema_handler

        api = schema("/custom/", {"ping": endpoint(responses={200: html()})})
        router = create_schema_handler(api, {"ping": lambda state: HandlerResponse(200, "<p>pong</p>")})

        with TestClient(create_app(router)) as client:
            response = client.get("/custom/ping", headers={"Accept": "text/html", "Accept-Charset": "utf-8"})
            missing = client.get("/api/page", headers={"Accept": "text/html", "Accept-Charset": "utf-8"})

        assert response.text == "<p>pong</p>"
        assert missing.status_code == 404


class TestMain:
    """Tests for main()."""

    def test_runs_uvicorn_with_resolved_address(self, capsys):
        """
        What it does: Verifies main() validates, prints the banner and starts uvicorn.
        Purpose: The CLI port reaches the server.
        """
        from main import main

        with (
            patch.object(sys, "argv", ["main.py", "-p", "9100"]),
            patch("main.SERVER_HOST", "0.0.0.0"),
            patch("main.setup_logging"),
            patch("main.validate_configuration") as validate,
            patch("main.uvicorn.run") as run,
        ):
            main()

        validate.assert_called_once_with()
        app = run.call_args.args[0]
        print(f"uvicorn.run kwargs: {run.call_args.kwargs}")
        assert isinstance(app, FastAPI)
        assert run.call_args.kwargs == {"host": "0.0.0.0", "port": 9100, "log_config": None}
        assert "localhost:9100" in capsys.readouterr().out
