from __future__ import annotations

import json
from pathlib import Path

from hello_mcp.config import CliOverrides, load_effective_config
from hello_mcp.server import StdioServer, create_server
from hello_mcp.tools import ToolRegistration


def test_malformed_json_returns_invalid_json_error(tmp_path: Path) -> None:
    server = create_server(workdir=str(tmp_path))

    response = server.handle_json_line("{not-json")

    assert response["ok"] is False
    assert response["error"] == {
        "code": "INVALID_JSON",
        "message": "Request must be valid JSON.",
    }
    assert str(response["request_id"]).startswith("req-")


def test_non_object_request_returns_invalid_request(tmp_path: Path) -> None:
    server = create_server(workdir=str(tmp_path))

    response = server.handle_json_line("[1, 2, 3]")

    assert response["request_id"] == "req-000001"
    assert response["error"] == {
        "code": "INVALID_REQUEST",
        "message": "Request must be an object.",
    }


def test_missing_method_returns_invalid_request(tmp_path: Path) -> None:
    server = create_server(workdir=str(tmp_path))

    response = server.handle_payload({"id": "abc", "params": {}})

    assert response["request_id"] == "abc"
    assert response["error"]["code"] == "INVALID_REQUEST"


def test_unknown_tool_returns_explicit_error(tmp_path: Path) -> None:
    server = create_server(workdir=str(tmp_path))

    response = server.handle_payload({"id": "abc-123", "method": "nope", "params": {"k": "v"}})

    assert response["ok"] is False
    assert response["request_id"] == "abc-123"
    assert response["result"] == {}
    assert response["error"] == {
        "code": "UNKNOWN_TOOL",
        "message": "Unknown tool: nope",
    }


def test_invalid_tools_call_params_returns_invalid_params_error(tmp_path: Path) -> None:
    server = create_server(workdir=str(tmp_path))
    payload = {"id": 7, "method": "tools/call", "params": {"name": "hello", "arguments": []}}

    response = server.handle_payload(json.loads(json.dumps(payload)))

    assert response["ok"] is False
    assert response["request_id"] == "7"
    assert response["error"] == {
        "code": "INVALID_PARAMS",
        "message": "tools/call params.arguments must be an object.",
    }


def test_non_object_params_returns_invalid_params_error(tmp_path: Path) -> None:
    server = create_server(workdir=str(tmp_path))

    response = server.handle_payload({"id": "p", "method": "hello", "params": "x"})

    assert response["error"] == {
        "code": "INVALID_PARAMS",
        "message": "Request params must be an object.",
    }


def test_oversized_message_is_rejected(tmp_path: Path) -> None:
    server = create_server(
        workdir=str(tmp_path),
        cli_overrides=CliOverrides(max_message_bytes=32),
    )
    line = json.dumps({"id": "big", "method": "hello", "params": {"pad": "x" * 64}})

    response = server.handle_json_line(line)

    assert response["ok"] is False
    assert response["error"]["code"] == "MESSAGE_TOO_LARGE"


def test_unserializable_result_returns_invalid_result(tmp_path: Path) -> None:
    server = StdioServer(
        config=load_effective_config(tmp_path),
        tools=(ToolRegistration(name="opaque", description="", handler=lambda _: object()),),
    )

    response = server.handle_payload({"id": "o", "method": "opaque", "params": {}})

    assert response["error"] == {
        "code": "INVALID_RESULT",
        "message": "Tool result is not JSON-serializable.",
    }


def test_fallback_request_ids_are_sequential(tmp_path: Path) -> None:
    server = create_server(workdir=str(tmp_path))

    first = server.handle_payload({"method": "hello"})
    second = server.handle_payload({"id": None, "method": "hello"})

    assert first["request_id"] == "req-000001"
    assert second["request_id"] == "req-000002"


def test_deeply_nested_json_returns_invalid_json(tmp_path: Path) -> None:
    server = create_server(workdir=str(tmp_path))

    response = server.handle_json_line("[" * 100_000)

    assert response["ok"] is False
    assert response["error"]["code"] == "INVALID_JSON"


def test_undecodable_byte_returns_invalid_json(tmp_path: Path) -> None:
    server = create_server(workdir=str(tmp_path))
    # b"\xff" read from stdin with errors="surrogateescape"
    line = b"\xff".decode("utf-8", errors="surrogateescape")

    response = server.handle_json_line(line)

    assert response["ok"] is False
    assert response["error"]["code"] == "INVALID_JSON"


def test_audit_log_method_validates_params(tmp_path: Path) -> None:
    server = create_server(workdir=str(tmp_path))

    bad_limit = server.handle_payload({"id": "a1", "method": "audit/log", "params": {"limit": 0}})
    bad_since = server.handle_payload({"id": "a2", "method": "audit/log", "params": {"since": 5}})

    assert bad_limit["error"]["code"] == "INVALID_PARAMS"
    assert bad_since["error"] == {
        "code": "INVALID_PARAMS",
        "message": "audit/log params.since must be a string timestamp.",
    }
