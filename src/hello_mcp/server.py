"""STDIO tool server entrypoint."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from hello_mcp.config import CliOverrides, ServerConfig, load_effective_config
from hello_mcp.logging import AuditEvent, JsonlAuditLogger, sanitize_arguments, utc_timestamp
from hello_mcp.tools import (
    ToolDispatchError,
    ToolRegistration,
    ToolRegistry,
    ToolRequest,
    ToolResponse,
    register_builtin_tools,
)
from hello_mcp.transport import StdioTransport, TransportError

EXIT_OK = 0
EXIT_TRANSPORT_FAILURE = 1
MAX_AUDIT_LOG_LIMIT = 200

ProtocolMethod = Callable[[dict[str, object]], dict[str, object]]


@dataclass(slots=True, frozen=True)
class Request:
    """Normalized incoming request."""

    request_id: str
    method: str
    params: dict[str, object]


def build_arg_parser() -> argparse.ArgumentParser:
    """Build argument parser for server startup configuration."""
    parser = argparse.ArgumentParser(prog="hello-mcp")
    parser.add_argument("--workdir", required=False, default=".")
    parser.add_argument("--data-dir", required=False, default=None)
    parser.add_argument("--name", required=False, default=None)
    parser.add_argument("--server-version", required=False, default=None)
    parser.add_argument("--max-message-bytes", type=int, required=False, default=None)
    parser.add_argument("--audit-enabled", choices=("true", "false"), required=False, default=None)
    return parser


class StdioServer:
    """Minimal deterministic STDIO server for tool routing.

    The registry is filled once here, built-in tools first and then ``tools``
    in the given order, and is not modified afterwards.
    """

    def __init__(
        self,
        config: ServerConfig,
        tools: Sequence[ToolRegistration] = (),
    ) -> None:
        self._config = config
        self._limits = config.limits
        self._audit_logger = JsonlAuditLogger(
            path=config.data_dir / "audit.jsonl",
            enabled=config.audit_enabled,
        )
        self._registry = ToolRegistry()
        register_builtin_tools(self._registry)
        for tool in tools:
            self._registry.register(tool.name, tool.handler, description=tool.description)
        self._protocol_methods: dict[str, ProtocolMethod] = {
            "initialize": self._initialize_result,
            "tools/list": self._tools_list_result,
            "server/status": self._status_result,
            "audit/log": self._audit_log_result,
        }
        self._fallback_request_counter = 0

    @property
    def audit_logger(self) -> JsonlAuditLogger:
        return self._audit_logger

    def serve(self, in_stream: TextIO, out_stream: TextIO) -> None:
        """Process JSON-line requests in arrival order until the input closes."""
        transport = StdioTransport(
            in_stream=in_stream,
            out_stream=out_stream,
            max_message_chars=self._limits.max_message_bytes,
        )
        for line in transport.receive():
            try:
                response = self.handle_json_line(line)
            except Exception:
                response = self.error_response(
                    request_id=self.next_request_id(),
                    code="INTERNAL_ERROR",
                    message="Unhandled server error while handling request.",
                )
            transport.send(response)

    def handle_json_line(self, raw_line: str) -> dict[str, object]:
        """Handle a single JSON-line request."""
        # Undecodable stdin bytes arrive as lone surrogates under surrogateescape mode.
        line_bytes = len(raw_line.encode("utf-8", errors="surrogatepass"))
        if line_bytes > self._limits.max_message_bytes:
            return self._reject_line(
                raw_line,
                tool_name="message_too_large",
                code="MESSAGE_TOO_LARGE",
                message=(
                    f"Request exceeds max_message_bytes ({self._limits.max_message_bytes})."
                ),
            )
        try:
            payload = json.loads(raw_line)
        except (json.JSONDecodeError, RecursionError):
            return self._reject_line(
                raw_line,
                tool_name="invalid_json",
                code="INVALID_JSON",
                message="Request must be valid JSON.",
            )
        return self.handle_payload(payload)

    def handle_payload(self, payload: object) -> dict[str, object]:
        """Validate and route a parsed payload."""
        parsed = self.parse_request(payload)
        if isinstance(parsed, dict):
            request_id_value = parsed.get("request_id")
            request_id = (
                request_id_value if isinstance(request_id_value, str) else self.next_request_id()
            )
            self.log_request(
                request_id=request_id,
                tool_name="invalid_request",
                arguments={},
                response=parsed,
            )
            return parsed

        request = parsed
        protocol_method = self._protocol_methods.get(request.method)
        if protocol_method is not None:
            try:
                response = self.success_response(
                    request_id=request.request_id,
                    result=protocol_method(request.params),
                )
            except ToolDispatchError as error:
                response = self.error_response(
                    request_id=request.request_id,
                    code=error.code,
                    message=error.message,
                )
            self.log_request(
                request_id=request.request_id,
                tool_name=request.method,
                arguments=request.params,
                response=response,
            )
            return response

        tool_name: str
        arguments: dict[str, object]
        if request.method == "tools/call":
            tool_name_value = request.params.get("name")
            arguments_value = request.params.get("arguments", {})
            invalid_message: str | None = None
            if not isinstance(tool_name_value, str) or not tool_name_value:
                invalid_message = "tools/call params.name must be a non-empty string."
            elif not isinstance(arguments_value, dict):
                invalid_message = "tools/call params.arguments must be an object."
            if invalid_message is not None:
                response = self.error_response(
                    request_id=request.request_id,
                    code="INVALID_PARAMS",
                    message=invalid_message,
                )
                self.log_request(
                    request_id=request.request_id,
                    tool_name=request.method,
                    arguments=request.params,
                    response=response,
                )
                return response
            tool_name = tool_name_value
            arguments = arguments_value
        else:
            tool_name = request.method
            arguments = request.params

        try:
            tool_response = self._registry.dispatch(
                ToolRequest(tool_name=tool_name, params=arguments)
            )
            response = self.tool_response_envelope(
                request_id=request.request_id,
                tool_response=tool_response,
            )
        except Exception:
            response = self.error_response(
                request_id=request.request_id,
                code="INTERNAL_ERROR",
                message="Unhandled server error while executing tool.",
            )
        self.log_request(
            request_id=request.request_id,
            tool_name=tool_name,
            arguments=arguments,
            response=response,
        )
        return response

    def parse_request(self, payload: object) -> Request | dict[str, object]:
        """Validate request payload and return normalized Request."""
        if not isinstance(payload, dict):
            return self.error_response(
                request_id=self.next_request_id(),
                code="INVALID_REQUEST",
                message="Request must be an object.",
            )

        request_id = self.extract_request_id(payload.get("id"))
        method = payload.get("method")
        params = payload.get("params", {})

        if not isinstance(method, str) or not method:
            return self.error_response(
                request_id=request_id,
                code="INVALID_REQUEST",
                message="Request method must be a non-empty string.",
            )
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return self.error_response(
                request_id=request_id,
                code="INVALID_PARAMS",
                message="Request params must be an object.",
            )

        return Request(request_id=request_id, method=method, params=params)

    def extract_request_id(self, request_id: object) -> str:
        """Extract request ID from payload or synthesize deterministic fallback."""
        if isinstance(request_id, str) and request_id:
            return request_id
        if isinstance(request_id, int) and not isinstance(request_id, bool):
            return str(request_id)
        return self.next_request_id()

    def next_request_id(self) -> str:
        """Generate deterministic fallback request IDs for invalid/missing IDs."""
        self._fallback_request_counter += 1
        return f"req-{self._fallback_request_counter:06d}"

    def tool_response_envelope(
        self, request_id: str, tool_response: ToolResponse
    ) -> dict[str, object]:
        """Convert a dispatch result into a response envelope."""
        if not tool_response.ok:
            return self.error_response(
                request_id=request_id,
                code=str(tool_response.error),
                message=tool_response.message or "",
            )
        try:
            json.dumps(tool_response.content, sort_keys=True)
        except (TypeError, ValueError):
            return self.error_response(
                request_id=request_id,
                code="INVALID_RESULT",
                message="Tool result is not JSON-serializable.",
            )
        return self.success_response(
            request_id=request_id,
            result={"content": tool_response.content},
        )

    @staticmethod
    def success_response(request_id: str, result: dict[str, object]) -> dict[str, object]:
        """Build success envelope."""
        return {
            "request_id": request_id,
            "ok": True,
            "result": result,
        }

    @staticmethod
    def error_response(request_id: str, code: str, message: str) -> dict[str, object]:
        """Build explicit error envelope."""
        return {
            "request_id": request_id,
            "ok": False,
            "result": {},
            "error": {"code": code, "message": message},
        }

    def log_request(
        self,
        request_id: str,
        tool_name: str,
        arguments: dict[str, object],
        response: dict[str, object],
    ) -> None:
        """Log one sanitized request event."""
        error_payload = response.get("error")
        error_code: str | None = None
        if isinstance(error_payload, dict):
            code_value = error_payload.get("code")
            if isinstance(code_value, str):
                error_code = code_value
        event = AuditEvent(
            timestamp=utc_timestamp(),
            request_id=request_id,
            tool=tool_name,
            ok=bool(response.get("ok", False)),
            error_code=error_code,
            metadata=sanitize_arguments(arguments),
        )
        self._audit_logger.append(event)

    def _reject_line(
        self, raw_line: str, tool_name: str, code: str, message: str
    ) -> dict[str, object]:
        request_id = self.next_request_id()
        response = self.error_response(request_id=request_id, code=code, message=message)
        self.log_request(
            request_id=request_id,
            tool_name=tool_name,
            arguments={"raw_line_length": len(raw_line)},
            response=response,
        )
        return response

    def _initialize_result(self, _: dict[str, object]) -> dict[str, object]:
        return {
            "server": {"name": self._config.name, "version": self._config.version},
            "capabilities": {"tools": {"list_changed": False}},
        }

    def _tools_list_result(self, _: dict[str, object]) -> dict[str, object]:
        return {
            "tools": [
                {"name": registration.name, "description": registration.description}
                for registration in self._registry.registrations()
            ]
        }

    def _status_result(self, _: dict[str, object]) -> dict[str, object]:
        return {
            "effective_config": self._config.to_public_dict(),
            "tools": list(self._registry.names()),
        }

    def _audit_log_result(self, params: dict[str, object]) -> dict[str, object]:
        since = params.get("since")
        limit = params.get("limit", 50)
        if since is not None and not isinstance(since, str):
            raise ToolDispatchError(
                code="INVALID_PARAMS",
                message="audit/log params.since must be a string timestamp.",
            )
        if (
            isinstance(limit, bool)
            or not isinstance(limit, int)
            or limit < 1
            or limit > MAX_AUDIT_LOG_LIMIT
        ):
            raise ToolDispatchError(
                code="INVALID_PARAMS",
                message=f"audit/log params.limit must be an integer in 1..{MAX_AUDIT_LOG_LIMIT}.",
            )
        return {"entries": self._audit_logger.read(since=since, limit=limit)}


def create_server(
    workdir: str = ".",
    data_dir: str | None = None,
    cli_overrides: CliOverrides | None = None,
) -> StdioServer:
    """Create a configured STDIO server instance."""
    overrides = cli_overrides or CliOverrides()
    if data_dir is not None and overrides.data_dir is None:
        overrides = CliOverrides(
            data_dir=Path(data_dir).resolve(),
            name=overrides.name,
            version=overrides.version,
            audit_enabled=overrides.audit_enabled,
            max_message_bytes=overrides.max_message_bytes,
        )
    config = load_effective_config(workdir=Path(workdir).resolve(), overrides=overrides)
    return StdioServer(config=config)


def main(argv: list[str] | None = None) -> int:
    """Entrypoint for the tool server process."""
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    audit_enabled: bool | None = None
    if args.audit_enabled == "true":
        audit_enabled = True
    if args.audit_enabled == "false":
        audit_enabled = False
    overrides = CliOverrides(
        data_dir=Path(args.data_dir).resolve() if args.data_dir is not None else None,
        name=args.name,
        version=args.server_version,
        audit_enabled=audit_enabled,
        max_message_bytes=args.max_message_bytes,
    )
    try:
        server = create_server(workdir=args.workdir, cli_overrides=overrides)
    except ValueError as error:
        parser.error(str(error))
    try:
        server.serve(in_stream=sys.stdin, out_stream=sys.stdout)
    except TransportError as error:
        sys.stderr.write(f"hello-mcp: transport failure: {error.message}\n")
        return EXIT_TRANSPORT_FAILURE
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
