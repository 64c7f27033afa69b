"""Built-in example tools."""

from __future__ import annotations

from hello_mcp.tools.registry import ToolHandler, ToolRegistry

HELLO_TOOL_NAME = "hello"
HELLO_TOOL_DESCRIPTION = "A simple hello world tool"
HELLO_GREETING = "Hello from the server!"


def register_builtin_tools(registry: ToolRegistry) -> None:
    """Register the built-in tool set."""
    registry.register(HELLO_TOOL_NAME, _hello_handler(), description=HELLO_TOOL_DESCRIPTION)


def _hello_handler() -> ToolHandler:
    def handler(_: dict[str, object]) -> object:
        return HELLO_GREETING

    return handler
