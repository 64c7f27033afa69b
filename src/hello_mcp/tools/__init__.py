"""Tool interfaces and registrations."""

from .builtin import register_builtin_tools
from .registry import (
    DuplicateNameError,
    HandlerError,
    ToolDispatchError,
    ToolHandler,
    ToolRegistration,
    ToolRegistry,
    ToolRequest,
    ToolResponse,
    UnknownToolError,
)

__all__ = [
    "DuplicateNameError",
    "HandlerError",
    "ToolDispatchError",
    "ToolHandler",
    "ToolRegistration",
    "ToolRegistry",
    "ToolRequest",
    "ToolResponse",
    "UnknownToolError",
    "register_builtin_tools",
]
