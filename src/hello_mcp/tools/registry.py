"""Named tool registry and the dispatch boundary."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

ToolHandler = Callable[[dict[str, object]], object]


@dataclass(slots=True, frozen=True)
class ToolDispatchError(Exception):
    """Represents deterministic tool dispatch failures."""

    code: str
    message: str


class DuplicateNameError(ToolDispatchError):
    """Raised when a tool name is registered twice."""

    def __init__(self, name: str) -> None:
        super().__init__(code="DUPLICATE_NAME", message=f"Tool already registered: {name}")


class UnknownToolError(ToolDispatchError):
    """Raised when no handler is registered under the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__(code="UNKNOWN_TOOL", message=f"Unknown tool: {name}")


class HandlerError(ToolDispatchError):
    """Raised when a registered handler fails."""

    def __init__(self, name: str, cause: BaseException) -> None:
        detail = str(cause) or type(cause).__name__
        super().__init__(code="HANDLER_ERROR", message=f"Tool '{name}' failed: {detail}")


@dataclass(slots=True, frozen=True)
class ToolRegistration:
    """A handler registered under a unique name."""

    name: str
    description: str
    handler: ToolHandler


@dataclass(slots=True, frozen=True)
class ToolRequest:
    """One tool invocation."""

    tool_name: str
    params: dict[str, object]


@dataclass(slots=True, frozen=True)
class ToolResponse:
    """Either handler content or an error code with message."""

    content: object = None
    error: str | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: ToolDispatchError) -> ToolResponse:
        return cls(error=error.code, message=error.message)


@dataclass(slots=True)
class ToolRegistry:
    """In-memory tool registry preserving deterministic insertion order."""

    _registrations: dict[str, ToolRegistration] = field(default_factory=dict)

    def register(self, name: str, handler: ToolHandler, description: str = "") -> None:
        """Register a named handler; names must be unique."""
        if name in self._registrations:
            raise DuplicateNameError(name)
        self._registrations[name] = ToolRegistration(
            name=name,
            description=description,
            handler=handler,
        )

    def get(self, name: str) -> ToolRegistration | None:
        """Return a registration by name."""
        return self._registrations.get(name)

    def names(self) -> tuple[str, ...]:
        """Return registered tool names in deterministic order."""
        return tuple(self._registrations.keys())

    def registrations(self) -> tuple[ToolRegistration, ...]:
        return tuple(self._registrations.values())

    def invoke(self, name: str, arguments: dict[str, object]) -> object:
        """Call a registered tool by name, raising dispatch errors."""
        registration = self.get(name)
        if registration is None:
            raise UnknownToolError(name)
        try:
            return registration.handler(arguments)
        except Exception as error:
            raise HandlerError(name, error) from error

    def dispatch(self, request: ToolRequest) -> ToolResponse:
        """Dispatch a request; dispatch failures come back as error responses."""
        try:
            result = self.invoke(request.tool_name, request.params)
        except ToolDispatchError as error:
            return ToolResponse.failure(error)
        return ToolResponse(content=result)
