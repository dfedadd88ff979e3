"""
streamfold - Tool Registry

Caller-supplied tool handlers, keyed by function name.

Key Features:
- Sync and async handlers, called with the parsed arguments as kwargs
- Tool definitions for requests generated from the registrations
- Execution records (status, duration, error) for logging
"""

import inspect
import json
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

from ..core.errors import ConfigError, SerializationError
from ..core.models import FunctionCall, Tool
from ..observability.logging import TimedOperation, get_logger


logger = get_logger("streamfold.tools")


class ToolExecutionStatus(str, Enum):
    """Status of a tool execution."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ToolExecution:
    """Tracks one handler invocation."""
    call: FunctionCall
    status: ToolExecutionStatus = ToolExecutionStatus.PENDING
    output: Optional[str] = None
    error: Optional[str] = None
    started_at: Optional[float] = None
    completed_at: Optional[float] = None

    @property
    def duration_ms(self) -> Optional[int]:
        """Get execution duration in milliseconds."""
        if self.started_at and self.completed_at:
            return int((self.completed_at - self.started_at) * 1000)
        return None

    def start(self):
        self.status = ToolExecutionStatus.RUNNING
        self.started_at = time.time()

    def complete(self, output: str):
        self.status = ToolExecutionStatus.COMPLETED
        self.output = output
        self.completed_at = time.time()

    def fail(self, error: str):
        self.status = ToolExecutionStatus.FAILED
        self.error = error
        self.completed_at = time.time()


@dataclass
class RegisteredTool:
    """A handler and the definition sent to the model."""
    tool: Tool
    handler: Callable[..., Any]

    @property
    def name(self) -> str:
        return self.tool.name


def format_tool_output(result: Any) -> str:
    """Strings pass through; anything else is JSON-encoded."""
    if isinstance(result, str):
        return result
    return json.dumps(result, default=str)


class ToolRegistry:
    """
    Maps function names to handlers.

    Usage:
        registry = ToolRegistry()

        @registry.tool(description="Current weather for a city")
        def get_weather(location: str) -> dict:
            return {"location": location, "temp_c": 18}

        request = ChatCompletionRequest(model=..., prompt=..., tools=registry.tools())

    ``history`` keeps the most recent ``history_size`` executions.
    """

    def __init__(self, history_size: int = 1000):
        self._tools: Dict[str, RegisteredTool] = {}
        self.history: Deque[ToolExecution] = deque(maxlen=history_size)

    def register(
        self,
        name: str,
        handler: Callable[..., Any],
        description: str = "",
        parameters: Optional[Dict[str, Any]] = None,
    ) -> "ToolRegistry":
        """Register ``handler`` under ``name``. Re-registering replaces it."""
        if not name:
            raise ConfigError("Tool name is required", param="name")
        if not callable(handler):
            raise ConfigError(f"Handler for tool '{name}' is not callable", param="handler")

        self._tools[name] = RegisteredTool(Tool.define(name, description, parameters), handler)
        return self

    def tool(
        self,
        name: Optional[str] = None,
        description: Optional[str] = None,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator form of ``register``; defaults come from the function."""
        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            doc = inspect.getdoc(func) or ""
            self.register(
                name or func.__name__,
                func,
                description if description is not None else doc.split("\n")[0],
                parameters,
            )
            return func
        return decorator

    def tools(self) -> List[Tool]:
        """Tool definitions in registration order."""
        return [registered.tool for registered in self._tools.values()]

    def get(self, name: str) -> Optional[RegisteredTool]:
        return self._tools.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def execute(self, call: FunctionCall) -> str:
        """
        Run the handler for ``call`` and return its output as a string.

        Raises:
            ConfigError: no handler registered under ``call.name``
            SerializationError: arguments are not a JSON object
            Exception: whatever the handler raises
        """
        registered = self._tools.get(call.name)
        if registered is None:
            raise ConfigError(f"No handler registered for tool '{call.name}'", param="name")

        try:
            arguments = call.parse_arguments()
        except ValueError as e:
            raise SerializationError(
                f"Arguments for tool '{call.name}' are not valid JSON: {e}",
                details={"tool_call_id": call.id},
            ) from e
        if not isinstance(arguments, dict):
            raise SerializationError(
                f"Arguments for tool '{call.name}' must be a JSON object",
                details={"tool_call_id": call.id},
            )

        execution = ToolExecution(call)
        self.history.append(execution)
        execution.start()

        try:
            with TimedOperation("tool_call", logger, extra={"tool": call.name, "tool_call_id": call.id}):
                result = registered.handler(**arguments)
                if inspect.isawaitable(result):
                    result = await result
        except Exception as e:
            execution.fail(str(e))
            raise

        output = format_tool_output(result)
        execution.complete(output)
        return output
