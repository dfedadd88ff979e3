"""
streamfold - Tool Calling Module

Registry of caller-supplied tool handlers used by the conversation
helpers on Response.
"""

from .registry import (
    RegisteredTool,
    ToolExecution,
    ToolExecutionStatus,
    ToolRegistry,
    format_tool_output,
)

__all__ = [
    "RegisteredTool",
    "ToolExecution",
    "ToolExecutionStatus",
    "ToolRegistry",
    "format_tool_output",
]
