"""
Tools module for agent capabilities.
"""

from .base import BaseTool, ToolCall, ToolContext, ToolDefinition, ToolParameter, ToolResult
from .catalog import DEFAULT_TOOLS
from .executor import ToolExecutor, validate_arguments
from .registry import ToolRegistry, build_default_tools

__all__ = [
    "BaseTool",
    "ToolCall",
    "ToolContext",
    "ToolDefinition",
    "ToolParameter",
    "ToolResult",
    "DEFAULT_TOOLS",
    "ToolExecutor",
    "validate_arguments",
    "ToolRegistry",
    "build_default_tools",
]
