"""
Tool registry: the read-only catalog of tools the model may call.
"""

from collections.abc import Iterable
from types import MappingProxyType

import httpx
import structlog

from ..config import AgentLimits
from ..image.service import BaseImageService
from ..memory.manager import MemoryManager
from .base import BaseTool, ToolDefinition
from .browser import FetchUrlTool
from .catalog import DEFAULT_TOOLS
from .image import GenerateImageTool
from .memory_tools import RecallTool, RememberTool
from .research import ArxivSearchTool, WikipediaSummaryTool
from .utility import CalculateTool, GetTimeTool, ThinkTool
from .web_search import WebSearchTool

logger = structlog.get_logger()

CALL_FORMAT_EXAMPLE = '{"tool": "tool_name", "arguments": {"param1": "value1"}}'


class ToolRegistry:
    """Immutable catalog of tool definitions.

    Built once at startup and shared by every agent run. Pass a different
    set of definitions to build an alternate catalog.
    """

    def __init__(self, definitions: Iterable[ToolDefinition] = DEFAULT_TOOLS):
        tools: dict[str, ToolDefinition] = {}
        for definition in definitions:
            if definition.name in tools:
                raise ValueError(f"Duplicate tool name: {definition.name}")
            tools[definition.name] = definition
        self._tools = MappingProxyType(tools)
        logger.debug("Tool catalog loaded", tools=list(tools))

    def has(self, name: str) -> bool:
        """Check whether a tool with this name exists."""
        return name in self._tools

    def get(self, name: str) -> ToolDefinition | None:
        """Get a tool definition by name."""
        return self._tools.get(name)

    def names(self) -> list[str]:
        """List all tool names in catalog order."""
        return list(self._tools.keys())

    def definitions(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def format_reference(self) -> str:
        """Format the catalog as Markdown for the model's instructions."""
        lines = [
            "# Available Tools",
            "",
            "You can call tools by responding with a JSON block in this format:",
            "```json",
            CALL_FORMAT_EXAMPLE,
            "```",
            "",
            "## Tools:",
            "",
        ]

        for tool in self._tools.values():
            lines.append(f"### {tool.name}")
            lines.append(tool.description)
            lines.append("")
            if tool.parameters:
                lines.append("Parameters:")
                for param in tool.parameters:
                    tag = "(required)" if param.required else "(optional)"
                    line = f"- `{param.name}` ({param.param_type}) {tag}: {param.description}"
                    if param.enum:
                        line += f" [one of: {', '.join(param.enum)}]"
                    lines.append(line)
            else:
                lines.append("Parameters: none")
            lines.append("")

        lines.extend([
            "## Guidelines:",
            "- Use tools when you need current information or to perform actions",
            "- Call one tool at a time and wait for its result before the next",
            "- After getting tool results, synthesize them into a helpful response",
            "- If a tool fails, try an alternative approach or inform the user",
            "- Always provide a final answer to the user after using tools",
        ])

        return "\n".join(lines)


def build_default_tools(
    http_client: httpx.AsyncClient,
    memory: MemoryManager,
    image_service: BaseImageService,
    limits: AgentLimits | None = None,
    tavily_api_key: str = "",
) -> list[BaseTool]:
    """Create implementations for every tool in the default catalog."""
    limits = limits or AgentLimits()
    tools: list[BaseTool] = [
        WebSearchTool(http_client, tavily_api_key=tavily_api_key, timeout=limits.tool_timeout),
        FetchUrlTool(http_client, allowed_hosts=limits.allowed_fetch_hosts, timeout=limits.tool_timeout),
        ArxivSearchTool(http_client, timeout=limits.tool_timeout),
        GetTimeTool(),
        CalculateTool(),
        WikipediaSummaryTool(http_client, timeout=limits.tool_timeout),
        ThinkTool(),
        GenerateImageTool(image_service),
        RememberTool(memory),
        RecallTool(memory),
    ]
    logger.info("Default tools initialized", tools=[t.name for t in tools])
    return tools
