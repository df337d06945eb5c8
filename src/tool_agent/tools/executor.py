"""
Tool executor: validates a tool call against the catalog and runs it under
a timeout.

Every failure is returned as a failed ToolResult; nothing raised by a tool
crosses this boundary. Calls are never retried here because most tools
have side effects (network requests, image jobs, memory writes).
"""

import asyncio
from collections.abc import Iterable
from typing import Any

import structlog

from ..concurrency import run_bounded
from ..config import AgentLimits
from ..exceptions import (
    DisallowedHostError,
    MissingParameterError,
    ParameterEnumError,
    ParameterTypeError,
    StepCancelledError,
    StepTimeoutError,
    ToolError,
    ToolTimeoutError,
    UnexpectedParameterError,
    UnknownToolError,
)
from .base import BaseTool, ToolCall, ToolContext, ToolDefinition, ToolResult
from .browser import check_fetch_target
from .registry import ToolRegistry

logger = structlog.get_logger()


def _matches_type(value: Any, param_type: str) -> bool:
    if param_type == "string":
        return isinstance(value, str)
    if param_type == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if param_type == "boolean":
        return isinstance(value, bool)
    if param_type == "array":
        return isinstance(value, list)
    return False


def validate_arguments(definition: ToolDefinition, arguments: dict[str, Any]) -> dict[str, Any]:
    """Check arguments field by field against a tool's declared schema.

    Returns the validated arguments with unset optional values removed.
    Raises an InvalidParameterError subclass on the first violation.
    """
    for key in arguments:
        if definition.get_parameter(key) is None:
            raise UnexpectedParameterError(key)

    validated: dict[str, Any] = {}
    for param in definition.parameters:
        value = arguments.get(param.name)
        if value is None:
            if param.required:
                raise MissingParameterError(param.name)
            continue
        if not _matches_type(value, param.param_type):
            raise ParameterTypeError(param.name, param.param_type, value)
        if param.enum and value not in param.enum:
            raise ParameterEnumError(param.name, value, list(param.enum))
        validated[param.name] = value

    return validated


class ToolExecutor:
    """Dispatches validated tool calls to their implementations."""

    def __init__(
        self,
        registry: ToolRegistry,
        tools: Iterable[BaseTool],
        limits: AgentLimits | None = None,
    ):
        self.registry = registry
        self.limits = limits or AgentLimits()
        self._tools: dict[str, BaseTool] = {tool.name: tool for tool in tools}

    def prepare(self, call: ToolCall) -> dict[str, Any]:
        """Run every pre-execution check for a call.

        Raises a ToolError describing the first problem found.
        """
        definition = self.registry.get(call.name)
        if definition is None:
            raise UnknownToolError(call.name, self.registry.names())

        arguments = validate_arguments(definition, call.arguments)

        if call.name == "fetch_url":
            check_fetch_target(arguments["url"], self.limits.allowed_fetch_hosts)

        return arguments

    async def execute(
        self,
        call: ToolCall,
        context: ToolContext,
        cancel_event: asyncio.Event | None = None,
    ) -> ToolResult:
        """Execute a tool call and report the outcome as data."""
        try:
            arguments = self.prepare(call)
        except DisallowedHostError as e:
            logger.warning("Blocked fetch target", tool_name=call.name, error=str(e))
            return ToolResult.fail(str(e), kind=e.kind)
        except ToolError as e:
            logger.info("Rejected tool call", tool_name=call.name, kind=e.kind, error=str(e))
            return ToolResult.fail(str(e), kind=e.kind)

        tool = self._tools.get(call.name)
        if tool is None:
            return ToolResult.fail(f"tool '{call.name}' is not available right now")

        logger.info("Executing tool", tool_name=call.name, arguments=arguments)
        try:
            result = await run_bounded(
                tool.execute(context, **arguments),
                self.limits.tool_timeout,
                cancel_event,
            )
        except StepTimeoutError as e:
            logger.warning("Tool timed out", tool_name=call.name, timeout=e.timeout)
            return ToolResult.fail(f"timed out after {e.timeout:g}s", kind=ToolTimeoutError.kind)
        except StepCancelledError:
            logger.info("Tool cancelled", tool_name=call.name)
            return ToolResult.fail("cancelled before completion", kind="cancelled")
        except Exception as e:
            logger.error("Tool execution error", tool_name=call.name, error=str(e))
            return ToolResult.fail(str(e) or type(e).__name__)

        if not isinstance(result, ToolResult):
            return ToolResult.fail(f"tool '{call.name}' returned no result")

        logger.info("Tool executed", tool_name=call.name, success=result.success)
        return result
