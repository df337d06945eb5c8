"""
Tests for tools module.
"""

import math
from unittest.mock import AsyncMock

import pytest

from tool_agent.exceptions import ImageServiceError
from tool_agent.image.service import ImageArtifact
from tool_agent.tools import DEFAULT_TOOLS, ToolRegistry
from tool_agent.tools.base import ToolContext, ToolDefinition, ToolParameter, ToolResult
from tool_agent.tools.image import GenerateImageTool
from tool_agent.tools.memory_tools import RecallTool, RememberTool
from tool_agent.tools.utility import CalculateTool, GetTimeTool, ThinkTool, safe_eval_math

CONTEXT = ToolContext(owner_id="user-1", conversation_id="conv-1")

EXPECTED_TOOLS = [
    "web_search",
    "fetch_url",
    "search_arxiv",
    "get_time",
    "calculate",
    "wikipedia_summary",
    "think",
    "generate_image",
    "remember",
    "recall",
]


def test_tool_result_success():
    """Test successful tool result."""
    result = ToolResult.ok("Test output", data={"key": "value"})

    assert result.success is True
    assert result.result == "Test output"
    assert result.data == {"key": "value"}
    assert result.error is None
    assert result.to_text() == "Test output"


def test_tool_result_failure():
    """Test failed tool result."""
    result = ToolResult.fail("Something went wrong", kind="timeout")

    assert result.success is False
    assert result.result is None
    assert result.kind == "timeout"
    assert result.to_text() == "Error: Something went wrong"


def test_registry_contains_default_catalog():
    """The default catalog has the ten tools, in order."""
    registry = ToolRegistry()

    assert registry.names() == EXPECTED_TOOLS
    assert len(registry) == 10
    assert "calculate" in registry
    assert registry.has("generate_image")
    assert not registry.has("run_shell")
    assert registry.get("run_shell") is None


def test_registry_rejects_duplicate_names():
    """Two definitions with the same name cannot share a catalog."""
    definition = ToolDefinition(name="think", description="Think")

    with pytest.raises(ValueError):
        ToolRegistry([definition, definition])


def test_registry_format_reference():
    """The tool reference lists every tool with its parameters."""
    reference = ToolRegistry().format_reference()

    for name in EXPECTED_TOOLS:
        assert f"### {name}" in reference
    assert '{"tool": "tool_name", "arguments": {"param1": "value1"}}' in reference
    assert "- `query` (string) (required)" in reference
    assert "- `max_results` (number) (optional)" in reference
    assert "[one of: realistic, anime" in reference


def test_parameters_schema():
    """Test converting a definition to JSON Schema."""
    definition = next(d for d in DEFAULT_TOOLS if d.name == "remember")
    schema = definition.get_parameters_schema()

    assert schema["type"] == "object"
    assert schema["required"] == ["fact"]
    assert schema["properties"]["category"]["enum"] == [
        "preference", "personal", "work", "hobby", "other",
    ]


def test_parameter_is_immutable():
    param = ToolParameter("query", "string", "The query")

    with pytest.raises(AttributeError):
        param.required = False


def test_safe_eval_math():
    """Test the whitelisted evaluator."""
    assert safe_eval_math("2 + 2 * 3") == 8
    assert safe_eval_math("2 ^ 10") == 1024
    assert safe_eval_math("factorial(5)") == 120
    assert safe_eval_math("2 ^ 9999").bit_length() == 10000
    assert safe_eval_math("-(3 - 5)") == 2
    assert safe_eval_math("sqrt(16) + abs(-1)") == 5.0
    assert math.isclose(safe_eval_math("sin(pi / 2)"), 1.0)


@pytest.mark.parametrize("expression", [
    "__import__('os')",
    "open('x')",
    "x + 1",
    "2 ** 100000",
    "(9 ^ 9999) ^ 999",
    "factorial(5000)",
    "factorial(2.5)",
    "[1, 2]",
])
def test_safe_eval_math_rejects(expression):
    with pytest.raises((ValueError, SyntaxError)):
        safe_eval_math(expression)


@pytest.mark.asyncio
async def test_calculate_tool():
    """Test calculator execution."""
    result = await CalculateTool().execute(CONTEXT, expression="15 * 23 + 7")

    assert result.success is True
    assert result.result == "15 * 23 + 7 = 352"


@pytest.mark.asyncio
async def test_calculate_tool_errors():
    """Invalid input comes back as a failed result, never an exception."""
    tool = CalculateTool()

    assert (await tool.execute(CONTEXT, expression="")).success is False
    assert (await tool.execute(CONTEXT, expression="1; import os")).error == (
        "Expression contains invalid characters."
    )
    assert (await tool.execute(CONTEXT, expression="1 / 0")).success is False
    assert (await tool.execute(CONTEXT, expression="inf - inf")).error == "Invalid result."
    assert (await tool.execute(CONTEXT, expression="(9^9999)^999")).error == "Result is too large."
    assert (await tool.execute(CONTEXT, expression="factorial(10^7)")).success is False


@pytest.mark.asyncio
async def test_get_time_tool():
    """Test reading the clock in a named zone."""
    result = await GetTimeTool().execute(CONTEXT, timezone="Asia/Tokyo")

    assert result.success is True
    assert result.result.startswith("Current time in Asia/Tokyo: ")
    assert result.data.endswith("+09:00")


@pytest.mark.asyncio
async def test_get_time_tool_defaults_to_utc():
    result = await GetTimeTool().execute(CONTEXT)

    assert result.result.startswith("Current time in UTC: ")


@pytest.mark.asyncio
async def test_get_time_tool_invalid_zone():
    tool = GetTimeTool()

    assert (await tool.execute(CONTEXT, timezone="Mars/Olympus")).error == "Invalid timezone specified."
    assert (await tool.execute(CONTEXT, timezone="UTC; rm")).error == "Invalid timezone format."


@pytest.mark.asyncio
async def test_think_tool():
    result = await ThinkTool().execute(CONTEXT, thought="Compare both options first")

    assert result.success is True
    assert result.result == "Thought recorded: Compare both options first"


@pytest.mark.asyncio
async def test_remember_and_recall_tools(memory):
    """Facts stored through the tool are recalled for the same owner only."""
    remember = RememberTool(memory)
    recall = RecallTool(memory)

    stored = await remember.execute(CONTEXT, fact="My favorite color is green", category="preference")
    assert stored.success is True
    assert stored.result == 'Remembered: "My favorite color is green"'

    found = await recall.execute(CONTEXT, query="favorite color")
    assert found.result == "Found 1 relevant memories:\n- My favorite color is green [preference]"

    other = await recall.execute(ToolContext(owner_id="user-2"), query="favorite color")
    assert other.result == "No memories found about this topic."


@pytest.mark.asyncio
async def test_remember_tool_rejects_long_fact(memory):
    result = await RememberTool(memory).execute(CONTEXT, fact="x" * 1001)

    assert result.success is False
    assert await memory.count("user-1") == 0


@pytest.mark.asyncio
async def test_generate_image_tool_returns_artifact():
    """A successful generation hands back the stored file path."""
    service = AsyncMock()
    service.generate.return_value = ImageArtifact(
        path="/tmp/artifacts/user-1-abc-cat.png",
        filename="user-1-abc-cat.png",
        prompt="a cat",
        size_bytes=42,
    )

    result = await GenerateImageTool(service).execute(CONTEXT, prompt="a cat", style="anime")

    assert result.success is True
    assert result.artifact == "/tmp/artifacts/user-1-abc-cat.png"
    service.generate.assert_awaited_once_with(
        "a cat", "user-1", negative_prompt=None, style="anime"
    )


@pytest.mark.asyncio
async def test_generate_image_tool_service_failure():
    service = AsyncMock()
    service.generate.side_effect = ImageServiceError("Queue is full (10/10)")

    result = await GenerateImageTool(service).execute(CONTEXT, prompt="a cat")

    assert result.success is False
    assert result.error == "Queue is full (10/10)"
    assert result.artifact is None
