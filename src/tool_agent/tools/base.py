"""
Base classes for tools.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal

ParameterType = Literal["string", "number", "boolean", "array"]


@dataclass
class ToolResult:
    """Result from a tool execution.

    Exactly one of ``result`` and ``error`` is set.
    """

    success: bool
    result: str | None = None
    error: str | None = None
    kind: str | None = None
    artifact: str | None = None
    data: Any = None

    @classmethod
    def ok(cls, result: str, artifact: str | None = None, data: Any = None) -> "ToolResult":
        return cls(success=True, result=result, artifact=artifact, data=data)

    @classmethod
    def fail(cls, error: str, kind: str = "execution_failed") -> "ToolResult":
        return cls(success=False, error=error, kind=kind)

    def to_text(self) -> str:
        """Render the result for the model transcript."""
        if self.success:
            return self.result or "Tool executed successfully."
        return f"Error: {self.error or 'Unknown error'}"


@dataclass(frozen=True)
class ToolParameter:
    """Definition of a tool parameter."""

    name: str
    param_type: ParameterType
    description: str
    required: bool = True
    enum: tuple[str, ...] | None = None


@dataclass(frozen=True)
class ToolDefinition:
    """Catalog entry describing a tool to the model."""

    name: str
    description: str
    parameters: tuple[ToolParameter, ...] = ()

    def get_parameter(self, name: str) -> ToolParameter | None:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    def get_parameters_schema(self) -> dict[str, Any]:
        """Convert parameters to JSON Schema format."""
        properties = {}
        required = []

        for param in self.parameters:
            prop: dict[str, Any] = {
                "type": param.param_type,
                "description": param.description,
            }
            if param.enum:
                prop["enum"] = list(param.enum)

            properties[param.name] = prop

            if param.required:
                required.append(param.name)

        return {
            "type": "object",
            "properties": properties,
            "required": required,
        }


@dataclass
class ToolCall:
    """A tool call requested by the model."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolContext:
    """Per-request information handed to tool implementations."""

    owner_id: str
    conversation_id: str | None = None


class BaseTool(ABC):
    """Base class for tool implementations.

    The description and parameters live in the ToolRegistry catalog; an
    implementation only needs a name and an ``execute`` coroutine. Arguments
    arrive already validated against the catalog schema.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the tool name."""
        pass

    @abstractmethod
    async def execute(self, context: ToolContext, **kwargs: Any) -> ToolResult:
        """Execute the tool with given arguments."""
        pass
