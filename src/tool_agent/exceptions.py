"""
Error types for the agent.

Tool errors never leave the ToolExecutor: they are converted to a failed
ToolResult carrying ``kind``. Model errors end the current run.
"""


class AgentError(Exception):
    """Base class for all agent errors."""


class StepTimeoutError(AgentError):
    """A bounded step exceeded its time budget."""

    def __init__(self, timeout: float):
        super().__init__(f"timed out after {timeout:g}s")
        self.timeout = timeout


class StepCancelledError(AgentError):
    """A bounded step was cancelled by the caller."""

    def __init__(self, message: str = "cancelled by caller"):
        super().__init__(message)


class ToolError(AgentError):
    """A tool call that could not produce a result."""

    kind = "execution_failed"


class UnknownToolError(ToolError):
    kind = "unknown_tool"

    def __init__(self, name: str, available: list[str] | None = None):
        message = f'unknown tool "{name}"'
        if available:
            message += f". Available tools: {', '.join(available)}"
        super().__init__(message)
        self.name = name


class InvalidParameterError(ToolError):
    """Base class for schema violations."""

    kind = "invalid_parameter"

    def __init__(self, parameter: str, message: str):
        super().__init__(message)
        self.parameter = parameter


class MissingParameterError(InvalidParameterError):
    kind = "missing_parameter"

    def __init__(self, parameter: str):
        super().__init__(parameter, f"missing required parameter '{parameter}'")


class ParameterTypeError(InvalidParameterError):
    kind = "invalid_type"

    def __init__(self, parameter: str, expected: str, actual: object):
        super().__init__(
            parameter,
            f"parameter '{parameter}' must be of type {expected}, got {type(actual).__name__}",
        )
        self.expected = expected


class ParameterEnumError(InvalidParameterError):
    kind = "invalid_enum"

    def __init__(self, parameter: str, value: object, allowed: list[str]):
        super().__init__(
            parameter,
            f"parameter '{parameter}' must be one of {', '.join(allowed)}; got {value!r}",
        )
        self.allowed = allowed


class UnexpectedParameterError(InvalidParameterError):
    kind = "unexpected_parameter"

    def __init__(self, parameter: str):
        super().__init__(parameter, f"unexpected parameter '{parameter}'")


class DisallowedHostError(ToolError):
    kind = "disallowed_host"


class ToolTimeoutError(ToolError):
    kind = "timeout"


class ModelError(AgentError):
    """The completion service could not produce a response."""


class ModelTimeoutError(ModelError):
    pass


class ModelFailureError(ModelError):
    pass


class ImageServiceError(AgentError):
    """The image service rejected or failed a generation request."""
