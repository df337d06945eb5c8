"""
Base classes for the completion service.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Literal


@dataclass
class LLMMessage:
    """A message in the prompt history."""

    role: Literal["user", "assistant", "system", "tool"]
    content: str
    name: str | None = None


@dataclass
class LLMResponse:
    """Response from the completion service."""

    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    stop_reason: str | None = None
    raw_response: Any = None


class BaseLLM(ABC):
    """Base class for completion service clients.

    Tool calls are requested by the model as JSON inside its text, so the
    client only exchanges plain messages.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature

    @abstractmethod
    async def generate(
        self,
        messages: list[LLMMessage],
        system_prompt: str | None = None,
        temperature: float | None = None,
    ) -> LLMResponse:
        """Generate a response from the model."""
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get the provider name."""
        pass

    async def close(self) -> None:
        """Release pooled connections."""
        return None
