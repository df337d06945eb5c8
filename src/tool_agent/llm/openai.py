"""
OpenAI-compatible completion client (OpenAI, Ollama, OpenRouter).
"""

from typing import Any

import openai
import structlog

from ..exceptions import ModelFailureError, ModelTimeoutError
from .base import BaseLLM, LLMMessage, LLMResponse

logger = structlog.get_logger()


class OpenAILLM(BaseLLM):
    """Completion client for any OpenAI-compatible chat endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        timeout: float = 120.0,
        provider: str = "openai",
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature)
        self._provider = provider
        self.client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    @property
    def provider_name(self) -> str:
        return self._provider

    def _convert_messages(self, messages: list[LLMMessage]) -> list[dict[str, Any]]:
        """Convert LLMMessages to chat format.

        Tool results are not native tool messages here (the model asked for
        them in plain text), so they are replayed as user messages.
        """
        converted = []

        for msg in messages:
            if msg.role == "tool":
                converted.append({
                    "role": "user",
                    "content": f'[Tool "{msg.name or "unknown"}" result]:\n{msg.content}',
                })
            else:
                converted.append({
                    "role": msg.role,
                    "content": msg.content,
                })

        return converted

    async def generate(
        self,
        messages: list[LLMMessage],
        system_prompt: str | None = None,
        temperature: float | None = None,
    ) -> LLMResponse:
        """Generate a response from the model."""
        converted_messages = self._convert_messages(messages)

        if system_prompt:
            converted_messages.insert(0, {"role": "system", "content": system_prompt})

        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature if temperature is None else temperature,
            "messages": converted_messages,
        }

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except openai.APITimeoutError as e:
            logger.error("Completion API timeout", provider=self._provider, error=str(e))
            raise ModelTimeoutError(str(e)) from e
        except openai.APIError as e:
            logger.error("Completion API error", provider=self._provider, error=str(e))
            raise ModelFailureError(str(e)) from e

        if not response.choices:
            raise ModelFailureError("completion service returned no choices")

        choice = response.choices[0]

        return LLMResponse(
            content=choice.message.content or "",
            input_tokens=response.usage.prompt_tokens if response.usage else 0,
            output_tokens=response.usage.completion_tokens if response.usage else 0,
            model=response.model,
            stop_reason=choice.finish_reason,
            raw_response=response,
        )

    async def close(self) -> None:
        await self.client.close()
