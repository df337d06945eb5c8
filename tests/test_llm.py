"""
Tests for the completion service client.
"""

from unittest.mock import AsyncMock, MagicMock

import openai
import pytest

from tool_agent.config import LLMConfig
from tool_agent.exceptions import ModelFailureError, ModelTimeoutError
from tool_agent.llm import LLMMessage, OpenAILLM, create_llm


def completion(content: str):
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content), finish_reason="stop")]
    response.usage = MagicMock(prompt_tokens=12, completion_tokens=3)
    response.model = "qwen3:14b"
    return response


def test_create_llm_from_config():
    llm = create_llm(LLMConfig(provider="openrouter", model="m", api_key="k", base_url="https://openrouter.ai/api/v1"))

    assert isinstance(llm, OpenAILLM)
    assert llm.provider_name == "openrouter"
    assert llm.model == "m"


@pytest.mark.asyncio
async def test_generate_converts_messages():
    llm = OpenAILLM(api_key="test", model="qwen3:14b", provider="ollama")
    llm.client.chat.completions.create = AsyncMock(return_value=completion("Tokyo."))

    response = await llm.generate(
        [
            LLMMessage(role="user", content="Capital of Japan?"),
            LLMMessage(role="tool", name="web_search", content="Tokyo is the capital."),
        ],
        system_prompt="Be brief.",
    )

    assert response.content == "Tokyo."
    assert response.input_tokens == 12
    sent = llm.client.chat.completions.create.call_args.kwargs["messages"]
    assert sent[0] == {"role": "system", "content": "Be brief."}
    assert sent[2] == {"role": "user", "content": '[Tool "web_search" result]:\nTokyo is the capital.'}


@pytest.mark.asyncio
async def test_generate_maps_api_errors():
    llm = OpenAILLM(api_key="test")
    llm.client.chat.completions.create = AsyncMock(
        side_effect=openai.APITimeoutError(request=MagicMock())
    )

    with pytest.raises(ModelTimeoutError):
        await llm.generate([LLMMessage(role="user", content="hi")])

    llm.client.chat.completions.create = AsyncMock(
        side_effect=openai.APIConnectionError(request=MagicMock())
    )

    with pytest.raises(ModelFailureError):
        await llm.generate([LLMMessage(role="user", content="hi")])
