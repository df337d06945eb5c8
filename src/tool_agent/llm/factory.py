"""
Factory for the completion service client.

Every supported provider speaks the OpenAI chat API:
- ollama -> local Ollama server (/v1 endpoint)
- openai -> api.openai.com
- openrouter -> openrouter.ai
"""

from ..config import LLMConfig, Settings
from .base import BaseLLM
from .openai import OpenAILLM


def create_llm(config: LLMConfig | None = None, settings: Settings | None = None) -> BaseLLM:
    """Create a completion client based on configuration."""
    if config is None:
        if settings is None:
            from ..config import get_settings
            settings = get_settings()
        config = settings.get_llm_config()

    if config.provider not in ("ollama", "openai", "openrouter"):
        raise ValueError(f"Unknown LLM provider: {config.provider}")

    return OpenAILLM(
        api_key=config.api_key,
        model=config.model,
        base_url=config.base_url,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        timeout=config.timeout,
        provider=config.provider,
    )
