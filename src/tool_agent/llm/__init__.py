"""
Completion service clients.

All providers are reached through the OpenAI-compatible chat API:
- Ollama (local, default)
- OpenAI
- OpenRouter
"""

from .base import BaseLLM, LLMMessage, LLMResponse
from .openai import OpenAILLM
from .factory import create_llm

__all__ = [
    "BaseLLM",
    "LLMMessage",
    "LLMResponse",
    "OpenAILLM",
    "create_llm",
]
