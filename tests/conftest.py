"""
Shared fixtures: a file-backed SQLite database and deterministic fakes for
the embedding service and the completion service.
"""

import hashlib
import math

import pytest

from tool_agent.llm.base import BaseLLM, LLMResponse
from tool_agent.memory import BaseEmbedder, MemoryManager, VectorStore
from tool_agent.models import init_database


class KeywordEmbedder(BaseEmbedder):
    """Bag-of-words vectors hashed into a fixed number of buckets."""

    def __init__(self, dimensions: int = 64):
        self.dimensions = dimensions
        self.calls = 0

    async def embed(self, text: str) -> list[float]:
        self.calls += 1
        vector = [0.0] * self.dimensions
        for word in text.lower().replace(".", " ").replace(",", " ").split():
            digest = hashlib.sha1(word.encode()).digest()
            vector[digest[0] % self.dimensions] += 1.0
        norm = math.sqrt(sum(v * v for v in vector)) or 1.0
        return [v / norm for v in vector]


class ScriptedLLM(BaseLLM):
    """Replays canned responses and records every prompt it was given."""

    def __init__(self, responses=()):
        super().__init__(api_key="test", model="scripted")
        self.responses = list(responses)
        self.calls = []

    async def generate(self, messages, system_prompt=None, temperature=None):
        self.calls.append({"messages": list(messages), "system_prompt": system_prompt})
        if not self.responses:
            return LLMResponse(content="Done.")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return LLMResponse(content=item)

    @property
    def provider_name(self) -> str:
        return "scripted"


@pytest.fixture
async def session_factory(tmp_path):
    factory = await init_database(f"sqlite+aiosqlite:///{tmp_path / 'agent.db'}")
    yield factory
    await factory.kw["bind"].dispose()


@pytest.fixture
def embedder():
    return KeywordEmbedder()


@pytest.fixture
def memory(session_factory, embedder):
    return MemoryManager(VectorStore(session_factory), embedder)
