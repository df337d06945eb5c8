"""
Embedding clients used by the memory store.
"""

from abc import ABC, abstractmethod

import structlog
from openai import APIError, AsyncOpenAI

from ..exceptions import ModelFailureError

logger = structlog.get_logger()


class BaseEmbedder(ABC):
    """Turns text into a fixed-length vector."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        pass

    async def close(self) -> None:
        """Release any held resources."""
        pass


class OpenAIEmbedder(BaseEmbedder):
    """Embeddings through an OpenAI-compatible ``/embeddings`` endpoint.

    Works with Ollama (``nomic-embed-text``), OpenAI and OpenRouter.
    """

    def __init__(
        self,
        model: str,
        api_key: str,
        base_url: str | None = None,
        timeout: float = 30.0,
    ):
        self.model = model
        self.client = AsyncOpenAI(
            api_key=api_key or "not-needed",
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    async def embed(self, text: str) -> list[float]:
        try:
            response = await self.client.embeddings.create(model=self.model, input=text)
        except APIError as e:
            logger.error("Embedding request failed", model=self.model, error=str(e))
            raise ModelFailureError(f"Embedding failed: {e}") from e

        if not response.data:
            raise ModelFailureError("Embedding service returned no vectors")
        return list(response.data[0].embedding)

    async def close(self) -> None:
        await self.client.close()
