"""
Memory Manager - durable per-owner memory with similarity recall.

Facts are embedded once on write and never mutated afterwards. Writes for
one owner are serialized; reads never wait on writes.
"""

from collections.abc import Sequence
from datetime import datetime
from uuid import uuid4

import structlog

from ..concurrency import KeyedQueue
from .embeddings import BaseEmbedder
from .vector_store import MemoryFact, VectorStore

logger = structlog.get_logger()

MEMORY_CONTEXT_HEADER = "## Recalled Memories About This User"


def format_memory_context(facts: Sequence[MemoryFact]) -> str:
    """Format recalled facts for the model's instructions."""
    if not facts:
        return ""
    lines = [MEMORY_CONTEXT_HEADER, ""]
    for fact in facts:
        lines.append(f"• {fact.text}")
    return "\n".join(lines)


class MemoryManager:
    """Stores and recalls facts about each owner."""

    def __init__(
        self,
        store: VectorStore,
        embedder: BaseEmbedder,
        default_limit: int = 5,
        min_score: float | None = None,
    ):
        self.store = store
        self.embedder = embedder
        self.default_limit = default_limit
        self.min_score = min_score
        self._writes = KeyedQueue("memory-writes")

    async def remember(
        self,
        owner_id: str,
        fact: str,
        category: str | None = None,
        source: str = "tool",
        fact_id: str | None = None,
    ) -> MemoryFact:
        """Embed and store a fact for an owner."""
        text = fact.strip()
        if not text:
            raise ValueError("Cannot remember an empty fact")

        vector = await self.embedder.embed(text)
        fact_id = fact_id or str(uuid4())

        async with self._writes.hold(owner_id):
            stored = await self.store.upsert(
                owner_id,
                fact_id,
                vector,
                {
                    "text": text,
                    "category": category,
                    "source": source,
                    "created_at": datetime.utcnow(),
                },
            )

        logger.info("Stored memory", owner_id=owner_id, fact_id=fact_id, source=source, category=category)
        return stored

    async def recall(self, owner_id: str, query: str, k: int | None = None) -> list[MemoryFact]:
        """Return the owner's facts most similar to ``query``."""
        limit = k if k is not None else self.default_limit
        if await self.store.count(owner_id) == 0:
            return []

        vector = await self.embedder.embed(query)
        facts = await self.store.query(owner_id, vector, limit, min_score=self.min_score)
        logger.debug("Recalled memories", owner_id=owner_id, count=len(facts))
        return facts

    async def all_facts(self, owner_id: str) -> list[MemoryFact]:
        return await self.store.all(owner_id)

    async def count(self, owner_id: str) -> int:
        return await self.store.count(owner_id)

    async def forget_all(self, owner_id: str) -> int:
        """Delete every fact stored for an owner."""
        async with self._writes.hold(owner_id):
            deleted = await self.store.delete_owner(owner_id)
        logger.info("Forgot memories", owner_id=owner_id, deleted=deleted)
        return deleted

    def format_context(self, facts: Sequence[MemoryFact]) -> str:
        return format_memory_context(facts)
