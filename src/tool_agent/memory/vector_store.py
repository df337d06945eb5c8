"""
Vector store for memory facts.

Rows live in the ``memory_facts`` table; similarity is computed in-process
with numpy over one owner's rows at a time.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import numpy as np
import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..models import MemoryRecord

logger = structlog.get_logger()


@dataclass(frozen=True)
class MemoryFact:
    """A remembered fact. ``score`` is only set on recall results."""

    id: str
    owner_id: str
    text: str
    embedding: tuple[float, ...] = ()
    category: str | None = None
    source: str = "tool"
    created_at: datetime = field(default_factory=datetime.utcnow)
    metadata: dict[str, Any] = field(default_factory=dict)
    score: float | None = None

    @classmethod
    def from_record(cls, record: MemoryRecord, score: float | None = None) -> "MemoryFact":
        return cls(
            id=record.id,
            owner_id=record.owner_id,
            text=record.text,
            embedding=tuple(record.embedding or ()),
            category=record.category,
            source=record.source,
            created_at=record.created_at,
            metadata=dict(record.extra_data or {}),
            score=score,
        )


def cosine_scores(matrix: np.ndarray, vector: np.ndarray) -> np.ndarray:
    """Cosine similarity of each row of ``matrix`` against ``vector``."""
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(vector)
    dots = matrix @ vector
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms > 0, dots / norms, 0.0)
    return scores


class VectorStore:
    """Per-owner vector storage backed by SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def upsert(
        self,
        owner_id: str,
        fact_id: str,
        vector: list[float],
        metadata: dict[str, Any],
    ) -> MemoryFact:
        """Insert or replace the fact identified by (owner_id, fact_id).

        ``metadata`` must carry ``text``; ``category``, ``source`` and
        ``created_at`` are optional, remaining keys are stored as extra data.
        """
        extra = dict(metadata)
        text = extra.pop("text")
        category = extra.pop("category", None)
        source = extra.pop("source", "tool")
        created_at = extra.pop("created_at", None) or datetime.utcnow()

        record = MemoryRecord(
            owner_id=owner_id,
            id=fact_id,
            text=text,
            embedding=[float(x) for x in vector],
            category=category,
            source=source,
            extra_data=extra,
            created_at=created_at,
        )
        async with self.session_factory() as session:
            record = await session.merge(record)
            await session.commit()
            return MemoryFact.from_record(record)

    async def query(
        self,
        owner_id: str,
        vector: list[float],
        k: int = 5,
        min_score: float | None = None,
    ) -> list[MemoryFact]:
        """Return up to ``k`` of the owner's facts, most similar first."""
        records = await self._records(owner_id)
        if not records or k <= 0:
            return []

        query_vec = np.asarray(vector, dtype=float)
        candidates = [r for r in records if len(r.embedding or ()) == query_vec.shape[0]]
        if len(candidates) < len(records):
            logger.warning(
                "Skipping facts with mismatched embedding size",
                owner_id=owner_id,
                skipped=len(records) - len(candidates),
            )
        if not candidates:
            return []

        matrix = np.asarray([r.embedding for r in candidates], dtype=float)
        scores = cosine_scores(matrix, query_vec)

        # Stable sort keeps insertion order among equal scores
        order = np.argsort(-scores, kind="stable")
        results = []
        for index in order:
            score = float(scores[index])
            if min_score is not None and score < min_score:
                continue
            results.append(MemoryFact.from_record(candidates[index], score=score))
            if len(results) >= k:
                break
        return results

    async def all(self, owner_id: str) -> list[MemoryFact]:
        """All of the owner's facts, oldest first."""
        return [MemoryFact.from_record(r) for r in await self._records(owner_id)]

    async def delete_owner(self, owner_id: str) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                delete(MemoryRecord).where(MemoryRecord.owner_id == owner_id)
            )
            await session.commit()
            return result.rowcount or 0

    async def count(self, owner_id: str) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(MemoryRecord).where(MemoryRecord.owner_id == owner_id)
            )
            return int(result.scalar_one())

    async def _records(self, owner_id: str) -> list[MemoryRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(MemoryRecord)
                .where(MemoryRecord.owner_id == owner_id)
                .order_by(MemoryRecord.created_at, MemoryRecord.id)
            )
            return list(result.scalars().all())
