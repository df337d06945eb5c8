"""
Conversation history storage.

Turns are kept in strict order per conversation. Positions are handed out
from a per-conversation counter and never reused, so appends and
compaction can interleave without reordering anything.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from uuid import uuid4

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..concurrency import KeyedQueue
from ..models import Conversation, Turn, TurnRole

logger = structlog.get_logger()

SUMMARY_PREFIX = "[Previous conversation summary]: "


@dataclass(frozen=True)
class ConversationTurn:
    """One immutable entry of a conversation."""

    role: TurnRole
    content: str
    created_at: datetime = field(default_factory=datetime.utcnow)
    tool_name: str | None = None
    synthetic: bool = False
    id: str = field(default_factory=lambda: str(uuid4()))
    position: int | None = None

    @classmethod
    def user(cls, content: str) -> "ConversationTurn":
        return cls(role=TurnRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "ConversationTurn":
        return cls(role=TurnRole.ASSISTANT, content=content)

    @classmethod
    def tool(cls, name: str, content: str) -> "ConversationTurn":
        return cls(role=TurnRole.TOOL, content=content, tool_name=name)

    @classmethod
    def summary(cls, text: str) -> "ConversationTurn":
        return cls(role=TurnRole.ASSISTANT, content=f"{SUMMARY_PREFIX}{text}", synthetic=True)

    @classmethod
    def from_row(cls, row: Turn) -> "ConversationTurn":
        return cls(
            id=row.id,
            role=TurnRole(row.role),
            content=row.content,
            created_at=row.created_at,
            tool_name=row.tool_name,
            synthetic=row.synthetic,
            position=row.position,
        )


@dataclass(frozen=True)
class ConversationSession:
    """Snapshot of a conversation and its ordered turns."""

    id: str
    owner_id: str
    turns: tuple[ConversationTurn, ...] = ()
    last_summarized_at: datetime | None = None

    @property
    def turn_count(self) -> int:
        return len(self.turns)


class ConversationStore:
    """Persists conversations with SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory
        self._queue = KeyedQueue("conversations")

    async def get_or_create(self, conversation_id: str, owner_id: str) -> ConversationSession:
        """Load a conversation, creating it on first use."""
        async with self._queue.hold(conversation_id):
            async with self.session_factory() as db:
                conversation = await db.get(Conversation, conversation_id)
                if conversation is None:
                    conversation = Conversation(id=conversation_id, owner_id=owner_id, next_position=0)
                    db.add(conversation)
                    await db.commit()
                    logger.info("Created conversation", conversation_id=conversation_id, owner_id=owner_id)
                elif conversation.owner_id != owner_id:
                    raise PermissionError(
                        f"Conversation {conversation_id} belongs to a different owner"
                    )

        session = await self.get(conversation_id)
        assert session is not None
        return session

    async def get(self, conversation_id: str) -> ConversationSession | None:
        async with self.session_factory() as db:
            conversation = await db.get(Conversation, conversation_id)
            if conversation is None:
                return None
            turns = await self._load_turns(db, conversation_id)
            return ConversationSession(
                id=conversation.id,
                owner_id=conversation.owner_id,
                turns=tuple(turns),
                last_summarized_at=conversation.last_summarized_at,
            )

    async def append(
        self, conversation_id: str, turns: Sequence[ConversationTurn]
    ) -> list[ConversationTurn]:
        """Append turns in order and return them with their positions."""
        if not turns:
            return []

        async with self._queue.hold(conversation_id):
            async with self.session_factory() as db:
                conversation = await db.get(Conversation, conversation_id)
                if conversation is None:
                    raise KeyError(f"Unknown conversation: {conversation_id}")

                stored = []
                position = conversation.next_position
                for turn in turns:
                    turn = replace(turn, position=position)
                    db.add(self._to_row(conversation_id, turn))
                    stored.append(turn)
                    position += 1

                conversation.next_position = position
                conversation.updated_at = datetime.utcnow()
                await db.commit()

        logger.debug("Appended turns", conversation_id=conversation_id, count=len(stored))
        return stored

    async def history(self, conversation_id: str, limit: int | None = None) -> list[ConversationTurn]:
        """Ordered turns, optionally only the most recent ``limit``."""
        async with self.session_factory() as db:
            turns = await self._load_turns(db, conversation_id)
        if limit is not None:
            return turns[-limit:] if limit > 0 else []
        return turns

    async def turn_count(self, conversation_id: str) -> int:
        async with self.session_factory() as db:
            result = await db.execute(
                select(func.count()).select_from(Turn).where(Turn.conversation_id == conversation_id)
            )
            return int(result.scalar_one())

    async def replace_block(
        self,
        conversation_id: str,
        turn_ids: Sequence[str],
        summary_turn: ConversationTurn,
    ) -> ConversationTurn | None:
        """Replace a contiguous block of turns with one summary turn.

        The summary takes the position of the first replaced turn. Returns
        None, changing nothing, when the block is empty, no longer present
        or not contiguous.
        """
        if not turn_ids:
            return None
        wanted = set(turn_ids)

        async with self._queue.hold(conversation_id):
            async with self.session_factory() as db:
                conversation = await db.get(Conversation, conversation_id)
                if conversation is None:
                    return None

                rows = await self._load_rows(db, conversation_id)
                indexes = [i for i, row in enumerate(rows) if row.id in wanted]
                if len(indexes) != len(wanted):
                    logger.warning("Summary block changed before replacement", conversation_id=conversation_id)
                    return None
                if indexes != list(range(indexes[0], indexes[0] + len(indexes))):
                    logger.warning("Summary block is not contiguous", conversation_id=conversation_id)
                    return None

                first_position = rows[indexes[0]].position
                await db.execute(
                    delete(Turn).where(Turn.conversation_id == conversation_id, Turn.id.in_(list(wanted)))
                )
                summary = replace(summary_turn, position=first_position)
                db.add(self._to_row(conversation_id, summary))
                conversation.last_summarized_at = datetime.utcnow()
                await db.commit()

        logger.info(
            "Replaced turns with summary",
            conversation_id=conversation_id,
            replaced=len(wanted),
            position=first_position,
        )
        return summary

    @staticmethod
    def _to_row(conversation_id: str, turn: ConversationTurn) -> Turn:
        return Turn(
            id=turn.id,
            conversation_id=conversation_id,
            position=turn.position,
            role=turn.role.value,
            content=turn.content,
            tool_name=turn.tool_name,
            synthetic=turn.synthetic,
            created_at=turn.created_at,
        )

    @staticmethod
    async def _load_rows(db, conversation_id: str) -> list[Turn]:
        result = await db.execute(
            select(Turn).where(Turn.conversation_id == conversation_id).order_by(Turn.position)
        )
        return list(result.scalars().all())

    async def _load_turns(self, db, conversation_id: str) -> list[ConversationTurn]:
        return [ConversationTurn.from_row(row) for row in await self._load_rows(db, conversation_id)]
