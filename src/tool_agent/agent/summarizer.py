"""
Session summarization - compacts aged conversation history.

When a conversation grows past a threshold, everything except the most
recent turns is summarized, the summary is stored as a memory fact for the
owner, and the summarized block is replaced in the conversation by a
single synthetic turn. If the model is unavailable, a rule-based summary
is used instead so compaction still makes progress.
"""

import asyncio
from collections.abc import Sequence

import structlog

from ..concurrency import KeyedQueue, run_bounded
from ..config import MODEL_TIMEOUT_SECONDS
from ..exceptions import AgentError
from ..llm.base import BaseLLM, LLMMessage
from ..memory.manager import MemoryManager
from ..models import TurnRole
from .conversation import SUMMARY_PREFIX, ConversationStore, ConversationTurn

logger = structlog.get_logger()

DEFAULT_SUMMARIZE_AFTER = 15
DEFAULT_KEEP_RECENT = 6

FACT_PHRASES = (
    "my name is", "i work", "i live", "i prefer", "i like", "i love",
    "remember that", "don't forget", "important:",
)


def _extract_key_facts(turns: Sequence[ConversationTurn]) -> list[str]:
    """Pull out statements worth carrying into the summary."""
    facts = []

    for turn in turns:
        if turn.role == TurnRole.TOOL and turn.content.strip():
            facts.append(f"[Tool result]: {turn.content[:200]}")

        if turn.role == TurnRole.USER:
            content_lower = turn.content.lower()
            if any(phrase in content_lower for phrase in FACT_PHRASES):
                facts.append(f"[User stated]: {turn.content[:200]}")

        if turn.synthetic and turn.content.startswith(SUMMARY_PREFIX):
            facts.append(f"[Earlier summary]: {turn.content[len(SUMMARY_PREFIX):][:300]}")

    return facts[:10]


def _fallback_summary(turns: Sequence[ConversationTurn], key_facts: list[str]) -> str:
    """Create a basic summary without the model."""
    parts = ["Earlier in this conversation:"]

    if key_facts:
        parts.append("\nKey information:")
        for fact in key_facts:
            parts.append(f"  - {fact}")

    user_count = sum(1 for t in turns if t.role == TurnRole.USER)
    assistant_count = sum(1 for t in turns if t.role == TurnRole.ASSISTANT)
    tool_count = sum(1 for t in turns if t.role == TurnRole.TOOL)

    parts.append(
        f"\n[{user_count} user messages, {assistant_count} assistant responses, "
        f"{tool_count} tool calls summarized]"
    )

    user_turns = [t for t in turns if t.role == TurnRole.USER]
    if user_turns:
        parts.append(f"\nFirst topic: {user_turns[0].content[:150]}")
        if len(user_turns) > 1:
            parts.append(f"Last topic before this: {user_turns[-1].content[:150]}")

    return "\n".join(parts)


async def _generate_summary(
    llm: BaseLLM,
    turns: Sequence[ConversationTurn],
    key_facts: list[str],
) -> str:
    """Use the model to generate a conversation summary."""
    transcript = "\n".join(f"{t.role.value.upper()}: {t.content[:300]}" for t in turns)

    facts_section = ""
    if key_facts:
        facts_section = "\n\nKey facts to preserve:\n" + "\n".join(f"- {f}" for f in key_facts)

    summary_prompt = f"""Summarize the following conversation into a concise context block.
Preserve:
- Any specific facts, names, dates, or numbers mentioned
- The user's requests and what was accomplished
- Any preferences or important information the user shared

Keep it under 300 words.{facts_section}

Conversation:
{transcript}

Summary:"""

    response = await llm.generate(
        messages=[LLMMessage(role="user", content=summary_prompt)],
        system_prompt="You are a conversation summarizer. Create concise, fact-preserving summaries.",
        temperature=0.3,
    )
    summary = response.content.strip()
    if not summary:
        raise ValueError("empty summary")
    return summary


class SessionSummarizer:
    """Background compaction of conversation history."""

    def __init__(
        self,
        store: ConversationStore,
        memory: MemoryManager,
        llm: BaseLLM,
        summarize_after: int = DEFAULT_SUMMARIZE_AFTER,
        keep_recent: int = DEFAULT_KEEP_RECENT,
        model_timeout: float = MODEL_TIMEOUT_SECONDS,
    ):
        if keep_recent >= summarize_after:
            raise ValueError("keep_recent must be smaller than summarize_after")
        self.store = store
        self.memory = memory
        self.llm = llm
        self.summarize_after = summarize_after
        self.keep_recent = keep_recent
        self.model_timeout = model_timeout
        self._queue = KeyedQueue("summaries")
        self._tasks: set[asyncio.Task] = set()
        self._pending: dict[str, asyncio.Task] = {}

    def needs_summary(self, turn_count: int) -> bool:
        return turn_count >= self.summarize_after

    def schedule(self, conversation_id: str) -> asyncio.Task:
        """Run ``summarize`` in the background without awaiting it.

        A conversation with a summary already queued reuses that task.
        """
        existing = self._pending.get(conversation_id)
        if existing is not None and not existing.done():
            return existing

        task = asyncio.create_task(self._run(conversation_id))
        self._tasks.add(task)
        self._pending[conversation_id] = task
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(lambda t: self._forget(conversation_id, t))
        return task

    def _forget(self, conversation_id: str, task: asyncio.Task) -> None:
        if self._pending.get(conversation_id) is task:
            del self._pending[conversation_id]

    async def _run(self, conversation_id: str) -> ConversationTurn | None:
        try:
            return await self.summarize(conversation_id)
        except Exception as e:
            logger.error("Summarization failed", conversation_id=conversation_id, error=str(e))
            return None

    async def summarize(self, conversation_id: str) -> ConversationTurn | None:
        """Compact the oldest turns of a conversation into one summary turn.

        Returns the inserted summary turn, or None when nothing was done.
        """
        async with self._queue.hold(conversation_id):
            session = await self.store.get(conversation_id)
            if session is None or not self.needs_summary(session.turn_count):
                return None

            block = session.turns[: -self.keep_recent]
            if not block:
                return None

            key_facts = _extract_key_facts(block)
            try:
                summary = await run_bounded(
                    _generate_summary(self.llm, block, key_facts),
                    self.model_timeout,
                )
            except (AgentError, ValueError) as e:
                logger.warning("Summary model failed, using fallback", conversation_id=conversation_id, error=str(e))
                summary = _fallback_summary(block, key_facts)

            try:
                await self.memory.remember(
                    session.owner_id,
                    summary,
                    source="session_summary",
                )
            except Exception as e:
                logger.error(
                    "Could not store session summary; keeping history",
                    conversation_id=conversation_id,
                    error=str(e),
                )
                return None

            inserted = await self.store.replace_block(
                conversation_id,
                [turn.id for turn in block],
                ConversationTurn.summary(summary),
            )

        logger.info(
            "Session summarized",
            conversation_id=conversation_id,
            summarized=len(block),
            kept=self.keep_recent,
        )
        return inserted

    @property
    def active(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every scheduled summary to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
