"""
Tools that let the model read and write the owner's long-term memory.
"""

from typing import Any

from ..memory.manager import MemoryManager
from .base import BaseTool, ToolContext, ToolResult

MAX_FACT_LENGTH = 1000


class RememberTool(BaseTool):
    """Store a fact about the current owner."""

    def __init__(self, memory: MemoryManager):
        self.memory = memory

    @property
    def name(self) -> str:
        return "remember"

    async def execute(
        self, context: ToolContext, fact: str, category: str | None = None, **kwargs: Any
    ) -> ToolResult:
        fact = fact.strip()
        if not fact:
            return ToolResult.fail("Fact cannot be empty.")
        if len(fact) > MAX_FACT_LENGTH:
            return ToolResult.fail("Fact is too long. Please summarize it.")

        stored = await self.memory.remember(context.owner_id, fact, category=category, source="tool")
        return ToolResult.ok(f'Remembered: "{stored.text}"', data={"id": stored.id})


class RecallTool(BaseTool):
    """Search the current owner's memories."""

    def __init__(self, memory: MemoryManager):
        self.memory = memory

    @property
    def name(self) -> str:
        return "recall"

    async def execute(self, context: ToolContext, query: str, **kwargs: Any) -> ToolResult:
        query = query.strip()
        if not query:
            return ToolResult.fail("Query cannot be empty.")

        facts = await self.memory.recall(context.owner_id, query)
        if not facts:
            return ToolResult.ok("No memories found about this topic.", data=[])

        lines = [f"Found {len(facts)} relevant memories:"]
        for fact in facts:
            label = f" [{fact.category}]" if fact.category else ""
            lines.append(f"- {fact.text}{label}")
        return ToolResult.ok("\n".join(lines), data=[f.id for f in facts])
