"""
Web search tool using the DuckDuckGo instant answer API or Tavily.
"""

from typing import Any

import httpx
import structlog

from ..config import TOOL_TIMEOUT_SECONDS
from .base import BaseTool, ToolContext, ToolResult

logger = structlog.get_logger()

DUCKDUCKGO_URL = "https://api.duckduckgo.com/"
TAVILY_URL = "https://api.tavily.com/search"
MAX_QUERY_LENGTH = 300


def clamp_results(value: Any, default: int, upper: int) -> int:
    """Clamp a model-supplied result count into 1..upper."""
    try:
        count = int(value) if value is not None else default
    except (TypeError, ValueError):
        count = default
    return min(max(1, count or default), upper)


class WebSearchTool(BaseTool):
    """Tool for searching the web."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        tavily_api_key: str = "",
        timeout: float = TOOL_TIMEOUT_SECONDS,
    ):
        self.client = client
        self.tavily_api_key = tavily_api_key
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "web_search"

    async def execute(
        self, context: ToolContext, query: str, max_results: Any = 5, **kwargs: Any
    ) -> ToolResult:
        """Execute web search."""
        query = query.strip()
        if not query:
            return ToolResult.fail("Search query cannot be empty.")
        if len(query) > MAX_QUERY_LENGTH:
            return ToolResult.fail("Search query is too long. Please shorten it.")

        max_results = clamp_results(max_results, 5, 10)

        if self.tavily_api_key:
            return await self._tavily_search(query, max_results)
        return await self._duckduckgo_search(query, max_results)

    async def _tavily_search(self, query: str, max_results: int) -> ToolResult:
        """Search using Tavily API."""
        response = await self.client.post(
            TAVILY_URL,
            json={
                "api_key": self.tavily_api_key,
                "query": query,
                "max_results": max_results,
                "include_answer": True,
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        results = []
        if data.get("answer"):
            results.append(f"Summary: {data['answer']}\n")

        for result in data.get("results", [])[:max_results]:
            results.append(
                f"{result.get('title', 'Untitled')}\n"
                f"URL: {result.get('url', '')}\n"
                f"{result.get('content', '')[:500]}\n"
            )

        output = "\n---\n".join(results) if results else "No results found. Try a different search query."
        return ToolResult.ok(output, data=data)

    async def _duckduckgo_search(self, query: str, max_results: int) -> ToolResult:
        """Search using the DuckDuckGo instant answer API (no key needed)."""
        response = await self.client.get(
            DUCKDUCKGO_URL,
            params={
                "q": query,
                "format": "json",
                "no_html": 1,
                "skip_disambig": 1,
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        output = ""
        if data.get("AbstractText"):
            output += f"Summary: {data['AbstractText']}\n"
            if data.get("AbstractSource"):
                output += f"Source: {data['AbstractSource']}\n"

        topics = [t for t in data.get("RelatedTopics") or [] if t.get("Text")]
        if topics:
            output += "\nRelated:\n"
            for topic in topics[:max_results]:
                output += f"- {topic['Text']}\n"

        if not output:
            output = "No results found. Try a different search query."

        logger.debug("Web search completed", query=query, related=len(topics))
        return ToolResult.ok(output.strip(), data=data)
