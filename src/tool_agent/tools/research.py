"""
Research tools: arXiv paper search and Wikipedia summaries.
"""

import re
import xml.etree.ElementTree as ET
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from ..config import TOOL_TIMEOUT_SECONDS
from .base import BaseTool, ToolContext, ToolResult
from .web_search import MAX_QUERY_LENGTH, clamp_results

logger = structlog.get_logger()

ARXIV_API_URL = "https://export.arxiv.org/api/query"
ATOM_NS = {"atom": "http://www.w3.org/2005/Atom"}
WIKIPEDIA_SUMMARY_URL = "https://en.wikipedia.org/api/rest_v1/page/summary/"
MAX_TOPIC_LENGTH = 200
ABSTRACT_CHARS = 300


def _squash(text: str | None) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def parse_arxiv_feed(xml_text: str, max_results: int) -> list[dict[str, str]]:
    """Parse an arXiv Atom feed into title/link/abstract entries."""
    root = ET.fromstring(xml_text)
    papers = []
    for entry in root.findall("atom:entry", ATOM_NS)[:max_results]:
        title = _squash(entry.findtext("atom:title", default="", namespaces=ATOM_NS))
        if not title:
            continue
        papers.append({
            "title": title,
            "link": (entry.findtext("atom:id", default="", namespaces=ATOM_NS) or "").strip(),
            "abstract": _squash(entry.findtext("atom:summary", default="", namespaces=ATOM_NS)),
        })
    return papers


class ArxivSearchTool(BaseTool):
    """Search arXiv for academic papers."""

    def __init__(self, client: httpx.AsyncClient, timeout: float = TOOL_TIMEOUT_SECONDS):
        self.client = client
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "search_arxiv"

    async def execute(
        self, context: ToolContext, query: str, max_results: Any = 5, **kwargs: Any
    ) -> ToolResult:
        query = query.strip()
        if not query:
            return ToolResult.fail("Search query cannot be empty.")
        if len(query) > MAX_QUERY_LENGTH:
            return ToolResult.fail("Search query is too long. Please shorten it.")

        max_results = clamp_results(max_results, 5, 20)

        response = await self.client.get(
            ARXIV_API_URL,
            params={
                "search_query": f"all:{query}",
                "start": 0,
                "max_results": max_results,
                "sortBy": "relevance",
                "sortOrder": "descending",
            },
            timeout=self.timeout,
        )
        response.raise_for_status()

        try:
            papers = parse_arxiv_feed(response.text, max_results)
        except ET.ParseError as e:
            logger.error("arXiv feed parse error", error=str(e))
            return ToolResult.fail("arXiv returned a malformed response.")

        if not papers:
            return ToolResult.ok("No papers found for this query.", data=[])

        entries = []
        for paper in papers:
            info = f"Title: {paper['title']}"
            if paper["link"]:
                info += f"\nLink: {paper['link']}"
            if paper["abstract"]:
                info += f"\nAbstract: {paper['abstract'][:ABSTRACT_CHARS]}..."
            entries.append(info)

        return ToolResult.ok(
            f"Found {len(entries)} papers:\n\n" + "\n\n---\n\n".join(entries),
            data=papers,
        )


class WikipediaSummaryTool(BaseTool):
    """Fetch the lead summary of a Wikipedia article."""

    def __init__(self, client: httpx.AsyncClient, timeout: float = TOOL_TIMEOUT_SECONDS):
        self.client = client
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "wikipedia_summary"

    async def execute(self, context: ToolContext, topic: str, **kwargs: Any) -> ToolResult:
        topic = topic.strip()
        if not topic:
            return ToolResult.fail("Topic cannot be empty.")
        if len(topic) > MAX_TOPIC_LENGTH:
            return ToolResult.fail("Topic is too long. Please shorten it.")
        if ".." in topic or "/" in topic or "\\" in topic:
            return ToolResult.fail("Topic contains invalid characters.")

        response = await self.client.get(
            WIKIPEDIA_SUMMARY_URL + quote(topic, safe=""),
            timeout=self.timeout,
        )

        if response.status_code == 404:
            return ToolResult.fail(f'No Wikipedia article found for "{topic}"')
        response.raise_for_status()
        data = response.json()

        if data.get("type") == "disambiguation":
            return ToolResult.ok(f'"{topic}" has multiple meanings. Try being more specific.', data=data)

        result = f"# {data.get('title') or topic}\n\n"
        result += data.get("extract") or "No summary available."
        page = ((data.get("content_urls") or {}).get("desktop") or {}).get("page")
        if page:
            result += f"\n\nRead more: {page}"

        return ToolResult.ok(result, data=data)
