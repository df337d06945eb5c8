"""
Extract tool calls from free-form model output.

Models are asked to answer with ``{"tool": ..., "arguments": {...}}``,
usually inside a fenced block. In practice they also wrap it in prose,
label the fence differently or drop the fence altogether, so several
strategies are tried in order and the first valid candidate wins.
"""

import json
import re
from collections.abc import Callable, Iterator
from typing import Any

import structlog

from ..tools.base import ToolCall

logger = structlog.get_logger()

JSON_FENCE = re.compile(r"```json\s*\n?(.*?)\n?```", re.IGNORECASE | re.DOTALL)
ANY_FENCE = re.compile(r"```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?```", re.DOTALL)
TOOL_KEY = re.compile(r"\"tool\"\s*:")
TOOL_LINE = re.compile(r'^\s*\{\s*"tool"\s*:')

_decoder = json.JSONDecoder()


def _json_fences(text: str) -> Iterator[str]:
    for match in JSON_FENCE.finditer(text):
        yield match.group(1)


def _any_fences(text: str) -> Iterator[str]:
    for match in ANY_FENCE.finditer(text):
        yield match.group(1)


def _bare_objects(text: str) -> Iterator[str]:
    """Yield every JSON object literal that decodes from a ``{``."""
    start = text.find("{")
    while start != -1:
        try:
            _, end = _decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        yield text[start:end]
        start = text.find("{", end)


STRATEGIES: tuple[Callable[[str], Iterator[str]], ...] = (
    _json_fences,
    _any_fences,
    _bare_objects,
)


def _to_tool_call(candidate: str) -> ToolCall | None:
    try:
        parsed: Any = json.loads(candidate.strip())
    except (json.JSONDecodeError, ValueError):
        return None

    if not isinstance(parsed, dict):
        return None
    name = parsed.get("tool")
    if not isinstance(name, str) or not name:
        return None

    arguments = parsed.get("arguments")
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        return None

    return ToolCall(name=name, arguments=arguments)


def parse_tool_call(text: str) -> ToolCall | None:
    """Return the first tool call found in ``text``, or None.

    Never raises; malformed candidates are skipped.
    """
    if not text or "tool" not in text:
        return None

    for strategy in STRATEGIES:
        for candidate in strategy(text):
            call = _to_tool_call(candidate)
            if call is not None:
                logger.debug("Parsed tool call", tool_name=call.name, strategy=strategy.__name__)
                return call
    return None


def clean_response(text: str) -> str:
    """Strip tool-call payloads from a final answer.

    Other code blocks are kept so that normal examples survive.
    """
    cleaned = JSON_FENCE.sub(lambda m: "" if TOOL_KEY.search(m.group(1)) else m.group(0), text)

    for candidate in list(_bare_objects(cleaned)):
        if _to_tool_call(candidate) is not None:
            cleaned = cleaned.replace(candidate, "")

    lines = [line for line in cleaned.split("\n") if not TOOL_LINE.match(line)]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()
