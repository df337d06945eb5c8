"""
Agent module - the brain of the system.

Includes:
- parse_tool_call / clean_response: reading tool calls out of model text
- AgentLoop: the bounded model/tool iteration
- ConversationStore: ordered, persistent conversation history
- SessionSummarizer: background compaction of long histories
- Orchestrator: per-request coordination of all of the above
"""

from .conversation import ConversationSession, ConversationStore, ConversationTurn
from .loop import AgentLoop, AgentRunState, LoopState
from .orchestrator import AgentReply, Orchestrator, build_orchestrator
from .parser import clean_response, parse_tool_call
from .summarizer import SessionSummarizer

__all__ = [
    "ConversationSession",
    "ConversationStore",
    "ConversationTurn",
    "AgentLoop",
    "AgentRunState",
    "LoopState",
    "AgentReply",
    "Orchestrator",
    "build_orchestrator",
    "clean_response",
    "parse_tool_call",
    "SessionSummarizer",
]
