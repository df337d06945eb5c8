"""
Long-term memory: embeddings, vector storage and the memory manager.
"""

from .embeddings import BaseEmbedder, OpenAIEmbedder
from .manager import MemoryManager, format_memory_context
from .vector_store import MemoryFact, VectorStore

__all__ = [
    "BaseEmbedder",
    "OpenAIEmbedder",
    "MemoryManager",
    "format_memory_context",
    "MemoryFact",
    "VectorStore",
]
