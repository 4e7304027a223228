"""
Retrieval store contract.

Purpose:
- Answer "give me N random topics" and "give me items similar to X".
- Keep topic strategy and prompt building OUT of the store.

Rules:
- This file contains NO logic.
- Stores raise RetrievalError on failure; callers decide how to degrade.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Topic:
    """One stored item. similarity is set only on similarity queries."""
    content: str
    author: str = ""
    similarity: float | None = None
    id: str | None = None
    source: str | None = None


@dataclass(frozen=True)
class KnowledgeResponse:
    query: str
    results: list[Topic] = field(default_factory=list)
    total: int = 0


class RetrievalStore(ABC):
    """Abstract knowledge store queried by idle talk and knowledge injection."""

    @abstractmethod
    async def get_random_topics(self, limit: int) -> list[Topic]:
        """Return up to `limit` random items (may be empty)."""
        raise NotImplementedError

    @abstractmethod
    async def query_similar(self, text: str, *, limit: int, threshold: float) -> KnowledgeResponse:
        """
        Return up to `limit` items whose similarity to `text` is at
        least `threshold`, best first.
        """
        raise NotImplementedError
