"""In-process retrieval store for offline runs and tests."""
from __future__ import annotations

import random
from difflib import SequenceMatcher
from typing import Iterable

from adapters.retrieval.base import KnowledgeResponse, RetrievalStore, Topic


class InMemoryRetrievalStore(RetrievalStore):
    """
    Topic list with character-level similarity scoring.

    Similarity is difflib's ratio over lower-cased text; good enough to
    exercise thresholds without an embedding model.
    """

    def __init__(self, topics: Iterable[Topic] = (), *, rng: random.Random | None = None) -> None:
        self._topics = list(topics)
        self._rng = rng or random.Random()

    def add(self, topic: Topic) -> None:
        self._topics.append(topic)

    async def get_random_topics(self, limit: int) -> list[Topic]:
        if limit <= 0 or not self._topics:
            return []
        return self._rng.sample(self._topics, min(limit, len(self._topics)))

    async def query_similar(self, text: str, *, limit: int, threshold: float) -> KnowledgeResponse:
        if not text.strip():
            return KnowledgeResponse(query=text)

        needle = text.lower()
        scored = [
            Topic(
                content=t.content,
                author=t.author,
                similarity=SequenceMatcher(None, needle, t.content.lower()).ratio(),
                id=t.id,
                source=t.source,
            )
            for t in self._topics
        ]
        matches = [t for t in scored if (t.similarity or 0.0) >= threshold]
        matches.sort(key=lambda t: t.similarity or 0.0, reverse=True)
        results = matches[:max(0, limit)]
        return KnowledgeResponse(query=text, results=results, total=len(results))
