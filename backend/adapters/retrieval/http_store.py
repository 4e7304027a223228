"""HTTP client for the knowledge database service."""
from __future__ import annotations

from typing import Any

import httpx

from adapters.retrieval.base import KnowledgeResponse, RetrievalStore, Topic
from errors import RetrievalError
from invariants import KNOWLEDGE_DB_TIMEOUT_S
from observability.logger import log_event


class KnowledgeDBClient(RetrievalStore):
    """
    Retrieval store backed by the knowledge-db HTTP service.

    Endpoints:
        GET /knowledge?query=&limit=&threshold=
            -> {"query": str, "results": [...], "total": int}
        GET /topics/random?limit=
            -> {"topics": [...]}

    Transport errors, non-2xx statuses and malformed payloads are all
    raised as RetrievalError.
    """

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout_s: float = KNOWLEDGE_DB_TIMEOUT_S,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout_s)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # RetrievalStore
    # ------------------------------------------------------------------

    async def get_random_topics(self, limit: int) -> list[Topic]:
        data = await self._get_json("/topics/random", {"limit": limit})
        items = data.get("topics", [])
        if not isinstance(items, list):
            raise RetrievalError("random topics payload: 'topics' is not a list")
        return [_topic_from_json(item) for item in items]

    async def query_similar(self, text: str, *, limit: int, threshold: float) -> KnowledgeResponse:
        if not text or not text.strip():
            return KnowledgeResponse(query=text)

        data = await self._get_json(
            "/knowledge",
            {"query": text, "limit": limit, "threshold": threshold},
        )
        items = data.get("results", [])
        if not isinstance(items, list):
            raise RetrievalError("knowledge payload: 'results' is not a list")

        results = [_topic_from_json(item) for item in items]
        total = int(data.get("total", len(results)))

        log_event({
            "event_type": "knowledge_query",
            "total": total,
            "threshold": threshold,
        }, level="DEBUG")
        return KnowledgeResponse(query=str(data.get("query", text)), results=results, total=total)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _get_json(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise RetrievalError(
                f"knowledge db {path} failed: {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise RetrievalError(f"knowledge db {path} unreachable: {exc}") from exc
        except ValueError as exc:
            raise RetrievalError(f"knowledge db {path} returned invalid JSON") from exc

        if not isinstance(data, dict):
            raise RetrievalError(f"knowledge db {path} returned {type(data).__name__}, expected object")
        return data


def _topic_from_json(item: Any) -> Topic:
    if not isinstance(item, dict) or "content" not in item:
        raise RetrievalError(f"malformed knowledge item: {item!r}")

    similarity = item.get("similarity")
    return Topic(
        content=str(item["content"]),
        author=str(item.get("author", "")),
        similarity=float(similarity) if similarity is not None else None,
        id=str(item["id"]) if item.get("id") is not None else None,
        source=item.get("source"),
    )
