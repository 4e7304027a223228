# pylint: disable=missing-module-docstring,missing-function-docstring

import httpx
import pytest

from adapters.retrieval.base import Topic
from adapters.retrieval.http_store import KnowledgeDBClient
from adapters.retrieval.memory_store import InMemoryRetrievalStore
from errors import RetrievalError


BASE_URL = "http://knowledge.test"


def _client(handler) -> KnowledgeDBClient:
    http = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return KnowledgeDBClient(BASE_URL, client=http)


@pytest.mark.asyncio
async def test_query_similar_sends_params_and_parses_results() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={
            "query": "tea",
            "results": [{
                "id": 7,
                "source": "twitter",
                "author": "airi",
                "content": "I like tea",
                "url": None,
                "posted_at": "2024-01-01",
                "similarity": 0.82,
            }],
            "total": 1,
        })

    client = _client(handler)
    response = await client.query_similar("tea", limit=3, threshold=0.6)

    assert seen[0].url.path == "/knowledge"
    assert dict(seen[0].url.params) == {"query": "tea", "limit": "3", "threshold": "0.6"}
    assert response.total == 1
    assert response.results == [
        Topic(content="I like tea", author="airi", similarity=0.82, id="7", source="twitter"),
    ]


@pytest.mark.asyncio
async def test_blank_query_does_not_hit_the_network() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    response = await _client(handler).query_similar("  ", limit=3, threshold=0.3)

    assert response.results == []
    assert response.total == 0


@pytest.mark.asyncio
async def test_random_topics() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/topics/random"
        assert request.url.params["limit"] == "5"
        return httpx.Response(200, json={"topics": [
            {"content": "cats", "author": "a"},
            {"content": "tea", "author": "b"},
        ]})

    topics = await _client(handler).get_random_topics(5)

    assert [t.content for t in topics] == ["cats", "tea"]
    assert all(t.similarity is None for t in topics)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "Failed to query knowledge base"}),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json=["not", "an", "object"]),
        httpx.Response(200, json={"results": "nope"}),
        httpx.Response(200, json={"results": [{"no_content": True}]}),
    ],
)
async def test_bad_responses_raise_retrieval_error(response: httpx.Response) -> None:
    client = _client(lambda _request: response)

    with pytest.raises(RetrievalError):
        await client.query_similar("tea", limit=3, threshold=0.3)


@pytest.mark.asyncio
async def test_transport_errors_raise_retrieval_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(RetrievalError, match="unreachable"):
        await _client(handler).get_random_topics(5)


@pytest.mark.asyncio
async def test_in_memory_store_threshold_and_ordering() -> None:
    store = InMemoryRetrievalStore([
        Topic(content="I love green tea"),
        Topic(content="I love green tea a lot"),
        Topic(content="quantum chromodynamics"),
    ])

    response = await store.query_similar("I love green tea", limit=5, threshold=0.6)

    assert [t.content for t in response.results] == ["I love green tea", "I love green tea a lot"]
    assert response.results[0].similarity == 1.0
    assert len(await store.get_random_topics(2)) == 2
    assert await store.get_random_topics(0) == []
