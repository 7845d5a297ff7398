from __future__ import annotations

import json
import math

import httpx
import pytest

from memory_engine.memory.embedder import DeterministicEmbedder, EmbeddingError, OpenAIEmbedder


def _norm(vector: list[float]) -> float:
    return math.sqrt(sum(value * value for value in vector))


@pytest.mark.anyio
async def test_deterministic_embedder_is_stable_and_normalized():
    embedder = DeterministicEmbedder(dimension=32)

    first = await embedder.embed("Database migration plan")
    second = await embedder.embed("database   migration, plan!")

    assert first == second
    assert len(first) == 32
    assert _norm(first) == pytest.approx(1.0)


@pytest.mark.anyio
async def test_deterministic_embedder_blank_text_is_zero_vector():
    embedder = DeterministicEmbedder(dimension=8)

    assert await embedder.embed("   ") == [0.0] * 8
    assert embedder.zero_vector() == [0.0] * 8


def test_embedders_reject_bad_configuration():
    with pytest.raises(EmbeddingError):
        DeterministicEmbedder(dimension=0)
    with pytest.raises(EmbeddingError):
        OpenAIEmbedder(base_url="http://x", api_key=" ", model_name="m", dimension=3)


@pytest.mark.anyio
async def test_openai_embedder_orders_rows_by_index():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "data": [
                    {"index": 1, "embedding": [0.0, 2.0, 0.0]},
                    {"index": 0, "embedding": [3.0, 0.0, 0.0]},
                ]
            },
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        embedder = OpenAIEmbedder(
            base_url="https://api.example.com/",
            api_key="sk-test-key-123",
            model_name="text-embedding-3-small",
            dimension=3,
            http_client=client,
        )
        vectors = await embedder.embed_texts(["first", "second"])

    assert seen["url"] == "https://api.example.com/v1/embeddings"
    assert seen["auth"] == "Bearer sk-test-key-123"
    assert seen["body"] == {"model": "text-embedding-3-small", "input": ["first", "second"]}
    assert vectors == [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]


@pytest.mark.anyio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "boom"}),
        httpx.Response(200, content=b"not json"),
        httpx.Response(200, json={"data": []}),
        httpx.Response(200, json={"data": [{"index": 0, "embedding": [1.0, 2.0]}]}),
        httpx.Response(200, json={"data": [{"index": 0, "embedding": ["a", "b", "c"]}]}),
    ],
)
async def test_openai_embedder_raises_embedding_error(response):
    def handler(request: httpx.Request) -> httpx.Response:
        return response

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        embedder = OpenAIEmbedder(
            base_url="https://api.example.com",
            api_key="sk-test-key-123",
            model_name="m",
            dimension=3,
            http_client=client,
        )
        with pytest.raises(EmbeddingError):
            await embedder.embed("hello")


@pytest.mark.anyio
async def test_deterministic_embedder_rewards_shared_phrases():
    embedder = DeterministicEmbedder(dimension=256)

    query = await embedder.embed("hot reload is broken")
    phrase = await embedder.embed("fixed the hot reload watcher")
    unrelated = await embedder.embed("quarterly budget review")

    def dot(left: list[float], right: list[float]) -> float:
        return sum(a * b for a, b in zip(left, right))

    assert dot(query, phrase) > dot(query, unrelated)


@pytest.mark.anyio
async def test_openai_embedder_sends_inputs_in_batches():
    batches: list[list[str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        inputs = json.loads(request.content)["input"]
        batches.append(inputs)
        return httpx.Response(
            200,
            json={
                "data": [
                    {"index": i, "embedding": [float(len(text)), 0.0]}
                    for i, text in enumerate(inputs)
                ]
            },
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        embedder = OpenAIEmbedder(
            base_url="https://api.example.com",
            api_key="sk-test-key-123",
            model_name="m",
            dimension=2,
            batch_size=2,
            http_client=client,
        )
        vectors = await embedder.embed_texts(["a", "bb", "ccc"])
        empty = await embedder.embed_texts([])

    assert batches == [["a", "bb"], ["ccc"]]
    assert vectors == [[1.0, 0.0], [1.0, 0.0], [1.0, 0.0]]
    assert empty == []
