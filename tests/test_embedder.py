import json

import httpx
import pytest
from pydantic import SecretStr

from convo_rag.config import settings
from convo_rag.core.errors import ConfigurationError, ProviderError
from convo_rag.embeddings.embedder import Embedder


def make_embedder(handler, **kwargs) -> Embedder:
    return Embedder(
        api_key="sk-test",
        model="text-embedding-3-small",
        base_url="https://embeddings.test/v1/embeddings",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_embed_text_posts_single_input():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        body = json.loads(request.content)
        assert body["input"] == ["hello"]
        assert body["model"] == "text-embedding-3-small"
        return httpx.Response(200, json={"data": [{"index": 0, "embedding": [0.1, 0.2, 0.3]}]})

    vector = await make_embedder(handler).embed_text("hello")

    assert vector == [0.1, 0.2, 0.3]
    assert len(seen) == 1
    assert seen[0].headers["Authorization"] == "Bearer sk-test"


@pytest.mark.asyncio
async def test_embed_batches_and_orders_by_index():
    def handler(request: httpx.Request) -> httpx.Response:
        inputs = json.loads(request.content)["input"]
        data = [
            {"index": i, "embedding": [float(len(text))]}
            for i, text in enumerate(inputs)
        ]
        return httpx.Response(200, json={"data": list(reversed(data))})

    vectors = await make_embedder(handler).embed(["a", "bb", "ccc"], batch_size=2)

    assert vectors == [[1.0], [2.0], [3.0]]


@pytest.mark.asyncio
async def test_describe_reports_dimension_and_model():
    def handler(request):
        return httpx.Response(200, json={"data": [{"index": 0, "embedding": [0.0] * 4}]})

    info = await make_embedder(handler).describe("hi")

    assert info.dimension == 4
    assert info.model == "text-embedding-3-small"


@pytest.mark.asyncio
async def test_missing_key_raises_before_any_request(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", None)

    def handler(request):
        raise AssertionError("no request expected")

    embedder = Embedder(transport=httpx.MockTransport(handler))

    assert not embedder.is_configured
    with pytest.raises(ConfigurationError):
        await embedder.embed_text("hello")


def test_placeholder_key_counts_as_missing(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", SecretStr("your_openai_api_key_here"))

    assert settings.resolved_api_key() is None
    assert not Embedder().is_configured


@pytest.mark.asyncio
async def test_http_error_is_provider_error():
    def handler(request):
        return httpx.Response(500, json={"error": "boom"})

    with pytest.raises(ProviderError):
        await make_embedder(handler).embed_text("hello")


@pytest.mark.asyncio
async def test_network_error_is_provider_error():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(ProviderError):
        await make_embedder(handler).embed_text("hello")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"nope": []},
        {"data": "x"},
        {"data": [{"index": 0}]},
        {"data": [{"index": 0, "embedding": []}]},
        {"data": []},
    ],
)
async def test_malformed_response_is_provider_error(payload):
    def handler(request):
        return httpx.Response(200, json=payload)

    with pytest.raises(ProviderError):
        await make_embedder(handler).embed_text("hello")


@pytest.mark.asyncio
async def test_empty_input_makes_no_request():
    def handler(request):
        raise AssertionError("no request expected")

    assert await make_embedder(handler).embed([]) == []
