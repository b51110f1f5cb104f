"""Unit tests for OpenAIEmbeddingProvider."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import openai
import pytest

from knowledge_base.config.settings import Settings
from knowledge_base.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from knowledge_base.utils.errors import EmbeddingProviderError


def _settings(**overrides) -> Settings:
    defaults = {
        "_env_file": None,
        "openai_api_key": "sk-test",
        "openai_base_url": "",
        "openai_embedding_model": "text-embedding-3-small",
        "embedding_batch_size": 100,
    }
    defaults.update(overrides)
    return Settings(**defaults)


def _response(vectors: list[list[float]], reverse: bool = False) -> MagicMock:
    items = [MagicMock(embedding=v, index=i) for i, v in enumerate(vectors)]
    if reverse:
        items.reverse()
    response = MagicMock()
    response.data = items
    response.usage = MagicMock(total_tokens=10 * len(vectors))
    return response


def _client(side_effect) -> MagicMock:  # noqa: ANN001
    client = MagicMock()
    client.embeddings.create = AsyncMock(side_effect=side_effect)
    return client


class TestOpenAIEmbeddingProvider:
    def test_metadata(self) -> None:
        provider = OpenAIEmbeddingProvider(_settings(), client=MagicMock())
        assert provider.get_dimension() == 1536
        assert provider.get_provider_name() == "openai_embedding"
        assert provider.is_available() is True

    def test_compatible_endpoint_label(self) -> None:
        provider = OpenAIEmbeddingProvider(
            _settings(openai_base_url="https://example.test/v1"), client=MagicMock()
        )
        assert provider.get_provider_name() == "openai-compatible_embedding"

    def test_unavailable_without_key(self) -> None:
        provider = OpenAIEmbeddingProvider(_settings(openai_api_key=""), client=MagicMock())
        assert provider.is_available() is False

    @pytest.mark.asyncio
    async def test_empty_input_makes_no_request(self) -> None:
        client = _client(lambda **_: None)
        provider = OpenAIEmbeddingProvider(_settings(), client=client)

        assert await provider.embed([]) == []
        client.embeddings.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_batches_of_100(self) -> None:
        def respond(input: list[str], model: str) -> MagicMock:  # noqa: A002
            return _response([[float(len(t))] for t in input])

        client = _client(respond)
        provider = OpenAIEmbeddingProvider(_settings(), client=client)
        texts = [f"text {i}" for i in range(250)]

        result = await provider.embed(texts)

        assert len(result) == 250
        sizes = [len(call.kwargs["input"]) for call in client.embeddings.create.call_args_list]
        assert sizes == [100, 100, 50]

    @pytest.mark.asyncio
    async def test_order_follows_response_index(self) -> None:
        client = _client(lambda **_: _response([[1.0], [2.0], [3.0]], reverse=True))
        provider = OpenAIEmbeddingProvider(_settings(), client=client)

        result = await provider.embed(["a", "b", "c"])

        assert result == [[1.0], [2.0], [3.0]]

    @pytest.mark.asyncio
    async def test_inputs_are_trimmed(self) -> None:
        client = _client(lambda **_: _response([[0.5]]))
        provider = OpenAIEmbeddingProvider(_settings(), client=client)

        await provider.embed_single("  padded query \n")

        assert client.embeddings.create.call_args.kwargs["input"] == ["padded query"]

    @pytest.mark.asyncio
    async def test_count_mismatch_raises(self) -> None:
        client = _client(lambda **_: _response([[0.1]]))
        provider = OpenAIEmbeddingProvider(_settings(), client=client)

        with pytest.raises(EmbeddingProviderError, match="count mismatch"):
            await provider.embed(["a", "b"])

    @pytest.mark.asyncio
    async def test_api_error_wrapped(self) -> None:
        error = openai.APIError(message="Rate limit", request=MagicMock(), body=None)
        provider = OpenAIEmbeddingProvider(_settings(), client=_client(error))

        with pytest.raises(EmbeddingProviderError) as exc_info:
            await provider.embed(["test"])

        assert exc_info.value.provider_name == "openai_embedding"
        assert isinstance(exc_info.value.__cause__, openai.APIError)

    @pytest.mark.asyncio
    async def test_timeout_wrapped(self) -> None:
        async def slow(**_: object) -> MagicMock:
            await asyncio.sleep(1)
            return _response([[0.1]])

        client = MagicMock()
        client.embeddings.create = slow
        provider = OpenAIEmbeddingProvider(_settings(external_call_timeout=0.01), client=client)

        with pytest.raises(EmbeddingProviderError, match="timed out"):
            await provider.embed(["test"])
