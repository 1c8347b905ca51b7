"""Unit tests for embedding provider adapters - OpenAI/Azure, fastembed, factory."""

from __future__ import annotations

import sys
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from docingest.config.settings import Settings
from docingest.models.files import Profile
from docingest.providers.embedding import fastembed_embedding_provider
from docingest.providers.embedding import (
    FastEmbedEmbeddingProvider,
    OpenAIEmbeddingProvider,
    build_embedding_provider,
    validate_selector,
)
from docingest.utils.errors import (
    BadRequestError,
    EmbeddingError,
    ProviderAuthMissingError,
    TransientError,
)


def _settings(**overrides) -> Settings:
    defaults = {
        "_env_file": None,
        "openai_api_key": "sk-test",
        "openai_base_url": "",
        "openai_organization_id": "",
    }
    defaults.update(overrides)
    return Settings(**defaults)


def _embedding_response(vectors: list[list[float]]) -> SimpleNamespace:
    # Returned out of order to check the provider sorts by index.
    data = [SimpleNamespace(index=i, embedding=v) for i, v in enumerate(vectors)]
    return SimpleNamespace(data=list(reversed(data)), usage=SimpleNamespace(total_tokens=7))


def _mock_client(**create_kwargs) -> MagicMock:
    client = MagicMock()
    client.embeddings.create = AsyncMock(**create_kwargs)
    return client


_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/embeddings")


# ======================================================================
# OpenAI Embedding Provider
# ======================================================================


class TestOpenAIEmbeddingProvider:
    def test_identity(self) -> None:
        provider = OpenAIEmbeddingProvider(_settings(), client=_mock_client())

        assert provider.slot == "openai"
        assert provider.get_provider_name() == "openai_embedding"
        assert provider.get_dimension() == 1536

    def test_is_available_with_server_key(self) -> None:
        assert OpenAIEmbeddingProvider(_settings()).is_available() is True

    def test_is_available_without_key(self) -> None:
        assert OpenAIEmbeddingProvider(_settings(openai_api_key="")).is_available() is False

    def test_profile_key_is_used_when_present(self) -> None:
        profile = Profile(user_id="u1", openai_api_key="sk-user")
        provider = OpenAIEmbeddingProvider(_settings(openai_api_key=""), profile=profile)

        assert provider.is_available() is True
        assert provider._client.api_key == "sk-user"

    def test_azure_profile_builds_azure_client(self) -> None:
        profile = Profile(
            user_id="u1",
            use_azure_openai=True,
            azure_openai_api_key="azure-key",
            azure_openai_endpoint="https://example.openai.azure.com",
            azure_openai_embeddings_id="embeddings",
        )
        provider = OpenAIEmbeddingProvider(_settings(openai_api_key=""), profile=profile)

        assert isinstance(provider._client, openai.AsyncAzureOpenAI)
        assert provider.get_provider_name() == "azure_openai_embedding"
        assert provider.is_available() is True

    def test_azure_without_key_is_unavailable(self) -> None:
        profile = Profile(user_id="u1", use_azure_openai=True)
        provider = OpenAIEmbeddingProvider(_settings(), profile=profile, client=_mock_client())
        assert provider.is_available() is False

    @pytest.mark.asyncio
    async def test_embed_success(self) -> None:
        client = _mock_client(return_value=_embedding_response([[0.1, 0.2], [0.3, 0.4]]))
        provider = OpenAIEmbeddingProvider(_settings(), client=client)

        result = await provider.embed(["a", "b"])

        assert result == [[0.1, 0.2], [0.3, 0.4]]
        client.embeddings.create.assert_awaited_once_with(
            input=["a", "b"], model="text-embedding-3-small", encoding_format="float"
        )

    @pytest.mark.asyncio
    async def test_embed_empty_makes_no_request(self) -> None:
        client = _mock_client()
        provider = OpenAIEmbeddingProvider(_settings(), client=client)

        assert await provider.embed([]) == []
        client.embeddings.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_embed_single(self) -> None:
        client = _mock_client(return_value=_embedding_response([[1.0, 2.0]]))
        provider = OpenAIEmbeddingProvider(_settings(), client=client)

        assert await provider.embed_single("x") == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self) -> None:
        client = _mock_client(side_effect=openai.APIConnectionError(request=_REQUEST))
        provider = OpenAIEmbeddingProvider(_settings(), client=client)

        with pytest.raises(TransientError):
            await provider.embed(["a"])

    @pytest.mark.asyncio
    async def test_rejected_key_is_auth_error(self) -> None:
        error = openai.AuthenticationError(
            "bad key", response=httpx.Response(401, request=_REQUEST), body=None
        )
        provider = OpenAIEmbeddingProvider(_settings(), client=_mock_client(side_effect=error))

        with pytest.raises(ProviderAuthMissingError) as exc_info:
            await provider.embed(["a"])
        assert "local embeddings" in exc_info.value.public_message

    @pytest.mark.asyncio
    async def test_api_error_is_embedding_error(self) -> None:
        error = openai.InternalServerError(
            "boom", response=httpx.Response(500, request=_REQUEST), body=None
        )
        provider = OpenAIEmbeddingProvider(_settings(), client=_mock_client(side_effect=error))

        with pytest.raises(EmbeddingError):
            await provider.embed(["a"])


# ======================================================================
# FastEmbed Embedding Provider
# ======================================================================


def _vector(values: list[float]) -> SimpleNamespace:
    return SimpleNamespace(tolist=lambda: values)


class TestFastEmbedEmbeddingProvider:
    @pytest.fixture(autouse=True)
    def _fresh_model_cache(self):
        with patch.dict(fastembed_embedding_provider._MODEL_CACHE, clear=True):
            yield

    def test_identity(self) -> None:
        provider = FastEmbedEmbeddingProvider(model=MagicMock())

        assert provider.slot == "local"
        assert provider.get_dimension() == 384
        assert provider.get_provider_name() == "fastembed_all-MiniLM-L6-v2"

    @pytest.mark.asyncio
    async def test_embed_each_text(self) -> None:
        model = MagicMock()
        model.embed.side_effect = lambda texts: iter([_vector([float(len(texts[0]))])])
        provider = FastEmbedEmbeddingProvider(model=model)

        result = await provider.embed(["a", "bbb"])

        assert result == [[1.0], [3.0]]
        assert model.embed.call_count == 2

    @pytest.mark.asyncio
    async def test_failed_text_becomes_none(self) -> None:
        def _embed(texts: list[str]):
            if texts[0] == "bad":
                raise RuntimeError("onnx failure")
            return iter([_vector([0.5])])

        model = MagicMock()
        model.embed.side_effect = _embed
        provider = FastEmbedEmbeddingProvider(model=model)

        result = await provider.embed(["good", "bad", "fine"])

        assert result == [[0.5], None, [0.5]]

    @pytest.mark.asyncio
    async def test_model_load_failure_raises(self) -> None:
        fake_module = MagicMock()
        fake_module.TextEmbedding.side_effect = OSError("download failed")
        provider = FastEmbedEmbeddingProvider(model_name="BAAI/bge-small-en-v1.5")

        with patch.dict(sys.modules, {"fastembed": fake_module}):
            with pytest.raises(EmbeddingError):
                await provider.embed(["text"])

    @pytest.mark.asyncio
    async def test_model_is_loaded_lazily(self) -> None:
        fake_module = MagicMock()
        fake_module.TextEmbedding.return_value.embed.side_effect = lambda texts: iter(
            [_vector([0.1])]
        )
        provider = FastEmbedEmbeddingProvider()

        with patch.dict(sys.modules, {"fastembed": fake_module}):
            fake_module.TextEmbedding.assert_not_called()
            assert await provider.embed_single("hello") == [0.1]

        fake_module.TextEmbedding.assert_called_once_with(
            model_name="sentence-transformers/all-MiniLM-L6-v2"
        )

    @pytest.mark.asyncio
    async def test_loaded_model_is_shared_across_providers(self) -> None:
        fake_module = MagicMock()
        fake_module.TextEmbedding.return_value.embed.side_effect = lambda texts: iter(
            [_vector([0.2])]
        )

        with patch.dict(sys.modules, {"fastembed": fake_module}):
            await FastEmbedEmbeddingProvider(cache_dir="/models").embed(["a"])
            await FastEmbedEmbeddingProvider(cache_dir="/models").embed(["b"])

        fake_module.TextEmbedding.assert_called_once_with(
            model_name="sentence-transformers/all-MiniLM-L6-v2", cache_dir="/models"
        )


# ======================================================================
# Selector validation & factory
# ======================================================================


class TestProviderFactory:
    @pytest.mark.parametrize("selector", ["", None])
    def test_missing_selector(self, selector: str | None) -> None:
        with pytest.raises(BadRequestError, match="Missing embeddingsProvider"):
            validate_selector(selector)

    def test_invalid_selector(self) -> None:
        with pytest.raises(BadRequestError):
            validate_selector("cohere")

    def test_local_selector(self) -> None:
        provider = build_embedding_provider("local", None, _settings())
        assert isinstance(provider, FastEmbedEmbeddingProvider)

    def test_openai_selector_with_server_key(self) -> None:
        provider = build_embedding_provider("openai", None, _settings())
        assert isinstance(provider, OpenAIEmbeddingProvider)

    def test_openai_selector_without_any_key(self) -> None:
        with pytest.raises(ProviderAuthMissingError) as exc_info:
            build_embedding_provider("openai", Profile(user_id="u1"), _settings(openai_api_key=""))

        assert exc_info.value.status_code == 400
        assert "OpenAI API key not found" in exc_info.value.public_message

    def test_azure_selector_without_key(self) -> None:
        profile = Profile(user_id="u1", use_azure_openai=True)
        with pytest.raises(ProviderAuthMissingError, match="Azure OpenAI API key not found"):
            build_embedding_provider("openai", profile, _settings())
