"""OpenAI embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Supports plain OpenAI (API key + optional organization) and Azure OpenAI
deployments (endpoint + deployment id + key).  Credentials come from the
caller's profile, with the server-wide key from settings as fallback.

Every :meth:`embed` call is exactly one API request; callers size the batch.
Failures are never retried here: they are mapped onto the docingest error
hierarchy and propagate, failing the whole request.
"""

from __future__ import annotations

from typing import Any

import openai
import structlog

from docingest.config.settings import Settings
from docingest.interfaces.embedding_provider import IEmbeddingProvider
from docingest.models.files import Profile
from docingest.utils.errors import (
    EmbeddingError,
    ProviderAuthMissingError,
    TransientError,
)

logger = structlog.get_logger(logger_name=__name__)

# Known embedding model dimensions.
_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by the OpenAI (or Azure OpenAI) embeddings API.

    Uses ``text-embedding-3-small`` (1536 dims) by default.  An explicit
    *client* may be injected, which is how the unit tests avoid network
    access.
    """

    def __init__(
        self,
        settings: Settings,
        profile: Profile | None = None,
        client: Any | None = None,
    ) -> None:
        self._settings = settings
        self._model = settings.openai_embedding_model or "text-embedding-3-small"
        self._dimension = _MODEL_DIMENSIONS.get(self._model, 1536)
        self._use_azure = bool(profile and profile.use_azure_openai)

        if self._use_azure:
            assert profile is not None
            self._api_key = profile.azure_openai_api_key or ""
            self._provider_label = "azure_openai_embedding"
        else:
            self._api_key = (profile.openai_api_key if profile else None) or settings.openai_api_key
            self._provider_label = "openai_embedding"

        # Keyless providers report unavailable and get no client.
        if client is None and self._api_key:
            client = self._build_client(profile)
        self._client = client

    def _build_client(self, profile: Profile | None) -> Any:
        if self._use_azure:
            assert profile is not None
            return openai.AsyncAzureOpenAI(
                api_key=self._api_key,
                azure_endpoint=profile.azure_openai_endpoint or "",
                azure_deployment=profile.azure_openai_embeddings_id or None,
                api_version=self._settings.azure_openai_api_version,
            )

        # Build client kwargs; add organization/base_url only when configured.
        client_kwargs: dict = {"api_key": self._api_key}
        organization = (
            profile.openai_organization_id if profile else None
        ) or self._settings.openai_organization_id
        if organization:
            client_kwargs["organization"] = organization
        if self._settings.openai_base_url:
            client_kwargs["base_url"] = self._settings.openai_base_url
        return openai.AsyncOpenAI(**client_kwargs)

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    @property
    def slot(self) -> str:
        return "openai"

    async def embed(self, texts: list[str]) -> list[list[float] | None]:
        """Generate embedding vectors for *texts* in a single API request."""
        if not texts:
            return []
        if self._client is None:
            raise ProviderAuthMissingError(
                message="OpenAI API key not found",
                provider_name=self.get_provider_name(),
            )

        try:
            response = await self._client.embeddings.create(
                input=texts,
                model=self._model,
                encoding_format="float",
            )
        except openai.APIConnectionError as exc:
            # Includes APITimeoutError.
            raise TransientError(
                message=f"Network connection failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.AuthenticationError as exc:
            raise ProviderAuthMissingError(
                message=(
                    "OpenAI API key was rejected. Please make sure it is "
                    "configured correctly or else use local embeddings."
                ),
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"Embedding generation failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        data = sorted(response.data, key=lambda item: item.index)
        logger.info(
            "openai_embedding_batch",
            model=self._model,
            provider=self._provider_label,
            batch_size=len(texts),
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return [list(item.embedding) for item in data]

    async def embed_single(self, text: str) -> list[float] | None:
        """Generate an embedding vector for a single text string."""
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if the credentials for the selected endpoint are present."""
        return bool(self._api_key)
