"""Embedding provider adapters and the per-request provider factory."""

from __future__ import annotations

from docingest.config.settings import Settings
from docingest.interfaces.embedding_provider import IEmbeddingProvider
from docingest.models.files import Profile
from docingest.providers.embedding.fastembed_embedding_provider import (
    FastEmbedEmbeddingProvider,
)
from docingest.providers.embedding.openai_embedding_provider import (
    OpenAIEmbeddingProvider,
)
from docingest.utils.errors import BadRequestError, ProviderAuthMissingError

EMBEDDING_SELECTORS: frozenset[str] = frozenset({"openai", "local"})


def validate_selector(selector: str | None) -> str:
    """Return *selector* if it names a known provider, else raise BadRequestError."""
    if not selector:
        raise BadRequestError("Missing embeddingsProvider")
    if selector not in EMBEDDING_SELECTORS:
        raise BadRequestError(
            f"Invalid embeddingsProvider '{selector}'. Expected 'openai' or 'local'."
        )
    return selector


def build_embedding_provider(
    selector: str,
    profile: Profile | None,
    settings: Settings,
) -> IEmbeddingProvider:
    """Build the embedding provider named by *selector* for one request.

    ``"openai"`` uses the caller's OpenAI or Azure credentials, falling back
    to the server key; ``"local"`` uses the fastembed model from settings.
    """
    validate_selector(selector)

    if selector == "local":
        return FastEmbedEmbeddingProvider(
            model_name=settings.local_embedding_model,
            cache_dir=settings.local_embedding_cache_dir,
        )

    provider = OpenAIEmbeddingProvider(settings=settings, profile=profile)
    if not provider.is_available():
        label = "Azure OpenAI" if profile and profile.use_azure_openai else "OpenAI"
        raise ProviderAuthMissingError(
            f"{label} API key not found. Please make sure it is configured "
            "or else use local embeddings.",
            provider_name=provider.get_provider_name(),
        )
    return provider


__all__ = [
    "EMBEDDING_SELECTORS",
    "FastEmbedEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "build_embedding_provider",
    "validate_selector",
]
