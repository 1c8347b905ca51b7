"""Abstract base class for text-embedding service providers.

Defines the contract for generating embedding vectors from text.
Implementations wrap OpenAI ``text-embedding-3-small`` (hosted or Azure)
or a local fastembed ONNX model.  Providers are interchangeable behind
this interface; the job controller only sees ``embed`` and ``slot``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider     - text-embedding-3-small, OpenAI or Azure (slot "openai")
#   FastEmbedEmbeddingProvider  - all-MiniLM-L6-v2 via ONNX Runtime (slot "local")
# Located in: docingest/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the ingestion pipeline.

    Failure semantics differ by provider and are part of the contract:
    hosted providers raise on any failure (the whole request fails),
    local providers return ``None`` in place of a vector they could not
    produce and carry on with the rest.
    """

    @property
    @abstractmethod
    def slot(self) -> str:
        """Chunk column the vectors are stored in: ``"openai"`` or ``"local"``."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float] | None]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            Text strings to embed.  Callers are responsible for keeping the
            batch within the provider's per-request limits (see
            :class:`~docingest.services.ingestion.batch_planner.BatchPlanner`).

        Returns
        -------
        list[list[float] | None]
            One entry per input text, same order.  ``None`` marks a text
            the provider could not embed (local providers only).

        Raises
        ------
        docingest.utils.errors.DocIngestError
            If the request as a whole fails.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float] | None:
        """Generate an embedding vector for a single text string."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Example values: ``1536`` (OpenAI ``text-embedding-3-small``),
        ``384`` (``all-MiniLM-L6-v2``).
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this embedding provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured and usable.

        Implementations verify that credentials (if any) are present
        without generating an actual embedding.
        """
