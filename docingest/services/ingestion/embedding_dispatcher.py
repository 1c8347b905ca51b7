"""Sends planned sub-batches to an embedding provider.

One provider request per sub-batch, in plan order.  Vectors are assigned
back to the positions they were requested for, so the result always has
exactly one entry per input chunk, with ``None`` where a chunk was skipped
by the planner or its embedding failed.

Provider errors are not caught here: a hosted provider that raises fails
the whole dispatch.
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from docingest.interfaces.embedding_provider import IEmbeddingProvider
from docingest.models.ingestion import DispatchResult, TextChunk
from docingest.services.ingestion.batch_planner import BatchPlanner
from docingest.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)


class EmbeddingDispatcher:
    """Embeds chunks through *provider* following the planner's sub-batches."""

    def __init__(self, provider: IEmbeddingProvider, planner: BatchPlanner) -> None:
        self._provider = provider
        self._planner = planner

    @property
    def provider(self) -> IEmbeddingProvider:
        return self._provider

    async def dispatch(self, chunks: Sequence[TextChunk]) -> DispatchResult:
        plan = self._planner.plan(chunks)
        embeddings: list[list[float] | None] = [None] * len(chunks)

        for index, sub_batch in enumerate(plan.sub_batches, start=1):
            texts = [chunks[p].content for p in sub_batch.positions]
            logger.info(
                "embedding_sub_batch",
                provider=self._provider.get_provider_name(),
                sub_batch=index,
                of=len(plan.sub_batches),
                chunks=sub_batch.size,
                tokens=sub_batch.token_count,
            )
            vectors = await self._provider.embed(texts)
            if len(vectors) != len(texts):
                raise EmbeddingError(
                    message=(
                        f"Provider returned {len(vectors)} embeddings "
                        f"for {len(texts)} inputs"
                    ),
                    provider_name=self._provider.get_provider_name(),
                )
            for position, vector in zip(sub_batch.positions, vectors):
                embeddings[position] = vector

        result = DispatchResult(
            embeddings=embeddings,
            sub_batches=len(plan.sub_batches),
            skipped=plan.skipped,
        )
        failed = len(chunks) - len(plan.skipped) - result.embedded_count
        if failed:
            logger.warning(
                "embeddings_missing",
                provider=self._provider.get_provider_name(),
                failed=failed,
                total=len(chunks),
            )
        return result
