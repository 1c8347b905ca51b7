"""Groups chunks into embedding requests that respect provider quotas.

Hosted embedding APIs cap both the tokens of a single input and the total
tokens (and number of inputs) of one request.  The planner makes a single
left-to-right greedy pass:

    - a chunk above ``max_item_tokens`` can never be embedded and is skipped
      (its position is recorded so callers keep alignment);
    - otherwise it joins the open sub-batch while the running total stays
      within ``max_batch_tokens`` and ``max_batch_items``;
    - when it doesn't fit, the open sub-batch is emitted and a new one starts.

A chunk between ``max_batch_tokens`` and ``max_item_tokens`` travels alone
in a singleton sub-batch.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence

import structlog

from docingest.models.ingestion import BatchPlan, SubBatch, TextChunk

logger = structlog.get_logger(logger_name=__name__)

MAX_TOKENS_PER_REQUEST = 300_000
MAX_BATCH_TOKENS = 250_000  # 83% of the per-request limit
MAX_BATCH_ITEMS = 2048


class BatchPlanner:
    """Partitions chunk positions into provider-sized sub-batches."""

    def __init__(
        self,
        max_item_tokens: int = MAX_TOKENS_PER_REQUEST,
        max_batch_tokens: int = MAX_BATCH_TOKENS,
        max_batch_items: int = MAX_BATCH_ITEMS,
    ) -> None:
        if max_item_tokens <= 0 or max_batch_tokens <= 0 or max_batch_items <= 0:
            msg = "Batch limits must be positive"
            raise ValueError(msg)
        self._max_item_tokens = max_item_tokens
        self._max_batch_tokens = max_batch_tokens
        self._max_batch_items = max_batch_items

    def iter_sub_batches(
        self,
        chunks: Sequence[TextChunk],
        skipped: list[int] | None = None,
    ) -> Iterator[SubBatch]:
        """Yield sub-batches in order; oversized positions are appended to *skipped*."""
        positions: list[int] = []
        batch_tokens = 0

        for position, chunk in enumerate(chunks):
            tokens = chunk.token_count
            if tokens > self._max_item_tokens:
                logger.warning(
                    "chunk_exceeds_token_limit",
                    position=position,
                    tokens=tokens,
                    limit=self._max_item_tokens,
                )
                if skipped is not None:
                    skipped.append(position)
                continue

            if positions and (
                batch_tokens + tokens > self._max_batch_tokens
                or len(positions) >= self._max_batch_items
            ):
                yield SubBatch(positions=positions, token_count=batch_tokens)
                positions = []
                batch_tokens = 0

            positions.append(position)
            batch_tokens += tokens

        if positions:
            yield SubBatch(positions=positions, token_count=batch_tokens)

    def plan(self, chunks: Sequence[TextChunk]) -> BatchPlan:
        """Return the complete plan for *chunks*."""
        skipped: list[int] = []
        sub_batches = list(self.iter_sub_batches(chunks, skipped))
        if skipped:
            logger.warning(
                "chunks_skipped",
                skipped=len(skipped),
                planned=len(chunks) - len(skipped),
                total=len(chunks),
            )
        return BatchPlan(sub_batches=sub_batches, skipped=skipped)
