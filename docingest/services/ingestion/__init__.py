"""Ingestion pipeline: extract → chunk → plan → embed → persist.

- **tokenizer** -- TokenCounter, the single token-counting rule.
- **extractors** -- per-format text extraction.
- **chunker** -- TextChunker, token-bounded overlapping chunks.
- **batch_planner** -- BatchPlanner, provider-quota sub-batches.
- **embedding_dispatcher** -- EmbeddingDispatcher, positional embedding.
- **job_controller** -- IngestionJobController, the file state machine.
"""

from docingest.services.ingestion.batch_planner import BatchPlanner
from docingest.services.ingestion.chunker import TextChunker
from docingest.services.ingestion.embedding_dispatcher import EmbeddingDispatcher
from docingest.services.ingestion.job_controller import IngestionJobController
from docingest.services.ingestion.tokenizer import TokenCounter

__all__ = [
    "BatchPlanner",
    "EmbeddingDispatcher",
    "IngestionJobController",
    "TextChunker",
    "TokenCounter",
]
