"""Public interface definitions for all external collaborators.

The ingestion pipeline reaches storage, records and embedding models only
through the abstract base classes defined here.  Concrete adapters live in
``docingest/providers/`` and are wired together in ``docingest/main.py``.

CONCRETE PROVIDER MAP:
    Interface            →  Concrete implementations (in docingest/providers/)
    ─────────────────────────────────────────────────────────────────────
    IEmbeddingProvider   →  OpenAIEmbeddingProvider, FastEmbedEmbeddingProvider
    IRecordStore         →  SQLiteRecordStore
    IBlobStore           →  LocalBlobStore
"""

from docingest.interfaces.blob_store import IBlobStore
from docingest.interfaces.embedding_provider import IEmbeddingProvider
from docingest.interfaces.record_store import IRecordStore

__all__ = [
    "IBlobStore",
    "IEmbeddingProvider",
    "IRecordStore",
]
