"""docingest - document ingestion and embedding service.

Uploaded files are extracted, split into token-bounded chunks, embedded
with OpenAI or a local model under provider quotas, and persisted batch by
batch while the file's processing status is tracked.
"""

__version__ = "0.1.0"
