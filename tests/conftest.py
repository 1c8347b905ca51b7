"""Shared pytest fixtures for the docingest test suite."""

from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio
from tokenizers import Tokenizer
from tokenizers.models import WordLevel
from tokenizers.pre_tokenizers import Whitespace

from docingest.config.settings import Settings
from docingest.interfaces.embedding_provider import IEmbeddingProvider
from docingest.models.files import FileRecord, Profile
from docingest.providers.blob_store.local_blob_store import LocalBlobStore
from docingest.providers.record_store.sqlite_record_store import SQLiteRecordStore
from docingest.services.ingestion.batch_planner import BatchPlanner
from docingest.services.ingestion.chunker import TextChunker
from docingest.services.ingestion.tokenizer import TokenCounter

# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------


def build_word_tokenizer() -> Tokenizer:
    """Offline tokenizer: every word and every punctuation run is one token."""
    tokenizer = Tokenizer(WordLevel({"[UNK]": 0}, unk_token="[UNK]"))
    tokenizer.pre_tokenizer = Whitespace()
    return tokenizer


@pytest.fixture
def token_counter() -> TokenCounter:
    """TokenCounter backed by the offline word-level tokenizer."""
    return TokenCounter(tokenizer=build_word_tokenizer())


@pytest.fixture
def chunker(token_counter: TokenCounter) -> TextChunker:
    return TextChunker(token_counter, chunk_size=2000, overlap=200)


@pytest.fixture
def planner() -> BatchPlanner:
    return BatchPlanner()


# ---------------------------------------------------------------------------
# Fake embedding provider
# ---------------------------------------------------------------------------


class FakeEmbeddingProvider(IEmbeddingProvider):
    """Deterministic in-memory provider.

    Each vector is ``[len(text), index]``.  Texts listed in *fail_texts*
    come back as ``None``; *error* is raised from every embed call when set.
    """

    def __init__(
        self,
        slot: str = "local",
        fail_texts: set[str] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self._slot = slot
        self._fail_texts = fail_texts or set()
        self._error = error
        self._delay = delay
        self.calls: list[list[str]] = []

    @property
    def slot(self) -> str:
        return self._slot

    async def embed(self, texts: list[str]) -> list[list[float] | None]:
        import asyncio

        self.calls.append(list(texts))
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return [
            None if text in self._fail_texts else [float(len(text)), float(index)]
            for index, text in enumerate(texts)
        ]

    async def embed_single(self, text: str) -> list[float] | None:
        return (await self.embed([text]))[0]

    def get_dimension(self) -> int:
        return 2

    def get_provider_name(self) -> str:
        return f"fake_{self._slot}"

    def is_available(self) -> bool:
        return True


@pytest.fixture
def fake_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


# ---------------------------------------------------------------------------
# Settings & storage
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings isolated from the environment and pointing at tmp storage."""
    return Settings(
        _env_file=None,
        openai_api_key="",
        record_store_path=str(tmp_path / "docingest.db"),
        blob_store_dir=str(tmp_path / "blobs"),
        signed_url_secret="test-secret",
        app_env="development",
    )


@pytest_asyncio.fixture
async def record_store(test_settings: Settings) -> SQLiteRecordStore:
    store = SQLiteRecordStore(db_path=test_settings.record_store_path)
    await store.initialize()
    return store


@pytest.fixture
def blob_store(test_settings: Settings) -> LocalBlobStore:
    return LocalBlobStore(
        root_dir=test_settings.blob_store_dir,
        signing_secret=test_settings.signed_url_secret,
        base_url="/api/blobs",
    )


@pytest_asyncio.fixture
async def alice(record_store: SQLiteRecordStore) -> Profile:
    """A stored caller profile with an API token and no OpenAI key."""
    return await record_store.create_profile(Profile(user_id="alice", api_token="alice-token"))


async def store_file(
    record_store: SQLiteRecordStore,
    blob_store: LocalBlobStore,
    name: str,
    data: bytes,
    user_id: str = "alice",
    file_id: str = "file-1",
) -> FileRecord:
    """Create a file record and its blob, as the upload flow would."""
    path = f"{user_id}/{file_id}"
    await blob_store.upload(path, data)
    return await record_store.create_file(
        FileRecord(id=file_id, user_id=user_id, name=name, size=len(data), file_path=path)
    )
