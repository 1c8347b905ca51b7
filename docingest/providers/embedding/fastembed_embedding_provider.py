"""Local embedding provider ("local" slot) backed by fastembed / ONNX Runtime.

A provider instance is built per processing request, so loaded models live
in a process-wide cache keyed by model name and cache directory; only the
first local job in a process pays for the download and ONNX session setup.

Each text is embedded in its own model call, off the event loop.  A text
that fails yields ``None`` in its slot and the job carries on; only a model
that cannot be loaded fails the whole call.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any

import structlog

from docingest.interfaces.embedding_provider import IEmbeddingProvider
from docingest.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_LOCAL_MODEL = "sentence-transformers/all-MiniLM-L6-v2"

_MODEL_DIMENSIONS: dict[str, int] = {
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "BAAI/bge-small-en-v1.5": 384,
    "BAAI/bge-base-en-v1.5": 768,
}

_MODEL_CACHE: dict[tuple[str, str], Any] = {}
_MODEL_CACHE_LOCK = threading.Lock()


class FastEmbedEmbeddingProvider(IEmbeddingProvider):
    """Per-text local embeddings; failures degrade to ``None``."""

    def __init__(
        self,
        model_name: str | None = None,
        cache_dir: str = "",
        model: Any | None = None,
    ) -> None:
        self._model_name = model_name or DEFAULT_LOCAL_MODEL
        self._cache_dir = cache_dir
        self._model = model

    def _load_model(self) -> Any:
        if self._model is not None:
            return self._model

        key = (self._model_name, self._cache_dir)
        with _MODEL_CACHE_LOCK:
            model = _MODEL_CACHE.get(key)
            if model is None:
                try:
                    from fastembed import TextEmbedding

                    kwargs: dict[str, Any] = {"model_name": self._model_name}
                    if self._cache_dir:
                        kwargs["cache_dir"] = self._cache_dir
                    logger.info("loading_local_model", model=self._model_name)
                    model = TextEmbedding(**kwargs)
                except Exception as exc:
                    raise EmbeddingError(
                        message=f"Failed to load local model '{self._model_name}': {exc}",
                        provider_name=self.get_provider_name(),
                    ) from exc
                _MODEL_CACHE[key] = model
        self._model = model
        return model

    def _embed_one(self, model: Any, text: str) -> list[float]:
        # fastembed yields numpy arrays, one per input
        return next(iter(model.embed([text]))).tolist()

    @property
    def slot(self) -> str:
        return "local"

    async def embed(self, texts: list[str]) -> list[list[float] | None]:
        if not texts:
            return []

        model = await asyncio.to_thread(self._load_model)

        results: list[list[float] | None] = []
        failures = 0
        for index, text in enumerate(texts):
            try:
                results.append(await asyncio.to_thread(self._embed_one, model, text))
            except Exception as exc:  # noqa: BLE001
                failures += 1
                logger.warning(
                    "local_embedding_failed",
                    model=self._model_name,
                    index=index,
                    error=str(exc),
                )
                results.append(None)

        if failures:
            logger.info("local_embedding_partial", embedded=len(texts) - failures, failed=failures)
        return results

    async def embed_single(self, text: str) -> list[float] | None:
        return (await self.embed([text]))[0]

    def get_dimension(self) -> int:
        return _MODEL_DIMENSIONS.get(self._model_name, 384)

    def get_provider_name(self) -> str:
        return f"fastembed_{self._model_name.split('/')[-1]}"

    def is_available(self) -> bool:
        """The local slot needs no credentials, only the fastembed package."""
        try:
            import fastembed  # noqa: F401
        except ImportError:
            return False
        return True
