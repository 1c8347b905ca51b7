"""Token counting for chunk sizing and batch planning.

Counts are produced with the HuggingFace ``tokenizers`` library using a
cl100k-compatible vocabulary, the same rule OpenAI embedding models count
tokens with, so a chunk that measures ≤ N here is ≤ N for the provider.
"""

from __future__ import annotations

from typing import Any

import structlog

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_MODEL_ID = "Xenova/text-embedding-ada-002"


class TokenCounter:
    """Counts tokens in a string.

    Parameters
    ----------
    model_id:
        HuggingFace Hub id of the tokenizer to load.
    tokenizer:
        An already-built ``tokenizers.Tokenizer``.  When given, *model_id*
        is not loaded.
    """

    def __init__(
        self,
        model_id: str = _DEFAULT_MODEL_ID,
        tokenizer: Any | None = None,
    ) -> None:
        self._model_id = model_id
        self._tokenizer = tokenizer if tokenizer is not None else self._load_tokenizer(model_id)

    @property
    def is_exact(self) -> bool:
        """``False`` when counting fell back to the ``len // 4`` approximation."""
        return self._tokenizer is not None

    def count(self, text: str) -> int:
        """Return the number of tokens in *text*."""
        if not text:
            return 0
        if self._tokenizer is not None:
            return len(self._tokenizer.encode(text, add_special_tokens=False).ids)
        return len(text) // 4

    @staticmethod
    def _load_tokenizer(model_id: str):  # noqa: ANN205 – optional download
        """Attempt to load a fast tokenizer for token counting."""
        try:
            from tokenizers import Tokenizer  # type: ignore[import-untyped]

            return Tokenizer.from_pretrained(model_id)
        except Exception:  # noqa: BLE001
            logger.warning(
                "tokenizer_unavailable",
                model=model_id,
                msg="Falling back to approximate token counting (len // 4).",
            )
            return None
