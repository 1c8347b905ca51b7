"""Unit tests for TokenCounter."""

from __future__ import annotations

import sys
from unittest.mock import MagicMock, patch

from docingest.services.ingestion.tokenizer import TokenCounter
from tests.conftest import build_word_tokenizer


class TestTokenCounter:
    def test_counts_with_injected_tokenizer(self) -> None:
        counter = TokenCounter(tokenizer=build_word_tokenizer())

        assert counter.is_exact is True
        assert counter.count("one two three") == 3
        assert counter.count("Hello, world!") == 4

    def test_empty_text_is_zero(self, token_counter: TokenCounter) -> None:
        assert token_counter.count("") == 0

    def test_special_tokens_are_not_counted(self) -> None:
        tokenizer = MagicMock()
        tokenizer.encode.return_value.ids = [1, 2]

        counter = TokenCounter(tokenizer=tokenizer)

        assert counter.count("anything") == 2
        tokenizer.encode.assert_called_once_with("anything", add_special_tokens=False)

    def test_falls_back_to_length_estimate_when_load_fails(self) -> None:
        fake_module = MagicMock()
        fake_module.Tokenizer.from_pretrained.side_effect = OSError("offline")

        with patch.dict(sys.modules, {"tokenizers": fake_module}):
            counter = TokenCounter(model_id="missing/tokenizer")

        assert counter.is_exact is False
        assert counter.count("abcdefgh") == 2
        assert counter.count("abc") == 0
