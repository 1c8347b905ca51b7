"""Common base for format extractors.

An extractor turns the raw bytes of one file format into a lazy sequence
of text segments.  The chunker consumes segments one at a time, so large
multi-page inputs never have to be held as a single string.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator


def decode_text(data: bytes) -> str:
    """Decode *data* as UTF-8, tolerating a BOM and replacing bad bytes."""
    return data.decode("utf-8-sig", errors="replace")


class BaseExtractor(ABC):
    """Turns file bytes into text segments."""

    #: Lower-case extensions (without the dot) this extractor handles.
    extensions: tuple[str, ...] = ()

    @abstractmethod
    def extract(self, data: bytes) -> Iterator[str]:
        """Yield the raw text segments contained in *data*."""


class WholeTextExtractor(BaseExtractor):
    """Yields the decoded file as a single segment."""

    def extract(self, data: bytes) -> Iterator[str]:
        text = decode_text(data)
        if text.strip():
            yield text
