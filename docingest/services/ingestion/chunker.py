"""Token-bounded text chunking with overlapping windows.

Splits extracted text segments into :class:`~docingest.models.ingestion.TextChunk`
objects of at most ``chunk_size`` tokens (2000 by default) with up to
``overlap`` tokens (200) carried over between consecutive chunks.

The strategy is recursive: a segment that fits is emitted unchanged;
otherwise it is split on the coarsest boundary that exists (paragraphs,
then lines, then sentences, then words) and the pieces are greedily
packed back together.  A piece that is still too large descends to the
next boundary.  Text with no usable boundary at all (one enormous "word")
is cut into character windows whose ends are found by a growing probe
followed by bisection.

Every emitted chunk is re-measured with the same tokenizer, so the bound
holds exactly, not approximately.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Callable, Iterable

import structlog

from docingest.models.ingestion import TextChunk
from docingest.services.ingestion.tokenizer import TokenCounter

logger = structlog.get_logger(logger_name=__name__)

# Common abbreviations that should NOT trigger a sentence split.
# "Dr. Smith" should remain one sentence, not split at the period.
_ABBREVIATIONS = frozenset(
    {
        "Dr",
        "Mr",
        "Mrs",
        "Ms",
        "Prof",
        "Jr",
        "Sr",
        "St",
        "No",
        "vs",
        "etc",
        "approx",
        "inc",
        "ltd",
        "co",
    }
)

_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_WORD_RE = re.compile(r"\s+")

_EXHAUSTED = object()


def _split_paragraphs(text: str) -> list[str]:
    return [p for p in _PARAGRAPH_RE.split(text) if p.strip()]


def _split_lines(text: str) -> list[str]:
    return [line for line in text.split("\n") if line.strip()]


def _split_sentences(text: str) -> list[str]:
    """Split *text* at ``.``, ``!`` or ``?`` followed by whitespace.

    Common abbreviations (Dr., Mr., etc.) do not trigger a split.  Periods
    after them are masked with ``\\x00`` (same length, so indices stay
    aligned with the original text).
    """
    masked = text
    for abbr in _ABBREVIATIONS:
        masked = masked.replace(f"{abbr}.", f"{abbr}\x00")

    sentences: list[str] = []
    last = 0
    for match in re.finditer(r"[.!?](?:\s+|$)", masked):
        end = match.end()
        sentence = text[last:end].strip()
        if sentence:
            sentences.append(sentence)
        last = end

    # Trailing text that didn't end with punctuation.
    remainder = text[last:].strip()
    if remainder:
        sentences.append(remainder)

    return sentences if sentences else [text]


def _split_words(text: str) -> list[str]:
    return [w for w in _WORD_RE.split(text) if w]


# (splitter, joiner) pairs from coarsest to finest boundary.
_LEVELS: list[tuple[Callable[[str], list[str]], str]] = [
    (_split_paragraphs, "\n\n"),
    (_split_lines, "\n"),
    (_split_sentences, " "),
    (_split_words, " "),
]


class TextChunker:
    """Splits text into overlapping chunks of bounded token count.

    Parameters
    ----------
    token_counter:
        Measures every piece and every emitted chunk.
    chunk_size:
        Maximum token count per chunk (default 2000).
    overlap:
        Maximum number of tokens repeated from the end of one chunk at the
        start of the next (default 200).
    """

    def __init__(
        self,
        token_counter: TokenCounter,
        chunk_size: int = 2000,
        overlap: int = 200,
    ) -> None:
        if chunk_size <= 0:
            msg = f"chunk_size must be positive, got {chunk_size}"
            raise ValueError(msg)
        if overlap < 0 or overlap >= chunk_size:
            msg = f"overlap must be in [0, chunk_size), got {overlap}"
            raise ValueError(msg)
        self._counter = token_counter
        self._chunk_size = chunk_size
        self._overlap = overlap

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def split(self, text: str) -> list[TextChunk]:
        """Split one text segment into chunks of at most ``chunk_size`` tokens.

        Whitespace-only input yields no chunks; input that already fits is
        returned as a single, unmodified chunk.
        """
        if not text or not text.strip():
            return []

        token_count = self._counter.count(text)
        if token_count <= self._chunk_size:
            return [TextChunk(content=text, token_count=token_count)]

        chunks: list[TextChunk] = []
        for candidate in self._split_recursive(text, 0):
            candidate = candidate.strip()
            if not candidate:
                continue
            for piece in self._enforce_bound(candidate):
                chunks.append(TextChunk(content=piece, token_count=self._counter.count(piece)))

        logger.debug(
            "chunking_complete",
            input_tokens=token_count,
            num_chunks=len(chunks),
            avg_tokens=self._avg_tokens(chunks),
        )
        return chunks

    async def chunk_segments(self, segments: Iterable[str]) -> list[TextChunk]:
        """Chunk each segment in order, off the event loop.

        Pulling the next segment (a PDF page extraction, say) and splitting it
        both run in worker threads, so a caller's ``asyncio.wait_for``
        deadline can fire while a large segment is still being chunked.
        """
        chunks: list[TextChunk] = []
        iterator = iter(segments)
        while True:
            segment = await asyncio.to_thread(next, iterator, _EXHAUSTED)
            if segment is _EXHAUSTED:
                return chunks
            chunks.extend(await asyncio.to_thread(self.split, segment))

    # ------------------------------------------------------------------
    # Recursive splitting
    # ------------------------------------------------------------------

    def _split_recursive(self, text: str, level: int) -> list[str]:
        """Split *text* at boundary *level* and pack the pieces into chunk texts."""
        if level >= len(_LEVELS):
            return self._char_windows(text)

        splitter, joiner = _LEVELS[level]
        parts = splitter(text)

        results: list[str] = []
        fitting: list[tuple[str, int]] = []  # (text, token_count)
        for part in parts:
            part_tokens = self._counter.count(part)
            if part_tokens <= self._chunk_size:
                fitting.append((part, part_tokens))
                continue

            # Flush anything accumulated so far before descending a level.
            if fitting:
                results.extend(self._merge(fitting, joiner))
                fitting = []
            results.extend(self._split_recursive(part, level + 1))

        if fitting:
            results.extend(self._merge(fitting, joiner))
        return results

    def _merge(self, parts: list[tuple[str, int]], joiner: str) -> list[str]:
        """Greedily pack *parts* into chunks respecting *chunk_size* and *overlap*."""
        chunks: list[str] = []
        current_parts: list[tuple[str, int]] = []
        current_tokens = 0

        for part, part_tokens in parts:
            if current_tokens + part_tokens > self._chunk_size and current_parts:
                chunks.append(joiner.join(t for t, _ in current_parts))

                # Start the next chunk with tail parts of the previous one
                # (up to _overlap tokens) for contextual continuity.
                current_parts, current_tokens = self._build_overlap(current_parts)
                while current_parts and current_tokens + part_tokens > self._chunk_size:
                    _, dropped = current_parts.pop(0)
                    current_tokens -= dropped

            current_parts.append((part, part_tokens))
            current_tokens += part_tokens

        if current_parts:
            chunks.append(joiner.join(t for t, _ in current_parts))
        return chunks

    def _build_overlap(self, parts: list[tuple[str, int]]) -> tuple[list[tuple[str, int]], int]:
        """Return tail parts from *parts* whose combined tokens <= *overlap*."""
        overlap_parts: list[tuple[str, int]] = []
        overlap_tokens = 0
        for text, tok_count in reversed(parts):
            if overlap_tokens + tok_count > self._overlap:
                break
            overlap_parts.insert(0, (text, tok_count))
            overlap_tokens += tok_count
        return overlap_parts, overlap_tokens

    # ------------------------------------------------------------------
    # Character-level fallback
    # ------------------------------------------------------------------

    def _enforce_bound(self, text: str) -> list[str]:
        """Return ``[text]`` if it fits, else its character windows.

        Joining pieces can change how a tokenizer merges across the seam, so
        a packed chunk may measure slightly above the sum of its parts.
        """
        if self._counter.count(text) <= self._chunk_size:
            return [text]
        return self._char_windows(text)

    def _char_windows(self, text: str) -> list[str]:
        """Cut *text* into maximal character windows of at most ``chunk_size`` tokens."""
        windows: list[str] = []
        start = 0
        length = len(text)
        while start < length:
            end = self._longest_fit(text, start, self._chunk_size)
            windows.append(text[start:end])
            if end >= length:
                break
            start = self._overlap_start(text, start, end)
        return windows

    def _longest_fit(self, text: str, start: int, budget: int) -> int:
        """Largest ``end`` such that ``text[start:end]`` measures <= *budget* tokens.

        The probe window grows geometrically from ``start`` until it
        overflows, then the end is bisected inside it, so each call only
        measures text near the window and never the whole remainder.
        """
        length = len(text)
        lo = start + 1
        span = max(budget * 4, 1)
        hi = min(length, start + span)
        while self._counter.count(text[start:hi]) <= budget:
            if hi >= length:
                return length
            lo = hi
            span *= 2
            hi = min(length, start + span)
        hi -= 1
        while lo < hi:
            mid = (lo + hi + 1) // 2
            if self._counter.count(text[start:mid]) <= budget:
                lo = mid
            else:
                hi = mid - 1
        return lo

    def _overlap_start(self, text: str, start: int, end: int) -> int:
        """Smallest ``s`` in ``(start, end]`` whose tail ``text[s:end]`` fits in *overlap*."""
        if self._overlap == 0:
            return end
        lo, hi = start + 1, end
        while lo < hi:
            mid = (lo + hi) // 2
            if self._counter.count(text[mid:end]) <= self._overlap:
                hi = mid
            else:
                lo = mid + 1
        return lo

    @staticmethod
    def _avg_tokens(chunks: list[TextChunk]) -> int:
        """Return the average token count across *chunks*."""
        if not chunks:
            return 0
        return sum(c.token_count for c in chunks) // len(chunks)
