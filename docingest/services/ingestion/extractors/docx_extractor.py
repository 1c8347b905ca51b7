"""DOCX extractor.

DOCX text normally arrives already extracted (the upload client reads it
and posts it to the DOCX endpoint).  :func:`read_docx_text` is the binary
reader used when only the stored file is available.
"""

from __future__ import annotations

import io
from collections.abc import Iterator

import structlog

from docingest.services.ingestion.extractors.base import BaseExtractor
from docingest.utils.errors import EmptyOrUnprocessableError

logger = structlog.get_logger(logger_name=__name__)


def read_docx_text(data: bytes) -> str:
    """DOCX bytes → plain text via python-docx.

    python-docx reads the XML inside the DOCX zip archive and extracts
    paragraph text.  Formatting is stripped; non-empty paragraphs are
    joined with blank lines.
    """
    from docx import Document

    try:
        doc = Document(io.BytesIO(data))
    except Exception as exc:
        raise EmptyOrUnprocessableError(
            f"File could not be processed or is empty: {exc}"
        ) from exc

    text = "\n\n".join(para.text for para in doc.paragraphs if para.text.strip())
    logger.info("docx_text_read", paragraphs=len(doc.paragraphs), chars=len(text))
    return text


class DocxExtractor(BaseExtractor):
    """Yields DOCX text as a single segment."""

    extensions = ("docx",)

    def extract_text(self, text: str) -> Iterator[str]:
        """Yield pre-extracted DOCX *text*."""
        if text and text.strip():
            yield text

    def extract(self, data: bytes) -> Iterator[str]:
        yield from self.extract_text(read_docx_text(data))
