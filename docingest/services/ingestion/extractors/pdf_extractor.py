"""PDF extractor using PyMuPDF (fitz).

Yields one segment per page, lazily, skipping pages with no extractable
text.  Only one page's text is alive at a time.
"""

from __future__ import annotations

from collections.abc import Iterator

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from docingest.services.ingestion.extractors.base import BaseExtractor
from docingest.utils.errors import EmptyOrUnprocessableError

logger = structlog.get_logger(logger_name=__name__)


class PDFExtractor(BaseExtractor):
    """Extracts page text from PDF bytes."""

    extensions = ("pdf",)

    def extract(self, data: bytes) -> Iterator[str]:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            logger.error("pdf_open_failed", error=str(exc))
            raise EmptyOrUnprocessableError(
                f"File could not be processed or is empty: {exc}"
            ) from exc

        page_count = len(doc)
        pages_with_text = 0
        try:
            for page_num in range(page_count):
                text = doc[page_num].get_text("text")
                if not text.strip():
                    continue
                pages_with_text += 1
                yield text
        finally:
            doc.close()

        if not pages_with_text:
            logger.warning("pdf_no_text_extracted", pages=page_count)
