"""Format extractors -- one per supported file extension.

    csv, json, md, txt  → decoded text, one segment
    pdf                 → one segment per page (PyMuPDF)
    docx                → pre-extracted text, or python-docx on the raw bytes

:func:`get_extractor` is the single dispatch point; unknown extensions raise
:class:`~docingest.utils.errors.UnsupportedFormatError`.
"""

from __future__ import annotations

from docingest.services.ingestion.extractors.base import BaseExtractor, decode_text
from docingest.services.ingestion.extractors.docx_extractor import (
    DocxExtractor,
    read_docx_text,
)
from docingest.services.ingestion.extractors.pdf_extractor import PDFExtractor
from docingest.services.ingestion.extractors.text_extractors import (
    CSVExtractor,
    JSONExtractor,
    MarkdownExtractor,
    PlainTextExtractor,
)
from docingest.utils.errors import UnsupportedFormatError

_EXTRACTORS: dict[str, BaseExtractor] = {}
for _extractor in (
    CSVExtractor(),
    DocxExtractor(),
    JSONExtractor(),
    MarkdownExtractor(),
    PDFExtractor(),
    PlainTextExtractor(),
):
    for _ext in _extractor.extensions:
        _EXTRACTORS[_ext] = _extractor

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(_EXTRACTORS)


def get_extractor(extension: str) -> BaseExtractor:
    """Return the extractor for *extension* (case-insensitive, leading dot optional)."""
    key = (extension or "").lower().lstrip(".")
    try:
        return _EXTRACTORS[key]
    except KeyError:
        supported = ", ".join(sorted(SUPPORTED_EXTENSIONS))
        raise UnsupportedFormatError(
            f"Unsupported file type: '{extension}' (supported: {supported})"
        ) from None


__all__ = [
    "BaseExtractor",
    "CSVExtractor",
    "DocxExtractor",
    "JSONExtractor",
    "MarkdownExtractor",
    "PDFExtractor",
    "PlainTextExtractor",
    "SUPPORTED_EXTENSIONS",
    "decode_text",
    "get_extractor",
    "read_docx_text",
]
