"""Unit tests for the per-format text extractors."""

from __future__ import annotations

import io

import fitz
import pytest
from docx import Document

from docingest.services.ingestion.extractors import (
    SUPPORTED_EXTENSIONS,
    CSVExtractor,
    DocxExtractor,
    JSONExtractor,
    MarkdownExtractor,
    PDFExtractor,
    PlainTextExtractor,
    decode_text,
    get_extractor,
    read_docx_text,
)
from docingest.utils.errors import EmptyOrUnprocessableError, UnsupportedFormatError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_pdf(pages: list[str]) -> bytes:
    """Build a PDF in memory; an empty string produces a blank page."""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def _make_docx(paragraphs: list[str]) -> bytes:
    doc = Document()
    for text in paragraphs:
        doc.add_paragraph(text)
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestGetExtractor:
    @pytest.mark.parametrize(
        ("extension", "expected"),
        [
            ("txt", PlainTextExtractor),
            ("md", MarkdownExtractor),
            ("csv", CSVExtractor),
            ("json", JSONExtractor),
            ("pdf", PDFExtractor),
            ("docx", DocxExtractor),
        ],
    )
    def test_known_extensions(self, extension: str, expected: type) -> None:
        assert isinstance(get_extractor(extension), expected)

    def test_lookup_ignores_case_and_leading_dot(self) -> None:
        assert isinstance(get_extractor(".PDF"), PDFExtractor)

    @pytest.mark.parametrize("extension", ["xyz", "", "doc", "pptx"])
    def test_unknown_extension_is_rejected(self, extension: str) -> None:
        with pytest.raises(UnsupportedFormatError):
            get_extractor(extension)

    def test_supported_extensions(self) -> None:
        assert SUPPORTED_EXTENSIONS == {"csv", "docx", "json", "md", "pdf", "txt"}

    def test_rejection_lists_supported_extensions(self) -> None:
        with pytest.raises(UnsupportedFormatError) as exc_info:
            get_extractor("pptx")

        assert exc_info.value.message == (
            "Unsupported file type: 'pptx' (supported: csv, docx, json, md, pdf, txt)"
        )
        assert exc_info.value.public_message == "Unsupported file type"


# ---------------------------------------------------------------------------
# Plain-text formats
# ---------------------------------------------------------------------------


class TestTextExtractors:
    def test_decode_strips_bom_and_replaces_bad_bytes(self) -> None:
        assert decode_text(b"\xef\xbb\xbfhello \xff") == "hello \ufffd"

    def test_whole_file_is_one_segment(self) -> None:
        data = b"name,age\nada,36\nalan,41\n"
        assert list(CSVExtractor().extract(data)) == [data.decode()]

    def test_json_structure_is_kept_verbatim(self) -> None:
        data = b'{"title": "Report", "items": [1, 2]}'
        assert list(JSONExtractor().extract(data)) == ['{"title": "Report", "items": [1, 2]}']

    def test_blank_file_yields_nothing(self) -> None:
        assert list(MarkdownExtractor().extract(b"  \n\n ")) == []


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------


class TestPDFExtractor:
    def test_one_segment_per_page_with_text(self) -> None:
        data = _make_pdf(["First page text", "", "Third page text"])

        segments = list(PDFExtractor().extract(data))

        assert len(segments) == 2
        assert "First page text" in segments[0]
        assert "Third page text" in segments[1]

    def test_pages_are_yielded_lazily(self) -> None:
        data = _make_pdf(["Alpha", "Beta"])
        segments = PDFExtractor().extract(data)

        assert "Alpha" in next(segments)
        assert "Beta" in next(segments)

    def test_corrupt_pdf_is_unprocessable(self) -> None:
        with pytest.raises(EmptyOrUnprocessableError):
            list(PDFExtractor().extract(b"this is not a pdf"))


# ---------------------------------------------------------------------------
# DOCX
# ---------------------------------------------------------------------------


class TestDocxExtractor:
    def test_read_docx_text_joins_non_empty_paragraphs(self) -> None:
        data = _make_docx(["First paragraph", "", "Second paragraph"])
        assert read_docx_text(data) == "First paragraph\n\nSecond paragraph"

    def test_extract_from_bytes(self) -> None:
        data = _make_docx(["Only paragraph"])
        assert list(DocxExtractor().extract(data)) == ["Only paragraph"]

    def test_extract_text_passes_pre_extracted_text(self) -> None:
        extractor = DocxExtractor()
        assert list(extractor.extract_text("already extracted")) == ["already extracted"]
        assert list(extractor.extract_text("   ")) == []

    def test_corrupt_docx_is_unprocessable(self) -> None:
        with pytest.raises(EmptyOrUnprocessableError):
            read_docx_text(b"PK\x03\x04 not really a zip")
