"""Extractors for plain-text formats (TXT, MD, CSV, JSON).

All four decode the file and hand it to the chunker as one segment; the
chunker's recursive splitting takes care of size.  Structure (CSV rows,
JSON nesting, Markdown headings) is kept verbatim in the text.
"""

from __future__ import annotations

from docingest.services.ingestion.extractors.base import WholeTextExtractor


class PlainTextExtractor(WholeTextExtractor):
    extensions = ("txt",)


class MarkdownExtractor(WholeTextExtractor):
    extensions = ("md",)


class CSVExtractor(WholeTextExtractor):
    extensions = ("csv",)


class JSONExtractor(WholeTextExtractor):
    extensions = ("json",)
