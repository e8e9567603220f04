"""Document text extractor — per-page text and metadata from PDF, DOCX, TXT and MD."""

import asyncio
import logging
import re
from pathlib import Path

from grounded_qa.application.interfaces.text_extractor import TextExtractor
from grounded_qa.domain.entities.document import (
    DocumentMetadata,
    ExtractedPage,
    ExtractionResult,
)
from grounded_qa.domain.exceptions import (
    FormatUnsupportedError,
    LikelyScannedDocumentError,
    PasswordProtectedError,
)

logger = logging.getLogger(__name__)

# A multi-page PDF with less text than this has no usable text layer
MIN_PDF_TEXT_CHARS = 100

_TABLE_LINE = re.compile(r"\t|\s{3,}")
_TABLE_MIN_CONSECUTIVE_LINES = 3


def detect_tables(text: str) -> bool:
    """True when at least three consecutive lines look column-aligned.

    A line counts when it contains a tab or a run of three or more
    whitespace characters.
    """
    consecutive = 0
    for line in text.split("\n"):
        if _TABLE_LINE.search(line):
            consecutive += 1
            if consecutive >= _TABLE_MIN_CONSECUTIVE_LINES:
                return True
        else:
            consecutive = 0
    return False


def _clean(value: str | None) -> str | None:
    """Normalise empty metadata strings to None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


class DocumentTextExtractor(TextExtractor):
    """Infrastructure adapter that extracts paged text from uploaded documents.

    Implements the TextExtractor interface using format-specific libraries:
    - PDF: PyMuPDF (fitz), one page per PDF page
    - DOCX: python-docx, flattened into a single page
    - TXT/MD: built-in, a single page

    Parsing runs in a worker thread so that concurrent ingestion slots
    keep the event loop responsive.
    """

    # Extension → handler method mapping
    _HANDLERS: dict[str, str] = {
        ".pdf": "_extract_pdf",
        ".docx": "_extract_docx",
        ".txt": "_extract_text",
        ".md": "_extract_text",
    }

    def supports(self, extension: str) -> bool:
        """Check if this extractor reads the given extension."""
        return extension.lower() in self._HANDLERS

    def supported_extensions(self) -> list[str]:
        """Return all supported extensions."""
        return list(self._HANDLERS.keys())

    async def extract(self, file_path: str) -> ExtractionResult:
        """Extract ordered pages and metadata from a file on disk.

        Raises:
            FileNotFoundError: If the file does not exist.
            FormatUnsupportedError: For .doc and any unknown extension.
        """
        path = Path(file_path)
        extension = path.suffix.lower()

        if extension == ".doc":
            raise FormatUnsupportedError(
                ".doc", "Legacy binary Word files are not supported; convert to .docx or .pdf"
            )
        handler_name = self._HANDLERS.get(extension)
        if handler_name is None:
            raise FormatUnsupportedError(extension or "(none)")

        if not path.is_file():
            raise FileNotFoundError(f"File not found: {file_path}")

        handler = getattr(self, handler_name)
        result = await asyncio.to_thread(handler, path)

        logger.info(
            "Extracted %d pages (%d characters) from %s",
            result.total_pages,
            sum(len(p.text) for p in result.pages),
            path.name,
        )
        return result

    # ── Format-specific handlers ─────────────────────────────────────

    def _extract_pdf(self, path: Path) -> ExtractionResult:
        """Extract text per page using PyMuPDF."""
        import fitz  # PyMuPDF

        try:
            doc = fitz.open(str(path))
        except Exception as e:
            if "password" in str(e).lower() or "encrypted" in str(e).lower():
                raise PasswordProtectedError(path.name) from e
            raise

        try:
            if doc.needs_pass:
                raise PasswordProtectedError(path.name)

            pages: list[ExtractedPage] = []
            for index, page in enumerate(doc):
                raw = page.get_text("text")
                pages.append(
                    ExtractedPage(
                        page_number=index + 1,
                        text=raw.strip(),
                        has_images=bool(page.get_images(full=False)),
                        has_tables=detect_tables(raw),
                    )
                )

            info = doc.metadata or {}
            metadata = DocumentMetadata(
                title=_clean(info.get("title")),
                author=_clean(info.get("author")),
                subject=_clean(info.get("subject")),
                creator=_clean(info.get("creator")),
                producer=_clean(info.get("producer")),
            )
        finally:
            doc.close()

        char_count = sum(len(p.text) for p in pages)
        if char_count < MIN_PDF_TEXT_CHARS and len(pages) > 1:
            raise LikelyScannedDocumentError(path.name, len(pages), char_count)

        return ExtractionResult(pages=pages, metadata=metadata)

    def _extract_docx(self, path: Path) -> ExtractionResult:
        """Extract paragraphs, then tables, using python-docx."""
        from docx import Document

        doc = Document(str(path))
        parts: list[str] = []

        # Paragraphs
        for para in doc.paragraphs:
            parts.append(para.text)

        # Tables: cells joined by tabs so the table heuristic sees them
        for table in doc.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells]
                if any(cells):
                    parts.append("\t".join(cells))

        text = "\n".join(parts)
        props = doc.core_properties
        page = ExtractedPage(
            page_number=1,
            text=text.strip(),
            has_images=len(doc.inline_shapes) > 0,
            has_tables=bool(doc.tables) or detect_tables(text),
        )
        metadata = DocumentMetadata(
            title=_clean(props.title) or path.stem,
            author=_clean(props.author),
            subject=_clean(props.subject),
        )
        return ExtractionResult(pages=[page], metadata=metadata)

    def _extract_text(self, path: Path) -> ExtractionResult:
        """Extract text from plain text files (TXT, MD)."""
        # Try UTF-8 first, then fall back to latin-1
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            text = path.read_text(encoding="latin-1")

        page = ExtractedPage(page_number=1, text=text.strip(), has_tables=detect_tables(text))
        return ExtractionResult(pages=[page], metadata=DocumentMetadata(title=path.name))
