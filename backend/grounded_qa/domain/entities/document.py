"""Transient entities produced by text extraction and section detection."""

from dataclasses import dataclass, field

PAGE_SEPARATOR = "\n\n"


@dataclass(frozen=True)
class ExtractedPage:
    """One page of plain text, 1-based."""

    page_number: int
    text: str
    has_images: bool = False
    has_tables: bool = False


@dataclass
class DocumentMetadata:
    """Document-level properties reported by the source file."""

    title: str | None = None
    author: str | None = None
    subject: str | None = None
    creator: str | None = None
    producer: str | None = None


@dataclass
class ExtractionResult:
    """Ordered pages plus document metadata."""

    pages: list[ExtractedPage]
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)

    @property
    def total_pages(self) -> int:
        return len(self.pages)

    def full_text(self) -> tuple[str, list[int]]:
        """Concatenate pages, each followed by a blank line.

        Returns:
            The document text and the character offset at which each page
            starts (``offsets[i]`` belongs to ``pages[i]``).
        """
        parts: list[str] = []
        offsets: list[int] = []
        position = 0
        for page in self.pages:
            offsets.append(position)
            parts.append(page.text)
            parts.append(PAGE_SEPARATOR)
            position += len(page.text) + len(PAGE_SEPARATOR)
        return "".join(parts), offsets


@dataclass(frozen=True)
class Section:
    """A heading-delimited run of lines.

    ``start_index``/``end_index`` are inclusive line indices into the
    concatenated document text. Level 1 is the top level.
    """

    heading: str
    start_index: int
    end_index: int
    level: int
