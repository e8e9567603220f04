"""Abstract interface (port) for text extraction from document files."""

from abc import ABC, abstractmethod

from grounded_qa.domain.entities.document import ExtractionResult


class TextExtractor(ABC):
    """Port for text extraction — implemented in the infrastructure layer."""

    @abstractmethod
    async def extract(self, file_path: str) -> ExtractionResult:
        """Extract ordered pages and document metadata from a file.

        Args:
            file_path: Absolute path to the file on disk. Never modified.

        Returns:
            ExtractionResult with 1-based pages.

        Raises:
            FileNotFoundError: If the path does not exist.
            FormatUnsupportedError: For extensions other than pdf/docx/txt/md.
            LikelyScannedDocumentError: For PDFs without a usable text layer.
            PasswordProtectedError: For encrypted PDFs.
        """
        ...

    @abstractmethod
    def supports(self, extension: str) -> bool:
        """Check if the extractor reads files with the given extension (e.g. '.pdf')."""
        ...
