"""
Base classes for exam document extraction.

Every extractor turns one uploaded exam file into plain text that can be
sent to the exam parser.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import ClassVar

from exam_grader.models import ExtractedDocument


class ExtractionError(Exception):
    """Raised when text cannot be extracted from a file."""

    def __init__(self, message: str, file_path: str | Path, cause: Exception | None = None):
        self.file_path = str(file_path)
        self.cause = cause
        super().__init__(f"Failed to extract '{file_path}': {message}")


class DocumentExtractor(ABC):
    """
    Abstract base class for document extractors.

    Subclasses declare the extensions they handle in ``SUPPORTED_EXTENSIONS``
    and implement ``_read_text``.
    """

    SUPPORTED_EXTENSIONS: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def supports(cls, file_path: Path) -> bool:
        return file_path.suffix.lower() in cls.SUPPORTED_EXTENSIONS

    def extract(self, file_path: Path) -> ExtractedDocument:
        """
        Extract the text of an exam document.

        Raises:
            ExtractionError: If the file is missing, unsupported, unreadable
                or contains no text.
        """
        self._validate_file(file_path)

        try:
            content = self._read_text(file_path)
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(f"Unexpected error: {e}", file_path, cause=e) from e

        if not content.strip():
            raise ExtractionError("Document is empty or contains no extractable text", file_path)

        return ExtractedDocument(
            content=content.strip(),
            source_path=str(file_path.resolve()),
            file_extension=file_path.suffix.lower(),
        )

    @abstractmethod
    def _read_text(self, file_path: Path) -> str:
        """Return the raw text of the document."""
        ...

    def _validate_file(self, file_path: Path) -> None:
        if not file_path.exists():
            raise ExtractionError("File does not exist", file_path)

        if not file_path.is_file():
            raise ExtractionError("Path is not a file", file_path)

        if not self.supports(file_path):
            raise ExtractionError(
                f"Unsupported file format. Expected one of: {self.SUPPORTED_EXTENSIONS}",
                file_path,
            )
