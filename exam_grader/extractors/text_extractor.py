"""Plain text exam papers (.txt, .md)."""

from pathlib import Path
from typing import ClassVar

from exam_grader.extractors.base import DocumentExtractor, ExtractionError


class TextExtractor(DocumentExtractor):
    """Reads text files, trying several encodings in turn."""

    SUPPORTED_EXTENSIONS: ClassVar[tuple[str, ...]] = (".txt", ".md")

    ENCODINGS: ClassVar[tuple[str, ...]] = ("utf-8", "utf-8-sig", "gb18030", "latin-1")

    def _read_text(self, file_path: Path) -> str:
        last_error: Exception | None = None

        for encoding in self.ENCODINGS:
            try:
                return file_path.read_text(encoding=encoding)
            except UnicodeDecodeError as e:
                last_error = e

        raise ExtractionError(
            f"Could not decode file with any supported encoding: {self.ENCODINGS}",
            file_path,
            cause=last_error,
        )
