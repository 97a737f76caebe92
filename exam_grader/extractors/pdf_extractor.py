"""
PDF exam papers, read with PyMuPDF.

Scanned (image-only) PDFs yield no text; those should be sent to the
multimodal parser as page images instead.
"""

from pathlib import Path
from typing import ClassVar

import fitz  # PyMuPDF

from exam_grader.extractors.base import DocumentExtractor, ExtractionError


class PDFExtractor(DocumentExtractor):
    """Extracts page text in reading order, pages separated by blank lines."""

    SUPPORTED_EXTENSIONS: ClassVar[tuple[str, ...]] = (".pdf",)

    def _read_text(self, file_path: Path) -> str:
        try:
            with fitz.open(file_path) as doc:
                if doc.page_count == 0:
                    raise ExtractionError("PDF has no pages", file_path)
                pages = [page.get_text("text") for page in doc]
        except (fitz.FileDataError, fitz.EmptyFileError) as e:
            raise ExtractionError("PDF file is empty, corrupted or invalid", file_path, cause=e) from e

        text = "\n\n".join(p.strip() for p in pages if p.strip())
        if not text:
            raise ExtractionError(
                "No text could be extracted. The PDF may be scanned; "
                "upload its pages as images instead.",
                file_path,
            )
        return text

    @staticmethod
    def render_pages(file_path: Path, dpi: int = 150) -> list[bytes]:
        """Render every page to PNG bytes, for multimodal parsing of scanned papers."""
        try:
            with fitz.open(file_path) as doc:
                return [page.get_pixmap(dpi=dpi).tobytes("png") for page in doc]
        except (fitz.FileDataError, fitz.EmptyFileError) as e:
            raise ExtractionError("PDF file is empty, corrupted or invalid", file_path, cause=e) from e
