"""Word exam papers (.docx), read with python-docx."""

from pathlib import Path
from typing import ClassVar

from docx import Document
from docx.opc.exceptions import PackageNotFoundError

from exam_grader.extractors.base import DocumentExtractor, ExtractionError


class DocxExtractor(DocumentExtractor):
    """
    Extracts paragraphs, then tables.

    Answer keys are often laid out as tables, so each row becomes a
    ``cell | cell`` line.
    """

    SUPPORTED_EXTENSIONS: ClassVar[tuple[str, ...]] = (".docx",)

    def _read_text(self, file_path: Path) -> str:
        try:
            doc = Document(str(file_path))
        except PackageNotFoundError as e:
            raise ExtractionError(
                "File is not a valid .docx document or is corrupted", file_path, cause=e
            ) from e

        parts = [para.text for para in doc.paragraphs if para.text.strip()]

        for table in doc.tables:
            rows = [
                " | ".join(cell.text.strip() for cell in row.cells)
                for row in table.rows
                if any(cell.text.strip() for cell in row.cells)
            ]
            if rows:
                parts.append("\n".join(rows))

        return "\n\n".join(parts)
