"""
Extractor factory module.

Selects the extractor for a file by extension.
"""

from pathlib import Path

from exam_grader.extractors.base import DocumentExtractor, ExtractionError
from exam_grader.extractors.docx_extractor import DocxExtractor
from exam_grader.extractors.pdf_extractor import PDFExtractor
from exam_grader.extractors.text_extractor import TextExtractor
from exam_grader.models import ExtractedDocument

_EXTRACTORS: tuple[type[DocumentExtractor], ...] = (
    PDFExtractor,
    DocxExtractor,
    TextExtractor,
)


def get_supported_extensions() -> tuple[str, ...]:
    """All extensions any extractor handles, sorted."""
    extensions: set[str] = set()
    for extractor_cls in _EXTRACTORS:
        extensions.update(extractor_cls.SUPPORTED_EXTENSIONS)
    return tuple(sorted(extensions))


def create_extractor(file_path: Path | str) -> DocumentExtractor:
    """
    Create the appropriate extractor for a given file.

    Raises:
        ExtractionError: If the file format is not supported.
    """
    path = Path(file_path)
    for extractor_cls in _EXTRACTORS:
        if extractor_cls.supports(path):
            return extractor_cls()

    raise ExtractionError(
        f"Unsupported file format '{path.suffix.lower()}'. "
        f"Supported formats: {get_supported_extensions()}",
        path,
    )


def extract_document(file_path: Path | str) -> ExtractedDocument:
    """Extract the text of an exam document in one step."""
    path = Path(file_path)
    return create_extractor(path).extract(path)
