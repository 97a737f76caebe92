"""
Exam page images for multimodal parsing.

Photographed or scanned exam papers are sent to the model as base64
data URLs.
"""

import base64
from pathlib import Path

from exam_grader.extractors.base import ExtractionError
from exam_grader.extractors.pdf_extractor import PDFExtractor

IMAGE_MIME_TYPES: dict[str, str] = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
}


def to_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def load_image(file_path: Path | str) -> str:
    """
    Read an image file as a data URL.

    Raises:
        ExtractionError: If the file is missing, empty or not a supported image.
    """
    path = Path(file_path)
    mime_type = IMAGE_MIME_TYPES.get(path.suffix.lower())
    if mime_type is None:
        raise ExtractionError(
            f"Unsupported image format. Expected one of: {tuple(IMAGE_MIME_TYPES)}", path
        )
    if not path.is_file():
        raise ExtractionError("File does not exist", path)

    data = path.read_bytes()
    if not data:
        raise ExtractionError("Image file is empty", path)
    return to_data_url(data, mime_type)


def load_exam_images(paths: list[Path]) -> list[str]:
    """
    Turn exam page files into data URLs, in order.

    Image files become one URL each; PDFs contribute one URL per rendered page.
    """
    urls: list[str] = []
    for path in paths:
        if PDFExtractor.supports(path):
            urls.extend(to_data_url(png, "image/png") for png in PDFExtractor.render_pages(path))
        else:
            urls.append(load_image(path))
    return urls
