"""
Exam Document Extraction Module.

Turns uploaded exam papers into text for the exam parser:
- PDF (.pdf)
- Word (.docx)
- Plain text (.txt, .md)

and page images into data URLs for multimodal parsing.
"""

from exam_grader.extractors.base import DocumentExtractor, ExtractionError
from exam_grader.extractors.factory import create_extractor, extract_document, get_supported_extensions
from exam_grader.extractors.images import IMAGE_MIME_TYPES, load_exam_images, load_image

__all__ = [
    "DocumentExtractor",
    "ExtractionError",
    "IMAGE_MIME_TYPES",
    "create_extractor",
    "extract_document",
    "get_supported_extensions",
    "load_exam_images",
    "load_image",
]
