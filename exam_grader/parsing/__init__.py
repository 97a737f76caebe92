"""
Exam Parsing Module.

Model-assisted extraction of questions, standard answers and scores from
exam papers, plus validation of the result.
"""

from exam_grader.parsing.exam_parser import ExamParseError, ExamParser, compress_content
from exam_grader.parsing.validator import ExamValidationError, ExamValidator

__all__ = [
    "ExamParseError",
    "ExamParser",
    "ExamValidationError",
    "ExamValidator",
    "compress_content",
]
