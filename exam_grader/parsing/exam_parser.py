"""
Exam paper parser.

Turns the text (or page images) of an uploaded exam paper into a list of
questions with standard answers and scores, using the model.
"""

import logging
import re
from typing import Any, Sequence

from pydantic import ValidationError

from exam_grader.grading.extractor import JsonShape, ResponseExtractor
from exam_grader.grading.json_repair import JSONRepairService
from exam_grader.grading.llm_client import LLMClient, LLMError
from exam_grader.grading.prompt_builder import PromptBuilder
from exam_grader.grading.scorer import ScoringError
from exam_grader.models import ParsedExam, ParsedQuestion

logger = logging.getLogger(__name__)

TRUNCATION_NOTICE = "\n\n[Note: the content was too long and has been truncated here. Only process the content above.]"


class ExamParseError(Exception):
    """Raised when the model reply does not describe a list of questions."""


def compress_content(content: str, max_length: int) -> str:
    """
    Shrink exam text that exceeds ``max_length``.

    Collapses runs of blank lines and spaces first; if the text is still too
    long it is cut and a truncation notice is appended.
    """
    if len(content) <= max_length:
        return content

    logger.info("Exam content too long (%d chars), compressing", len(content))
    compressed = re.sub(r"\n{3,}", "\n\n", content)
    compressed = re.sub(r"[ \t]+", " ", compressed).strip()

    if len(compressed) > max_length:
        logger.info("Compressed content still too long (%d chars), truncating", len(compressed))
        compressed = compressed[:max_length] + TRUNCATION_NOTICE

    return compressed


class ExamParser:
    """
    Parses exam papers with the model.

    Parse failures are reported through ``ParsedExam(success=False)`` rather
    than raised, so callers can show the error and fall back to manual entry.
    """

    def __init__(self, llm_client: LLMClient, max_content_length: int = 128_000):
        self._llm_client = llm_client
        self._repair = JSONRepairService(llm_client)
        self._max_content_length = max_content_length

    async def parse_text(self, content: str) -> ParsedExam:
        """Parse an exam paper from its extracted text."""
        if not content or not content.strip():
            return ParsedExam.failure("Missing file content")

        processed = compress_content(content, self._max_content_length)
        prompt = PromptBuilder.build_exam_parsing_prompt(processed)
        return await self._run(prompt, images=None)

    async def parse_images(self, images: Sequence[str]) -> ParsedExam:
        """Parse an exam paper from page images (URLs or data URLs)."""
        if not images:
            return ParsedExam.failure("Missing exam images")

        prompt = PromptBuilder.build_image_parsing_prompt(len(images))
        return await self._run(prompt, images=images)

    async def _run(self, prompt: str, images: Sequence[str] | None) -> ParsedExam:
        try:
            raw = await self._llm_client.generate(
                prompt,
                system_prompt=PromptBuilder.EXAM_PARSER_SYSTEM_PROMPT,
                images=images,
            )
            parsed = await self._repair.parse(
                ResponseExtractor.extract(raw, JsonShape.ARRAY), JsonShape.ARRAY
            )
            questions = self._to_questions(parsed)
        except (LLMError, ScoringError, ExamParseError) as e:
            logger.error("Exam parsing failed: %s", e)
            return ParsedExam.failure(str(e))

        exam = ParsedExam(success=True, questions=questions)
        logger.info(
            "Parsed %d questions, total score %g", len(exam.questions), exam.total_score
        )
        return exam

    @staticmethod
    def _to_questions(parsed: Any) -> list[ParsedQuestion]:
        if isinstance(parsed, dict) and isinstance(parsed.get("questions"), list):
            parsed = parsed["questions"]
        if not isinstance(parsed, list):
            raise ExamParseError(
                f"Expected a JSON array of questions, got {type(parsed).__name__}"
            )

        try:
            return [ParsedQuestion.model_validate(item) for item in parsed]
        except ValidationError as e:
            raise ExamParseError(f"Invalid question in model response: {e}") from e
