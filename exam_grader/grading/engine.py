"""
Grading engine.

Runs one grading unit end to end: prompt, model call, JSON extraction,
repair when needed, then validation and clamping into ``GradingResult``.
Supports single-answer and whole-exam (one call per student) modes.
"""

import logging
from typing import Any, Mapping

from exam_grader.config import Settings, get_settings
from exam_grader.grading.extractor import JsonShape, ResponseExtractor
from exam_grader.grading.json_repair import JSONRepairService
from exam_grader.grading.llm_client import LLMClient
from exam_grader.grading.prompt_builder import PromptBuilder
from exam_grader.grading.scorer import MalformedResponseError, to_grading_result
from exam_grader.models import GradingRequest, GradingResult

logger = logging.getLogger(__name__)


class GradingEngine:
    """
    Turns grading requests into validated grading results.

    Errors are not absorbed here: ``LLMError`` and ``ScoringError`` propagate
    so that the batch orchestrator can substitute fallback results.
    """

    to_grading_result = staticmethod(to_grading_result)

    def __init__(self, llm_client: LLMClient, settings: Settings | None = None):
        """
        Initialize the grading engine.

        Args:
            llm_client: Client for the text-generation endpoint.
            settings: Configuration settings. Uses global settings if not provided.
        """
        self._settings = settings or get_settings()
        self._llm_client = llm_client
        self._repair = JSONRepairService(llm_client)

    @property
    def model(self) -> str:
        return self._llm_client.model

    async def grade_answer(self, request: GradingRequest) -> GradingResult:
        """
        Grade a single answer.

        Raises:
            LLMError: If the model call fails.
            ScoringError: If the response cannot be parsed or has the wrong shape.
        """
        raw = await self._llm_client.generate(
            PromptBuilder.build_grading_prompt(request),
            system_prompt=PromptBuilder.get_system_prompt(),
            temperature=self._settings.llm_temperature,
        )
        parsed = await self._parse(raw, JsonShape.OBJECT)
        result = to_grading_result(parsed, request.max_score)
        self._log_low_confidence(result)
        return result

    async def grade_exam(self, requests: Mapping[str, GradingRequest]) -> dict[str, GradingResult]:
        """
        Grade all of one student's answers in a single model call.

        Args:
            requests: Grading requests keyed by question id.

        Returns:
            Results keyed by question id, one per request.

        Raises:
            LLMError: If the model call fails.
            ScoringError: If the response cannot be parsed, has the wrong shape,
                or does not cover exactly the requested questions.
        """
        if not requests:
            return {}

        raw = await self._llm_client.generate(
            PromptBuilder.build_exam_grading_prompt(requests),
            system_prompt=PromptBuilder.get_system_prompt(),
            temperature=self._settings.llm_temperature,
        )
        parsed = await self._parse(raw, JsonShape.ARRAY)
        items = self._unwrap_items(parsed)

        results: dict[str, GradingResult] = {}
        for i, item in enumerate(items):
            if not isinstance(item, dict):
                raise MalformedResponseError(f"results[{i}] must be an object", raw_response=raw)

            question_id = str(item.get("questionId", "")).strip()
            if question_id not in requests:
                raise MalformedResponseError(
                    f"results[{i}] has unknown questionId: {question_id!r}", raw_response=raw
                )
            if question_id in results:
                raise MalformedResponseError(
                    f"Duplicate questionId in response: {question_id!r}", raw_response=raw
                )

            result = to_grading_result(item, requests[question_id].max_score)
            self._log_low_confidence(result)
            results[question_id] = result

        missing = [qid for qid in requests if qid not in results]
        if missing:
            raise MalformedResponseError(
                f"Missing questions in response: {missing}", raw_response=raw
            )

        return {qid: results[qid] for qid in requests}

    async def _parse(self, raw: str, shape: JsonShape) -> Any:
        candidate = ResponseExtractor.extract(raw, shape)
        return await self._repair.parse(candidate, shape)

    @staticmethod
    def _unwrap_items(parsed: Any) -> list[Any]:
        if isinstance(parsed, list):
            return parsed
        # Some models wrap the array in an object despite the instructions
        if isinstance(parsed, dict) and isinstance(parsed.get("results"), list):
            return parsed["results"]
        raise MalformedResponseError(
            f"Exam grading response must be an array, got {type(parsed).__name__}"
        )

    def _log_low_confidence(self, result: GradingResult) -> None:
        if result.needs_review(self._settings.low_confidence_threshold):
            logger.info(
                "Low-confidence result (%.0f < %.0f), flag for review",
                result.confidence,
                self._settings.low_confidence_threshold,
            )

    async def health_check(self) -> bool:
        """
        Check if the grading engine is operational.

        Returns:
            True if the model endpoint is reachable.
        """
        return await self._llm_client.health_check()
