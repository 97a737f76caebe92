"""
Batch grading orchestrator.

Grades every student of an exam in fixed-size chunks: students inside a
chunk are graded concurrently (one whole-exam call each), chunks run one
after the other with a pause in between to stay under rate limits.
A student whose call fails gets fallback results instead of aborting the run.
"""

import asyncio
import logging
from typing import Sequence

from exam_grader.config import BatchPolicy
from exam_grader.grading.engine import GradingEngine
from exam_grader.grading.llm_client import LLMError
from exam_grader.grading.scorer import ScoringError
from exam_grader.models import (
    BatchGradingOutcome,
    GradingRequest,
    GradingResult,
    Question,
    StudentAnswer,
)

logger = logging.getLogger(__name__)


class BatchGradingError(Exception):
    """Raised when a batch cannot start, e.g. there are no questions to grade against."""

    def __init__(self, message: str, exam_id: str):
        self.exam_id = exam_id
        super().__init__(message)


def chunked(items: Sequence[str], size: int) -> list[list[str]]:
    """Split items into consecutive chunks of at most ``size``."""
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class BatchOrchestrator:
    """
    Fans grading out across students while respecting rate limits.

    Every (student, question) pair submitted yields exactly one outcome.
    """

    def __init__(self, engine: GradingEngine, policy: BatchPolicy | None = None):
        self._engine = engine
        self._policy = policy or BatchPolicy()

    async def grade_batch(
        self,
        exam_id: str,
        questions: Sequence[Question],
        answers: Sequence[StudentAnswer],
    ) -> list[BatchGradingOutcome]:
        """
        Grade all answers of an exam.

        Args:
            exam_id: Exam being graded (for logging and errors).
            questions: Questions with standard answers and max scores.
            answers: Student answers to grade.

        Returns:
            One outcome per (student, question) pair, in chunk processing order.

        Raises:
            BatchGradingError: If there are no questions, or an answer refers
                to a question that does not exist. Raised before any request.
        """
        if not questions:
            raise BatchGradingError("No questions found for this exam", exam_id)

        question_map = {q.id: q for q in questions}
        by_student: dict[str, list[StudentAnswer]] = {}
        for answer in answers:
            if answer.question_id not in question_map:
                raise BatchGradingError(
                    f"Question not found for ID: {answer.question_id}", exam_id
                )
            by_student.setdefault(answer.student_id, []).append(answer)

        chunks = chunked(list(by_student), self._policy.batch_size)
        logger.info(
            "Grading exam %s: %d answers from %d students in %d chunks",
            exam_id,
            len(answers),
            len(by_student),
            len(chunks),
        )

        outcomes: list[BatchGradingOutcome] = []
        for index, chunk in enumerate(chunks):
            chunk_results = await asyncio.gather(
                *(
                    self._grade_student(exam_id, student_id, by_student[student_id], question_map)
                    for student_id in chunk
                )
            )
            for student_outcomes in chunk_results:
                outcomes.extend(student_outcomes)

            logger.debug("Exam %s: chunk %d/%d done", exam_id, index + 1, len(chunks))
            if index + 1 < len(chunks) and self._policy.delay > 0:
                await asyncio.sleep(self._policy.delay)

        fallbacks = sum(1 for o in outcomes if o.is_fallback)
        if fallbacks:
            logger.warning(
                "Exam %s: %d of %d answers need manual review", exam_id, fallbacks, len(outcomes)
            )
        return outcomes

    async def _grade_student(
        self,
        exam_id: str,
        student_id: str,
        answers: list[StudentAnswer],
        question_map: dict[str, Question],
    ) -> list[BatchGradingOutcome]:
        requests = {
            answer.question_id: _to_request(question_map[answer.question_id], answer)
            for answer in answers
        }

        try:
            results = await self._engine.grade_exam(requests)
        except (LLMError, ScoringError) as e:
            logger.error(
                "Grading failed for student %s on exam %s: %s", student_id, exam_id, e
            )
            if self._policy.per_question_fallback and len(requests) > 1:
                return await self._grade_questions_individually(student_id, requests)
            return [
                _fallback_outcome(student_id, question_id, str(e)) for question_id in requests
            ]

        return [
            BatchGradingOutcome(student_id=student_id, question_id=qid, result=result)
            for qid, result in results.items()
        ]

    async def _grade_questions_individually(
        self, student_id: str, requests: dict[str, GradingRequest]
    ) -> list[BatchGradingOutcome]:
        outcomes: list[BatchGradingOutcome] = []
        for question_id, request in requests.items():
            try:
                result = await self._engine.grade_answer(request)
            except (LLMError, ScoringError) as e:
                logger.error(
                    "Grading failed for student %s, question %s: %s", student_id, question_id, e
                )
                outcomes.append(_fallback_outcome(student_id, question_id, str(e)))
                continue
            outcomes.append(
                BatchGradingOutcome(student_id=student_id, question_id=question_id, result=result)
            )
        return outcomes


def _to_request(question: Question, answer: StudentAnswer) -> GradingRequest:
    return GradingRequest(
        question=question.content,
        standard_answer=question.standard_answer,
        candidate_answer=answer.content,
        max_score=question.score,
    )


def _fallback_outcome(student_id: str, question_id: str, reason: str) -> BatchGradingOutcome:
    return BatchGradingOutcome(
        student_id=student_id,
        question_id=question_id,
        result=GradingResult.fallback(f"AI grading failed: {reason}"),
        is_fallback=True,
    )
