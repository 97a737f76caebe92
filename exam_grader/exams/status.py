"""
Exam status driver.

Moves an exam through ``grading`` to ``completed`` or ``error`` around a
batch grading run, and writes the resulting grades to the data store.
Also handles single-answer grading and teacher overrides.
"""

import logging
from dataclasses import dataclass

from exam_grader.exams.repository import ExamRepository
from exam_grader.grading.batch import BatchOrchestrator
from exam_grader.grading.engine import GradingEngine
from exam_grader.models import (
    BatchGradingOutcome,
    ExamStatus,
    GradedBy,
    GradeRecord,
    GradingRequest,
    GradingResult,
    ScoringPoint,
    utc_now,
)

logger = logging.getLogger(__name__)


class ExamGradingError(Exception):
    """Raised when grading an exam fails before any outcome is produced."""

    def __init__(self, message: str, exam_id: str, cause: Exception | None = None):
        self.exam_id = exam_id
        self.cause = cause
        super().__init__(message)


@dataclass(frozen=True)
class ExamGradingSummary:
    """What a grading run did to an exam."""

    exam_id: str
    status: ExamStatus
    graded_count: int
    fallback_count: int
    remaining_count: int
    outcomes: tuple[BatchGradingOutcome, ...] = ()
    message: str = ""


class ExamStatusDriver:
    """
    Drives exam status transitions around AI grading.

    ``draft|published -> grading -> completed`` on success, ``grading -> error``
    if the run fails before producing outcomes. Per-student fallbacks do not
    count as failures.
    """

    def __init__(
        self,
        repository: ExamRepository,
        orchestrator: BatchOrchestrator,
        engine: GradingEngine,
    ):
        self._repository = repository
        self._orchestrator = orchestrator
        self._engine = engine

    async def grade_exam(self, exam_id: str) -> ExamGradingSummary:
        """
        Grade every ungraded answer of an exam and persist the grades.

        Raises:
            ExamGradingError: If the exam cannot be graded at all. The exam is
                left in the ``error`` state.
        """
        try:
            self._repository.set_status(exam_id, ExamStatus.GRADING)
            logger.info("Exam %s: status -> grading", exam_id)

            questions = self._repository.list_questions(exam_id)
            if not questions:
                raise ExamGradingError("No questions found for this exam", exam_id)

            answers = self._repository.list_ungraded_answers(exam_id)
            if not answers:
                self._repository.set_status(exam_id, ExamStatus.COMPLETED, graded_at=utc_now())
                logger.info("Exam %s: nothing to grade, status -> completed", exam_id)
                return ExamGradingSummary(
                    exam_id=exam_id,
                    status=ExamStatus.COMPLETED,
                    graded_count=0,
                    fallback_count=0,
                    remaining_count=0,
                    message="All answers already graded",
                )

            outcomes = await self._orchestrator.grade_batch(exam_id, questions, answers)

            answer_ids = {(a.question_id, a.student_id): a.id for a in answers}
            for outcome in outcomes:
                answer_id = answer_ids.get((outcome.question_id, outcome.student_id))
                self._repository.upsert_grade(GradeRecord.from_outcome(exam_id, outcome, answer_id))

            remaining = len(self._repository.list_ungraded_answers(exam_id))
            status = ExamStatus.GRADING
            if remaining == 0:
                status = ExamStatus.COMPLETED
                self._repository.set_status(exam_id, status, graded_at=utc_now())
            logger.info(
                "Exam %s: graded %d answers, %d remaining, status -> %s",
                exam_id,
                len(outcomes),
                remaining,
                status.value,
            )

            return ExamGradingSummary(
                exam_id=exam_id,
                status=status,
                graded_count=len(outcomes),
                fallback_count=sum(1 for o in outcomes if o.is_fallback),
                remaining_count=remaining,
                outcomes=tuple(outcomes),
            )

        except Exception as e:
            logger.error("Exam %s: grading failed: %s", exam_id, e)
            self._mark_error(exam_id)
            if isinstance(e, ExamGradingError):
                raise
            raise ExamGradingError(f"Error during batch grading: {e}", exam_id, cause=e) from e

    async def grade_student_answer(
        self, exam_id: str, question_id: str, student_id: str
    ) -> GradingResult:
        """
        Grade one student's answer to one question and persist the grade.

        Errors propagate; nothing is written on failure.
        """
        question = next(
            (q for q in self._repository.list_questions(exam_id) if q.id == question_id), None
        )
        if question is None:
            raise ExamGradingError(f"Question not found: {question_id}", exam_id)

        answer = self._repository.get_answer(exam_id, question_id, student_id)
        result = await self._engine.grade_answer(
            GradingRequest(
                question=question.content,
                standard_answer=question.standard_answer,
                candidate_answer=answer.content,
                max_score=question.score,
            )
        )

        outcome = BatchGradingOutcome(student_id=student_id, question_id=question_id, result=result)
        self._repository.upsert_grade(GradeRecord.from_outcome(exam_id, outcome, answer.id))
        return result

    def update_grade(
        self,
        exam_id: str,
        question_id: str,
        student_id: str,
        *,
        score: float | None = None,
        feedback: str | None = None,
        scoring_points: list[ScoringPoint] | None = None,
    ) -> GradeRecord:
        """
        Apply a teacher override to an existing grade.

        The AI verdict (``ai_score``, ``ai_confidence``) is kept; provenance
        switches to ``teacher``.
        """
        grade = self._repository.get_grade(exam_id, question_id, student_id)

        update: dict[str, object] = {
            "graded_by": GradedBy.TEACHER,
            "teacher_modified_at": utc_now(),
        }
        if score is not None:
            question = next(
                (q for q in self._repository.list_questions(exam_id) if q.id == question_id),
                None,
            )
            if score < 0 or (question is not None and score > question.score):
                raise ValueError(f"Score {score} is outside the allowed range for {question_id}")
            update["score"] = score
        if feedback is not None:
            update["feedback"] = feedback
        if scoring_points is not None:
            update["scoring_points"] = tuple(scoring_points)

        updated = grade.model_copy(update=update)
        self._repository.upsert_grade(updated)
        logger.info(
            "Grade for student %s, question %s of exam %s overridden by teacher",
            student_id,
            question_id,
            exam_id,
        )
        return updated

    def _mark_error(self, exam_id: str) -> None:
        try:
            self._repository.set_status(exam_id, ExamStatus.ERROR)
        except Exception as e:
            logger.error("Exam %s: could not record error status: %s", exam_id, e)
