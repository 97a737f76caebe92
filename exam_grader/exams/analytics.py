"""
Exam result analytics.

Score statistics computed from persisted grades and a model-assisted
review of individual question quality. Student reports turn one
student's grades into personalised feedback.
"""

import logging
from typing import Sequence

from exam_grader.exams.repository import ExamRepository
from exam_grader.grading.extractor import JsonShape, ResponseExtractor
from exam_grader.grading.json_repair import JSONRepairService
from exam_grader.grading.llm_client import LLMClient
from exam_grader.grading.prompt_builder import PromptBuilder
from exam_grader.grading.scorer import ScoringError, clamp
from exam_grader.models import (
    Exam,
    ExamAnalytics,
    GradeRecord,
    Question,
    QuestionDifficulty,
    QuestionQualityAnalysis,
    StudentReport,
)

logger = logging.getLogger(__name__)

# Share of a question's max score that marks it as a strength or weakness
STRENGTH_RATIO = 0.8
WEAKNESS_RATIO = 0.6


class AnalyticsError(Exception):
    """Raised when there is nothing to analyze."""


def analyze_exam_results(
    exam_id: str,
    questions: Sequence[Question],
    grades: Sequence[GradeRecord],
    passing_ratio: float = 0.6,
) -> ExamAnalytics:
    """
    Compute score statistics for a graded exam.

    Args:
        exam_id: The exam being analyzed.
        questions: All questions of the exam.
        grades: All grades recorded for the exam.
        passing_ratio: Share of the total possible score needed to pass.

    Returns:
        Averages, passing rate, extremes and per-question difficulty.

    Raises:
        AnalyticsError: If the exam has no questions or no grades.
    """
    if not questions:
        raise AnalyticsError(f"No questions found for exam {exam_id}")
    if not grades:
        raise AnalyticsError(f"No grades found for exam {exam_id}")

    totals: dict[str, float] = {}
    for grade in grades:
        totals[grade.student_id] = totals.get(grade.student_id, 0.0) + grade.score

    total_possible = sum(q.score for q in questions)
    passing_score = total_possible * passing_ratio
    passing = sum(1 for total in totals.values() if total >= passing_score)

    difficulty: list[QuestionDifficulty] = []
    for question in sorted(questions, key=lambda q: q.number):
        scores = [g.score for g in grades if g.question_id == question.id]
        avg = sum(scores) / len(scores) if scores else 0.0
        difficulty.append(
            QuestionDifficulty(
                question_id=question.id,
                question_number=question.number,
                avg_score=avg,
                max_score=question.score,
                difficulty_rate=(1 - avg / question.score) * 100 if scores else 0.0,
            )
        )

    return ExamAnalytics(
        exam_id=exam_id,
        student_count=len(totals),
        question_count=len(questions),
        total_possible_score=total_possible,
        average_score=sum(totals.values()) / len(totals),
        passing_rate=passing / len(totals) * 100,
        highest_score=max(totals.values()),
        lowest_score=min(totals.values()),
        question_difficulty=difficulty,
    )


class QuestionAnalyzer:
    """Asks the model to review how well a question worked."""

    NEUTRAL_SCORE = 50.0

    def __init__(self, llm_client: LLMClient):
        self._llm_client = llm_client
        self._repair = JSONRepairService(llm_client)

    async def analyze(
        self,
        question: str,
        standard_answer: str,
        student_answers: Sequence[str],
        scores: Sequence[float],
    ) -> QuestionQualityAnalysis:
        """
        Rate difficulty, discrimination and clarity of a question (0-100 each).

        An unusable model response yields a neutral analysis asking for a
        manual review; a failed model call raises ``LLMError``.
        """
        prompt = PromptBuilder.build_question_analysis_prompt(
            question, standard_answer, student_answers, scores
        )
        raw = await self._llm_client.generate(prompt, temperature=0.3)

        try:
            parsed = await self._repair.parse(ResponseExtractor.extract(raw), JsonShape.OBJECT)
            return QuestionQualityAnalysis(
                difficulty=self._metric(parsed, "difficulty"),
                discrimination=self._metric(parsed, "discrimination"),
                clarity=self._metric(parsed, "clarity"),
                suggestions=str(parsed.get("suggestions", "")),
            )
        except (ScoringError, AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Could not parse question analysis: %s", e)
            return QuestionQualityAnalysis(
                difficulty=self.NEUTRAL_SCORE,
                discrimination=self.NEUTRAL_SCORE,
                clarity=self.NEUTRAL_SCORE,
                suggestions="Unable to analyze this question. Please review manually.",
            )

    @staticmethod
    def _metric(parsed: dict, key: str) -> float:
        return clamp(float(parsed[key]), 0.0, 100.0)



def classify_performance(
    questions: Sequence[Question],
    grades: Sequence[GradeRecord],
) -> tuple[list[str], list[str]]:
    """
    Split a student's graded questions into strengths and weaknesses.

    A question is a strength at or above ``STRENGTH_RATIO`` of its max score
    and a weakness below ``WEAKNESS_RATIO``; anything in between is neither.
    Grades for unknown questions are ignored.

    Returns:
        ``(strengths, weaknesses)``, each entry naming the question and the
        student's score rate, in question order.
    """
    question_map = {q.id: q for q in questions}
    strengths: list[str] = []
    weaknesses: list[str] = []
    graded = [g for g in grades if g.question_id in question_map]
    for grade in sorted(graded, key=lambda g: question_map[g.question_id].number):
        question = question_map[grade.question_id]
        ratio = grade.score / question.score
        label = f"Q{question.number}: {question.content} (score rate: {ratio * 100:.0f}%)"
        if ratio >= STRENGTH_RATIO:
            strengths.append(label)
        elif ratio < WEAKNESS_RATIO:
            weaknesses.append(label)
    return strengths, weaknesses


class StudentReportGenerator:
    """Builds a personalised feedback report for one student on one exam."""

    FEEDBACK_TEMPERATURE = 0.7

    def __init__(self, llm_client: LLMClient):
        self._llm_client = llm_client

    async def generate(
        self,
        exam: Exam,
        student_id: str,
        questions: Sequence[Question],
        grades: Sequence[GradeRecord],
    ) -> StudentReport:
        """
        Classify the student's grades and ask the model for feedback.

        Args:
            exam: The graded exam.
            student_id: Student to report on.
            questions: All questions of the exam.
            grades: Grades of the exam; other students' grades are ignored.

        Returns:
            The report, not yet stored.

        Raises:
            AnalyticsError: If the student has no grades on the exam.
            LLMError: If the model call fails.
        """
        own = [g for g in grades if g.student_id == student_id]
        if not own:
            raise AnalyticsError(f"No grades found for student {student_id} on exam {exam.id}")

        strengths, weaknesses = classify_performance(questions, own)
        total_score = sum(g.score for g in own)
        total_possible = sum(q.score for q in questions)

        prompt = PromptBuilder.build_feedback_prompt(
            student_id,
            exam.name or f"exam {exam.id}",
            strengths,
            weaknesses,
            total_score,
            total_possible,
        )
        feedback = await self._llm_client.generate(prompt, temperature=self.FEEDBACK_TEMPERATURE)
        logger.info(
            "Report for student %s on exam %s: %d strengths, %d weaknesses",
            student_id,
            exam.id,
            len(strengths),
            len(weaknesses),
        )

        return StudentReport(
            exam_id=exam.id,
            student_id=student_id,
            total_score=total_score,
            total_possible_score=total_possible,
            strengths=strengths,
            weaknesses=weaknesses,
            feedback=feedback.strip(),
        )

    async def create_report(
        self, repository: ExamRepository, exam_id: str, student_id: str
    ) -> StudentReport:
        """Generate a student's report from the store and save it there."""
        report = await self.generate(
            repository.get_exam(exam_id),
            student_id,
            repository.list_questions(exam_id),
            repository.list_grades(exam_id),
        )
        repository.upsert_report(report)
        return report
