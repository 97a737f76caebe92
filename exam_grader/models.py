"""
Pydantic models for the Exam Grader.

These models define the schemas for:
- Grading requests and AI grading results with scoring points
- Batch grading outcomes
- Exam, question, answer and grade records exchanged with the data store
- Parsed exams, extracted documents and analytics

Scores are plain floats: model output is JSON and partial credit may be fractional.
"""

from datetime import datetime, timezone
from enum import Enum
from hashlib import sha256
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    model_validator,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ==============================================================================
# Grading Models
# ==============================================================================


class ScoringStatus(str, Enum):
    """Verdict for a single scoring point."""

    CORRECT = "correct"
    PARTIALLY = "partially"
    INCORRECT = "incorrect"


class GradedBy(str, Enum):
    """Provenance of a grade."""

    AI = "ai"
    TEACHER = "teacher"


class ScoringPoint(BaseModel):
    """One rubric criterion with a correctness verdict and comment."""

    model_config = ConfigDict(frozen=True)

    point: str = Field(..., description="Aspect being evaluated")
    status: ScoringStatus = Field(..., description="Correctness verdict")
    comment: str = Field(default="", description="Short comment about this aspect")


class GradingRequest(BaseModel):
    """
    A single (question, standard answer, candidate answer) triple to grade.

    Transient: constructed per grading call and never persisted.
    """

    model_config = ConfigDict(frozen=True)

    question: str
    standard_answer: str
    candidate_answer: str
    max_score: float = Field(..., gt=0)


MANUAL_REVIEW_FEEDBACK = "Error occurred during grading. Please review manually."


class GradingResult(BaseModel):
    """
    Canonical grading result for one answer.

    The grading engine clamps ``score`` into ``[0, max_score]`` and
    ``confidence`` into ``[0, 100]`` before constructing this model.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    score: float = Field(..., ge=0)
    confidence: float = Field(..., ge=0, le=100)
    feedback: str
    scoring_points: tuple[ScoringPoint, ...] = Field(
        default=(),
        alias="scoringPoints",
    )

    @classmethod
    def fallback(cls, reason: str = "An error occurred during the grading process.") -> "GradingResult":
        """Sentinel result substituted when an answer could not be graded."""
        return cls(
            score=0,
            confidence=0,
            feedback=MANUAL_REVIEW_FEEDBACK,
            scoring_points=(
                ScoringPoint(point="Error", status=ScoringStatus.INCORRECT, comment=reason),
            ),
        )

    def needs_review(self, threshold: float) -> bool:
        """Whether the model's confidence is too low to trust without a human."""
        return self.confidence < threshold


class BatchGradingOutcome(BaseModel):
    """Grading result for one (student, question) pair of a batch run."""

    model_config = ConfigDict(frozen=True)

    student_id: str
    question_id: str
    result: GradingResult
    is_fallback: bool = False


# ==============================================================================
# Data Store Records
# ==============================================================================


class ExamStatus(str, Enum):
    """Lifecycle of an exam as seen by the grading pipeline."""

    DRAFT = "draft"
    PUBLISHED = "published"
    GRADING = "grading"
    COMPLETED = "completed"
    ERROR = "error"


class Exam(BaseModel):
    id: str
    name: str = ""
    status: ExamStatus = ExamStatus.DRAFT
    graded_at: datetime | None = None


class Question(BaseModel):
    """An exam question; ``score`` is the maximum score for the question."""

    model_config = ConfigDict(frozen=True)

    id: str
    exam_id: str
    number: int = 0
    content: str
    standard_answer: str
    score: float = Field(..., gt=0)


class StudentAnswer(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    exam_id: str
    question_id: str
    student_id: str
    content: str


class GradeRecord(BaseModel):
    """
    A persisted grade for one (exam, question, student) triple.

    ``ai_score`` and ``ai_confidence`` keep the model's verdict even after a
    teacher override changes ``score`` and switches ``graded_by``.
    """

    exam_id: str
    question_id: str
    student_id: str
    answer_id: str | None = None
    score: float = Field(..., ge=0)
    ai_score: float | None = None
    ai_confidence: float | None = None
    feedback: str = ""
    scoring_points: tuple[ScoringPoint, ...] = ()
    graded_by: GradedBy = GradedBy.AI
    graded_at: datetime = Field(default_factory=utc_now)
    teacher_modified_at: datetime | None = None

    @classmethod
    def from_outcome(
        cls, exam_id: str, outcome: BatchGradingOutcome, answer_id: str | None = None
    ) -> "GradeRecord":
        """Build an AI-provenance grade from a batch outcome."""
        return cls(
            exam_id=exam_id,
            question_id=outcome.question_id,
            student_id=outcome.student_id,
            answer_id=answer_id,
            score=outcome.result.score,
            ai_score=outcome.result.score,
            ai_confidence=outcome.result.confidence,
            feedback=outcome.result.feedback,
            scoring_points=outcome.result.scoring_points,
            graded_by=GradedBy.AI,
        )

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.exam_id, self.question_id, self.student_id)


# ==============================================================================
# Exam Parsing Models
# ==============================================================================


class QuestionType(str, Enum):
    CHOICE = "choice"
    MULTI_CHOICE = "multiChoice"
    FILL = "fill"
    SHORT_ANSWER = "shortAnswer"
    ESSAY = "essay"


class ParsedQuestion(BaseModel):
    """A question extracted from an uploaded exam paper."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: QuestionType = QuestionType.SHORT_ANSWER
    content: str
    options: list[str] | None = None
    answer: str = ""
    score: float = Field(default=0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def coerce_id(cls, data: Any) -> Any:
        """Models frequently number questions with integers."""
        if isinstance(data, dict) and isinstance(data.get("id"), (int, float)):
            data = {**data, "id": str(data["id"])}
        return data


class ParsedExam(BaseModel):
    """Outcome of parsing an exam paper. Failures are reported, not raised."""

    success: bool
    questions: list[ParsedQuestion] = Field(default_factory=list)
    error: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_score(self) -> float:
        return sum(q.score for q in self.questions)

    @classmethod
    def failure(cls, error: str) -> "ParsedExam":
        return cls(success=False, error=error)


# ==============================================================================
# Document Extraction Models
# ==============================================================================


class ExtractedDocument(BaseModel):
    """Text pulled out of an uploaded exam document."""

    model_config = ConfigDict(frozen=True)

    content: str
    source_path: str
    file_extension: str
    extracted_at: datetime = Field(default_factory=utc_now)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def character_count(self) -> int:
        return len(self.content)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def content_hash(self) -> str:
        return sha256(self.content.encode("utf-8")).hexdigest()


# ==============================================================================
# Analytics Models
# ==============================================================================


class QuestionDifficulty(BaseModel):
    question_id: str
    question_number: int
    avg_score: float
    max_score: float
    difficulty_rate: float = Field(..., description="Percentage of marks lost on average")


class ExamAnalytics(BaseModel):
    exam_id: str
    student_count: int
    question_count: int
    total_possible_score: float
    average_score: float
    passing_rate: float
    highest_score: float
    lowest_score: float
    question_difficulty: list[QuestionDifficulty]
    analyzed_at: datetime = Field(default_factory=utc_now)


class QuestionQualityAnalysis(BaseModel):
    difficulty: float = Field(..., ge=0, le=100)
    discrimination: float = Field(..., ge=0, le=100)
    clarity: float = Field(..., ge=0, le=100)
    suggestions: str


class StudentReport(BaseModel):
    """
    Personalised feedback for one student on one exam.

    ``strengths`` and ``weaknesses`` list the questions the feedback was
    based on, each with the student's score rate.
    """

    exam_id: str
    student_id: str
    total_score: float
    total_possible_score: float
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    feedback: str
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def key(self) -> tuple[str, str]:
        return (self.exam_id, self.student_id)
