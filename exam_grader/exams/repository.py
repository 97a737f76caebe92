"""
Exam data store interface.

The production data store is an external service; the grading pipeline
only reads questions and answers and writes grades, exam status and
student reports through this interface.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field

from exam_grader.models import (
    Exam,
    ExamStatus,
    GradeRecord,
    Question,
    StudentAnswer,
    StudentReport,
)

logger = logging.getLogger(__name__)


class ExamNotFoundError(Exception):
    """Raised when an exam, answer or grade does not exist in the store."""


class ExamRepository(ABC):
    """Narrow read/write interface the grading pipeline needs from the store."""

    @abstractmethod
    def get_exam(self, exam_id: str) -> Exam: ...

    @abstractmethod
    def set_status(
        self, exam_id: str, status: ExamStatus, graded_at: datetime | None = None
    ) -> None: ...

    @abstractmethod
    def list_questions(self, exam_id: str) -> list[Question]: ...

    @abstractmethod
    def list_answers(self, exam_id: str) -> list[StudentAnswer]: ...

    @abstractmethod
    def list_grades(self, exam_id: str) -> list[GradeRecord]: ...

    @abstractmethod
    def upsert_grade(self, grade: GradeRecord) -> None: ...

    @abstractmethod
    def get_report(self, exam_id: str, student_id: str) -> StudentReport: ...

    @abstractmethod
    def upsert_report(self, report: StudentReport) -> None: ...

    def get_grade(self, exam_id: str, question_id: str, student_id: str) -> GradeRecord:
        for grade in self.list_grades(exam_id):
            if grade.question_id == question_id and grade.student_id == student_id:
                return grade
        raise ExamNotFoundError(
            f"No grade for student {student_id} on question {question_id} of exam {exam_id}"
        )

    def get_answer(self, exam_id: str, question_id: str, student_id: str) -> StudentAnswer:
        for answer in self.list_answers(exam_id):
            if answer.question_id == question_id and answer.student_id == student_id:
                return answer
        raise ExamNotFoundError(
            f"No answer from student {student_id} to question {question_id} of exam {exam_id}"
        )

    def list_ungraded_answers(self, exam_id: str) -> list[StudentAnswer]:
        """Answers that have no grade yet."""
        graded = {(g.question_id, g.student_id) for g in self.list_grades(exam_id)}
        return [
            a for a in self.list_answers(exam_id) if (a.question_id, a.student_id) not in graded
        ]


class ExamSnapshot(BaseModel):
    """Everything the store holds, in a serialisable form."""

    exams: list[Exam] = Field(default_factory=list)
    questions: list[Question] = Field(default_factory=list)
    answers: list[StudentAnswer] = Field(default_factory=list)
    grades: list[GradeRecord] = Field(default_factory=list)
    reports: list[StudentReport] = Field(default_factory=list)


class InMemoryExamRepository(ExamRepository):
    """Dictionary-backed store. Base of the JSON file store, also used directly in tests."""

    def __init__(self, snapshot: ExamSnapshot | None = None):
        self._exams: dict[str, Exam] = {}
        self._questions: dict[str, list[Question]] = {}
        self._answers: dict[str, list[StudentAnswer]] = {}
        self._grades: dict[tuple[str, str, str], GradeRecord] = {}
        self._reports: dict[tuple[str, str], StudentReport] = {}
        if snapshot is not None:
            self.load(snapshot)

    def load(self, snapshot: ExamSnapshot) -> None:
        for exam in snapshot.exams:
            self.add_exam(exam)
        for question in snapshot.questions:
            self.add_question(question)
        for answer in snapshot.answers:
            self.add_answer(answer)
        for grade in snapshot.grades:
            self._grades[grade.key] = grade
        for report in snapshot.reports:
            self._reports[report.key] = report

    def snapshot(self) -> ExamSnapshot:
        return ExamSnapshot(
            exams=list(self._exams.values()),
            questions=[q for qs in self._questions.values() for q in qs],
            answers=[a for ans in self._answers.values() for a in ans],
            grades=list(self._grades.values()),
            reports=list(self._reports.values()),
        )

    def add_exam(self, exam: Exam) -> None:
        self._exams[exam.id] = exam

    def add_question(self, question: Question) -> None:
        self._questions.setdefault(question.exam_id, []).append(question)

    def add_answer(self, answer: StudentAnswer) -> None:
        self._answers.setdefault(answer.exam_id, []).append(answer)

    def get_exam(self, exam_id: str) -> Exam:
        try:
            return self._exams[exam_id]
        except KeyError:
            raise ExamNotFoundError(f"Exam not found: {exam_id}") from None

    def set_status(
        self, exam_id: str, status: ExamStatus, graded_at: datetime | None = None
    ) -> None:
        exam = self.get_exam(exam_id)
        update: dict[str, object] = {"status": status}
        if graded_at is not None:
            update["graded_at"] = graded_at
        self._exams[exam_id] = exam.model_copy(update=update)

    def list_questions(self, exam_id: str) -> list[Question]:
        return sorted(self._questions.get(exam_id, []), key=lambda q: q.number)

    def list_answers(self, exam_id: str) -> list[StudentAnswer]:
        return list(self._answers.get(exam_id, []))

    def list_grades(self, exam_id: str) -> list[GradeRecord]:
        return [g for key, g in self._grades.items() if key[0] == exam_id]

    def upsert_grade(self, grade: GradeRecord) -> None:
        self._grades[grade.key] = grade

    def get_report(self, exam_id: str, student_id: str) -> StudentReport:
        try:
            return self._reports[(exam_id, student_id)]
        except KeyError:
            raise ExamNotFoundError(
                f"No report for student {student_id} on exam {exam_id}"
            ) from None

    def upsert_report(self, report: StudentReport) -> None:
        self._reports[report.key] = report


class JsonFileExamRepository(InMemoryExamRepository):
    """
    In-memory store persisted to a JSON file after every write.

    Used by the CLI as a stand-in for the hosted data store.
    """

    def __init__(self, path: Path):
        self._path = path
        snapshot = None
        if path.exists():
            snapshot = ExamSnapshot.model_validate_json(path.read_text(encoding="utf-8"))
        super().__init__(snapshot)

    @property
    def path(self) -> Path:
        return self._path

    def save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(self.snapshot().model_dump_json(indent=2), encoding="utf-8")
        logger.debug("Saved exam store to %s", self._path)

    def import_bundle(self, bundle_path: Path) -> ExamSnapshot:
        """Merge an exam bundle file (same layout as the store) into the store."""
        bundle = ExamSnapshot.model_validate_json(bundle_path.read_text(encoding="utf-8"))
        for exam in bundle.exams:
            self.add_exam(exam)
        known_questions = {q.id for qs in self._questions.values() for q in qs}
        for question in bundle.questions:
            if question.id not in known_questions:
                self.add_question(question)
        known_answers = {a.id for ans in self._answers.values() for a in ans}
        for answer in bundle.answers:
            if answer.id not in known_answers:
                self.add_answer(answer)
        self.save()
        return bundle

    def set_status(
        self, exam_id: str, status: ExamStatus, graded_at: datetime | None = None
    ) -> None:
        super().set_status(exam_id, status, graded_at)
        self.save()

    def upsert_grade(self, grade: GradeRecord) -> None:
        super().upsert_grade(grade)
        self.save()

    def upsert_report(self, report: StudentReport) -> None:
        super().upsert_report(report)
        self.save()
