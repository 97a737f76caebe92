"""
Parsed exam validation.

Checks a parsed exam paper for problems a teacher should fix before the
questions are used for grading.
"""

from exam_grader.models import ParsedExam, ParsedQuestion, QuestionType


class ExamValidationError(Exception):
    """Raised when a parsed exam is not usable for grading."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        message = "Exam validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        super().__init__(message)


class ExamValidator:
    """
    Validates parsed exams.

    Checks:
    1. The exam has questions
    2. Every question has content, a standard answer and a positive score
    3. Choice questions have options
    4. Question ids are unique
    """

    CHOICE_TYPES = frozenset({QuestionType.CHOICE, QuestionType.MULTI_CHOICE})

    def validate(self, exam: ParsedExam) -> tuple[bool, list[str]]:
        """
        Validate a parsed exam and return any issues found.

        Returns:
            Tuple of (is_valid, list of issues).
        """
        issues: list[str] = []

        if not exam.success:
            return False, [exam.error or "Exam parsing failed"]

        if not exam.questions:
            return False, ["Exam has no questions"]

        for question in exam.questions:
            issues.extend(self._validate_question(question))

        issues.extend(self._check_duplicates(exam.questions))

        return len(issues) == 0, issues

    def validate_or_raise(self, exam: ParsedExam) -> None:
        is_valid, issues = self.validate(exam)
        if not is_valid:
            raise ExamValidationError(issues)

    def _validate_question(self, question: ParsedQuestion) -> list[str]:
        issues: list[str] = []
        prefix = f"Question {question.id}"

        if not question.content.strip():
            issues.append(f"{prefix}: Question text is empty")

        if not question.answer.strip():
            issues.append(f"{prefix}: Standard answer is missing")

        if question.score <= 0:
            issues.append(f"{prefix}: Score must be greater than 0")

        if question.type in self.CHOICE_TYPES and not question.options:
            issues.append(f"{prefix}: Choice question has no options")

        return issues

    def _check_duplicates(self, questions: list[ParsedQuestion]) -> list[str]:
        issues: list[str] = []
        seen: set[str] = set()

        for question in questions:
            if question.id in seen:
                issues.append(f"Duplicate question id: '{question.id}'")
            seen.add(question.id)

        return issues
