"""
Exam Module.

Data store interface, exam status transitions around grading runs,
teacher overrides, result analytics and student reports.
"""

from exam_grader.exams.analytics import (
    AnalyticsError,
    QuestionAnalyzer,
    StudentReportGenerator,
    analyze_exam_results,
    classify_performance,
)
from exam_grader.exams.repository import (
    ExamNotFoundError,
    ExamRepository,
    ExamSnapshot,
    InMemoryExamRepository,
    JsonFileExamRepository,
)
from exam_grader.exams.status import ExamGradingError, ExamGradingSummary, ExamStatusDriver

__all__ = [
    "AnalyticsError",
    "ExamGradingError",
    "ExamGradingSummary",
    "ExamNotFoundError",
    "ExamRepository",
    "ExamSnapshot",
    "ExamStatusDriver",
    "InMemoryExamRepository",
    "JsonFileExamRepository",
    "QuestionAnalyzer",
    "StudentReportGenerator",
    "analyze_exam_results",
    "classify_performance",
]
