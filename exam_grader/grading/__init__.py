"""
AI Grading Module.

Prompting, model access, JSON extraction and repair, result validation and
batch orchestration for grading free-text answers.
"""

from exam_grader.grading.batch import BatchGradingError, BatchOrchestrator
from exam_grader.grading.engine import GradingEngine
from exam_grader.grading.extractor import JsonShape, ResponseExtractor
from exam_grader.grading.json_repair import JSONRepairError, JSONRepairService, deterministic_cleanup
from exam_grader.grading.llm_client import LLMClient, LLMError
from exam_grader.grading.prompt_builder import PromptBuilder
from exam_grader.grading.scorer import MalformedResponseError, ScoringError, to_grading_result

__all__ = [
    "BatchGradingError",
    "BatchOrchestrator",
    "GradingEngine",
    "JSONRepairError",
    "JSONRepairService",
    "JsonShape",
    "LLMClient",
    "LLMError",
    "MalformedResponseError",
    "PromptBuilder",
    "ResponseExtractor",
    "ScoringError",
    "deterministic_cleanup",
    "to_grading_result",
]
