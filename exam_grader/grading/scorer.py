"""
Validation and clamping of parsed grading responses.

Model output is duck-typed JSON. Every field is checked for presence and
primitive type before a ``GradingResult`` is built; numeric judgments that
fall out of range are clamped rather than rejected.
"""

import math
from typing import Any

from exam_grader.models import GradingResult, ScoringPoint, ScoringStatus


class ScoringError(Exception):
    """Raised when a grading response cannot be turned into a result."""

    def __init__(self, message: str, raw_response: str | None = None):
        self.raw_response = raw_response
        super().__init__(message)


class MalformedResponseError(ScoringError):
    """Raised when a response is valid JSON but has the wrong shape."""


_STATUS_ALIASES = {
    "partial": ScoringStatus.PARTIALLY,
    "partially_correct": ScoringStatus.PARTIALLY,
    "wrong": ScoringStatus.INCORRECT,
}


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a valid score
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def _parse_status(value: Any, index: int) -> ScoringStatus:
    if not isinstance(value, str):
        raise MalformedResponseError(f"scoringPoints[{index}].status must be a string")

    normalized = value.strip().lower()
    try:
        return ScoringStatus(normalized)
    except ValueError:
        if normalized in _STATUS_ALIASES:
            return _STATUS_ALIASES[normalized]
        raise MalformedResponseError(
            f"scoringPoints[{index}].status has unknown value: {value!r}"
        ) from None


def _parse_scoring_points(items: list[Any]) -> tuple[ScoringPoint, ...]:
    points: list[ScoringPoint] = []

    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise MalformedResponseError(f"scoringPoints[{i}] must be an object")

        point = item.get("point")
        if not isinstance(point, str):
            raise MalformedResponseError(f"scoringPoints[{i}].point must be a string")

        comment = item.get("comment", "")
        if comment is None:
            comment = ""
        if not isinstance(comment, str):
            raise MalformedResponseError(f"scoringPoints[{i}].comment must be a string")

        points.append(
            ScoringPoint(point=point, status=_parse_status(item.get("status"), i), comment=comment)
        )

    return tuple(points)


def to_grading_result(parsed: Any, max_score: float) -> GradingResult:
    """
    Validate a parsed response object and convert it to a ``GradingResult``.

    Args:
        parsed: Parsed JSON value from the model.
        max_score: Maximum score for the question.

    Returns:
        A result with score clamped into ``[0, max_score]`` and confidence
        clamped into ``[0, 100]``.

    Raises:
        MalformedResponseError: If a field is missing or has the wrong type.
    """
    if not isinstance(parsed, dict):
        raise MalformedResponseError(
            f"Grading response must be an object, got {type(parsed).__name__}"
        )

    for field in ("score", "confidence", "feedback", "scoringPoints"):
        if field not in parsed:
            raise MalformedResponseError(f"Missing required field: {field}")

    score = parsed["score"]
    confidence = parsed["confidence"]
    feedback = parsed["feedback"]
    scoring_points = parsed["scoringPoints"]

    if not _is_number(score):
        raise MalformedResponseError(f"Invalid numeric value for score: {score!r}")
    if not _is_number(confidence):
        raise MalformedResponseError(f"Invalid numeric value for confidence: {confidence!r}")
    if not isinstance(feedback, str):
        raise MalformedResponseError("feedback must be a string")
    if not isinstance(scoring_points, list):
        raise MalformedResponseError("scoringPoints must be a list")

    return GradingResult(
        score=clamp(float(score), 0.0, float(max_score)),
        confidence=clamp(float(confidence), 0.0, 100.0),
        feedback=feedback,
        scoring_points=_parse_scoring_points(scoring_points),
    )
