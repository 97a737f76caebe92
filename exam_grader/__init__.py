"""
Exam Grader - LLM-backed grading of free-text exam answers.

This package scores student answers against a standard answer with an
OpenAI-compatible model, recovers from malformed model output, and grades
whole exams in throttled batches with per-student fallbacks.
"""

__version__ = "1.0.0"
