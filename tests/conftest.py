"""
Pytest configuration and fixtures.

Provides common test fixtures for all test modules.
"""

import asyncio
import json
import re
import tempfile
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Generator
from unittest.mock import AsyncMock

import pytest

from exam_grader.config import BatchPolicy, Settings
from exam_grader.exams import InMemoryExamRepository
from exam_grader.grading import BatchOrchestrator, GradingEngine, LLMError
from exam_grader.models import Exam, Question, StudentAnswer


# ==============================================================================
# Async Backend
# ==============================================================================


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


# ==============================================================================
# Directory Fixtures
# ==============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ==============================================================================
# Fake Model Clients
# ==============================================================================


Responder = Callable[[str], str]


class FakeLLMClient:
    """
    Stands in for ``LLMClient``.

    Each script entry is a reply string, an exception to raise, or a callable
    that builds the reply from the prompt. The last callable is reused once
    the script runs out; otherwise an exhausted script raises ``LLMError``.
    """

    def __init__(self, *script: Any, model: str = "test-model"):
        self.model = model
        self.calls: list[dict[str, Any]] = []
        self.closed = False
        self.in_flight = 0
        self.max_in_flight = 0
        self._script = list(script)

    async def generate(self, prompt: str, **kwargs: Any) -> str:
        self.calls.append({"prompt": prompt, **kwargs})
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            # Yield so concurrently started calls overlap
            await asyncio.sleep(0)
            return self._next_reply(prompt)
        finally:
            self.in_flight -= 1

    def _next_reply(self, prompt: str) -> str:
        if not self._script:
            raise LLMError("No scripted response left")
        entry = self._script[0]
        if callable(entry):
            if len(self._script) > 1:
                self._script.pop(0)
            return entry(prompt)
        self._script.pop(0)
        if isinstance(entry, Exception):
            raise entry
        return entry

    async def health_check(self) -> bool:
        return True

    async def aclose(self) -> None:
        self.closed = True

    async def __aenter__(self) -> "FakeLLMClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def grading_reply(score: float = 8, confidence: float = 90, feedback: str = "Good answer") -> str:
    """A well-formed single-answer grading reply."""
    return json.dumps(
        {
            "score": score,
            "confidence": confidence,
            "feedback": feedback,
            "scoringPoints": [
                {"point": "Accuracy", "status": "correct", "comment": "Matches the key"},
            ],
        }
    )


def answer_every_question(score: float = 4, confidence: float = 85) -> Responder:
    """A responder that grades every questionId found in an exam grading prompt."""

    def respond(prompt: str) -> str:
        question_ids = re.findall(r"^questionId: (.+)$", prompt, re.MULTILINE)
        return json.dumps(
            [
                {
                    "questionId": qid,
                    "score": score,
                    "confidence": confidence,
                    "feedback": f"Feedback for {qid}",
                    "scoringPoints": [{"point": "Key idea", "status": "partially", "comment": ""}],
                }
                for qid in question_ids
            ]
        )

    return respond


@pytest.fixture
def make_llm() -> Callable[..., FakeLLMClient]:
    """Factory for scripted fake model clients."""
    return FakeLLMClient


@pytest.fixture
def reply() -> Callable[..., str]:
    return grading_reply


@pytest.fixture
def exam_responder() -> Callable[..., Responder]:
    return answer_every_question


@pytest.fixture
def chat_response() -> Callable[[str | None], SimpleNamespace]:
    """Builds an object shaped like an OpenAI chat completion."""

    def build(content: str | None) -> SimpleNamespace:
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])

    return build


@pytest.fixture
def openai_stub() -> SimpleNamespace:
    """An async chat client exposing ``chat.completions.create``."""
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=AsyncMock())))


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture
def test_settings(temp_dir: Path) -> Settings:
    """Create test settings with mocked values."""
    return Settings(
        _env_file=None,
        llm_api_key="test-api-key-for-testing",
        llm_base_url="https://test.api.local/v1/",
        llm_model="test-model",
        llm_temperature=0.0,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        batch_size=3,
        batch_delay=0.0,
        low_confidence_threshold=60.0,
        output_directory=temp_dir / "output",
    )


# ==============================================================================
# Exam Data Fixtures
# ==============================================================================


@pytest.fixture
def sample_questions() -> list[Question]:
    return [
        Question(
            id="q1",
            exam_id="exam-1",
            number=1,
            content="2+2=?",
            standard_answer="4",
            score=10,
        ),
        Question(
            id="q2",
            exam_id="exam-1",
            number=2,
            content="What is the capital of France?",
            standard_answer="Paris",
            score=5,
        ),
    ]


@pytest.fixture
def sample_answers() -> list[StudentAnswer]:
    return [
        StudentAnswer(id="a1", exam_id="exam-1", question_id="q1", student_id="s1", content="4"),
        StudentAnswer(id="a2", exam_id="exam-1", question_id="q2", student_id="s1", content="Paris"),
        StudentAnswer(id="a3", exam_id="exam-1", question_id="q1", student_id="s2", content="5"),
        StudentAnswer(id="a4", exam_id="exam-1", question_id="q2", student_id="s2", content="Lyon"),
    ]


@pytest.fixture
def repository(
    sample_questions: list[Question], sample_answers: list[StudentAnswer]
) -> InMemoryExamRepository:
    """An in-memory store holding one published exam with two students."""
    repo = InMemoryExamRepository()
    repo.add_exam(Exam(id="exam-1", name="Arithmetic and Geography", status="published"))
    for question in sample_questions:
        repo.add_question(question)
    for answer in sample_answers:
        repo.add_answer(answer)
    return repo


@pytest.fixture
def build_orchestrator(test_settings: Settings) -> Callable[..., BatchOrchestrator]:
    def build(llm: FakeLLMClient, **policy: Any) -> BatchOrchestrator:
        engine = GradingEngine(llm, test_settings)  # type: ignore[arg-type]
        return BatchOrchestrator(engine, BatchPolicy(**{"delay": 0.0, **policy}))

    return build


# ==============================================================================
# File Fixtures
# ==============================================================================


@pytest.fixture
def sample_exam_text() -> str:
    return """Mid-term Exam

1. 2+2=? (10 points)
Answer: 4

2. What is the capital of France? (5 points)
Answer: Paris
"""


@pytest.fixture
def sample_txt_file(temp_dir: Path, sample_exam_text: str) -> Path:
    """Create a sample text file."""
    file_path = temp_dir / "exam.txt"
    file_path.write_text(sample_exam_text, encoding="utf-8")
    return file_path


@pytest.fixture
def empty_file(temp_dir: Path) -> Path:
    """Create an empty file."""
    file_path = temp_dir / "empty.txt"
    file_path.write_text("", encoding="utf-8")
    return file_path


@pytest.fixture
def whitespace_file(temp_dir: Path) -> Path:
    """Create a file with only whitespace."""
    file_path = temp_dir / "whitespace.txt"
    file_path.write_text("   \n\t\n   ", encoding="utf-8")
    return file_path
