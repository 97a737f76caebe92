"""
HTTP entry points for the host application.

Thin FastAPI routes over the exam parser, the JSON repair service and
single-answer grading. Each request builds its own model client from the
API key it carries.
"""

import logging
from typing import Any, Callable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from exam_grader.config import ClientConfig, Settings, get_settings
from exam_grader.grading.engine import GradingEngine
from exam_grader.grading.json_repair import JSONRepairService
from exam_grader.grading.llm_client import LLMClient, LLMError
from exam_grader.grading.scorer import ScoringError
from exam_grader.models import GradingRequest, ParsedExam
from exam_grader.parsing.exam_parser import ExamParser

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ClientConfig], LLMClient]


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ExamParserRequest(_CamelModel):
    file_content: str | None = Field(default=None, alias="fileContent")
    api_key: str | None = Field(default=None, alias="apiKey")
    model: str | None = None


class MultimodalExamParserRequest(_CamelModel):
    images: list[str] | None = None
    api_key: str | None = Field(default=None, alias="apiKey")
    model: str | None = None


class JsonFixerRequest(_CamelModel):
    broken_json: str | None = Field(default=None, alias="brokenJson")
    error_message: str | None = Field(default=None, alias="errorMessage")
    api_key: str | None = Field(default=None, alias="apiKey")
    model: str | None = None


class GradeAnswerRequest(_CamelModel):
    question: str
    standard_answer: str = Field(alias="standardAnswer")
    candidate_answer: str = Field(alias="candidateAnswer")
    max_score: float = Field(gt=0, alias="maxScore")
    api_key: str | None = Field(default=None, alias="apiKey")
    model: str | None = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _parsed_exam_response(parsed: ParsedExam, default_error: str) -> Any:
    if not parsed.success:
        return _error(500, parsed.error or default_error)
    return {
        "success": True,
        "questions": [q.model_dump(mode="json") for q in parsed.questions],
        "totalScore": parsed.total_score,
    }


def create_app(
    settings: Settings | None = None,
    client_factory: ClientFactory | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Configuration settings. Uses global settings if not provided.
        client_factory: Builds a model client from a per-request config.
    """
    settings = settings or get_settings()

    def make_client(api_key: str, model: str | None) -> LLMClient:
        config = settings.client_config(api_key=api_key, model=model)
        if client_factory is not None:
            return client_factory(config)
        return LLMClient(config, settings.retry_policy(), temperature=settings.llm_temperature)

    app = FastAPI(title="Exam Grader API", version="1.0.0")

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'][1:])}: {err['msg']}"
            for err in exc.errors()
        )
        return _error(400, f"Invalid request: {details}")

    @app.post("/api/exam-parser")
    async def parse_exam(req: ExamParserRequest) -> Any:
        if not req.file_content:
            return _error(400, "Missing file content")
        if not req.api_key:
            return _error(400, "Missing API key")

        async with make_client(req.api_key, req.model) as client:
            parser = ExamParser(client, settings.max_content_length)
            parsed = await parser.parse_text(req.file_content)
        return _parsed_exam_response(parsed, "Exam parsing failed")

    @app.post("/api/exam-parser-multimodal")
    async def parse_exam_images(req: MultimodalExamParserRequest) -> Any:
        if not req.images:
            return _error(400, "Missing exam images")
        if not req.api_key:
            return _error(400, "Missing API key")

        async with make_client(req.api_key, req.model) as client:
            parser = ExamParser(client, settings.max_content_length)
            parsed = await parser.parse_images(req.images)
        return _parsed_exam_response(parsed, "Exam image parsing failed")

    @app.post("/api/json-fixer")
    async def fix_json(req: JsonFixerRequest) -> Any:
        if not req.broken_json:
            return _error(400, "Missing JSON to repair")
        if not req.api_key:
            return _error(400, "Missing API key")

        try:
            async with make_client(req.api_key, req.model) as client:
                fixed = await JSONRepairService(client).repair(
                    req.broken_json, req.error_message or "JSON parsing failed"
                )
        except LLMError as e:
            logger.error("JSON repair failed: %s", e)
            return _error(500, str(e))

        return {"success": True, "fixedJson": fixed}

    @app.post("/api/grade-answer")
    async def grade_answer(req: GradeAnswerRequest) -> Any:
        api_key = req.api_key or settings.llm_api_key
        if not api_key:
            return _error(400, "Missing API key")
        request = GradingRequest(
            question=req.question,
            standard_answer=req.standard_answer,
            candidate_answer=req.candidate_answer,
            max_score=req.max_score,
        )

        try:
            async with make_client(api_key, req.model) as client:
                result = await GradingEngine(client, settings).grade_answer(request)
        except (LLMError, ScoringError) as e:
            logger.error("Grading failed: %s", e)
            return _error(500, str(e))

        return {
            "success": True,
            "result": result.model_dump(mode="json", by_alias=True),
            "needsReview": result.needs_review(settings.low_confidence_threshold),
        }

    return app

