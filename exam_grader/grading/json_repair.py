"""
JSON repair for malformed model output.

When the extracted text does not parse, the model is asked to fix its own
output. If that still does not parse, a deterministic cleanup pass is the
last resort before the unit is reported as failed.
"""

import json
import logging
import re
from typing import Any

from exam_grader.grading.extractor import JsonShape, ResponseExtractor
from exam_grader.grading.llm_client import LLMClient, LLMError
from exam_grader.grading.prompt_builder import PromptBuilder
from exam_grader.grading.scorer import ScoringError

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
# Naive: also rewrites "word:" sequences inside string values after a comma or brace
_BARE_KEY = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)\s*:")


class JSONRepairError(ScoringError):
    """Raised when a response cannot be turned into valid JSON."""


def deterministic_cleanup(text: str) -> str:
    """
    Apply last-resort syntax fixes to a JSON candidate.

    - Strips control characters
    - Removes trailing commas before ``}`` and ``]``
    - Wraps bare object keys in double quotes
    """
    cleaned = _CONTROL_CHARS.sub("", text)
    cleaned = _TRAILING_COMMA.sub(r"\1", cleaned)
    cleaned = _BARE_KEY.sub(r'\1"\2":', cleaned)
    return cleaned.strip()


class JSONRepairService:
    """
    Parses model output into JSON, repairing it when necessary.

    Never returns fabricated data: if every strategy fails, ``JSONRepairError``
    is raised and the caller decides how to degrade.
    """

    def __init__(self, llm_client: LLMClient | None):
        """
        Args:
            llm_client: Client used for model-assisted repair. ``None`` skips
                straight to the deterministic cleanup.
        """
        self._llm_client = llm_client

    async def repair(
        self,
        broken_text: str,
        error_message: str,
        shape: JsonShape = JsonShape.OBJECT,
    ) -> str:
        """
        Ask the model to correct a broken JSON document.

        Returns:
            The extracted JSON candidate from the repair response (not parsed).

        Raises:
            LLMError: If no client is configured or the call fails.
        """
        if self._llm_client is None:
            raise LLMError("No model client available for JSON repair")

        prompt = PromptBuilder.build_repair_prompt(broken_text, error_message)
        response = await self._llm_client.generate(
            prompt,
            system_prompt=PromptBuilder.JSON_REPAIR_SYSTEM_PROMPT,
            temperature=0.0,
        )
        return ResponseExtractor.extract(response, shape)

    async def parse(self, text: str, shape: JsonShape = JsonShape.OBJECT) -> Any:
        """
        Parse a JSON candidate, repairing it if needed.

        Args:
            text: Output of the response extractor.
            shape: Expected top-level shape, used when extracting the repair reply.

        Returns:
            The parsed JSON value.

        Raises:
            JSONRepairError: If the text cannot be parsed by any strategy.
        """
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            first_error = e

        logger.info("Model output is not valid JSON (%s), attempting repair", first_error)

        candidates = [text]
        repaired = text
        try:
            repaired = await self.repair(text, str(first_error), shape)
            return json.loads(repaired)
        except LLMError as e:
            logger.warning("Model-assisted JSON repair failed: %s", e)
        except json.JSONDecodeError as e:
            logger.warning("Repaired JSON still invalid: %s", e)
            if repaired != text:
                candidates.append(repaired)

        # Original text first, then the repair reply
        last_error = first_error
        for candidate in candidates:
            try:
                return json.loads(deterministic_cleanup(candidate), strict=False)
            except json.JSONDecodeError as e:
                last_error = e

        raise JSONRepairError(
            f"Could not repair JSON in response: {last_error}",
            raw_response=text,
        ) from last_error
