"""
Locates the JSON payload inside a free-form model response.

Models wrap JSON in code fences, prose or partial markdown, and long
responses are sometimes truncated. The extractor only narrows the
search space; parsing happens in the repair service.
"""

import re
from enum import Enum


class JsonShape(str, Enum):
    """Top-level JSON value expected from the model."""

    OBJECT = "object"
    ARRAY = "array"


_FENCED_BLOCK = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\n?([\s\S]*?)```")
# Truncated responses may open a fence and never close it
_OPEN_FENCE = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\n?([\s\S]*)$")
_WIDEST_SPAN = {
    JsonShape.OBJECT: re.compile(r"\{[\s\S]*\}"),
    JsonShape.ARRAY: re.compile(r"\[[\s\S]*\]"),
}


class ResponseExtractor:
    """
    Narrows a raw model response down to its JSON candidate.

    Order of preference:
    1. Contents of a fenced code block
    2. Widest ``{...}`` or ``[...]`` span, depending on the expected shape
    3. The whole response
    """

    @staticmethod
    def extract(raw_text: str, shape: JsonShape = JsonShape.OBJECT) -> str:
        """
        Extract the JSON candidate text from a model response.

        Args:
            raw_text: Raw response text.
            shape: Whether an object or an array is expected.

        Returns:
            Candidate JSON text, stripped of surrounding whitespace.
        """
        fenced = _FENCED_BLOCK.search(raw_text) or _OPEN_FENCE.search(raw_text)
        if fenced and fenced.group(1).strip():
            return fenced.group(1).strip()

        span = _WIDEST_SPAN[shape].search(raw_text)
        if span:
            return span.group(0).strip()

        return raw_text.strip()
