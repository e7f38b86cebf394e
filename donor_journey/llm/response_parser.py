"""
Parsing and shape validation for LLM JSON responses.

Every LLM response is parsed into a tagged ``LLMParseResult`` before use, so
callers can tell "the model returned garbage" apart from "the model returned a
well-formed answer that makes no sense for this graph".

Usage:
    from donor_journey.llm.response_parser import parse_llm_response
    from donor_journey.llm.schemas import StageClassificationResponse

    result = parse_llm_response(response_text, StageClassificationResponse)
    if not result.success:
        raise LLMResponseError(result.error, raw_text=result.raw_text)
    stage_id = result.data.stageId
"""

import json
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def extract_json_from_response(text: str) -> Optional[str]:
    """
    Extract a JSON object from LLM response text.

    Handles:
    - Plain JSON
    - JSON wrapped in markdown code blocks
    - Prose before or after the object

    Args:
        text: Raw response text from LLM

    Returns:
        The first balanced JSON object as a string, or None if there is none
    """
    if not text:
        return None
    text = text.strip()

    if "```json" in text:
        text = text.split("```json")[1].split("```")[0].strip()
    elif "```" in text:
        parts = text.split("```")
        if len(parts) >= 2:
            text = parts[1].strip()

    start = text.find("{")
    if start == -1:
        return None

    # Brace counting that ignores braces inside strings
    depth = 0
    in_string = False
    escape_next = False
    for i, char in enumerate(text[start:], start):
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]

    # Unbalanced (truncated) output
    return None


@dataclass
class LLMParseResult(Generic[ModelT]):
    """Tagged result of parsing an LLM response into a response model."""

    success: bool
    data: Optional[ModelT] = None
    error: Optional[str] = None
    raw_text: Optional[str] = None

    def __bool__(self) -> bool:
        return self.success


def load_json_object(text: str) -> Optional[object]:
    """Extract and decode the JSON object in ``text``. Returns None when absent or invalid."""
    json_str = extract_json_from_response(text)
    if json_str is None:
        return None
    try:
        return json.loads(json_str)
    except json.JSONDecodeError:
        return None


def parse_llm_response(text: str, model: type[ModelT]) -> LLMParseResult[ModelT]:
    """
    Parse LLM text into ``model``.

    Args:
        text: Raw response text
        model: Pydantic response model describing the expected shape

    Returns:
        LLMParseResult with ``data`` set on success, ``error`` set on failure
    """
    json_str = extract_json_from_response(text)
    if json_str is None:
        return LLMParseResult(success=False, error="No JSON object found in response", raw_text=text)

    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        return LLMParseResult(success=False, error=f"Invalid JSON: {e}", raw_text=text)

    if not isinstance(data, dict):
        return LLMParseResult(success=False, error="Response JSON is not an object", raw_text=text)

    try:
        parsed = model.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in e.errors()
        )
        return LLMParseResult(
            success=False,
            error=f"Response does not match {model.__name__}: {problems}",
            raw_text=text,
        )

    return LLMParseResult(success=True, data=parsed, raw_text=text)
