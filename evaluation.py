"""Model-backed scoring of a single application.

``evaluate`` turns a model reply into a validated, clamped
``schemas.EvaluationResult`` or raises an ``EvaluationFailure``. It never
retries and never falls back: the caller decides what a failure means.
"""
from __future__ import annotations

import asyncio
import json
import math
import re
from numbers import Real
from typing import Any, Optional

import openai
import structlog

import schemas
from errors import (
    EvaluationFailure,
    EvaluationParseError,
    EvaluationProviderError,
    EvaluationShapeError,
    EvaluationTimeoutError,
    InsufficientResumeError,
)
from llm_interaction import call_llm_for_application_evaluation
from settings import get_settings

logger = structlog.get_logger(__name__)

MIN_RESUME_LENGTH = 50
SCORE_MIN = 0
SCORE_MAX = 10

_OPENING_FENCE = re.compile(r"^```[\w+-]*[ \t]*\n?")
_CLOSING_FENCE = re.compile(r"\n?[ \t]*```$")


def strip_code_fences(text: str) -> str:
    """Remove a leading ```/```json fence and its closing ``` if present."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _OPENING_FENCE.sub("", cleaned, count=1)
        cleaned = _CLOSING_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()


def extract_json_object(text: str) -> Any:
    """Decode the first top-level JSON object in ``text``, ignoring prose around it."""
    start = text.find("{")
    if start == -1:
        raise EvaluationParseError("No JSON object found in model response")
    try:
        value, _ = json.JSONDecoder().raw_decode(text, start)
    except json.JSONDecodeError as exc:
        raise EvaluationParseError(f"Invalid JSON in model response: {exc}") from exc
    return value


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    # JSON integers are unbounded; only floats can be inf or nan
    return isinstance(value, int) or math.isfinite(value)


def clamp_score(value: float) -> int:
    """Round half up, then bound to [0, 10]."""
    if isinstance(value, int):
        return max(SCORE_MIN, min(SCORE_MAX, value))
    return max(SCORE_MIN, min(SCORE_MAX, math.floor(value + 0.5)))


def _string_list(data: dict, key: str) -> list[str]:
    value = data.get(key)
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise EvaluationShapeError(f"'{key}' must be a list of strings")
    return list(value)


def parse_evaluation_response(text: str) -> schemas.EvaluationResult:
    """Clean, decode, validate and clamp a raw model reply."""
    try:
        return _parse_evaluation_object(text)
    except (OverflowError, ValueError) as exc:
        raise EvaluationShapeError(f"Unusable value in model response: {exc}") from exc


def _parse_evaluation_object(text: str) -> schemas.EvaluationResult:
    data = extract_json_object(strip_code_fences(text))
    if not isinstance(data, dict):
        raise EvaluationShapeError("Model response is not a JSON object")

    for key in ("resumeScore", "overallScore"):
        if not _is_number(data.get(key)):
            raise EvaluationShapeError(f"'{key}' must be a number")

    cover_letter_score = data.get("coverLetterScore")
    if cover_letter_score is not None and not _is_number(cover_letter_score):
        raise EvaluationShapeError("'coverLetterScore' must be a number or null")

    feedback = data.get("feedback")
    if not isinstance(feedback, str):
        raise EvaluationShapeError("'feedback' must be a string")

    return schemas.EvaluationResult(
        resume_score=clamp_score(data["resumeScore"]),
        cover_letter_score=None if cover_letter_score is None else clamp_score(cover_letter_score),
        overall_score=clamp_score(data["overallScore"]),
        strengths=_string_list(data, "strengths"),
        improvements=_string_list(data, "improvements"),
        tips=_string_list(data, "tips"),
        feedback=feedback,
    )


async def evaluate(
    job_title: str,
    job_description: str,
    resume_text: Optional[str],
    cover_letter: Optional[str] = None,
    timeout: Optional[float] = None,
) -> schemas.EvaluationResult:
    """Score an application with the configured model.

    Raises
    ------
    InsufficientResumeError  • resume text missing or too short to evaluate
    EvaluationTimeoutError   • the model did not answer within ``timeout``
    EvaluationProviderError  • the API call itself failed
    EvaluationParseError     • the reply holds no decodable JSON object
    EvaluationShapeError     • the JSON object has missing or mistyped fields
    """
    if not resume_text or len(resume_text.strip()) < MIN_RESUME_LENGTH:
        raise InsufficientResumeError(
            f"Resume content shorter than {MIN_RESUME_LENGTH} characters"
        )

    timeout = timeout if timeout is not None else get_settings().evaluation_timeout_seconds

    try:
        raw = await asyncio.wait_for(
            call_llm_for_application_evaluation(
                job_title=job_title,
                job_description=job_description,
                resume_text=resume_text,
                cover_letter=cover_letter,
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError as exc:
        raise EvaluationTimeoutError(f"Model did not respond within {timeout}s") from exc
    except EvaluationFailure:
        raise
    except openai.OpenAIError as exc:
        raise EvaluationProviderError(f"Model call failed: {exc}") from exc
    except (AttributeError, IndexError, KeyError, TypeError) as exc:
        raise EvaluationProviderError(f"Malformed model response: {exc!r}") from exc

    result = parse_evaluation_response(raw)

    if not cover_letter and result.cover_letter_score is not None:
        # No cover letter was supplied, so there is nothing to score
        result = result.model_copy(update={"cover_letter_score": None})

    logger.info(
        "Application evaluated",
        resume_score=result.resume_score,
        cover_letter_score=result.cover_letter_score,
        overall_score=result.overall_score,
    )
    return result
