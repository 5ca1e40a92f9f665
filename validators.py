"""Pure checks on inbound application payloads.

Nothing here touches the database: callers load the job (and its questions)
themselves and only persist once every check has passed.
"""
from typing import Dict, Iterable, Optional

from pydantic import AnyHttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

import models
import schemas
from errors import ValidationError

# Resume URL the web form sends when the resume was pasted as text
RESUME_URL_PLACEHOLDER = "text-resume"

_http_url = TypeAdapter(AnyHttpUrl)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def is_valid_email(value: str) -> bool:
    return bool(schemas.EMAIL_PATTERN.match(value))


def is_valid_url(value: str) -> bool:
    try:
        _http_url.validate_python(value)
    except PydanticValidationError:
        return False
    return True


def validate_submission(payload: schemas.ApplicationSubmission) -> schemas.ValidatedSubmission:
    """Check field-level rules and return a trimmed, normalised submission.

    Raises ValidationError describing the first rule that fails.
    """
    if payload.job_id is None:
        raise ValidationError("Job ID is required")

    name = _clean(payload.candidate_name)
    if not name:
        raise ValidationError("Name is required")

    email = _clean(payload.candidate_email)
    if not email:
        raise ValidationError("Email is required")
    if not is_valid_email(email):
        raise ValidationError("Valid email is required")

    resume_text = _clean(payload.resume_text) or ""
    resume_url = _clean(payload.resume_url)
    if resume_url == RESUME_URL_PLACEHOLDER:
        resume_url = None
    if not resume_text and not resume_url:
        raise ValidationError("Resume content or file is required")

    github_url = _clean(payload.github_url)
    if github_url and not is_valid_url(github_url):
        raise ValidationError("Invalid GitHub URL")

    website_url = _clean(payload.website_url)
    if website_url and not is_valid_url(website_url):
        raise ValidationError("Invalid website URL")

    return schemas.ValidatedSubmission(
        job_id=payload.job_id,
        candidate_name=name,
        candidate_email=email,
        candidate_phone=_clean(payload.candidate_phone),
        resume_text=resume_text,
        resume_url=resume_url,
        github_url=github_url,
        website_url=website_url,
        cover_letter=_clean(payload.cover_letter),
        question_answers={
            question_id: answer.strip()
            for question_id, answer in payload.question_answers.items()
            if answer and answer.strip()
        },
    )


def validate_question_answers(answers: Dict[int, str], questions: Iterable[models.Question]) -> None:
    """Check answers against the job's custom questions."""
    by_id = {question.id: question for question in questions}

    unknown = sorted(set(answers) - set(by_id))
    if unknown:
        raise ValidationError(f"Unknown question: {unknown[0]}")

    for question in sorted(by_id.values(), key=lambda q: q.position):
        answer = (answers.get(question.id) or "").strip()
        if not answer:
            if question.required:
                raise ValidationError(f"Please answer required question: {question.text}")
            continue
        if question.type == models.QuestionType.MULTIPLE_CHOICE and question.options:
            if answer not in question.options:
                raise ValidationError(f"Invalid option for question: {question.text}")
