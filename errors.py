"""Error taxonomy for HireScore.

Every ``HireScoreError`` carries the HTTP status it maps to, so the API layer
renders all of them through a single exception handler. ``EvaluationFailure``
and its subclasses never reach the API: the submission pipeline absorbs them
and records a fallback score instead.
"""
from __future__ import annotations

from typing import Any, Optional


class HireScoreError(Exception):
    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Optional[Any] = None):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)


class ConfigurationError(HireScoreError):
    """Required settings are missing or invalid at startup."""


# --- Client errors --- #
class ValidationError(HireScoreError):
    status_code = 400
    message = "Validation failed"


class InvalidStatusError(HireScoreError):
    status_code = 400
    message = "Invalid status"


class EmailAlreadyRegisteredError(HireScoreError):
    status_code = 400
    message = "User with this email already exists"


class AuthenticationError(HireScoreError):
    status_code = 401
    message = "Unauthorized"


class AccessDeniedError(HireScoreError):
    status_code = 403
    message = "Access denied"


class JobNotFoundError(HireScoreError):
    status_code = 404
    message = "Job not found or no longer active"


class ApplicationNotFoundError(HireScoreError):
    status_code = 404
    message = "Application not found"


class DuplicateApplicationError(HireScoreError):
    status_code = 409
    message = "You have already applied to this job"


class InvalidTransitionError(HireScoreError):
    status_code = 409
    message = "Status transition not allowed"


# --- Server-side failures --- #
class SubmissionFailedError(HireScoreError):
    status_code = 500
    message = "Failed to submit application. Please try again."


class DuplicateScoreError(HireScoreError):
    """A second score was written for one application (bug signal)."""

    status_code = 500
    message = "Score already recorded for this application"


# --- Evaluation failures (absorbed by the fallback policy) --- #
class EvaluationFailure(Exception):
    """Base for every way a model evaluation can fail."""


class InsufficientResumeError(EvaluationFailure):
    pass


class EvaluationParseError(EvaluationFailure):
    pass


class EvaluationShapeError(EvaluationFailure):
    pass


class EvaluationTimeoutError(EvaluationFailure):
    pass


class EvaluationProviderError(EvaluationFailure):
    pass
