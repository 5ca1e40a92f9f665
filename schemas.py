import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from models import ApplicationStatus, JobStatus, JobType, QuestionType, UserRole

# local@domain.tld, no whitespace
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire (both accepted on input)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# --- Users & auth --- #
class UserCreate(CamelModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=6)
    name: Optional[str] = None
    company_name: Optional[str] = None
    role: UserRole = UserRole.EMPLOYER

    @field_validator("email")
    @classmethod
    def _normalise_email(cls, value: str) -> str:
        value = value.strip().lower()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Invalid email address")
        return value

    @field_validator("role")
    @classmethod
    def _no_self_service_admins(cls, value: UserRole) -> UserRole:
        if value == UserRole.ADMIN:
            raise ValueError("role must be EMPLOYER or CANDIDATE")
        return value


class SignIn(CamelModel):
    email: str
    password: str = Field(min_length=1)


class User(CamelModel):
    id: int
    email: str
    name: Optional[str] = None
    company_name: Optional[str] = None
    role: UserRole


class AuthResponse(CamelModel):
    message: Optional[str] = None
    user: Optional[User] = None


# --- Jobs & questions --- #
class QuestionCreate(CamelModel):
    text: str = Field(min_length=1)
    type: QuestionType = QuestionType.TEXT
    required: bool = False
    options: Optional[List[str]] = None
    position: int = 0

    @model_validator(mode="after")
    def _options_match_type(self) -> "QuestionCreate":
        if self.type == QuestionType.MULTIPLE_CHOICE:
            if not self.options:
                raise ValueError("multiple-choice questions need at least one option")
        else:
            self.options = None
        return self


class Question(CamelModel):
    id: int
    text: str
    type: QuestionType
    required: bool
    position: int
    options: Optional[List[str]] = None


class JobCreate(CamelModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    requirements: Optional[str] = None
    location: Optional[str] = None
    salary: Optional[str] = None
    type: JobType = JobType.FULL_TIME
    questions: List[QuestionCreate] = Field(default_factory=list)


class JobUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, min_length=1)
    requirements: Optional[str] = None
    location: Optional[str] = None
    salary: Optional[str] = None
    type: Optional[JobType] = None
    status: Optional[JobStatus] = None


class Job(CamelModel):
    id: int
    employer_id: int
    title: str
    description: str
    requirements: Optional[str] = None
    location: Optional[str] = None
    salary: Optional[str] = None
    type: JobType
    status: JobStatus
    created_at: Optional[datetime] = None
    questions: List[Question] = Field(default_factory=list)


class JobSummary(CamelModel):
    id: int
    title: str
    description: str
    location: Optional[str] = None
    type: JobType
    status: JobStatus
    created_at: Optional[datetime] = None


# --- Evaluation --- #
class EvaluationResult(CamelModel):
    model_config = ConfigDict(frozen=True)

    resume_score: int = Field(ge=0, le=10)
    cover_letter_score: Optional[int] = Field(default=None, ge=0, le=10)
    overall_score: int = Field(ge=0, le=10)
    strengths: List[str]
    improvements: List[str]
    tips: List[str]
    feedback: str


class ScoreSummary(CamelModel):
    resume_score: int
    cover_letter_score: Optional[int] = None
    overall_score: int


class Score(CamelModel):
    resume_score: int
    cover_letter_score: Optional[int] = None
    overall_score: int
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    tips: List[str] = Field(default_factory=list)
    feedback: str
    is_fallback: bool = False
    created_at: Optional[datetime] = None


# --- Applications --- #
class ApplicationSubmission(CamelModel):
    """Raw inbound application; field rules are enforced by validators.py."""

    job_id: Optional[int] = None
    candidate_name: Optional[str] = None
    candidate_email: Optional[str] = None
    candidate_phone: Optional[str] = None
    resume_text: Optional[str] = None
    resume_url: Optional[str] = None
    github_url: Optional[str] = None
    website_url: Optional[str] = None
    cover_letter: Optional[str] = None
    question_answers: Dict[int, str] = Field(default_factory=dict)

    @field_validator("question_answers", mode="before")
    @classmethod
    def _stringify_answers(cls, value: Any) -> Any:
        # Number / yes-no answers may arrive as JSON numbers or booleans
        if isinstance(value, dict):
            return {key: ("" if answer is None else str(answer)) for key, answer in value.items()}
        return value


class ValidatedSubmission(CamelModel):
    job_id: int
    candidate_name: str
    candidate_email: str
    candidate_phone: Optional[str] = None
    resume_text: str = ""
    resume_url: Optional[str] = None
    github_url: Optional[str] = None
    website_url: Optional[str] = None
    cover_letter: Optional[str] = None
    question_answers: Dict[int, str] = Field(default_factory=dict)


class ApplicationSubmitted(CamelModel):
    message: str = "Application submitted successfully"
    application_id: int
    evaluation_completed: bool
    scores: Optional[ScoreSummary] = None


class StatusUpdate(CamelModel):
    # Kept as a plain string so unknown values surface as InvalidStatusError
    status: Optional[str] = None


class StatusUpdated(CamelModel):
    message: str = "Application status updated successfully"
    status: ApplicationStatus
    previous_status: ApplicationStatus


class QuestionAnswer(CamelModel):
    question_id: int
    question: str
    question_type: QuestionType
    required: bool
    answer: str


class ApplicationSummary(CamelModel):
    id: int
    job_id: int
    job_title: str
    candidate_name: str
    candidate_email: str
    candidate_phone: Optional[str] = None
    status: ApplicationStatus
    resume_url: Optional[str] = None
    github_url: Optional[str] = None
    website_url: Optional[str] = None
    cover_letter: Optional[str] = None
    created_at: Optional[datetime] = None
    scores: Optional[Score] = None


class ApplicationDetail(ApplicationSummary):
    resume_text: Optional[str] = None
    updated_at: Optional[datetime] = None
    job: JobSummary
    question_answers: List[QuestionAnswer] = Field(default_factory=list)


class JobApplicants(CamelModel):
    job: JobSummary
    applications: List[ApplicationSummary]
    total_applications: int
