import enum

from sqlalchemy.orm import relationship
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from database import Base


class UserRole(str, enum.Enum):
    EMPLOYER = "EMPLOYER"
    CANDIDATE = "CANDIDATE"
    ADMIN = "ADMIN"


class JobType(str, enum.Enum):
    FULL_TIME = "FULL_TIME"
    PART_TIME = "PART_TIME"
    CONTRACT = "CONTRACT"
    FREELANCE = "FREELANCE"
    INTERNSHIP = "INTERNSHIP"


class JobStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    CLOSED = "CLOSED"


class QuestionType(str, enum.Enum):
    TEXT = "TEXT"
    TEXTAREA = "TEXTAREA"
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    YES_NO = "YES_NO"
    NUMBER = "NUMBER"


class ApplicationStatus(str, enum.Enum):
    PENDING = "PENDING"
    REVIEWING = "REVIEWING"
    INTERVIEWED = "INTERVIEWED"
    HIRED = "HIRED"
    REJECTED = "REJECTED"


def _enum(enum_cls):
    return Enum(enum_cls, native_enum=False, length=20, validate_strings=True)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    name = Column(String, nullable=True)
    company_name = Column(String, nullable=True)
    role = Column(_enum(UserRole), nullable=False, default=UserRole.EMPLOYER)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    jobs = relationship("Job", back_populates="employer")
    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")


class UserSession(Base):
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String, unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="sessions")


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, index=True)
    employer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    requirements = Column(Text, nullable=True)
    location = Column(String, nullable=True)
    salary = Column(String, nullable=True)
    type = Column(_enum(JobType), nullable=False, default=JobType.FULL_TIME)
    status = Column(_enum(JobStatus), nullable=False, default=JobStatus.ACTIVE, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    employer = relationship("User", back_populates="jobs")
    questions = relationship(
        "Question",
        back_populates="job",
        order_by="Question.position",
        cascade="all, delete-orphan",
    )
    applications = relationship("Application", back_populates="job")


class Question(Base):
    __tablename__ = "job_questions"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    type = Column(_enum(QuestionType), nullable=False, default=QuestionType.TEXT)
    required = Column(Boolean, nullable=False, default=False)
    position = Column(Integer, nullable=False, default=0)
    options = Column(JSON, nullable=True)  # multiple-choice only

    job = relationship("Job", back_populates="questions")


class Application(Base):
    __tablename__ = "applications"
    __table_args__ = (
        # NULL candidate_id (anonymous submissions) never collides
        UniqueConstraint("candidate_id", "job_id", name="uq_application_candidate_job"),
    )

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="RESTRICT"), nullable=False, index=True)
    candidate_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    candidate_name = Column(String, nullable=False)
    candidate_email = Column(String, nullable=False)
    candidate_phone = Column(String, nullable=True)
    resume_text = Column(Text, nullable=True)
    resume_url = Column(String, nullable=True)
    github_url = Column(String, nullable=True)
    website_url = Column(String, nullable=True)
    cover_letter = Column(Text, nullable=True)
    status = Column(_enum(ApplicationStatus), nullable=False, default=ApplicationStatus.PENDING, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    job = relationship("Job", back_populates="applications")
    candidate = relationship("User")
    answers = relationship("QuestionAnswer", back_populates="application", cascade="all, delete-orphan")
    score = relationship("Score", back_populates="application", uselist=False)


class QuestionAnswer(Base):
    __tablename__ = "question_answers"
    __table_args__ = (
        UniqueConstraint("application_id", "question_id", name="uq_answer_application_question"),
    )

    id = Column(Integer, primary_key=True, index=True)
    application_id = Column(Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("job_questions.id"), nullable=False)
    answer = Column(Text, nullable=False)

    application = relationship("Application", back_populates="answers")
    question = relationship("Question")


class Score(Base):
    __tablename__ = "scores"
    __table_args__ = (
        CheckConstraint("resume_score BETWEEN 0 AND 10", name="ck_score_resume_range"),
        CheckConstraint(
            "cover_letter_score IS NULL OR cover_letter_score BETWEEN 0 AND 10",
            name="ck_score_cover_letter_range",
        ),
        CheckConstraint("overall_score BETWEEN 0 AND 10", name="ck_score_overall_range"),
    )

    id = Column(Integer, primary_key=True, index=True)
    application_id = Column(Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, unique=True)
    resume_score = Column(Integer, nullable=False)
    cover_letter_score = Column(Integer, nullable=True)
    overall_score = Column(Integer, nullable=False)
    strengths = Column(JSON, nullable=False, default=list)
    improvements = Column(JSON, nullable=False, default=list)
    tips = Column(JSON, nullable=False, default=list)
    feedback = Column(Text, nullable=False)
    is_fallback = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    application = relationship("Application", back_populates="score")
