from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy import nulls_last
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

import models
import schemas
from errors import (
    AccessDeniedError,
    ApplicationNotFoundError,
    DuplicateApplicationError,
    DuplicateScoreError,
    InvalidStatusError,
    InvalidTransitionError,
    JobNotFoundError,
    SubmissionFailedError,
)

logger = structlog.get_logger(__name__)

Status = models.ApplicationStatus

# Forward path PENDING -> REVIEWING -> INTERVIEWED -> HIRED (stages may be
# skipped), REJECTED from any open status. HIRED and REJECTED are final.
ALLOWED_TRANSITIONS = {
    Status.PENDING: {Status.REVIEWING, Status.INTERVIEWED, Status.HIRED, Status.REJECTED},
    Status.REVIEWING: {Status.INTERVIEWED, Status.HIRED, Status.REJECTED},
    Status.INTERVIEWED: {Status.HIRED, Status.REJECTED},
    Status.HIRED: set(),
    Status.REJECTED: set(),
}


# --- User CRUD ---
def get_user_by_email(db: Session, email: str):
    return db.query(models.User).filter(models.User.email == email.strip().lower()).first()


def create_user(db: Session, user: schemas.UserCreate, hashed_password: str):
    db_user = models.User(
        email=user.email,
        hashed_password=hashed_password,
        name=user.name,
        company_name=user.company_name,
        role=user.role,
    )
    db.add(db_user)
    db.flush()  # Assign ID without committing
    db.refresh(db_user)
    return db_user


# --- Session CRUD ---
def create_session(db: Session, user_id: int, token: str, expires_at: datetime):
    db_session = models.UserSession(user_id=user_id, token=token, expires_at=expires_at)
    db.add(db_session)
    db.commit()
    return db_session


def get_session_by_token(db: Session, token: str):
    return (
        db.query(models.UserSession)
        .options(joinedload(models.UserSession.user))
        .filter(models.UserSession.token == token)
        .first()
    )


def delete_session(db: Session, token: str) -> int:
    deleted = db.query(models.UserSession).filter(models.UserSession.token == token).delete()
    db.commit()
    return deleted


# --- Job CRUD ---
def create_job(db: Session, job: schemas.JobCreate, employer_id: int):
    """Create a job and its custom questions in one transaction."""
    db_job = models.Job(
        employer_id=employer_id,
        title=job.title,
        description=job.description,
        requirements=job.requirements,
        location=job.location,
        salary=job.salary,
        type=job.type,
        status=models.JobStatus.ACTIVE,
    )
    db_job.questions = [
        models.Question(
            text=question.text,
            type=question.type,
            required=question.required,
            options=question.options,
            position=question.position,
        )
        for question in job.questions
    ]
    db.add(db_job)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(db_job)
    return db_job


def get_active_jobs(db: Session) -> List[models.Job]:
    return (
        db.query(models.Job)
        .options(selectinload(models.Job.questions))
        .filter(models.Job.status == models.JobStatus.ACTIVE)
        .order_by(models.Job.created_at.desc(), models.Job.id.desc())
        .all()
    )


def get_active_job(db: Session, job_id: int) -> models.Job:
    """Return the job if it exists and accepts applications.

    Paused and closed jobs raise the same JobNotFoundError as missing ones.
    """
    db_job = (
        db.query(models.Job)
        .options(selectinload(models.Job.questions))
        .filter(models.Job.id == job_id, models.Job.status == models.JobStatus.ACTIVE)
        .first()
    )
    if not db_job:
        raise JobNotFoundError()
    return db_job


def get_job_for_employer(db: Session, job_id: int, employer_id: int) -> models.Job:
    """Any-status job owned by ``employer_id``; 404 if missing, 403 if not theirs."""
    db_job = (
        db.query(models.Job)
        .options(selectinload(models.Job.questions))
        .filter(models.Job.id == job_id)
        .first()
    )
    if not db_job:
        raise JobNotFoundError("Job not found")
    if db_job.employer_id != employer_id:
        raise AccessDeniedError()
    return db_job


def update_job(db: Session, db_job: models.Job, job_update: schemas.JobUpdate):
    for field, value in job_update.model_dump(exclude_unset=True).items():
        if value is None and field in ("title", "description", "type", "status"):
            continue
        setattr(db_job, field, value)
    db.add(db_job)
    db.commit()
    db.refresh(db_job)
    return db_job


# --- Application CRUD ---
def has_applied(db: Session, candidate_id: int, job_id: int) -> bool:
    return (
        db.query(models.Application.id)
        .filter(models.Application.candidate_id == candidate_id, models.Application.job_id == job_id)
        .first()
        is not None
    )


def submit_application(
    db: Session,
    submission: schemas.ValidatedSubmission,
    candidate_id: Optional[int] = None,
) -> int:
    """Create the application and its answers atomically; return its ID.

    Either every row is committed or none is: any database error rolls the
    whole submission back and surfaces as SubmissionFailedError.
    """
    # Re-checked here so a job closed after listing is refused
    get_active_job(db, submission.job_id)

    if candidate_id is not None and has_applied(db, candidate_id, submission.job_id):
        raise DuplicateApplicationError()

    try:
        db_application = models.Application(
            job_id=submission.job_id,
            candidate_id=candidate_id,
            candidate_name=submission.candidate_name,
            candidate_email=submission.candidate_email,
            candidate_phone=submission.candidate_phone,
            resume_text=submission.resume_text,
            resume_url=submission.resume_url,
            github_url=submission.github_url,
            website_url=submission.website_url,
            cover_letter=submission.cover_letter,
            status=models.ApplicationStatus.PENDING,
        )
        db.add(db_application)
        db.flush()
        application_id = db_application.id

        for question_id, answer in submission.question_answers.items():
            db.add(
                models.QuestionAnswer(
                    application_id=application_id,
                    question_id=question_id,
                    answer=answer,
                )
            )
        db.flush()
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        # A concurrent submission by the same candidate won the unique constraint
        if (
            isinstance(exc, IntegrityError)
            and candidate_id is not None
            and has_applied(db, candidate_id, submission.job_id)
        ):
            raise DuplicateApplicationError() from exc
        logger.error(
            "Application submission rolled back",
            job_id=submission.job_id,
            error=str(exc),
        )
        raise SubmissionFailedError() from exc

    logger.info(
        "Application created",
        application_id=application_id,
        job_id=submission.job_id,
        answers=len(submission.question_answers),
    )
    return application_id


def get_application(db: Session, application_id: int) -> Optional[models.Application]:
    return (
        db.query(models.Application)
        .options(
            joinedload(models.Application.job),
            joinedload(models.Application.score),
            selectinload(models.Application.answers).joinedload(models.QuestionAnswer.question),
        )
        .filter(models.Application.id == application_id)
        .first()
    )


def get_application_for_employer(db: Session, application_id: int, employer_id: int) -> models.Application:
    db_application = get_application(db, application_id)
    if not db_application:
        raise ApplicationNotFoundError()
    if db_application.job.employer_id != employer_id:
        raise AccessDeniedError()
    return db_application


def _ranked_applications(db: Session):
    """Applications joined to their score, best overall score first."""
    return (
        db.query(models.Application)
        .outerjoin(models.Score)
        .options(joinedload(models.Application.job), joinedload(models.Application.score))
        .order_by(
            nulls_last(models.Score.overall_score.desc()),
            models.Application.created_at.desc(),
            models.Application.id.desc(),
        )
    )


def get_applications_for_employer(db: Session, employer_id: int, job_id: Optional[int] = None):
    query = _ranked_applications(db).join(models.Job).filter(models.Job.employer_id == employer_id)
    if job_id is not None:
        query = query.filter(models.Application.job_id == job_id)
    return query.all()


def get_applications_for_candidate(db: Session, candidate_id: int):
    return (
        db.query(models.Application)
        .options(joinedload(models.Application.job), joinedload(models.Application.score))
        .filter(models.Application.candidate_id == candidate_id)
        .order_by(models.Application.created_at.desc(), models.Application.id.desc())
        .all()
    )


def update_application_status(
    db: Session,
    application_id: int,
    new_status: Optional[str],
    acting_employer_id: int,
) -> models.ApplicationStatus:
    """Set an application's status and return the status it had before."""
    db_application = get_application_for_employer(db, application_id, acting_employer_id)

    try:
        target = models.ApplicationStatus(new_status)
    except ValueError:
        raise InvalidStatusError() from None

    previous = db_application.status

    if target == previous:
        return previous

    if target not in ALLOWED_TRANSITIONS[previous]:
        raise InvalidTransitionError(
            f"Cannot change status from {previous.value} to {target.value}"
        )

    db_application.status = target
    db.add(db_application)
    db.commit()
    logger.info(
        "Application status updated",
        application_id=application_id,
        previous_status=previous.value,
        status=target.value,
    )
    return previous


# --- Score CRUD ---
def record_score(
    db: Session,
    application_id: int,
    result: schemas.EvaluationResult,
    is_fallback: bool = False,
) -> models.Score:
    """Persist the one and only score for an application."""
    db_score = models.Score(
        application_id=application_id,
        resume_score=result.resume_score,
        cover_letter_score=result.cover_letter_score,
        overall_score=result.overall_score,
        strengths=list(result.strengths),
        improvements=list(result.improvements),
        tips=list(result.tips),
        feedback=result.feedback,
        is_fallback=is_fallback,
    )
    db.add(db_score)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        already_scored = (
            db.query(models.Score.id).filter(models.Score.application_id == application_id).first()
        )
        if already_scored:
            raise DuplicateScoreError() from exc
        raise
    db.refresh(db_score)
    return db_score


def get_score(db: Session, application_id: int) -> Optional[models.Score]:
    return db.query(models.Score).filter(models.Score.application_id == application_id).first()
