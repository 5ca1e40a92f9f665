from dataclasses import dataclass, field
from typing import Optional, Tuple

import structlog
from aws_embedded_metrics import metric_scope
from sqlalchemy.orm import Session

import crud
import evaluation
import models
import schemas
from errors import DuplicateScoreError, EvaluationFailure
from validators import validate_question_answers, validate_submission

# Set up logging
logger = structlog.get_logger(__name__)

METRICS_NAMESPACE = "HireScore"

# Stand-in resume document for applications that only uploaded a file
RESUME_FILE_PLACEHOLDER = (
    "Resume uploaded as file ({url}). Please refer to the uploaded document "
    "for detailed candidate information."
)

# --- Fallback policy --- #
FALLBACK_SCORE = 6
FALLBACK_STRENGTHS = (
    "Application received and processed",
    "Candidate shows interest in the position",
    "Basic qualifications appear to be met",
)
FALLBACK_IMPROVEMENTS = (
    "Detailed evaluation unavailable due to technical issues",
    "Manual review recommended",
)
FALLBACK_TIPS = (
    "Consider scheduling an interview for detailed assessment",
    "Review application materials manually",
    "Follow up with candidate for additional information",
)
FALLBACK_FEEDBACK = (
    "Automatic evaluation was not successful. This application requires manual review "
    "by the hiring team to properly assess the candidate's qualifications and fit for "
    "the position."
)


def fallback_result(had_cover_letter: bool) -> schemas.EvaluationResult:
    """Fixed scores used whenever the model evaluation is unavailable."""
    return schemas.EvaluationResult(
        resume_score=FALLBACK_SCORE,
        cover_letter_score=FALLBACK_SCORE if had_cover_letter else None,
        overall_score=FALLBACK_SCORE,
        strengths=list(FALLBACK_STRENGTHS),
        improvements=list(FALLBACK_IMPROVEMENTS),
        tips=list(FALLBACK_TIPS),
        feedback=FALLBACK_FEEDBACK,
    )


def resume_content_for(submission: schemas.ValidatedSubmission) -> str:
    if submission.resume_text:
        return submission.resume_text
    return RESUME_FILE_PLACEHOLDER.format(url=submission.resume_url)


async def score_application(
    job: models.Job, submission: schemas.ValidatedSubmission
) -> Tuple[schemas.EvaluationResult, bool]:
    """Evaluate with the model; on any evaluation failure use the fallback.

    Returns the result and whether it came from the model.
    """
    try:
        result = await evaluation.evaluate(
            job_title=job.title,
            job_description=job.description,
            resume_text=resume_content_for(submission),
            cover_letter=submission.cover_letter,
        )
    except EvaluationFailure as exc:
        logger.warning(
            "AI evaluation failed, using fallback scores",
            failure=type(exc).__name__,
            error=str(exc),
            job_id=job.id,
        )
        return fallback_result(had_cover_letter=bool(submission.cover_letter)), False
    except Exception:
        # The application is already committed; it must still get a score
        logger.exception("Unexpected error during AI evaluation, using fallback scores", job_id=job.id)
        return fallback_result(had_cover_letter=bool(submission.cover_letter)), False
    return result, True


@dataclass
class SubmissionOutcome:
    response: schemas.ApplicationSubmitted
    notification: dict = field(default_factory=dict)


@metric_scope
async def process_application_submission(
    db: Session,
    payload: schemas.ApplicationSubmission,
    candidate_id: Optional[int] = None,
    metrics=None,
) -> SubmissionOutcome:
    """Validate, persist, score and record one application."""
    metrics.set_namespace(METRICS_NAMESPACE)

    submission = validate_submission(payload)
    job = crud.get_active_job(db, submission.job_id)
    validate_question_answers(submission.question_answers, job.questions)

    application_id = crud.submit_application(db, submission, candidate_id=candidate_id)
    metrics.put_metric("applications_submitted", 1, "Count")
    metrics.set_property("application_id", application_id)

    # The model call runs after the create transaction has committed
    result, ai_scored = await score_application(job, submission)
    metrics.put_metric("evaluations_completed" if ai_scored else "evaluations_fallback", 1, "Count")

    try:
        crud.record_score(db, application_id, result, is_fallback=not ai_scored)
    except DuplicateScoreError:
        logger.critical("Score already recorded for new application", application_id=application_id)
        raise

    logger.info(
        "Application submission completed",
        application_id=application_id,
        ai_scored=ai_scored,
        overall_score=result.overall_score,
    )

    scores = None
    if ai_scored:
        scores = schemas.ScoreSummary(
            resume_score=result.resume_score,
            cover_letter_score=result.cover_letter_score,
            overall_score=result.overall_score,
        )
    return SubmissionOutcome(
        response=schemas.ApplicationSubmitted(
            application_id=application_id,
            evaluation_completed=ai_scored,
            scores=scores,
        ),
        notification={
            "candidate_name": submission.candidate_name,
            "candidate_email": submission.candidate_email,
            "job_title": job.title,
            "company_name": job.employer.company_name if job.employer else None,
            "new_status": models.ApplicationStatus.PENDING,
            "job_id": job.id,
            "application_id": application_id,
        },
    )


@dataclass
class StatusChange:
    previous_status: models.ApplicationStatus
    status: models.ApplicationStatus
    notification: dict

    @property
    def changed(self) -> bool:
        return self.previous_status != self.status


def change_application_status(
    db: Session,
    application_id: int,
    new_status: Optional[str],
    employer: models.User,
) -> StatusChange:
    previous = crud.update_application_status(
        db, application_id, new_status, acting_employer_id=employer.id
    )
    db_application = crud.get_application(db, application_id)
    return StatusChange(
        previous_status=previous,
        status=db_application.status,
        notification={
            "candidate_name": db_application.candidate_name,
            "candidate_email": db_application.candidate_email,
            "job_title": db_application.job.title,
            "company_name": employer.company_name,
            "new_status": db_application.status,
            "job_id": db_application.job_id,
            "application_id": db_application.id,
        },
    )


# --- Response builders --- #
def _score(db_score: Optional[models.Score]) -> Optional[schemas.Score]:
    return schemas.Score.model_validate(db_score) if db_score else None


def application_summary(db_application: models.Application) -> schemas.ApplicationSummary:
    return schemas.ApplicationSummary(
        id=db_application.id,
        job_id=db_application.job_id,
        job_title=db_application.job.title,
        candidate_name=db_application.candidate_name,
        candidate_email=db_application.candidate_email,
        candidate_phone=db_application.candidate_phone,
        status=db_application.status,
        resume_url=db_application.resume_url,
        github_url=db_application.github_url,
        website_url=db_application.website_url,
        cover_letter=db_application.cover_letter,
        created_at=db_application.created_at,
        scores=_score(db_application.score),
    )


def application_detail(db_application: models.Application) -> schemas.ApplicationDetail:
    summary = application_summary(db_application)
    return schemas.ApplicationDetail(
        **summary.model_dump(),
        resume_text=db_application.resume_text,
        updated_at=db_application.updated_at,
        job=schemas.JobSummary.model_validate(db_application.job),
        question_answers=[
            schemas.QuestionAnswer(
                question_id=answer.question_id,
                question=answer.question.text,
                question_type=answer.question.type,
                required=answer.question.required,
                answer=answer.answer,
            )
            for answer in sorted(db_application.answers, key=lambda a: a.question.position)
        ],
    )
