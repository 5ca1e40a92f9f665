import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import httpx
import openai
import pytest
from fastapi import status
from sqlalchemy.orm import Session

import crud
import llm_interaction
import logic
import models
import schemas
from conftest import auth_headers
from errors import (
    DuplicateApplicationError,
    DuplicateScoreError,
    JobNotFoundError,
    SubmissionFailedError,
    ValidationError,
)

# 200 characters of resume text
RESUME = (
    "Senior frontend engineer with six years of React and TypeScript. Led a design-system "
    "migration across four product teams, cut bundle size by 40%, and mentored five engineers. "
)[:200].ljust(200, ".")

OPENROUTER_REQUEST = httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")

AI_REPLY = json.dumps(
    {
        "resumeScore": 8,
        "coverLetterScore": None,
        "overallScore": 8,
        "strengths": ["Deep React experience", "Design-system leadership"],
        "improvements": ["Little backend exposure"],
        "tips": ["Probe testing practice in interview"],
        "feedback": "A strong match for a senior frontend role.",
    }
)


def application_body(job_id: int, **overrides) -> dict:
    body = {
        "jobId": job_id,
        "candidateName": "Jane Doe",
        "candidateEmail": "jane@example.com",
        "resumeText": RESUME,
    }
    body.update(overrides)
    return body


def mock_model(**kwargs):
    return patch("evaluation.call_llm_for_application_evaluation", new=AsyncMock(**kwargs))


def count(db: Session, model) -> int:
    db.expire_all()
    return db.query(model).count()


# --- End-to-end submission --- #

def test_missing_required_answer_is_rejected_without_rows(test_client, db_session, react_job):
    """Required-question gate: 400 naming the question, nothing stored."""
    with mock_model(return_value=AI_REPLY) as mock_llm:
        response = test_client.post("/applications", json=application_body(react_job.id))

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Please answer required question: Years of React experience?"}
    assert count(db_session, models.Application) == 0
    assert count(db_session, models.QuestionAnswer) == 0
    mock_llm.assert_not_awaited()


def test_submission_scored_by_model(test_client, db_session, react_job, mock_send_email):
    question = react_job.questions[0]
    with mock_model(return_value=AI_REPLY):
        response = test_client.post(
            "/applications",
            json=application_body(react_job.id, questionAnswers={str(question.id): "5+"}),
        )

    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["message"] == "Application submitted successfully"
    assert data["evaluationCompleted"] is True
    assert data["scores"] == {"resumeScore": 8, "coverLetterScore": None, "overallScore": 8}

    db_session.expire_all()
    application = crud.get_application(db_session, data["applicationId"])
    assert application.status == models.ApplicationStatus.PENDING
    assert [(a.question_id, a.answer) for a in application.answers] == [(question.id, "5+")]
    assert count(db_session, models.Score) == 1
    assert application.score.resume_score == 8
    assert application.score.overall_score == 8
    assert application.score.strengths == ["Deep React experience", "Design-system leadership"]
    assert application.score.is_fallback is False

    # "Application received" confirmation
    mock_send_email.assert_awaited_once()
    assert mock_send_email.await_args.kwargs["to"] == "jane@example.com"
    assert mock_send_email.await_args.kwargs["subject"] == "Application Received - Thank You for Applying"


def test_model_failure_records_fallback_score(test_client, db_session, react_job):
    question = react_job.questions[0]
    with mock_model(side_effect=openai.APITimeoutError(request=OPENROUTER_REQUEST)):
        response = test_client.post(
            "/applications",
            json=application_body(react_job.id, questionAnswers={question.id: "5+"}),
        )

    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["evaluationCompleted"] is False
    assert data["scores"] is None

    score = crud.get_score(db_session, data["applicationId"])
    assert (score.resume_score, score.cover_letter_score, score.overall_score) == (6, None, 6)
    assert score.is_fallback is True
    assert score.improvements == list(logic.FALLBACK_IMPROVEMENTS)
    assert count(db_session, models.Score) == 1


def test_unparseable_reply_records_fallback_score(test_client, db_session, employer, create_job):
    job = create_job(employer[0].id)
    with mock_model(return_value="Sorry, I cannot evaluate this candidate."):
        response = test_client.post(
            "/applications",
            json=application_body(job.id, coverLetter="I would love to join your team."),
        )

    assert response.status_code == status.HTTP_201_CREATED
    score = crud.get_score(db_session, response.json()["applicationId"])
    # Cover letter was supplied, so the fallback scores it too
    assert (score.resume_score, score.cover_letter_score, score.overall_score) == (6, 6, 6)


def test_out_of_range_scores_are_clamped_before_recording(test_client, db_session, employer, create_job):
    job = create_job(employer[0].id)
    reply = json.dumps(
        {
            "resumeScore": 14,
            "coverLetterScore": -3,
            "overallScore": 7.5,
            "strengths": [],
            "improvements": [],
            "tips": [],
            "feedback": "ok",
        }
    )
    with mock_model(return_value=reply):
        response = test_client.post(
            "/applications",
            json=application_body(job.id, coverLetter="Dear hiring team, please consider me."),
        )

    assert response.json()["scores"] == {"resumeScore": 10, "coverLetterScore": 0, "overallScore": 8}
    score = crud.get_score(db_session, response.json()["applicationId"])
    assert (score.resume_score, score.cover_letter_score, score.overall_score) == (10, 0, 8)


def test_short_resume_skips_the_model(test_client, db_session, employer, create_job):
    job = create_job(employer[0].id)
    with mock_model(return_value=AI_REPLY) as mock_llm:
        response = test_client.post("/applications", json=application_body(job.id, resumeText="React dev."))

    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["evaluationCompleted"] is False
    mock_llm.assert_not_awaited()
    assert crud.get_score(db_session, response.json()["applicationId"]).is_fallback is True


def test_uploaded_resume_is_evaluated_through_a_placeholder(test_client, employer, create_job):
    job = create_job(employer[0].id)
    resume_url = "https://files.example.com/resumes/jane.pdf"
    with mock_model(return_value=AI_REPLY) as mock_llm:
        response = test_client.post(
            "/applications",
            json=application_body(job.id, resumeText=None, resumeUrl=resume_url),
        )

    assert response.status_code == status.HTTP_201_CREATED
    resume_sent = mock_llm.await_args.kwargs["resume_text"]
    assert resume_url in resume_sent
    assert resume_sent.startswith("Resume uploaded as file")


def test_closed_job_is_not_found(test_client, db_session, employer, create_job):
    job = create_job(employer[0].id)
    job.status = models.JobStatus.CLOSED
    db_session.commit()

    with mock_model(return_value=AI_REPLY):
        response = test_client.post("/applications", json=application_body(job.id))

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"error": "Job not found or no longer active"}
    assert count(db_session, models.Application) == 0


def test_invalid_email_is_rejected(test_client, db_session, employer, create_job):
    job = create_job(employer[0].id)
    response = test_client.post("/applications", json=application_body(job.id, candidateEmail="jane.example.com"))
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Valid email is required"}
    assert count(db_session, models.Application) == 0


def test_malformed_body_is_a_400_with_details(test_client):
    response = test_client.post("/applications", json={"jobId": "not-a-number"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    body = response.json()
    assert body["error"] == "Validation failed"
    assert body["details"][0]["field"] == "jobId"


def test_signed_in_candidate_cannot_apply_twice(test_client, db_session, employer, create_job, create_user):
    job = create_job(employer[0].id)
    candidate, token = create_user("jane@example.com", role=models.UserRole.CANDIDATE, company_name=None)

    with mock_model(return_value=AI_REPLY):
        first = test_client.post("/applications", json=application_body(job.id), headers=auth_headers(token))
        second = test_client.post("/applications", json=application_body(job.id), headers=auth_headers(token))

    assert first.status_code == status.HTTP_201_CREATED
    assert second.status_code == status.HTTP_409_CONFLICT
    assert second.json() == {"error": "You have already applied to this job"}
    assert count(db_session, models.Application) == 1
    assert crud.get_application(db_session, first.json()["applicationId"]).candidate_id == candidate.id


def test_anonymous_submissions_are_not_deduplicated(test_client, db_session, employer, create_job):
    job = create_job(employer[0].id)
    with mock_model(return_value=AI_REPLY):
        first = test_client.post("/applications", json=application_body(job.id))
        second = test_client.post("/applications", json=application_body(job.id))

    assert first.status_code == second.status_code == status.HTTP_201_CREATED
    assert count(db_session, models.Application) == 2
    assert count(db_session, models.Score) == 2


# --- Pipeline pieces --- #

def test_fallback_is_deterministic():
    assert fallback_json(True) == fallback_json(True)
    assert fallback_json(False) == fallback_json(False)
    assert logic.fallback_result(had_cover_letter=False).cover_letter_score is None
    assert logic.fallback_result(had_cover_letter=True).cover_letter_score == 6


def fallback_json(had_cover_letter: bool) -> str:
    return logic.fallback_result(had_cover_letter).model_dump_json()


def test_failed_answer_insert_leaves_no_rows(db_session, employer, create_job):
    """Atomicity: the application insert is rolled back with its answers."""
    job = create_job(employer[0].id)
    submission = schemas.ValidatedSubmission(
        job_id=job.id,
        candidate_name="Jane Doe",
        candidate_email="jane@example.com",
        resume_text=RESUME,
        # No such question: the answer insert violates its foreign key
        question_answers={987654: "5+"},
    )

    with pytest.raises(SubmissionFailedError):
        crud.submit_application(db_session, submission)

    assert count(db_session, models.Application) == 0
    assert count(db_session, models.QuestionAnswer) == 0


def test_submit_to_missing_job_raises(db_session):
    submission = schemas.ValidatedSubmission(
        job_id=424242, candidate_name="Jane", candidate_email="jane@example.com", resume_text=RESUME
    )
    with pytest.raises(JobNotFoundError):
        crud.submit_application(db_session, submission)


def test_second_score_is_refused(db_session, employer, create_job):
    job = create_job(employer[0].id)
    submission = schemas.ValidatedSubmission(
        job_id=job.id, candidate_name="Jane", candidate_email="jane@example.com", resume_text=RESUME
    )
    application_id = crud.submit_application(db_session, submission)

    crud.record_score(db_session, application_id, logic.fallback_result(False), is_fallback=True)
    with pytest.raises(DuplicateScoreError):
        crud.record_score(db_session, application_id, logic.fallback_result(False), is_fallback=True)

    assert count(db_session, models.Score) == 1


@pytest.mark.asyncio
async def test_pipeline_validates_before_touching_the_job(db_session):
    payload = schemas.ApplicationSubmission(candidate_name="Jane", candidate_email="jane@example.com")
    with pytest.raises(ValidationError, match="Job ID is required"):
        await logic.process_application_submission(db_session, payload)


@pytest.mark.asyncio
async def test_pipeline_returns_confirmation_details(db_session, react_job):
    payload = schemas.ApplicationSubmission(
        job_id=react_job.id,
        candidate_name="Jane Doe",
        candidate_email="jane@example.com",
        resume_text=RESUME,
        question_answers={react_job.questions[0].id: "3-5"},
    )
    with mock_model(return_value=AI_REPLY):
        outcome = await logic.process_application_submission(db_session, payload)

    assert outcome.response.evaluation_completed is True
    assert outcome.notification["new_status"] == models.ApplicationStatus.PENDING
    assert outcome.notification["company_name"] == "Acme Corp"
    assert outcome.notification["application_id"] == outcome.response.application_id


# --- Listings --- #

def test_employer_lists_applicants_best_score_first(test_client, employer, create_job):
    user, token = employer
    job = create_job(user.id)

    low = json.loads(AI_REPLY) | {"resumeScore": 4, "overallScore": 3}
    high = json.loads(AI_REPLY) | {"resumeScore": 9, "overallScore": 9}
    for reply, email in ((low, "low@example.com"), (high, "high@example.com")):
        with mock_model(return_value=json.dumps(reply)):
            test_client.post("/applications", json=application_body(job.id, candidateEmail=email))

    response = test_client.get(f"/jobs/{job.id}/applicants", headers=auth_headers(token))

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["totalApplications"] == 2
    assert [a["candidateEmail"] for a in data["applications"]] == ["high@example.com", "low@example.com"]
    assert data["applications"][0]["scores"]["overallScore"] == 9


def test_application_detail_includes_answers_and_score(test_client, react_job, employer):
    _, token = employer
    question = react_job.questions[0]
    with mock_model(return_value=AI_REPLY):
        submitted = test_client.post(
            "/applications",
            json=application_body(react_job.id, questionAnswers={question.id: "1-3"}),
        ).json()

    response = test_client.get(f"/applications/{submitted['applicationId']}", headers=auth_headers(token))

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["resumeText"] == RESUME
    assert data["job"]["title"] == "Senior Frontend Developer"
    assert data["scores"]["tips"] == ["Probe testing practice in interview"]
    assert data["questionAnswers"] == [
        {
            "questionId": question.id,
            "question": "Years of React experience?",
            "questionType": "MULTIPLE_CHOICE",
            "required": True,
            "answer": "1-3",
        }
    ]


def test_candidate_sees_only_own_applications(test_client, employer, create_job, create_user):
    job = create_job(employer[0].id)
    _, token = create_user("jane@example.com", role=models.UserRole.CANDIDATE)

    with mock_model(return_value=AI_REPLY):
        test_client.post("/applications", json=application_body(job.id), headers=auth_headers(token))
        test_client.post("/applications", json=application_body(job.id, candidateEmail="other@example.com"))

    response = test_client.get("/applications", headers=auth_headers(token))
    assert response.status_code == status.HTTP_200_OK
    assert [a["candidateEmail"] for a in response.json()] == ["jane@example.com"]


def test_listing_applications_requires_sign_in(test_client):
    response = test_client.get("/applications")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json() == {"error": "Unauthorized"}


# --- Score totality --- #

@pytest.mark.parametrize("choices", [None, []])
def test_reply_without_choices_records_fallback_score(test_client, db_session, employer, create_job, choices):
    job = create_job(employer[0].id)
    empty_reply = AsyncMock(return_value=SimpleNamespace(choices=choices))
    with patch.object(llm_interaction.client.chat.completions, "create", new=empty_reply):
        response = test_client.post("/applications", json=application_body(job.id))

    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["evaluationCompleted"] is False
    empty_reply.assert_awaited_once()
    assert count(db_session, models.Application) == 1
    assert count(db_session, models.Score) == 1
    assert crud.get_score(db_session, response.json()["applicationId"]).is_fallback is True


def test_huge_integer_score_is_clamped(test_client, db_session, employer, create_job):
    job = create_job(employer[0].id)
    reply = json.dumps(json.loads(AI_REPLY) | {"resumeScore": 10**400})
    with mock_model(return_value=reply):
        response = test_client.post("/applications", json=application_body(job.id))

    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["scores"] == {"resumeScore": 10, "coverLetterScore": None, "overallScore": 8}
    assert count(db_session, models.Score) == 1


@pytest.mark.asyncio
async def test_unexpected_evaluation_error_falls_back(react_job):
    submission = schemas.ValidatedSubmission(
        job_id=react_job.id,
        candidate_name="Jane Doe",
        candidate_email="jane@example.com",
        resume_text=RESUME,
        cover_letter="Dear hiring team, please consider me.",
    )
    with patch("evaluation.evaluate", new=AsyncMock(side_effect=RuntimeError("boom"))):
        result, ai_scored = await logic.score_application(react_job, submission)

    assert ai_scored is False
    assert result == logic.fallback_result(had_cover_letter=True)


def test_concurrent_duplicate_submission_is_a_conflict(db_session, employer, create_job, create_user):
    job = create_job(employer[0].id)
    candidate, _ = create_user("jane@example.com", role=models.UserRole.CANDIDATE, company_name=None)
    submission = schemas.ValidatedSubmission(
        job_id=job.id, candidate_name="Jane", candidate_email="jane@example.com", resume_text=RESUME
    )
    crud.submit_application(db_session, submission, candidate_id=candidate.id)

    # The other request passed the pre-check before this one committed
    with patch("crud.has_applied", side_effect=[False, True]):
        with pytest.raises(DuplicateApplicationError):
            crud.submit_application(db_session, submission, candidate_id=candidate.id)

    assert count(db_session, models.Application) == 1
