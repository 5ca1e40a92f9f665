from typing import List, Optional

import structlog
from fastapi import BackgroundTasks, Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

import auth
import crud
import logic
import models
import schemas
from database import create_db_and_tables, get_db
from errors import AuthenticationError, EmailAlreadyRegisteredError, HireScoreError
from notifications import dispatch_status_notification
from observability import init_observability
from request_id_middleware import RequestIdMiddleware
from settings import get_settings

# Initialise observability before creating app
init_observability()
logger = structlog.get_logger(__name__)

# Refuse to start with missing or placeholder secrets
settings = get_settings()

# Create DB tables on startup
create_db_and_tables()

app = FastAPI(
    title="HireScore",
    description="Job board and applicant tracking API with AI application scoring",
    version="0.1.0",
)

# --- CORS Middleware ---
origins = [
    "http://localhost",
    "http://localhost:3000",
    "http://localhost:8000",
    "http://127.0.0.1",
    "http://127.0.0.1:8000",
    settings.app_base_url,
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestIdMiddleware)


# --- Error rendering --- #
@app.exception_handler(HireScoreError)
async def hirescore_error_handler(request: Request, exc: HireScoreError):
    if exc.status_code >= 500:
        logger.error("Request failed", error=exc.message, error_type=type(exc).__name__)
    body = {"error": exc.message}
    if exc.details is not None:
        body["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(part) for part in error["loc"] if part != "body"), "message": error["msg"]}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Validation failed", "details": details},
    )


def _set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=auth.COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        max_age=settings.session_ttl_days * 24 * 60 * 60,
        path="/",
    )


# --- Auth Endpoints --- #
@app.post(
    "/auth/signup",
    response_model=schemas.AuthResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Auth"],
)
def signup_endpoint(user: schemas.UserCreate, response: Response, db: Session = Depends(get_db)):
    if crud.get_user_by_email(db, email=user.email):
        raise EmailAlreadyRegisteredError()
    db_user = crud.create_user(db, user=user, hashed_password=auth.hash_password(user.password))
    # create_session commits the user and the session together
    token = auth.create_session(db, db_user)
    _set_auth_cookie(response, token)
    logger.info("User signed up", user_id=db_user.id, role=db_user.role.value)
    return schemas.AuthResponse(message="Account created", user=schemas.User.model_validate(db_user))


@app.post("/auth/signin", response_model=schemas.AuthResponse, tags=["Auth"])
def signin_endpoint(credentials: schemas.SignIn, response: Response, db: Session = Depends(get_db)):
    db_user = crud.get_user_by_email(db, email=credentials.email)
    if not db_user or not auth.verify_password(credentials.password, db_user.hashed_password):
        logger.info("Sign-in refused")
        raise AuthenticationError("Invalid email or password")
    token = auth.create_session(db, db_user)
    _set_auth_cookie(response, token)
    return schemas.AuthResponse(message="Signed in", user=schemas.User.model_validate(db_user))


@app.post("/auth/signout", response_model=schemas.AuthResponse, tags=["Auth"])
def signout_endpoint(request: Request, response: Response, db: Session = Depends(get_db)):
    token = auth.get_request_token(request)
    if token:
        auth.delete_session(db, token)
    response.delete_cookie(auth.COOKIE_NAME, path="/")
    return schemas.AuthResponse(message="Signed out")


@app.get("/auth/me", response_model=schemas.AuthResponse, tags=["Auth"])
def get_me(current_user: Optional[models.User] = Depends(auth.get_optional_user)):
    """Returns the signed-in user, or ``user: null`` for anonymous callers."""
    user = schemas.User.model_validate(current_user) if current_user else None
    return schemas.AuthResponse(user=user)


# --- Job Endpoints --- #
@app.get("/jobs", response_model=List[schemas.Job], tags=["Jobs"])
def get_jobs_endpoint(db: Session = Depends(get_db)):
    return crud.get_active_jobs(db)


@app.get("/jobs/{job_id}", response_model=schemas.Job, tags=["Jobs"])
def get_job_endpoint(job_id: int, db: Session = Depends(get_db)):
    return crud.get_active_job(db, job_id)


@app.post("/jobs", response_model=schemas.Job, status_code=status.HTTP_201_CREATED, tags=["Jobs"])
def create_job_endpoint(
    job: schemas.JobCreate,
    employer: models.User = Depends(auth.get_current_employer),
    db: Session = Depends(get_db),
):
    db_job = crud.create_job(db, job=job, employer_id=employer.id)
    logger.info("Job created", job_id=db_job.id, questions=len(db_job.questions))
    return db_job


@app.patch("/jobs/{job_id}", response_model=schemas.Job, tags=["Jobs"])
def update_job_endpoint(
    job_id: int,
    job_update: schemas.JobUpdate,
    employer: models.User = Depends(auth.get_current_employer),
    db: Session = Depends(get_db),
):
    db_job = crud.get_job_for_employer(db, job_id=job_id, employer_id=employer.id)
    db_job = crud.update_job(db, db_job=db_job, job_update=job_update)
    logger.info("Job updated", job_id=job_id, status=db_job.status.value)
    return db_job


@app.get("/jobs/{job_id}/applicants", response_model=schemas.JobApplicants, tags=["Jobs"])
def get_job_applicants_endpoint(
    job_id: int,
    employer: models.User = Depends(auth.get_current_employer),
    db: Session = Depends(get_db),
):
    db_job = crud.get_job_for_employer(db, job_id=job_id, employer_id=employer.id)
    applications = crud.get_applications_for_employer(db, employer_id=employer.id, job_id=job_id)
    return schemas.JobApplicants(
        job=schemas.JobSummary.model_validate(db_job),
        applications=[logic.application_summary(a) for a in applications],
        total_applications=len(applications),
    )


# --- Application Endpoints --- #
@app.post(
    "/applications",
    response_model=schemas.ApplicationSubmitted,
    status_code=status.HTTP_201_CREATED,
    tags=["Applications"],
)
async def submit_application_endpoint(
    payload: schemas.ApplicationSubmission,
    background_tasks: BackgroundTasks,
    current_user: Optional[models.User] = Depends(auth.get_optional_user),
    db: Session = Depends(get_db),
):
    """Submit an application; it is scored before the response is returned."""
    candidate_id = None
    if current_user is not None and current_user.role == models.UserRole.CANDIDATE:
        candidate_id = current_user.id

    outcome = await logic.process_application_submission(db, payload, candidate_id=candidate_id)

    # "Application received" confirmation, sent after the response
    background_tasks.add_task(dispatch_status_notification, **outcome.notification)
    return outcome.response


@app.get("/applications", response_model=List[schemas.ApplicationSummary], tags=["Applications"])
def get_applications_endpoint(
    job_id: Optional[int] = Query(default=None, alias="jobId"),
    current_user: models.User = Depends(auth.get_current_user),
    db: Session = Depends(get_db),
):
    if current_user.role == models.UserRole.EMPLOYER:
        applications = crud.get_applications_for_employer(db, employer_id=current_user.id, job_id=job_id)
    else:
        applications = crud.get_applications_for_candidate(db, candidate_id=current_user.id)
    return [logic.application_summary(a) for a in applications]


@app.get("/applications/{application_id}", response_model=schemas.ApplicationDetail, tags=["Applications"])
def get_application_endpoint(
    application_id: int,
    employer: models.User = Depends(auth.get_current_employer),
    db: Session = Depends(get_db),
):
    db_application = crud.get_application_for_employer(db, application_id, employer_id=employer.id)
    return logic.application_detail(db_application)


@app.patch("/applications/{application_id}", response_model=schemas.StatusUpdated, tags=["Applications"])
def update_application_status_endpoint(
    application_id: int,
    update: schemas.StatusUpdate,
    background_tasks: BackgroundTasks,
    employer: models.User = Depends(auth.get_current_employer),
    db: Session = Depends(get_db),
):
    change = logic.change_application_status(db, application_id, update.status, employer=employer)
    if change.changed:
        background_tasks.add_task(dispatch_status_notification, **change.notification)
    return schemas.StatusUpdated(status=change.status, previous_status=change.previous_status)


# --- Main execution --- (for running with uvicorn)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
