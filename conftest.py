import os

# Required settings must exist before the app module is imported
os.environ["OPENROUTER_API_KEY"] = "test-openrouter-key"
os.environ["RESEND_API_KEY"] = "test-resend-key"
os.environ["SESSION_SECRET"] = "test-session-secret-0123456789abcdef"
os.environ["DATABASE_URL"] = "sqlite:///./hirescore-test.db"
os.environ.setdefault("AWS_EMF_ENVIRONMENT", "Local")
os.environ.setdefault("LOG_FORMAT", "console")

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

# --- Alembic Imports ---
from alembic.config import Config
from alembic import command
# --- End Alembic Imports ---

import auth
import crud
import database
import models
import schemas
from database import Base
from main import app

TEST_DATABASE_URL = os.environ["DATABASE_URL"]


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create the test database from models and stamp with Alembic head."""
    db_path = TEST_DATABASE_URL.split("///")[-1]

    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)

    alembic_cfg = Config("alembic.ini")
    alembic_cfg.set_main_option("sqlalchemy.url", TEST_DATABASE_URL)
    command.stamp(alembic_cfg, "head")

    yield  # Tests run here

    database.engine.dispose()
    for path in (db_path, f"{db_path}-wal", f"{db_path}-shm"):
        if os.path.exists(path):
            os.unlink(path)


@pytest.fixture(autouse=True)
def clean_tables():
    """Every test starts from empty tables."""
    yield
    with database.engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture(autouse=True)
def mock_send_email():
    """No test talks to the real mail provider."""
    with patch("notifications.send_email", new=AsyncMock(return_value=True)) as mocked:
        yield mocked


@pytest.fixture
def db_session():
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def test_client():
    with TestClient(app) as client:
        yield client


@pytest.fixture
def create_user(db_session):
    """Factory: persist a user with a live session; returns (user, token)."""

    def _create_user(
        email: str,
        role: models.UserRole = models.UserRole.EMPLOYER,
        name: str = "Test User",
        company_name: str = "Acme Corp",
        password: str = "password123",
    ):
        user = crud.create_user(
            db_session,
            schemas.UserCreate(
                email=email,
                password=password,
                name=name,
                company_name=company_name,
                role=role,
            ),
            hashed_password=auth.hash_password(password),
        )
        token = auth.create_session(db_session, user)
        return user, token

    return _create_user


@pytest.fixture
def employer(create_user):
    return create_user("employer@example.com")


@pytest.fixture
def create_job(db_session):
    """Factory: persist an ACTIVE job (with optional questions) for an employer."""

    def _create_job(employer_id: int, questions=None, **fields):
        job = schemas.JobCreate(
            title=fields.pop("title", "Senior Frontend Developer"),
            description=fields.pop(
                "description",
                "Build and maintain our React front end, mentor engineers and own UI quality.",
            ),
            questions=questions or [],
            **fields,
        )
        return crud.create_job(db_session, job=job, employer_id=employer_id)

    return _create_job


@pytest.fixture
def react_job(employer, create_job):
    """The worked example job: one required multiple-choice question."""
    user, _ = employer
    return create_job(
        user.id,
        questions=[
            schemas.QuestionCreate(
                text="Years of React experience?",
                type=models.QuestionType.MULTIPLE_CHOICE,
                required=True,
                options=["<1", "1-3", "3-5", "5+"],
            )
        ],
    )


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
