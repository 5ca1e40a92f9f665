"""Session authentication for employers and candidates.

Signing in issues an HS256 JWT (python-jose) and stores it in the
``sessions`` table. A token is only honoured while both the signature is
valid and its session row exists and has not expired; expired rows are
deleted the first time they are encountered.

The token travels either as ``Authorization: Bearer <token>`` or in the
``auth-token`` cookie. FastAPI dependencies:

    get_optional_user   - the signed-in user or None
    get_current_user    - the signed-in user, else 401
    get_current_employer - an EMPLOYER user, else 401/403
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import structlog
from fastapi import Depends, Request
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

import crud
import models
from database import get_db
from errors import AccessDeniedError, AuthenticationError
from settings import get_settings

logger = structlog.get_logger(__name__)

ALGORITHM = "HS256"
COOKIE_NAME = "auth-token"
BCRYPT_ROUNDS = 12


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def create_session(db: Session, user: models.User) -> str:
    """Issue a token for ``user`` and persist its session row."""
    settings = get_settings()
    expires_at = datetime.now(timezone.utc) + timedelta(days=settings.session_ttl_days)
    token = jwt.encode(
        {"sub": str(user.id), "exp": expires_at, "jti": uuid.uuid4().hex},
        settings.session_secret,
        algorithm=ALGORITHM,
    )
    crud.create_session(db, user_id=user.id, token=token, expires_at=expires_at)
    logger.info("Session created", user_id=user.id)
    return token


def verify_session(db: Session, token: str) -> Optional[models.User]:
    """Return the session's user, or None if the token is not (or no longer) valid."""
    try:
        jwt.decode(token, get_settings().session_secret, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        crud.delete_session(db, token)
        return None
    except JWTError as exc:
        logger.warning("Session token rejected", exc=str(exc))
        return None

    db_session = crud.get_session_by_token(db, token)
    if not db_session:
        return None
    if _as_utc(db_session.expires_at) <= datetime.now(timezone.utc):
        crud.delete_session(db, token)
        return None
    return db_session.user


def delete_session(db: Session, token: str) -> None:
    crud.delete_session(db, token)


def get_request_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("Authorization")
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return request.cookies.get(COOKIE_NAME)


# --- FastAPI dependencies ---
def get_optional_user(request: Request, db: Session = Depends(get_db)) -> Optional[models.User]:
    token = get_request_token(request)
    if not token:
        return None
    return verify_session(db, token)


def get_current_user(user: Optional[models.User] = Depends(get_optional_user)) -> models.User:
    if user is None:
        raise AuthenticationError()
    return user


def get_current_employer(user: models.User = Depends(get_current_user)) -> models.User:
    if user.role != models.UserRole.EMPLOYER:
        raise AccessDeniedError("Only employers can perform this action")
    return user
