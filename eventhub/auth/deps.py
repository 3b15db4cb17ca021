from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eventhub.auth.jwt import verify_access_token
from eventhub.core.config import settings
from eventhub.db import get_db
from eventhub.models import User

logger = structlog.get_logger(__name__)

DBSession = Annotated[Session, Depends(get_db)]


def _unauthorized(detail: str = "unauthorized") -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"code": "UNAUTHORIZED", "message": detail},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _dev_user(db: Session, token: str) -> User:
    prefix = settings.dev_auth_prefix
    if not token.startswith(prefix):
        raise _unauthorized(f"invalid dev token (expected prefix {prefix})")

    email = token.removeprefix(prefix).strip().lower()
    if "@" not in email:
        raise _unauthorized("invalid email in token")

    user = db.scalar(select(User).where(User.email == email))
    if user:
        return user

    user = User(email=email, name=email.split("@", 1)[0])
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Provisioned concurrently by another request.
        db.rollback()
        user = db.scalar(select(User).where(User.email == email))
        if not user:
            raise _unauthorized("could not provision dev user") from None
        return user

    db.refresh(user)
    logger.info("dev_user_provisioned", user_id=str(user.id), email=email)
    return user


def get_current_user(request: Request, db: DBSession) -> User:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        raise _unauthorized("missing bearer token")

    token = auth.removeprefix("Bearer ").strip()

    # Local dev auth only
    if settings.auth_mode == "dev" and settings.env == "local":
        return _dev_user(db, token)

    if settings.auth_mode == "jwt":
        try:
            user_id = verify_access_token(token)
        except ValueError as exc:
            raise _unauthorized(str(exc)) from None

        user = db.get(User, user_id)
        if not user:
            raise _unauthorized("unknown user")
        return user

    raise _unauthorized("auth not configured")


CurrentUser = Annotated[User, Depends(get_current_user)]
