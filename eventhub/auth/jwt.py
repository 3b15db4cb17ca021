from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from jwt import PyJWTError

from eventhub.core.config import settings


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_access_token(user_id: uuid.UUID, ttl_seconds: int | None = None) -> str:
    """Mint a token the API accepts; issuance proper belongs to the identity provider."""
    now = _now()
    exp = now + timedelta(seconds=ttl_seconds or settings.access_token_ttl_seconds)
    payload = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_access_token(token: str) -> uuid.UUID:
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
        )
    except PyJWTError as exc:
        raise ValueError("invalid access token") from exc

    try:
        return uuid.UUID(str(claims.get("sub")))
    except ValueError as exc:
        raise ValueError("invalid subject in access token") from exc
