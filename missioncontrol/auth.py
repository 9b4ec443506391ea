"""
Password hashing and bearer-token identity for agents.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from missioncontrol.config import Settings, get_settings
from missioncontrol.db import DbClient
from missioncontrol.dependencies import get_db_client
from missioncontrol.errors import AuthenticationError

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(plain_password: str) -> str:
    return bcrypt.hashpw(plain_password.encode("utf-8"), bcrypt.gensalt()).decode(
        "utf-8"
    )


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(
        plain_password.encode("utf-8"), hashed_password.encode("utf-8")
    )


def create_access_token(
    user_id: int,
    settings: Optional[Settings] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    settings = settings or get_settings()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode = {"sub": str(user_id), "exp": expire}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Optional[Settings] = None) -> int:
    """Return the user id carried by ``token`` or raise AuthenticationError."""
    settings = settings or get_settings()
    try:
        payload = jwt.decode(
            token, settings.secret_key, algorithms=[settings.jwt_algorithm]
        )
    except JWTError as exc:
        raise AuthenticationError() from exc
    subject = payload.get("sub")
    try:
        return int(subject)
    except (TypeError, ValueError) as exc:
        raise AuthenticationError() from exc


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: DbClient = Depends(get_db_client),
) -> int:
    """
    Resolve the calling agent from the ``Authorization: Bearer`` header.

    The token must verify and name an agent that still exists in the store.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        logger.warning("Unauthorized access attempt: missing credentials")
        raise AuthenticationError()
    try:
        user_id = decode_access_token(credentials.credentials)
    except AuthenticationError:
        logger.warning("Unauthorized access attempt: token verification failed")
        raise
    if db.get_user(user_id) is None:
        logger.warning("Token presented for unknown agent %s", user_id)
        raise AuthenticationError("Access denied: Agent credentials revoked")
    return user_id
