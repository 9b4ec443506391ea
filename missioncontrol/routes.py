"""
HTTP routes for the MissionControl API.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query

from missioncontrol import trails
from missioncontrol.auth import (
    create_access_token,
    get_current_user_id,
    hash_password,
    verify_password,
)
from missioncontrol.config import Settings, get_settings
from missioncontrol.db import DbClient
from missioncontrol.dependencies import get_db_client
from missioncontrol.errors import (
    AuthenticationError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from missioncontrol.schemas import (
    AuthResponse,
    HealthResponse,
    LoginRequest,
    PingPayload,
    PingResponse,
    PingStatsResponse,
    RegisterRequest,
    TrailResponse,
    UserResponse,
)
from missioncontrol.types import PingStatus, TrailKind

logger = logging.getLogger(__name__)

router = APIRouter()

# bcrypt only looks at the first 72 bytes of a password.
MAX_PASSWORD_BYTES = 72


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok", timestamp=datetime.now(timezone.utc))


@router.post("/register", response_model=AuthResponse, status_code=201)
def register(payload: RegisterRequest, db: DbClient = Depends(get_db_client)):
    if len(payload.password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError("Password too long")
    user = db.create_user(
        payload.username,
        hash_password(payload.password),
        email=payload.email,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    logger.info("Registered agent %s (%s)", user.id, user.username)
    return AuthResponse(
        message="User registered successfully",
        token=create_access_token(user.id),
        user=UserResponse.from_record(user),
    )


@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, db: DbClient = Depends(get_db_client)):
    user = db.get_user_by_username(payload.username)
    if user is None or not verify_password(payload.password, user.password_hash):
        logger.warning("Failed login for username %s", payload.username)
        raise AuthenticationError("Invalid credentials")
    return AuthResponse(
        message="Login successful",
        token=create_access_token(user.id),
        user=UserResponse.from_record(user),
    )


@router.get("/user", response_model=UserResponse)
def current_user(
    user_id: int = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    user = db.get_user(user_id)
    # Only reachable if the agent disappears after the token check.
    if user is None:
        raise NotFoundError("User not found")
    return UserResponse.from_record(user)


@router.post("/pings", response_model=PingResponse, status_code=201)
def create_ping(
    payload: PingPayload,
    user_id: int = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    ping = trails.submit_ping(
        db, user_id, payload.latitude, payload.longitude, payload.message
    )
    return PingResponse.from_record(ping)


@router.get("/pings", response_model=list[PingResponse])
def list_pings(
    search: Optional[str] = Query(None, max_length=100),
    status: Optional[PingStatus] = Query(None),
    kind: TrailKind = Query(TrailKind.ALL),
    user_id: int = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    now = datetime.now(timezone.utc)
    pings = trails.filter_pings(
        db.get_user_pings(user_id), search=search, status=status, kind=kind, now=now
    )
    logger.info("Agent %s accessed %d transmissions", user_id, len(pings))
    return [PingResponse.from_record(ping, now) for ping in pings]


@router.get("/pings/latest", response_model=list[PingResponse])
def latest_pings(
    limit: Optional[int] = Query(None, ge=1, le=100),
    user_id: int = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    pings = db.get_latest_user_pings(user_id, limit or settings.latest_pings_limit)
    return [PingResponse.from_record(ping) for ping in pings]


@router.get("/pings/stats", response_model=PingStatsResponse)
def ping_stats(
    user_id: int = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    return PingStatsResponse.from_summary(trails.summarize(db.get_user_pings(user_id)))


@router.get("/pings/{ping_id}", response_model=PingResponse)
def get_ping(
    ping_id: int,
    user_id: int = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    ping = db.get_ping_by_id(ping_id)
    if ping is None:
        raise NotFoundError("Ping not found")
    if ping.user_id != user_id:
        raise ForbiddenError()
    return PingResponse.from_record(ping)


@router.post("/pings/{ping_id}", response_model=PingResponse, status_code=201)
def respond_to_ping(
    ping_id: int,
    payload: PingPayload,
    user_id: int = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    ping = trails.submit_response(
        db, ping_id, user_id, payload.latitude, payload.longitude, payload.message
    )
    return PingResponse.from_record(ping)


@router.get("/trails", response_model=list[TrailResponse])
def list_trails(
    flatten: bool = Query(False),
    user_id: int = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
):
    now = datetime.now(timezone.utc)
    return [
        TrailResponse.from_trail(trail, now)
        for trail in trails.build_trails(db.get_user_pings(user_id), flatten=flatten)
    ]
