"""
Pydantic schemas for the MissionControl API.

Wire fields are camelCase; Python attributes stay snake_case.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from missioncontrol.db import PingRecord, UserRecord
from missioncontrol.trails import PingSummary, Trail, classify_status
from missioncontrol.types import PingStatus


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(ApiModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: Optional[str] = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=6)
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class LoginRequest(ApiModel):
    username: str
    password: str


class UserResponse(ApiModel):
    id: int
    username: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @classmethod
    def from_record(cls, user: UserRecord) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
        )


class AuthResponse(ApiModel):
    message: str
    token: str
    user: UserResponse


class PingPayload(ApiModel):
    # Coordinates are optional here so the linker can decide between 400
    # and 403 for responses.
    latitude: Optional[str] = None
    longitude: Optional[str] = None
    message: Optional[str] = None


class PingResponse(ApiModel):
    id: int
    user_id: int
    latitude: str
    longitude: str
    message: Optional[str] = None
    parent_ping_id: Optional[int] = None
    created_at: datetime
    status: Optional[PingStatus] = None

    @classmethod
    def from_record(
        cls, ping: PingRecord, now: Optional[datetime] = None
    ) -> "PingResponse":
        return cls(
            id=ping.id,
            user_id=ping.user_id,
            latitude=ping.latitude,
            longitude=ping.longitude,
            message=ping.message,
            parent_ping_id=ping.parent_ping_id,
            created_at=ping.created_at,
            status=classify_status(ping.created_at, now),
        )


class TrailResponse(ApiModel):
    root: PingResponse
    responses: list[PingResponse]

    @classmethod
    def from_trail(cls, trail: Trail, now: Optional[datetime] = None) -> "TrailResponse":
        return cls(
            root=PingResponse.from_record(trail.root, now),
            responses=[PingResponse.from_record(ping, now) for ping in trail.responses],
        )


class PingStatsResponse(ApiModel):
    total_pings: int
    trail_count: int
    active_pings: int
    last_ping_at: Optional[datetime] = None

    @classmethod
    def from_summary(cls, summary: PingSummary) -> "PingStatsResponse":
        return cls(
            total_pings=summary.total_pings,
            trail_count=summary.trail_count,
            active_pings=summary.active_pings,
            last_ping_at=summary.last_ping_at,
        )


class HealthResponse(ApiModel):
    status: str
    timestamp: datetime
