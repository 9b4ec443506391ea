"""
Trail linking: the ownership rule for responses and the read-side views.

A trail is a root ping (no parent) plus the pings that answer it. Only the
agent who owns a ping may answer it, and that rule is enforced here rather
than in the stores, which only persist.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from missioncontrol.db import DbClient, PingRecord, utcnow
from missioncontrol.errors import ForbiddenError, NotFoundError, ValidationError
from missioncontrol.types import (
    ACTIVE_WINDOW,
    TRANSMITTED_WINDOW,
    PingStatus,
    TrailKind,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Trail:
    root: PingRecord
    responses: tuple[PingRecord, ...] = field(default_factory=tuple)

    def as_dict(self) -> dict:
        return {
            "root": self.root.as_dict(),
            "responses": [ping.as_dict() for ping in self.responses],
        }


@dataclass(frozen=True)
class PingSummary:
    total_pings: int
    trail_count: int
    active_pings: int
    last_ping_at: Optional[datetime]


def _chronological(ping: PingRecord) -> tuple[datetime, int]:
    return (ping.created_at, ping.id)


def validate_coordinates(latitude: Optional[str], longitude: Optional[str]) -> None:
    missing = [
        name
        for name, value in (("latitude", latitude), ("longitude", longitude))
        if value is None or not str(value).strip()
    ]
    if missing:
        raise ValidationError(f"Invalid ping data: {', '.join(missing)} required")


def submit_ping(
    db: DbClient,
    user_id: int,
    latitude: Optional[str],
    longitude: Optional[str],
    message: Optional[str] = None,
) -> PingRecord:
    """Create a new trail root for ``user_id``."""
    validate_coordinates(latitude, longitude)
    ping = db.create_ping(user_id, latitude, longitude, message)
    logger.info("Agent %s created transmission #%s", user_id, ping.id)
    return ping


def submit_response(
    db: DbClient,
    parent_id: int,
    user_id: int,
    latitude: Optional[str],
    longitude: Optional[str],
    message: Optional[str] = None,
) -> PingRecord:
    """
    Append a response to ``parent_id`` on behalf of ``user_id``.

    Raises NotFoundError when the parent does not exist and ForbiddenError
    when it belongs to another agent. Ownership is checked before the
    coordinates are validated.
    """
    parent = db.get_ping_by_id(parent_id)
    if parent is None:
        raise NotFoundError("Parent ping not found")
    if parent.user_id != user_id:
        logger.warning(
            "Agent %s denied response to transmission #%s owned by agent %s",
            user_id,
            parent_id,
            parent.user_id,
        )
        raise ForbiddenError()
    validate_coordinates(latitude, longitude)
    ping = db.respond_to_ping(parent_id, user_id, latitude, longitude, message)
    logger.info("Agent %s responded to transmission #%s", user_id, parent_id)
    return ping


def _nearest_root(
    ping: PingRecord, by_id: dict[int, PingRecord]
) -> Optional[PingRecord]:
    seen: set[int] = set()
    current = ping
    while current.parent_ping_id is not None:
        if current.id in seen:
            return None
        seen.add(current.id)
        parent = by_id.get(current.parent_ping_id)
        if parent is None:
            return None
        current = parent
    return current


def build_trails(pings: Iterable[PingRecord], *, flatten: bool = False) -> list[Trail]:
    """
    Group a flat ping list into trails, newest trail first.

    Responses are matched to a root by ``parent_ping_id``. With ``flatten``
    set, replies to replies are attached to the nearest root up their chain;
    otherwise only direct replies are shown. Responses without a root in the
    input are dropped.
    """
    pings = list(pings)
    roots = [ping for ping in pings if ping.is_root]
    responses = [ping for ping in pings if not ping.is_root]

    by_root: dict[int, list[PingRecord]] = {root.id: [] for root in roots}
    by_id = {ping.id: ping for ping in pings}
    for response in responses:
        if flatten:
            root = _nearest_root(response, by_id)
            root_id = root.id if root is not None else None
        else:
            root_id = response.parent_ping_id
        if root_id in by_root:
            by_root[root_id].append(response)

    trails = [
        Trail(root=root, responses=tuple(sorted(by_root[root.id], key=_chronological)))
        for root in roots
    ]
    trails.sort(key=lambda trail: _chronological(trail.root), reverse=True)
    return trails


def classify_status(created_at: datetime, now: Optional[datetime] = None) -> PingStatus:
    age = (now or utcnow()) - created_at
    if age < ACTIVE_WINDOW:
        return PingStatus.ACTIVE
    if age < TRANSMITTED_WINDOW:
        return PingStatus.TRANSMITTED
    return PingStatus.COMPLETED


def filter_pings(
    pings: Iterable[PingRecord],
    *,
    search: Optional[str] = None,
    status: Optional[PingStatus] = None,
    kind: TrailKind = TrailKind.ALL,
    now: Optional[datetime] = None,
) -> list[PingRecord]:
    now = now or utcnow()
    needle = search or ""

    def matches(ping: PingRecord) -> bool:
        if needle and not (
            needle in ping.latitude
            or needle in ping.longitude
            or needle in str(ping.id)
            or (ping.message and needle.lower() in ping.message.lower())
        ):
            return False
        if status is not None and classify_status(ping.created_at, now) != status:
            return False
        if kind == TrailKind.ROOTS:
            return ping.is_root
        if kind == TrailKind.RESPONSES:
            return not ping.is_root
        return True

    return [ping for ping in pings if matches(ping)]


def summarize(pings: Iterable[PingRecord], now: Optional[datetime] = None) -> PingSummary:
    pings = list(pings)
    now = now or utcnow()
    return PingSummary(
        total_pings=len(pings),
        trail_count=sum(1 for ping in pings if ping.is_root),
        active_pings=sum(
            1 for ping in pings if classify_status(ping.created_at, now) == PingStatus.ACTIVE
        ),
        last_ping_at=max((ping.created_at for ping in pings), default=None),
    )
