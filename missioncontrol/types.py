"""
Shared enums for ping state.
"""

from __future__ import annotations

from datetime import timedelta
from enum import Enum


class PingStatus(str, Enum):
    ACTIVE = "ACTIVE"
    TRANSMITTED = "TRANSMITTED"
    COMPLETED = "COMPLETED"


class TrailKind(str, Enum):
    """Which side of a trail a ping listing should include."""

    ALL = "all"
    ROOTS = "roots"
    RESPONSES = "responses"


ACTIVE_WINDOW = timedelta(minutes=5)
TRANSMITTED_WINDOW = timedelta(minutes=60)
