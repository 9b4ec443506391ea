"""
Ping and user storage for SQL databases and an in-memory test implementation.

Stores only persist; ownership checks live in ``missioncontrol.trails``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Protocol

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    select,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from missioncontrol.errors import ConflictError, StorageError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DbClient(Protocol):
    """Interface for ping and user persistence."""

    def create_user(
        self,
        username: str,
        password_hash: str,
        *,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> "UserRecord":
        ...

    def get_user(self, user_id: int) -> Optional["UserRecord"]:
        ...

    def get_user_by_username(self, username: str) -> Optional["UserRecord"]:
        ...

    def create_ping(
        self,
        user_id: int,
        latitude: str,
        longitude: str,
        message: Optional[str] = None,
    ) -> "PingRecord":
        ...

    def get_user_pings(self, user_id: int) -> list["PingRecord"]:
        ...

    def get_latest_user_pings(self, user_id: int, limit: int) -> list["PingRecord"]:
        ...

    def get_ping_by_id(self, ping_id: int) -> Optional["PingRecord"]:
        ...

    def respond_to_ping(
        self,
        parent_id: int,
        user_id: int,
        latitude: str,
        longitude: str,
        message: Optional[str] = None,
    ) -> "PingRecord":
        ...


@dataclass(frozen=True)
class PingRecord:
    id: int
    user_id: int
    latitude: str
    longitude: str
    message: Optional[str]
    parent_ping_id: Optional[int]
    created_at: datetime

    @property
    def is_root(self) -> bool:
        return self.parent_ping_id is None

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "message": self.message,
            "parentPingId": self.parent_ping_id,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass
class UserRecord:
    id: int
    username: str
    password_hash: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
        }


def _normalize_message(message: Optional[str]) -> Optional[str]:
    return message or None


def _ensure_aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on round trip.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class InMemoryDbClient:
    """Simple in-memory store for development and tests."""

    def __init__(self, clock: Clock = utcnow):
        self.clock = clock
        self.users: Dict[int, UserRecord] = {}
        self.pings: Dict[int, PingRecord] = {}
        self._lock = threading.Lock()
        self._next_user_id = 1
        self._next_ping_id = 1

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.users.clear()
            self.pings.clear()
            self._next_user_id = 1
            self._next_ping_id = 1

    def create_user(
        self,
        username: str,
        password_hash: str,
        *,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> UserRecord:
        with self._lock:
            if any(user.username == username for user in self.users.values()):
                raise ConflictError()
            now = self.clock()
            record = UserRecord(
                id=self._next_user_id,
                username=username,
                password_hash=password_hash,
                email=email,
                first_name=first_name,
                last_name=last_name,
                created_at=now,
                updated_at=now,
            )
            self.users[record.id] = record
            self._next_user_id += 1
            return record

    def get_user(self, user_id: int) -> Optional[UserRecord]:
        return self.users.get(user_id)

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        with self._lock:
            for user in self.users.values():
                if user.username == username:
                    return user
        return None

    def _append_ping(
        self,
        user_id: int,
        latitude: str,
        longitude: str,
        message: Optional[str],
        parent_ping_id: Optional[int],
    ) -> PingRecord:
        with self._lock:
            record = PingRecord(
                id=self._next_ping_id,
                user_id=user_id,
                latitude=latitude,
                longitude=longitude,
                message=_normalize_message(message),
                parent_ping_id=parent_ping_id,
                created_at=self.clock(),
            )
            self.pings[record.id] = record
            self._next_ping_id += 1
            return record

    def create_ping(
        self,
        user_id: int,
        latitude: str,
        longitude: str,
        message: Optional[str] = None,
    ) -> PingRecord:
        return self._append_ping(user_id, latitude, longitude, message, None)

    def get_user_pings(self, user_id: int) -> list[PingRecord]:
        # Dicts keep insertion order, which is creation order here.
        return [ping for ping in list(self.pings.values()) if ping.user_id == user_id]

    def get_latest_user_pings(self, user_id: int, limit: int) -> list[PingRecord]:
        pings = sorted(
            self.get_user_pings(user_id),
            key=lambda ping: (ping.created_at, ping.id),
            reverse=True,
        )
        return pings[: max(limit, 0)]

    def get_ping_by_id(self, ping_id: int) -> Optional[PingRecord]:
        return self.pings.get(ping_id)

    def respond_to_ping(
        self,
        parent_id: int,
        user_id: int,
        latitude: str,
        longitude: str,
        message: Optional[str] = None,
    ) -> PingRecord:
        return self._append_ping(user_id, latitude, longitude, message, parent_id)


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str, clock: Clock = utcnow):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        self.clock = clock
        engine_kwargs: dict = {"future": True, "pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            engine_kwargs["pool_recycle"] = 1800
        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_ping_record(self, row: "PingRow") -> PingRecord:
        return PingRecord(
            id=row.id,
            user_id=row.user_id,
            latitude=row.latitude,
            longitude=row.longitude,
            message=row.message,
            parent_ping_id=row.parent_ping_id,
            created_at=_ensure_aware(row.created_at),
        )

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            id=row.id,
            username=row.username,
            password_hash=row.password_hash,
            email=row.email,
            first_name=row.first_name,
            last_name=row.last_name,
            created_at=_ensure_aware(row.created_at),
            updated_at=_ensure_aware(row.updated_at),
        )

    def create_user(
        self,
        username: str,
        password_hash: str,
        *,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> UserRecord:
        now = self.clock()
        try:
            with self.Session() as session:
                row = UserRow(
                    username=username,
                    password_hash=password_hash,
                    email=email,
                    first_name=first_name,
                    last_name=last_name,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
                session.commit()
                session.refresh(row)
                return self._to_user_record(row)
        except IntegrityError as exc:
            raise ConflictError() from exc
        except SQLAlchemyError as exc:
            logger.exception("Failed to create user %s", username)
            raise StorageError() from exc

    def get_user(self, user_id: int) -> Optional[UserRecord]:
        try:
            with self.Session() as session:
                row = session.get(UserRow, user_id)
                return self._to_user_record(row) if row else None
        except SQLAlchemyError as exc:
            logger.exception("Failed to load user %s", user_id)
            raise StorageError() from exc

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        try:
            with self.Session() as session:
                stmt = select(UserRow).where(UserRow.username == username)
                row = session.execute(stmt).scalar_one_or_none()
                return self._to_user_record(row) if row else None
        except SQLAlchemyError as exc:
            logger.exception("Failed to load user %s", username)
            raise StorageError() from exc

    def _insert_ping(
        self,
        user_id: int,
        latitude: str,
        longitude: str,
        message: Optional[str],
        parent_ping_id: Optional[int],
    ) -> PingRecord:
        try:
            with self.Session() as session:
                row = PingRow(
                    user_id=user_id,
                    latitude=latitude,
                    longitude=longitude,
                    message=_normalize_message(message),
                    parent_ping_id=parent_ping_id,
                    created_at=self.clock(),
                )
                session.add(row)
                session.commit()
                session.refresh(row)
                return self._to_ping_record(row)
        except SQLAlchemyError as exc:
            logger.exception("Failed to store ping for user %s", user_id)
            raise StorageError() from exc

    def create_ping(
        self,
        user_id: int,
        latitude: str,
        longitude: str,
        message: Optional[str] = None,
    ) -> PingRecord:
        return self._insert_ping(user_id, latitude, longitude, message, None)

    def get_user_pings(self, user_id: int) -> list[PingRecord]:
        try:
            with self.Session() as session:
                stmt = (
                    select(PingRow)
                    .where(PingRow.user_id == user_id)
                    .order_by(PingRow.id.asc())
                )
                rows = session.execute(stmt).scalars().all()
                return [self._to_ping_record(row) for row in rows]
        except SQLAlchemyError as exc:
            logger.exception("Failed to list pings for user %s", user_id)
            raise StorageError() from exc

    def get_latest_user_pings(self, user_id: int, limit: int) -> list[PingRecord]:
        try:
            with self.Session() as session:
                stmt = (
                    select(PingRow)
                    .where(PingRow.user_id == user_id)
                    .order_by(PingRow.created_at.desc(), PingRow.id.desc())
                    .limit(max(limit, 0))
                )
                rows = session.execute(stmt).scalars().all()
                return [self._to_ping_record(row) for row in rows]
        except SQLAlchemyError as exc:
            logger.exception("Failed to list latest pings for user %s", user_id)
            raise StorageError() from exc

    def get_ping_by_id(self, ping_id: int) -> Optional[PingRecord]:
        try:
            with self.Session() as session:
                row = session.get(PingRow, ping_id)
                return self._to_ping_record(row) if row else None
        except SQLAlchemyError as exc:
            logger.exception("Failed to load ping %s", ping_id)
            raise StorageError() from exc

    def respond_to_ping(
        self,
        parent_id: int,
        user_id: int,
        latitude: str,
        longitude: str,
        message: Optional[str] = None,
    ) -> PingRecord:
        return self._insert_ping(user_id, latitude, longitude, message, parent_id)


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    email = Column(String, nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class PingRow(Base):
    __tablename__ = "pings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    latitude = Column(String, nullable=False)
    longitude = Column(String, nullable=False)
    message = Column(Text, nullable=True)
    parent_ping_id = Column(Integer, ForeignKey("pings.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
