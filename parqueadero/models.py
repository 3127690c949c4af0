from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Text,
    Time,
    TIMESTAMP,
    text,
)

from parqueadero.config import PARKING_TIMEZONE
from parqueadero.database import Base

CELL_FREE = "free"
CELL_OCCUPIED = "occupied"


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(ts: Optional[datetime], tz: str = PARKING_TIMEZONE) -> datetime:
    """Naive UTC, the form timestamps are stored in.

    Naive input is wall-clock time at the parking lot, in ``tz``.
    """
    if ts is None:
        return utc_now()
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=ZoneInfo(tz))
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(60), nullable=False)
    last_name = Column(String(60), nullable=True)
    email = Column(String(120), nullable=False, unique=True)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name or ''}".strip()


class Cell(Base):
    __tablename__ = "cells"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(30), nullable=False, unique=True)
    vehicle_type = Column(String(30), nullable=False, index=True)
    state = Column(String(10), nullable=False, default=CELL_FREE)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP, nullable=False, default=utc_now)

    def __repr__(self):
        return f"<Cell(id={self.id}, name={self.name}, state={self.state})>"


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    plate = Column(String(10), nullable=False, unique=True)
    vehicle_type = Column(String(30), nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    def __repr__(self):
        return f"<Vehicle(id={self.id}, plate={self.plate})>"


class ParkingSession(Base):
    __tablename__ = "parking_sessions"
    __table_args__ = (
        Index(
            "uq_open_session_per_vehicle",
            "vehicle_id",
            unique=True,
            sqlite_where=text("exit_time IS NULL"),
            postgresql_where=text("exit_time IS NULL"),
        ),
        Index(
            "uq_open_session_per_cell",
            "cell_id",
            unique=True,
            sqlite_where=text("exit_time IS NULL"),
            postgresql_where=text("exit_time IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)
    cell_id = Column(Integer, ForeignKey("cells.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    entry_time = Column(TIMESTAMP, nullable=False, index=True)
    exit_time = Column(TIMESTAMP, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    @property
    def is_open(self) -> bool:
        return self.exit_time is None

    def __repr__(self):
        return f"<ParkingSession(id={self.id}, vehicle_id={self.vehicle_id}, cell_id={self.cell_id})>"


class RestrictionRule(Base):
    """Pico y Placa: plates ending in ``digit`` may not enter on ``weekday``.

    ``weekday`` follows ``datetime.weekday()`` (0 is Monday). Without a time
    window the rule covers the whole day.
    """

    __tablename__ = "restriction_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    vehicle_type = Column(String(30), nullable=False)
    digit = Column(SmallInteger, nullable=False)
    weekday = Column(SmallInteger, nullable=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)

    __table_args__ = (Index("ix_restriction_lookup", "vehicle_type", "weekday"),)


class Incident(Base):
    __tablename__ = "incidents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    description = Column(Text, nullable=False)
    created_at = Column(TIMESTAMP, nullable=False, default=utc_now)
    session_id = Column(Integer, ForeignKey("parking_sessions.id"), nullable=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=True)
