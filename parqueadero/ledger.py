"""Parking sessions: opening on entry, closing on exit.

A session is open while ``exit_time`` is null and closed once it is set;
a closed session is never touched again. Entry and exit each run as a
single unit of work so that the cell state and the session table always
agree once the request is over.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from parqueadero import crud
from parqueadero.allocator import allocate, release
from parqueadero.config import PARKING_TIMEZONE
from parqueadero.database import is_unique_violation, unit_of_work
from parqueadero.errors import (
    DuplicateOpenSession,
    InvalidTimeOrdering,
    NoOpenSession,
    ParkingError,
    RestrictedPlate,
    UnknownUser,
    VehicleTypeMismatch,
)
from parqueadero.models import Cell, ParkingSession, User, Vehicle, as_utc
from parqueadero.restrictions import check_restriction
from parqueadero.schemas import EntryRequest, ExitRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntryResult:
    session_id: int
    cell_name: str
    plate_number: str
    entry_time: datetime


@dataclass(frozen=True)
class ExitResult:
    session_id: int
    cell_name: str
    plate_number: str
    entry_time: datetime
    exit_time: datetime
    duration_seconds: float


async def find_open_session(db: AsyncSession, plate: str) -> Optional[ParkingSession]:
    vehicle = await crud.get_vehicle_by_plate(db, plate)
    if vehicle is None:
        return None
    return await crud.get_open_session_for_vehicle(db, vehicle.id)


async def open_session(
    db: AsyncSession,
    vehicle: Vehicle,
    cell: Cell,
    entry_time: datetime,
    user_id: Optional[int] = None,
) -> ParkingSession:
    plate, cell_name = vehicle.plate, cell.name
    if await crud.get_open_session_for_vehicle(db, vehicle.id) is not None:
        raise DuplicateOpenSession(f"Vehicle {plate} already inside")
    if await crud.get_open_session_for_cell(db, cell.id) is not None:
        raise DuplicateOpenSession(f"Cell {cell_name} already holds an open session")

    session = ParkingSession(
        vehicle_id=vehicle.id,
        cell_id=cell.id,
        user_id=user_id,
        entry_time=entry_time,
    )
    # the partial unique indexes catch a concurrent open that slipped past the checks
    try:
        async with db.begin_nested():
            db.add(session)
    except IntegrityError as e:
        if not is_unique_violation(e):
            raise
        raise DuplicateOpenSession(f"Vehicle {plate} already inside") from e

    await db.refresh(session)
    return session


async def close_session(
    db: AsyncSession,
    *,
    plate: Optional[str] = None,
    session_id: Optional[int] = None,
    exit_time: datetime,
) -> ParkingSession:
    """Close the open session for a plate or a session id and free its cell.

    Calling this twice for the same session fails the second time.
    """
    if session_id is not None:
        session = await crud.get_session(db, session_id)
        if session is None or not session.is_open:
            raise NoOpenSession(f"Session {session_id} is not open")
        if plate is not None:
            vehicle = await db.get(Vehicle, session.vehicle_id)
            if vehicle.plate != plate:
                raise NoOpenSession(f"Session {session_id} does not belong to {plate}")
    elif plate is not None:
        session = await find_open_session(db, plate)
        if session is None:
            raise NoOpenSession(f"No active parking session found for {plate}")
    else:
        raise ValueError("plate or session_id is required")

    duration = (exit_time - session.entry_time).total_seconds()
    if duration < 0:
        raise InvalidTimeOrdering(
            f"Exit time {exit_time:%Y-%m-%d %H:%M:%S} is earlier than "
            f"entry time {session.entry_time:%Y-%m-%d %H:%M:%S}"
        )

    closed = await db.execute(
        update(ParkingSession)
        .where(ParkingSession.id == session.id, ParkingSession.exit_time.is_(None))
        .values(exit_time=exit_time, duration_seconds=duration)
        .execution_options(synchronize_session=False)
    )
    if closed.rowcount != 1:
        raise NoOpenSession(f"Session {session.id} was already closed")

    await release(db, session.cell_id)
    return await crud.get_session(db, session.id)


async def _register_vehicle(db: AsyncSession, plate: str, vehicle_type: str) -> Vehicle:
    try:
        async with db.begin_nested():
            vehicle = await crud.create_vehicle(db, plate, vehicle_type)
    except IntegrityError:
        # registered by a concurrent request in the meantime
        vehicle = await crud.get_vehicle_by_plate(db, plate)
        if vehicle is None:
            raise
    else:
        logger.info(f"Registered vehicle {plate} ({vehicle_type})")
    return vehicle


async def register_entry(
    db: AsyncSession, request: EntryRequest, tz: str = PARKING_TIMEZONE
) -> EntryResult:
    plate = request.plate_number
    vehicle_type = request.vehicle_type
    entry_time = as_utc(request.timestamp, tz)

    async with unit_of_work(db):
        if request.user_id is not None and await db.get(User, request.user_id) is None:
            raise UnknownUser(f"User {request.user_id} not found")

        vehicle = await crud.get_vehicle_by_plate(db, plate)
        if vehicle is not None and vehicle.vehicle_type != vehicle_type:
            raise VehicleTypeMismatch(
                f"Vehicle {plate} is registered as {vehicle.vehicle_type}, not {vehicle_type}"
            )

        if await check_restriction(db, plate, vehicle_type, entry_time, tz):
            raise RestrictedPlate(f"Plate {plate} is under Pico y Placa restriction right now")

        if vehicle is None:
            vehicle = await _register_vehicle(db, plate, vehicle_type)
        elif await crud.get_open_session_for_vehicle(db, vehicle.id) is not None:
            raise DuplicateOpenSession(f"Vehicle {plate} already inside")

        cell = await allocate(db, vehicle_type)
        cell_id, cell_name = cell.id, cell.name
        try:
            session = await open_session(db, vehicle, cell, entry_time, request.user_id)
        except ParkingError:
            await release(db, cell_id)
            raise

        result = EntryResult(
            session_id=session.id,
            cell_name=cell_name,
            plate_number=plate,
            entry_time=session.entry_time,
        )

    logger.info(f"Entry recorded: {plate} -> cell {result.cell_name} (session {result.session_id})")
    return result


async def register_exit(
    db: AsyncSession, request: ExitRequest, tz: str = PARKING_TIMEZONE
) -> ExitResult:
    exit_time = as_utc(request.timestamp, tz)

    async with unit_of_work(db):
        session = await close_session(
            db,
            plate=request.plate_number,
            session_id=request.session_id,
            exit_time=exit_time,
        )
        vehicle = await db.get(Vehicle, session.vehicle_id)
        cell = await db.get(Cell, session.cell_id)
        result = ExitResult(
            session_id=session.id,
            cell_name=cell.name,
            plate_number=vehicle.plate,
            entry_time=session.entry_time,
            exit_time=session.exit_time,
            duration_seconds=session.duration_seconds,
        )

    logger.info(
        f"Exit recorded: {result.plate_number} left cell {result.cell_name} "
        f"after {result.duration_seconds:.0f}s"
    )
    return result
