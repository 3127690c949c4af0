"""
Entries and exits racing each other, each on its own connection to a shared
file-backed store, the way concurrent gate requests reach the service.
"""

import asyncio
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from parqueadero import crud
from parqueadero.database import build_engine, build_sessionmaker, init_db, unit_of_work
from parqueadero.errors import ParkingError
from parqueadero.ledger import register_entry, register_exit
from parqueadero.models import CELL_FREE, CELL_OCCUPIED
from parqueadero.schemas import EntryRequest, ExitRequest

BOGOTA = "America/Bogota"
T0 = datetime(2024, 1, 2, 8, 0, tzinfo=ZoneInfo(BOGOTA))
T1 = datetime(2024, 1, 2, 9, 0, tzinfo=ZoneInfo(BOGOTA))


@pytest.fixture
async def sessionmaker(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'parking.db'}")
    await init_db(engine)
    yield build_sessionmaker(engine)
    await engine.dispose()


async def attempt_entry(sessionmaker, plate):
    """The entry result, or the name of the rejection."""
    async with sessionmaker() as db:
        request = EntryRequest(plate_number=plate, vehicle_type="Car", timestamp=T0)
        try:
            return await register_entry(db, request, tz=BOGOTA)
        except ParkingError as e:
            return type(e).__name__


async def attempt_exit(sessionmaker, plate):
    async with sessionmaker() as db:
        request = ExitRequest(plate_number=plate, timestamp=T1)
        try:
            return await register_exit(db, request, tz=BOGOTA)
        except ParkingError as e:
            return type(e).__name__


async def provision(sessionmaker, *names):
    async with sessionmaker() as db:
        async with unit_of_work(db):
            for name in names:
                await crud.create_cell(db, name, "Car")


async def check_consistency(sessionmaker):
    """Return the occupied cell count after checking cells against open sessions."""
    async with sessionmaker() as db:
        occupied = 0
        for cell in await crud.list_cells(db):
            open_count = await crud.count_open_sessions(db, cell_id=cell.id)
            assert open_count <= 1
            assert (cell.state == CELL_OCCUPIED) == (open_count == 1), cell
            occupied += cell.state == CELL_OCCUPIED
        assert await crud.count_open_sessions(db) == occupied
        return occupied


def split(results):
    accepted = [r for r in results if not isinstance(r, str)]
    rejected = sorted(r for r in results if isinstance(r, str))
    return accepted, rejected


async def test_same_vehicle_entering_at_once(sessionmaker):
    await provision(sessionmaker, "C1", "C2", "C3")

    results = await asyncio.gather(*(attempt_entry(sessionmaker, "ABC123") for _ in range(4)))

    accepted, rejected = split(results)
    assert len(accepted) == 1
    assert rejected == ["DuplicateOpenSession"] * 3
    assert await check_consistency(sessionmaker) == 1
    async with sessionmaker() as db:
        vehicle = await crud.get_vehicle_by_plate(db, "ABC123")
        assert await crud.count_open_sessions(db, vehicle_id=vehicle.id) == 1


async def test_last_free_cell_goes_to_one_vehicle(sessionmaker):
    await provision(sessionmaker, "C1")

    results = await asyncio.gather(
        attempt_entry(sessionmaker, "ABC123"), attempt_entry(sessionmaker, "DEF456")
    )

    accepted, rejected = split(results)
    assert len(accepted) == 1
    assert accepted[0].cell_name == "C1"
    assert rejected == ["NoFreeCell"]
    assert await check_consistency(sessionmaker) == 1


async def test_more_vehicles_than_cells(sessionmaker):
    await provision(sessionmaker, "C1", "C2")

    plates = ["AAA111", "BBB222", "CCC333", "DDD444"]
    results = await asyncio.gather(*(attempt_entry(sessionmaker, plate) for plate in plates))

    accepted, rejected = split(results)
    assert sorted(r.cell_name for r in accepted) == ["C1", "C2"]
    assert rejected == ["NoFreeCell", "NoFreeCell"]
    assert await check_consistency(sessionmaker) == 2


async def test_double_exit_closes_once(sessionmaker):
    await provision(sessionmaker, "C1")
    entry = await attempt_entry(sessionmaker, "ABC123")

    results = await asyncio.gather(
        attempt_exit(sessionmaker, "ABC123"), attempt_exit(sessionmaker, "ABC123")
    )

    accepted, rejected = split(results)
    assert [r.session_id for r in accepted] == [entry.session_id]
    assert accepted[0].duration_seconds == 3600
    assert rejected == ["NoOpenSession"]
    assert await check_consistency(sessionmaker) == 0
    async with sessionmaker() as db:
        assert (await crud.get_cell_by_name(db, "C1")).state == CELL_FREE
