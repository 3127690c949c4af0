"""
Shared pytest fixtures: an in-memory sqlite store per test, a session bound to
it, and an HTTP client talking to the app over ASGI.
"""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.pool import StaticPool

from parqueadero import crud
from parqueadero.database import build_engine, build_sessionmaker, get_db, init_db, unit_of_work
from parqueadero.ledger import register_entry, register_exit
from parqueadero.main import app
from parqueadero.models import CELL_OCCUPIED
from parqueadero.schemas import EntryRequest, ExitRequest

BOGOTA = "America/Bogota"

# 2024-01-01 is a Monday
MONDAY_8AM = datetime(2024, 1, 1, 8, 0, tzinfo=ZoneInfo(BOGOTA))
TUESDAY_8AM = datetime(2024, 1, 2, 8, 0, tzinfo=ZoneInfo(BOGOTA))


@pytest.fixture
async def engine():
    engine = build_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine):
    async with build_sessionmaker(engine)() as session:
        yield session


@pytest.fixture
def provision(db):
    """Create committed cells: ``await provision(("C1", "Car"), ("M1", "Motorcycle"))``."""

    async def _provision(*specs):
        async with unit_of_work(db):
            cells = [await crud.create_cell(db, name, vehicle_type) for name, vehicle_type in specs]
        return [c.id for c in cells]

    return _provision


@pytest.fixture
def enter(db):
    async def _enter(plate, vehicle_type="Car", at=TUESDAY_8AM, user_id=None):
        request = EntryRequest(
            plate_number=plate, vehicle_type=vehicle_type, timestamp=at, user_id=user_id
        )
        return await register_entry(db, request, tz=BOGOTA)

    return _enter


@pytest.fixture
def leave(db):
    async def _leave(plate=None, at=TUESDAY_8AM, session_id=None):
        request = ExitRequest(plate_number=plate, session_id=session_id, timestamp=at)
        return await register_exit(db, request, tz=BOGOTA)

    return _leave


@pytest.fixture
def assert_consistent(db):
    """Every cell is occupied exactly when one open session points at it."""

    async def _check():
        for cell in await crud.list_cells(db):
            open_count = await crud.count_open_sessions(db, cell_id=cell.id)
            assert open_count <= 1
            assert (cell.state == CELL_OCCUPIED) == (open_count == 1), cell

    return _check


@pytest.fixture
async def client(engine):
    sessionmaker = build_sessionmaker(engine)

    async def override_get_db():
        async with sessionmaker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
