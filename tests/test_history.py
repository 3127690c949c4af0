from datetime import datetime, timedelta

from parqueadero import crud
from parqueadero.database import unit_of_work
from parqueadero.history import UNKNOWN, HistoryReport
from parqueadero.models import ParkingSession

T0 = datetime(2024, 1, 2, 13, 0)


async def test_history_most_recent_first(db, provision, enter, leave):
    await provision(("C1", "Car"), ("C2", "Car"))
    async with unit_of_work(db):
        user = await crud.create_user(db, "Ana", "ana@example.com", "Ruiz")
    await enter("AAA111", at=T0, user_id=user.id)
    await enter("BBB222", at=T0 + timedelta(minutes=10))
    await leave("AAA111", at=T0 + timedelta(minutes=30))

    records = await HistoryReport(db).collect()

    assert [r.plate_number for r in records] == ["BBB222", "AAA111"]
    latest, earliest = records
    assert latest.exit_timestamp is None
    assert latest.occupied_duration is None
    assert latest.user_name == UNKNOWN
    assert earliest.cell_name == "C1"
    assert earliest.user_name == "Ana Ruiz"
    assert earliest.occupied_duration == 1800


async def test_history_can_be_walked_twice(db, provision, enter):
    await provision(("C1", "Car"))
    await enter("AAA111", at=T0)
    report = HistoryReport(db)

    first = [r.id async for r in report]
    second = [r.id async for r in report]

    assert first == second and len(first) == 1


async def test_open_only_lists_parked_vehicles(db, provision, enter, leave):
    await provision(("C1", "Car"), ("C2", "Car"))
    await enter("AAA111", at=T0)
    await enter("BBB222", at=T0)
    await leave("AAA111", at=T0 + timedelta(hours=1))

    parked = await HistoryReport(db, open_only=True).collect()

    assert [r.plate_number for r in parked] == ["BBB222"]


async def test_missing_relations_render_unknown(db):
    async with unit_of_work(db):
        db.add(ParkingSession(vehicle_id=99, cell_id=98, user_id=97, entry_time=T0))

    (record,) = await HistoryReport(db).collect()

    assert record.plate_number == UNKNOWN
    assert record.cell_name == UNKNOWN
    assert record.user_name == UNKNOWN

