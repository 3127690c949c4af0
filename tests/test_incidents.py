from datetime import datetime, timedelta

import pytest

from parqueadero.database import unit_of_work
from parqueadero.incidents import list_incidents, record_incident
from parqueadero.models import utc_now

T0 = datetime(2024, 1, 2, 13, 0)


async def test_incidents_are_listed_in_creation_order(db, provision, enter):
    await provision(("C1", "Car"))
    entry = await enter("AAA111", at=T0)
    async with unit_of_work(db):
        await record_incident(
            db, "Vehiculo mal estacionado", at=T0 + timedelta(minutes=5), session_id=entry.session_id
        )
        await record_incident(db, "  Luz de celda dañada ", at=T0)

    incidents = await list_incidents(db)

    assert [i.description for i in incidents] == ["Luz de celda dañada", "Vehiculo mal estacionado"]
    assert incidents[1].session_id == entry.session_id
    assert incidents[0].session_id is None


async def test_incident_defaults_to_now(db):
    before = utc_now().replace(microsecond=0)
    async with unit_of_work(db):
        incident = await record_incident(db, "Barrera no abre")

    assert incident.created_at >= before


async def test_incident_requires_description(db):
    with pytest.raises(ValueError):
        await record_incident(db, "   ")
