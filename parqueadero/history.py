from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parqueadero.models import Cell, ParkingSession, User, Vehicle

UNKNOWN = "N/A"


@dataclass(frozen=True)
class HistoryRecord:
    id: int
    entry_timestamp: datetime
    exit_timestamp: Optional[datetime]
    occupied_duration: Optional[float]
    plate_number: str
    cell_name: str
    user_name: str


class HistoryReport:
    """Sessions joined with plate, cell and user, most recent entry first.

    Iterating runs the query again, so the same report can be walked any
    number of times. Missing relations come out as ``UNKNOWN``.
    """

    def __init__(self, db: AsyncSession, open_only: bool = False):
        self.db = db
        self.open_only = open_only

    def statement(self):
        stmt = (
            select(
                ParkingSession.id,
                ParkingSession.entry_time,
                ParkingSession.exit_time,
                ParkingSession.duration_seconds,
                Vehicle.plate,
                Cell.name,
                User.first_name,
                User.last_name,
            )
            .outerjoin(Vehicle, Vehicle.id == ParkingSession.vehicle_id)
            .outerjoin(Cell, Cell.id == ParkingSession.cell_id)
            .outerjoin(User, User.id == ParkingSession.user_id)
            .order_by(ParkingSession.entry_time.desc(), ParkingSession.id.desc())
        )
        if self.open_only:
            stmt = stmt.where(ParkingSession.exit_time.is_(None))
        return stmt

    async def __aiter__(self) -> AsyncIterator[HistoryRecord]:
        result = await self.db.stream(self.statement())
        async for row in result:
            yield _to_record(row)

    async def collect(self) -> list[HistoryRecord]:
        return [record async for record in self]


def _to_record(row) -> HistoryRecord:
    session_id, entry_time, exit_time, duration, plate, cell_name, first_name, last_name = row
    if first_name is None:
        user_name = UNKNOWN
    else:
        user_name = f"{first_name} {last_name or ''}".strip()
    return HistoryRecord(
        id=session_id,
        entry_timestamp=entry_time,
        exit_timestamp=exit_time,
        occupied_duration=duration,
        plate_number=plate or UNKNOWN,
        cell_name=cell_name or UNKNOWN,
        user_name=user_name,
    )
