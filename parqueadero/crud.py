from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from parqueadero.models import (
    CELL_FREE,
    CELL_OCCUPIED,
    Cell,
    ParkingSession,
    RestrictionRule,
    User,
    Vehicle,
)


async def get_vehicle_by_plate(db: AsyncSession, plate: str):
    result = await db.execute(select(Vehicle).where(Vehicle.plate == plate))
    return result.scalars().first()


async def create_vehicle(db: AsyncSession, plate: str, vehicle_type: str, owner_id: int | None = None):
    vehicle = Vehicle(plate=plate, vehicle_type=vehicle_type, owner_id=owner_id)
    db.add(vehicle)
    await db.flush()
    await db.refresh(vehicle)
    return vehicle


async def create_cell(db: AsyncSession, name: str, vehicle_type: str):
    cell = Cell(name=name, vehicle_type=vehicle_type, state=CELL_FREE, active=True)
    db.add(cell)
    await db.flush()
    await db.refresh(cell)
    return cell


async def get_cell(db: AsyncSession, cell_id: int):
    result = await db.execute(
        select(Cell).where(Cell.id == cell_id).execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def get_cell_by_name(db: AsyncSession, name: str):
    result = await db.execute(
        select(Cell).where(Cell.name == name).execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def list_cells(db: AsyncSession):
    result = await db.execute(
        select(Cell).order_by(Cell.id).execution_options(populate_existing=True)
    )
    return result.scalars().all()


async def retire_cell(db: AsyncSession, cell_id: int):
    cell = await get_cell(db, cell_id)
    if cell is None:
        return None
    cell.active = False
    await db.flush()
    return cell


async def get_session(db: AsyncSession, session_id: int):
    result = await db.execute(
        select(ParkingSession)
        .where(ParkingSession.id == session_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def get_open_session_for_vehicle(db: AsyncSession, vehicle_id: int):
    result = await db.execute(
        select(ParkingSession).where(
            ParkingSession.vehicle_id == vehicle_id,
            ParkingSession.exit_time.is_(None),
        )
    )
    return result.scalars().first()


async def get_open_session_for_cell(db: AsyncSession, cell_id: int):
    result = await db.execute(
        select(ParkingSession).where(
            ParkingSession.cell_id == cell_id,
            ParkingSession.exit_time.is_(None),
        )
    )
    return result.scalars().first()


async def count_open_sessions(db: AsyncSession, **filters) -> int:
    stmt = select(func.count(ParkingSession.id)).where(ParkingSession.exit_time.is_(None))
    for column, value in filters.items():
        stmt = stmt.where(getattr(ParkingSession, column) == value)
    return await db.scalar(stmt)


async def create_restriction_rule(db: AsyncSession, **fields):
    rule = RestrictionRule(**fields)
    db.add(rule)
    await db.flush()
    await db.refresh(rule)
    return rule


async def get_restriction_rules(db: AsyncSession, vehicle_type: str, weekday: int):
    result = await db.execute(
        select(RestrictionRule).where(
            RestrictionRule.vehicle_type == vehicle_type,
            RestrictionRule.weekday == weekday,
        )
    )
    return result.scalars().all()


async def list_restriction_rules(db: AsyncSession):
    result = await db.execute(
        select(RestrictionRule).order_by(RestrictionRule.weekday, RestrictionRule.digit)
    )
    return result.scalars().all()


async def create_user(db: AsyncSession, first_name: str, email: str, last_name: str | None = None):
    user = User(first_name=first_name, last_name=last_name, email=email)
    db.add(user)
    await db.flush()
    await db.refresh(user)
    return user


def occupancy_counts(cells) -> tuple[int, int]:
    occupied = sum(1 for c in cells if c.state == CELL_OCCUPIED)
    return occupied, len(cells) - occupied
