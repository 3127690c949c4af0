import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from parqueadero.errors import NoFreeCell
from parqueadero.models import CELL_FREE, CELL_OCCUPIED, Cell

logger = logging.getLogger(__name__)


async def allocate(db: AsyncSession, vehicle_type: str) -> Cell:
    """Claim the lowest-id free, active cell for ``vehicle_type``.

    Each candidate is claimed with an update guarded on ``state = 'free'``,
    so a concurrent request that got there first simply makes the claim
    affect no rows and the next candidate is tried.
    """
    result = await db.execute(
        select(Cell.id)
        .where(
            Cell.vehicle_type == vehicle_type,
            Cell.state == CELL_FREE,
            Cell.active.is_(True),
        )
        .order_by(Cell.id)
    )
    for cell_id in result.scalars().all():
        claimed = await db.execute(
            update(Cell)
            .where(Cell.id == cell_id, Cell.state == CELL_FREE)
            .values(state=CELL_OCCUPIED)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 1:
            cell = await db.get(Cell, cell_id, populate_existing=True)
            logger.info(f"Allocated cell {cell.name} for {vehicle_type}")
            return cell

    logger.info(f"No free cell for {vehicle_type}")
    raise NoFreeCell(f"No free cell for vehicle type {vehicle_type}")


async def release(db: AsyncSession, cell_id: int) -> None:
    released = await db.execute(
        update(Cell)
        .where(Cell.id == cell_id, Cell.state == CELL_OCCUPIED)
        .values(state=CELL_FREE)
        .execution_options(synchronize_session=False)
    )
    if released.rowcount == 0:
        logger.warning(f"Release of cell {cell_id} ignored: cell was already free")
        return

    cell = await db.get(Cell, cell_id, populate_existing=True)
    logger.info(f"Released cell {cell.name}")
