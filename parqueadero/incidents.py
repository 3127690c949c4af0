import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parqueadero.models import Incident, as_utc

logger = logging.getLogger(__name__)


async def record_incident(
    db: AsyncSession,
    description: str,
    at: Optional[datetime] = None,
    session_id: Optional[int] = None,
    vehicle_id: Optional[int] = None,
) -> Incident:
    if not description or not description.strip():
        raise ValueError("Incident description must not be empty")

    incident = Incident(
        description=description.strip(),
        created_at=as_utc(at),
        session_id=session_id,
        vehicle_id=vehicle_id,
    )
    db.add(incident)
    await db.flush()
    await db.refresh(incident)
    logger.info(f"Incident {incident.id} recorded: {incident.description}")
    return incident


async def list_incidents(db: AsyncSession):
    result = await db.execute(select(Incident).order_by(Incident.created_at, Incident.id))
    return result.scalars().all()
