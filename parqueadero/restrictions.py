"""Pico y Placa evaluation.

A vehicle is banned when some rule for its type and the local weekday names
the last digit of its plate and, if the rule carries a time window, the local
time of day falls inside it.
"""

import logging
from datetime import datetime, time, timezone
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from parqueadero import crud
from parqueadero.config import PARKING_TIMEZONE
from parqueadero.errors import RestrictionCheckUnavailable

logger = logging.getLogger(__name__)


def plate_last_digit(plate: str) -> Optional[int]:
    """Last numeric character of the plate; motorcycle plates end in a letter."""
    for ch in reversed(plate):
        if ch.isdigit():
            return int(ch)
    return None


def in_window(t: time, start: Optional[time], end: Optional[time]) -> bool:
    if start is None or end is None:
        return True
    if start < end:
        return start <= t < end
    # window wraps past midnight
    return t >= start or t < end


def rule_applies(rule, digit: int, local_at: datetime) -> bool:
    return (
        rule.digit == digit
        and rule.weekday == local_at.weekday()
        and in_window(local_at.time(), rule.start_time, rule.end_time)
    )


def is_restricted(rules: Iterable, plate: str, vehicle_type: str, local_at: datetime) -> bool:
    digit = plate_last_digit(plate)
    if digit is None:
        return False
    return any(
        rule.vehicle_type == vehicle_type and rule_applies(rule, digit, local_at)
        for rule in rules
    )


def to_local(at: datetime, tz: str = PARKING_TIMEZONE) -> datetime:
    """Convert a stored (naive UTC) or aware timestamp to naive local wall time."""
    if at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)
    return at.astimezone(ZoneInfo(tz)).replace(tzinfo=None)


async def check_restriction(
    db: AsyncSession, plate: str, vehicle_type: str, at: datetime, tz: str = PARKING_TIMEZONE
) -> bool:
    local_at = to_local(at, tz)
    try:
        rules = await crud.get_restriction_rules(db, vehicle_type, local_at.weekday())
    except SQLAlchemyError as e:
        logger.error(f"Restriction rules unavailable, refusing entry for {plate}: {e}")
        raise RestrictionCheckUnavailable() from e

    restricted = is_restricted(rules, plate, vehicle_type, local_at)
    if restricted:
        logger.info(f"Plate {plate} ({vehicle_type}) restricted at {local_at:%A %H:%M}")
    return restricted
