"""Barrier signals sent over MQTT after an entry or exit is recorded.

Each signal tells the barrier to open and names the session, plate and cell
it belongs to, so the gate display and any listener can match it to the
ticket. Publishing never blocks or fails the request that triggered it.
"""

import asyncio
import logging
import ssl
from datetime import datetime
from typing import Optional

from aiomqtt import Client
from pydantic import BaseModel

from parqueadero import config
from parqueadero.ledger import EntryResult, ExitResult
from parqueadero.schemas import UtcDatetime

logger = logging.getLogger(__name__)

# publishes still in flight; asyncio only holds weak references to tasks
_pending: set[asyncio.Task] = set()


class GateSignal(BaseModel):
    event: str
    command: str = "open"
    session_id: int
    plate_number: str
    cell_name: str
    timestamp: UtcDatetime
    occupied_duration: Optional[float] = None


def entry_signal(result: EntryResult) -> GateSignal:
    return GateSignal(
        event="entry",
        session_id=result.session_id,
        plate_number=result.plate_number,
        cell_name=result.cell_name,
        timestamp=result.entry_time,
    )


def exit_signal(result: ExitResult) -> GateSignal:
    return GateSignal(
        event="exit",
        session_id=result.session_id,
        plate_number=result.plate_number,
        cell_name=result.cell_name,
        timestamp=result.exit_time,
        occupied_duration=result.duration_seconds,
    )


def _tls_context() -> Optional[ssl.SSLContext]:
    if not config.MQTT_TLS_ENABLED:
        return None
    logger.info("TLS is enabled. Setting up SSL context.")
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    context.load_verify_locations(cafile=config.CA_CERT)
    context.load_cert_chain(certfile=config.CLIENT_CERT, keyfile=config.CLIENT_KEY)
    return context


async def publish_signal(topic: str, signal: GateSignal):
    """Publish ``signal`` on ``topic``. Failures are logged and dropped."""
    if not config.MQTT_HOST:
        logger.debug(f"MQTT_HOST not set, skipping {signal.event} signal for session {signal.session_id}")
        return

    try:
        port = config.MQTT_TLS_PORT if config.MQTT_TLS_ENABLED else config.MQTT_PORT
        async with Client(
            hostname=config.MQTT_HOST,
            port=port,
            username=config.MQTT_USERNAME,
            password=config.MQTT_PASSWORD,
            tls_context=_tls_context(),
        ) as client:
            await client.publish(topic, signal.model_dump_json().encode())
        logger.info(
            f"Gate {signal.event} signal sent on '{topic}' for {signal.plate_number} "
            f"(session {signal.session_id}, cell {signal.cell_name})"
        )
    except Exception as e:
        logger.error(f"Gate signal for session {signal.session_id} failed: {e}")


def _schedule(topic: str, signal: GateSignal) -> asyncio.Task:
    task = asyncio.create_task(publish_signal(topic, signal))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


def notify_entry(result: EntryResult) -> asyncio.Task:
    return _schedule(config.MQTT_ENTRY_TOPIC, entry_signal(result))


def notify_exit(result: ExitResult) -> asyncio.Task:
    return _schedule(config.MQTT_EXIT_TOPIC, exit_signal(result))
