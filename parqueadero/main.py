import logging

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from parqueadero import __version__, crud
from parqueadero.config import LOG_LEVEL, ROOT_PATH
from parqueadero.database import get_db, init_db, unit_of_work
from parqueadero.errors import ParkingError, PersistenceUnavailable
from parqueadero.gate import notify_entry, notify_exit
from parqueadero.history import HistoryReport
from parqueadero.incidents import list_incidents, record_incident
from parqueadero.ledger import register_entry, register_exit
from parqueadero.schemas import (
    CellCreate,
    CellInventory,
    CellOut,
    EntryRequest,
    EntryResponse,
    ExitRequest,
    ExitResponse,
    HistoryItem,
    IncidentCreate,
    IncidentOut,
    RestrictionRuleCreate,
    RestrictionRuleOut,
    UserCreate,
    UserOut,
    VehicleCreate,
    VehicleOut,
)

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Parqueadero Service",
    version=__version__,
    root_path=ROOT_PATH,
)


@app.on_event("startup")
async def on_startup():
    await init_db()


@app.exception_handler(ParkingError)
async def parking_error_handler(request: Request, exc: ParkingError):
    if isinstance(exc, PersistenceUnavailable):
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"{request.method} {request.url.path} storage error", exc_info=exc)
    error = PersistenceUnavailable()
    return JSONResponse(status_code=error.status_code, content={"detail": error.message})


@app.get("/health")
async def health():
    return {"ok": True, "version": __version__}


@app.post("/api/v1/parqueo/entrada/", response_model=EntryResponse, status_code=201)
async def vehicle_entry(entry: EntryRequest, db: AsyncSession = Depends(get_db)):
    result = await register_entry(db, entry)

    notify_entry(result)

    return EntryResponse(
        message="Vehicle entry recorded",
        session_id=result.session_id,
        cell_name=result.cell_name,
        plate_number=result.plate_number,
        entry_timestamp=result.entry_time,
    )


@app.post("/api/v1/parqueo/salida/", response_model=ExitResponse)
async def vehicle_exit(exit_request: ExitRequest, db: AsyncSession = Depends(get_db)):
    result = await register_exit(db, exit_request)

    notify_exit(result)

    return ExitResponse(
        message="Vehicle exit recorded",
        session_id=result.session_id,
        plate_number=result.plate_number,
        cell_name=result.cell_name,
        entry_timestamp=result.entry_time,
        exit_timestamp=result.exit_time,
        occupied_duration=result.duration_seconds,
    )


@app.get("/api/v1/parqueo/estacionados/", response_model=list[HistoryItem])
async def parked_vehicles(db: AsyncSession = Depends(get_db)):
    return await HistoryReport(db, open_only=True).collect()


@app.get("/api/v1/historial/", response_model=list[HistoryItem])
async def parking_history(db: AsyncSession = Depends(get_db)):
    return await HistoryReport(db).collect()


@app.get("/api/v1/celdas/estado/", response_model=CellInventory)
async def cell_inventory(db: AsyncSession = Depends(get_db)):
    cells = await crud.list_cells(db)
    occupied, free = crud.occupancy_counts(cells)
    return CellInventory(
        occupied=occupied,
        free=free,
        total=len(cells),
        cells=[CellOut.model_validate(c) for c in cells],
    )


@app.post("/api/v1/celdas/", response_model=CellOut, status_code=201)
async def provision_cell(cell: CellCreate, db: AsyncSession = Depends(get_db)):
    try:
        async with unit_of_work(db):
            new_cell = await crud.create_cell(db, cell.name, cell.vehicle_type)
    except IntegrityError:
        raise HTTPException(status_code=409, detail=f"Cell {cell.name} already exists")
    return new_cell


@app.post("/api/v1/celdas/{cell_id}/retiro/", response_model=CellOut)
async def retire_cell(cell_id: int, db: AsyncSession = Depends(get_db)):
    async with unit_of_work(db):
        cell = await crud.retire_cell(db, cell_id)
    if cell is None:
        raise HTTPException(status_code=404, detail="Cell not found")
    return cell


@app.post("/api/v1/vehiculos/", response_model=VehicleOut, status_code=201)
async def register_vehicle(vehicle: VehicleCreate, db: AsyncSession = Depends(get_db)):
    try:
        async with unit_of_work(db):
            new_vehicle = await crud.create_vehicle(
                db, vehicle.plate_number, vehicle.vehicle_type, vehicle.owner_id
            )
    except IntegrityError:
        raise HTTPException(status_code=409, detail=f"Vehicle {vehicle.plate_number} already registered")
    return new_vehicle


@app.post("/api/v1/restricciones/", response_model=RestrictionRuleOut, status_code=201)
async def create_restriction(rule: RestrictionRuleCreate, db: AsyncSession = Depends(get_db)):
    async with unit_of_work(db):
        new_rule = await crud.create_restriction_rule(db, **rule.model_dump())
    return new_rule


@app.get("/api/v1/restricciones/", response_model=list[RestrictionRuleOut])
async def list_restrictions(db: AsyncSession = Depends(get_db)):
    return await crud.list_restriction_rules(db)


@app.post("/api/v1/incidencias/", response_model=IncidentOut, status_code=201)
async def create_incident(incident: IncidentCreate, db: AsyncSession = Depends(get_db)):
    async with unit_of_work(db):
        new_incident = await record_incident(
            db,
            incident.description,
            at=incident.timestamp,
            session_id=incident.session_id,
            vehicle_id=incident.vehicle_id,
        )
    return new_incident


@app.get("/api/v1/incidencias/", response_model=list[IncidentOut])
async def incidents(db: AsyncSession = Depends(get_db)):
    return await list_incidents(db)


@app.post("/api/v1/usuarios/", response_model=UserOut, status_code=201)
async def create_user(user: UserCreate, db: AsyncSession = Depends(get_db)):
    try:
        async with unit_of_work(db):
            new_user = await crud.create_user(db, user.first_name, user.email, user.last_name)
    except IntegrityError:
        raise HTTPException(status_code=409, detail="Email already registered")
    return new_user


if __name__ == "__main__":
    uvicorn.run("parqueadero.main:app", host="0.0.0.0", port=8000, reload=True)
