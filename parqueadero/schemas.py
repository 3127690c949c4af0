import re
from datetime import datetime, time, timezone
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, field_validator, model_validator

PLATE_RE = re.compile(r"^[A-Z0-9-]{3,10}$")

WEEKDAY_NAMES = {
    "lunes": 0, "monday": 0,
    "martes": 1, "tuesday": 1,
    "miercoles": 2, "miércoles": 2, "wednesday": 2,
    "jueves": 3, "thursday": 3,
    "viernes": 4, "friday": 4,
    "sabado": 5, "sábado": 5, "saturday": 5,
    "domingo": 6, "sunday": 6,
}


def normalize_plate(plate: str) -> str:
    p = plate.strip().replace(" ", "").upper()
    if not PLATE_RE.fullmatch(p):
        raise ValueError("Invalid plate. Use 3-10 characters A-Z, 0-9 or '-'.")
    return p


def normalize_vehicle_type(vehicle_type: str) -> str:
    v = vehicle_type.strip().capitalize()
    if not v:
        raise ValueError("vehicle_type must not be empty")
    return v


def mark_utc(ts: datetime) -> datetime:
    # stored timestamps are naive UTC
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts.astimezone(timezone.utc)


def _not_blank(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("must not be empty")
    return v


Plate = Annotated[str, AfterValidator(normalize_plate)]
VehicleType = Annotated[str, AfterValidator(normalize_vehicle_type)]
NonBlank = Annotated[str, AfterValidator(_not_blank)]
UtcDatetime = Annotated[datetime, AfterValidator(mark_utc)]


class EntryRequest(BaseModel):
    plate_number: Plate
    vehicle_type: VehicleType
    timestamp: Optional[datetime] = None
    user_id: Optional[int] = None


class EntryResponse(BaseModel):
    message: str
    session_id: int
    cell_name: str
    plate_number: str
    entry_timestamp: UtcDatetime


class ExitRequest(BaseModel):
    plate_number: Optional[Plate] = None
    session_id: Optional[int] = None
    timestamp: Optional[datetime] = None

    @model_validator(mode="after")
    def _one_reference(self):
        if self.plate_number is None and self.session_id is None:
            raise ValueError("plate_number or session_id is required")
        return self


class ExitResponse(BaseModel):
    message: str
    session_id: int
    plate_number: str
    cell_name: str
    entry_timestamp: UtcDatetime
    exit_timestamp: UtcDatetime
    occupied_duration: float


class CellCreate(BaseModel):
    name: NonBlank
    vehicle_type: VehicleType


class CellOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    vehicle_type: str
    state: str
    active: bool


class CellInventory(BaseModel):
    occupied: int
    free: int
    total: int
    cells: list[CellOut]


class VehicleCreate(BaseModel):
    plate_number: Plate
    vehicle_type: VehicleType
    owner_id: Optional[int] = None


class VehicleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    plate: str
    vehicle_type: str
    owner_id: Optional[int] = None


class RestrictionRuleCreate(BaseModel):
    """Weekday accepts 0-6 (Monday first) or a day name, e.g. "Lunes"."""

    vehicle_type: VehicleType
    digit: int
    weekday: int | str
    start_time: Optional[time] = None
    end_time: Optional[time] = None

    @field_validator("digit")
    @classmethod
    def _digit(cls, v: int) -> int:
        if not 0 <= v <= 9:
            raise ValueError("digit must be between 0 and 9")
        return v

    @field_validator("weekday")
    @classmethod
    def _weekday(cls, v: int | str) -> int:
        if isinstance(v, str):
            key = v.strip().lower()
            if key.isdigit():
                v = int(key)
            elif key in WEEKDAY_NAMES:
                return WEEKDAY_NAMES[key]
            else:
                raise ValueError(f"unknown weekday {v!r}")
        if not 0 <= v <= 6:
            raise ValueError("weekday must be between 0 (Monday) and 6 (Sunday)")
        return v

    @model_validator(mode="after")
    def _window(self):
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("start_time and end_time must be given together")
        if self.start_time is not None and self.start_time == self.end_time:
            raise ValueError("time window must not be empty")
        return self


class RestrictionRuleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    vehicle_type: str
    digit: int
    weekday: int
    start_time: Optional[time] = None
    end_time: Optional[time] = None


class IncidentCreate(BaseModel):
    description: NonBlank
    timestamp: Optional[datetime] = None
    session_id: Optional[int] = None
    vehicle_id: Optional[int] = None


class IncidentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    description: str
    created_at: UtcDatetime
    session_id: Optional[int] = None
    vehicle_id: Optional[int] = None


class UserCreate(BaseModel):
    first_name: NonBlank
    last_name: Optional[str] = None
    email: NonBlank


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: Optional[str] = None
    email: str


class HistoryItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    entry_timestamp: UtcDatetime
    exit_timestamp: Optional[UtcDatetime] = None
    occupied_duration: Optional[float] = None
    plate_number: str
    cell_name: str
    user_name: str
