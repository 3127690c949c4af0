"""Rejections raised by the parking engine.

Business-rule errors carry a message meant for the person at the gate.
Storage errors carry a generic message only; the underlying cause is kept
as ``__cause__`` for the logs.
"""


class ParkingError(Exception):
    status_code = 400
    default_message = "Parking operation rejected"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class RestrictedPlate(ParkingError):
    status_code = 403
    default_message = "Vehicle is under a Pico y Placa restriction"


class NoFreeCell(ParkingError):
    status_code = 409
    default_message = "No free cell for this vehicle type"


class DuplicateOpenSession(ParkingError):
    status_code = 409
    default_message = "Vehicle already inside"


class VehicleTypeMismatch(ParkingError):
    status_code = 409
    default_message = "Vehicle is registered with a different vehicle type"


class NoOpenSession(ParkingError):
    status_code = 404
    default_message = "No active parking session found"


class InvalidTimeOrdering(ParkingError):
    status_code = 422
    default_message = "Exit time is earlier than entry time"


class PersistenceUnavailable(ParkingError):
    status_code = 503
    default_message = "Service temporarily unavailable"


class RestrictionCheckUnavailable(PersistenceUnavailable):
    default_message = "Unable to verify driving restrictions, entry rejected"


class UnknownUser(ParkingError):
    status_code = 404
    default_message = "User not found"
