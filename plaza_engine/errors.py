# plaza_engine/errors.py
"""
Typed engine errors.
Every failure carries a stable code, an HTTP status for the API layer, and a
structured detail dict (entity id, attempted transition, current state) so the
caller can build an actionable message.
"""

from typing import Optional


class EngineError(Exception):
    code = "engine_error"
    status_code = 400

    def __init__(self, message: str, **detail):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, "detail": self.detail}


class NotFound(EngineError):
    code = "not_found"
    status_code = 404


class SpotUnavailable(EngineError):
    code = "spot_unavailable"
    status_code = 409


class DuplicateActiveOccupancy(EngineError):
    code = "duplicate_active_occupancy"
    status_code = 409


class InvalidTransition(EngineError):
    code = "invalid_transition"
    status_code = 409

    def __init__(self, entity: str, entity_id, attempted: str, current: Optional[str], reason: str = None):
        message = f"{entity} {entity_id}: cannot {attempted} from {current}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, entity=entity, entity_id=entity_id,
                         attempted=attempted, current=current)


class VehicleMismatch(EngineError):
    code = "vehicle_mismatch"
    status_code = 409


class AlreadyClosed(EngineError):
    code = "already_closed"
    status_code = 409


class SpotOccupied(EngineError):
    code = "spot_occupied"
    status_code = 409


class SpotHasActiveReservation(EngineError):
    code = "spot_has_active_reservation"
    status_code = 409


class OverlappingReservation(EngineError):
    code = "overlapping_reservation"
    status_code = 409


class ValidationFailed(EngineError):
    code = "validation_failed"
    status_code = 422
