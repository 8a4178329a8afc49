from typing import Dict, Iterable, Optional
from fastapi import HTTPException, status
import logging

logger = logging.getLogger(__name__)


def error_response(
    message: str,
    field_errors: Dict[str, str],
    code: int = status.HTTP_422_UNPROCESSABLE_ENTITY,
) -> HTTPException:
    """Return an HTTPException with a consistent structure and log details."""
    if code >= 500:
        logger.error("%s %s", message, field_errors)
    else:
        logger.warning("%s %s", message, field_errors)
    detail = {"message": message, "field_errors": field_errors}
    return HTTPException(status_code=code, detail=detail)


class PickupError(Exception):
    """Base class for domain failures raised by the service layer."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, field_errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.field_errors = field_errors or {}

    def to_http(self) -> HTTPException:
        return error_response(self.message, self.field_errors, self.status_code)


class BookingNotFound(PickupError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, booking_id: str):
        super().__init__("Booking not found", {"booking_id": "not_found"})
        self.booking_id = booking_id


class OwnershipMismatch(PickupError):
    status_code = status.HTTP_403_FORBIDDEN


class BookingConflict(PickupError):
    """The row changed since it was read, or the write collides with another booking."""

    status_code = status.HTTP_409_CONFLICT


class TransitionNotAllowed(PickupError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, current: str, target: str, code: Optional[int] = None):
        super().__init__(
            f"Cannot move booking from {current} to {target}",
            {"status": f"{current}->{target} not allowed"},
        )
        self.current = current
        self.target = target
        if code is not None:
            self.status_code = code


class PermissionDenied(PickupError):
    status_code = status.HTTP_403_FORBIDDEN


class DriverUnavailable(PickupError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class DispatchError(PickupError):
    """Batch assignment failed; succeeded rows were reverted to unassigned."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, failed: Iterable[str], rolled_back: Iterable[str] = ()):
        self.failed = list(failed)
        self.rolled_back = list(rolled_back)
        super().__init__(
            "Dispatch failed; all assignments were rolled back",
            {booking_id: "update_failed" for booking_id in self.failed},
        )


class RouteServiceUnavailable(PickupError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, reason: str):
        super().__init__("Route optimization is unavailable", {"route_service": reason})


class EditNotAllowed(PickupError):
    """Customer edit outside the pending state or after the edit deadline."""

    status_code = status.HTTP_400_BAD_REQUEST
