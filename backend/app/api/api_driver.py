# backend/app/api/api_driver.py

import logging
from datetime import datetime, timedelta, timezone
from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import ORJSONResponse
from sqlalchemy.orm import Session

from ..crud import crud_booking
from ..database import get_db
from ..models.booking_status import BookingStatus
from ..schemas.booking import DriverBookingResponse, StatusUpdate, StatusUpdateResponse
from ..services import booking_lifecycle
from ..services.booking_lifecycle import KST, Actor
from ..utils.errors import PickupError
from .dependencies import get_current_driver

router = APIRouter(tags=["driver"], default_response_class=ORJSONResponse)
logger = logging.getLogger(__name__)

# Stops a driver works on; earlier and later statuses stay with the office
DRIVER_VISIBLE_STATUSES = (
    BookingStatus.QUOTE_CONFIRMED,
    BookingStatus.IN_PROGRESS,
    BookingStatus.COMPLETED,
)


def _service_dates(now: datetime) -> List[str]:
    today = now.astimezone(KST).date()
    return [today.isoformat(), (today + timedelta(days=1)).isoformat()]


@router.get("/bookings", response_model=List[DriverBookingResponse])
def list_driver_bookings(
    db: Session = Depends(get_db),
    driver: Actor = Depends(get_current_driver),
) -> List[DriverBookingResponse]:
    """Today's and tomorrow's stops (Korea time) in route order."""
    bookings = crud_booking.list_bookings(
        db,
        dates=_service_dates(datetime.now(timezone.utc)),
        driver_id=driver.identity,
        statuses=DRIVER_VISIBLE_STATUSES,
    )
    return [DriverBookingResponse.model_validate(b) for b in bookings]


@router.put("/bookings/{booking_id}", response_model=StatusUpdateResponse)
def update_driver_booking_status(
    booking_id: str,
    status_update: StatusUpdate,
    db: Session = Depends(get_db),
    driver: Actor = Depends(get_current_driver),
) -> StatusUpdateResponse:
    try:
        booking = booking_lifecycle.transition(db, booking_id, driver, status_update.status)
    except PickupError as exc:
        raise exc.to_http()
    return StatusUpdateResponse(id=booking.id, status=booking.status)
