# backend/app/api/api_booking.py

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import ORJSONResponse
from sqlalchemy.orm import Session

from ..core.config import settings
from ..crud import crud_booking
from ..database import get_db
from ..schemas.booking import (
    BookingCreate,
    BookingCreatedResponse,
    BookingEdit,
    CustomerBookingResponse,
    StatusUpdate,
    StatusUpdateResponse,
)
from ..services import booking_lifecycle
from ..services.booking_lifecycle import Actor
from ..services.pricing_catalog import PricingCatalog
from ..utils import notifications
from ..utils.errors import BookingNotFound, PickupError, error_response
from ..utils.rate_limit import RateLimiter
from .auth import create_booking_token
from .dependencies import get_booking_customer, get_pricing_catalog

router = APIRouter(tags=["bookings"], default_response_class=ORJSONResponse)
logger = logging.getLogger(__name__)
# Mounted under f"{settings.API_V1_STR}/bookings" by main.py

booking_rate_limit = RateLimiter(
    settings.BOOKING_RATE_LIMIT, settings.BOOKING_RATE_WINDOW, "bookings"
)


@router.post(
    "",
    response_model=BookingCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(booking_rate_limit)],
)
def create_booking(
    *,
    db: Session = Depends(get_db),
    booking_in: BookingCreate,
    catalog: PricingCatalog = Depends(get_pricing_catalog),
) -> BookingCreatedResponse:
    """Submit a pickup request. Prices are recomputed from the catalog."""
    try:
        booking = crud_booking.create_booking(db, booking_in, catalog)
    except PickupError as exc:
        raise exc.to_http()

    logger.info(
        "Booking created",
        extra={"booking_id": booking.id, "date": booking.date, "total_price": booking.total_price},
    )
    notifications.notify_status_change(booking.phone, booking.status.value, booking.id)
    return BookingCreatedResponse(
        booking=CustomerBookingResponse.model_validate(booking),
        booking_token=create_booking_token(booking.id),
    )


@router.get("/{booking_id}", response_model=CustomerBookingResponse)
def read_booking(
    booking_id: str,
    db: Session = Depends(get_db),
    customer: Actor = Depends(get_booking_customer),
) -> CustomerBookingResponse:
    booking = crud_booking.get_booking(db, booking_id)
    if booking is None:
        raise BookingNotFound(booking_id).to_http()
    return CustomerBookingResponse.model_validate(booking)


@router.put(
    "/{booking_id}",
    response_model=CustomerBookingResponse,
    dependencies=[Depends(booking_rate_limit)],
)
def edit_booking(
    booking_id: str,
    edit_in: BookingEdit,
    db: Session = Depends(get_db),
    customer: Actor = Depends(get_booking_customer),
    catalog: PricingCatalog = Depends(get_pricing_catalog),
) -> CustomerBookingResponse:
    """Customer edit while pending, up to the evening before pickup. Prices are recomputed."""
    if not edit_in.changes():
        raise error_response("Nothing to update", {"body": "empty"}, 400)
    try:
        booking = booking_lifecycle.edit_pending_booking(db, booking_id, customer, edit_in, catalog)
    except PickupError as exc:
        raise exc.to_http()
    return CustomerBookingResponse.model_validate(booking)

@router.put("/{booking_id}/status", response_model=StatusUpdateResponse)
def update_booking_status(
    booking_id: str,
    status_update: StatusUpdate,
    db: Session = Depends(get_db),
    customer: Actor = Depends(get_booking_customer),
) -> StatusUpdateResponse:
    """Customer confirms a quote or asks for a change."""
    try:
        booking = booking_lifecycle.transition(db, booking_id, customer, status_update.status)
    except PickupError as exc:
        raise exc.to_http()
    return StatusUpdateResponse(id=booking.id, status=booking.status)
