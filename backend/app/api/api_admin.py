# backend/app/api/api_admin.py

import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import ORJSONResponse
from sqlalchemy.orm import Session, sessionmaker

from ..core.config import settings
from ..crud import crud_booking, crud_driver
from ..database import get_db, get_session_factory
from ..models.booking_status import BookingStatus
from ..schemas.booking import AdminBookingUpdate, BookingResponse, QuoteExpiryResponse
from ..schemas.dispatch import (
    BookingsRouteOrderItem,
    BookingsRouteOrderResponse,
    DriverMonthlyStats,
)
from ..services import booking_lifecycle, dispatch
from ..services.booking_lifecycle import Actor
from ..utils.errors import PickupError, error_response
from .dependencies import require_permission

router = APIRouter(tags=["admin"], default_response_class=ORJSONResponse)
logger = logging.getLogger(__name__)


@router.get("/bookings", response_model=List[BookingResponse])
def list_admin_bookings(
    date: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}-\d{2}$"),
    status: Optional[BookingStatus] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("view")),
) -> List[BookingResponse]:
    bookings = crud_booking.list_bookings(
        db,
        dates=[date] if date else None,
        statuses=[status] if status else None,
    )
    return [BookingResponse.model_validate(b) for b in bookings]


@router.patch("/bookings/route-order", response_model=BookingsRouteOrderResponse)
def update_bookings_route_order(
    items: List[BookingsRouteOrderItem] = Body(
        ..., min_length=1, max_length=settings.BOOKINGS_ROUTE_ORDER_LIMIT
    ),
    session_factory: sessionmaker = Depends(get_session_factory),
    actor: Actor = Depends(require_permission("status_change")),
) -> BookingsRouteOrderResponse:
    """Bulk route-order write; failed rows are reported, successful ones kept."""
    result = dispatch.reorder_routes(session_factory, [(i.id, i.route_order) for i in items])
    return BookingsRouteOrderResponse(
        updated=len(result.succeeded),
        failed=list(result.failed) or None,
    )


@router.post("/bookings/expire-quotes", response_model=QuoteExpiryResponse)
def expire_quotes(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("status_change")),
) -> QuoteExpiryResponse:
    """Cancel confirmed quotes the customer left unanswered. Safe to call repeatedly."""
    expired = booking_lifecycle.expire_stale_quotes(db)
    logger.info("Quote expiry run", extra={"actor": actor.label(), "cancelled": len(expired)})
    return QuoteExpiryResponse(cancelled=len(expired), ids=expired)

@router.put("/bookings/{booking_id}", response_model=BookingResponse)
def update_admin_booking(
    booking_id: str,
    update_in: AdminBookingUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("view")),
) -> BookingResponse:
    """Status move, final price and memo edits, each checked against the caller's role."""
    if not update_in.has_changes():
        raise error_response("Nothing to update", {"body": "empty"}, 400)
    try:
        booking = booking_lifecycle.apply_admin_update(db, booking_id, actor, update_in)
    except PickupError as exc:
        raise exc.to_http()
    return BookingResponse.model_validate(booking)


@router.delete("/bookings/{booking_id}", response_model=BookingResponse)
def delete_admin_booking(
    booking_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("delete")),
) -> BookingResponse:
    """Soft delete: the booking is cancelled, never removed."""
    try:
        booking = booking_lifecycle.cancel_booking(db, booking_id, actor)
    except PickupError as exc:
        raise exc.to_http()
    return BookingResponse.model_validate(booking)


@router.get("/drivers/stats", response_model=List[DriverMonthlyStats])
def read_driver_stats(
    month: str = Query(..., pattern=r"^\d{4}-\d{2}$"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("view")),
) -> List[DriverMonthlyStats]:
    return crud_driver.monthly_driver_stats(db, month)
