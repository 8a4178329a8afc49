from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from .. import models, schemas
from ..models.booking_status import BookingStatus
from ..services.pricing_catalog import PricingCatalog
from ..services.quote_engine import calculate_quote
from ..utils.errors import BookingConflict

# Statuses that still hold a time slot
_SLOT_RELEASING = (BookingStatus.CANCELLED, BookingStatus.REJECTED)


def get_booking(db: Session, booking_id: str) -> Optional[models.Booking]:
    # Always re-read: callers decide transitions on the current row state
    return (
        db.query(models.Booking)
        .populate_existing()
        .filter(models.Booking.id == booking_id)
        .first()
    )


def list_bookings(
    db: Session,
    *,
    dates: Optional[Iterable[str]] = None,
    driver_id: Optional[str] = None,
    statuses: Optional[Iterable[BookingStatus]] = None,
    booking_ids: Optional[Iterable[str]] = None,
) -> List[models.Booking]:
    query = db.query(models.Booking).populate_existing()
    if dates is not None:
        query = query.filter(models.Booking.date.in_(list(dates)))
    if driver_id is not None:
        query = query.filter(models.Booking.driver_id == driver_id)
    if statuses is not None:
        query = query.filter(models.Booking.status.in_(list(statuses)))
    if booking_ids is not None:
        query = query.filter(models.Booking.id.in_(list(booking_ids)))
    return query.order_by(
        models.Booking.date.asc(),
        models.Booking.route_order.is_(None),
        models.Booking.route_order.asc(),
        models.Booking.created_at.asc(),
    ).all()


def has_slot_conflict(
    db: Session, date: str, time_slot: str, exclude_id: Optional[str] = None
) -> bool:
    query = db.query(models.Booking.id).filter(
        models.Booking.date == date,
        models.Booking.time_slot == time_slot,
        models.Booking.status.notin_(_SLOT_RELEASING),
    )
    if exclude_id is not None:
        query = query.filter(models.Booking.id != exclude_id)
    return query.first() is not None


def list_stale_quotes(db: Session, cutoff: datetime) -> List[models.Booking]:
    """Bookings whose quote has waited for the customer since before ``cutoff``."""
    return (
        db.query(models.Booking)
        .populate_existing()
        .filter(
            models.Booking.status == BookingStatus.QUOTE_CONFIRMED,
            models.Booking.quote_confirmed_at.isnot(None),
            models.Booking.quote_confirmed_at < cutoff,
        )
        .order_by(models.Booking.quote_confirmed_at.asc())
        .all()
    )


def create_booking(
    db: Session, booking_in: schemas.BookingCreate, catalog: PricingCatalog
) -> models.Booking:
    """Persist a new pending booking priced entirely from ``catalog``."""
    if has_slot_conflict(db, booking_in.date, booking_in.time_slot):
        raise BookingConflict(
            "This time slot is already booked",
            {"time_slot": f"{booking_in.date} {booking_in.time_slot} taken"},
        )

    quote = calculate_quote(
        catalog,
        booking_in.area,
        booking_in.items,
        booking_in.need_ladder,
        booking_in.ladder_type,
        booking_in.ladder_hours,
    )

    db_booking = models.Booking(
        date=booking_in.date,
        time_slot=booking_in.time_slot,
        area=booking_in.area,
        items=[line.as_snapshot() for line in quote.items],
        total_price=quote.total_price,
        crew_size=quote.crew_size,
        need_ladder=booking_in.need_ladder,
        ladder_type=booking_in.ladder_type if booking_in.need_ladder else None,
        ladder_hours=booking_in.ladder_hours if booking_in.need_ladder else None,
        ladder_price=quote.ladder_price,
        customer_name=booking_in.customer_name,
        phone=booking_in.phone,
        address=booking_in.address,
        address_detail=booking_in.address_detail,
        memo=booking_in.memo,
        status=BookingStatus.PENDING,
        estimate_min=quote.estimate_min,
        estimate_max=quote.estimate_max,
        total_loading_cube=quote.total_volume,
        latitude=booking_in.latitude,
        longitude=booking_in.longitude,
    )
    db.add(db_booking)
    db.commit()
    db.refresh(db_booking)
    return db_booking


def update_fields(db: Session, booking_id: str, values: Mapping[str, Any]) -> bool:
    """Unconditionally write non-status fields; returns False when no row matched."""
    if "status" in values:
        raise ValueError("status changes must go through the booking lifecycle")
    stmt = (
        update(models.Booking)
        .where(models.Booking.id == booking_id)
        .values(**values, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    db.commit()
    return result.rowcount == 1


def compare_and_swap(
    db: Session,
    booking_id: str,
    expected: Mapping[str, Any],
    values: Mapping[str, Any],
) -> bool:
    """Write ``values`` only if every column in ``expected`` still holds its value.

    Issued as one conditional UPDATE; a False return means another writer got
    there first and the caller should re-read before deciding what to do.
    """
    stmt = update(models.Booking).where(models.Booking.id == booking_id)
    for key, value in expected.items():
        column = getattr(models.Booking, key)
        stmt = stmt.where(column.is_(None) if value is None else column == value)
    stmt = stmt.values(**values, updated_at=datetime.utcnow()).execution_options(
        synchronize_session=False
    )
    result = db.execute(stmt)
    db.commit()
    return result.rowcount == 1
