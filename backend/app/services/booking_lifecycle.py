"""Booking status transitions.

Every status change, whoever asks for it, follows the same protocol: read
the row, check the requested edge against the actor's transition table and
permissions, then write with ``crud_booking.compare_and_swap`` conditioned on
what was read. A CAS miss is reported as ``BookingConflict`` so callers
re-fetch instead of retrying blindly. Customer notifications are queued
only after the write commits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, FrozenSet, List, Optional

from fastapi import status as http_status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..core.config import settings
from ..crud import crud_booking
from ..models.booking_status import BookingStatus, TERMINAL_STATUSES
from ..utils import notifications
from ..utils.errors import (
    BookingConflict,
    BookingNotFound,
    EditNotAllowed,
    OwnershipMismatch,
    PermissionDenied,
    TransitionNotAllowed,
)
from ..utils.status_logger import log_status_change
from .pricing_catalog import PricingCatalog
from .quote_engine import calculate_quote

logger = logging.getLogger(__name__)

S = BookingStatus

STAFF_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    S.PENDING: frozenset({S.QUOTE_CONFIRMED, S.CHANGE_REQUESTED, S.CANCELLED, S.REJECTED}),
    S.QUOTE_CONFIRMED: frozenset(
        {S.USER_CONFIRMED, S.CHANGE_REQUESTED, S.IN_PROGRESS, S.CANCELLED, S.REJECTED}
    ),
    S.USER_CONFIRMED: frozenset({S.IN_PROGRESS, S.CHANGE_REQUESTED, S.CANCELLED, S.REJECTED}),
    S.CHANGE_REQUESTED: frozenset({S.QUOTE_CONFIRMED, S.CANCELLED, S.REJECTED}),
    S.IN_PROGRESS: frozenset({S.COMPLETED}),
    S.COMPLETED: frozenset({S.PAYMENT_REQUESTED}),
    S.PAYMENT_REQUESTED: frozenset({S.PAYMENT_COMPLETED}),
}

# Drivers get exactly one successor per status
DRIVER_TRANSITIONS: Dict[BookingStatus, BookingStatus] = {
    S.QUOTE_CONFIRMED: S.IN_PROGRESS,
    S.IN_PROGRESS: S.COMPLETED,
}

CUSTOMER_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    S.PENDING: frozenset({S.CHANGE_REQUESTED}),
    S.QUOTE_CONFIRMED: frozenset({S.USER_CONFIRMED, S.CHANGE_REQUESTED}),
}

ROLE_PERMISSIONS: Dict[str, FrozenSet[str]] = {
    "operator": frozenset({"view", "quote_confirm", "status_change"}),
    "admin": frozenset(
        {"view", "quote_confirm", "status_change", "price_change", "payment_confirm", "delete"}
    ),
}

# Statuses the customer hears about by SMS
NOTIFY_STATUSES = frozenset(
    {
        S.QUOTE_CONFIRMED,
        S.IN_PROGRESS,
        S.COMPLETED,
        S.PAYMENT_REQUESTED,
        S.CANCELLED,
        S.REJECTED,
    }
)

DRIVER = "driver"
STAFF = "staff"
CUSTOMER = "customer"
# Scheduled jobs; uses the staff transition table without role checks
SYSTEM = "system"

KST = timezone(timedelta(hours=9))


@dataclass(frozen=True)
class Actor:
    kind: str
    identity: str
    role: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def driver(cls, driver_id: str, name: Optional[str] = None) -> "Actor":
        return cls(DRIVER, driver_id, name=name)

    @classmethod
    def staff(cls, email: str, role: str) -> "Actor":
        return cls(STAFF, email, role=role)

    @classmethod
    def customer(cls, booking_id: str) -> "Actor":
        return cls(CUSTOMER, booking_id)

    @classmethod
    def system(cls, job: str) -> "Actor":
        return cls(SYSTEM, job)

    def label(self) -> str:
        return f"{self.role or self.kind}:{self.identity}"


def has_permission(role: Optional[str], permission: str) -> bool:
    return permission in ROLE_PERMISSIONS.get(role or "", frozenset())


def required_permission(target: BookingStatus) -> str:
    if target == S.PAYMENT_COMPLETED:
        return "payment_confirm"
    if target == S.QUOTE_CONFIRMED:
        return "quote_confirm"
    return "status_change"


def allowed_targets(actor: Actor, current: BookingStatus) -> FrozenSet[BookingStatus]:
    if current in TERMINAL_STATUSES:
        return frozenset()
    if actor.kind == DRIVER:
        successor = DRIVER_TRANSITIONS.get(current)
        return frozenset({successor}) if successor else frozenset()
    if actor.kind == CUSTOMER:
        return CUSTOMER_TRANSITIONS.get(current, frozenset())
    return STAFF_TRANSITIONS.get(current, frozenset())


def _check_ownership(actor: Actor, booking: models.Booking) -> None:
    if actor.kind == DRIVER and booking.driver_id != actor.identity:
        raise OwnershipMismatch("Booking is not assigned to this driver", {"driver_id": "mismatch"})
    if actor.kind == CUSTOMER and booking.id != actor.identity:
        raise OwnershipMismatch("Booking token does not match", {"booking_id": "mismatch"})


def _check_permission(actor: Actor, permission: str) -> None:
    if actor.kind == STAFF and not has_permission(actor.role, permission):
        raise PermissionDenied(
            f"Role {actor.role} lacks permission {permission}", {"permission": permission}
        )


def _check_version(booking: models.Booking, expected_updated_at: Optional[datetime]) -> None:
    if expected_updated_at is None:
        return
    current = booking.updated_at
    expected = expected_updated_at
    if expected.tzinfo is not None:
        # Stored timestamps are naive UTC
        expected = expected.astimezone(timezone.utc).replace(tzinfo=None)
    if current is None or current.replace(microsecond=0) != expected.replace(microsecond=0):
        raise BookingConflict(
            "Booking was modified since it was loaded; reload and retry",
            {"updated_at": str(current)},
        )


def transition(
    db: Session,
    booking_id: str,
    actor: Actor,
    target: BookingStatus,
    *,
    expected_updated_at: Optional[datetime] = None,
    final_price: Optional[int] = None,
    notify_as: Optional[str] = None,
) -> models.Booking:
    """Move a booking to ``target`` on behalf of ``actor``.

    Raises ``BookingNotFound`` (404), ``OwnershipMismatch`` (403),
    ``PermissionDenied`` (403), ``TransitionNotAllowed`` (409 for drivers,
    422 otherwise) or ``BookingConflict`` (409) when the conditional write
    finds the row changed.
    ``notify_as`` picks a different SMS template than the target status.
    """
    booking = crud_booking.get_booking(db, booking_id)
    if booking is None:
        raise BookingNotFound(booking_id)

    _check_ownership(actor, booking)

    current = booking.status
    if target not in allowed_targets(actor, current):
        code = (
            http_status.HTTP_409_CONFLICT
            if actor.kind == DRIVER or current in TERMINAL_STATUSES
            else http_status.HTTP_422_UNPROCESSABLE_ENTITY
        )
        raise TransitionNotAllowed(current.value, target.value, code=code)

    _check_permission(actor, required_permission(target))
    if final_price is not None:
        _check_permission(actor, "price_change")
    _check_version(booking, expected_updated_at)

    expected = {"status": current}
    if actor.kind == DRIVER:
        expected["driver_id"] = actor.identity
    if expected_updated_at is not None:
        expected["updated_at"] = booking.updated_at

    values = {"status": target}
    if final_price is not None:
        values["final_price"] = final_price
    if target == S.QUOTE_CONFIRMED:
        values["quote_confirmed_at"] = datetime.utcnow()

    if not crud_booking.compare_and_swap(db, booking_id, expected, values):
        raise BookingConflict(
            "Booking was modified by another request; reload and retry",
            {"status": current.value},
        )

    log_status_change(booking_id, current, target, actor=actor.label())

    updated = crud_booking.get_booking(db, booking_id)
    if target in NOTIFY_STATUSES:
        notifications.notify_status_change(
            updated.phone, notify_as or target.value, booking_id, updated.final_price
        )
    return updated


def apply_admin_update(
    db: Session,
    booking_id: str,
    actor: Actor,
    update_in: schemas.AdminBookingUpdate,
) -> models.Booking:
    """Apply an operator edit: optional status move, final price and memo."""
    if update_in.status is not None:
        booking = transition(
            db,
            booking_id,
            actor,
            update_in.status,
            expected_updated_at=update_in.expected_updated_at,
            final_price=update_in.final_price,
        )
        if update_in.admin_memo is not None:
            crud_booking.update_fields(db, booking_id, {"admin_memo": update_in.admin_memo})
            booking = crud_booking.get_booking(db, booking_id)
        return booking

    booking = crud_booking.get_booking(db, booking_id)
    if booking is None:
        raise BookingNotFound(booking_id)

    values: Dict[str, object] = {}
    if update_in.final_price is not None:
        _check_permission(actor, "price_change")
        values["final_price"] = update_in.final_price
    if update_in.admin_memo is not None:
        _check_permission(actor, "view")
        values["admin_memo"] = update_in.admin_memo
    if not values:
        return booking

    _check_version(booking, update_in.expected_updated_at)
    # Pin the status so a concurrent transition is not overwritten silently
    expected = {"status": booking.status}
    if update_in.expected_updated_at is not None:
        expected["updated_at"] = booking.updated_at
    if not crud_booking.compare_and_swap(db, booking_id, expected, values):
        raise BookingConflict(
            "Booking was modified by another request; reload and retry",
            {"status": booking.status.value},
        )
    return crud_booking.get_booking(db, booking_id)


def cancel_booking(db: Session, booking_id: str, actor: Actor) -> models.Booking:
    """Soft delete: a cancellation that requires the ``delete`` permission."""
    _check_permission(actor, "delete")
    return transition(db, booking_id, actor, S.CANCELLED)


def expire_stale_quotes(db: Session, now: Optional[datetime] = None) -> List[str]:
    """Cancel confirmed quotes left unanswered for ``QUOTE_EXPIRY_DAYS``.

    Each booking goes through ``transition`` pinned on the ``updated_at`` it
    was listed with, so a booking touched in the meantime is skipped rather
    than cancelled. Returns the ids that were cancelled.
    """
    now = now or datetime.utcnow()
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc).replace(tzinfo=None)
    cutoff = now - timedelta(days=settings.QUOTE_EXPIRY_DAYS)
    actor = Actor.system("quote-expiry")

    expired: List[str] = []
    for booking in crud_booking.list_stale_quotes(db, cutoff):
        try:
            transition(
                db,
                booking.id,
                actor,
                S.CANCELLED,
                expected_updated_at=booking.updated_at,
                notify_as="quote_expired",
            )
        except (BookingConflict, TransitionNotAllowed) as exc:
            logger.info(
                "Quote expiry skipped", extra={"booking_id": booking.id, "reason": exc.message}
            )
            continue
        expired.append(booking.id)

    if expired:
        logger.info("Expired stale quotes", extra={"count": len(expired)})
    return expired


def edit_deadline(pickup_date: str) -> datetime:
    """Cutoff for customer edits: ``CUSTOMER_EDIT_CUTOFF_HOUR`` KST the day before pickup."""
    pickup = datetime.strptime(pickup_date, "%Y-%m-%d").replace(tzinfo=KST)
    return pickup - timedelta(hours=24 - settings.CUSTOMER_EDIT_CUTOFF_HOUR)


def edit_pending_booking(
    db: Session,
    booking_id: str,
    actor: Actor,
    edit_in: schemas.BookingEdit,
    catalog: PricingCatalog,
    now: Optional[datetime] = None,
) -> models.Booking:
    """Apply a customer edit to a booking that has not been quoted yet.

    Prices are recomputed from ``catalog`` over the merged booking. The write
    is conditioned on the booking still being pending.
    """
    booking = crud_booking.get_booking(db, booking_id)
    if booking is None:
        raise BookingNotFound(booking_id)
    _check_ownership(actor, booking)

    if booking.status != S.PENDING:
        raise EditNotAllowed(
            "Bookings can only be edited before the quote is confirmed",
            {"status": booking.status.value},
        )

    now = now or datetime.now(timezone.utc)
    changes = edit_in.changes()
    date = changes.get("date", booking.date)
    time_slot = changes.get("time_slot", booking.time_slot)
    for day in {booking.date, date}:
        if now >= edit_deadline(day):
            raise EditNotAllowed(
                f"Edits close at {settings.CUSTOMER_EDIT_CUTOFF_HOUR}:00 KST the day before pickup",
                {"date": f"{day} edit_deadline_passed"},
            )

    if (date, time_slot) != (booking.date, booking.time_slot) and crud_booking.has_slot_conflict(
        db, date, time_slot, exclude_id=booking_id
    ):
        raise BookingConflict(
            "This time slot is already booked", {"time_slot": f"{date} {time_slot} taken"}
        )

    need_ladder = changes.get("need_ladder", booking.need_ladder)
    ladder_type = changes.get("ladder_type", booking.ladder_type) if need_ladder else None
    ladder_hours = changes.get("ladder_hours", booking.ladder_hours) if need_ladder else None
    area = changes.get("area", booking.area)
    items = edit_in.items if edit_in.items is not None else booking.items
    quote = calculate_quote(catalog, area, items, need_ladder, ladder_type, ladder_hours)

    values: Dict[str, object] = {k: v for k, v in changes.items() if k != "items"}
    values.update(
        need_ladder=need_ladder,
        ladder_type=ladder_type,
        ladder_hours=ladder_hours,
        items=[line.as_snapshot() for line in quote.items],
        total_price=quote.total_price,
        crew_size=quote.crew_size,
        ladder_price=quote.ladder_price,
        estimate_min=quote.estimate_min,
        estimate_max=quote.estimate_max,
        total_loading_cube=quote.total_volume,
    )
    if not crud_booking.compare_and_swap(db, booking_id, {"status": S.PENDING}, values):
        raise BookingConflict(
            "Booking was modified by another request; reload and retry",
            {"status": S.PENDING.value},
        )

    logger.info(
        "Booking edited by customer",
        extra={"booking_id": booking_id, "fields": sorted(changes), "total_price": quote.total_price},
    )
    return crud_booking.get_booking(db, booking_id)
