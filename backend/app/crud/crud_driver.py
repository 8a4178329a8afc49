from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from .. import models, schemas
from ..models.booking_status import BookingStatus
from ..utils.errors import BookingConflict

# Bookings that never turned into a pickup are left out of driver stats
_EXCLUDED_FROM_STATS = (BookingStatus.CANCELLED, BookingStatus.REJECTED)


def get_driver(db: Session, driver_id: str) -> Optional[models.Driver]:
    return db.query(models.Driver).filter(models.Driver.id == driver_id).first()


def list_active_drivers(db: Session) -> List[models.Driver]:
    return (
        db.query(models.Driver)
        .filter(models.Driver.active.is_(True))
        .order_by(models.Driver.name.asc())
        .all()
    )


def get_vehicle(db: Session, vehicle_id: str) -> Optional[models.Vehicle]:
    return db.query(models.Vehicle).filter(models.Vehicle.id == vehicle_id).first()


def get_assigned_vehicle(db: Session, driver_id: str, date: str) -> Optional[models.Vehicle]:
    assignment = (
        db.query(models.DriverVehicleAssignment)
        .options(joinedload(models.DriverVehicleAssignment.vehicle))
        .filter(
            models.DriverVehicleAssignment.driver_id == driver_id,
            models.DriverVehicleAssignment.date == date,
        )
        .first()
    )
    return assignment.vehicle if assignment else None


def list_assignments(
    db: Session, *, date: Optional[str] = None, driver_id: Optional[str] = None
) -> List[models.DriverVehicleAssignment]:
    query = db.query(models.DriverVehicleAssignment).options(
        joinedload(models.DriverVehicleAssignment.driver),
        joinedload(models.DriverVehicleAssignment.vehicle),
    )
    if date is not None:
        query = query.filter(models.DriverVehicleAssignment.date == date)
    if driver_id is not None:
        query = query.filter(models.DriverVehicleAssignment.driver_id == driver_id)
    return query.order_by(models.DriverVehicleAssignment.date.asc()).all()


def create_assignment(
    db: Session, assignment_in: schemas.AssignmentCreate
) -> models.DriverVehicleAssignment:
    """Pair a driver with a vehicle for one day.

    Raises ``BookingConflict`` when either side is already paired that day.
    """
    assignment = models.DriverVehicleAssignment(
        driver_id=assignment_in.driver_id,
        vehicle_id=assignment_in.vehicle_id,
        date=assignment_in.date,
    )
    db.add(assignment)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise BookingConflict(
            "Driver or vehicle already assigned for this date",
            {"date": assignment_in.date},
        ) from exc
    db.refresh(assignment)
    return assignment


def delete_assignment(db: Session, assignment_id: str) -> bool:
    assignment = (
        db.query(models.DriverVehicleAssignment)
        .filter(models.DriverVehicleAssignment.id == assignment_id)
        .first()
    )
    if assignment is None:
        return False
    db.delete(assignment)
    db.commit()
    return True


def monthly_driver_stats(db: Session, month: str) -> List[schemas.DriverMonthlyStats]:
    """Per-driver booking count and loaded volume for ``month`` (YYYY-MM)."""
    rows = (
        db.query(
            models.Booking.driver_id,
            models.Driver.name,
            func.count(models.Booking.id),
            func.coalesce(func.sum(models.Booking.total_loading_cube), 0.0),
        )
        .join(models.Driver, models.Driver.id == models.Booking.driver_id)
        .filter(
            models.Booking.date.like(f"{month}-%"),
            models.Booking.status.notin_(_EXCLUDED_FROM_STATS),
        )
        .group_by(models.Booking.driver_id, models.Driver.name)
        .order_by(models.Driver.name.asc())
        .all()
    )
    stats = []
    for driver_id, name, count, volume in rows:
        total_volume = round(float(volume or 0.0), 2)
        stats.append(
            schemas.DriverMonthlyStats(
                driver_id=driver_id,
                driver_name=name,
                booking_count=int(count),
                total_volume=total_volume,
                average_volume=round(total_volume / count, 2) if count else 0.0,
            )
        )
    return stats
