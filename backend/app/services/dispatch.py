"""Driver dispatch and route ordering.

Batch writes open one session per row from ``session_factory`` and run
through ``run_independent``. Assignment compensates partial failures by
unassigning every row that did succeed; route reordering reports partial
failures and leaves the successful rows in place, since each row write is
safe to retry on its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session, sessionmaker

from .. import models, schemas
from ..crud import crud_booking, crud_driver
from ..database import get_db_session
from ..models.booking_status import BookingStatus
from ..utils import notifications
from ..utils.batch import BatchResult, run_independent
from ..utils.errors import DispatchError, DriverUnavailable
from .crew_sizing import crew_size_for_volume
from .route_optimizer import RouteOptimizer, Stop

logger = logging.getLogger(__name__)

# Weekday initials as stored in Driver.work_days, indexed by date.weekday()
KO_WEEKDAYS = ("월", "화", "수", "목", "금", "토", "일")

SLOT_PRIORITY: Dict[str, int] = {
    "오전 (9시~12시)": 0,
    "오후 (13시~17시)": 1,
    "저녁 (18시~20시)": 2,
}
_UNKNOWN_SLOT = 99

# Bookings that no longer occupy a route position
_OFF_ROUTE = (BookingStatus.CANCELLED, BookingStatus.REJECTED)
_ON_ROUTE = tuple(s for s in BookingStatus if s not in _OFF_ROUTE)


@dataclass
class AssignResult:
    updated: List[str]
    capacity_warning: Optional[str] = None


@dataclass
class OptimizeResult:
    updated: int
    order: List[str] = field(default_factory=list)
    distance_km: Optional[float] = None


def weekday_initial(date: str) -> str:
    return KO_WEEKDAYS[datetime.strptime(date, "%Y-%m-%d").weekday()]


def _working_days(driver: models.Driver) -> set[str]:
    return {d.strip() for d in (driver.work_days or "").split(",") if d.strip()}


def _vehicle_capacity(db: Session, driver: models.Driver, date: Optional[str]) -> float:
    if date:
        vehicle = crud_driver.get_assigned_vehicle(db, driver.id, date)
        if vehicle is not None:
            return float(vehicle.capacity or 0.0)
    return float(driver.vehicle_capacity or 0.0)


def _write_task(session_factory: sessionmaker, booking_id: str, values: Dict[str, object]):
    def _task() -> bool:
        with get_db_session(session_factory) as db:
            return crud_booking.update_fields(db, booking_id, values)

    return _task


def _capacity_warning(
    session_factory: sessionmaker, driver: models.Driver, date: str
) -> Optional[str]:
    with get_db_session(session_factory) as db:
        capacity = _vehicle_capacity(db, driver, date)
        if capacity <= 0:
            return None
        bookings = crud_booking.list_bookings(
            db, dates=[date], driver_id=driver.id, statuses=_ON_ROUTE
        )
        total = sum(b.total_loading_cube or 0.0 for b in bookings)
    if total <= capacity:
        return None
    return (
        f"{driver.name} 기사 적재량이 초과되었습니다 "
        f"({total:.1f}m³ / {capacity:g}m³). 확인 후 조정해주세요."
    )


def assign_batch(
    session_factory: sessionmaker,
    booking_ids: Sequence[str],
    driver_id: str,
    date: Optional[str] = None,
) -> AssignResult:
    """Assign every booking to ``driver_id`` or none of them.

    Raises ``DriverUnavailable`` before any write when the driver is unknown,
    inactive or off on ``date``; raises ``DispatchError`` after compensating
    when any single write fails.
    """
    with get_db_session(session_factory) as db:
        driver = crud_driver.get_driver(db, driver_id)
        if driver is None or not driver.active:
            raise DriverUnavailable(
                "Driver not found or inactive", {"driver_id": driver_id}
            )
        db.expunge(driver)

    if date and driver.work_days:
        day = weekday_initial(date)
        if day not in _working_days(driver):
            raise DriverUnavailable(
                f"{driver.name} 기사는 {day}요일 휴무입니다 (근무일: {driver.work_days})",
                {"date": date},
            )

    ids = list(dict.fromkeys(booking_ids))
    values = {"driver_id": driver.id, "driver_name": driver.name}
    result = run_independent({bid: _write_task(session_factory, bid, values) for bid in ids})

    if not result.ok:
        logger.warning(
            "Dispatch partially failed; rolling back",
            extra={"driver_id": driver_id, "failed": result.failed, "succeeded": result.succeeded},
        )
        revert = {"driver_id": None, "driver_name": None, "route_order": None}
        compensation = run_independent(
            {bid: _write_task(session_factory, bid, revert) for bid in result.succeeded}
        )
        if not compensation.ok:
            logger.error(
                "Dispatch rollback incomplete",
                extra={"driver_id": driver_id, "stuck": compensation.failed},
            )
        raise DispatchError(result.failed, rolled_back=compensation.succeeded)

    with get_db_session(session_factory) as db:
        for booking in crud_booking.list_bookings(db, booking_ids=result.succeeded):
            notifications.notify_status_change(booking.phone, "dispatched", booking.id)

    warning = _capacity_warning(session_factory, driver, date) if date else None
    return AssignResult(updated=list(result.succeeded), capacity_warning=warning)


def reorder_routes(
    session_factory: sessionmaker, pairs: Iterable[Tuple[str, int]]
) -> BatchResult:
    """Write each ``(booking_id, route_order)`` independently; failures are not rolled back."""
    orders = dict(pairs)
    tasks = {
        bid: _write_task(session_factory, bid, {"route_order": order})
        for bid, order in orders.items()
    }
    result = run_independent(tasks)
    if result.failed:
        logger.warning(
            "Route reorder partially failed",
            extra={"failed": result.failed, "updated": len(result.succeeded)},
        )
    return result


def _slot_priority(time_slot: Optional[str]) -> int:
    return SLOT_PRIORITY.get(time_slot or "", _UNKNOWN_SLOT)


def optimize_route(
    session_factory: sessionmaker,
    date: str,
    driver_id: str,
    optimizer: RouteOptimizer,
) -> OptimizeResult:
    """Recompute a driver's stop order for ``date`` and persist it as 1..N.

    Stops are grouped by time slot (morning, afternoon, evening, other) and
    each group is ordered by ``optimizer``; stops without coordinates keep
    their relative order at the end of their group. Nothing is written
    unless every optimizer call succeeds.
    """
    with get_db_session(session_factory) as db:
        bookings = crud_booking.list_bookings(
            db, dates=[date], driver_id=driver_id, statuses=_ON_ROUTE
        )
        snapshot = [(b.id, b.time_slot, b.latitude, b.longitude) for b in bookings]

    if not snapshot:
        return OptimizeResult(updated=0)

    groups: Dict[int, List[Tuple[str, Optional[float], Optional[float]]]] = {}
    for bid, slot, lat, lng in snapshot:
        groups.setdefault(_slot_priority(slot), []).append((bid, lat, lng))

    order: List[str] = []
    distance = 0.0
    for priority in sorted(groups):
        members = groups[priority]
        stops = [Stop(bid, lat, lng) for bid, lat, lng in members if lat is not None and lng is not None]
        unlocated = [bid for bid, lat, lng in members if lat is None or lng is None]
        if stops:
            plan = optimizer.optimize(stops)
            order.extend(plan.order)
            distance += plan.distance_km or 0.0
        order.extend(unlocated)

    # Single transaction: the whole route is rewritten or none of it
    with get_db_session(session_factory) as db:
        for position, bid in enumerate(order, start=1):
            db.query(models.Booking).filter(models.Booking.id == bid).update(
                {"route_order": position, "updated_at": datetime.utcnow()},
                synchronize_session=False,
            )
        db.commit()

    logger.info(
        "Route optimized",
        extra={"driver_id": driver_id, "date": date, "stops": len(order)},
    )
    return OptimizeResult(updated=len(order), order=order, distance_km=round(distance, 1))


def get_dispatch_board(db: Session, date: str) -> schemas.DispatchBoard:
    bookings = crud_booking.list_bookings(db, dates=[date], statuses=_ON_ROUTE)
    drivers = crud_driver.list_active_drivers(db)

    loads = []
    for driver in drivers:
        assigned = [b for b in bookings if b.driver_id == driver.id]
        volume = round(sum(b.total_loading_cube or 0.0 for b in assigned), 2)
        loads.append(
            schemas.DriverLoad(
                driver_id=driver.id,
                driver_name=driver.name,
                assigned_count=len(assigned),
                total_volume=volume,
                suggested_crew=crew_size_for_volume(volume),
                vehicle_capacity=_vehicle_capacity(db, driver, date),
            )
        )

    return schemas.DispatchBoard(
        date=date,
        bookings=[schemas.BookingResponse.model_validate(b) for b in bookings],
        drivers=[schemas.DriverResponse.model_validate(d) for d in drivers],
        driver_loads=loads,
    )
