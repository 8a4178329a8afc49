# backend/app/api/api_dispatch.py

import logging

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import ORJSONResponse
from sqlalchemy.orm import Session, sessionmaker

from ..database import get_db, get_session_factory
from ..schemas.dispatch import (
    BatchAssignRequest,
    BatchAssignResponse,
    DispatchBoard,
    OptimizeRouteRequest,
    OptimizeRouteResponse,
    RouteOrderRequest,
    RouteOrderResponse,
)
from ..services import dispatch
from ..services.booking_lifecycle import Actor
from ..services.route_optimizer import RouteOptimizer, get_route_optimizer
from ..utils.errors import PickupError, error_response
from .dependencies import require_permission

router = APIRouter(tags=["dispatch"], default_response_class=ORJSONResponse)
logger = logging.getLogger(__name__)


@router.get("/dispatch", response_model=DispatchBoard)
def read_dispatch_board(
    date: str = Query(..., pattern=r"^\d{4}-\d{2}-\d{2}$"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("view")),
) -> DispatchBoard:
    return dispatch.get_dispatch_board(db, date)


@router.post("/dispatch", response_model=BatchAssignResponse)
def assign_bookings(
    assign_in: BatchAssignRequest,
    session_factory: sessionmaker = Depends(get_session_factory),
    actor: Actor = Depends(require_permission("status_change")),
) -> BatchAssignResponse:
    """Assign bookings to a driver, all or nothing."""
    try:
        result = dispatch.assign_batch(
            session_factory, assign_in.booking_ids, assign_in.driver_id, assign_in.date
        )
    except PickupError as exc:
        raise exc.to_http()
    return BatchAssignResponse(success=True, updated=result.updated, warning=result.capacity_warning)


@router.put("/dispatch/route-order", response_model=RouteOrderResponse)
def update_route_order(
    order_in: RouteOrderRequest,
    session_factory: sessionmaker = Depends(get_session_factory),
    actor: Actor = Depends(require_permission("status_change")),
) -> RouteOrderResponse:
    result = dispatch.reorder_routes(
        session_factory, [(u.booking_id, u.route_order) for u in order_in.updates]
    )
    if not result.succeeded:
        raise error_response(
            "Route order update failed",
            {bid: "update_failed" for bid in result.failed},
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    return RouteOrderResponse(
        success=True,
        updated=len(result.succeeded),
        partial_failure=bool(result.failed),
        failed=list(result.failed),
    )


@router.post("/dispatch-auto/optimize-route", response_model=OptimizeRouteResponse)
def optimize_driver_route(
    optimize_in: OptimizeRouteRequest,
    session_factory: sessionmaker = Depends(get_session_factory),
    optimizer: RouteOptimizer = Depends(get_route_optimizer),
    actor: Actor = Depends(require_permission("status_change")),
) -> OptimizeRouteResponse:
    """Reorder one driver's stops for a day; no booking changes if the route service fails."""
    try:
        result = dispatch.optimize_route(
            session_factory, optimize_in.date, optimize_in.driver_id, optimizer
        )
    except PickupError as exc:
        raise exc.to_http()
    return OptimizeRouteResponse(
        success=True,
        updated=result.updated,
        order=result.order,
        total_distance_km=result.distance_km,
    )
