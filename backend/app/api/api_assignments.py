# backend/app/api/api_assignments.py

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import ORJSONResponse
from sqlalchemy.orm import Session

from ..crud import crud_driver
from ..database import get_db
from ..models.driver import DriverVehicleAssignment
from ..schemas.assignment import AssignmentCreate, AssignmentResponse
from ..services.booking_lifecycle import Actor
from ..utils.errors import PickupError, error_response
from .dependencies import require_permission

router = APIRouter(tags=["assignments"], default_response_class=ORJSONResponse)


def _to_response(assignment: DriverVehicleAssignment) -> AssignmentResponse:
    return AssignmentResponse(
        id=assignment.id,
        driver_id=assignment.driver_id,
        vehicle_id=assignment.vehicle_id,
        date=assignment.date,
        driver_name=assignment.driver.name if assignment.driver else None,
        license_plate=assignment.vehicle.license_plate if assignment.vehicle else None,
        created_at=assignment.created_at,
    )


@router.get("/assignments", response_model=List[AssignmentResponse])
def list_assignments(
    date: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}-\d{2}$"),
    driver_id: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("view")),
) -> List[AssignmentResponse]:
    return [_to_response(a) for a in crud_driver.list_assignments(db, date=date, driver_id=driver_id)]


@router.post("/assignments", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
def create_assignment(
    assignment_in: AssignmentCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("status_change")),
) -> AssignmentResponse:
    field_errors = {}
    if crud_driver.get_driver(db, assignment_in.driver_id) is None:
        field_errors["driver_id"] = "not_found"
    if crud_driver.get_vehicle(db, assignment_in.vehicle_id) is None:
        field_errors["vehicle_id"] = "not_found"
    if field_errors:
        raise error_response("Unknown driver or vehicle", field_errors, status.HTTP_404_NOT_FOUND)
    try:
        assignment = crud_driver.create_assignment(db, assignment_in)
    except PickupError as exc:
        raise exc.to_http()
    return _to_response(assignment)


@router.delete("/assignments/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_assignment(
    assignment_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_permission("status_change")),
) -> Response:
    if not crud_driver.delete_assignment(db, assignment_id):
        raise error_response("Assignment not found", {"assignment_id": "not_found"}, status.HTTP_404_NOT_FOUND)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
