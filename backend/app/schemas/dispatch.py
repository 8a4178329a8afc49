from typing import List, Optional

from pydantic import BaseModel, Field

from ..core.config import settings
from .booking import DATE_PATTERN, BookingResponse


class BatchAssignRequest(BaseModel):
    booking_ids: List[str] = Field(..., min_length=1, max_length=settings.DISPATCH_BATCH_LIMIT)
    driver_id: str = Field(..., min_length=1)
    # Ignored; the stored driver name is authoritative
    driver_name: Optional[str] = None
    date: Optional[str] = Field(None, pattern=DATE_PATTERN)


class BatchAssignResponse(BaseModel):
    success: bool
    updated: List[str]
    warning: Optional[str] = None


class RouteOrderUpdate(BaseModel):
    booking_id: str = Field(..., min_length=1)
    route_order: int = Field(..., ge=1, le=100)


class RouteOrderRequest(BaseModel):
    updates: List[RouteOrderUpdate] = Field(
        ..., min_length=1, max_length=settings.DISPATCH_ROUTE_ORDER_LIMIT
    )


class RouteOrderResponse(BaseModel):
    success: bool
    updated: int
    partial_failure: bool = False
    failed: List[str] = []


class BookingsRouteOrderItem(BaseModel):
    id: str = Field(..., min_length=1)
    route_order: int = Field(..., gt=0)


class BookingsRouteOrderResponse(BaseModel):
    updated: int
    failed: Optional[List[str]] = None


class OptimizeRouteRequest(BaseModel):
    date: str = Field(..., pattern=DATE_PATTERN)
    driver_id: str = Field(..., min_length=1)


class OptimizeRouteResponse(BaseModel):
    success: bool
    updated: int
    order: List[str]
    total_distance_km: Optional[float] = None


class DriverResponse(BaseModel):
    id: str
    name: str
    phone: Optional[str] = None
    active: bool
    vehicle_type: str
    vehicle_capacity: float
    work_days: Optional[str] = None

    model_config = {"from_attributes": True}


class DriverLoad(BaseModel):
    driver_id: str
    driver_name: str
    assigned_count: int
    total_volume: float
    suggested_crew: int
    vehicle_capacity: float


class DispatchBoard(BaseModel):
    date: str
    bookings: List[BookingResponse]
    drivers: List[DriverResponse]
    driver_loads: List[DriverLoad]


class DriverMonthlyStats(BaseModel):
    driver_id: str
    driver_name: str
    booking_count: int
    total_volume: float
    average_volume: float
