from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.booking_status import BookingStatus
from .quote import QuoteItemIn

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
PHONE_PATTERN = r"^01[0-9]-?\d{3,4}-?\d{4}$"


# Properties received from the public booking form
class BookingCreate(BaseModel):
    date: str = Field(..., pattern=DATE_PATTERN)
    time_slot: str = Field(..., min_length=1, max_length=50)
    area: str = Field(..., min_length=1, max_length=50)
    items: List[QuoteItemIn] = Field(..., min_length=1, max_length=100)
    need_ladder: bool = False
    ladder_type: Optional[str] = Field(None, max_length=20)
    ladder_hours: Optional[int] = Field(None, ge=0, le=10)
    customer_name: str = Field(..., min_length=2, max_length=50)
    phone: str = Field(..., pattern=PHONE_PATTERN)
    address: str = Field(..., min_length=5, max_length=200)
    address_detail: str = Field("", max_length=100)
    memo: str = Field("", max_length=500)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    # Client-computed totals are ignored and recomputed server-side
    total_price: Optional[int] = None


class BookingItemSnapshot(BaseModel):
    category: str
    name: str
    display_name: str
    price: int
    quantity: int
    loading_cube: float


# Full view used by the admin surface
class BookingResponse(BaseModel):
    id: str
    date: str
    time_slot: str
    area: str
    items: List[BookingItemSnapshot]
    total_price: int
    crew_size: int
    need_ladder: bool
    ladder_type: Optional[str] = None
    ladder_hours: Optional[int] = None
    ladder_price: int
    customer_name: str
    phone: str
    address: str
    address_detail: str
    memo: str
    status: BookingStatus
    estimate_min: int
    estimate_max: int
    final_price: Optional[int] = None
    admin_memo: str = ""
    quote_confirmed_at: Optional[datetime] = None
    driver_id: Optional[str] = None
    driver_name: Optional[str] = None
    route_order: Optional[int] = None
    total_loading_cube: float
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# Customer view: no internal notes or driver identity
class CustomerBookingResponse(BaseModel):
    id: str
    date: str
    time_slot: str
    area: str
    items: List[BookingItemSnapshot]
    total_price: int
    crew_size: int
    need_ladder: bool
    ladder_type: Optional[str] = None
    ladder_hours: Optional[int] = None
    ladder_price: int
    customer_name: str
    phone: str
    address: str
    address_detail: str
    memo: str
    status: BookingStatus
    estimate_min: int
    estimate_max: int
    final_price: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BookingCreatedResponse(BaseModel):
    booking: CustomerBookingResponse
    booking_token: str


# Driver view: route stop without pricing internals
class DriverBookingResponse(BaseModel):
    id: str
    date: str
    time_slot: str
    area: str
    items: List[BookingItemSnapshot]
    total_price: int
    crew_size: int
    need_ladder: bool
    ladder_type: Optional[str] = None
    ladder_hours: Optional[int] = None
    customer_name: str
    phone: str
    address: str
    address_detail: str
    memo: str
    status: BookingStatus
    route_order: Optional[int] = None
    total_loading_cube: float
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    model_config = {"from_attributes": True}


class StatusUpdate(BaseModel):
    status: BookingStatus


class StatusUpdateResponse(BaseModel):
    id: str
    status: BookingStatus


class AdminBookingUpdate(BaseModel):
    status: Optional[BookingStatus] = None
    final_price: Optional[int] = Field(None, ge=0)
    admin_memo: Optional[str] = Field(None, max_length=1000)
    # Optimistic lock: reject the write if the row changed since this timestamp
    expected_updated_at: Optional[datetime] = None

    def has_changes(self) -> bool:
        return any(
            value is not None
            for value in (self.status, self.final_price, self.admin_memo)
        )




# Fields a customer may change while the booking is still pending
class BookingEdit(BaseModel):
    date: Optional[str] = Field(None, pattern=DATE_PATTERN)
    time_slot: Optional[str] = Field(None, min_length=1, max_length=50)
    area: Optional[str] = Field(None, min_length=1, max_length=50)
    items: Optional[List[QuoteItemIn]] = Field(None, min_length=1, max_length=100)
    need_ladder: Optional[bool] = None
    ladder_type: Optional[str] = Field(None, max_length=20)
    ladder_hours: Optional[int] = Field(None, ge=0, le=10)
    customer_name: Optional[str] = Field(None, min_length=2, max_length=50)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    address: Optional[str] = Field(None, min_length=5, max_length=200)
    address_detail: Optional[str] = Field(None, max_length=100)
    memo: Optional[str] = Field(None, max_length=500)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class QuoteExpiryResponse(BaseModel):
    cancelled: int
    ids: List[str]
