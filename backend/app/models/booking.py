# backend/app/models/booking.py

import uuid

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, JSON, String, Index

from .base import BaseModel
from .booking_status import BookingStatus
from .types import CaseInsensitiveEnum


def _new_id() -> str:
    return str(uuid.uuid4())


class Booking(BaseModel):
    __tablename__ = "bookings"

    id            = Column(String(36), primary_key=True, default=_new_id)
    date          = Column(String(10), nullable=False, index=True)  # YYYY-MM-DD
    time_slot     = Column(String, nullable=False)
    area          = Column(String, nullable=False)
    # Snapshot of server-priced line items (category, name, display_name, price, quantity, loading_cube)
    items         = Column(JSON, nullable=False, default=list)
    total_price   = Column(Integer, nullable=False, default=0)
    crew_size     = Column(Integer, nullable=False, default=1)
    need_ladder   = Column(Boolean, nullable=False, default=False)
    ladder_type   = Column(String, nullable=True)
    ladder_hours  = Column(Integer, nullable=True)
    ladder_price  = Column(Integer, nullable=False, default=0)
    customer_name = Column(String, nullable=False)
    phone         = Column(String, nullable=False)
    address       = Column(String, nullable=False)
    address_detail = Column(String, nullable=False, default="")
    memo          = Column(String, nullable=False, default="")
    status        = Column(
        CaseInsensitiveEnum(BookingStatus, name="bookingstatus"),
        default=BookingStatus.PENDING,
        nullable=False,
        index=True,
    )
    estimate_min  = Column(Integer, nullable=False, default=0)
    estimate_max  = Column(Integer, nullable=False, default=0)
    final_price   = Column(Integer, nullable=True)
    admin_memo    = Column(String, nullable=False, default="")
    driver_id     = Column(String(36), nullable=True, index=True)
    driver_name   = Column(String, nullable=True)
    route_order   = Column(Integer, nullable=True)
    total_loading_cube = Column(Float, nullable=False, default=0.0)
    latitude      = Column(Float, nullable=True)
    longitude     = Column(Float, nullable=True)
    # Set each time the booking enters quote_confirmed; drives quote expiry
    quote_confirmed_at = Column(DateTime, nullable=True, index=True)

    __table_args__ = (
        Index("ix_bookings_driver_date", "driver_id", "date"),
    )
