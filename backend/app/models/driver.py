import uuid

from sqlalchemy import Boolean, Column, Float, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import BaseModel


def _new_id() -> str:
    return str(uuid.uuid4())


class Driver(BaseModel):
    __tablename__ = "drivers"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    vehicle_type = Column(String, nullable=False, default="1톤")
    vehicle_capacity = Column(Float, nullable=False, default=0.0)  # m³
    # Comma separated Korean weekday initials, e.g. "월,화,수,목,금"
    work_days = Column(String, nullable=True)


class Vehicle(BaseModel):
    __tablename__ = "vehicles"

    id = Column(String(36), primary_key=True, default=_new_id)
    license_plate = Column(String, nullable=False, unique=True)
    vehicle_type = Column(String, nullable=False, default="1톤")
    capacity = Column(Float, nullable=False, default=0.0)
    active = Column(Boolean, nullable=False, default=True)


class DriverVehicleAssignment(BaseModel):
    __tablename__ = "driver_vehicle_assignments"

    id = Column(String(36), primary_key=True, default=_new_id)
    driver_id = Column(String(36), ForeignKey("drivers.id", ondelete="CASCADE"), nullable=False, index=True)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(String(10), nullable=False, index=True)

    driver = relationship("Driver")
    vehicle = relationship("Vehicle")

    __table_args__ = (
        UniqueConstraint("driver_id", "date", name="uq_assignment_driver_date"),
        UniqueConstraint("vehicle_id", "date", name="uq_assignment_vehicle_date"),
    )
