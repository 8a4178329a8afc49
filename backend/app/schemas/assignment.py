from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .booking import DATE_PATTERN


class AssignmentCreate(BaseModel):
    driver_id: str = Field(..., min_length=1)
    vehicle_id: str = Field(..., min_length=1)
    date: str = Field(..., pattern=DATE_PATTERN)


class AssignmentResponse(BaseModel):
    id: str
    driver_id: str
    vehicle_id: str
    date: str
    driver_name: Optional[str] = None
    license_plate: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}
