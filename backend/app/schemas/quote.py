from typing import List, Optional

from pydantic import BaseModel, Field


class QuoteItemIn(BaseModel):
    category: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    quantity: int = Field(..., ge=1, le=100)
    # Accepted for client compatibility; always replaced by catalog values
    price: Optional[int] = None
    loading_cube: Optional[float] = None


class QuoteRequest(BaseModel):
    area: str = Field(..., min_length=1, max_length=50)
    items: List[QuoteItemIn] = Field(..., min_length=1, max_length=100)
    need_ladder: bool = False
    ladder_type: Optional[str] = Field(None, max_length=20)
    ladder_hours: Optional[int] = Field(None, ge=0, le=10)


class BreakdownRowResponse(BaseModel):
    name: str
    quantity: int
    unit_price: int
    subtotal: int

    model_config = {"from_attributes": True}


class QuoteResponse(BaseModel):
    items_total: int
    crew_size: int
    crew_price: int
    ladder_price: int
    total_price: int
    estimate_min: int
    estimate_max: int
    total_volume: float
    breakdown: List[BreakdownRowResponse]

    model_config = {"from_attributes": True}
