# backend/app/api/api_quote.py

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import ORJSONResponse

from ..core.config import settings
from ..schemas.quote import QuoteRequest, QuoteResponse
from ..services.pricing_catalog import PricingCatalog
from ..services.quote_engine import calculate_quote
from ..utils.rate_limit import RateLimiter
from .dependencies import get_pricing_catalog

router = APIRouter(tags=["quote"], default_response_class=ORJSONResponse)
logger = logging.getLogger(__name__)

quote_rate_limit = RateLimiter(settings.QUOTE_RATE_LIMIT, settings.QUOTE_RATE_WINDOW, "quote")


@router.post("/quote", response_model=QuoteResponse, dependencies=[Depends(quote_rate_limit)])
def create_quote(
    quote_in: QuoteRequest,
    catalog: PricingCatalog = Depends(get_pricing_catalog),
) -> QuoteResponse:
    """Price an item list. Client-supplied prices and volumes are ignored."""
    result = calculate_quote(
        catalog,
        quote_in.area,
        quote_in.items,
        quote_in.need_ladder,
        quote_in.ladder_type,
        quote_in.ladder_hours,
    )
    return QuoteResponse.model_validate(result)
