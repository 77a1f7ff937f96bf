"""
Basket API - meal voucher eligibility filtering

POST /filter classifies every line item and returns eligible totals.
Item-level failures never fail the request; they come back as ineligible
items with an error reason.
"""
import structlog
from fastapi import APIRouter, Depends

from apps.api.dependencies import get_basket_filtering_service
from packages.common.schemas.basket import BasketFilteringResponse, BasketRequest
from packages.domain.eligibility import BasketFilteringService

logger = structlog.get_logger()
router = APIRouter()


@router.post("/filter", response_model=BasketFilteringResponse)
async def filter_basket(
    request: BasketRequest,
    service: BasketFilteringService = Depends(get_basket_filtering_service),
) -> BasketFilteringResponse:
    """
    Filter a basket for meal voucher eligibility.

    Returns per-item verdicts with provenance, eligible / ineligible amounts
    after the merchant's daily cap, and the excluded ancillary fees.
    """
    return await service.filter_basket(request)
