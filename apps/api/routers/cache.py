"""
Cache API - tiered cache statistics and flush
"""
import structlog
from fastapi import APIRouter, Depends

from apps.api.dependencies import get_basket_filtering_service
from packages.common.tiered_cache import CacheStatistics
from packages.domain.eligibility import BasketFilteringService

logger = structlog.get_logger()
router = APIRouter()


@router.get("/statistics", response_model=CacheStatistics)
async def get_cache_statistics(
    service: BasketFilteringService = Depends(get_basket_filtering_service),
) -> CacheStatistics:
    return service.get_cache_statistics()


@router.delete("", response_model=dict)
async def clear_cache(
    service: BasketFilteringService = Depends(get_basket_filtering_service),
) -> dict:
    """Flush the shared (Redis) tier and reset hit/miss counters"""
    await service.clear_cache()
    return {"status": "cleared"}
