"""
Catalog API - inspect and manage learned product verdicts
"""
import structlog
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from apps.api.dependencies import get_basket_filtering_service
from packages.common.schemas.catalog import CatalogEntry
from packages.domain.eligibility import BasketFilteringService

logger = structlog.get_logger()
router = APIRouter()


@router.get("/item/{sku}", response_model=CatalogEntry)
async def get_catalog_item(
    sku: str,
    service: BasketFilteringService = Depends(get_basket_filtering_service),
) -> CatalogEntry:
    """Look up a catalog entry (cache first, then the store)"""
    entry = await service.catalog.get_item(sku)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"SKU {sku} not found in catalog")
    return entry


@router.get("/search", response_model=List[CatalogEntry])
async def search_catalog(
    q: str = Query(..., min_length=2, description="Name, description or exact SKU"),
    limit: int = Query(50, ge=1, le=200, description="Max results"),
    service: BasketFilteringService = Depends(get_basket_filtering_service),
) -> List[CatalogEntry]:
    return await service.catalog.search(q, limit)


@router.get("/count", response_model=dict)
async def count_catalog_items(
    service: BasketFilteringService = Depends(get_basket_filtering_service),
) -> dict:
    return {"count": await service.catalog.count()}


@router.delete("", response_model=dict)
async def clear_catalog(
    service: BasketFilteringService = Depends(get_basket_filtering_service),
) -> dict:
    """
    Delete every catalog entry and evict cached copies.

    Items will be re-learned (rules or AI) on their next appearance.
    """
    deleted = await service.catalog.delete_all()
    logger.warning("catalog_clear_requested", deleted=deleted)
    return {"deleted": deleted}
