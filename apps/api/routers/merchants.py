"""
Merchant rules API - read and replace a merchant's eligibility rules

Updates go to the rules store and invalidate the loader's cached copy, so
the next basket for that merchant sees them.
"""
import structlog
from fastapi import APIRouter, Depends, HTTPException

from apps.api.dependencies import get_basket_filtering_service
from packages.common.schemas.rules import MerchantRules
from packages.domain.eligibility import BasketFilteringService

logger = structlog.get_logger()
router = APIRouter()


@router.get("/{merchant_id}/rules", response_model=MerchantRules)
async def get_merchant_rules(
    merchant_id: str,
    country_code: str = "FR",
    service: BasketFilteringService = Depends(get_basket_filtering_service),
) -> MerchantRules:
    """Effective rules for a merchant (store record, country default or fallback)"""
    return await service.rules_loader.get(merchant_id, country_code=country_code)


@router.put("/{merchant_id}/rules", response_model=MerchantRules)
async def update_merchant_rules(
    merchant_id: str,
    rules: MerchantRules,
    service: BasketFilteringService = Depends(get_basket_filtering_service),
) -> MerchantRules:
    if rules.merchant_id != merchant_id:
        raise HTTPException(status_code=400, detail="merchant_id in body does not match path")
    return await service.rules_loader.update(rules)


@router.post("/{merchant_id}/rules/refresh", response_model=MerchantRules)
async def refresh_merchant_rules(
    merchant_id: str,
    country_code: str = "FR",
    service: BasketFilteringService = Depends(get_basket_filtering_service),
) -> MerchantRules:
    """Force a reload from the rules store"""
    return await service.rules_loader.refresh(merchant_id, country_code=country_code, force=True)
