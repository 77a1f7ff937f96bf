"""
Basket request / response contract

All monetary amounts on the request side are integer minor units (cents).
Response amounts are Decimal major units rounded to 2 places.
"""
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

CENTS = Decimal("100")


def cents_to_decimal(amount: int) -> Decimal:
    """Convert minor units to a 2dp Decimal"""
    return (Decimal(amount) / CENTS).quantize(Decimal("0.01"))


class ItemData(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: str
    sku: str = Field(..., min_length=1)
    gtin: Optional[str] = None
    item_name: str = Field(..., min_length=1)
    item_description: Optional[str] = None


class CategoryData(BaseModel):
    model_config = ConfigDict(frozen=True)

    primary_category: str
    sub_category: Optional[str] = None
    taxonomy_code: Optional[str] = None


class PricingData(BaseModel):
    model_config = ConfigDict(frozen=True)

    quantity: int = Field(..., ge=1)
    unit_price_amount: int = Field(..., ge=0, description="Minor units")
    total_price_amount: int = Field(..., ge=0, description="Minor units")
    currency_code: str = Field(default="EUR", min_length=3, max_length=3)
    vat_rate: Optional[Decimal] = None
    vat_amount: Optional[int] = None


class ItemAttributes(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_combo_item: bool = False
    parent_combo_id: Optional[str] = None
    contains_alcohol: bool = False
    alcohol_by_volume: Optional[Decimal] = Field(default=None, ge=0, le=100)
    allergen_info: Tuple[str, ...] = ()


class BasketItem(BaseModel):
    """A single line item. Read-only input to classification."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "item_data": {
                    "item_id": "item-1",
                    "sku": "SKU-MENU-001",
                    "item_name": "Menu Burger + Bière",
                    "item_description": "Burger, frites et bière 25cl",
                },
                "category_data": {"primary_category": "Menu with Alcohol"},
                "pricing_data": {
                    "quantity": 1,
                    "unit_price_amount": 1450,
                    "total_price_amount": 1450,
                    "currency_code": "EUR",
                },
                "item_attributes": {
                    "is_combo_item": True,
                    "contains_alcohol": True,
                    "alcohol_by_volume": 5.0,
                },
            }
        },
    )

    item_data: ItemData
    category_data: CategoryData
    pricing_data: PricingData
    item_attributes: ItemAttributes = Field(default_factory=ItemAttributes)

    @property
    def sku(self) -> str:
        return self.item_data.sku

    @property
    def name(self) -> str:
        return self.item_data.item_name

    @property
    def description(self) -> str:
        return self.item_data.item_description or ""

    @property
    def category(self) -> str:
        return self.category_data.primary_category

    @property
    def total_price(self) -> Decimal:
        return cents_to_decimal(self.pricing_data.total_price_amount)


class TransactionData(BaseModel):
    basket_id: str = Field(..., min_length=1)
    transaction_id: str = Field(..., min_length=1)
    timestamp: datetime
    currency_code: str = Field(default="EUR", min_length=3, max_length=3)
    country_code: str = Field(default="FR", min_length=2, max_length=2)


class MerchantData(BaseModel):
    merchant_id: str = Field(..., min_length=1)
    merchant_name: str
    merchant_category_code: Optional[str] = None
    merchant_type: Optional[str] = None


class CustomerData(BaseModel):
    customer_id: Optional[str] = None
    employee_id: Optional[str] = None
    card_type: Optional[str] = None


class ChargeType(str, Enum):
    """Ancillary charges - never eligible"""
    DELIVERY_FEE = "delivery_fee"
    SERVICE_CHARGE = "service_charge"
    PROCESSING_FEE = "processing_fee"
    TIP = "tip"
    PACKAGING_FEE = "packaging_fee"


class AdditionalCharge(BaseModel):
    charge_type: ChargeType
    charge_name: Optional[str] = None
    charge_amount: int = Field(..., ge=0, description="Minor units")
    currency_code: str = Field(default="EUR", min_length=3, max_length=3)


class BasketTotals(BaseModel):
    subtotal_amount: int = Field(..., ge=0)
    total_charges_amount: int = Field(default=0, ge=0)
    total_vat_amount: int = Field(default=0, ge=0)
    total_amount: int = Field(..., ge=0)
    currency_code: str = Field(default="EUR", min_length=3, max_length=3)


class BasketRequest(BaseModel):
    """Incoming basket to filter"""
    transaction_data: TransactionData
    merchant_data: MerchantData
    customer_data: Optional[CustomerData] = None
    basket_items: List[BasketItem] = Field(..., min_length=1, max_length=50)
    additional_charges: List[AdditionalCharge] = Field(default_factory=list)
    basket_totals: BasketTotals


class ResolutionSource(str, Enum):
    """Pipeline stage that produced the final verdict"""
    CACHE = "cache"       # catalog entry carrying an AI verdict
    CATALOG = "catalog"   # catalog entry without a verdict
    RULES = "rules"       # deterministic rule engine
    AI = "ai"             # external classifier + business overrides
    ERROR = "error"


class Provenance(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: ResolutionSource
    confidence: float = Field(..., ge=0.0, le=1.0)
    latency_ms: float = Field(default=0.0, ge=0.0)


class CategorizedItem(BaseModel):
    """Per-item classification output"""
    item: BasketItem
    is_eligible: bool
    reason: str
    category: Optional[str] = None
    provenance: Provenance


class Fee(BaseModel):
    charge_type: ChargeType
    name: str
    amount: Decimal
    currency_code: str = "EUR"


class BasketFilteringResponse(BaseModel):
    basket_id: str
    transaction_id: str
    currency_code: str = "EUR"
    total_amount: Decimal
    eligible_amount: Decimal
    ineligible_amount: Decimal
    ineligible_items_amount: Decimal = Field(
        default=Decimal("0.00"),
        description="Sum of ineligible line items only (diagnostic)",
    )
    categorized_items: List[CategorizedItem]
    excluded_fees: List[Fee] = Field(default_factory=list)
    is_fully_eligible: bool
    ineligibility_reason: Optional[str] = None
    processed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
