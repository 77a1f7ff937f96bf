"""
Response Aggregator - basket totals, daily cap and the ineligibility reason

Money rules:
- Item totals are integer minor units, converted to Decimal once
- Ancillary charges (delivery, service, packaging...) are never eligible
- ineligible = basket total - eligible, so the two always add up
- The daily cap is applied after summation: any excess moves to ineligible

A basket is fully eligible only when every item is eligible, no nonzero fee
was excluded and the cap was not hit.

Reason precedence (first applicable):
- cap exceeded          → "Daily limit exceeded by X"   (overrides the rest)
- no eligible items     → "Basket contains no eligible items"
- ineligible items+fees → combined reason
- ineligible items      → distinct ineligible categories
- fees only             → fee exclusion note
"""
from decimal import Decimal
from typing import List, Optional

import structlog

from packages.common.schemas.basket import (
    BasketFilteringResponse,
    BasketRequest,
    CategorizedItem,
    Fee,
    cents_to_decimal,
)
from packages.common.schemas.rules import MerchantRules

logger = structlog.get_logger()

ZERO = Decimal("0.00")
TWO_PLACES = Decimal("0.01")


class ResponseAggregator:

    def aggregate(
        self,
        request: BasketRequest,
        categorized_items: List[CategorizedItem],
        merchant_rules: MerchantRules,
    ) -> BasketFilteringResponse:
        currency = request.transaction_data.currency_code

        eligible_items = [ci for ci in categorized_items if ci.is_eligible]
        ineligible_items = [ci for ci in categorized_items if not ci.is_eligible]

        eligible_amount = cents_to_decimal(sum(ci.item.pricing_data.total_price_amount for ci in eligible_items))
        ineligible_items_amount = cents_to_decimal(
            sum(ci.item.pricing_data.total_price_amount for ci in ineligible_items)
        )

        fees = [
            Fee(
                charge_type=charge.charge_type,
                name=charge.charge_name or charge.charge_type.value,
                amount=cents_to_decimal(charge.charge_amount),
                currency_code=charge.currency_code,
            )
            for charge in request.additional_charges
        ]
        fees_amount = sum((fee.amount for fee in fees), ZERO)

        cap_excess = ZERO
        daily_limit = merchant_rules.daily_limit
        if daily_limit is not None and eligible_amount > daily_limit:
            cap_excess = (eligible_amount - daily_limit).quantize(TWO_PLACES)
            eligible_amount = daily_limit.quantize(TWO_PLACES)
            logger.info("daily_limit_applied",
                        basket_id=request.transaction_data.basket_id,
                        daily_limit=str(daily_limit),
                        excess=str(cap_excess))

        total_amount = cents_to_decimal(request.basket_totals.total_amount)
        ineligible_amount = (total_amount - eligible_amount).quantize(TWO_PLACES)
        if ineligible_amount < ZERO:
            logger.warning("basket_totals_mismatch",
                           basket_id=request.transaction_data.basket_id,
                           total_amount=str(total_amount),
                           eligible_amount=str(eligible_amount))
            ineligible_amount = ZERO

        is_fully_eligible = not ineligible_items and fees_amount == ZERO and cap_excess == ZERO

        reason = None
        if not is_fully_eligible:
            reason = self.ineligibility_reason(
                eligible_count=len(eligible_items),
                ineligible_items=ineligible_items,
                fees_amount=fees_amount,
                cap_excess=cap_excess,
                currency=currency,
            )

        return BasketFilteringResponse(
            basket_id=request.transaction_data.basket_id,
            transaction_id=request.transaction_data.transaction_id,
            currency_code=currency,
            total_amount=total_amount,
            eligible_amount=eligible_amount,
            ineligible_amount=ineligible_amount,
            ineligible_items_amount=ineligible_items_amount,
            categorized_items=categorized_items,
            excluded_fees=fees,
            is_fully_eligible=is_fully_eligible,
            ineligibility_reason=reason,
        )

    @staticmethod
    def ineligibility_reason(
        eligible_count: int,
        ineligible_items: List[CategorizedItem],
        fees_amount: Decimal,
        cap_excess: Decimal,
        currency: str,
    ) -> Optional[str]:
        if cap_excess > ZERO:
            return f"Daily limit exceeded by {cap_excess} {currency}"

        if eligible_count == 0:
            return "Basket contains no eligible items"

        has_fees = fees_amount > ZERO

        if ineligible_items and has_fees:
            return "Contains ineligible items and delivery/service fees"

        if ineligible_items:
            categories = []
            for ci in ineligible_items:
                category = ci.category or "unknown"
                if category not in categories:
                    categories.append(category)
            return f"Contains ineligible items: {', '.join(categories)}"

        if has_fees:
            return f"Delivery/service fees excluded ({fees_amount} {currency})"

        return None


# Singleton instance
response_aggregator = ResponseAggregator()
