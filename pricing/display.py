"""Product-page price display.

Shows the best unconditional discount on a single product. Discounts with a
minimum order value are skipped because they depend on the whole cart.
Product-scoped discounts outrank category-scoped ones, which outrank
store-wide ones; within the winning tier the biggest saving wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Sequence

from pricing.amounts import HUNDRED, ZERO
from pricing.eligibility import matches
from pricing.rules import AmountKind, Discount, LineItem, Product, Scope
from pricing.validity import OrderContext, is_valid

_TIER = {
    Scope.SPECIFIC_PRODUCTS: 1,
    Scope.SPECIFIC_CATEGORIES: 2,
    Scope.ALL: 3,
}


@dataclass(frozen=True)
class DisplayPrice:
    final_price: Decimal
    compare_price: Decimal
    discount_label: str | None = None
    has_discount: bool = False
    discount_pct: int | None = None


def _pct_off(compare: Decimal, final: Decimal) -> int:
    return int(((compare - final) / compare * HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _static(product: Product) -> DisplayPrice:
    compare = product.compare_price or ZERO
    if compare > product.price:
        return DisplayPrice(
            final_price=product.price,
            compare_price=compare,
            has_discount=True,
            discount_pct=_pct_off(compare, product.price),
        )
    return DisplayPrice(final_price=product.price, compare_price=compare)


def best_display_price(
    product: Product,
    discounts: Sequence[Discount],
    now: datetime,
) -> DisplayPrice:
    """Price to show on the product page."""
    line = LineItem(product_id=product.id, unit_price=product.price, category_id=product.category_id)
    context = OrderContext(pre_discount_subtotal=product.price)

    candidates = [
        d
        for d in discounts
        if not (d.min_order_value and d.min_order_value > 0)
        and is_valid(d, context, now)
        and matches(d.scope, line)
    ]
    if not candidates:
        return _static(product)

    best_tier = min(_TIER[d.scope.scope] for d in candidates)

    best_saving = ZERO
    best_rule: Discount | None = None
    for d in candidates:
        if _TIER[d.scope.scope] != best_tier:
            continue
        if d.amount_kind == AmountKind.PERCENTAGE:
            saving = product.price * d.value / HUNDRED
        else:
            saving = d.value
        if saving > best_saving:
            best_saving = saving
            best_rule = d

    if best_rule is None:
        return _static(product)

    final = max(ZERO, product.price - best_saving)
    compare = max(product.compare_price or ZERO, product.price)
    return DisplayPrice(
        final_price=final,
        compare_price=compare,
        discount_label=best_rule.name,
        has_discount=True,
        discount_pct=_pct_off(compare, final) if compare > ZERO else None,
    )
