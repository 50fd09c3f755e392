"""Amount calculator: turn a validated rule plus its matched lines into money.

Amounts stay unrounded Decimals. Rounding happens once, when totals are
serialized, so several simultaneous taxes do not compound rounding error.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from pricing.rules import AmountKind, Coupon, Discount, LineItem, Tax, TaxKind

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class MonetaryEffect:
    """What one rule contributes.

    ``basis`` is the matched subtotal the amount was computed from and
    ``matched_units`` the quantity-weighted count of matched lines.
    """

    amount: Decimal
    basis: Decimal
    matched_units: int = 0

    @classmethod
    def none(cls) -> "MonetaryEffect":
        return cls(amount=ZERO, basis=ZERO, matched_units=0)


def matched_subtotal(items: Sequence[LineItem]) -> Decimal:
    return sum((item.line_total for item in items), ZERO)


def matched_units(items: Sequence[LineItem]) -> int:
    return sum(item.quantity for item in items)


def reduction_effect(rule: Coupon | Discount, items: Sequence[LineItem]) -> MonetaryEffect:
    """Coupon/discount effect over the matched lines.

    Fixed amounts apply once per order and never exceed the matched subtotal.
    """
    if not items:
        return MonetaryEffect.none()

    basis = matched_subtotal(items)
    units = matched_units(items)

    if rule.amount_kind == AmountKind.PERCENTAGE:
        amount = basis * rule.value / HUNDRED
    else:
        amount = min(rule.value, basis)

    return MonetaryEffect(amount=min(amount, basis), basis=basis, matched_units=units)


def allocate(effect: MonetaryEffect, items: Sequence[LineItem]) -> list[Decimal]:
    """Split a reduction over the lines it matched, pro rata to line totals.

    The shares are parallel to ``items`` and sum to ``effect.amount``.
    """
    if effect.basis == ZERO:
        return [ZERO for _ in items]
    return [effect.amount * item.line_total / effect.basis for item in items]


def tax_effect(
    tax: Tax,
    items: Sequence[LineItem],
    base: Decimal | None = None,
) -> MonetaryEffect:
    """Tax effect over the matched lines.

    Percentage taxes are charged on ``base`` when given (the aggregator
    passes the post-discount value of the matched lines) and on the matched
    subtotal otherwise. Fixed taxes ignore it.
    """
    if not items:
        return MonetaryEffect.none()

    basis = matched_subtotal(items)
    units = matched_units(items)

    if tax.tax_kind == TaxKind.PERCENTAGE:
        taxable = basis if base is None else base
        return MonetaryEffect(amount=taxable * tax.value / HUNDRED, basis=taxable, matched_units=units)

    if tax.apply_per_item:
        amount = tax.value * units
    else:
        amount = tax.value
    return MonetaryEffect(amount=amount, basis=basis, matched_units=units)


def compute_effect(
    rule: Coupon | Discount | Tax,
    items: Sequence[LineItem],
    base: Decimal | None = None,
) -> MonetaryEffect:
    """Dispatch on rule kind. ``base`` only affects percentage taxes."""
    if isinstance(rule, Tax):
        return tax_effect(rule, items, base)
    return reduction_effect(rule, items)
