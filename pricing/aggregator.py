"""Order total aggregator.

Folds a cart and a rule snapshot into the final order totals:

    subtotal -> discount -> shipping -> tax -> total

At most one coupon applies (looked up by code). Every valid discount
applies, with the combined reduction clamped at the subtotal. Exactly one
shipping rate is chosen per destination. Every qualifying tax gets its own
breakdown line; percentage taxes are charged on the post-discount value of
the lines they match, each reduction being spread over its own matched lines.

``price`` is deterministic in (cart, snapshot, now, config) and performs no
I/O. Redeeming the winning coupon is the data layer's job; see
storefront.repository.CouponRepository.redeem.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Sequence

import structlog

from pricing.amounts import ZERO, MonetaryEffect, allocate, compute_effect
from pricing.categories import CategoryForest, build_tree
from pricing.config import PricingConfig
from pricing.eligibility import matched_positions
from pricing.money import round_money
from pricing.rules import (
    Cart,
    Coupon,
    Destination,
    Discount,
    RulesSnapshot,
    ShippingRate,
    Tax,
    TaxKind,
)
from pricing.validity import OrderContext, RejectionReason, check_validity

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AppliedRule:
    """A coupon or discount that contributed to the discount total.

    ``lines`` holds the indexes of the cart lines the rule matched.
    """

    rule_id: str
    kind: str
    label: str
    effect: MonetaryEffect
    lines: tuple[int, ...] = ()


@dataclass(frozen=True)
class TaxLine:
    """One itemized tax on the receipt, keyed by tax code."""

    code: str
    name: str
    amount: Decimal
    rate: Decimal
    tax_kind: TaxKind
    apply_per_item: bool
    matched_units: int


@dataclass(frozen=True)
class ShippingQuote:
    rate_id: str
    name: str
    cost: Decimal
    accepts_cod: bool
    region_specific: bool
    free_shipping_applied: bool = False


@dataclass
class OrderTotals:
    """Everything an order row or an invoice needs.

    ``shipping_cost`` and ``total`` are None when no shipping rate covers the
    destination; the quote is then not payable and checkout must block.
    """

    subtotal: Decimal
    discount_total: Decimal
    discounted_subtotal: Decimal
    shipping_cost: Decimal | None
    tax_total: Decimal
    total: Decimal | None
    currency: str
    coupon: AppliedRule | None = None
    coupon_code: str | None = None
    coupon_rejection: RejectionReason | None = None
    applied_discounts: list[AppliedRule] = field(default_factory=list)
    discount_capped: bool = False
    shipping: ShippingQuote | None = None
    shipping_rejection: RejectionReason | None = None
    tax_breakdown: dict[str, TaxLine] = field(default_factory=dict)

    @property
    def is_payable(self) -> bool:
        return self.shipping is not None

    @property
    def accepts_cod(self) -> bool:
        return self.shipping is not None and self.shipping.accepts_cod

    def to_dict(self, places: int = 2, rounding: str | None = None) -> dict[str, Any]:
        """Serialize with every money value rounded exactly once."""

        def money(value: Decimal | None) -> str | None:
            if value is None:
                return None
            if rounding is None:
                return str(round_money(value, places))
            return str(round_money(value, places, rounding))

        def applied(rule: AppliedRule) -> dict[str, Any]:
            return {
                "rule_id": rule.rule_id,
                "kind": rule.kind,
                "label": rule.label,
                "amount": money(rule.effect.amount),
                "matched_units": rule.effect.matched_units,
            }

        return {
            "currency": self.currency,
            "subtotal": money(self.subtotal),
            "discount_total": money(self.discount_total),
            "discounted_subtotal": money(self.discounted_subtotal),
            "shipping_cost": money(self.shipping_cost),
            "tax_total": money(self.tax_total),
            "total": money(self.total),
            "is_payable": self.is_payable,
            "accepts_cod": self.accepts_cod,
            "coupon_code": self.coupon_code,
            "coupon": applied(self.coupon) if self.coupon else None,
            "coupon_rejection": self.coupon_rejection.value if self.coupon_rejection else None,
            "discounts": [applied(d) for d in self.applied_discounts],
            "discount_capped": self.discount_capped,
            "shipping": (
                {
                    "rate_id": self.shipping.rate_id,
                    "name": self.shipping.name,
                    "cost": money(self.shipping.cost),
                    "accepts_cod": self.shipping.accepts_cod,
                    "free_shipping_applied": self.shipping.free_shipping_applied,
                }
                if self.shipping
                else None
            ),
            "shipping_rejection": self.shipping_rejection.value if self.shipping_rejection else None,
            "tax_breakdown": {
                code: {
                    "name": line.name,
                    "amount": money(line.amount),
                    "rate": str(line.rate),
                    "type": line.tax_kind.value,
                    "apply_per_item": line.apply_per_item,
                    "count": line.matched_units,
                }
                for code, line in self.tax_breakdown.items()
            },
        }


@dataclass(frozen=True)
class CouponResolution:
    coupon: Coupon | None
    applied: AppliedRule | None
    rejection: RejectionReason | None


# ---------------------------------------------------------------------------
# Coupon
# ---------------------------------------------------------------------------

def normalize_code(code: str) -> str:
    return code.strip().upper()


def find_coupon(code: str, coupons: Sequence[Coupon]) -> Coupon | None:
    """Case-insensitive, whitespace-trimmed lookup."""
    wanted = normalize_code(code)
    for coupon in coupons:
        if normalize_code(coupon.code) == wanted:
            return coupon
    return None


def resolve_coupon(
    code: str | None,
    cart: Cart,
    coupons: Sequence[Coupon],
    context: OrderContext,
    now: datetime,
    forest: CategoryForest | None = None,
) -> CouponResolution:
    """Resolve the entered code to at most one applied coupon.

    A rejected coupon contributes nothing; the reason is reported so the
    checkout can tell "expired" apart from "no such code".
    """
    if code is None or code == "":
        return CouponResolution(coupon=None, applied=None, rejection=None)
    if not code.strip():
        return CouponResolution(coupon=None, applied=None, rejection=RejectionReason.EMPTY_CODE)

    coupon = find_coupon(code, coupons)
    if coupon is None:
        return CouponResolution(coupon=None, applied=None, rejection=RejectionReason.NOT_FOUND)

    gate = check_validity(coupon, context, now)
    if not gate.passed:
        return CouponResolution(coupon=coupon, applied=None, rejection=gate.reason)

    positions = matched_positions(coupon.scope, cart.items, forest)
    if not positions:
        return CouponResolution(coupon=coupon, applied=None, rejection=RejectionReason.NOT_APPLICABLE)

    effect = compute_effect(coupon, [cart.items[i] for i in positions])
    return CouponResolution(
        coupon=coupon,
        applied=AppliedRule(
            rule_id=coupon.id,
            kind=coupon.kind.value,
            label=coupon.name or coupon.code,
            effect=effect,
            lines=positions,
        ),
        rejection=None,
    )


# ---------------------------------------------------------------------------
# Shipping
# ---------------------------------------------------------------------------

def _same(a: str | None, b: str | None) -> bool:
    if a is None or b is None:
        return False
    return a.strip().casefold() == b.strip().casefold()


def _quote_rate(rate: ShippingRate, region_specific: bool, subtotal: Decimal) -> ShippingQuote:
    free = (
        rate.free_shipping_threshold is not None
        and rate.free_shipping_threshold > 0
        and subtotal >= rate.free_shipping_threshold
    )
    return ShippingQuote(
        rate_id=rate.id,
        name=rate.name,
        cost=ZERO if free else rate.amount,
        accepts_cod=rate.accepts_cod,
        region_specific=region_specific,
        free_shipping_applied=free,
    )


def shipping_options(
    destination: Destination,
    rates: Sequence[ShippingRate],
    subtotal: Decimal,
) -> list[ShippingQuote]:
    """Every rate that serves the destination, best candidate first.

    Region matches rank above country-wide rates, then cheaper before
    dearer, then input order. Rates for some other region are skipped.
    """
    ranked: list[tuple[int, Decimal, int, ShippingQuote]] = []
    for position, rate in enumerate(rates):
        if not rate.is_active or not _same(rate.country, destination.country):
            continue
        if rate.region:
            if not _same(rate.region, destination.region):
                continue
            specificity = 0
        else:
            specificity = 1
        quote = _quote_rate(rate, specificity == 0, subtotal)
        ranked.append((specificity, quote.cost, position, quote))

    ranked.sort(key=lambda entry: entry[:3])
    return [entry[3] for entry in ranked]


def select_shipping(
    destination: Destination,
    rates: Sequence[ShippingRate],
    subtotal: Decimal,
) -> ShippingQuote | None:
    options = shipping_options(destination, rates, subtotal)
    return options[0] if options else None


# ---------------------------------------------------------------------------
# Taxes
# ---------------------------------------------------------------------------

def line_values(cart: Cart, reductions: Sequence[AppliedRule]) -> list[Decimal]:
    """Post-discount value of each cart line, never below zero."""
    cuts = [ZERO] * len(cart.items)
    for rule in reductions:
        matched = [cart.items[i] for i in rule.lines]
        for position, share in zip(rule.lines, allocate(rule.effect, matched)):
            cuts[position] += share
    return [max(item.line_total - cut, ZERO) for item, cut in zip(cart.items, cuts)]


def _tax_applies_to(tax: Tax, destination: Destination) -> bool:
    return tax.country is None or tax.country == "" or _same(tax.country, destination.country)


def resolve_taxes(
    cart: Cart,
    taxes: Sequence[Tax],
    context: OrderContext,
    now: datetime,
    values: Sequence[Decimal] | None = None,
    forest: CategoryForest | None = None,
) -> dict[str, TaxLine]:
    """One breakdown line per tax code with a non-zero effect.

    ``values`` are per-line taxable amounts from ``line_values``; without
    them percentage taxes use the undiscounted line totals.
    """
    breakdown: dict[str, TaxLine] = {}
    for tax in taxes:
        if not _tax_applies_to(tax, cart.destination):
            continue
        if not check_validity(tax, context, now).passed:
            continue

        positions = matched_positions(tax.scope, cart.items, forest)
        base = sum((values[i] for i in positions), ZERO) if values is not None else None
        effect = compute_effect(tax, [cart.items[i] for i in positions], base)
        if effect.amount == ZERO:
            continue

        code = tax.code.strip().upper()
        previous = breakdown.get(code)
        if previous is None:
            breakdown[code] = TaxLine(
                code=code,
                name=tax.name or code,
                amount=effect.amount,
                rate=tax.value,
                tax_kind=tax.tax_kind,
                apply_per_item=tax.apply_per_item,
                matched_units=effect.matched_units,
            )
        else:
            breakdown[code] = TaxLine(
                code=code,
                name=previous.name,
                amount=previous.amount + effect.amount,
                rate=previous.rate,
                tax_kind=previous.tax_kind,
                apply_per_item=previous.apply_per_item,
                matched_units=previous.matched_units + effect.matched_units,
            )
    return breakdown


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

def price(
    cart: Cart,
    snapshot: RulesSnapshot,
    now: datetime,
    config: PricingConfig | None = None,
) -> OrderTotals:
    """Price a cart against a store's rules at ``now``.

    Example::

        totals = price(cart, snapshot, datetime.now(timezone.utc))
        if not totals.is_payable:
            raise UnshippableError(...)
        order_row.update(totals.to_dict())
    """
    config = config or PricingConfig()
    forest = build_tree(snapshot.categories) if config.cascade_to_subcategories else None

    # 1. Subtotal
    subtotal = cart.subtotal
    context = OrderContext(pre_discount_subtotal=subtotal)

    # 2. Coupon
    resolution = resolve_coupon(cart.coupon_code, cart, snapshot.coupons, context, now, forest)
    if resolution.rejection is not None:
        logger.info(
            "coupon_rejected",
            code=cart.coupon_code,
            reason=resolution.rejection.value,
        )

    # 3. Discounts, clamped so the reduction never exceeds the subtotal
    applied_discounts: list[AppliedRule] = []
    for discount in snapshot.discounts:
        if not check_validity(discount, context, now).passed:
            continue
        positions = matched_positions(discount.scope, cart.items, forest)
        effect = compute_effect(discount, [cart.items[i] for i in positions])
        if effect.amount == ZERO:
            continue
        applied_discounts.append(
            AppliedRule(
                rule_id=discount.id,
                kind=discount.kind.value,
                label=discount.name,
                effect=effect,
                lines=positions,
            )
        )

    raw_discount = sum((d.effect.amount for d in applied_discounts), ZERO)
    if resolution.applied is not None:
        raw_discount += resolution.applied.effect.amount
    discount_total = min(raw_discount, subtotal)

    # 4. Discounted subtotal
    discounted_subtotal = subtotal - discount_total

    # 5. Shipping
    shipping = select_shipping(cart.destination, snapshot.shipping_rates, subtotal)
    if shipping is None:
        logger.info(
            "destination_unshippable",
            country=cart.destination.country,
            region=cart.destination.region,
        )

    # 6. Taxes
    values = None
    if config.tax_on_discounted_subtotal:
        reductions = list(applied_discounts)
        if resolution.applied is not None:
            reductions.append(resolution.applied)
        values = line_values(cart, reductions)
    tax_breakdown = resolve_taxes(cart, snapshot.taxes, context, now, values, forest)
    tax_total = sum((line.amount for line in tax_breakdown.values()), ZERO)

    # 7. Total
    shipping_cost = shipping.cost if shipping is not None else None
    total = discounted_subtotal + shipping_cost + tax_total if shipping_cost is not None else None

    return OrderTotals(
        subtotal=subtotal,
        discount_total=discount_total,
        discounted_subtotal=discounted_subtotal,
        shipping_cost=shipping_cost,
        tax_total=tax_total,
        total=total,
        currency=(cart.currency or config.currency).upper(),
        coupon=resolution.applied,
        coupon_code=resolution.coupon.code if resolution.applied else None,
        coupon_rejection=resolution.rejection,
        applied_discounts=applied_discounts,
        discount_capped=raw_discount > subtotal,
        shipping=shipping,
        shipping_rejection=RejectionReason.UNSHIPPABLE if shipping is None else None,
        tax_breakdown=tax_breakdown,
    )
