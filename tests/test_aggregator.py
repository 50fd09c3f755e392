"""Test the order total aggregator."""
import random
from datetime import timedelta
from decimal import Decimal

from pricing.aggregator import find_coupon, price, select_shipping, shipping_options
from pricing.config import PricingConfig
from pricing.rules import (
    AmountKind,
    Cart,
    Category,
    Coupon,
    Destination,
    Discount,
    LineItem,
    RuleScope,
    RulesSnapshot,
    Scope,
    ShippingRate,
    Tax,
    TaxKind,
)
from pricing.validity import RejectionReason

US = Destination(country="US", region="CA")
FLAT = ShippingRate(id="s1", name="Flat", amount=Decimal("5"), country="US")


def _cart(items, coupon_code=None, destination=US):
    return Cart(items=tuple(items), destination=destination, coupon_code=coupon_code)


def _shoes(qty=2):
    return LineItem(product_id="p1", unit_price=Decimal("100"), quantity=qty, category_id="shoes")


def test_reference_scenario(now):
    snapshot = RulesSnapshot(
        discounts=(
            Discount(
                id="d1",
                name="Shoe sale",
                value=Decimal("10"),
                scope=RuleScope.from_lists(Scope.SPECIFIC_CATEGORIES, included_category_ids=["shoes"]),
            ),
        ),
        taxes=(Tax(id="t1", code="VAT", name="VAT", value=Decimal("5")),),
        shipping_rates=(FLAT,),
    )
    totals = price(_cart([_shoes()]), snapshot, now)

    assert totals.subtotal == Decimal("200")
    assert totals.discount_total == Decimal("20")
    assert totals.discounted_subtotal == Decimal("180")
    assert totals.tax_breakdown["VAT"].amount == Decimal("9")
    assert totals.shipping_cost == Decimal("5")
    assert totals.total == Decimal("194")
    assert totals.to_dict()["total"] == "194.00"


def test_pre_discount_tax_base_flag(now):
    snapshot = RulesSnapshot(
        discounts=(Discount(id="d1", name="Sale", value=Decimal("10")),),
        taxes=(Tax(id="t1", code="VAT", value=Decimal("5")),),
        shipping_rates=(FLAT,),
    )
    config = PricingConfig(tax_on_discounted_subtotal=False)
    totals = price(_cart([_shoes()]), snapshot, now, config)
    assert totals.tax_total == Decimal("10")
    assert totals.total == Decimal("195")


def test_tax_base_follows_discounted_lines(now):
    a = LineItem(product_id="a", unit_price=Decimal("100"))
    b = LineItem(product_id="b", unit_price=Decimal("100"))
    snapshot = RulesSnapshot(
        discounts=(
            Discount(
                id="d1",
                name="Half off A",
                value=Decimal("50"),
                scope=RuleScope.from_lists(Scope.SPECIFIC_PRODUCTS, included_product_ids=["a"]),
            ),
        ),
        taxes=(
            Tax(
                id="t1",
                code="BTAX",
                value=Decimal("10"),
                scope=RuleScope.from_lists(Scope.SPECIFIC_PRODUCTS, included_product_ids=["b"]),
            ),
            Tax(id="t2", code="ATAX", value=Decimal("10"), scope=RuleScope.from_lists(Scope.SPECIFIC_PRODUCTS, included_product_ids=["a"])),
        ),
        shipping_rates=(FLAT,),
    )
    totals = price(_cart([a, b]), snapshot, now)

    assert totals.discount_total == Decimal("50")
    assert totals.tax_breakdown["BTAX"].amount == Decimal("10")
    assert totals.tax_breakdown["ATAX"].amount == Decimal("5")
    assert totals.total == Decimal("170")


def test_excluded_line_keeps_full_tax_base(now):
    kept = LineItem(product_id="kept", unit_price=Decimal("100"))
    excluded = LineItem(product_id="gift-card", unit_price=Decimal("100"))
    snapshot = RulesSnapshot(
        discounts=(
            Discount(
                id="d1",
                name="Storewide",
                value=Decimal("20"),
                scope=RuleScope.from_lists(Scope.ALL, excluded_product_ids=["gift-card"]),
            ),
        ),
        taxes=(
            Tax(id="t1", code="VAT", value=Decimal("10")),
            Tax(
                id="t2",
                code="GIFT",
                value=Decimal("10"),
                scope=RuleScope.from_lists(Scope.SPECIFIC_PRODUCTS, included_product_ids=["gift-card"]),
            ),
        ),
        shipping_rates=(FLAT,),
    )
    totals = price(_cart([kept, excluded]), snapshot, now)

    assert totals.discount_total == Decimal("20")
    assert totals.tax_breakdown["VAT"].amount == Decimal("18")
    assert totals.tax_breakdown["GIFT"].amount == Decimal("10")

    coupon = Coupon(
        id="c1",
        code="HALF",
        value=Decimal("50"),
        scope=RuleScope.from_lists(Scope.SPECIFIC_PRODUCTS, included_product_ids=["gift-card"]),
    )
    snapshot = RulesSnapshot(
        coupons=(coupon,),
        discounts=snapshot.discounts,
        taxes=snapshot.taxes,
        shipping_rates=(FLAT,),
    )
    totals = price(_cart([kept, excluded], coupon_code="half"), snapshot, now)
    assert totals.discount_total == Decimal("70")
    assert totals.tax_breakdown["VAT"].amount == Decimal("13")
    assert totals.tax_breakdown["GIFT"].amount == Decimal("5")


def test_fixed_tax_per_item(now):
    items = [LineItem(product_id="p1", unit_price=Decimal("10"), quantity=3)]
    per_item = Tax(id="t1", code="ECO", value=Decimal("2"), tax_kind=TaxKind.FIXED, apply_per_item=True)
    once = Tax(id="t1", code="ECO", value=Decimal("2"), tax_kind=TaxKind.FIXED, apply_per_item=False)

    totals = price(_cart(items), RulesSnapshot(taxes=(per_item,), shipping_rates=(FLAT,)), now)
    assert totals.tax_breakdown["ECO"].amount == Decimal("6")
    assert totals.tax_breakdown["ECO"].matched_units == 3

    totals = price(_cart(items), RulesSnapshot(taxes=(once,), shipping_rates=(FLAT,)), now)
    assert totals.tax_breakdown["ECO"].amount == Decimal("2")


def test_expired_coupon_distinct_from_unknown(now):
    expired = Coupon(id="c1", code="SUMMER", value=Decimal("10"), ends_at=now - timedelta(days=1))
    snapshot = RulesSnapshot(coupons=(expired,), shipping_rates=(FLAT,))

    totals = price(_cart([_shoes()], coupon_code="summer"), snapshot, now)
    assert totals.coupon is None
    assert totals.discount_total == Decimal("0")
    assert totals.coupon_rejection == RejectionReason.EXPIRED
    assert totals.total == Decimal("205")

    totals = price(_cart([_shoes()], coupon_code="WINTER"), snapshot, now)
    assert totals.coupon_rejection == RejectionReason.NOT_FOUND


def test_coupon_code_normalization(now):
    coupon = Coupon(id="c1", code="Save10", value=Decimal("10"))
    snapshot = RulesSnapshot(coupons=(coupon,), shipping_rates=(FLAT,))

    totals = price(_cart([_shoes()], coupon_code="  SAVE10 "), snapshot, now)
    assert totals.coupon is not None
    assert totals.coupon_code == "Save10"
    assert totals.discount_total == Decimal("20")
    assert find_coupon("save10", [coupon]) is coupon

    blank = price(_cart([_shoes()], coupon_code=""), snapshot, now)
    assert blank.coupon_rejection is None
    spaces = price(_cart([_shoes()], coupon_code="   "), snapshot, now)
    assert spaces.coupon_rejection == RejectionReason.EMPTY_CODE


def test_coupon_not_applicable(now):
    coupon = Coupon(
        id="c1",
        code="HATS",
        value=Decimal("10"),
        scope=RuleScope.from_lists(Scope.SPECIFIC_CATEGORIES, included_category_ids=["hats"]),
    )
    totals = price(_cart([_shoes()], coupon_code="HATS"), RulesSnapshot(coupons=(coupon,), shipping_rates=(FLAT,)), now)
    assert totals.coupon_rejection == RejectionReason.NOT_APPLICABLE


def test_excluded_product_gets_no_discount(now):
    discount = Discount(
        id="d1",
        name="Everything",
        value=Decimal("50"),
        scope=RuleScope.from_lists(Scope.ALL, excluded_product_ids=["gift-card"]),
    )
    items = [
        LineItem(product_id="shirt", unit_price=Decimal("40")),
        LineItem(product_id="gift-card", unit_price=Decimal("60")),
    ]
    totals = price(_cart(items), RulesSnapshot(discounts=(discount,), shipping_rates=(FLAT,)), now)
    applied = totals.applied_discounts[0]
    assert applied.effect.basis == Decimal("40")
    assert totals.discount_total == Decimal("20")


def test_zero_rules_total_is_subtotal_plus_shipping(now):
    items = [_shoes(1), LineItem(product_id="p2", unit_price=Decimal("12.50"), quantity=3)]
    totals = price(_cart(items), RulesSnapshot(shipping_rates=(FLAT,)), now)
    assert totals.total == totals.subtotal + totals.shipping_cost
    assert totals.tax_breakdown == {}


def test_discounts_clamped_at_subtotal(now):
    rules = RulesSnapshot(
        coupons=(Coupon(id="c1", code="HALF", value=Decimal("60")),),
        discounts=(
            Discount(id="d1", name="Big", value=Decimal("50"), amount_kind=AmountKind.FIXED_AMOUNT),
            Discount(id="d2", name="Bigger", value=Decimal("70")),
        ),
        shipping_rates=(FLAT,),
    )
    totals = price(_cart([LineItem(product_id="p", unit_price=Decimal("80"))], "HALF"), rules, now)
    assert totals.discount_capped
    assert totals.discount_total == Decimal("80")
    assert totals.discounted_subtotal == Decimal("0")
    assert totals.total == Decimal("5")


def test_totals_never_negative(now):
    rng = random.Random(11)
    for _ in range(200):
        items = [
            LineItem(
                product_id=f"p{i}",
                unit_price=Decimal(rng.randint(0, 5000)) / 100,
                quantity=rng.randint(1, 4),
                category_id=rng.choice(["shoes", "hats", None]),
            )
            for i in range(rng.randint(1, 4))
        ]
        discounts = tuple(
            Discount(
                id=f"d{i}",
                name=f"d{i}",
                value=Decimal(rng.randint(1, 150)),
                amount_kind=rng.choice(list(AmountKind)),
            )
            for i in range(rng.randint(0, 3))
        )
        totals = price(_cart(items), RulesSnapshot(discounts=discounts, shipping_rates=(FLAT,)), now)
        assert totals.discounted_subtotal >= 0
        assert totals.total >= 0


def test_category_cascade_flag(now):
    snapshot = RulesSnapshot(
        discounts=(
            Discount(
                id="d1",
                name="Apparel",
                value=Decimal("10"),
                scope=RuleScope.from_lists(Scope.SPECIFIC_CATEGORIES, included_category_ids=["apparel"]),
            ),
        ),
        shipping_rates=(FLAT,),
        categories=(
            Category(id="apparel", name="Apparel"),
            Category(id="shoes", name="Shoes", parent_id="apparel"),
        ),
    )
    exact = price(_cart([_shoes()]), snapshot, now)
    assert exact.discount_total == Decimal("0")

    cascaded = price(_cart([_shoes()]), snapshot, now, PricingConfig(cascade_to_subcategories=True))
    assert cascaded.discount_total == Decimal("20")


def test_unshippable_has_no_total(now):
    snapshot = RulesSnapshot(shipping_rates=(FLAT,))
    totals = price(_cart([_shoes()], destination=Destination(country="FR")), snapshot, now)
    assert not totals.is_payable
    assert totals.shipping_rejection == RejectionReason.UNSHIPPABLE
    assert totals.shipping_cost is None
    assert totals.total is None
    assert totals.to_dict()["total"] is None


def test_region_rate_beats_country_rate():
    rates = [
        FLAT,
        ShippingRate(id="s2", name="California", amount=Decimal("9"), country="us", region="ca"),
        ShippingRate(id="s3", name="Texas", amount=Decimal("1"), country="US", region="TX"),
    ]
    chosen = select_shipping(US, rates, Decimal("50"))
    assert chosen.rate_id == "s2"
    assert chosen.region_specific
    assert [q.rate_id for q in shipping_options(US, rates, Decimal("50"))] == ["s2", "s1"]


def test_cheapest_then_input_order_breaks_ties():
    rates = [
        ShippingRate(id="a", name="A", amount=Decimal("7"), country="US"),
        ShippingRate(id="b", name="B", amount=Decimal("4"), country="US"),
        ShippingRate(id="c", name="C", amount=Decimal("4"), country="US"),
        ShippingRate(id="off", name="Off", amount=Decimal("1"), country="US", is_active=False),
    ]
    assert select_shipping(Destination(country="US"), rates, Decimal("10")).rate_id == "b"


def test_free_shipping_threshold_uses_pre_discount_subtotal(now):
    rate = ShippingRate(id="s1", name="Std", amount=Decimal("8"), country="US", free_shipping_threshold=Decimal("150"))
    snapshot = RulesSnapshot(
        discounts=(Discount(id="d1", name="Sale", value=Decimal("50")),),
        shipping_rates=(rate,),
    )
    totals = price(_cart([_shoes()]), snapshot, now)
    assert totals.shipping_cost == Decimal("0")
    assert totals.shipping.free_shipping_applied


def test_taxes_filtered_by_country_and_merged_by_code(now):
    snapshot = RulesSnapshot(
        taxes=(
            Tax(id="t1", code="gst", name="GST", value=Decimal("5")),
            Tax(id="t2", code="GST", value=Decimal("2"), tax_kind=TaxKind.FIXED, apply_per_item=False),
            Tax(id="t3", code="VAT", value=Decimal("20"), country="GB"),
        ),
        shipping_rates=(FLAT,),
    )
    totals = price(_cart([_shoes()]), snapshot, now)
    assert list(totals.tax_breakdown) == ["GST"]
    assert totals.tax_breakdown["GST"].amount == Decimal("12")
    assert totals.tax_total == Decimal("12")


def test_to_dict_rounds_half_up(now):
    snapshot = RulesSnapshot(
        taxes=(Tax(id="t1", code="ODD", value=Decimal("12.5")),),
        shipping_rates=(FLAT,),
    )
    totals = price(_cart([LineItem(product_id="p", unit_price=Decimal("0.20"))]), snapshot, now)
    assert totals.tax_total == Decimal("0.025")
    data = totals.to_dict()
    assert data["tax_total"] == "0.03"
    assert data["tax_breakdown"]["ODD"] == {
        "name": "ODD",
        "amount": "0.03",
        "rate": "12.5",
        "type": "percentage",
        "apply_per_item": True,
        "count": 1,
    }
