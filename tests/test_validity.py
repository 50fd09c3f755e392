"""Test the rule validity gate."""
from datetime import timedelta
from decimal import Decimal

from pricing.rules import Coupon, Discount, Tax
from pricing.validity import OrderContext, RejectionReason, check_validity, is_valid

CTX = OrderContext(pre_discount_subtotal=Decimal("100"))


def test_valid_coupon_passes(now):
    coupon = Coupon(id="c1", code="SAVE", value=Decimal("10"))
    result = check_validity(coupon, CTX, now)
    assert result.passed
    assert result.reason is None
    assert result.rule_name == "coupon:SAVE"


def test_inactive(now):
    discount = Discount(id="d1", name="Off", value=Decimal("5"), is_active=False)
    assert check_validity(discount, CTX, now).reason == RejectionReason.INACTIVE


def test_window_is_inclusive(now):
    coupon = Coupon(id="c1", code="EDGE", value=Decimal("10"), starts_at=now, ends_at=now)
    assert is_valid(coupon, CTX, now)


def test_not_started_and_expired(now):
    future = Coupon(id="c1", code="SOON", value=Decimal("10"), starts_at=now + timedelta(days=1))
    past = Coupon(id="c2", code="OLD", value=Decimal("10"), ends_at=now - timedelta(seconds=1))
    assert check_validity(future, CTX, now).reason == RejectionReason.NOT_STARTED
    assert check_validity(past, CTX, now).reason == RejectionReason.EXPIRED


def test_below_minimum(now):
    tax = Tax(id="t1", code="GST", value=Decimal("5"), min_order_value=Decimal("150"))
    result = check_validity(tax, CTX, now)
    assert result.reasons == [RejectionReason.BELOW_MINIMUM]

    zero_min = Tax(id="t2", code="GST", value=Decimal("5"), min_order_value=Decimal("0"))
    assert is_valid(zero_min, OrderContext(pre_discount_subtotal=Decimal("0")), now)


def test_exhausted_coupon(now):
    coupon = Coupon(id="c1", code="ONCE", value=Decimal("10"), usage_limit=1, usage_count=1)
    assert check_validity(coupon, CTX, now).reason == RejectionReason.EXHAUSTED


def test_all_failures_collected(now):
    coupon = Coupon(
        id="c1",
        code="BAD",
        value=Decimal("10"),
        is_active=False,
        ends_at=now - timedelta(days=1),
        min_order_value=Decimal("500"),
        usage_limit=0,
    )
    result = check_validity(coupon, CTX, now)
    assert not result.passed
    assert result.reasons == [
        RejectionReason.INACTIVE,
        RejectionReason.EXPIRED,
        RejectionReason.BELOW_MINIMUM,
        RejectionReason.EXHAUSTED,
    ]
    assert "expired" in result.message
