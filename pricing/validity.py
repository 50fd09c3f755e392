"""Rule validity gate.

Checks the activation window, the active flag, the minimum order value and
(coupons only) the usage cap. The checks are independent and any single
failure invalidates the rule; there is no partial application.

Like every rule in this package the gate is a pure function:
(rule, context, now) -> RuleResult.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pricing.rules import Coupon, Rule


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

class RejectionReason(str, Enum):
    """Typed reasons a rule (or a quote) was turned down."""

    INACTIVE = "inactive"
    NOT_STARTED = "not_started"
    EXPIRED = "expired"
    BELOW_MINIMUM = "below_minimum"
    EXHAUSTED = "exhausted"
    EMPTY_CODE = "empty_code"
    NOT_FOUND = "not_found"
    NOT_APPLICABLE = "not_applicable"
    UNSHIPPABLE = "unshippable"


REJECTION_MESSAGES: dict[RejectionReason, str] = {
    RejectionReason.INACTIVE: "This offer is no longer active.",
    RejectionReason.NOT_STARTED: "This offer is not yet valid.",
    RejectionReason.EXPIRED: "This offer has expired.",
    RejectionReason.BELOW_MINIMUM: "Your order is below the minimum for this offer.",
    RejectionReason.EXHAUSTED: "This coupon has reached its usage limit.",
    RejectionReason.EMPTY_CODE: "Please enter a coupon code.",
    RejectionReason.NOT_FOUND: "Invalid coupon code.",
    RejectionReason.NOT_APPLICABLE: "This coupon does not apply to the items in your cart.",
    RejectionReason.UNSHIPPABLE: "We do not ship to this destination.",
}


@dataclass
class RuleResult:
    """Outcome of a single gate evaluation."""

    passed: bool
    rule_name: str
    message: str
    reasons: list[RejectionReason] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def reason(self) -> RejectionReason | None:
        """The first failing check, or None when the rule passed."""
        return self.reasons[0] if self.reasons else None


@dataclass(frozen=True)
class OrderContext:
    """What the gate needs to know about the order being priced."""

    pre_discount_subtotal: Decimal


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------

def check_validity(rule: Rule, context: OrderContext, now: datetime) -> RuleResult:
    """Run every gate check and collect the failures.

    Example::

        result = check_validity(coupon, OrderContext(Decimal("80")), now)
        if not result.passed:
            show_error(REJECTION_MESSAGES[result.reason])
    """
    reasons: list[RejectionReason] = []

    if not rule.is_active:
        reasons.append(RejectionReason.INACTIVE)

    starts_at = getattr(rule, "starts_at", None)
    ends_at = getattr(rule, "ends_at", None)
    if starts_at is not None and now < starts_at:
        reasons.append(RejectionReason.NOT_STARTED)
    if ends_at is not None and now > ends_at:
        reasons.append(RejectionReason.EXPIRED)

    min_order = getattr(rule, "min_order_value", None)
    if min_order is not None and min_order > 0 and context.pre_discount_subtotal < min_order:
        reasons.append(RejectionReason.BELOW_MINIMUM)

    if isinstance(rule, Coupon):
        if rule.usage_limit is not None and rule.usage_count >= rule.usage_limit:
            reasons.append(RejectionReason.EXHAUSTED)

    name = getattr(rule, "code", None) or getattr(rule, "name", "") or rule.id
    passed = not reasons
    return RuleResult(
        passed=passed,
        rule_name=f"{rule.kind.value}:{name}",
        message="Valid" if passed else "; ".join(REJECTION_MESSAGES[r] for r in reasons),
        reasons=reasons,
        details={
            "pre_discount_subtotal": str(context.pre_discount_subtotal),
            "min_order_value": str(min_order) if min_order is not None else None,
        },
    )


def is_valid(rule: Rule, context: OrderContext, now: datetime) -> bool:
    return check_validity(rule, context, now).passed
