"""Rule and cart value types for the pricing engine.

Coupons, discounts, taxes and shipping rates share most of their shape but
not all of it, so each is its own frozen dataclass tagged with a RuleKind.
Anything carrying a ``scope`` satisfies the Scoped protocol, which is all
the eligibility matcher needs to know about a rule.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Protocol, Union


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Scope(str, Enum):
    """Which line items a rule can apply to."""

    ALL = "all"
    SPECIFIC_PRODUCTS = "specific_products"
    SPECIFIC_CATEGORIES = "specific_categories"


class AmountKind(str, Enum):
    """Amount semantics for coupons and discounts."""

    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class TaxKind(str, Enum):
    """Amount semantics for taxes."""

    PERCENTAGE = "percentage"
    FIXED = "fixed"


class RuleKind(str, Enum):
    COUPON = "coupon"
    DISCOUNT = "discount"
    TAX = "tax"
    SHIPPING = "shipping"


# ---------------------------------------------------------------------------
# Scope descriptor
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RuleScope:
    """Eligibility descriptor shared by every rule kind.

    The stored id sets are only meaningful for the scope that selects them.
    The ``effective_*`` properties return an empty set otherwise, so a stale
    product list left behind after switching a rule to ``all`` never leaks
    into matching.
    """

    scope: Scope = Scope.ALL
    included_product_ids: frozenset[str] = field(default_factory=frozenset)
    included_category_ids: frozenset[str] = field(default_factory=frozenset)
    excluded_product_ids: frozenset[str] = field(default_factory=frozenset)

    @property
    def effective_included_products(self) -> frozenset[str]:
        if self.scope == Scope.SPECIFIC_PRODUCTS:
            return self.included_product_ids
        return frozenset()

    @property
    def effective_included_categories(self) -> frozenset[str]:
        if self.scope == Scope.SPECIFIC_CATEGORIES:
            return self.included_category_ids
        return frozenset()

    @property
    def effective_excluded_products(self) -> frozenset[str]:
        if self.scope in (Scope.ALL, Scope.SPECIFIC_CATEGORIES):
            return self.excluded_product_ids
        return frozenset()

    @classmethod
    def from_lists(
        cls,
        scope: str | Scope = Scope.ALL,
        included_product_ids=None,
        included_category_ids=None,
        excluded_product_ids=None,
    ) -> "RuleScope":
        """Build a scope from raw id lists (JSON columns, request bodies)."""
        return cls(
            scope=Scope(scope),
            included_product_ids=frozenset(str(i) for i in included_product_ids or ()),
            included_category_ids=frozenset(str(i) for i in included_category_ids or ()),
            excluded_product_ids=frozenset(str(i) for i in excluded_product_ids or ()),
        )


class Scoped(Protocol):
    """Anything the eligibility matcher can evaluate."""

    scope: RuleScope


# ---------------------------------------------------------------------------
# Rule variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Coupon:
    """A code-activated reduction. At most one applies per order."""

    kind: ClassVar[RuleKind] = RuleKind.COUPON

    id: str
    code: str
    value: Decimal
    amount_kind: AmountKind = AmountKind.PERCENTAGE
    name: str = ""
    scope: RuleScope = field(default_factory=RuleScope)
    is_active: bool = True
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    min_order_value: Decimal | None = None
    usage_limit: int | None = None
    usage_count: int = 0


@dataclass(frozen=True)
class Discount:
    """An automatic reduction. Every valid discount applies."""

    kind: ClassVar[RuleKind] = RuleKind.DISCOUNT

    id: str
    name: str
    value: Decimal
    amount_kind: AmountKind = AmountKind.PERCENTAGE
    scope: RuleScope = field(default_factory=RuleScope)
    is_active: bool = True
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    min_order_value: Decimal | None = None


@dataclass(frozen=True)
class Tax:
    """A tax line itemized on the receipt under its code."""

    kind: ClassVar[RuleKind] = RuleKind.TAX

    id: str
    code: str
    value: Decimal
    tax_kind: TaxKind = TaxKind.PERCENTAGE
    apply_per_item: bool = True
    name: str = ""
    scope: RuleScope = field(default_factory=RuleScope)
    country: str | None = None  # None = every destination
    is_active: bool = True
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    min_order_value: Decimal | None = None


@dataclass(frozen=True)
class ShippingRate:
    """A flat rate for one country, optionally narrowed to a region."""

    kind: ClassVar[RuleKind] = RuleKind.SHIPPING

    id: str
    name: str
    amount: Decimal
    country: str
    region: str | None = None
    accepts_cod: bool = True
    is_active: bool = True
    free_shipping_threshold: Decimal | None = None


Rule = Union[Coupon, Discount, Tax, ShippingRate]


# ---------------------------------------------------------------------------
# Catalog and cart
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Category:
    id: str
    name: str
    parent_id: str | None = None


@dataclass(frozen=True)
class Product:
    id: str
    price: Decimal
    category_id: str | None = None
    compare_price: Decimal | None = None
    name: str = ""


@dataclass(frozen=True)
class LineItem:
    """One cart line. Quantity weights per-item taxes and line totals."""

    product_id: str
    unit_price: Decimal
    quantity: int = 1
    category_id: str | None = None
    name: str = ""

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class Destination:
    country: str
    region: str | None = None


@dataclass(frozen=True)
class Cart:
    items: tuple[LineItem, ...]
    destination: Destination
    coupon_code: str | None = None
    currency: str | None = None

    @property
    def subtotal(self) -> Decimal:
        return sum((item.line_total for item in self.items), Decimal("0"))


@dataclass(frozen=True)
class RulesSnapshot:
    """Every rule collection a store had at quote time."""

    coupons: tuple[Coupon, ...] = ()
    discounts: tuple[Discount, ...] = ()
    taxes: tuple[Tax, ...] = ()
    shipping_rates: tuple[ShippingRate, ...] = ()
    categories: tuple[Category, ...] = ()
