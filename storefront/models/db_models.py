"""SQLAlchemy models for the storefront.

Each model inherits from Base and uses StoreMixin for multi-store isolation.
``to_dict()`` is the serialisation interface used by repositories and the
router. Rule tables also expose ``to_rule()``, which converts a row into the
immutable value the pricing engine consumes.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.models.base import Base, StoreMixin
from pricing import rules
from pricing.money import to_decimal


def _aware(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; every stored timestamp is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _iso(value: datetime | None) -> str | None:
    value = _aware(value)
    return value.isoformat() if value else None


def _money(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def _opt_decimal(value) -> Decimal | None:
    return to_decimal(value) if value is not None else None


class ScopedRuleMixin:
    """Columns shared by every scoped pricing rule."""

    applies_to: Mapped[str] = mapped_column(String(32), nullable=False, default="all")
    included_product_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    included_category_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    excluded_product_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def rule_scope(self) -> rules.RuleScope:
        return rules.RuleScope.from_lists(
            self.applies_to,
            self.included_product_ids,
            self.included_category_ids,
            self.excluded_product_ids,
        )

    def scope_dict(self) -> dict:
        return {
            "applies_to": self.applies_to,
            "included_product_ids": list(self.included_product_ids or []),
            "included_category_ids": list(self.included_category_ids or []),
            "excluded_product_ids": list(self.excluded_product_ids or []),
            "is_active": self.is_active,
        }


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class Category(StoreMixin, Base):
    """A catalog category; parent_id forms a forest."""

    __tablename__ = "categories"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("categories.id"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_category(self) -> rules.Category:
        return rules.Category(
            id=str(self.id),
            name=self.name,
            parent_id=str(self.parent_id) if self.parent_id else None,
        )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "store_id": self.store_id,
            "name": self.name,
            "parent_id": str(self.parent_id) if self.parent_id else None,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
        }


class Product(StoreMixin, Base):
    """A sellable product filed under at most one category."""

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(String(500), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    compare_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    category_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("categories.id"), nullable=True, index=True
    )

    def to_product(self) -> rules.Product:
        return rules.Product(
            id=str(self.id),
            price=to_decimal(self.price),
            category_id=str(self.category_id) if self.category_id else None,
            compare_price=_opt_decimal(self.compare_price),
            name=self.name,
        )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "store_id": self.store_id,
            "name": self.name,
            "price": _money(self.price),
            "compare_price": _money(self.compare_price),
            "category_id": str(self.category_id) if self.category_id else None,
            "created_at": _iso(self.created_at),
        }


# ---------------------------------------------------------------------------
# Pricing rules
# ---------------------------------------------------------------------------

class Coupon(ScopedRuleMixin, StoreMixin, Base):
    """A code-activated reduction with an optional global usage cap."""

    __tablename__ = "coupons"

    code: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    discount_type: Mapped[str] = mapped_column(String(32), nullable=False, default="percentage")
    value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    min_order_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    usage_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def to_rule(self) -> rules.Coupon:
        return rules.Coupon(
            id=str(self.id),
            code=self.code,
            name=self.name,
            value=to_decimal(self.value),
            amount_kind=rules.AmountKind(self.discount_type),
            scope=self.rule_scope(),
            is_active=self.is_active,
            starts_at=_aware(self.starts_at),
            ends_at=_aware(self.ends_at),
            min_order_value=_opt_decimal(self.min_order_value),
            usage_limit=self.usage_limit,
            usage_count=self.usage_count or 0,
        )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "store_id": self.store_id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "discount_type": self.discount_type,
            "value": _money(self.value),
            "starts_at": _iso(self.starts_at),
            "ends_at": _iso(self.ends_at),
            "min_order_value": _money(self.min_order_value),
            "usage_limit": self.usage_limit,
            "usage_count": self.usage_count,
            **self.scope_dict(),
        }


class Discount(ScopedRuleMixin, StoreMixin, Base):
    """An automatic reduction; all valid discounts stack."""

    __tablename__ = "discounts"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    discount_type: Mapped[str] = mapped_column(String(32), nullable=False, default="percentage")
    value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    min_order_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    def to_rule(self) -> rules.Discount:
        return rules.Discount(
            id=str(self.id),
            name=self.name,
            value=to_decimal(self.value),
            amount_kind=rules.AmountKind(self.discount_type),
            scope=self.rule_scope(),
            is_active=self.is_active,
            starts_at=_aware(self.starts_at),
            ends_at=_aware(self.ends_at),
            min_order_value=_opt_decimal(self.min_order_value),
        )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "store_id": self.store_id,
            "name": self.name,
            "discount_type": self.discount_type,
            "value": _money(self.value),
            "starts_at": _iso(self.starts_at),
            "ends_at": _iso(self.ends_at),
            "min_order_value": _money(self.min_order_value),
            **self.scope_dict(),
        }


class Tax(ScopedRuleMixin, StoreMixin, Base):
    """A tax itemized on receipts under its code."""

    __tablename__ = "taxes"

    code: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    country: Mapped[str | None] = mapped_column(String(64), nullable=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="percentage")
    value: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    apply_per_item: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_rule(self) -> rules.Tax:
        return rules.Tax(
            id=str(self.id),
            code=self.code,
            name=self.name,
            value=to_decimal(self.value),
            tax_kind=rules.TaxKind(self.type),
            apply_per_item=self.apply_per_item,
            scope=self.rule_scope(),
            country=self.country,
            is_active=self.is_active,
        )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "store_id": self.store_id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "country": self.country,
            "type": self.type,
            "value": _money(self.value),
            "apply_per_item": self.apply_per_item,
            **self.scope_dict(),
        }


class ShippingRate(StoreMixin, Base):
    """A flat shipping rate for a country, optionally one region of it."""

    __tablename__ = "shipping_rates"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    country: Mapped[str] = mapped_column(String(8), nullable=False, index=True)
    region: Mapped[str | None] = mapped_column(String(100), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    min_order_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    accepts_cod: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_rule(self) -> rules.ShippingRate:
        # min_order_value on a rate is the free-shipping threshold
        return rules.ShippingRate(
            id=str(self.id),
            name=self.name,
            amount=to_decimal(self.amount),
            country=self.country,
            region=self.region or None,
            accepts_cod=self.accepts_cod,
            is_active=self.is_active,
            free_shipping_threshold=_opt_decimal(self.min_order_value),
        )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "store_id": self.store_id,
            "name": self.name,
            "country": self.country,
            "region": self.region,
            "amount": _money(self.amount),
            "min_order_value": _money(self.min_order_value),
            "accepts_cod": self.accepts_cod,
            "is_active": self.is_active,
        }


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

class Order(StoreMixin, Base):
    """A placed order. Totals are frozen at checkout."""

    __tablename__ = "orders"

    customer_email: Mapped[str] = mapped_column(String(320), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    shipping_address: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="USD")
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    tax_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    tax_breakdown: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    coupon_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    coupon_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    shipping_rate_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False, default="manual")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending", index=True)

    comments: Mapped[list["OrderComment"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", order_by="OrderComment.created_at"
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "store_id": self.store_id,
            "customer_email": self.customer_email,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "shipping_address": self.shipping_address,
            "items": self.items,
            "currency": self.currency,
            "subtotal": _money(self.subtotal),
            "discount_total": _money(self.discount_total),
            "shipping_cost": _money(self.shipping_cost),
            "tax_total": _money(self.tax_total),
            "tax_breakdown": self.tax_breakdown,
            "total": _money(self.total),
            "coupon_code": self.coupon_code,
            "shipping_rate_id": str(self.shipping_rate_id) if self.shipping_rate_id else None,
            "payment_method": self.payment_method,
            "status": self.status,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class OrderComment(StoreMixin, Base):
    """Append-only note on an order, optionally visible to the customer."""

    __tablename__ = "order_comments"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("orders.id"), nullable=False, index=True
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_customer_visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    author_role: Mapped[str] = mapped_column(String(32), nullable=False, default="owner")

    order: Mapped["Order"] = relationship(back_populates="comments")

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "order_id": str(self.order_id),
            "message": self.message,
            "is_customer_visible": self.is_customer_visible,
            "author_role": self.author_role,
            "created_at": _iso(self.created_at),
        }


class CouponRedemption(StoreMixin, Base):
    """One row per order that consumed a coupon use.

    The unique order_id is the idempotency key for the usage counter.
    """

    __tablename__ = "coupon_redemptions"

    coupon_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("coupons.id"), nullable=False, index=True
    )
    order_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, unique=True)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "coupon_id": str(self.coupon_id),
            "order_id": str(self.order_id),
            "created_at": _iso(self.created_at),
        }
