"""Storefront repositories: async database access with store isolation.

Extends BaseRepository with catalog reads, rule-snapshot loading for the
pricing engine, the atomic coupon redemption, and order/comment writes.
"""

from enum import Enum
from uuid import UUID

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import CouponExhaustedError, PricingConfigurationError
from core.repository import BaseRepository, as_uuid
from pricing.aggregator import normalize_code
from pricing.rules import RulesSnapshot
from storefront.models.db_models import (
    Category,
    Coupon,
    CouponRedemption,
    Discount,
    Order,
    OrderComment,
    Product,
    ShippingRate,
    Tax,
)

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class CategoryRepository(BaseRepository[Category]):
    model = Category


class ProductRepository(BaseRepository[Product]):
    model = Product

    async def get_many(self, store_id: str, product_ids: list[str]) -> dict[str, Product]:
        """Rows for the given ids keyed by id string. Unknown or malformed ids are absent."""
        keys = set()
        for product_id in product_ids:
            try:
                keys.add(as_uuid(product_id))
            except ValueError:
                continue
        if not keys:
            return {}

        stmt = select(Product).where(Product.store_id == store_id, Product.id.in_(keys))
        result = await self.session.execute(stmt)
        return {str(row.id): row for row in result.scalars().all()}


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

class DiscountRepository(BaseRepository[Discount]):
    model = Discount


class TaxRepository(BaseRepository[Tax]):
    model = Tax


class ShippingRateRepository(BaseRepository[ShippingRate]):
    model = ShippingRate


class RedemptionOutcome(str, Enum):
    REDEEMED = "redeemed"
    ALREADY_REDEEMED = "already_redeemed"


class CouponRepository(BaseRepository[Coupon]):
    """Coupon lookup and the usage counter.

    The counter is only ever changed through ``redeem``, a conditional
    UPDATE evaluated by the database, so two checkouts racing for the
    last use cannot both succeed.
    """

    model = Coupon

    async def find_by_code(self, store_id: str, code: str) -> Coupon | None:
        """Case-insensitive, trimmed code lookup."""
        stmt = select(Coupon).where(
            Coupon.store_id == store_id,
            func.upper(func.trim(Coupon.code)) == normalize_code(code),
        ).order_by(Coupon.created_at).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def redeem(
        self,
        store_id: str,
        coupon_id: str | UUID,
        order_id: str | UUID,
    ) -> RedemptionOutcome:
        """Consume one use of a coupon for an order, at most once per order.

        Raises CouponExhaustedError when the usage limit is already reached.
        The caller's transaction must be rolled back on any error so the
        increment and the redemption row commit together or not at all.
        """
        coupon_key = as_uuid(coupon_id)
        order_key = as_uuid(order_id)

        existing = await self.session.execute(
            select(CouponRedemption.id).where(CouponRedemption.order_id == order_key)
        )
        if existing.scalar_one_or_none() is not None:
            logger.info("coupon_redemption_replayed", coupon_id=str(coupon_key), order_id=str(order_key))
            return RedemptionOutcome.ALREADY_REDEEMED

        stmt = (
            update(Coupon)
            .where(
                Coupon.id == coupon_key,
                Coupon.store_id == store_id,
                or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit),
            )
            .values(usage_count=Coupon.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            raise CouponExhaustedError(str(coupon_key))

        self.session.add(
            CouponRedemption(store_id=store_id, coupon_id=coupon_key, order_id=order_key)
        )
        try:
            await self.session.flush()
        except IntegrityError:
            # A concurrent retry of the same order won the unique key; the
            # caller rolls back, which also undoes our increment.
            logger.warning("coupon_redemption_conflict", order_id=str(order_key))
            raise

        logger.info("coupon_redeemed", coupon_id=str(coupon_key), order_id=str(order_key))
        return RedemptionOutcome.REDEEMED

    async def usage_count(self, store_id: str, coupon_id: str | UUID) -> int:
        stmt = select(Coupon.usage_count).where(
            Coupon.id == as_uuid(coupon_id),
            Coupon.store_id == store_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()


class RuleRepository:
    """Loads everything the pricing engine needs for one store."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.coupons = CouponRepository(session)
        self.discounts = DiscountRepository(session)
        self.taxes = TaxRepository(session)
        self.shipping_rates = ShippingRateRepository(session)
        self.categories = CategoryRepository(session)

    async def load_snapshot(self, store_id: str, coupon_code: str | None = None) -> RulesSnapshot:
        """Build an immutable RulesSnapshot.

        Only the coupon matching ``coupon_code`` is loaded; other coupons
        are irrelevant to a quote.
        """
        coupon_rows = []
        if coupon_code and coupon_code.strip():
            found = await self.coupons.find_by_code(store_id, coupon_code)
            if found is not None:
                coupon_rows.append(found)

        try:
            return RulesSnapshot(
                coupons=tuple(row.to_rule() for row in coupon_rows),
                discounts=tuple(row.to_rule() for row in await self.discounts.all_rows(store_id)),
                taxes=tuple(row.to_rule() for row in await self.taxes.all_rows(store_id)),
                shipping_rates=tuple(
                    row.to_rule() for row in await self.shipping_rates.all_rows(store_id)
                ),
                categories=tuple(
                    row.to_category() for row in await self.categories.all_rows(store_id)
                ),
            )
        except ValueError as exc:
            raise PricingConfigurationError(
                "Store pricing rules are misconfigured",
                internal_details=f"store {store_id}: {exc}",
            ) from exc


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

class OrderRepository(BaseRepository[Order]):
    """Orders are immutable apart from status changes and comments."""

    model = Order

    async def set_status(self, store_id: str, order_id: str | UUID, status: str) -> Order | None:
        order = await self.get_row(order_id, store_id)
        if order is None:
            return None
        order.status = status
        await self.session.flush()
        await self.session.refresh(order)
        return order


class OrderCommentRepository(BaseRepository[OrderComment]):
    model = OrderComment

    async def list_for_order(
        self,
        store_id: str,
        order_id: str | UUID,
        customer_visible_only: bool = False,
    ) -> list[dict]:
        """Comment thread, oldest first."""
        stmt = select(OrderComment).where(
            OrderComment.store_id == store_id,
            OrderComment.order_id == as_uuid(order_id),
        )
        if customer_visible_only:
            stmt = stmt.where(OrderComment.is_customer_visible.is_(True))
        stmt = stmt.order_by(OrderComment.created_at, OrderComment.id)

        result = await self.session.execute(stmt)
        return [row.to_dict() for row in result.scalars().all()]

