"""Checkout and order-management service.

Glues the repositories to the pricing engine:

- quote: price the cart lines from the catalog against the store's rules
- place_order: quote, block on unshippable/COD problems, persist the
  order, then redeem the coupon with the order id as idempotency key
- transition_status / comments: operator-driven order management

The pricing itself stays pure; everything with a side effect lives here.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import structlog
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_session
from core.errors import (
    CouponExhaustedError,
    DuplicateSubmissionError,
    OrderNotFoundError,
    PaymentMethodNotAllowedError,
    ProductNotFoundError,
    UnshippableError,
)
from core.observability.logging import bind_request_context
from core.repository import as_uuid
from core.resilience.idempotency import IdempotencyStore, checkout_key
from pricing.aggregator import OrderTotals, price, shipping_options
from pricing.amounts import ZERO
from pricing.categories import build_tree, flatten
from pricing.config import StorefrontConfig
from pricing.display import DisplayPrice, best_display_price
from pricing.money import round_money
from pricing.order_status import OrderStatus, OrderWorkflow
from pricing.rules import Cart, Destination, LineItem
from storefront.models.schemas import CheckoutRequest, CommentCreate, QuoteRequest
from storefront.repository import (
    CouponRepository,
    OrderCommentRepository,
    OrderRepository,
    ProductRepository,
    RuleRepository,
)

logger = structlog.get_logger(__name__)

_config = StorefrontConfig.from_env()
_idempotency = IdempotencyStore(ttl_seconds=_config.idempotency_ttl_seconds)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _canonical_id(product_id: str) -> str:
    try:
        return str(as_uuid(product_id))
    except ValueError:
        return product_id


class CheckoutService:
    """Per-request service over one database session."""

    def __init__(
        self,
        session: AsyncSession,
        config: StorefrontConfig | None = None,
        idempotency: IdempotencyStore | None = None,
    ):
        self.session = session
        self.config = config or _config
        self.idempotency = idempotency if idempotency is not None else _idempotency
        self.rules = RuleRepository(session)
        self.coupons = CouponRepository(session)
        self.orders = OrderRepository(session)
        self.comments = OrderCommentRepository(session)
        self.products = ProductRepository(session)

    # -- Pricing --

    async def quote(
        self,
        store_id: str,
        request: QuoteRequest,
        now: datetime | None = None,
    ) -> OrderTotals:
        _, totals = await self._price(store_id, request, now or _now())
        return totals

    async def load_cart(self, store_id: str, request: QuoteRequest) -> Cart:
        """Price every line from the store's catalog.

        Only product ids and quantities are taken from the request; a product
        the store does not have raises ProductNotFoundError.
        """
        rows = await self.products.get_many(store_id, [line.product_id for line in request.items])
        items = []
        for line in request.items:
            row = rows.get(_canonical_id(line.product_id))
            if row is None:
                raise ProductNotFoundError(line.product_id)
            product = row.to_product()
            items.append(
                LineItem(
                    product_id=product.id,
                    unit_price=product.price,
                    quantity=line.quantity,
                    category_id=product.category_id,
                    name=product.name,
                )
            )
        return request.to_cart(items)

    async def _price(
        self,
        store_id: str,
        request: QuoteRequest,
        now: datetime,
    ) -> tuple[Cart, OrderTotals]:
        cart = await self.load_cart(store_id, request)
        snapshot = await self.rules.load_snapshot(store_id, request.coupon_code)
        return cart, price(cart, snapshot, now, self.config.pricing)

    async def shipping_options(
        self,
        store_id: str,
        country: str,
        region: str | None = None,
    ) -> list[dict[str, Any]]:
        """Candidate rates for a destination, ignoring any cart threshold."""
        snapshot = await self.rules.load_snapshot(store_id)
        places = self.config.pricing.money_places
        return [
            {
                "rate_id": q.rate_id,
                "name": q.name,
                "cost": str(round_money(q.cost, places)),
                "accepts_cod": q.accepts_cod,
                "region_specific": q.region_specific,
            }
            for q in shipping_options(
                Destination(country=country, region=region or None),
                snapshot.shipping_rates,
                subtotal=ZERO,
            )
        ]

    async def category_tree(self, store_id: str) -> list[dict[str, Any]]:
        snapshot = await self.rules.load_snapshot(store_id)
        return [
            {
                "id": row.category.id,
                "name": row.category.name,
                "parent_id": row.category.parent_id,
                "depth": row.depth,
            }
            for row in flatten(build_tree(snapshot.categories))
        ]

    async def display_price(
        self,
        store_id: str,
        product_id: str,
        now: datetime | None = None,
    ) -> DisplayPrice | None:
        row = await self.products.get_row(product_id, store_id)
        if row is None:
            return None
        snapshot = await self.rules.load_snapshot(store_id)
        return best_display_price(row.to_product(), snapshot.discounts, now or _now())

    # -- Checkout --

    async def place_order(
        self,
        store_id: str,
        request: CheckoutRequest,
        now: datetime | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        """Create an order from a cart.

        A repeated ``idempotency_key`` returns the order created by the
        first submission. Errors release the key so the shopper can retry.
        """
        key = checkout_key(store_id, idempotency_key) if idempotency_key else None
        if key and self.idempotency.claim(key, store_id) is None:
            submission = self.idempotency.lookup(key)
            if submission is None or not submission.replayable:
                raise DuplicateSubmissionError()
            logger.info("checkout_replayed", store_id=store_id, order_id=submission.order["id"])
            return submission.order

        try:
            order = await self._place_order(store_id, request, now or _now())
        except Exception:
            if key:
                self.idempotency.release(key)
            raise

        if key:
            self.idempotency.finish(key, order)
        return order

    async def _place_order(
        self,
        store_id: str,
        request: CheckoutRequest,
        now: datetime,
    ) -> dict[str, Any]:
        bind_request_context(store_id=store_id)
        cart, totals = await self._price(store_id, request, now)

        if not totals.is_payable:
            raise UnshippableError(request.destination.country, request.destination.region)
        if request.payment_method == "cod" and not totals.accepts_cod:
            raise PaymentMethodNotAllowedError("cash on delivery", totals.shipping.name)

        summary = totals.to_dict(self.config.pricing.money_places, self.config.pricing.rounding)
        address = request.shipping_address
        row = await self.orders.create_row(
            store_id,
            {
                "customer_email": request.customer_email,
                "customer_name": f"{address.first_name} {address.last_name}",
                "customer_phone": address.phone,
                "shipping_address": address.model_dump(),
                "items": [
                    {
                        "product_id": line.product_id,
                        "category_id": line.category_id,
                        "name": line.name,
                        "unit_price": str(line.unit_price),
                        "quantity": line.quantity,
                    }
                    for line in cart.items
                ],
                "currency": totals.currency,
                "subtotal": Decimal(summary["subtotal"]),
                "discount_total": Decimal(summary["discount_total"]),
                "shipping_cost": Decimal(summary["shipping_cost"]),
                "tax_total": Decimal(summary["tax_total"]),
                "tax_breakdown": summary["tax_breakdown"],
                "total": Decimal(summary["total"]),
                "coupon_id": as_uuid(totals.coupon.rule_id) if totals.coupon else None,
                "coupon_code": totals.coupon_code,
                "shipping_rate_id": as_uuid(totals.shipping.rate_id),
                "payment_method": request.payment_method,
                "status": OrderStatus.PENDING.value,
            },
        )
        order_id = str(row.id)
        bind_request_context(order_id=order_id)

        if totals.coupon is not None:
            await self.redeem_coupon(store_id, totals.coupon.rule_id, order_id)

        logger.info(
            "order_placed",
            total=summary["total"],
            coupon=totals.coupon_code,
            coupon_rejection=summary["coupon_rejection"],
        )
        return {**row.to_dict(), "totals": summary}

    async def redeem_coupon(self, store_id: str, coupon_id: str, order_id: str):
        """Consume a coupon use for an order; safe to retry with the same order."""
        try:
            return await self.coupons.redeem(store_id, coupon_id, order_id)
        except CouponExhaustedError:
            logger.warning("coupon_exhausted_at_checkout", coupon_id=coupon_id)
            raise

    # -- Order management --

    async def transition_status(
        self,
        store_id: str,
        order_id: str,
        status: OrderStatus,
        actor: str = "owner",
    ) -> dict[str, Any]:
        """Apply any operator-chosen status; unusual moves are logged, not refused."""
        row = await self.orders.get_row(order_id, store_id)
        if row is None:
            raise OrderNotFoundError(order_id)

        workflow = OrderWorkflow(order_id=order_id, current_status=OrderStatus(row.status))
        record = workflow.transition(status, actor=actor)
        if not record.sane:
            logger.warning(
                "unusual_status_transition",
                order_id=order_id,
                from_status=record.from_status,
                to_status=record.to_status,
            )

        row = await self.orders.set_status(store_id, order_id, status.value)
        return {
            "order_id": order_id,
            "previous_status": record.from_status,
            "status": record.to_status,
            "is_terminal": workflow.is_terminal,
            "sane": record.sane,
            "updated_at": row.updated_at,
        }

    async def add_comment(
        self,
        store_id: str,
        order_id: str,
        comment: CommentCreate,
    ) -> dict[str, Any]:
        if await self.orders.get_row(order_id, store_id) is None:
            raise OrderNotFoundError(order_id)
        return await self.comments.create(
            store_id,
            {
                "order_id": as_uuid(order_id),
                "message": comment.message,
                "is_customer_visible": comment.is_customer_visible,
                "author_role": comment.author_role,
            },
        )

    async def list_comments(
        self,
        store_id: str,
        order_id: str,
        customer_visible_only: bool = False,
    ) -> list[dict[str, Any]]:
        if await self.orders.get_row(order_id, store_id) is None:
            raise OrderNotFoundError(order_id)
        return await self.comments.list_for_order(store_id, order_id, customer_visible_only)

    async def get_order(self, store_id: str, order_id: str) -> dict[str, Any]:
        order = await self.orders.get(order_id, store_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order


# ---------------------------------------------------------------------------
# FastAPI dependency factory
# ---------------------------------------------------------------------------

def get_checkout_service(
    session: AsyncSession = Depends(get_session),
) -> CheckoutService:
    """FastAPI dependency for CheckoutService."""
    return CheckoutService(session)
