"""Storefront API router: checkout pricing and order management.

- Quote and checkout endpoints backed by the pricing engine
- Shipping options and category tree for checkout / admin screens
- Product-page display price
- Order status changes, comment threads and receipts
- Store isolation via middleware
- Service injection via FastAPI Depends
"""

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from api.middleware import get_current_store
from core.engine.template_engine import TemplateEngine
from core.errors import (
    CouponExhaustedError,
    CouponRejectedError,
    DuplicateSubmissionError,
    OrderNotFoundError,
    PaymentMethodNotAllowedError,
    PricingConfigurationError,
    ProductNotFoundError,
    UnshippableError,
)
from storefront.models.schemas import (
    CategoryRow,
    CheckoutRequest,
    CommentCreate,
    DisplayPriceResponse,
    QuoteRequest,
    StatusResponse,
    StatusUpdate,
)
from storefront.service import CheckoutService, get_checkout_service

router = APIRouter()


def _raise_http(exc: Exception) -> None:
    """Translate storefront errors to HTTP responses."""
    if isinstance(exc, OrderNotFoundError):
        raise HTTPException(status_code=404, detail=exc.user_message) from exc
    if isinstance(exc, DuplicateSubmissionError):
        raise HTTPException(status_code=409, detail=exc.user_message) from exc
    if isinstance(exc, CouponExhaustedError):
        raise HTTPException(
            status_code=409,
            detail={"message": exc.user_message, "reason": exc.reason.value},
        ) from exc
    if isinstance(exc, (UnshippableError, CouponRejectedError)):
        raise HTTPException(
            status_code=422,
            detail={"message": exc.user_message, "reason": exc.reason.value},
        ) from exc
    if isinstance(exc, ProductNotFoundError):
        raise HTTPException(
            status_code=422,
            detail={"message": exc.user_message, "product_id": exc.product_id},
        ) from exc
    if isinstance(exc, PaymentMethodNotAllowedError):
        raise HTTPException(status_code=422, detail=exc.user_message) from exc
    if isinstance(exc, PricingConfigurationError):
        raise HTTPException(status_code=500, detail=exc.user_message) from exc
    raise exc


# ============================================================================
# Checkout
# ============================================================================

@router.post("/checkout/quote")
async def quote(
    request: QuoteRequest,
    service: CheckoutService = Depends(get_checkout_service),
):
    """Price a cart without creating an order.

    Coupon and shipping problems come back as typed reasons in the body
    (``coupon_rejection``, ``shipping_rejection``) rather than as errors.
    """
    store_id = get_current_store()
    try:
        totals = await service.quote(store_id, request)
    except (ProductNotFoundError, PricingConfigurationError) as exc:
        _raise_http(exc)
    pricing = service.config.pricing
    return totals.to_dict(pricing.money_places, pricing.rounding)


@router.post("/checkout", status_code=201)
async def checkout(
    request: CheckoutRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    service: CheckoutService = Depends(get_checkout_service),
):
    """Place an order. Blocks when the destination is unshippable."""
    store_id = get_current_store()
    try:
        return await service.place_order(store_id, request, idempotency_key=idempotency_key)
    except (
        UnshippableError,
        CouponRejectedError,
        DuplicateSubmissionError,
        PaymentMethodNotAllowedError,
        PricingConfigurationError,
        ProductNotFoundError,
    ) as exc:
        _raise_http(exc)


@router.get("/shipping/options")
async def list_shipping_options(
    country: str = Query(..., min_length=2),
    region: Optional[str] = None,
    service: CheckoutService = Depends(get_checkout_service),
):
    """Rates serving a destination, most specific first."""
    store_id = get_current_store()
    options = await service.shipping_options(store_id, country, region)
    return {"data": options, "count": len(options), "shippable": bool(options)}


# ============================================================================
# Catalog
# ============================================================================

@router.get("/categories/tree", response_model=list[CategoryRow])
async def category_tree(
    service: CheckoutService = Depends(get_checkout_service),
):
    """Categories in pre-order with nesting depth, for indented lists."""
    return await service.category_tree(get_current_store())


@router.get("/products/{product_id}/price", response_model=DisplayPriceResponse)
async def product_price(
    product_id: str,
    service: CheckoutService = Depends(get_checkout_service),
):
    """Product-page price with the best unconditional discount applied."""
    display = await service.display_price(get_current_store(), product_id)
    if display is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return DisplayPriceResponse(product_id=product_id, **asdict(display))


# ============================================================================
# Orders
# ============================================================================

@router.patch("/orders/{order_id}/status", response_model=StatusResponse)
async def update_status(
    order_id: str,
    request: StatusUpdate,
    service: CheckoutService = Depends(get_checkout_service),
):
    """Set any status. Unusual transitions are flagged with ``sane: false``."""
    try:
        return await service.transition_status(get_current_store(), order_id, request.status)
    except OrderNotFoundError as exc:
        _raise_http(exc)


@router.get("/orders/{order_id}/comments")
async def list_comments(
    order_id: str,
    customer_view: bool = False,
    service: CheckoutService = Depends(get_checkout_service),
):
    """Comment thread, oldest first. ``customer_view`` hides internal notes."""
    try:
        comments = await service.list_comments(get_current_store(), order_id, customer_view)
    except OrderNotFoundError as exc:
        _raise_http(exc)
    return {"data": comments, "count": len(comments)}


@router.post("/orders/{order_id}/comments", status_code=201)
async def add_comment(
    order_id: str,
    request: CommentCreate,
    service: CheckoutService = Depends(get_checkout_service),
):
    """Append a comment to an order."""
    try:
        return await service.add_comment(get_current_store(), order_id, request)
    except OrderNotFoundError as exc:
        _raise_http(exc)


@router.get("/orders/{order_id}/receipt")
async def receipt(
    order_id: str,
    service: CheckoutService = Depends(get_checkout_service),
):
    """Markdown receipt with itemized taxes."""
    try:
        order = await service.get_order(get_current_store(), order_id)
    except OrderNotFoundError as exc:
        _raise_http(exc)
    return {"order_id": order_id, "markdown": TemplateEngine.render("receipt", order)}
