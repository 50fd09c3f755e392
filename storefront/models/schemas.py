"""Pydantic schemas for API request/response validation."""

import re
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from pydantic import BaseModel, Field, field_validator

from pricing.order_status import OrderStatus
from pricing.rules import Cart, Destination, LineItem

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# ---------------------------------------------------------------------------
# Cart / checkout requests
# ---------------------------------------------------------------------------

class CartLine(BaseModel):
    """A product reference. Price and category always come from the catalog."""

    product_id: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)


class DestinationIn(BaseModel):
    country: str = Field(..., min_length=2, max_length=64)
    region: Optional[str] = None


class QuoteRequest(BaseModel):
    items: list[CartLine] = Field(..., min_length=1)
    destination: DestinationIn
    coupon_code: Optional[str] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)

    def to_cart(self, items: Sequence[LineItem]) -> Cart:
        """Build the engine cart from catalog-priced ``items``."""
        return Cart(
            items=tuple(items),
            destination=Destination(
                country=self.destination.country,
                region=self.destination.region or None,
            ),
            coupon_code=self.coupon_code,
            currency=self.currency,
        )


class ShippingAddress(BaseModel):
    """Checkout address; required fields are stripped and must be non-empty."""

    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    address1: str = Field(..., min_length=1)
    address2: Optional[str] = None
    city: str = Field(..., min_length=1)
    zip: str = Field(..., min_length=1)
    country: str = Field(..., min_length=2)
    region: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    @field_validator("first_name", "last_name", "address1", "city", "zip", "country", mode="before")
    @classmethod
    def strip_required(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("email")
    @classmethod
    def check_email(cls, value: Optional[str]) -> Optional[str]:
        if value and not _EMAIL_RE.match(value):
            raise ValueError("Invalid email address")
        return value


class CheckoutRequest(QuoteRequest):
    customer_email: str
    shipping_address: ShippingAddress
    payment_method: str = Field("manual", pattern=r"^(manual|cod|card)$")

    @field_validator("customer_email")
    @classmethod
    def check_customer_email(cls, value: str) -> str:
        value = value.strip()
        if not _EMAIL_RE.match(value):
            raise ValueError("Invalid email address")
        return value


# ---------------------------------------------------------------------------
# Order management
# ---------------------------------------------------------------------------

class StatusUpdate(BaseModel):
    status: OrderStatus


class CommentCreate(BaseModel):
    message: str = Field(..., min_length=1)
    is_customer_visible: bool = False
    author_role: str = Field("owner", pattern=r"^(owner|customer)$")

    @field_validator("message", mode="before")
    @classmethod
    def strip_message(cls, value):
        return value.strip() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class CategoryRow(BaseModel):
    id: str
    name: str
    parent_id: Optional[str] = None
    depth: int


class DisplayPriceResponse(BaseModel):
    product_id: str
    final_price: Decimal
    compare_price: Decimal
    discount_label: Optional[str] = None
    has_discount: bool = False
    discount_pct: Optional[int] = None


class StatusResponse(BaseModel):
    order_id: str
    previous_status: str
    status: str
    is_terminal: bool
    sane: bool
    updated_at: Optional[datetime] = None
