"""Exception hierarchy for the storefront service.

- StorefrontError: base class; user_message is safe to show a shopper
- Technical details go to the structured log, never to the user

Engine-level validation results (expired coupon, order below minimum) are
typed RejectionReason values, not exceptions. The checkout service raises
the classes below only when a rejection has to block the request.
"""

from __future__ import annotations

import structlog

from pricing.validity import REJECTION_MESSAGES, RejectionReason

logger = structlog.get_logger(__name__)


class StorefrontError(Exception):
    """Base exception for the storefront.

    Args:
        user_message: Safe message to display to the shopper or operator.
        internal_details: Optional technical details, logged only.
    """

    def __init__(
        self,
        user_message: str,
        *,
        internal_details: str | None = None,
    ) -> None:
        super().__init__(user_message)
        self.user_message = user_message

        if internal_details:
            logger.error(
                "storefront_error",
                error_type=self.__class__.__name__,
                user_message=user_message,
                internal_details=internal_details,
            )


class PricingConfigurationError(StorefrontError):
    """A stored rule cannot be turned into an engine rule (bad enum, bad number)."""


class UnshippableError(StorefrontError):
    """No shipping rate serves the destination; checkout must block."""

    reason = RejectionReason.UNSHIPPABLE

    def __init__(self, country: str, region: str | None = None) -> None:
        destination = f"{country}/{region}" if region else country
        super().__init__(
            REJECTION_MESSAGES[self.reason],
            internal_details=f"no active shipping rate for {destination}",
        )
        self.country = country
        self.region = region


class CouponRejectedError(StorefrontError):
    """A coupon that priced fine could not be honoured when the order was placed."""

    def __init__(self, reason: RejectionReason, code: str | None = None) -> None:
        super().__init__(REJECTION_MESSAGES[reason])
        self.reason = reason
        self.code = code


class CouponExhaustedError(CouponRejectedError):
    """The conditional usage increment matched no row: the cap was reached."""

    def __init__(self, coupon_id: str, code: str | None = None) -> None:
        super().__init__(RejectionReason.EXHAUSTED, code)
        self.coupon_id = coupon_id


class PaymentMethodNotAllowedError(StorefrontError):
    """Cash on delivery requested for a rate that does not accept it."""

    def __init__(self, payment_method: str, rate_name: str) -> None:
        super().__init__(f"{rate_name} does not accept {payment_method} payments.")
        self.payment_method = payment_method


class OrderNotFoundError(StorefrontError):
    def __init__(self, order_id: str) -> None:
        super().__init__("Order not found")
        self.order_id = order_id


class DuplicateSubmissionError(StorefrontError):
    """The same Idempotency-Key is still being processed by another request."""

    def __init__(self) -> None:
        super().__init__("This order is already being placed. Please wait.")


class ProductNotFoundError(StorefrontError):
    """A cart line names a product the store does not sell."""

    def __init__(self, product_id: str) -> None:
        super().__init__("A product in your cart is no longer available.")
        self.product_id = product_id
