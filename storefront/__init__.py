"""Storefront: the persistent, HTTP-facing side of the pricing engine.

- SQLAlchemy models with StoreMixin
- Async repositories, including the atomic coupon redemption
- Checkout service: quote, place order, order management
- FastAPI router under /api/storefront
- Receipt renderer for the template engine
"""
