"""Storefront API: FastAPI entry point.

Registers middleware, routers, and lifecycle hooks. The storefront router
is mounted under /api/storefront/.
"""

import os
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import StoreMiddleware
from core.database import close_db
from core.observability.logging import configure_logging
from pricing.config import StorefrontConfig

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:3001"
).split(",")

config = StorefrontConfig.from_env()
logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown hooks."""
    configure_logging(config.log_level, config.log_json)
    # Startup: import renderer to auto-register with template engine
    import storefront.renderer  # noqa: F401

    logger.info(
        "storefront_api_started",
        cascade_to_subcategories=config.pricing.cascade_to_subcategories,
        tax_on_discounted_subtotal=config.pricing.tax_on_discounted_subtotal,
    )
    yield
    await close_db()
    logger.info("storefront_api_stopped")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Storefront",
    description="Checkout pricing engine: coupons, discounts, taxes, shipping and order management",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Multi-store middleware
app.add_middleware(StoreMiddleware, default_store=config.default_store_id)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

from storefront.router import router as storefront_router  # noqa: E402

app.include_router(storefront_router, prefix="/api/storefront", tags=["Storefront"])


# ---------------------------------------------------------------------------
# Health & root
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    return {"status": "healthy", "version": "0.1.0"}


@app.get("/")
async def root():
    return {
        "name": "Storefront",
        "version": "0.1.0",
        "docs": "/docs",
        "currency": config.pricing.currency,
    }
