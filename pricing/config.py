"""Dataclass-based configuration for pricing and the storefront service.

Frozen dataclasses with sensible defaults, overridable from environment
variables. The two behaviors with more than one defensible reading, the
category subtree cascade and the tax base, are explicit flags here.
"""

import os
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Pricing engine
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PricingConfig:
    """Rule-engine switches.

    - cascade_to_subcategories: a category-scoped rule also matches products
      filed under descendant categories. Off by default (exact match).
    - tax_on_discounted_subtotal: percentage taxes are charged on the
      post-discount value of their lines. On by default.
    """

    cascade_to_subcategories: bool = False
    tax_on_discounted_subtotal: bool = True
    currency: str = "USD"
    money_places: int = 2
    rounding: str = ROUND_HALF_UP


# ---------------------------------------------------------------------------
# Service config
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StorefrontConfig:
    """Complete configuration for the storefront service.

    Usage::

        config = StorefrontConfig.from_env()
        totals = price(cart, snapshot, now, config.pricing)
    """

    pricing: PricingConfig = field(default_factory=PricingConfig)

    idempotency_ttl_seconds: int = 3600
    log_level: str = "INFO"
    log_json: bool = True
    default_store_id: str = "default"

    @classmethod
    def default(cls) -> "StorefrontConfig":
        """Create config with all defaults."""
        return cls()

    @classmethod
    def from_env(cls, prefix: str = "STOREFRONT_") -> "StorefrontConfig":
        """Create config from environment variables.

        Example: STOREFRONT_CASCADE_TO_SUBCATEGORIES=true
        """
        pricing = PricingConfig(
            cascade_to_subcategories=_env_bool(f"{prefix}CASCADE_TO_SUBCATEGORIES", False),
            tax_on_discounted_subtotal=_env_bool(f"{prefix}TAX_ON_DISCOUNTED_SUBTOTAL", True),
            currency=os.getenv(f"{prefix}CURRENCY", "USD").upper(),
        )

        overrides = {}
        ttl = os.getenv(f"{prefix}IDEMPOTENCY_TTL_SECONDS")
        if ttl:
            overrides["idempotency_ttl_seconds"] = int(ttl)
        level = os.getenv(f"{prefix}LOG_LEVEL")
        if level:
            overrides["log_level"] = level.upper()
        overrides["log_json"] = _env_bool(f"{prefix}LOG_JSON", True)
        store = os.getenv(f"{prefix}DEFAULT_STORE_ID")
        if store:
            overrides["default_store_id"] = store

        return cls(pricing=pricing, **overrides)
