"""
Storefront resilience primitives.

- IdempotencyStore: collapse retried checkout submissions onto one order
"""
from core.resilience.idempotency import (
    IdempotencyStore,
    Submission,
    SubmissionState,
    checkout_key,
)

__all__ = [
    "IdempotencyStore",
    "Submission",
    "SubmissionState",
    "checkout_key",
]
