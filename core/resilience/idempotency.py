"""Checkout idempotency store: prevent duplicate orders.

A shopper double-clicking "Place order", or a client retrying after a
timeout, sends the same Idempotency-Key. The first request claims the key;
a repeat gets the finished order back instead of creating another, and a
repeat that arrives while the first is still running is refused.

This guards order creation only. Coupon usage has its own data-layer guard
(the coupon_redemptions.order_id unique key).
"""
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubmissionState(str, Enum):
    PROCESSING = "processing"
    DONE = "done"


@dataclass
class Submission:
    """One claimed checkout key and, once finished, the order it produced."""

    key: str
    store_id: str
    expires_at: datetime
    state: SubmissionState = SubmissionState.PROCESSING
    order: dict[str, Any] | None = None
    claimed_at: datetime = field(default_factory=_utcnow)
    finished_at: datetime | None = None

    def expired(self, now: datetime | None = None) -> bool:
        return (now or _utcnow()) >= self.expires_at

    @property
    def replayable(self) -> bool:
        return self.state == SubmissionState.DONE and self.order is not None


def checkout_key(store_id: str, client_key: str) -> str:
    """Scope a client-supplied Idempotency-Key to its store.

    Two stores may legitimately receive the same client key.
    """
    payload = json.dumps([store_id, client_key.strip()])
    return hashlib.sha256(payload.encode()).hexdigest()[:32]


class IdempotencyStore:
    """Per-process map of checkout keys. Not shared between workers."""

    def __init__(self, ttl_seconds: int = 3600):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._submissions: dict[str, Submission] = {}

    def __len__(self) -> int:
        return len(self._submissions)

    def lookup(self, key: str) -> Submission | None:
        """The live submission for ``key``; expired ones are dropped."""
        submission = self._submissions.get(key)
        if submission is not None and submission.expired():
            self._submissions.pop(key, None)
            return None
        return submission

    def claim(self, key: str, store_id: str, ttl: timedelta | None = None) -> Submission | None:
        """Start processing ``key``. None means someone already holds it."""
        if self.lookup(key) is not None:
            return None
        submission = Submission(
            key=key,
            store_id=store_id,
            expires_at=_utcnow() + (ttl if ttl is not None else self.ttl),
        )
        self._submissions[key] = submission
        return submission

    def finish(self, key: str, order: dict[str, Any]) -> None:
        """Attach the placed order so repeats can replay it."""
        submission = self._submissions.get(key)
        if submission is None:
            return
        submission.state = SubmissionState.DONE
        submission.order = order
        submission.finished_at = _utcnow()

    def release(self, key: str) -> None:
        """Forget a failed attempt so the shopper can fix the cart and retry."""
        self._submissions.pop(key, None)

    def purge_expired(self) -> int:
        now = _utcnow()
        stale = [key for key, sub in self._submissions.items() if sub.expired(now)]
        for key in stale:
            del self._submissions[key]
        return len(stale)
