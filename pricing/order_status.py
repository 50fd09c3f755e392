"""Order status state machine.

Every transition is operator-initiated and none is rejected: the admin UI
offers the full status list at all times. SUGGESTED_TRANSITIONS describes
the usual lifecycle so callers can flag unusual moves, but it is a hint,
not an invariant.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# State definitions
# ---------------------------------------------------------------------------

class OrderStatus(str, Enum):
    """Order lifecycle states."""

    PENDING = "pending"
    PAYMENT_PENDING = "payment-pending"
    IN_PROGRESS = "in-progress"
    SHIPPED = "shipped"
    DISPATCHED = "dispatched"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
)


# ---------------------------------------------------------------------------
# Suggested transitions
# ---------------------------------------------------------------------------

_EXITS = [OrderStatus.CANCELLED, OrderStatus.REFUNDED]

# {current_status: [usual_next_statuses]}
SUGGESTED_TRANSITIONS: dict[OrderStatus, list[OrderStatus]] = {
    OrderStatus.PENDING: [OrderStatus.PAYMENT_PENDING, *_EXITS],
    OrderStatus.PAYMENT_PENDING: [OrderStatus.IN_PROGRESS, *_EXITS],
    OrderStatus.IN_PROGRESS: [OrderStatus.SHIPPED, OrderStatus.DISPATCHED, *_EXITS],
    OrderStatus.SHIPPED: [OrderStatus.COMPLETED, *_EXITS],
    OrderStatus.DISPATCHED: [OrderStatus.COMPLETED, *_EXITS],
    OrderStatus.COMPLETED: [],  # terminal
    OrderStatus.CANCELLED: [],  # terminal
    OrderStatus.REFUNDED: [],   # terminal
}


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

@dataclass
class StatusTransition:
    """Record of a single status change."""

    from_status: str
    to_status: str
    timestamp: datetime
    actor: str = "owner"
    sane: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class OrderWorkflow:
    """Status tracking for one order.

    Usage::

        wf = OrderWorkflow(order_id="ORD-123", current_status=OrderStatus.PENDING)
        wf.transition(OrderStatus.IN_PROGRESS, actor="owner")
        wf.history[-1].sane   # False: payment-pending was skipped
    """

    order_id: str
    current_status: OrderStatus = OrderStatus.PENDING
    history: list[StatusTransition] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def is_sane(self, to_status: OrderStatus) -> bool:
        """Whether the move follows the usual lifecycle."""
        return to_status in SUGGESTED_TRANSITIONS.get(self.current_status, [])

    def transition(
        self,
        to_status: OrderStatus,
        actor: str = "owner",
        metadata: dict[str, Any] | None = None,
    ) -> StatusTransition:
        """Move to ``to_status`` unconditionally and record the change."""
        record = StatusTransition(
            from_status=self.current_status.value,
            to_status=to_status.value,
            timestamp=datetime.now(timezone.utc),
            actor=actor,
            sane=self.is_sane(to_status),
            metadata=metadata or {},
        )
        self.history.append(record)
        self.current_status = to_status
        return record

    @property
    def is_terminal(self) -> bool:
        return self.current_status in TERMINAL_STATUSES

    @property
    def transition_count(self) -> int:
        return len(self.history)
