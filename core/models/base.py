"""Base model and mixins for all SQLAlchemy models.

Provides:
- Base: Declarative base class for all models
- StoreMixin: Adds store_id, UUID primary key, and timestamps

Every storefront table is owned by exactly one store. The store_id column
is indexed because nearly every read is "rows where store_id = X".
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, String, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base for all storefront models."""
    pass


class StoreMixin:
    """Mixin providing multi-store isolation and standard audit columns.

    Adds:
    - id: UUID primary key (auto-generated)
    - store_id: Indexed string for store isolation
    - created_at: Timestamp set on insert
    - updated_at: Timestamp updated on every change

    Timestamps are set client-side (microsecond precision) so rows created
    in the same second still sort in insertion order.
    """

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    store_id: Mapped[str] = mapped_column(
        String(64),
        index=True,
        nullable=False,
        default="default",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )
