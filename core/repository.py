"""Async repository base for database access.

Generic CRUD with store isolation, pagination and filters. Storefront
repositories subclass it to add domain queries.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.models.base import Base

# ---------------------------------------------------------------------------
# Type variable for model classes
# ---------------------------------------------------------------------------

ModelT = TypeVar("ModelT", bound=Base)

_PROTECTED = ("id", "store_id", "created_at")


def as_uuid(value: str | UUID) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


# ---------------------------------------------------------------------------
# Base repository
# ---------------------------------------------------------------------------

class BaseRepository(Generic[ModelT]):
    """Generic async repository with CRUD + pagination + store isolation.

    Subclass and set `model` to your SQLAlchemy model::

        class DiscountRepository(BaseRepository[Discount]):
            model = Discount

            async def list_active(self, store_id: str):
                stmt = select(self.model).where(
                    self.model.store_id == store_id,
                    self.model.is_active.is_(True),
                )
                result = await self.session.execute(stmt)
                return [r.to_dict() for r in result.scalars().all()]
    """

    model: type[ModelT]

    def __init__(self, session: AsyncSession):
        self.session = session

    # -- List with pagination --

    async def list(
        self,
        store_id: str,
        page: int = 1,
        limit: int = 50,
        filters: dict[str, Any] | None = None,
    ) -> tuple[list[dict], int]:
        """List rows with pagination and optional equality filters.

        Returns (items, total_count).
        """
        stmt = select(self.model).where(self.model.store_id == store_id)
        count_stmt = select(func.count()).select_from(self.model).where(
            self.model.store_id == store_id
        )

        if filters:
            for col_name, value in filters.items():
                if hasattr(self.model, col_name) and value is not None:
                    stmt = stmt.where(getattr(self.model, col_name) == value)
                    count_stmt = count_stmt.where(getattr(self.model, col_name) == value)

        offset = (page - 1) * limit
        stmt = stmt.order_by(self.model.created_at).offset(offset).limit(limit)

        result = await self.session.execute(stmt)
        items = [row.to_dict() for row in result.scalars().all()]

        count_result = await self.session.execute(count_stmt)
        total = count_result.scalar() or 0

        return items, total

    async def all_rows(self, store_id: str) -> list[ModelT]:
        """Every row for a store, in insertion order."""
        stmt = (
            select(self.model)
            .where(self.model.store_id == store_id)
            .order_by(self.model.created_at, self.model.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # -- Get by ID --

    async def get_row(self, item_id: str | UUID, store_id: str) -> ModelT | None:
        try:
            key = as_uuid(item_id)
        except ValueError:
            return None
        stmt = select(self.model).where(
            self.model.id == key,
            self.model.store_id == store_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, item_id: str | UUID, store_id: str) -> dict | None:
        """Get a single row by ID with store isolation."""
        row = await self.get_row(item_id, store_id)
        return row.to_dict() if row else None

    # -- Create --

    async def create(self, store_id: str, data: dict[str, Any]) -> dict:
        row = await self.create_row(store_id, data)
        return row.to_dict()

    async def create_row(self, store_id: str, data: dict[str, Any]) -> ModelT:
        item = self.model(store_id=store_id, **data)
        self.session.add(item)
        await self.session.flush()
        await self.session.refresh(item)
        return item

    # -- Update --

    async def update(
        self, item_id: str | UUID, store_id: str, data: dict[str, Any]
    ) -> dict | None:
        """Update an existing row. Returns None if not found."""
        item = await self.get_row(item_id, store_id)
        if not item:
            return None

        for key, value in data.items():
            if hasattr(item, key) and key not in _PROTECTED:
                setattr(item, key, value)

        await self.session.flush()
        await self.session.refresh(item)
        return item.to_dict()

    # -- Delete --

    async def delete(self, item_id: str | UUID, store_id: str) -> bool:
        """Delete a row. Returns True if deleted, False if not found."""
        item = await self.get_row(item_id, store_id)
        if not item:
            return False

        await self.session.delete(item)
        await self.session.flush()
        return True
