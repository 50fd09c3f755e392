"""Shared fixtures: a fixed clock and a throwaway SQLite database."""
from datetime import datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core.database import init_db
from storefront.models.db_models import Category, Coupon, Discount, Product, ShippingRate, Tax


@pytest.fixture
def now():
    return datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite so concurrent sessions see each other's commits."""
    db_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'shop.db'}",
        connect_args={"timeout": 10},
    )
    await init_db(bind=db_engine)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as db_session:
        yield db_session
        await db_session.rollback()


@pytest_asyncio.fixture
async def seeded(session_factory):
    """One store with the reference rules: shoe sale, VAT, flat US shipping, a coupon."""
    store = "shop-1"
    async with session_factory() as db:
        apparel = Category(store_id=store, name="Apparel")
        db.add(apparel)
        await db.flush()
        shoes = Category(store_id=store, name="Shoes", parent_id=apparel.id)
        db.add(shoes)
        await db.flush()

        boots = Product(store_id=store, name="Boots", price=Decimal("100"), category_id=shoes.id)
        coupon = Coupon(store_id=store, code="SAVE10", name="Ten off", value=Decimal("10"), usage_limit=2)
        rate = ShippingRate(store_id=store, name="US flat", country="US", amount=Decimal("5"), accepts_cod=False)
        db.add_all([
            boots,
            coupon,
            rate,
            Discount(
                store_id=store,
                name="Shoe sale",
                value=Decimal("10"),
                applies_to="specific_categories",
                included_category_ids=[str(shoes.id)],
            ),
            Tax(store_id=store, code="VAT", name="VAT", value=Decimal("5")),
        ])
        await db.commit()

        return {
            "store": store,
            "apparel": str(apparel.id),
            "shoes": str(shoes.id),
            "boots": str(boots.id),
            "coupon": str(coupon.id),
            "rate": str(rate.id),
        }
