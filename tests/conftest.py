"""Pytest fixtures for fabricstore tests."""

import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./fabricstore-test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

from fabricstore.core.security import create_access_token, ROLE_ADMIN
from fabricstore.database import build_engine, build_session_factory, get_db, init_db
from fabricstore.main import app
from fabricstore.models.coupon import Coupon
from fabricstore.models.product import Product
from fabricstore.schemas.order import OrderCreate
from fabricstore.services.settings_service import StoreSettingsService


CUSTOMER_ID = "user-1"
OTHER_CUSTOMER_ID = "user-2"
ADMIN_ID = "admin-1"

ADDRESS = {
    "name": "Asha Verma",
    "phone": "9876543210",
    "address_line1": "12 Loom Street",
    "address_line2": "Near Textile Market",
    "city": "Surat",
    "state": "Gujarat",
    "pincode": "395003",
}


@pytest.fixture
async def engine(tmp_path):
    """A fresh SQLite file database per test (separate connections per session)."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_product(session_factory):
    """Create a product; keyword arguments override the defaults."""
    async def _make(**overrides) -> Product:
        data = {
            "name": "Cotton Voile",
            "sku": None,
            "price": Decimal("100.00"),
            "stock_quantity": Decimal("10"),
            "min_order_quantity": Decimal("1"),
            "quantity_step": Decimal("1"),
            "unit": "meter",
            "track_quantity": True,
            "allow_backorder": False,
            "is_active": True,
        }
        data.update(overrides)
        async with session_factory() as session:
            product = Product(**data)
            session.add(product)
            await session.commit()
            return product

    return _make


@pytest.fixture
def make_coupon(session_factory):
    """Create a coupon valid from yesterday until next week unless overridden."""
    async def _make(**overrides) -> Coupon:
        now = datetime.now(timezone.utc)
        data = {
            "code": "SAVE10",
            "discount_type": "percentage",
            "discount_value": Decimal("10"),
            "usage_count": 0,
            "start_date": now - timedelta(days=1),
            "end_date": now + timedelta(days=7),
            "is_active": True,
        }
        data.update(overrides)
        async with session_factory() as session:
            coupon = Coupon(**data)
            session.add(coupon)
            await session.commit()
            return coupon

    return _make


@pytest.fixture
def store_settings(session_factory):
    """Write store settings rows, e.g. await store_settings(orderMinAmount="0")."""
    async def _set(**values):
        async with session_factory() as session:
            service = StoreSettingsService(session)
            for key, value in values.items():
                await service.set_value(key, str(value))

    return _set


@pytest.fixture
async def scenario_settings(store_settings):
    """minOrder 0, free shipping from 500, shipping rate 50."""
    await store_settings(
        orderMinAmount="0",
        shippingFreeThreshold="500",
        shippingBaseRate="50",
    )


@pytest.fixture
def get_product(session_factory):
    async def _get(product_id) -> Product:
        async with session_factory() as session:
            return await session.get(Product, product_id)

    return _get


@pytest.fixture
def get_coupon(session_factory):
    async def _get(coupon_id) -> Coupon:
        async with session_factory() as session:
            return await session.get(Coupon, coupon_id)

    return _get


@pytest.fixture
def order_payload():
    """JSON body for placing an order."""
    def _payload(items, **overrides) -> dict:
        payload = {
            "items": items,
            "shipping_address": dict(ADDRESS),
            "payment_method": "cod",
        }
        payload.update(overrides)
        return payload

    return _payload


@pytest.fixture
def order_create(order_payload):
    """Validated OrderCreate for calling the service directly."""
    def _create(items, **overrides) -> OrderCreate:
        return OrderCreate.model_validate(order_payload(items, **overrides))

    return _create


@pytest.fixture
def auth_headers():
    def _headers(user_id: str = CUSTOMER_ID, role: str = "customer") -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id, role=role)}"}

    return _headers


@pytest.fixture
def admin_headers(auth_headers):
    return auth_headers(ADMIN_ID, ROLE_ADMIN)


@pytest.fixture
async def client(session_factory):
    """HTTP client against the app with get_db bound to the test database."""
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
