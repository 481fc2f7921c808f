"""Tests for placing orders: atomic commit, stock, coupons, idempotency and reads."""

import asyncio
import re
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from fabricstore.core.exceptions import ValidationFailed
from fabricstore.models.order import Order, OrderItem, OrderStatusHistory
from fabricstore.services.coupon_service import CouponService
from fabricstore.services.inventory_service import InventoryService, ProductSnapshot
from fabricstore.services.order_service import OrderService


def item(product, quantity) -> dict:
    return {"product_id": str(product.id), "quantity": str(quantity)}


async def count_rows(session_factory, model) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar()


@pytest.mark.usefixtures("scenario_settings")
class TestCreateOrder:
    async def test_scenario_a_commits_order_and_decrements_stock(
        self, db, make_product, get_product, order_create, session_factory
    ):
        product = await make_product(name="Cotton Voile", sku="CV-01", price=Decimal("100"))

        placement = await OrderService(db).create_order("user-1", order_create([item(product, 2)]))

        assert placement.totals.subtotal == Decimal("200.00")
        assert placement.totals.shipping_cost == Decimal("50.00")
        assert placement.totals.discount == Decimal("0.00")
        assert placement.totals.total == Decimal("250.00")
        assert placement.coupon_code is None
        assert placement.duplicate is False
        assert (await get_product(product.id)).stock_quantity == Decimal("8")

        async with session_factory() as session:
            order = await session.get(Order, placement.order_id)
            assert order.status == "pending"
            assert order.payment_status == "pending"
            assert order.shipping_city == "Surat"
            assert order.total == order.subtotal + order.shipping_cost - order.discount

            items = (await session.execute(
                select(OrderItem).where(OrderItem.order_id == order.id)
            )).scalars().all()
            assert len(items) == 1
            assert items[0].product_name == "Cotton Voile"
            assert items[0].product_sku == "CV-01"
            assert items[0].price == Decimal("100.00")
            assert items[0].total == Decimal("200.00")

            history = (await session.execute(
                select(OrderStatusHistory).where(OrderStatusHistory.order_id == order.id)
            )).scalars().all()
            assert [(h.from_status, h.to_status) for h in history] == [(None, "pending")]

    async def test_order_number_format(self, db, make_product, order_create):
        product = await make_product()
        placement = await OrderService(db).create_order("user-1", order_create([item(product, 1)]))
        assert re.fullmatch(r"NT-\d{8}-[0-9A-F]{8}", placement.order_number)

    async def test_coupon_consumed_exactly_once(
        self, db, make_product, make_coupon, get_coupon, order_create
    ):
        product = await make_product(price=Decimal("100"))
        coupon = await make_coupon(code="SAVE10", max_discount=Decimal("50"), usage_count=2)

        placement = await OrderService(db).create_order(
            "user-1", order_create([item(product, 6)], coupon_code=" save10 ")
        )

        assert placement.coupon_code == "SAVE10"
        assert placement.totals.discount == Decimal("50.00")
        assert placement.totals.total == Decimal("550.00")
        assert (await get_coupon(coupon.id)).usage_count == 3

    async def test_backorder_stock_floored_at_zero(self, db, make_product, get_product, order_create):
        product = await make_product(stock_quantity=Decimal("1"), allow_backorder=True)
        await OrderService(db).create_order("user-1", order_create([item(product, 3)]))
        assert (await get_product(product.id)).stock_quantity == Decimal("0")

    async def test_untracked_stock_untouched(self, db, make_product, get_product, order_create):
        product = await make_product(stock_quantity=Decimal("1"), track_quantity=False)
        await OrderService(db).create_order("user-1", order_create([item(product, 4)]))
        assert (await get_product(product.id)).stock_quantity == Decimal("1")

    async def test_disabled_payment_method(self, db, make_product, order_create, session_factory):
        product = await make_product()
        with pytest.raises(ValidationFailed) as exc:
            await OrderService(db).create_order(
                "user-1", order_create([item(product, 1)], payment_method="online")
            )
        assert "not available" in exc.value.message
        assert await count_rows(session_factory, Order) == 0

    async def test_validation_failure_writes_nothing(
        self, db, make_product, get_product, order_create, session_factory
    ):
        product = await make_product(stock_quantity=Decimal("2"))
        with pytest.raises(ValidationFailed):
            await OrderService(db).create_order("user-1", order_create([item(product, 3)]))

        assert await count_rows(session_factory, Order) == 0
        assert (await get_product(product.id)).stock_quantity == Decimal("2")


@pytest.mark.usefixtures("scenario_settings")
class TestRollback:
    async def test_late_coupon_failure_rolls_back_everything(
        self, db, make_product, make_coupon, get_product, get_coupon, order_create,
        session_factory, monkeypatch
    ):
        product = await make_product(stock_quantity=Decimal("10"))
        coupon = await make_coupon(code="LAST")

        async def limit_hit(self, coupon_id):
            raise ValidationFailed("This coupon has reached its usage limit")

        monkeypatch.setattr(CouponService, "consume", limit_hit)

        with pytest.raises(ValidationFailed):
            await OrderService(db).create_order(
                "user-1", order_create([item(product, 6)], coupon_code="LAST")
            )

        assert await count_rows(session_factory, Order) == 0
        assert await count_rows(session_factory, OrderItem) == 0
        assert await count_rows(session_factory, OrderStatusHistory) == 0
        assert (await get_product(product.id)).stock_quantity == Decimal("10")
        assert (await get_coupon(coupon.id)).usage_count == 0

    async def test_stale_snapshot_caught_by_conditional_decrement(
        self, db, make_product, get_product, order_create, session_factory, monkeypatch
    ):
        """Pricing saw plenty of stock but the row only holds 2 by commit time."""
        product = await make_product(name="Last Roll", stock_quantity=Decimal("2"))
        real_snapshot = InventoryService.get_snapshot

        async def stale_snapshot(self, product_ids):
            snapshot = await real_snapshot(self, product_ids)
            stale = snapshot[product.id]
            snapshot[product.id] = ProductSnapshot(
                **{**stale.__dict__, "stock_quantity": Decimal("50")}
            )
            return snapshot

        monkeypatch.setattr(InventoryService, "get_snapshot", stale_snapshot)

        with pytest.raises(ValidationFailed) as exc:
            await OrderService(db).create_order("user-1", order_create([item(product, 5)]))

        assert "Last Roll" in exc.value.message
        assert await count_rows(session_factory, Order) == 0
        assert (await get_product(product.id)).stock_quantity == Decimal("2")


@pytest.mark.usefixtures("scenario_settings")
class TestConcurrency:
    async def test_two_orders_for_last_units_only_one_succeeds(
        self, make_product, get_product, order_create, session_factory
    ):
        product = await make_product(stock_quantity=Decimal("5"))

        async def place(user_id):
            async with session_factory() as session:
                return await OrderService(session).create_order(
                    user_id, order_create([item(product, 3)])
                )

        results = await asyncio.gather(place("user-1"), place("user-2"), return_exceptions=True)

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], ValidationFailed)
        assert (await get_product(product.id)).stock_quantity == Decimal("2")
        assert await count_rows(session_factory, Order) == 1

    async def test_coupon_usage_never_exceeds_limit(
        self, make_product, make_coupon, get_coupon, order_create, session_factory
    ):
        product = await make_product(stock_quantity=Decimal("100"))
        coupon = await make_coupon(code="ONCE", usage_limit=1)

        async def place(user_id):
            async with session_factory() as session:
                return await OrderService(session).create_order(
                    user_id, order_create([item(product, 1)], coupon_code="ONCE")
                )

        results = await asyncio.gather(place("user-1"), place("user-2"), return_exceptions=True)

        assert sum(1 for r in results if not isinstance(r, Exception)) == 1
        assert (await get_coupon(coupon.id)).usage_count == 1


@pytest.mark.usefixtures("scenario_settings")
class TestIdempotency:
    async def test_same_key_returns_original_order(
        self, db, make_product, get_product, order_create, session_factory
    ):
        product = await make_product(stock_quantity=Decimal("10"))
        data = order_create([item(product, 2)], idempotency_key="checkout-abc")
        service = OrderService(db)

        first = await service.create_order("user-1", data)
        second = await service.create_order("user-1", data)

        assert second.duplicate is True
        assert second.order_id == first.order_id
        assert second.order_number == first.order_number
        assert second.totals.total == first.totals.total
        assert await count_rows(session_factory, Order) == 1
        assert (await get_product(product.id)).stock_quantity == Decimal("8")

    async def test_header_key_overrides_body(self, db, make_product, order_create):
        product = await make_product()
        service = OrderService(db)

        first = await service.create_order(
            "user-1", order_create([item(product, 1)]), idempotency_key="hdr-1"
        )
        again = await service.create_order(
            "user-1", order_create([item(product, 1)], idempotency_key="body-1"), idempotency_key="hdr-1"
        )

        assert again.duplicate is True
        assert again.order_id == first.order_id

    async def test_keys_are_scoped_per_user(self, db, make_product, order_create, session_factory):
        product = await make_product()
        service = OrderService(db)

        await service.create_order("user-1", order_create([item(product, 1)], idempotency_key="k"))
        other = await service.create_order("user-2", order_create([item(product, 1)], idempotency_key="k"))

        assert other.duplicate is False
        assert await count_rows(session_factory, Order) == 2


@pytest.mark.usefixtures("scenario_settings")
class TestReads:
    async def test_get_order_visibility(self, db, make_product, order_create):
        product = await make_product()
        service = OrderService(db)
        placement = await service.create_order("user-1", order_create([item(product, 1)]))

        own = await service.get_order(placement.order_id, user_id="user-1")
        assert own is not None
        assert len(own.items) == 1
        assert len(own.status_history) == 1

        assert await service.get_order(placement.order_id, user_id="user-2") is None
        assert await service.get_order(placement.order_id, user_id="admin-1", is_admin=True) is not None

    async def test_get_by_number(self, db, make_product, order_create):
        product = await make_product()
        service = OrderService(db)
        placement = await service.create_order("user-1", order_create([item(product, 1)]))

        order = await service.get_order_by_number(placement.order_number.lower())
        assert order.id == placement.order_id
        assert await service.get_order_by_number("NT-00000000-DEADBEEF") is None

    async def test_cursor_pagination_and_count(self, db, make_product, order_create):
        product = await make_product(stock_quantity=Decimal("100"))
        service = OrderService(db)
        placed = []
        for _ in range(5):
            placed.append(await service.create_order("user-1", order_create([item(product, 1)])))
        await service.create_order("user-2", order_create([item(product, 1)]))

        assert await service.count_user_orders("user-1") == 5

        seen = []
        cursor = None
        while True:
            page, cursor = await service.list_user_orders("user-1", limit=2, cursor=cursor)
            seen.extend(o.id for o in page)
            if cursor is None:
                break

        assert len(seen) == 5
        assert set(seen) == {p.order_id for p in placed}

    async def test_admin_list_filters_by_status(self, db, make_product, order_create):
        product = await make_product(stock_quantity=Decimal("100"))
        service = OrderService(db)
        for _ in range(3):
            await service.create_order("user-1", order_create([item(product, 1)]))

        orders, total = await service.list_orders(page=1, size=2)
        assert total == 3
        assert len(orders) == 2

        _, shipped_total = await service.list_orders(status="shipped")
        assert shipped_total == 0
