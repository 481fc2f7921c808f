"""Tests for cancellations, admin status changes and cancellation requests."""

from decimal import Decimal
import uuid

import pytest
from sqlalchemy import update

from fabricstore.core.exceptions import ResourceNotFound, ValidationFailed
from fabricstore.models.order import Order
from fabricstore.services import order_state_machine as sm
from fabricstore.services.order_lifecycle import OrderLifecycleService
from fabricstore.services.order_service import OrderService


pytestmark = pytest.mark.usefixtures("scenario_settings")


@pytest.fixture
def place(session_factory, order_create):
    """Place an order for a product and return its id."""
    async def _place(product, quantity=2, user_id="user-1") -> uuid.UUID:
        async with session_factory() as session:
            placement = await OrderService(session).create_order(
                user_id,
                order_create([{"product_id": str(product.id), "quantity": str(quantity)}]),
            )
            return placement.order_id

    return _place


@pytest.fixture
def set_order(session_factory):
    """Force order columns, e.g. to mark an order paid or shipped."""
    async def _set(order_id, **values):
        async with session_factory() as session:
            await session.execute(update(Order).where(Order.id == order_id).values(**values))
            await session.commit()

    return _set


@pytest.fixture
def lifecycle(session_factory):
    """Run one lifecycle call in its own session."""
    async def _run(method, *args, **kwargs):
        async with session_factory() as session:
            return await getattr(OrderLifecycleService(session), method)(*args, **kwargs)

    return _run


@pytest.fixture
def load_order(session_factory):
    async def _load(order_id) -> Order:
        async with session_factory() as session:
            return await OrderService(session).get_order(order_id, is_admin=True)

    return _load


class TestStateMachine:
    def test_forward_only(self):
        assert sm.can_transition(sm.PENDING, sm.SHIPPED)
        assert sm.can_transition(sm.SHIPPED, sm.DELIVERED)
        assert not sm.can_transition(sm.SHIPPED, sm.CONFIRMED)
        assert sm.can_transition(sm.DELIVERED, sm.CANCELLED)
        assert not sm.can_transition(sm.DELIVERED, sm.PROCESSING)

    def test_terminal_statuses_have_no_exits(self):
        for status in (sm.CANCELLED, sm.REFUNDED):
            assert sm.is_terminal(status)
            assert sm.get_allowed_transitions(status) == []

    def test_validate_transition_message(self):
        with pytest.raises(ValidationFailed) as exc:
            sm.validate_transition(sm.DELIVERED, sm.SHIPPED)
        assert "Cannot change order from 'delivered' to 'shipped'" in exc.value.message
        assert exc.value.details["allowed"] == [sm.CANCELLED, sm.REFUNDED]

    def test_cancellation_helpers(self):
        assert sm.can_self_cancel(sm.PENDING, "pending")
        assert not sm.can_self_cancel(sm.PENDING, "paid")
        assert not sm.can_self_cancel(sm.CONFIRMED, "pending")
        assert sm.can_request_cancellation(sm.SHIPPED, "paid")
        assert not sm.can_request_cancellation(sm.PENDING, "pending")
        assert not sm.can_request_cancellation(sm.CANCELLED, "paid")


class TestCustomerCancel:
    async def test_scenario_e_cancel_restores_stock(
        self, make_product, get_product, place, lifecycle, load_order
    ):
        product = await make_product(stock_quantity=Decimal("10"))
        order_id = await place(product, 2)
        assert (await get_product(product.id)).stock_quantity == Decimal("8")

        order = await lifecycle("cancel_order", "user-1", order_id)

        assert order.status == "cancelled"
        assert order.cancelled_at is not None
        assert (await get_product(product.id)).stock_quantity == Decimal("10")

        history = (await load_order(order_id)).status_history
        assert [(h.from_status, h.to_status) for h in history] == [
            (None, "pending"),
            ("pending", "cancelled"),
        ]
        assert history[-1].changed_by == "user-1"

    async def test_scenario_f_shipped_order_not_cancellable(
        self, make_product, get_product, place, set_order, lifecycle
    ):
        product = await make_product(stock_quantity=Decimal("10"))
        order_id = await place(product, 2)
        await set_order(order_id, status="shipped")

        with pytest.raises(ValidationFailed) as exc:
            await lifecycle("cancel_order", "user-1", order_id)

        assert exc.value.message == "Only pending orders can be cancelled"
        assert (await get_product(product.id)).stock_quantity == Decimal("8")

    async def test_paid_pending_order_needs_request(self, make_product, place, set_order, lifecycle):
        product = await make_product()
        order_id = await place(product, 1)
        await set_order(order_id, payment_status="paid")

        with pytest.raises(ValidationFailed) as exc:
            await lifecycle("cancel_order", "user-1", order_id)
        assert "request a cancellation" in exc.value.message

    async def test_other_users_order_is_not_found(self, make_product, place, lifecycle):
        product = await make_product()
        order_id = await place(product, 1, user_id="user-1")

        with pytest.raises(ResourceNotFound):
            await lifecycle("cancel_order", "user-2", order_id)

    async def test_cancel_twice(self, make_product, get_product, place, lifecycle):
        product = await make_product(stock_quantity=Decimal("10"))
        order_id = await place(product, 2)
        await lifecycle("cancel_order", "user-1", order_id)

        with pytest.raises(ValidationFailed):
            await lifecycle("cancel_order", "user-1", order_id)
        assert (await get_product(product.id)).stock_quantity == Decimal("10")

    async def test_untracked_stock_not_restored(self, make_product, get_product, place, lifecycle):
        product = await make_product(stock_quantity=Decimal("1"), track_quantity=False)
        order_id = await place(product, 3)

        await lifecycle("cancel_order", "user-1", order_id)

        assert (await get_product(product.id)).stock_quantity == Decimal("1")


class TestAdminStatusUpdate:
    async def test_shipping_and_delivery_stamps(self, make_product, place, lifecycle, load_order):
        product = await make_product()
        order_id = await place(product, 1)

        shipped = await lifecycle(
            "update_status", order_id, "shipped", tracking_number="AWB123", changed_by="admin-1"
        )
        assert shipped.status == "shipped"
        assert shipped.shipped_at is not None
        assert shipped.tracking_number == "AWB123"

        delivered = await lifecycle("update_status", order_id, "delivered", changed_by="admin-1")
        assert delivered.delivered_at is not None
        assert delivered.payment_status == "paid"

        history = (await load_order(order_id)).status_history
        assert [h.to_status for h in history] == ["pending", "shipped", "delivered"]
        assert history[-1].changed_by == "admin-1"

    async def test_same_status_only_sets_tracking(self, make_product, place, lifecycle, load_order):
        product = await make_product()
        order_id = await place(product, 1)

        order = await lifecycle("update_status", order_id, "pending", tracking_number="AWB9")

        assert order.tracking_number == "AWB9"
        assert len((await load_order(order_id)).status_history) == 1

    async def test_illegal_transition_rejected(self, make_product, place, set_order, lifecycle):
        product = await make_product()
        order_id = await place(product, 1)
        await set_order(order_id, status="delivered")

        with pytest.raises(ValidationFailed):
            await lifecycle("update_status", order_id, "shipped")

    async def test_terminal_orders_are_frozen(self, make_product, place, lifecycle):
        product = await make_product()
        order_id = await place(product, 1)
        await lifecycle("update_status", order_id, "cancelled", changed_by="admin-1")

        with pytest.raises(ValidationFailed) as exc:
            await lifecycle("update_status", order_id, "cancelled", tracking_number="AWB1")
        assert exc.value.message == "Order in 'cancelled' status cannot be modified"

    async def test_admin_cancel_restores_stock_and_refunds_payment(
        self, make_product, get_product, place, set_order, lifecycle
    ):
        product = await make_product(stock_quantity=Decimal("10"))
        order_id = await place(product, 4)
        await set_order(order_id, status="processing", payment_status="paid")

        order = await lifecycle("update_status", order_id, "cancelled", note="Out of dye lot")

        assert order.status == "cancelled"
        assert order.payment_status == "refunded"
        assert (await get_product(product.id)).stock_quantity == Decimal("10")

    async def test_refund_leaves_stock_alone(
        self, make_product, get_product, place, set_order, lifecycle
    ):
        product = await make_product(stock_quantity=Decimal("10"))
        order_id = await place(product, 2)
        await set_order(order_id, status="delivered", payment_status="paid")

        order = await lifecycle("update_status", order_id, "refunded")

        assert order.status == "refunded"
        assert order.payment_status == "refunded"
        assert (await get_product(product.id)).stock_quantity == Decimal("8")

    async def test_unknown_order(self, lifecycle):
        with pytest.raises(ResourceNotFound):
            await lifecycle("update_status", uuid.uuid4(), "shipped")


class TestCancellationRequests:
    async def test_requires_paid_order(self, make_product, place, lifecycle):
        product = await make_product()
        order_id = await place(product, 1)

        with pytest.raises(ValidationFailed) as exc:
            await lifecycle("request_cancellation", "user-1", order_id, "Changed my mind")
        assert "cancel the order directly" in exc.value.message

    async def test_terminal_order_rejected(self, make_product, place, set_order, lifecycle):
        product = await make_product()
        order_id = await place(product, 1)
        await set_order(order_id, status="refunded", payment_status="refunded")

        with pytest.raises(ValidationFailed) as exc:
            await lifecycle("request_cancellation", "user-1", order_id)
        assert exc.value.message == "Order is already refunded"

    async def test_one_request_per_order(self, make_product, place, set_order, lifecycle):
        product = await make_product()
        order_id = await place(product, 1)
        await set_order(order_id, payment_status="paid")

        request = await lifecycle("request_cancellation", "user-1", order_id, "Wrong colour")
        assert request.status == "pending"
        assert request.reason == "Wrong colour"

        with pytest.raises(ValidationFailed) as exc:
            await lifecycle("request_cancellation", "user-1", order_id)
        assert exc.value.message == "A cancellation request already exists for this order"

    async def test_approval_cancels_and_restores(
        self, make_product, get_product, place, set_order, lifecycle, load_order
    ):
        product = await make_product(stock_quantity=Decimal("10"))
        order_id = await place(product, 3)
        await set_order(order_id, status="confirmed", payment_status="paid")
        await lifecycle("request_cancellation", "user-1", order_id)

        request = await lifecycle(
            "resolve_cancellation_request", order_id, "approved", changed_by="admin-1"
        )

        assert request.status == "approved"
        assert request.resolved_at is not None
        order = await load_order(order_id)
        assert order.status == "cancelled"
        assert order.payment_status == "refunded"
        assert (await get_product(product.id)).stock_quantity == Decimal("10")

    async def test_rejection_leaves_order_alone(
        self, make_product, get_product, place, set_order, lifecycle, load_order
    ):
        product = await make_product(stock_quantity=Decimal("10"))
        order_id = await place(product, 3)
        await set_order(order_id, status="shipped", payment_status="paid")
        await lifecycle("request_cancellation", "user-1", order_id)

        request = await lifecycle("resolve_cancellation_request", order_id, "rejected")

        assert request.status == "rejected"
        order = await load_order(order_id)
        assert order.status == "shipped"
        assert order.payment_status == "paid"
        assert (await get_product(product.id)).stock_quantity == Decimal("7")

        with pytest.raises(ValidationFailed) as exc:
            await lifecycle("resolve_cancellation_request", order_id, "approved")
        assert exc.value.message == "Cancellation request is already rejected"

    async def test_missing_request(self, make_product, place, lifecycle):
        product = await make_product()
        order_id = await place(product, 1)

        with pytest.raises(ResourceNotFound) as exc:
            await lifecycle("resolve_cancellation_request", order_id, "approved")
        assert exc.value.message == "Cancellation request not found"

    async def test_delivered_order_request_approved(
        self, make_product, get_product, place, lifecycle, load_order
    ):
        product = await make_product(stock_quantity=Decimal("10"))
        order_id = await place(product, 3)
        delivered = await lifecycle("update_status", order_id, "delivered", changed_by="admin-1")
        assert delivered.payment_status == "paid"

        await lifecycle("request_cancellation", "user-1", order_id, "Fabric arrived torn")
        request = await lifecycle(
            "resolve_cancellation_request", order_id, "approved", changed_by="admin-1"
        )

        assert request.status == "approved"
        order = await load_order(order_id)
        assert order.status == "cancelled"
        assert order.payment_status == "refunded"
        assert [h.to_status for h in order.status_history] == ["pending", "delivered", "cancelled"]
        assert (await get_product(product.id)).stock_quantity == Decimal("10")

    async def test_approval_after_admin_cancel_restores_stock_once(
        self, make_product, get_product, place, lifecycle
    ):
        product = await make_product(stock_quantity=Decimal("10"))
        order_id = await place(product, 3)
        await lifecycle("update_status", order_id, "delivered")
        await lifecycle("request_cancellation", "user-1", order_id)
        await lifecycle("update_status", order_id, "cancelled", note="Cancelled at the counter")
        assert (await get_product(product.id)).stock_quantity == Decimal("10")

        with pytest.raises(ValidationFailed) as exc:
            await lifecycle("resolve_cancellation_request", order_id, "approved")

        assert exc.value.message == "Order is already cancelled"
        assert (await get_product(product.id)).stock_quantity == Decimal("10")
