"""
Order lifecycle: cancellations, admin status updates and cancellation
requests.

Every path into ``cancelled`` goes through ``_cancel`` so tracked stock is
always restored exactly once.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from fabricstore.core.exceptions import ValidationFailed, ResourceNotFound, CommitFailed
from fabricstore.models.order import (
    Order,
    OrderStatusHistory,
    PaymentStatus,
    CancellationRequest,
    CancellationRequestStatus,
)
from fabricstore.models.product import Product
from fabricstore.services.inventory_service import InventoryService
from fabricstore.services import order_state_machine as sm

logger = logging.getLogger(__name__)


class OrderLifecycleService:
    """Status transitions with compensating stock restoration."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.inventory = InventoryService(db)

    async def _load(self, order_id: uuid.UUID) -> Optional[Order]:
        result = await self.db.execute(
            select(Order)
            .options(
                selectinload(Order.items),
                selectinload(Order.cancellation_request),
            )
            .where(Order.id == order_id)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def _load_owned(self, user_id: str, order_id: uuid.UUID) -> Order:
        order = await self._load(order_id)
        # Other users' orders are reported as missing
        if order is None or order.user_id != user_id:
            raise ResourceNotFound("Order not found", details={"order_id": str(order_id)})
        return order

    def _record(
        self,
        order: Order,
        from_status: Optional[str],
        to_status: str,
        changed_by: Optional[str],
        notes: Optional[str] = None,
    ) -> None:
        self.db.add(OrderStatusHistory(
            order_id=order.id,
            from_status=from_status,
            to_status=to_status,
            changed_by=changed_by,
            notes=notes,
        ))

    async def _commit(self, action: str) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error during {action}: {e}")
            raise CommitFailed(f"Could not {action}, please retry")

    async def _cancel(self, order: Order, changed_by: Optional[str], notes: str) -> None:
        """
        Move an order to cancelled and put tracked quantities back on stock.

        Does not commit. A paid order is marked refunded on the payment side.
        """
        previous = order.status
        if sm.is_terminal(previous):
            raise ValidationFailed(
                f"Order is already {previous}",
                details={"status": previous},
            )
        sm.validate_transition(previous, sm.CANCELLED)

        product_ids = {item.product_id for item in order.items}
        tracked = set()
        if product_ids:
            result = await self.db.execute(
                select(Product.id).where(
                    Product.id.in_(product_ids),
                    Product.track_quantity == True,  # noqa: E712
                )
            )
            tracked = set(result.scalars().all())

        for item in order.items:
            if item.product_id in tracked:
                await self.inventory.restore_stock(item.product_id, item.quantity)

        order.status = sm.CANCELLED
        order.cancelled_at = datetime.now(timezone.utc)
        if order.payment_status == PaymentStatus.PAID.value:
            order.payment_status = PaymentStatus.REFUNDED.value

        self._record(order, previous, sm.CANCELLED, changed_by, notes)
        logger.info(f"Order {order.order_number} cancelled ({previous} -> cancelled): {notes}")

    # ==================== CUSTOMER ====================

    async def cancel_order(self, user_id: str, order_id: uuid.UUID) -> Order:
        """Self-service cancellation of the caller's own pending, unpaid order."""
        order = await self._load_owned(user_id, order_id)

        if order.status != sm.PENDING:
            raise ValidationFailed(
                "Only pending orders can be cancelled",
                details={"status": order.status},
            )
        if not sm.can_self_cancel(order.status, order.payment_status):
            raise ValidationFailed(
                "Paid orders cannot be cancelled directly, please request a cancellation",
                details={"payment_status": order.payment_status},
            )

        await self._cancel(order, user_id, "Cancelled by customer")
        await self._commit("cancel order")
        return order

    async def request_cancellation(
        self,
        user_id: str,
        order_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> CancellationRequest:
        order = await self._load_owned(user_id, order_id)

        if not sm.can_request_cancellation(order.status, order.payment_status):
            if sm.is_terminal(order.status):
                message = f"Order is already {order.status}"
            else:
                message = "Only paid orders need a cancellation request, cancel the order directly instead"
            raise ValidationFailed(message, details={"status": order.status})

        if order.cancellation_request is not None:
            raise ValidationFailed(
                "A cancellation request already exists for this order",
                details={"request_status": order.cancellation_request.status},
            )

        request = CancellationRequest(
            order_id=order.id,
            status=CancellationRequestStatus.PENDING.value,
            reason=reason,
        )
        self.db.add(request)
        await self._commit("request cancellation")
        logger.info(f"Cancellation requested for order {order.order_number}")
        return request

    # ==================== ADMIN ====================

    async def update_status(
        self,
        order_id: uuid.UUID,
        new_status: str,
        tracking_number: Optional[str] = None,
        note: Optional[str] = None,
        changed_by: Optional[str] = None,
    ) -> Order:
        """Admin status change. Terminal orders are frozen."""
        order = await self._load(order_id)
        if order is None:
            raise ResourceNotFound("Order not found", details={"order_id": str(order_id)})

        if sm.is_terminal(order.status):
            raise ValidationFailed(
                f"Order in '{order.status}' status cannot be modified",
                details={"status": order.status},
            )

        if tracking_number:
            order.tracking_number = tracking_number

        previous = order.status
        if new_status == previous:
            await self._commit("update order")
            return order

        sm.validate_transition(previous, new_status)
        now = datetime.now(timezone.utc)

        if new_status == sm.CANCELLED:
            await self._cancel(order, changed_by, note or "Cancelled by admin")
        else:
            order.status = new_status
            if new_status == sm.SHIPPED:
                order.shipped_at = now
            elif new_status == sm.DELIVERED:
                order.delivered_at = now
                # Cash on delivery is collected on delivery
                order.payment_status = PaymentStatus.PAID.value
            elif new_status == sm.REFUNDED:
                if order.payment_status == PaymentStatus.PAID.value:
                    order.payment_status = PaymentStatus.REFUNDED.value
            self._record(order, previous, new_status, changed_by, note)
            logger.info(f"Order {order.order_number} status {previous} -> {new_status}")

        await self._commit("update order status")
        return order

    async def resolve_cancellation_request(
        self,
        order_id: uuid.UUID,
        status: str,
        changed_by: Optional[str] = None,
    ) -> CancellationRequest:
        """Approve or reject a pending request; approval cancels the order."""
        if status not in (
            CancellationRequestStatus.APPROVED.value,
            CancellationRequestStatus.REJECTED.value,
        ):
            raise ValidationFailed("Cancellation request status must be approved or rejected")

        order = await self._load(order_id)
        if order is None or order.cancellation_request is None:
            raise ResourceNotFound(
                "Cancellation request not found", details={"order_id": str(order_id)}
            )

        request = order.cancellation_request
        if request.status != CancellationRequestStatus.PENDING.value:
            raise ValidationFailed(
                f"Cancellation request is already {request.status}",
                details={"request_status": request.status},
            )

        if status == CancellationRequestStatus.APPROVED.value:
            await self._cancel(order, changed_by, "Cancellation request approved")

        request.status = status
        request.resolved_at = datetime.now(timezone.utc)
        await self._commit("resolve cancellation request")
        logger.info(f"Cancellation request for order {order.order_number} {status}")
        return request
