"""
Order State Machine

Single source of truth for order status transitions. Every status change,
by a customer or an admin, is checked here first.
"""

from typing import Dict, List

from fabricstore.core.exceptions import ValidationFailed
from fabricstore.models.order import OrderStatus, PaymentStatus


PENDING = OrderStatus.PENDING.value
CONFIRMED = OrderStatus.CONFIRMED.value
PROCESSING = OrderStatus.PROCESSING.value
SHIPPED = OrderStatus.SHIPPED.value
DELIVERED = OrderStatus.DELIVERED.value
CANCELLED = OrderStatus.CANCELLED.value
REFUNDED = OrderStatus.REFUNDED.value

TERMINAL_STATUSES = (CANCELLED, REFUNDED)


# =============================================================================
# TRANSITION RULES
# =============================================================================

# current_status -> [allowed next statuses]
# The happy path only moves forward; steps may be skipped.
ORDER_TRANSITIONS: Dict[str, List[str]] = {
    PENDING: [
        CONFIRMED,
        PROCESSING,
        SHIPPED,
        DELIVERED,
        CANCELLED,
        REFUNDED,
    ],
    CONFIRMED: [
        PROCESSING,
        SHIPPED,
        DELIVERED,
        CANCELLED,
        REFUNDED,
    ],
    PROCESSING: [
        SHIPPED,
        DELIVERED,
        CANCELLED,
        REFUNDED,
    ],
    SHIPPED: [
        DELIVERED,
        CANCELLED,        # Lost or returned in transit
        REFUNDED,
    ],
    DELIVERED: [
        CANCELLED,        # Approved cancellation request on a collected order
        REFUNDED,         # Return after delivery
    ],
    CANCELLED: [],        # Terminal
    REFUNDED: [],         # Terminal
}


def can_transition(current_status: str, new_status: str) -> bool:
    """Check if a transition is allowed."""
    return new_status in ORDER_TRANSITIONS.get(current_status, [])


def get_allowed_transitions(current_status: str) -> List[str]:
    return ORDER_TRANSITIONS.get(current_status, [])


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def validate_transition(current_status: str, new_status: str) -> None:
    """Raise ValidationFailed unless current -> new is allowed."""
    if current_status == new_status:
        return

    if not can_transition(current_status, new_status):
        allowed = get_allowed_transitions(current_status)
        if not allowed:
            raise ValidationFailed(
                f"Order in '{current_status}' status cannot be modified",
                details={"status": current_status},
            )
        raise ValidationFailed(
            f"Cannot change order from '{current_status}' to '{new_status}'. "
            f"Allowed transitions: {', '.join(allowed)}",
            details={"status": current_status, "allowed": allowed},
        )


# =============================================================================
# STATUS CHECK HELPERS
# =============================================================================

def can_self_cancel(status: str, payment_status: str) -> bool:
    """Customers may cancel only unpaid orders that are still pending."""
    return status == PENDING and payment_status != PaymentStatus.PAID.value


def can_request_cancellation(status: str, payment_status: str) -> bool:
    """Paid orders that are still live go through an admin-reviewed request."""
    return payment_status == PaymentStatus.PAID.value and not is_terminal(status)
