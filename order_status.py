"""
Order Status Lifecycle
======================
Formal status transitions for placed orders.

State flow:
    PENDING -> CONFIRMED -> PREPARING -> DELIVERING -> COMPLETED
    PENDING / CONFIRMED -> CANCELLED

Status is the only part of an order that changes after checkout.
"""

import logging
from dataclasses import replace
from enum import Enum
from typing import Dict, Optional, Set

from prometheus_client import Counter


logger = logging.getLogger(__name__)


order_status_transitions = Counter(
    'order_status_transitions_total',
    'Order status transitions',
    ['from_status', 'to_status']
)


class OrderStatus(Enum):
    """Order lifecycle states."""
    PENDING = "pending"         # Placed, not yet accepted
    CONFIRMED = "confirmed"     # Accepted by the store
    PREPARING = "preparing"     # In the kitchen
    DELIVERING = "delivering"   # Out for delivery
    COMPLETED = "completed"     # Delivered (terminal)
    CANCELLED = "cancelled"     # Cancelled (terminal)


class StatusTransitionError(Exception):
    """Raised when an invalid status transition is attempted."""
    pass


VALID_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.DELIVERING},
    OrderStatus.DELIVERING: {OrderStatus.COMPLETED},
    OrderStatus.COMPLETED: set(),   # Terminal
    OrderStatus.CANCELLED: set(),   # Terminal
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Check if moving from current to target is allowed."""
    return target in VALID_TRANSITIONS.get(current, set())


def is_terminal(status: OrderStatus) -> bool:
    return not VALID_TRANSITIONS.get(status)


def check_transition(
    order_id: str,
    current: OrderStatus,
    target: OrderStatus,
    reason: Optional[str] = None
):
    """
    Validate a status change.

    Raises:
        StatusTransitionError: If the transition is not allowed
    """
    if not can_transition(current, target):
        error_msg = f"Invalid transition: {current.value} -> {target.value}"
        logger.error(
            error_msg,
            extra={
                "order_id": order_id,
                "from_status": current.value,
                "to_status": target.value,
                "reason": reason
            }
        )
        raise StatusTransitionError(error_msg)

    logger.info(
        f"Order status: {current.value} -> {target.value}",
        extra={
            "order_id": order_id,
            "from_status": current.value,
            "to_status": target.value,
            "reason": reason
        }
    )


def advance_status(order, new_status, reason: Optional[str] = None):
    """
    Move an order to a new status.

    Args:
        order: Order (unchanged; a copy is returned)
        new_status: OrderStatus or its string value
        reason: Optional note for the log

    Returns:
        New Order carrying the target status

    Raises:
        StatusTransitionError: Unknown status or disallowed transition
    """
    try:
        target = OrderStatus(new_status)
    except ValueError:
        raise StatusTransitionError(f"Unknown order status: {new_status}")

    check_transition(order.id, order.status, target, reason)

    order_status_transitions.labels(
        from_status=order.status.value,
        to_status=target.value
    ).inc()

    return replace(order, status=target)
