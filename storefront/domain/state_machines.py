"""State machines for domain entities.

Deterministic state machines that define valid state transitions
for orders. State machines enforce business rules about what
operations are valid in each state.
"""

from enum import Enum

from storefront.domain.exceptions import InvalidStateTransitionError, OrderNotCancellableError


# ============================================================================
# Order State Machine
# ============================================================================


class OrderStatus(str, Enum):
    """Order lifecycle states.

    State diagram:
        PENDING ─────────────────────────────────────► CANCELLED
          │                                              ▲
          │ confirm                                      │
          ▼                                              │
        CONFIRMED ────────────────────────────────────►──┤
          │                                              │
          │ process                                      │
          ▼                                              │
        PROCESSING ───────────────────────────────────►──┘
          │
          │ ship
          ▼
        SHIPPED
          │
          │ hand to courier
          ▼
        OUT_FOR_DELIVERY
          │
          │ deliver
          ▼
        DELIVERED
          │
          │ refund
          ▼
        REFUNDED
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    def can_transition_to(self, target: "OrderStatus") -> bool:
        """Check if transition to target state is valid.

        Args:
            target: Target state to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _ORDER_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["OrderStatus"]:
        """Get list of valid target states.

        Returns:
            List of states that can be transitioned to, in lifecycle order.
        """
        allowed = _ORDER_TRANSITIONS.get(self, set())
        return [status for status in OrderStatus if status in allowed]

    def is_cancellable(self) -> bool:
        """Check if order can be cancelled.

        Returns:
            True while the order has not left the warehouse.
        """
        return self in {OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING}

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state.

        Returns:
            True if no further transitions are possible.
        """
        return len(_ORDER_TRANSITIONS.get(self, set())) == 0


# Order state transitions (defined outside enum to avoid Enum restrictions)
_ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.OUT_FOR_DELIVERY},
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),  # Terminal state
    OrderStatus.REFUNDED: set(),  # Terminal state
}


# ============================================================================
# Transition Helpers
# ============================================================================


def validate_order_transition(
    order_id: str,
    current: OrderStatus,
    target: OrderStatus,
) -> None:
    """Validate an order state transition.

    Args:
        order_id: Order ID for error messages.
        current: Current order status.
        target: Target order status.

    Raises:
        OrderNotCancellableError: If target is CANCELLED and the order is past
            the point of cancellation.
        InvalidStateTransitionError: For any other disallowed transition.
    """
    if current.can_transition_to(target):
        return

    if target == OrderStatus.CANCELLED:
        raise OrderNotCancellableError(order_id, current.value)

    raise InvalidStateTransitionError(
        entity_type="Order",
        entity_id=order_id,
        current_state=current.value,
        target_state=target.value,
        allowed_transitions=[s.value for s in current.allowed_transitions()],
    )
