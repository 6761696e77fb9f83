"""Domain layer module.

Contains state machines, value objects, domain events and exceptions.
No persistence or HTTP concerns live here.
"""

from storefront.domain.events import DomainEvent, EventHandler, ProductRemoved, VariantRemoved
from storefront.domain.exceptions import (
    DomainError,
    EmptyCartError,
    InsufficientStockError,
    InvalidStateTransitionError,
    NotAuthorizedError,
    OrderNotCancellableError,
    ProductNotFoundError,
    TransientFailureError,
    VariantNotFoundError,
)
from storefront.domain.state_machines import OrderStatus, validate_order_transition
from storefront.domain.value_objects import (
    Address,
    OrderTotals,
    OtpPurpose,
    PaymentMethod,
    Principal,
    Role,
    ShippingMethod,
    compute_order_totals,
    round_money,
)

__all__ = [
    # Events
    "DomainEvent",
    "EventHandler",
    "ProductRemoved",
    "VariantRemoved",
    # Exceptions
    "DomainError",
    "EmptyCartError",
    "InsufficientStockError",
    "InvalidStateTransitionError",
    "NotAuthorizedError",
    "OrderNotCancellableError",
    "ProductNotFoundError",
    "TransientFailureError",
    "VariantNotFoundError",
    # State machines
    "OrderStatus",
    "validate_order_transition",
    # Value objects
    "Address",
    "OrderTotals",
    "OtpPurpose",
    "PaymentMethod",
    "Principal",
    "Role",
    "ShippingMethod",
    "compute_order_totals",
    "round_money",
]
