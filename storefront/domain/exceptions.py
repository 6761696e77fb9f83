"""Domain exceptions.

All domain-level errors that represent business rule violations.
Each error carries a machine-readable ``error_code`` and the HTTP
``status_code`` the API renders it with, so callers can branch on the
category without string matching.
"""

from typing import Any


class DomainError(Exception):
    """Base class for all domain exceptions.

    All domain errors should inherit from this class to allow
    catching domain-specific errors at the application layer.
    """

    error_code = "DOMAIN_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# State Machine Errors
# ============================================================================


class InvalidStateTransitionError(DomainError):
    """Raised when an invalid state transition is attempted.

    This error indicates that the requested operation cannot be performed
    in the current state of the entity.
    """

    error_code = "INVALID_STATE_TRANSITION"
    status_code = 409

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
        message: str | None = None,
    ) -> None:
        """Initialize invalid state transition error.

        Args:
            entity_type: Type of entity (e.g., "Order").
            entity_id: ID of the entity.
            current_state: Current state of the entity.
            target_state: Attempted target state.
            allowed_transitions: List of allowed target states from current state.
            message: Override for the generated message.
        """
        allowed = allowed_transitions or []
        message = message or (
            f"Cannot transition {entity_type}({entity_id}) "
            f"from '{current_state}' to '{target_state}'. "
            f"Allowed transitions: {allowed}"
        )
        super().__init__(
            message,
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed,
            },
        )


# ============================================================================
# Catalog Errors
# ============================================================================


class ProductNotFoundError(DomainError):
    """Raised when a referenced product does not exist."""

    error_code = "PRODUCT_NOT_FOUND"
    status_code = 404

    def __init__(self, product_id: str) -> None:
        super().__init__(
            f"Product not found: {product_id}",
            details={"product_id": product_id},
        )


class VariantNotFoundError(DomainError):
    """Raised when a referenced variant does not exist on its product."""

    error_code = "VARIANT_NOT_FOUND"
    status_code = 404

    def __init__(self, product_id: str, variant_id: str) -> None:
        super().__init__(
            f"Variant {variant_id} not found for product {product_id}",
            details={"product_id": product_id, "variant_id": variant_id},
        )


class VariantRequiredError(DomainError):
    """Raised when a product sold in variants is referenced without one."""

    error_code = "VARIANT_REQUIRED"

    def __init__(self, product_id: str) -> None:
        super().__init__(
            f"Product {product_id} is sold in variants; choose a size or color",
            details={"product_id": product_id},
        )


class InsufficientStockError(DomainError):
    """Raised when a requested quantity exceeds available stock."""

    error_code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(
        self,
        product_name: str,
        requested: int,
        available: int,
        product_id: str | None = None,
        variant_id: str | None = None,
    ) -> None:
        """Initialize insufficient stock error.

        Args:
            product_name: Display name of the product.
            requested: Quantity requested.
            available: Quantity currently in stock.
            product_id: Product identifier.
            variant_id: Variant identifier, if any.
        """
        super().__init__(
            f"Insufficient stock for {product_name}: requested {requested}, available {available}",
            details={
                "product": product_name,
                "product_id": product_id,
                "variant_id": variant_id,
                "requested": requested,
                "available": available,
            },
        )
        self.requested = requested
        self.available = available


class ReviewNotFoundError(DomainError):
    """Raised when a review is not found."""

    error_code = "REVIEW_NOT_FOUND"
    status_code = 404

    def __init__(self, review_id: str) -> None:
        super().__init__(f"Review not found: {review_id}", details={"review_id": review_id})


# ============================================================================
# Cart Errors
# ============================================================================


class CartError(DomainError):
    """Base class for cart-related errors."""

    error_code = "CART_ERROR"


class CartItemNotFoundError(CartError):
    """Raised when a cart item is not found."""

    error_code = "CART_ITEM_NOT_FOUND"
    status_code = 404

    def __init__(self, item_id: str) -> None:
        """Initialize cart item not found error.

        Args:
            item_id: ID of the cart line.
        """
        super().__init__(
            f"Item {item_id} not found in cart",
            details={"item_id": item_id},
        )


class EmptyCartError(CartError):
    """Raised when trying to place an order from an empty cart."""

    error_code = "CART_EMPTY"

    def __init__(self, user_id: str) -> None:
        super().__init__("Cart is empty", details={"user_id": user_id})


class InvalidQuantityError(CartError):
    """Raised when an invalid quantity is provided."""

    error_code = "INVALID_QUANTITY"

    def __init__(self, quantity: int, reason: str = "Quantity must be positive") -> None:
        """Initialize invalid quantity error.

        Args:
            quantity: The invalid quantity.
            reason: Reason why quantity is invalid.
        """
        super().__init__(
            f"Invalid quantity {quantity}: {reason}",
            details={"quantity": quantity, "reason": reason},
        )


# ============================================================================
# Order Errors
# ============================================================================


class OrderError(DomainError):
    """Base class for order-related errors."""

    error_code = "ORDER_ERROR"


class OrderNotFoundError(OrderError):
    """Raised when an order is not found."""

    error_code = "ORDER_NOT_FOUND"
    status_code = 404

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order not found: {order_id}", details={"order_id": order_id})


class OrderNotCancellableError(InvalidStateTransitionError):
    """Raised when trying to cancel an order that has shipped or finished."""

    error_code = "ORDER_NOT_CANCELLABLE"

    def __init__(self, order_id: str, current_status: str) -> None:
        """Initialize order not cancellable error.

        Args:
            order_id: ID of the order.
            current_status: Current status of the order.
        """
        super().__init__(
            "Order",
            order_id,
            current_status,
            "cancelled",
            message=f"Order {order_id} cannot be cancelled in status '{current_status}'",
        )


# ============================================================================
# Account and Authorization Errors
# ============================================================================


class NotAuthorizedError(DomainError):
    """Raised when the caller may not act on a resource.

    Carries no detail about why, so ownership of foreign resources is not
    revealed.
    """

    error_code = "FORBIDDEN"
    status_code = 403

    def __init__(self, message: str = "Not authorized") -> None:
        super().__init__(message)


class InvalidCredentialsError(DomainError):
    """Raised when login credentials or an access token are rejected."""

    error_code = "INVALID_CREDENTIALS"
    status_code = 401

    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(message)


class EmailAlreadyRegisteredError(DomainError):
    """Raised when registering an email that already has an account."""

    error_code = "EMAIL_ALREADY_REGISTERED"
    status_code = 409

    def __init__(self, email: str) -> None:
        super().__init__("Email already registered", details={"email": email})


class AccountNotFoundError(DomainError):
    """Raised when an account lookup by email or id fails."""

    error_code = "ACCOUNT_NOT_FOUND"
    status_code = 404

    def __init__(self, email: str) -> None:
        super().__init__("Account not found", details={"email": email})


class AccountNotVerifiedError(DomainError):
    """Raised when an unverified account tries to log in."""

    error_code = "ACCOUNT_NOT_VERIFIED"
    status_code = 403

    def __init__(self, email: str) -> None:
        super().__init__(
            "Account not verified. Please verify your email first.",
            details={"email": email},
        )


class AlreadyVerifiedError(DomainError):
    """Raised when requesting a registration code for a verified account."""

    error_code = "ALREADY_VERIFIED"

    def __init__(self, email: str) -> None:
        super().__init__("Account already verified", details={"email": email})


# ============================================================================
# One-Time Passcode Errors
# ============================================================================


class OtpInvalidError(DomainError):
    """Raised when a submitted passcode is wrong, expired or missing."""

    error_code = "OTP_INVALID"

    def __init__(self, attempts_remaining: int) -> None:
        super().__init__(
            "Invalid or expired code",
            details={"attempts_remaining": attempts_remaining},
        )
        self.attempts_remaining = attempts_remaining


class OtpBlockedError(DomainError):
    """Raised when the attempt or resend ceiling has been reached."""

    error_code = "OTP_BLOCKED"
    status_code = 429

    def __init__(self, email: str, purpose: str) -> None:
        super().__init__(
            "Too many attempts. Please request a new code later.",
            details={"email": email, "purpose": purpose},
        )


# ============================================================================
# Wishlist Errors
# ============================================================================


class AlreadyInWishlistError(DomainError):
    """Raised when adding a product that is already wishlisted."""

    error_code = "ALREADY_IN_WISHLIST"

    def __init__(self, product_id: str) -> None:
        super().__init__("Product already in wishlist", details={"product_id": product_id})


class NotInWishlistError(DomainError):
    """Raised when removing a product that is not wishlisted."""

    error_code = "NOT_IN_WISHLIST"

    def __init__(self, product_id: str) -> None:
        super().__init__("Product not in wishlist", details={"product_id": product_id})


# ============================================================================
# Infrastructure-Facing Errors
# ============================================================================


class TransientFailureError(DomainError):
    """Raised when a unit of work aborted for a retryable storage reason."""

    error_code = "TRANSIENT_FAILURE"
    status_code = 503

    def __init__(self, operation: str, reason: str) -> None:
        super().__init__(
            f"{operation} failed, please retry",
            details={"operation": operation, "reason": reason},
        )


class EmailDeliveryError(DomainError):
    """Raised when an outbound email could not be handed to the mail server."""

    error_code = "EMAIL_DELIVERY_FAILED"
    status_code = 502

    def __init__(self, recipient: str, reason: str) -> None:
        super().__init__(
            "Could not send email",
            details={"recipient": recipient, "reason": reason},
        )
