"""Value Objects for the domain layer.

Value objects are immutable objects that are defined by their attributes
rather than identity. They are interchangeable when their values are equal.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Self

CENT = Decimal("0.01")


def round_money(value: Decimal | int | float | str) -> Decimal:
    """Round a monetary amount half-up to two decimal places.

    Args:
        value: Amount in major currency units.

    Returns:
        Decimal quantized to cents.
    """
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


# ============================================================================
# Enumerations
# ============================================================================


class Role(str, Enum):
    """Principal roles."""

    USER = "user"
    ADMIN = "admin"


class OtpPurpose(str, Enum):
    """What a one-time passcode authorizes."""

    REGISTER = "register"
    LOGIN = "login"
    PASSWORD_RESET = "password_reset"


class PaymentMethod(str, Enum):
    """Supported payment methods. Only cash on delivery is offered."""

    COD = "COD"


class ShippingMethod(str, Enum):
    """Delivery speed chosen at checkout."""

    STANDARD = "standard"
    EXPRESS = "express"


class ReviewStatus(str, Enum):
    """Review visibility. Only approved reviews count toward the rating."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# ============================================================================
# Principal
# ============================================================================


@dataclass(frozen=True)
class Principal:
    """Authenticated caller.

    Attributes:
        id: Account identifier.
        role: Account role.
        email: Account email.
        username: Display name.
    """

    id: str
    role: Role
    email: str = ""
    username: str = ""

    @property
    def is_admin(self) -> bool:
        """Whether the caller holds the admin role."""
        return self.role == Role.ADMIN

    def can_access(self, owner_id: str) -> bool:
        """Check whether the caller may act on a resource owned by owner_id.

        Args:
            owner_id: Account that owns the resource.

        Returns:
            True for the owner or any admin.
        """
        return self.is_admin or self.id == owner_id


# ============================================================================
# Address
# ============================================================================


@dataclass(frozen=True)
class Address:
    """Shipping or billing address.

    Attributes:
        street: Street and house number.
        city: City name.
        state: State or region.
        postal_code: Postal code.
        country: Country name.
    """

    street: str
    city: str
    state: str
    postal_code: str
    country: str = "India"

    def __post_init__(self) -> None:
        """Validate address fields."""
        if not self.street or not self.street.strip():
            raise ValueError("Street cannot be empty")
        if not self.city or not self.city.strip():
            raise ValueError("City cannot be empty")
        if not self.postal_code or not self.postal_code.strip():
            raise ValueError("Postal code cannot be empty")

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Self | None:
        """Build an address from a stored mapping.

        Args:
            data: Stored address, possibly partial or empty.

        Returns:
            Address, or None when the mapping lacks the required fields.
        """
        if not data:
            return None
        try:
            return cls(
                street=data.get("street") or "",
                city=data.get("city") or "",
                state=data.get("state") or "",
                postal_code=data.get("postal_code") or "",
                country=data.get("country") or "India",
            )
        except ValueError:
            return None

    def to_dict(self) -> dict[str, str]:
        """Convert to a JSON-serializable mapping."""
        return {
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
        }


# ============================================================================
# Order Totals
# ============================================================================


@dataclass(frozen=True)
class OrderTotals:
    """Monetary summary of an order.

    Invariant: total == round(subtotal + tax + shipping - discount, 2).
    """

    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal


def compute_order_totals(
    subtotal: Decimal,
    shipping_method: ShippingMethod,
    tax_rate: Decimal,
    flat_fee: Decimal,
    express_fee: Decimal,
    free_threshold: Decimal,
    discount: Decimal = Decimal("0"),
) -> OrderTotals:
    """Compute the monetary summary for an order.

    Standard shipping is free once the subtotal reaches ``free_threshold``.
    Express shipping always charges ``express_fee``.

    Args:
        subtotal: Sum of line totals.
        shipping_method: Delivery speed.
        tax_rate: Fractional tax rate, e.g. 0.05.
        flat_fee: Standard shipping fee.
        express_fee: Express shipping fee.
        free_threshold: Subtotal at which standard shipping becomes free.
        discount: Discount amount.

    Returns:
        OrderTotals with every amount rounded to cents.
    """
    subtotal = round_money(subtotal)
    tax = round_money(subtotal * Decimal(str(tax_rate)))

    if shipping_method == ShippingMethod.EXPRESS:
        shipping = round_money(express_fee)
    elif subtotal >= free_threshold:
        shipping = round_money(0)
    else:
        shipping = round_money(flat_fee)

    discount = round_money(discount)
    total = round_money(subtotal + tax + shipping - discount)
    return OrderTotals(
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        discount=discount,
        total=total,
    )
