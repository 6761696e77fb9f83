"""SQLAlchemy models for database tables.

Provides ORM models for accounts, one-time passcodes, carts, orders,
and wishlists. Catalog tables live in ``storefront.catalog.models``.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from storefront.infrastructure.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere
JsonType = JSON().with_variant(JSONB(), "postgresql")

Money = Numeric(12, 2)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


# ============================================================================
# Account Models
# ============================================================================


class UserModel(Base):
    """Shopper account.

    Accounts start unverified and become verified once the registration
    passcode is confirmed.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    username = Column(String(30), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True)
    address = Column(JsonType, nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    role = Column(String(20), nullable=False, default="user")

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )


class AdminModel(Base):
    """Back-office account. Logs in with a password plus an emailed passcode."""

    __tablename__ = "admins"

    id = Column(String(36), primary_key=True, default=_new_id)
    username = Column(String(30), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="admin")

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )


# ============================================================================
# One-Time Passcode Model
# ============================================================================


class OtpModel(Base):
    """Pending one-time passcode for an (email, purpose) pair.

    At most one live record exists per pair. Only the hash of the code is
    stored. Records past ``expires_at`` are inert and removed lazily.
    """

    __tablename__ = "otps"

    id = Column(String(36), primary_key=True, default=_new_id)
    target_email = Column(String(255), nullable=False, index=True)
    purpose = Column(String(20), nullable=False)
    hashed_code = Column(String(255), nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    resend_count = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    meta = Column(JsonType, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    __table_args__ = (
        UniqueConstraint("target_email", "purpose", name="uq_otps_email_purpose"),
    )


# ============================================================================
# Cart Models
# ============================================================================


class CartModel(Base):
    """Per-user shopping cart. Created lazily on first add."""

    __tablename__ = "carts"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), nullable=False, unique=True, index=True)
    total_price = Column(Money, nullable=False, default=Decimal("0.00"))

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    items = relationship(
        "CartItemModel",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItemModel.added_at",
    )

    def recalculate(self) -> Decimal:
        """Recompute total_price from the current lines.

        Returns:
            The new total.
        """
        total = sum(
            (Decimal(item.quantity) * Decimal(item.price) for item in self.items),
            Decimal("0"),
        )
        self.total_price = total.quantize(Decimal("0.01"))
        return self.total_price


class CartItemModel(Base):
    """Cart line.

    References the catalog without a foreign key; lines whose product or
    variant disappears are pruned by the catalog removal cascade.
    """

    __tablename__ = "cart_items"

    id = Column(String(36), primary_key=True, default=_new_id)
    cart_id = Column(
        String(36),
        ForeignKey("carts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = Column(String(36), nullable=False, index=True)
    variant_id = Column(String(36), nullable=True, index=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Money, nullable=False)
    added_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    cart = relationship("CartModel", back_populates="items")

    __table_args__ = (CheckConstraint("quantity >= 1", name="ck_cart_items_quantity_positive"),)


# ============================================================================
# Order Models
# ============================================================================


class OrderModel(Base):
    """Order created from a cart.

    Line prices and the monetary summary are frozen at creation; only the
    status, payment flag and shipping details change afterwards.
    """

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)

    # Summary
    subtotal = Column(Money, nullable=False)
    tax = Column(Money, nullable=False, default=Decimal("0.00"))
    shipping = Column(Money, nullable=False, default=Decimal("0.00"))
    discount = Column(Money, nullable=False, default=Decimal("0.00"))
    total = Column(Money, nullable=False)
    currency = Column(String(3), nullable=False, default="INR")

    # Addresses
    shipping_address = Column(JsonType, nullable=True)
    billing_address = Column(JsonType, nullable=True)

    # Payment
    payment_method = Column(String(20), nullable=False, default="COD")
    is_paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    # Shipping info
    shipping_method = Column(String(20), nullable=False, default="standard")
    tracking_number = Column(String(100), nullable=True)
    shipping_carrier = Column(String(100), nullable=True)

    notes = Column(Text, nullable=True)

    # Cancellation
    cancelled_by = Column(String(36), nullable=True)
    cancelled_reason = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
    )
    status_history = relationship(
        "OrderStatusHistoryModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistoryModel.created_at",
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "subtotal": str(self.subtotal),
            "tax": str(self.tax),
            "shipping": str(self.shipping),
            "discount": str(self.discount),
            "total": str(self.total),
            "currency": self.currency,
            "payment_method": self.payment_method,
            "is_paid": self.is_paid,
            "shipping_method": self.shipping_method,
            "item_count": sum(item.quantity for item in self.items),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class OrderItemModel(Base):
    """Order line: immutable snapshot of what was bought and at what price."""

    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=_new_id)
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = Column(String(36), nullable=False)
    product_name = Column(String(255), nullable=False)
    variant_id = Column(String(36), nullable=True)
    variant_label = Column(String(255), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Money, nullable=False)
    line_total = Column(Money, nullable=False)

    order = relationship("OrderModel", back_populates="items")


class OrderStatusHistoryModel(Base):
    """Status transition audit entry for an order."""

    __tablename__ = "order_status_history"

    id = Column(String(36), primary_key=True, default=_new_id)
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)
    reason = Column(Text, nullable=True)
    actor = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    order = relationship("OrderModel", back_populates="status_history")


# ============================================================================
# Wishlist Model
# ============================================================================


class WishlistItemModel(Base):
    """Product saved to a user's wishlist."""

    __tablename__ = "wishlist_items"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), nullable=False, index=True)
    product_id = Column(String(36), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_wishlist_user_product"),
    )
