"""API schemas for the Storefront API.

Pydantic models for request/response validation and serialization.
Money is exposed as decimal strings with two places.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, EmailStr, Field, field_validator

from storefront.domain.state_machines import OrderStatus
from storefront.domain.value_objects import PaymentMethod, ShippingMethod

_USERNAME_PATTERN = r"^[A-Za-z0-9_]{3,30}$"
_CODE_PATTERN = r"^[0-9]{4,10}$"


def _check_password_strength(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not re.search(r"[A-Z]", value):
        raise ValueError("Password must contain an uppercase letter")
    if not re.search(r"[a-z]", value):
        raise ValueError("Password must contain a lowercase letter")
    if not re.search(r"[0-9]", value):
        raise ValueError("Password must contain a digit")
    if not re.search(r"[^A-Za-z0-9]", value):
        raise ValueError("Password must contain a special character")
    return value


# ============================================================================
# Common Schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] = Field(
        default_factory=dict, description="Additional error details"
    )
    request_id: str | None = Field(
        default=None, description="Request ID for correlation"
    )


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str = Field(..., description="What happened")


class PaginatedResponse(BaseModel):
    """Base paginated response."""

    total: int = Field(..., description="Total number of items")
    page: int = Field(..., description="Current page number")
    page_size: int = Field(..., description="Items per page")
    has_more: bool = Field(..., description="Whether there are more pages")


class AddressSchema(BaseModel):
    """Shipping or billing address."""

    street: str = Field(..., min_length=1, max_length=200, description="Street and house number")
    city: str = Field(..., min_length=1, max_length=100, description="City")
    state: str = Field(default="", max_length=100, description="State or region")
    postal_code: str = Field(..., min_length=3, max_length=12, description="Postal code")
    country: str = Field(default="India", max_length=100, description="Country")


class AddressUpdateSchema(BaseModel):
    """Partial address; unset fields keep their stored value."""

    street: str | None = Field(default=None, max_length=200)
    city: str | None = Field(default=None, max_length=100)
    state: str | None = Field(default=None, max_length=100)
    postal_code: str | None = Field(default=None, min_length=3, max_length=12)
    country: str | None = Field(default=None, max_length=100)


# ============================================================================
# Auth Schemas
# ============================================================================


class RegisterRequest(BaseModel):
    """Shopper sign-up."""

    username: str = Field(..., pattern=_USERNAME_PATTERN, description="3-30 letters, digits or _")
    email: EmailStr = Field(..., description="Account email")
    password: str = Field(..., max_length=128, description="Account password")

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


class OtpVerifyRequest(BaseModel):
    """Passcode confirmation."""

    email: EmailStr = Field(..., description="Account email")
    otp: str = Field(..., pattern=_CODE_PATTERN, description="Emailed passcode")


class EmailRequest(BaseModel):
    """Request carrying only an email."""

    email: EmailStr = Field(..., description="Account email")


class LoginRequest(BaseModel):
    """Email and password login."""

    email: EmailStr = Field(..., description="Account email")
    password: str = Field(..., min_length=1, max_length=128, description="Account password")


class PasswordResetConfirmRequest(BaseModel):
    """Set a new password with a reset passcode."""

    email: EmailStr = Field(..., description="Account email")
    otp: str = Field(..., pattern=_CODE_PATTERN, description="Emailed passcode")
    new_password: str = Field(..., max_length=128, description="New password")

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


class OtpIssuedResponse(BaseModel):
    """A passcode was emailed."""

    message: str = Field(..., description="What happened")
    email: str = Field(..., description="Where the passcode was sent")
    attempts_remaining: int = Field(..., description="Wrong guesses allowed")
    resends_remaining: int = Field(..., description="Re-sends allowed")
    expires_at: datetime | None = Field(default=None, description="When the passcode expires")


class TokenResponse(BaseModel):
    """Issued access token."""

    access_token: str = Field(..., description="Bearer token")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: int = Field(..., description="Lifetime in seconds")
    role: str = Field(..., description="Principal role")
    user_id: str = Field(..., description="Principal ID")
    username: str = Field(..., description="Display name")


class ProfileResponse(BaseModel):
    """Shopper account."""

    id: str
    username: str
    email: str
    phone: str | None = None
    address: dict[str, Any] | None = None
    is_verified: bool
    role: str
    created_at: datetime


class ProfileUpdateRequest(BaseModel):
    """Profile changes; unset fields are left alone."""

    username: str | None = Field(default=None, pattern=_USERNAME_PATTERN)
    password: str | None = Field(default=None, max_length=128)
    phone: str | None = Field(default=None, pattern=r"^\+?[0-9]{7,15}$")
    address: AddressUpdateSchema | None = None

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str | None) -> str | None:
        if value is None:
            return value
        return _check_password_strength(value)


# ============================================================================
# Product Schemas
# ============================================================================


class VariantSchema(BaseModel):
    """Variant fields on create or update. Include ``id`` to keep an existing variant."""

    id: str | None = Field(default=None, description="Existing variant ID")
    size: str | None = Field(default=None, max_length=20)
    color_name: str | None = Field(default=None, max_length=50)
    color_hex: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    sku: str | None = Field(default=None, max_length=100)
    stock: int = Field(default=0, ge=0)
    price: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    images: list[str] = Field(default_factory=list)


class ProductCreateRequest(BaseModel):
    """New product."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    brand: str | None = Field(default=None, max_length=100)
    category: str = Field(..., min_length=1, max_length=100)
    sub_category: str | None = Field(default=None, max_length=100)
    tags: list[str] = Field(default_factory=list)
    price: Decimal = Field(..., ge=0, decimal_places=2)
    discount: Decimal = Field(default=Decimal("0"), ge=0, le=100, description="Percent off")
    stock: int = Field(default=0, ge=0, description="Ignored when variants are given")
    is_active: bool = True
    is_featured: bool = False
    is_new_arrival: bool = False
    images: list[str] = Field(default_factory=list)
    variants: list[VariantSchema] = Field(default_factory=list)


class ProductUpdateRequest(BaseModel):
    """Product changes; unset fields are left alone. ``variants`` replaces the variant list."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    brand: str | None = Field(default=None, max_length=100)
    category: str | None = Field(default=None, min_length=1, max_length=100)
    sub_category: str | None = Field(default=None, max_length=100)
    tags: list[str] | None = None
    price: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    discount: Decimal | None = Field(default=None, ge=0, le=100)
    stock: int | None = Field(default=None, ge=0)
    is_active: bool | None = None
    is_featured: bool | None = None
    is_new_arrival: bool | None = None
    images: list[str] | None = None
    variants: list[VariantSchema] | None = None


class VariantResponse(BaseModel):
    """Product variant."""

    id: str
    size: str | None = None
    color_name: str | None = None
    color_hex: str | None = None
    sku: str | None = None
    stock: int
    price: Decimal | None = None
    images: list[str] = Field(default_factory=list)


class ProductResponse(BaseModel):
    """Product details."""

    id: str
    name: str
    slug: str
    description: str | None = None
    brand: str | None = None
    category: str
    sub_category: str | None = None
    tags: list[str] = Field(default_factory=list)
    price: Decimal
    discount: Decimal
    final_price: Decimal
    stock: int
    is_active: bool
    is_featured: bool
    is_new_arrival: bool
    images: list[str] = Field(default_factory=list)
    rating: Decimal
    review_count: int
    variants: list[VariantResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ProductListResponse(PaginatedResponse):
    """Paginated list of products."""

    items: list[ProductResponse] = Field(..., description="List of products")


class ReviewCreateRequest(BaseModel):
    """Review of a product. Posting again replaces the earlier review."""

    rating: int = Field(..., ge=1, le=5, description="Stars, 1-5")
    title: str | None = Field(default=None, max_length=100)
    comment: str | None = Field(default=None, max_length=2000)
    images: list[str] = Field(default_factory=list, max_length=5)


class ReviewResponse(BaseModel):
    """Product review."""

    id: str
    product_id: str
    user_id: str
    username: str | None = None
    rating: int
    title: str | None = None
    comment: str | None = None
    images: list[str] = Field(default_factory=list)
    created_at: datetime


# ============================================================================
# Cart Schemas
# ============================================================================


class CartItemAddRequest(BaseModel):
    """Add units of a product (or variant) to the cart."""

    product_id: str = Field(..., description="Product ID")
    variant_id: str | None = Field(default=None, description="Variant ID, required for products with variants")
    quantity: int = Field(default=1, ge=1, le=100, description="Units to add")


class CartItemUpdateRequest(BaseModel):
    """Set a line's quantity. Zero removes the line."""

    quantity: int = Field(..., ge=0, le=100, description="New quantity")


class CartLineSchema(BaseModel):
    """Cart line."""

    id: str
    product_id: str
    variant_id: str | None = None
    product_name: str | None = None
    variant_label: str | None = None
    quantity: int
    price: Decimal = Field(..., description="Unit price snapshot")
    line_total: Decimal
    available_stock: int | None = None


class CartResponse(BaseModel):
    """Shopping cart."""

    id: str | None = None
    user_id: str
    items: list[CartLineSchema] = Field(default_factory=list)
    item_count: int
    total_price: Decimal


# ============================================================================
# Order Schemas
# ============================================================================


class PlaceOrderRequest(BaseModel):
    """Checkout the current cart."""

    shipping_address: AddressSchema | None = Field(
        default=None, description="Defaults to the profile address"
    )
    billing_address: AddressSchema | None = Field(
        default=None, description="Defaults to the shipping address"
    )
    payment_method: PaymentMethod = Field(default=PaymentMethod.COD)
    shipping_method: ShippingMethod = Field(default=ShippingMethod.STANDARD)
    notes: str | None = Field(default=None, max_length=1000)


class OrderItemSchema(BaseModel):
    """Item in an order."""

    product_id: str = Field(..., description="Product ID")
    product_name: str = Field(..., description="Product name at time of order")
    variant_id: str | None = Field(default=None, description="Variant ID")
    variant_label: str | None = Field(default=None, description="Variant size/color")
    quantity: int = Field(..., ge=1, description="Quantity ordered")
    unit_price: Decimal = Field(..., description="Unit price at time of order")
    line_total: Decimal = Field(..., description="Line total")


class OrderStatusHistorySchema(BaseModel):
    """Status history entry for audit trail."""

    from_status: str | None = Field(default=None, description="Previous status")
    to_status: str = Field(..., description="New status")
    reason: str | None = Field(default=None, description="Reason for transition")
    actor: str | None = Field(default=None, description="Who initiated transition")
    created_at: datetime = Field(..., description="When transition occurred")


class PaymentSchema(BaseModel):
    """Payment state."""

    method: str
    is_paid: bool
    paid_at: datetime | None = None


class OrderResponse(BaseModel):
    """Order details response."""

    id: str = Field(..., description="Order ID")
    user_id: str = Field(..., description="Buyer")
    status: OrderStatus = Field(..., description="Current order status")
    items: list[OrderItemSchema] = Field(..., description="Order lines")
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    currency: str
    shipping_address: AddressSchema | None = None
    billing_address: AddressSchema | None = None
    payment: PaymentSchema
    shipping_method: str
    tracking_number: str | None = None
    shipping_carrier: str | None = None
    notes: str | None = None
    cancelled_by: str | None = None
    cancelled_reason: str | None = None
    status_history: list[OrderStatusHistorySchema] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None


class OrderSummarySchema(BaseModel):
    """Order summary for listings."""

    id: str = Field(..., description="Order ID")
    user_id: str = Field(..., description="Buyer")
    status: OrderStatus = Field(..., description="Current status")
    total: Decimal = Field(..., description="Order total")
    currency: str
    item_count: int = Field(..., description="Number of units")
    is_paid: bool
    created_at: datetime = Field(..., description="When created")


class OrdersListResponse(PaginatedResponse):
    """Paginated list of orders."""

    items: list[OrderSummarySchema] = Field(..., description="List of orders")


class OrderCancelRequest(BaseModel):
    """Request to cancel an order."""

    reason: str | None = Field(default=None, max_length=500, description="Cancellation reason")


class OrderStatusUpdateRequest(BaseModel):
    """Admin status change."""

    status: OrderStatus = Field(..., description="Target status")
    tracking_number: str | None = Field(default=None, max_length=100)
    shipping_carrier: str | None = Field(default=None, max_length=100)
    reason: str | None = Field(default=None, max_length=500)


# ============================================================================
# Wishlist Schemas
# ============================================================================


class WishlistResponse(BaseModel):
    """Saved products."""

    items: list[ProductResponse] = Field(default_factory=list)
    count: int
