"""SQLAlchemy models for product catalog.

Defines Product, ProductVariant and ProductReview tables for persistent storage.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.domain.value_objects import round_money
from storefront.infrastructure.database import Base


class Product(Base):
    """Product entity in the catalog.

    Attributes:
        id: Unique product identifier (UUID string).
        name: Product name.
        slug: URL slug derived from the name, unique.
        description: Product description.
        brand: Brand name.
        category: Top-level category (e.g. "Men").
        sub_category: Sub-category (e.g. "Shirts").
        tags: Free-form tags.
        price: List price.
        discount: Discount percentage (0-100).
        final_price: Price after discount, never negative.
        stock: Units available. Equals the sum of variant stock when the
            product has variants.
        is_active: Whether the product is listed.
        is_featured: Featured flag for merchandising.
        is_new_arrival: New-arrival flag for merchandising.
        images: Image URLs.
        rating: Average approved review rating (0.0-5.0).
        review_count: Number of approved reviews.
    """

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(300), nullable=False, unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    brand: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    sub_category: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    final_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, index=True)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_new_arrival: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    images: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    rating: Mapped[Decimal] = mapped_column(Numeric(2, 1), nullable=False, default=Decimal("0.0"))
    review_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    variants: Mapped[list["ProductVariant"]] = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductVariant.created_at",
    )
    reviews: Mapped[list["ProductReview"]] = relationship(
        "ProductReview",
        back_populates="product",
        cascade="all, delete-orphan",
    )

    __table_args__ = (CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),)

    def __repr__(self) -> str:
        """String representation."""
        return f"<Product(id={self.id}, slug={self.slug})>"

    def apply_pricing(self) -> None:
        """Recompute final_price from price and discount."""
        price = Decimal(self.price)
        discount = Decimal(self.discount or 0)
        self.final_price = max(round_money(0), round_money(price - price * discount / 100))

    def sync_stock_from_variants(self) -> None:
        """Set the aggregate stock to the sum of variant stock, if any variants exist."""
        if self.variants:
            self.stock = sum(v.stock for v in self.variants)

    def find_variant(self, variant_id: str) -> "ProductVariant | None":
        """Get a loaded variant by ID.

        Args:
            variant_id: Variant ID.

        Returns:
            The variant, or None if this product has no such variant.
        """
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary.

        Returns:
            Dictionary representation.
        """
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "category": self.category,
            "sub_category": self.sub_category,
            "price": str(self.price),
            "final_price": str(self.final_price),
            "stock": self.stock,
            "is_active": self.is_active,
        }


class ProductVariant(Base):
    """Product variant (size/color combination).

    Attributes:
        id: Unique variant identifier.
        product_id: Parent product ID.
        size: Size label (e.g. "M", "42").
        color_name: Color name.
        color_hex: Color hex code.
        sku: Stock keeping unit.
        stock: Units available, never negative.
        price: Optional price override; the product's final price applies when unset.
        images: Variant-specific image URLs.
    """

    __tablename__ = "product_variants"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    product_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    size: Mapped[str | None] = mapped_column(String(20), nullable=True)
    color_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    color_hex: Mapped[str | None] = mapped_column(String(7), nullable=True)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True, unique=True)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    images: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    product: Mapped["Product"] = relationship("Product", back_populates="variants")

    __table_args__ = (CheckConstraint("stock >= 0", name="ck_variants_stock_non_negative"),)

    def __repr__(self) -> str:
        """String representation."""
        return f"<ProductVariant(id={self.id}, sku={self.sku})>"

    @property
    def label(self) -> str:
        """Human-readable descriptor such as "M / Navy"."""
        parts = [p for p in (self.size, self.color_name) if p]
        return " / ".join(parts) or (self.sku or self.id)


class ProductReview(Base):
    """Customer review of a product. One review per user per product."""

    __tablename__ = "product_reviews"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    product_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    username: Mapped[str | None] = mapped_column(String(30), nullable=True)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str | None] = mapped_column(String(100), nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    images: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="approved")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    product: Mapped["Product"] = relationship("Product", back_populates="reviews")

    __table_args__ = (
        UniqueConstraint("product_id", "user_id", name="uq_review_product_user"),
    )
