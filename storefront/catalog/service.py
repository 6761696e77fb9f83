"""Catalog service for product operations.

High-level service that combines repository operations with
business logic for catalog management: pricing, slugs, variant stock
aggregation, reviews, and removal notifications for dependent stores.
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Generic, TypeVar

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.catalog.models import Product, ProductReview, ProductVariant
from storefront.catalog.repository import ProductRepository
from storefront.domain.events import (
    DomainEvent,
    EventHandler,
    ProductRemoved,
    ProductVariantsIntroduced,
    VariantRemoved,
)
from storefront.domain.exceptions import (
    NotAuthorizedError,
    ProductNotFoundError,
    ReviewNotFoundError,
    VariantNotFoundError,
)
from storefront.domain.value_objects import Principal, ReviewStatus

T = TypeVar("T")

logger = structlog.get_logger()


@dataclass
class ProductFilter:
    """Filter parameters for product search.

    Attributes:
        search: Text search in name/description/brand/category.
        category: Filter by category.
        sub_category: Filter by sub-category.
        brand: Filter by brand.
        tags: Match products carrying any of these tags.
        min_price: Minimum final price.
        max_price: Maximum final price.
        in_stock: Filter by availability.
        include_inactive: Also return unlisted products (admin views).
    """

    search: str | None = None
    category: str | None = None
    sub_category: str | None = None
    brand: str | None = None
    tags: list[str] | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    in_stock: bool | None = None
    include_inactive: bool = False

    def as_kwargs(self) -> dict[str, Any]:
        """Repository filter keywords."""
        return {
            "search": self.search,
            "category": self.category,
            "sub_category": self.sub_category,
            "brand": self.brand,
            "tags": self.tags,
            "min_price": self.min_price,
            "max_price": self.max_price,
            "in_stock": self.in_stock,
            "active_only": not self.include_inactive,
        }


@dataclass
class PaginationParams:
    """Pagination parameters.

    Attributes:
        page: Page number (1-indexed).
        page_size: Items per page.
        sort_by: Sort field.
        sort_order: Sort order (asc/desc).
    """

    page: int = 1
    page_size: int = 10
    sort_by: str = "created_at"
    sort_order: str = "desc"

    @property
    def offset(self) -> int:
        """Calculate offset from page number."""
        return (self.page - 1) * self.page_size

    @property
    def limit(self) -> int:
        """Get limit (alias for page_size)."""
        return self.page_size


@dataclass
class PaginatedResult(Generic[T]):
    """Paginated result container.

    Attributes:
        items: List of items.
        total: Total count.
        page: Current page.
        page_size: Items per page.
    """

    items: list[T]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        """Calculate total pages."""
        return (self.total + self.page_size - 1) // self.page_size

    @property
    def has_next(self) -> bool:
        """Check if there's a next page."""
        return self.page < self.total_pages


@dataclass
class VariantData:
    """Variant fields supplied on create or update.

    ``id`` identifies an existing variant to keep; variants of the product
    that are not listed on update are removed.
    """

    size: str | None = None
    color_name: str | None = None
    color_hex: str | None = None
    sku: str | None = None
    stock: int = 0
    price: Decimal | None = None
    images: list[str] = field(default_factory=list)
    id: str | None = None


@dataclass
class ProductData:
    """Fields for creating a product."""

    name: str
    category: str
    price: Decimal
    description: str | None = None
    brand: str | None = None
    sub_category: str | None = None
    tags: list[str] = field(default_factory=list)
    discount: Decimal = Decimal("0")
    stock: int = 0
    is_active: bool = True
    is_featured: bool = False
    is_new_arrival: bool = False
    images: list[str] = field(default_factory=list)
    variants: list[VariantData] = field(default_factory=list)


_UPDATABLE_FIELDS = {
    "name",
    "description",
    "brand",
    "category",
    "sub_category",
    "tags",
    "price",
    "discount",
    "stock",
    "is_active",
    "is_featured",
    "is_new_arrival",
    "images",
}


def slugify(value: str) -> str:
    """Turn a product name into a URL slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "product"


def _normalize_tags(tags: list[str]) -> list[str]:
    seen: list[str] = []
    for tag in tags:
        cleaned = tag.strip().lower()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


class CatalogService:
    """Service for catalog operations.

    Mutations commit their own transaction. Once a deletion of a product
    or variant has committed, every subscribed handler receives a
    ``ProductRemoved`` or ``VariantRemoved`` event. A product sold without
    variants that gains its first ones publishes ``ProductVariantsIntroduced``.

    Example usage:
        async with async_session_factory() as session:
            carts = CartService(session)
            service = CatalogService(session, handlers=[carts.handle_catalog_event])
            await service.delete_product(product_id)
    """

    def __init__(
        self,
        session: AsyncSession,
        handlers: list[EventHandler] | None = None,
    ) -> None:
        """Initialize service with database session.

        Args:
            session: Async SQLAlchemy session.
            handlers: Subscribers notified after committed removals.
        """
        self.session = session
        self.repository = ProductRepository(session)
        self._handlers: list[EventHandler] = list(handlers or [])

    def subscribe(self, handler: EventHandler) -> None:
        """Register a removal subscriber."""
        self._handlers.append(handler)

    async def _publish(self, events: list[DomainEvent]) -> None:
        for event in events:
            for handler in self._handlers:
                try:
                    await handler(event)
                except Exception:
                    # Carts also prune vanished references on read
                    logger.exception(
                        "Catalog event handler failed",
                        event_type=event.event_type,
                        payload=event.to_dict()["payload"],
                    )

    # ========================================================================
    # Queries
    # ========================================================================

    async def get_product(self, product_id: str) -> Product:
        """Get product by ID.

        Args:
            product_id: Product ID.

        Returns:
            Product with variants.

        Raises:
            ProductNotFoundError: If the product does not exist.
        """
        product = await self.repository.get_by_id(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    async def search_products(
        self,
        filters: ProductFilter,
        pagination: PaginationParams,
    ) -> PaginatedResult[Product]:
        """Search products with filters and pagination.

        Args:
            filters: Filter parameters.
            pagination: Pagination parameters.

        Returns:
            Paginated product results.
        """
        products = await self.repository.find_all(
            **filters.as_kwargs(),
            sort_by=pagination.sort_by,
            sort_order=pagination.sort_order,
            limit=pagination.limit,
            offset=pagination.offset,
        )
        total = await self.repository.count(**filters.as_kwargs())

        return PaginatedResult(
            items=list(products),
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
        )

    # ========================================================================
    # Mutations
    # ========================================================================

    async def _unique_slug(self, name: str, exclude_id: str | None = None) -> str:
        base = slugify(name)
        slug = base
        suffix = 1
        while await self.repository.slug_exists(slug, exclude_id=exclude_id):
            slug = f"{base}-{suffix}"
            suffix += 1
        return slug

    async def create_product(self, data: ProductData) -> Product:
        """Create a product with its variants.

        Args:
            data: Product fields.

        Returns:
            The created product.
        """
        product = Product(
            name=data.name.strip(),
            slug=await self._unique_slug(data.name),
            description=data.description,
            brand=data.brand,
            category=data.category,
            sub_category=data.sub_category,
            tags=_normalize_tags(data.tags),
            price=data.price,
            discount=data.discount,
            stock=data.stock,
            is_active=data.is_active,
            is_featured=data.is_featured,
            is_new_arrival=data.is_new_arrival,
            images=list(data.images),
            variants=[self._build_variant(v) for v in data.variants],
        )
        product.apply_pricing()
        product.sync_stock_from_variants()

        await self.repository.save(product)
        await self.session.commit()

        logger.info(
            "Product created",
            product_id=product.id,
            slug=product.slug,
            variant_count=len(product.variants),
        )
        return product

    async def update_product(self, product_id: str, changes: dict[str, Any]) -> Product:
        """Update product fields and, optionally, replace its variant list.

        Args:
            product_id: Product ID.
            changes: Fields to change. A ``variants`` entry (list of
                VariantData) replaces the variant list; existing variants are
                matched by id and unlisted ones are removed.

        Returns:
            The updated product.

        Raises:
            ProductNotFoundError: If the product does not exist.
            VariantNotFoundError: If a listed variant id does not belong to the product.
        """
        product = await self.get_product(product_id)
        removed: list[DomainEvent] = []
        events: list[DomainEvent] = []

        for key, value in changes.items():
            if key not in _UPDATABLE_FIELDS:
                continue
            if key == "tags":
                value = _normalize_tags(value)
            setattr(product, key, value)

        if "name" in changes:
            product.slug = await self._unique_slug(product.name, exclude_id=product.id)

        if changes.get("variants") is not None:
            had_variants = bool(product.variants)
            removed = self._replace_variants(product, changes["variants"])
            if not had_variants and product.variants:
                events.append(ProductVariantsIntroduced(product_id=product.id))

        product.apply_pricing()
        product.sync_stock_from_variants()

        await self.session.flush()
        await self.session.commit()

        logger.info(
            "Product updated",
            product_id=product.id,
            fields=sorted(k for k in changes if k in _UPDATABLE_FIELDS or k == "variants"),
            removed_variants=len(removed),
        )
        await self._publish(removed + events)
        return product

    def _replace_variants(self, product: Product, variants: list[VariantData]) -> list[DomainEvent]:
        keep_ids = {v.id for v in variants if v.id}
        for variant_id in keep_ids:
            if product.find_variant(variant_id) is None:
                raise VariantNotFoundError(product.id, variant_id)

        removed: list[DomainEvent] = [
            VariantRemoved(product_id=product.id, variant_id=v.id)
            for v in product.variants
            if v.id not in keep_ids
        ]
        product.variants = [v for v in product.variants if v.id in keep_ids]

        for data in variants:
            if data.id:
                existing = product.find_variant(data.id)
                existing.size = data.size
                existing.color_name = data.color_name
                existing.color_hex = data.color_hex
                existing.sku = data.sku
                existing.stock = data.stock
                existing.price = data.price
                existing.images = list(data.images)
            else:
                product.variants.append(self._build_variant(data))

        return removed

    @staticmethod
    def _build_variant(data: VariantData) -> ProductVariant:
        return ProductVariant(
            size=data.size,
            color_name=data.color_name,
            color_hex=data.color_hex,
            sku=data.sku,
            stock=data.stock,
            price=data.price,
            images=list(data.images),
        )

    async def delete_product(self, product_id: str) -> None:
        """Delete a product, then notify subscribers.

        Args:
            product_id: Product ID.

        Raises:
            ProductNotFoundError: If the product does not exist.
        """
        product = await self.repository.get_by_id(product_id, include_reviews=True)
        if product is None:
            raise ProductNotFoundError(product_id)

        await self.repository.delete(product)
        await self.session.commit()

        logger.info("Product deleted", product_id=product_id)
        await self._publish([ProductRemoved(product_id=product_id)])

    async def delete_variant(self, product_id: str, variant_id: str) -> Product:
        """Delete one variant, recompute aggregate stock, then notify subscribers.

        Args:
            product_id: Product ID.
            variant_id: Variant ID.

        Returns:
            The product after removal.

        Raises:
            ProductNotFoundError: If the product does not exist.
            VariantNotFoundError: If the variant does not belong to the product.
        """
        product = await self.get_product(product_id)
        variant = product.find_variant(variant_id)
        if variant is None:
            raise VariantNotFoundError(product_id, variant_id)

        product.variants.remove(variant)
        if product.variants:
            product.sync_stock_from_variants()
        else:
            product.stock = 0

        await self.session.flush()
        await self.session.commit()

        logger.info("Variant deleted", product_id=product_id, variant_id=variant_id)
        await self._publish([VariantRemoved(product_id=product_id, variant_id=variant_id)])
        return product

    # ========================================================================
    # Reviews
    # ========================================================================

    async def add_review(
        self,
        principal: Principal,
        product_id: str,
        rating: int,
        title: str | None = None,
        comment: str | None = None,
        images: list[str] | None = None,
    ) -> ProductReview:
        """Create or replace the caller's review of a product.

        Args:
            principal: Reviewing user.
            product_id: Product ID.
            rating: Star rating, 1-5.
            title: Short headline.
            comment: Review body.
            images: Image URLs.

        Returns:
            The stored review.

        Raises:
            ProductNotFoundError: If the product does not exist.
        """
        product = await self.get_product(product_id)

        review = await self.repository.get_user_review(product_id, principal.id)
        if review is None:
            review = ProductReview(product_id=product.id, user_id=principal.id)
            self.session.add(review)

        review.username = principal.username or None
        review.rating = rating
        review.title = title
        review.comment = comment
        review.images = list(images or [])
        review.status = ReviewStatus.APPROVED.value

        await self.session.flush()
        await self._refresh_rating(product)
        await self.session.commit()

        logger.info("Review saved", product_id=product_id, review_id=review.id, rating=rating)
        return review

    async def list_reviews(
        self,
        product_id: str,
        page: int = 1,
        page_size: int = 20,
    ) -> list[ProductReview]:
        """List approved reviews for a product, newest first.

        Raises:
            ProductNotFoundError: If the product does not exist.
        """
        await self.get_product(product_id)
        reviews = await self.repository.list_reviews(
            product_id,
            limit=page_size,
            offset=(page - 1) * page_size,
        )
        return list(reviews)

    async def delete_review(self, principal: Principal, product_id: str, review_id: str) -> None:
        """Delete a review. Only its author or an admin may do so.

        Raises:
            ReviewNotFoundError: If the review does not exist on this product.
            NotAuthorizedError: If the caller is neither author nor admin.
        """
        review = await self.repository.get_review(review_id)
        if review is None or review.product_id != product_id:
            raise ReviewNotFoundError(review_id)
        if not principal.can_access(review.user_id):
            raise NotAuthorizedError()

        await self.session.delete(review)
        await self.session.flush()

        product = await self.get_product(product_id)
        await self._refresh_rating(product)
        await self.session.commit()

        logger.info("Review deleted", product_id=product_id, review_id=review_id)

    async def _refresh_rating(self, product: Product) -> None:
        rating, count = await self.repository.review_stats(product.id)
        product.rating = rating
        product.review_count = count
