"""Product repository for database operations.

Provides product lookups with filtering and sorting, plus the stock
primitives the order pipeline relies on. Stock is only ever changed with
conditional UPDATE statements so two transactions cannot both take the
last units.
"""

from collections.abc import Sequence
from decimal import Decimal

from sqlalchemy import String, and_, cast, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.catalog.models import Product, ProductReview, ProductVariant
from storefront.domain.exceptions import InsufficientStockError


class ProductRepository:
    """Repository for Product database operations.

    Handles all database interactions for products including
    filtering, sorting, pagination and stock movements.

    Example usage:
        async with async_session_factory() as session:
            repo = ProductRepository(session)
            products = await repo.find_all(
                category="Men",
                in_stock=True,
                limit=20,
            )
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self.session = session

    async def save(self, product: Product) -> Product:
        """Save a product to database.

        Args:
            product: Product to save.

        Returns:
            Saved product.
        """
        self.session.add(product)
        await self.session.flush()
        return product

    async def delete(self, product: Product) -> None:
        """Delete a product with its variants and reviews.

        Args:
            product: Product loaded through ``get_by_id(..., include_reviews=True)``.
        """
        await self.session.delete(product)
        await self.session.flush()

    async def get_by_id(
        self,
        product_id: str,
        include_variants: bool = True,
        include_reviews: bool = False,
        lock: bool = False,
    ) -> Product | None:
        """Get product by ID.

        Args:
            product_id: Product ID.
            include_variants: Whether to eagerly load variants.
            include_reviews: Whether to eagerly load reviews.
            lock: Take a row lock for the rest of the transaction.

        Returns:
            Product if found, None otherwise.
        """
        query = select(Product).where(Product.id == product_id)

        if include_variants:
            query = query.options(selectinload(Product.variants))
        if include_reviews:
            query = query.options(selectinload(Product.reviews))
        if lock:
            query = query.with_for_update(of=Product)

        # Always refresh from the row so stock reflects the latest commit
        query = query.execution_options(populate_existing=True)

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def slug_exists(self, slug: str, exclude_id: str | None = None) -> bool:
        """Check whether a slug is taken.

        Args:
            slug: Candidate slug.
            exclude_id: Product ID to ignore (the product being renamed).

        Returns:
            True if another product already uses the slug.
        """
        query = select(func.count(Product.id)).where(Product.slug == slug)
        if exclude_id is not None:
            query = query.where(Product.id != exclude_id)
        result = await self.session.execute(query)
        return result.scalar_one() > 0

    # ========================================================================
    # Catalog lookup used by cart and order pipeline
    # ========================================================================

    async def find_product(self, product_id: str, lock: bool = False) -> Product | None:
        """Read the current catalog record for a product.

        Args:
            product_id: Product ID.
            lock: Take a row lock (SELECT ... FOR UPDATE) where supported.

        Returns:
            Product with variants loaded, or None.
        """
        return await self.get_by_id(product_id, include_variants=True, lock=lock)

    @staticmethod
    def resolve_variant(product: Product, variant_id: str) -> ProductVariant | None:
        """Get a variant of a loaded product.

        Args:
            product: Product with variants loaded.
            variant_id: Variant ID.

        Returns:
            The variant, or None.
        """
        return product.find_variant(variant_id)

    @staticmethod
    def current_price(product: Product, variant: ProductVariant | None = None) -> Decimal:
        """Get the price a buyer pays right now.

        Args:
            product: Product.
            variant: Chosen variant, if any.

        Returns:
            The variant's override price when set, otherwise the product's final price.
        """
        if variant is not None and variant.price is not None:
            return Decimal(variant.price)
        return Decimal(product.final_price)

    @staticmethod
    def available_stock(product: Product, variant: ProductVariant | None = None) -> int:
        """Get stock for a product or one of its variants."""
        return variant.stock if variant is not None else product.stock

    async def decrement_stock(
        self,
        product: Product,
        variant: ProductVariant | None,
        quantity: int,
    ) -> None:
        """Take units out of stock.

        The variant row (if any) and the product's aggregate row are each
        decremented only when they still hold at least ``quantity`` units.

        Args:
            product: Product being bought.
            variant: Variant being bought, if any.
            quantity: Units to take.

        Raises:
            InsufficientStockError: If a concurrent order already took the stock.
        """
        if variant is not None:
            result = await self.session.execute(
                update(ProductVariant)
                .where(ProductVariant.id == variant.id, ProductVariant.stock >= quantity)
                .values(stock=ProductVariant.stock - quantity)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                available = await self._current_variant_stock(variant.id)
                raise InsufficientStockError(
                    f"{product.name} ({variant.label})",
                    requested=quantity,
                    available=available,
                    product_id=product.id,
                    variant_id=variant.id,
                )

        result = await self.session.execute(
            update(Product)
            .where(Product.id == product.id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            available = await self._current_product_stock(product.id)
            raise InsufficientStockError(
                product.name,
                requested=quantity,
                available=available,
                product_id=product.id,
                variant_id=variant.id if variant is not None else None,
            )

    async def restore_stock(
        self,
        product_id: str,
        variant_id: str | None,
        quantity: int,
    ) -> bool:
        """Return units to stock.

        Args:
            product_id: Product ID.
            variant_id: Variant ID, if the line was for a variant.
            quantity: Units to return.

        Returns:
            False if the product or the line's variant no longer exists,
            in which case nothing is returned to stock.
        """
        if variant_id is not None:
            result = await self.session.execute(
                update(ProductVariant)
                .where(ProductVariant.id == variant_id, ProductVariant.product_id == product_id)
                .values(stock=ProductVariant.stock + quantity)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return False

        result = await self.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def _current_product_stock(self, product_id: str) -> int:
        result = await self.session.execute(select(Product.stock).where(Product.id == product_id))
        return result.scalar_one_or_none() or 0

    async def _current_variant_stock(self, variant_id: str) -> int:
        result = await self.session.execute(
            select(ProductVariant.stock).where(ProductVariant.id == variant_id)
        )
        return result.scalar_one_or_none() or 0

    # ========================================================================
    # Listing
    # ========================================================================

    def _build_conditions(
        self,
        search: str | None = None,
        category: str | None = None,
        sub_category: str | None = None,
        brand: str | None = None,
        tags: list[str] | None = None,
        min_price: Decimal | None = None,
        max_price: Decimal | None = None,
        in_stock: bool | None = None,
        active_only: bool = True,
    ) -> list:
        conditions = []

        if active_only:
            conditions.append(Product.is_active.is_(True))

        if category is not None:
            conditions.append(Product.category == category)

        if sub_category is not None:
            conditions.append(Product.sub_category == sub_category)

        if brand is not None:
            conditions.append(Product.brand == brand)

        wanted = [t.strip().lower() for t in tags or [] if t.strip()]
        if wanted:
            # tags is a JSON array; match any quoted element in its text form
            tags_text = func.lower(cast(Product.tags, String))
            conditions.append(or_(*(tags_text.contains(f'"{t}"') for t in wanted)))

        if min_price is not None:
            conditions.append(Product.final_price >= min_price)

        if max_price is not None:
            conditions.append(Product.final_price <= max_price)

        if in_stock is True:
            conditions.append(Product.stock > 0)
        elif in_stock is False:
            conditions.append(Product.stock <= 0)

        if search:
            search_pattern = f"%{search}%"
            conditions.append(
                or_(
                    Product.name.ilike(search_pattern),
                    Product.description.ilike(search_pattern),
                    Product.brand.ilike(search_pattern),
                    Product.category.ilike(search_pattern),
                )
            )

        return conditions

    async def find_all(
        self,
        search: str | None = None,
        category: str | None = None,
        sub_category: str | None = None,
        brand: str | None = None,
        tags: list[str] | None = None,
        min_price: Decimal | None = None,
        max_price: Decimal | None = None,
        in_stock: bool | None = None,
        active_only: bool = True,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        limit: int = 10,
        offset: int = 0,
        include_variants: bool = True,
    ) -> Sequence[Product]:
        """Find products with filtering, sorting, and pagination.

        Args:
            search: Search in name, description, brand and category.
            category: Filter by category.
            sub_category: Filter by sub-category.
            brand: Filter by brand.
            tags: Match products carrying any of these tags (case-insensitive).
            min_price: Minimum final price.
            max_price: Maximum final price.
            in_stock: Filter by stock availability.
            active_only: Hide inactive products.
            sort_by: Sort field (price, rating, created_at, name).
            sort_order: Sort order (asc, desc).
            limit: Maximum results.
            offset: Result offset for pagination.
            include_variants: Whether to eagerly load variants.

        Returns:
            Sequence of matching products.
        """
        query = select(Product)

        conditions = self._build_conditions(
            search=search,
            category=category,
            sub_category=sub_category,
            brand=brand,
            tags=tags,
            min_price=min_price,
            max_price=max_price,
            in_stock=in_stock,
            active_only=active_only,
        )
        if conditions:
            query = query.where(and_(*conditions))

        # Sorting
        sort_column = self._get_sort_column(sort_by)
        if sort_order.lower() == "desc":
            query = query.order_by(sort_column.desc(), Product.id)
        else:
            query = query.order_by(sort_column.asc(), Product.id)

        # Pagination
        query = query.limit(limit).offset(offset)

        # Eager loading
        if include_variants:
            query = query.options(selectinload(Product.variants))

        result = await self.session.execute(query)
        return result.scalars().all()

    async def count(self, **filters) -> int:
        """Count products matching filters.

        Args:
            **filters: Same filter keywords as ``find_all``.

        Returns:
            Count of matching products.
        """
        query = select(func.count(Product.id))

        conditions = self._build_conditions(**filters)
        if conditions:
            query = query.where(and_(*conditions))

        result = await self.session.execute(query)
        return result.scalar_one()

    def _get_sort_column(self, sort_by: str):
        """Get SQLAlchemy column for sorting.

        Args:
            sort_by: Sort field name.

        Returns:
            SQLAlchemy column.
        """
        sort_columns = {
            "price": Product.final_price,
            "rating": Product.rating,
            "created_at": Product.created_at,
            "name": Product.name,
        }
        return sort_columns.get(sort_by, Product.created_at)

    # ========================================================================
    # Reviews
    # ========================================================================

    async def get_review(self, review_id: str) -> ProductReview | None:
        """Get a review by ID."""
        result = await self.session.execute(
            select(ProductReview).where(ProductReview.id == review_id)
        )
        return result.scalar_one_or_none()

    async def get_user_review(self, product_id: str, user_id: str) -> ProductReview | None:
        """Get the review a user left on a product, if any."""
        result = await self.session.execute(
            select(ProductReview).where(
                ProductReview.product_id == product_id,
                ProductReview.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_reviews(
        self,
        product_id: str,
        status: str | None = "approved",
        limit: int = 20,
        offset: int = 0,
    ) -> Sequence[ProductReview]:
        """List reviews for a product, newest first.

        Args:
            product_id: Product ID.
            status: Only reviews in this status; None for all.
            limit: Maximum results.
            offset: Result offset.

        Returns:
            Reviews.
        """
        query = select(ProductReview).where(ProductReview.product_id == product_id)
        if status is not None:
            query = query.where(ProductReview.status == status)
        query = query.order_by(ProductReview.created_at.desc()).limit(limit).offset(offset)
        result = await self.session.execute(query)
        return result.scalars().all()

    async def review_stats(self, product_id: str) -> tuple[Decimal, int]:
        """Average rating and count of approved reviews.

        Returns:
            (average rounded to one decimal, count)
        """
        result = await self.session.execute(
            select(func.avg(ProductReview.rating), func.count(ProductReview.id)).where(
                ProductReview.product_id == product_id,
                ProductReview.status == "approved",
            )
        )
        avg, count = result.one()
        if not count:
            return Decimal("0.0"), 0
        return Decimal(str(avg)).quantize(Decimal("0.1")), count
