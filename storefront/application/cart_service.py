"""Cart service.

Keeps each user's cart consistent with the live catalog:
- one line per (product, variant), merged on repeat adds
- quantities never exceed current stock at the time of the change
- the price snapshot is refreshed on every change to a line
- lines whose product or variant disappears are pruned, both when the
  catalog publishes a removal and lazily when the cart is read; a line
  without a variant is pruned once its product starts selling variants
"""

from dataclasses import dataclass, field
from decimal import Decimal

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.catalog.models import Product, ProductVariant
from storefront.catalog.repository import ProductRepository
from storefront.domain.events import (
    DomainEvent,
    ProductRemoved,
    ProductVariantsIntroduced,
    VariantRemoved,
)
from storefront.domain.exceptions import (
    CartItemNotFoundError,
    InsufficientStockError,
    InvalidQuantityError,
    ProductNotFoundError,
    VariantNotFoundError,
    VariantRequiredError,
)
from storefront.domain.value_objects import round_money
from storefront.infrastructure.models import CartItemModel, CartModel

logger = structlog.get_logger()


def _line_is_stale(product: Product, item: CartItemModel) -> bool:
    """Whether a line no longer points at something sellable."""
    if item.variant_id:
        return product.find_variant(item.variant_id) is None
    return bool(product.variants)


# ============================================================================
# DTOs
# ============================================================================


@dataclass
class CartLineView:
    """Cart line joined with live catalog details."""

    id: str
    product_id: str
    variant_id: str | None
    quantity: int
    price: Decimal
    line_total: Decimal
    product_name: str | None = None
    variant_label: str | None = None
    available_stock: int | None = None


@dataclass
class CartView:
    """A user's cart. ``id`` is None until the first line is added."""

    user_id: str
    id: str | None = None
    items: list[CartLineView] = field(default_factory=list)
    total_price: Decimal = Decimal("0.00")

    @property
    def item_count(self) -> int:
        """Total units across all lines."""
        return sum(item.quantity for item in self.items)


# ============================================================================
# Service
# ============================================================================


class CartService:
    """Service for cart operations.

    Every mutation commits its own transaction and recomputes the cart
    total before doing so.
    """

    def __init__(self, session: AsyncSession, catalog: ProductRepository | None = None) -> None:
        """Initialize service.

        Args:
            session: Async SQLAlchemy session.
            catalog: Catalog lookup, defaults to a repository on the same session.
        """
        self.session = session
        self.catalog = catalog or ProductRepository(session)

    # ========================================================================
    # Loading
    # ========================================================================

    async def _load_cart(self, user_id: str) -> CartModel | None:
        result = await self.session.execute(
            select(CartModel)
            .where(CartModel.user_id == user_id)
            .options(selectinload(CartModel.items))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_or_create_cart(self, user_id: str) -> CartModel:
        cart = await self._load_cart(user_id)
        if cart is not None:
            return cart

        cart = CartModel(user_id=user_id, total_price=Decimal("0.00"), items=[])
        self.session.add(cart)
        try:
            await self.session.flush()
        except IntegrityError:
            # Another request created the cart first
            await self.session.rollback()
            cart = await self._load_cart(user_id)
            if cart is None:
                raise
        return cart

    async def _resolve(
        self, product_id: str, variant_id: str | None
    ) -> tuple[Product, ProductVariant | None]:
        product = await self.catalog.find_product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)

        if variant_id:
            variant = self.catalog.resolve_variant(product, variant_id)
            if variant is None:
                raise VariantNotFoundError(product_id, variant_id)
            return product, variant

        if product.variants:
            raise VariantRequiredError(product_id)
        return product, None

    @staticmethod
    def _find_line(cart: CartModel, line_id: str) -> CartItemModel:
        for item in cart.items:
            if item.id == line_id:
                return item
        raise CartItemNotFoundError(line_id)

    async def _persist(self, cart: CartModel) -> None:
        cart.recalculate()
        await self.session.flush()
        await self.session.commit()

    async def _to_view(self, user_id: str, cart: CartModel | None) -> CartView:
        if cart is None:
            return CartView(user_id=user_id)

        lines = []
        for item in cart.items:
            product = await self.catalog.find_product(item.product_id)
            variant = product.find_variant(item.variant_id) if product and item.variant_id else None
            lines.append(
                CartLineView(
                    id=item.id,
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    quantity=item.quantity,
                    price=Decimal(item.price),
                    line_total=round_money(Decimal(item.price) * item.quantity),
                    product_name=product.name if product else None,
                    variant_label=variant.label if variant else None,
                    available_stock=(
                        self.catalog.available_stock(product, variant) if product else None
                    ),
                )
            )
        return CartView(
            user_id=user_id,
            id=cart.id,
            items=lines,
            total_price=Decimal(cart.total_price),
        )

    # ========================================================================
    # Operations
    # ========================================================================

    async def get_cart(self, user_id: str) -> CartView:
        """Get the user's cart, dropping lines whose product or variant is gone.

        Args:
            user_id: Cart owner.

        Returns:
            Cart view (empty when the user has no cart yet).
        """
        cart = await self._load_cart(user_id)
        if cart is None:
            return CartView(user_id=user_id)

        stale = []
        for item in cart.items:
            product = await self.catalog.find_product(item.product_id)
            if product is None or _line_is_stale(product, item):
                stale.append(item)

        if stale:
            for item in stale:
                cart.items.remove(item)
            await self._persist(cart)
            logger.info("Cart pruned on read", user_id=user_id, removed=len(stale))

        return await self._to_view(user_id, cart)

    async def add_or_update_line(
        self,
        user_id: str,
        product_id: str,
        quantity: int,
        variant_id: str | None = None,
    ) -> CartView:
        """Add units of a product (or variant) to the cart.

        Repeat adds of the same (product, variant) merge into one line. The
        merged quantity must fit in current stock, and the line's price is
        refreshed to the current catalog price.

        Args:
            user_id: Cart owner.
            product_id: Product to add.
            quantity: Units to add, at least 1.
            variant_id: Variant to add, required for products sold in variants.

        Returns:
            Updated cart view.

        Raises:
            InvalidQuantityError: If quantity is below 1.
            ProductNotFoundError: If the product does not exist.
            VariantNotFoundError: If the variant does not exist.
            VariantRequiredError: If the product has variants and none was given.
            InsufficientStockError: If the merged quantity exceeds stock.
        """
        if quantity < 1:
            raise InvalidQuantityError(quantity)

        product, variant = await self._resolve(product_id, variant_id)
        stock = self.catalog.available_stock(product, variant)
        price = self.catalog.current_price(product, variant)
        variant_id = variant.id if variant is not None else None
        product_name = product.name

        cart = await self._get_or_create_cart(user_id)
        line = next(
            (i for i in cart.items if i.product_id == product_id and i.variant_id == variant_id),
            None,
        )
        new_quantity = (line.quantity if line else 0) + quantity
        if new_quantity > stock:
            await self.session.rollback()
            raise InsufficientStockError(
                product_name,
                requested=new_quantity,
                available=stock,
                product_id=product_id,
                variant_id=variant_id,
            )

        if line is None:
            cart.items.append(
                CartItemModel(
                    product_id=product_id,
                    variant_id=variant_id,
                    quantity=new_quantity,
                    price=price,
                )
            )
        else:
            line.quantity = new_quantity
            line.price = price

        await self._persist(cart)
        logger.info(
            "Cart line added",
            user_id=user_id,
            product_id=product_id,
            variant_id=variant_id,
            quantity=new_quantity,
        )
        return await self._to_view(user_id, cart)

    async def set_line_quantity(self, user_id: str, line_id: str, quantity: int) -> CartView:
        """Set the quantity of a cart line. Zero removes the line.

        Args:
            user_id: Cart owner.
            line_id: Cart line ID.
            quantity: New quantity.

        Returns:
            Updated cart view.

        Raises:
            InvalidQuantityError: If quantity is negative.
            CartItemNotFoundError: If the line is not in the user's cart.
            InsufficientStockError: If quantity exceeds current stock.
        """
        if quantity < 0:
            raise InvalidQuantityError(quantity, "Quantity cannot be negative")

        cart = await self._load_cart(user_id)
        if cart is None:
            raise CartItemNotFoundError(line_id)
        line = self._find_line(cart, line_id)

        if quantity == 0:
            cart.items.remove(line)
        else:
            product, variant = await self._resolve(line.product_id, line.variant_id)
            stock = self.catalog.available_stock(product, variant)
            if quantity > stock:
                raise InsufficientStockError(
                    product.name,
                    requested=quantity,
                    available=stock,
                    product_id=product.id,
                    variant_id=line.variant_id,
                )
            line.quantity = quantity
            line.price = self.catalog.current_price(product, variant)

        await self._persist(cart)
        logger.info("Cart line updated", user_id=user_id, line_id=line_id, quantity=quantity)
        return await self._to_view(user_id, cart)

    async def remove_line(self, user_id: str, line_id: str) -> CartView:
        """Remove one line from the cart.

        Raises:
            CartItemNotFoundError: If the line is not in the user's cart.
        """
        cart = await self._load_cart(user_id)
        if cart is None:
            raise CartItemNotFoundError(line_id)

        cart.items.remove(self._find_line(cart, line_id))
        await self._persist(cart)
        logger.info("Cart line removed", user_id=user_id, line_id=line_id)
        return await self._to_view(user_id, cart)

    async def clear(self, user_id: str) -> CartView:
        """Remove every line from the cart."""
        cart = await self._load_cart(user_id)
        if cart is None:
            return CartView(user_id=user_id)

        cart.items.clear()
        await self._persist(cart)
        logger.info("Cart cleared", user_id=user_id)
        return await self._to_view(user_id, cart)

    # ========================================================================
    # Catalog removal cascade
    # ========================================================================

    async def cleanup_after_catalog_change(
        self,
        product_id: str,
        variant_id: str | None = None,
        without_variant: bool = False,
    ) -> int:
        """Drop every cart line that references a removed product or variant.

        Safe to run more than once for the same removal.

        Args:
            product_id: Removed product, or parent of the removed variant.
            variant_id: Removed variant; None removes all lines for the product.
            without_variant: Only drop the product's lines that carry no
                variant (the product now sells in variants).

        Returns:
            Number of lines removed.
        """
        conditions = [CartItemModel.product_id == product_id]
        if variant_id is not None:
            conditions.append(CartItemModel.variant_id == variant_id)
        elif without_variant:
            conditions.append(CartItemModel.variant_id.is_(None))

        result = await self.session.execute(
            select(CartItemModel.cart_id).where(*conditions).distinct()
        )
        cart_ids = list(result.scalars().all())
        if not cart_ids:
            return 0

        deleted = await self.session.execute(
            delete(CartItemModel)
            .where(*conditions)
            .execution_options(synchronize_session=False)
        )

        line_total_sum = (
            select(func.coalesce(func.sum(CartItemModel.quantity * CartItemModel.price), 0))
            .where(CartItemModel.cart_id == CartModel.id)
            .scalar_subquery()
        )
        await self.session.execute(
            update(CartModel)
            .where(CartModel.id.in_(cart_ids))
            .values(total_price=line_total_sum)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

        logger.info(
            "Cart lines removed after catalog change",
            product_id=product_id,
            variant_id=variant_id,
            carts=len(cart_ids),
            lines=deleted.rowcount,
        )
        return deleted.rowcount

    async def handle_catalog_event(self, event: DomainEvent) -> None:
        """Catalog subscriber: prune carts after a committed catalog change."""
        if isinstance(event, VariantRemoved):
            await self.cleanup_after_catalog_change(event.product_id, event.variant_id)
        elif isinstance(event, ProductRemoved):
            await self.cleanup_after_catalog_change(event.product_id)
        elif isinstance(event, ProductVariantsIntroduced):
            await self.cleanup_after_catalog_change(event.product_id, without_variant=True)
