"""Wishlist service."""

from collections.abc import Sequence

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.catalog.models import Product
from storefront.catalog.repository import ProductRepository
from storefront.domain.exceptions import (
    AlreadyInWishlistError,
    NotInWishlistError,
    ProductNotFoundError,
)
from storefront.infrastructure.models import WishlistItemModel

logger = structlog.get_logger()


class WishlistService:
    """Saved products per user."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.catalog = ProductRepository(session)

    async def list(self, user_id: str) -> Sequence[Product]:
        """Get wishlisted products that still exist, most recently saved first."""
        result = await self.session.execute(
            select(Product)
            .join(WishlistItemModel, WishlistItemModel.product_id == Product.id)
            .where(WishlistItemModel.user_id == user_id)
            .options(selectinload(Product.variants))
            .order_by(WishlistItemModel.created_at.desc())
        )
        return result.scalars().all()

    async def add(self, user_id: str, product_id: str) -> Sequence[Product]:
        """Save a product.

        Raises:
            ProductNotFoundError: If the product does not exist.
            AlreadyInWishlistError: If it is already saved.
        """
        if await self.catalog.find_product(product_id) is None:
            raise ProductNotFoundError(product_id)

        existing = await self.session.execute(
            select(WishlistItemModel.id).where(
                WishlistItemModel.user_id == user_id,
                WishlistItemModel.product_id == product_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise AlreadyInWishlistError(product_id)

        self.session.add(WishlistItemModel(user_id=user_id, product_id=product_id))
        await self.session.commit()
        logger.info("Wishlist item added", user_id=user_id, product_id=product_id)
        return await self.list(user_id)

    async def remove(self, user_id: str, product_id: str) -> Sequence[Product]:
        """Unsave a product.

        Raises:
            NotInWishlistError: If it was not saved.
        """
        result = await self.session.execute(
            delete(WishlistItemModel).where(
                WishlistItemModel.user_id == user_id,
                WishlistItemModel.product_id == product_id,
            )
        )
        if result.rowcount == 0:
            raise NotInWishlistError(product_id)

        await self.session.commit()
        logger.info("Wishlist item removed", user_id=user_id, product_id=product_id)
        return await self.list(user_id)
