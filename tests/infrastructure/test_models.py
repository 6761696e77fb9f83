"""Tests for table-level constraints."""

from decimal import Decimal

import pytest
from sqlalchemy import CheckConstraint
from sqlalchemy.exc import IntegrityError

from storefront.infrastructure.models import CartItemModel, CartModel


class TestCartItemConstraints:
    """Tests for the cart line quantity constraint."""

    def test_quantity_constraint_declared(self) -> None:
        """The cart_items table carries the positive-quantity check."""
        checks = {
            c.name for c in CartItemModel.__table__.constraints if isinstance(c, CheckConstraint)
        }

        assert "ck_cart_items_quantity_positive" in checks

    async def test_zero_quantity_rejected(self, session) -> None:
        """The database refuses a line with no units."""
        cart = CartModel(user_id="user-1")
        cart.items.append(CartItemModel(product_id="p-1", quantity=0, price=Decimal("10.00")))
        session.add(cart)

        with pytest.raises(IntegrityError):
            await session.flush()
        await session.rollback()
