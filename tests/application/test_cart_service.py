"""Tests for the cart service."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from storefront.application.cart_service import CartService
from storefront.catalog.service import CatalogService, VariantData
from storefront.domain.exceptions import (
    CartItemNotFoundError,
    InsufficientStockError,
    InvalidQuantityError,
    ProductNotFoundError,
    VariantNotFoundError,
    VariantRequiredError,
)
from storefront.infrastructure.models import CartItemModel


@pytest.fixture
def carts(session) -> CartService:
    return CartService(session)


class TestAddOrUpdateLine:
    """Tests for adding products to the cart."""

    async def test_empty_cart_for_new_user(self, carts, make_user) -> None:
        """A user without a cart sees an empty one."""
        user = await make_user()

        cart = await carts.get_cart(user.id)

        assert cart.id is None
        assert cart.items == []
        assert cart.total_price == Decimal("0.00")

    async def test_add_line_snapshots_price(self, carts, make_user, make_product) -> None:
        """A new line carries the product's discounted price."""
        user = await make_user()
        product = await make_product(price="200.00", discount="10")

        cart = await carts.add_or_update_line(user.id, product.id, 2)

        assert len(cart.items) == 1
        line = cart.items[0]
        assert line.price == Decimal("180.00")
        assert line.line_total == Decimal("360.00")
        assert line.product_name == "Cotton Tee"
        assert line.available_stock == 10
        assert cart.total_price == Decimal("360.00")
        assert cart.item_count == 2

    async def test_repeat_add_merges(self, carts, make_user, make_product) -> None:
        """Adding the same product twice increases one line's quantity."""
        user = await make_user()
        product = await make_product(stock=5)

        await carts.add_or_update_line(user.id, product.id, 2)
        cart = await carts.add_or_update_line(user.id, product.id, 3)

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 5
        assert cart.total_price == Decimal("500.00")

    async def test_merged_quantity_limited_by_stock(self, carts, make_user, make_product) -> None:
        """The merged quantity may not exceed stock; the cart is unchanged."""
        user = await make_user()
        product = await make_product(stock=4)
        await carts.add_or_update_line(user.id, product.id, 3)

        with pytest.raises(InsufficientStockError) as exc_info:
            await carts.add_or_update_line(user.id, product.id, 2)

        assert exc_info.value.details["requested"] == 5
        assert exc_info.value.details["available"] == 4
        cart = await carts.get_cart(user.id)
        assert cart.items[0].quantity == 3

    async def test_zero_quantity_rejected(self, carts, make_user, make_product) -> None:
        """Quantity below one is invalid."""
        user = await make_user()
        product = await make_product()

        with pytest.raises(InvalidQuantityError):
            await carts.add_or_update_line(user.id, product.id, 0)

    async def test_unknown_product(self, carts, make_user) -> None:
        """Adding a missing product fails."""
        user = await make_user()

        with pytest.raises(ProductNotFoundError):
            await carts.add_or_update_line(user.id, "missing", 1)

    async def test_variant_required(self, carts, make_user, make_product) -> None:
        """Products sold in variants need a variant."""
        user = await make_user()
        product = await make_product(variants=[VariantData(size="M", stock=3)])

        with pytest.raises(VariantRequiredError):
            await carts.add_or_update_line(user.id, product.id, 1)

    async def test_unknown_variant(self, carts, make_user, make_product) -> None:
        """A variant id that is not the product's fails."""
        user = await make_user()
        product = await make_product(variants=[VariantData(size="M", stock=3)])

        with pytest.raises(VariantNotFoundError):
            await carts.add_or_update_line(user.id, product.id, 1, variant_id="nope")

    async def test_variant_lines_are_separate(self, carts, make_user, make_product) -> None:
        """Different variants of one product get their own lines and prices."""
        user = await make_user()
        product = await make_product(
            price="500.00",
            variants=[
                VariantData(size="M", color_name="Navy", stock=3),
                VariantData(size="L", color_name="Navy", stock=2, price=Decimal("550.00")),
            ],
        )
        medium, large = product.variants

        await carts.add_or_update_line(user.id, product.id, 2, variant_id=medium.id)
        cart = await carts.add_or_update_line(user.id, product.id, 1, variant_id=large.id)

        assert len(cart.items) == 2
        by_variant = {line.variant_id: line for line in cart.items}
        assert by_variant[medium.id].price == Decimal("500.00")
        assert by_variant[medium.id].variant_label == "M / Navy"
        assert by_variant[large.id].price == Decimal("550.00")
        assert by_variant[large.id].available_stock == 2
        assert cart.total_price == Decimal("1550.00")

    async def test_variant_stock_checked(self, carts, make_user, make_product) -> None:
        """Variant quantity is limited by the variant's own stock."""
        user = await make_user()
        product = await make_product(
            variants=[VariantData(size="M", stock=1), VariantData(size="L", stock=9)]
        )

        with pytest.raises(InsufficientStockError):
            await carts.add_or_update_line(user.id, product.id, 2, variant_id=product.variants[0].id)

    async def test_repeat_add_refreshes_price(
        self, carts, make_user, make_product, session_factory
    ) -> None:
        """A price change is picked up the next time the line changes."""
        user = await make_user()
        product = await make_product(price="100.00")
        await carts.add_or_update_line(user.id, product.id, 1)

        async with session_factory() as s:
            await CatalogService(s).update_product(product.id, {"price": Decimal("120.00")})

        cart = await carts.add_or_update_line(user.id, product.id, 1)

        assert cart.items[0].price == Decimal("120.00")
        assert cart.total_price == Decimal("240.00")


class TestLineChanges:
    """Tests for updating, removing and clearing lines."""

    async def test_set_quantity(self, carts, make_user, make_product) -> None:
        """Setting a quantity replaces it and recomputes the total."""
        user = await make_user()
        product = await make_product(stock=8)
        cart = await carts.add_or_update_line(user.id, product.id, 1)

        cart = await carts.set_line_quantity(user.id, cart.items[0].id, 6)

        assert cart.items[0].quantity == 6
        assert cart.total_price == Decimal("600.00")

    async def test_set_quantity_zero_removes(self, carts, make_user, make_product) -> None:
        """Quantity zero removes the line."""
        user = await make_user()
        product = await make_product()
        cart = await carts.add_or_update_line(user.id, product.id, 2)

        cart = await carts.set_line_quantity(user.id, cart.items[0].id, 0)

        assert cart.items == []
        assert cart.total_price == Decimal("0.00")

    async def test_set_quantity_above_stock(self, carts, make_user, make_product) -> None:
        """Setting more than stock fails."""
        user = await make_user()
        product = await make_product(stock=2)
        cart = await carts.add_or_update_line(user.id, product.id, 1)

        with pytest.raises(InsufficientStockError):
            await carts.set_line_quantity(user.id, cart.items[0].id, 3)

    async def test_negative_quantity(self, carts, make_user, make_product) -> None:
        """Negative quantities are invalid."""
        user = await make_user()
        product = await make_product()
        cart = await carts.add_or_update_line(user.id, product.id, 1)

        with pytest.raises(InvalidQuantityError):
            await carts.set_line_quantity(user.id, cart.items[0].id, -1)

    async def test_unknown_line(self, carts, make_user, make_product) -> None:
        """Lines in another user's cart are not found."""
        owner = await make_user("owner")
        other = await make_user("other")
        product = await make_product()
        cart = await carts.add_or_update_line(owner.id, product.id, 1)

        with pytest.raises(CartItemNotFoundError):
            await carts.set_line_quantity(other.id, cart.items[0].id, 2)
        with pytest.raises(CartItemNotFoundError):
            await carts.remove_line(other.id, cart.items[0].id)

    async def test_remove_line(self, carts, make_user, make_product) -> None:
        """Removing a line keeps the others."""
        user = await make_user()
        tee = await make_product("Tee")
        cap = await make_product("Cap", price="50.00")
        await carts.add_or_update_line(user.id, tee.id, 1)
        cart = await carts.add_or_update_line(user.id, cap.id, 2)
        tee_line = next(line for line in cart.items if line.product_id == tee.id)

        cart = await carts.remove_line(user.id, tee_line.id)

        assert [line.product_id for line in cart.items] == [cap.id]
        assert cart.total_price == Decimal("100.00")

    async def test_clear(self, carts, make_user, make_product) -> None:
        """Clearing empties the cart."""
        user = await make_user()
        product = await make_product()
        await carts.add_or_update_line(user.id, product.id, 2)

        cart = await carts.clear(user.id)

        assert cart.items == []
        assert cart.total_price == Decimal("0.00")


class TestCatalogRemoval:
    """Tests for pruning carts when the catalog changes."""

    async def test_pruned_on_read(self, carts, make_user, make_product, session_factory) -> None:
        """A deleted product disappears from the cart the next time it is read."""
        user = await make_user()
        gone = await make_product("Gone")
        kept = await make_product("Kept", price="40.00")
        await carts.add_or_update_line(user.id, gone.id, 1)
        await carts.add_or_update_line(user.id, kept.id, 1)

        async with session_factory() as s:
            await CatalogService(s).delete_product(gone.id)

        cart = await carts.get_cart(user.id)

        assert [line.product_id for line in cart.items] == [kept.id]
        assert cart.total_price == Decimal("40.00")

    async def test_cleanup_after_product_removal(
        self, carts, make_user, make_product, session_factory
    ) -> None:
        """Cleanup removes lines from every cart and is idempotent."""
        first = await make_user("first")
        second = await make_user("second")
        product = await make_product()
        await carts.add_or_update_line(first.id, product.id, 1)
        await carts.add_or_update_line(second.id, product.id, 2)

        async with session_factory() as s:
            removed = await CartService(s).cleanup_after_catalog_change(product.id)
            again = await CartService(s).cleanup_after_catalog_change(product.id)

        assert removed == 2
        assert again == 0
        for user in (first, second):
            cart = await carts.get_cart(user.id)
            assert cart.items == []
            assert cart.total_price == Decimal("0.00")

    async def test_variant_removal_keeps_siblings(
        self, carts, make_user, make_product, session_factory
    ) -> None:
        """Removing a variant through the catalog prunes only that variant's lines."""
        user = await make_user()
        product = await make_product(
            variants=[VariantData(size="S", stock=5), VariantData(size="M", stock=5)]
        )
        small, medium = product.variants
        await carts.add_or_update_line(user.id, product.id, 1, variant_id=small.id)
        await carts.add_or_update_line(user.id, product.id, 2, variant_id=medium.id)

        async with session_factory() as s:
            catalog = CatalogService(s, handlers=[CartService(s).handle_catalog_event])
            await catalog.delete_variant(product.id, small.id)

        cart = await carts.get_cart(user.id)

        assert [line.variant_id for line in cart.items] == [medium.id]
        assert cart.total_price == Decimal("200.00")

    async def test_plain_line_pruned_when_variants_introduced(
        self, carts, make_user, make_product, session_factory
    ) -> None:
        """A line without a variant is dropped once its product sells variants."""
        user = await make_user()
        product = await make_product(stock=5)
        kept = await make_product("Kept", price="40.00")
        await carts.add_or_update_line(user.id, product.id, 2)
        await carts.add_or_update_line(user.id, kept.id, 1)

        async with session_factory() as s:
            catalog = CatalogService(s, handlers=[CartService(s).handle_catalog_event])
            await catalog.update_product(product.id, {"variants": [VariantData(size="S", stock=4)]})

        async with session_factory() as s:
            result = await s.execute(
                select(CartItemModel.product_id).where(CartItemModel.product_id == product.id)
            )
            assert result.scalars().all() == []

        cart = await carts.get_cart(user.id)
        assert [line.product_id for line in cart.items] == [kept.id]
        assert cart.total_price == Decimal("40.00")

    async def test_plain_line_pruned_on_read_after_variants_introduced(
        self, carts, make_user, make_product, session_factory
    ) -> None:
        """Without a subscriber the stale line still goes on the next read."""
        user = await make_user()
        product = await make_product(stock=5)
        await carts.add_or_update_line(user.id, product.id, 2)

        async with session_factory() as s:
            await CatalogService(s).update_product(
                product.id, {"variants": [VariantData(size="S", stock=4)]}
            )

        cart = await carts.get_cart(user.id)

        assert cart.items == []
        assert cart.total_price == Decimal("0.00")
