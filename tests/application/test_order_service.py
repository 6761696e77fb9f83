"""Tests for the order lifecycle service."""

import pytest

from storefront.application.cart_service import CartService
from storefront.application.order_pipeline import OrderPipeline
from storefront.application.order_service import OrderService
from storefront.domain.exceptions import (
    InvalidStateTransitionError,
    NotAuthorizedError,
    OrderNotCancellableError,
    OrderNotFoundError,
)
from storefront.domain.state_machines import OrderStatus
from storefront.domain.value_objects import Address

HOME = Address(street="4 Park Street", city="Kolkata", state="WB", postal_code="700016")


@pytest.fixture
def place(session_factory):
    """Place an order of ``quantity`` units for a user."""

    async def _place(user, product_id: str, quantity: int = 1):
        async with session_factory() as s:
            await CartService(s).add_or_update_line(user.id, product_id, quantity)
            return await OrderPipeline(s).place_order(user, shipping_address=HOME)

    return _place


class TestReadOrders:
    """Tests for listing and fetching orders."""

    async def test_user_sees_only_own_orders(self, session, make_user, make_product, place) -> None:
        """list_user_orders returns the caller's orders, newest first."""
        alice = await make_user("alice")
        bob = await make_user("bob")
        product = await make_product(stock=10)
        first = await place(alice, product.id)
        second = await place(alice, product.id)
        await place(bob, product.id)

        orders = await OrderService(session).list_user_orders(alice)

        assert {o.id for o in orders} == {first.id, second.id}
        assert all(o.user_id == alice.id for o in orders)

    async def test_get_order_checks_ownership(self, session, make_user, make_admin, make_product, place) -> None:
        """Owners and admins may read an order, other shoppers may not."""
        owner = await make_user("owner")
        stranger = await make_user("stranger")
        admin = await make_admin()
        product = await make_product()
        order = await place(owner, product.id)
        service = OrderService(session)

        assert (await service.get_order(owner, order.id)).id == order.id
        assert (await service.get_order(admin, order.id)).id == order.id
        with pytest.raises(NotAuthorizedError):
            await service.get_order(stranger, order.id)

    async def test_get_missing_order(self, session, make_user) -> None:
        """Unknown order ids are not found."""
        user = await make_user()

        with pytest.raises(OrderNotFoundError):
            await OrderService(session).get_order(user, "missing")

    async def test_admin_listing_filters_and_pages(
        self, session, make_user, make_admin, make_product, place
    ) -> None:
        """Admins page through all orders and can filter by status."""
        user = await make_user()
        admin = await make_admin()
        product = await make_product(stock=10)
        orders = [await place(user, product.id) for _ in range(3)]
        service = OrderService(session)
        await service.update_status(admin, orders[0].id, OrderStatus.CONFIRMED)

        page = await service.admin_list_orders(page=1, page_size=2)
        assert page.total == 3
        assert len(page.orders) == 2
        assert page.has_more

        last = await service.admin_list_orders(page=2, page_size=2)
        assert len(last.orders) == 1
        assert not last.has_more

        confirmed = await service.admin_list_orders(status=OrderStatus.CONFIRMED)
        assert [o.id for o in confirmed.orders] == [orders[0].id]


class TestUpdateStatus:
    """Tests for admin status transitions."""

    async def test_full_lifecycle_marks_cod_paid(
        self, session, make_user, make_admin, make_product, place
    ) -> None:
        """Walking an order to delivered records history and marks COD paid."""
        user = await make_user()
        admin = await make_admin()
        product = await make_product()
        order = await place(user, product.id)
        service = OrderService(session)

        await service.update_status(admin, order.id, OrderStatus.CONFIRMED)
        await service.update_status(admin, order.id, OrderStatus.PROCESSING)
        shipped = await service.update_status(
            admin,
            order.id,
            OrderStatus.SHIPPED,
            tracking_number="TRK123",
            shipping_carrier="BlueDart",
        )
        assert shipped.tracking_number == "TRK123"
        assert shipped.shipping_carrier == "BlueDart"
        assert shipped.is_paid is False

        await service.update_status(admin, order.id, OrderStatus.OUT_FOR_DELIVERY)
        delivered = await service.update_status(admin, order.id, OrderStatus.DELIVERED)

        assert delivered.status == OrderStatus.DELIVERED.value
        assert delivered.is_paid is True
        assert delivered.paid_at is not None
        assert delivered.delivered_at is not None
        assert [h.to_status for h in delivered.status_history] == [
            "pending",
            "confirmed",
            "processing",
            "shipped",
            "out_for_delivery",
            "delivered",
        ]
        assert delivered.status_history[-1].from_status == "out_for_delivery"
        assert delivered.status_history[-1].actor == f"admin:{admin.id}"

    async def test_skipping_a_step_rejected(
        self, session, make_user, make_admin, make_product, place
    ) -> None:
        """Transitions move one step at a time."""
        user = await make_user()
        admin = await make_admin()
        product = await make_product()
        order = await place(user, product.id)

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            await OrderService(session).update_status(admin, order.id, OrderStatus.SHIPPED)

        assert exc_info.value.error_code == "INVALID_STATE_TRANSITION"
        assert exc_info.value.details["allowed_transitions"] == ["confirmed", "cancelled"]

    async def test_shopper_cannot_update(self, session, make_user, make_product, place) -> None:
        """Only admins change order status."""
        user = await make_user()
        product = await make_product()
        order = await place(user, product.id)

        with pytest.raises(NotAuthorizedError):
            await OrderService(session).update_status(user, order.id, OrderStatus.CONFIRMED)

    async def test_cancel_through_status_restores_stock(
        self, session, make_user, make_admin, make_product, place, stock_of
    ) -> None:
        """Setting status to cancelled goes through cancellation and returns stock."""
        user = await make_user()
        admin = await make_admin()
        product = await make_product(stock=5)
        order = await place(user, product.id, 2)
        service = OrderService(session)
        await service.update_status(admin, order.id, OrderStatus.CONFIRMED)

        cancelled = await service.update_status(
            admin, order.id, OrderStatus.CANCELLED, reason="Out of delivery area"
        )

        assert cancelled.status == OrderStatus.CANCELLED.value
        assert cancelled.cancelled_reason == "Out of delivery area"
        assert await stock_of(product.id) == 5

    async def test_refund_after_delivery_only(
        self, session, make_user, make_admin, make_product, place
    ) -> None:
        """Refunds are only reachable from delivered, and are terminal."""
        user = await make_user()
        admin = await make_admin()
        product = await make_product()
        order = await place(user, product.id)
        service = OrderService(session)

        with pytest.raises(InvalidStateTransitionError):
            await service.update_status(admin, order.id, OrderStatus.REFUNDED)

        for target in (
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.OUT_FOR_DELIVERY,
            OrderStatus.DELIVERED,
            OrderStatus.REFUNDED,
        ):
            await service.update_status(admin, order.id, target)

        with pytest.raises(OrderNotCancellableError):
            await service.update_status(admin, order.id, OrderStatus.CANCELLED)
