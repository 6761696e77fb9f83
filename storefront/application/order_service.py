"""Order lifecycle service.

Handles everything after placement:
- Listing a user's orders and fetching one with ownership checks
- Admin listing with status filter and pagination
- Admin status updates along the order state machine, with history
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.application.order_pipeline import OrderPipeline
from storefront.application.order_repository import OrderRepository, record_status_change
from storefront.domain.exceptions import NotAuthorizedError, OrderNotFoundError
from storefront.domain.state_machines import OrderStatus, validate_order_transition
from storefront.domain.value_objects import PaymentMethod, Principal
from storefront.infrastructure.models import OrderModel

logger = structlog.get_logger()


@dataclass
class OrderPage:
    """One page of orders.

    Attributes:
        orders: Orders on this page.
        total: Total matching orders.
        page: Current page.
        page_size: Items per page.
    """

    orders: list[OrderModel] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 25

    @property
    def has_more(self) -> bool:
        """Whether another page follows."""
        return self.page * self.page_size < self.total


class OrderService:
    """Application service for reading and advancing orders.

    Cancellation, including admin status updates to ``cancelled``, goes
    through ``OrderPipeline.cancel_order`` so stock is always restored.
    """

    def __init__(self, session: AsyncSession, pipeline: OrderPipeline | None = None) -> None:
        """Initialize service.

        Args:
            session: Async SQLAlchemy session.
            pipeline: Pipeline used for cancellations.
        """
        self.session = session
        self.orders = OrderRepository(session)
        self.pipeline = pipeline or OrderPipeline(session)

    async def list_user_orders(self, principal: Principal) -> list[OrderModel]:
        """List the caller's orders, newest first."""
        return list(await self.orders.list_for_user(principal.id))

    async def get_order(self, principal: Principal, order_id: str) -> OrderModel:
        """Get an order the caller owns (or any order, for admins).

        Raises:
            OrderNotFoundError: If the order does not exist.
            NotAuthorizedError: If the caller is neither owner nor admin.
        """
        order = await self.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        if not principal.can_access(order.user_id):
            raise NotAuthorizedError()
        return order

    async def admin_list_orders(
        self,
        status: OrderStatus | None = None,
        page: int = 1,
        page_size: int = 25,
    ) -> OrderPage:
        """List all orders for the back office.

        Args:
            status: Only orders in this status.
            page: Page number (1-based).
            page_size: Items per page.

        Returns:
            Page of orders with total count.
        """
        orders, total = await self.orders.list_all(
            status=status.value if status else None,
            limit=page_size,
            offset=(page - 1) * page_size,
        )
        return OrderPage(orders=list(orders), total=total, page=page, page_size=page_size)

    async def update_status(
        self,
        principal: Principal,
        order_id: str,
        target: OrderStatus,
        tracking_number: str | None = None,
        shipping_carrier: str | None = None,
        reason: str | None = None,
    ) -> OrderModel:
        """Advance an order to a new status (admin only).

        Delivery of a cash-on-delivery order marks it paid.

        Args:
            principal: Admin performing the change.
            order_id: Order ID.
            target: New status.
            tracking_number: Shipment tracking number.
            shipping_carrier: Carrier name.
            reason: Note stored in the status history.

        Returns:
            The updated order.

        Raises:
            NotAuthorizedError: If the caller is not an admin.
            OrderNotFoundError: If the order does not exist.
            InvalidStateTransitionError: If the state machine forbids the change.
        """
        if not principal.is_admin:
            raise NotAuthorizedError()

        if target == OrderStatus.CANCELLED:
            return await self.pipeline.cancel_order(principal, order_id, reason)

        try:
            order = await self.orders.get(order_id, lock=True)
            if order is None:
                raise OrderNotFoundError(order_id)

            current = OrderStatus(order.status)
            validate_order_transition(order.id, current, target)

            now = datetime.now(timezone.utc)
            if tracking_number:
                order.tracking_number = tracking_number
            if shipping_carrier:
                order.shipping_carrier = shipping_carrier

            if target == OrderStatus.DELIVERED:
                order.delivered_at = now
                if order.payment_method == PaymentMethod.COD.value and not order.is_paid:
                    order.is_paid = True
                    order.paid_at = order.paid_at or now

            order.status = target.value
            record_status_change(
                order,
                target.value,
                f"{principal.role.value}:{principal.id}",
                reason,
                from_status=current.value,
            )

            await self.session.flush()
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            "Order status transitioned",
            order_id=order_id,
            from_status=current.value,
            to_status=target.value,
            actor=principal.id,
        )
        return order
