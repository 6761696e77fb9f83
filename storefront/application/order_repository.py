"""Order persistence.

Loads orders with their lines and status history, and appends status
history entries.
"""

from collections.abc import Sequence
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.infrastructure.models import OrderModel, OrderStatusHistoryModel


def record_status_change(
    order: OrderModel,
    to_status: str,
    actor: str,
    reason: str | None = None,
    from_status: str | None = None,
) -> OrderStatusHistoryModel:
    """Append a status history entry to an order.

    Args:
        order: Order being changed (history loaded or freshly built).
        to_status: New status.
        actor: Who made the change, e.g. "user:<id>".
        reason: Free-text reason.
        from_status: Previous status; None for the creation entry.

    Returns:
        The new history entry.
    """
    entry = OrderStatusHistoryModel(
        from_status=from_status,
        to_status=to_status,
        actor=actor,
        reason=reason,
        created_at=datetime.now(timezone.utc),
    )
    order.status_history.append(entry)
    return entry


class OrderRepository:
    """Database access for orders."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, order_id: str, lock: bool = False) -> OrderModel | None:
        """Get an order with lines and history.

        Args:
            order_id: Order ID.
            lock: Take a row lock for the rest of the transaction.

        Returns:
            Order if found, None otherwise.
        """
        query = (
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .options(selectinload(OrderModel.items), selectinload(OrderModel.status_history))
            .execution_options(populate_existing=True)
        )
        if lock:
            query = query.with_for_update(of=OrderModel)

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: str) -> Sequence[OrderModel]:
        """List a user's orders, newest first."""
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.user_id == user_id)
            .options(selectinload(OrderModel.items), selectinload(OrderModel.status_history))
            .order_by(OrderModel.created_at.desc(), OrderModel.id)
        )
        return result.scalars().all()

    async def list_all(
        self,
        status: str | None = None,
        limit: int = 25,
        offset: int = 0,
    ) -> tuple[Sequence[OrderModel], int]:
        """List all orders, newest first, with the total match count.

        Args:
            status: Only orders in this status.
            limit: Maximum results.
            offset: Result offset.

        Returns:
            (orders, total)
        """
        query = select(OrderModel)
        count_query = select(func.count(OrderModel.id))
        if status is not None:
            query = query.where(OrderModel.status == status)
            count_query = count_query.where(OrderModel.status == status)

        query = (
            query.options(selectinload(OrderModel.items), selectinload(OrderModel.status_history))
            .order_by(OrderModel.created_at.desc(), OrderModel.id)
            .limit(limit)
            .offset(offset)
        )

        result = await self.session.execute(query)
        total = await self.session.execute(count_query)
        return result.scalars().all(), total.scalar_one()
