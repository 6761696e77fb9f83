"""Order pipeline: turn a cart into an order, and cancel orders.

Placement and cancellation each run as a single database transaction.
Either everything (stock movements, the order row, the emptied cart)
commits, or nothing does.

Stock is re-read from the catalog inside the transaction, and every
decrement is a conditional UPDATE that only matches while enough stock
remains. Two buyers racing for the last units therefore cannot both
succeed, even if both passed the read-time check.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.application.order_repository import OrderRepository, record_status_change
from storefront.catalog.models import Product, ProductVariant
from storefront.catalog.repository import ProductRepository
from storefront.domain.exceptions import (
    DomainError,
    EmptyCartError,
    InsufficientStockError,
    NotAuthorizedError,
    OrderNotFoundError,
    ProductNotFoundError,
    TransientFailureError,
    VariantNotFoundError,
    VariantRequiredError,
)
from storefront.domain.state_machines import OrderStatus, validate_order_transition
from storefront.domain.value_objects import (
    Address,
    PaymentMethod,
    Principal,
    ShippingMethod,
    compute_order_totals,
    round_money,
)
from storefront.infrastructure.config import settings
from storefront.infrastructure.models import (
    CartModel,
    OrderItemModel,
    OrderModel,
    UserModel,
)

logger = structlog.get_logger()

MAX_NOTES_LENGTH = 1000


@dataclass
class _PricedLine:
    """Cart line checked against the live catalog."""

    product: Product
    variant: ProductVariant | None
    quantity: int
    unit_price: Decimal
    line_total: Decimal


def _actor(principal: Principal) -> str:
    return f"{principal.role.value}:{principal.id}"


class OrderPipeline:
    """Transactional order placement and cancellation.

    Example usage:
        async with async_session_factory() as session:
            pipeline = OrderPipeline(session)
            order = await pipeline.place_order(principal, shipping_method=ShippingMethod.EXPRESS)
    """

    def __init__(self, session: AsyncSession, catalog: ProductRepository | None = None) -> None:
        """Initialize pipeline.

        Args:
            session: Async SQLAlchemy session. The pipeline commits or rolls back on it.
            catalog: Catalog lookup, defaults to a repository on the same session.
        """
        self.session = session
        self.catalog = catalog or ProductRepository(session)
        self.orders = OrderRepository(session)

    async def _run(self, operation: str, work, **log_context: Any):
        """Run ``work`` as one transaction.

        Domain errors roll back and propagate unchanged. Storage errors roll
        back and surface as a retryable TransientFailureError.
        """
        try:
            result = await work()
            await self.session.commit()
        except DomainError as e:
            await self.session.rollback()
            logger.info(
                f"{operation} rejected",
                error_code=e.error_code,
                details=e.details,
                **log_context,
            )
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"{operation} aborted", error=str(e), **log_context)
            raise TransientFailureError(operation, type(e).__name__) from e
        except Exception:
            await self.session.rollback()
            raise
        return result

    # ========================================================================
    # Placement
    # ========================================================================

    async def place_order(
        self,
        principal: Principal,
        shipping_address: Address | None = None,
        billing_address: Address | None = None,
        payment_method: PaymentMethod = PaymentMethod.COD,
        shipping_method: ShippingMethod = ShippingMethod.STANDARD,
        notes: str | None = None,
    ) -> OrderModel:
        """Create an order from the caller's cart.

        Steps, all inside one transaction:
        1. Load the cart; an empty or missing cart is rejected.
        2. Re-read every product (and variant) from the catalog.
        3. Check each quantity against current stock.
        4. Snapshot the current price and line total of each line.
        5. Decrement stock, guarded against concurrent orders.
        6. Compute subtotal, tax, shipping and total.
        7. Resolve the shipping address, falling back to the profile address.
        8. Persist the order as pending and empty the cart.

        Args:
            principal: Buyer.
            shipping_address: Explicit shipping address.
            billing_address: Billing address, defaults to the shipping address.
            payment_method: Payment method (cash on delivery).
            shipping_method: Delivery speed.
            notes: Free-text delivery notes.

        Returns:
            The persisted order with lines and history.

        Raises:
            EmptyCartError: If the cart has no lines.
            ProductNotFoundError: If a line's product no longer exists.
            VariantNotFoundError: If a line's variant no longer exists.
            VariantRequiredError: If a line has no variant but its product now
                sells in variants.
            InsufficientStockError: If a line exceeds current stock.
            TransientFailureError: If the transaction aborted for a storage reason.
        """

        async def work() -> OrderModel:
            cart = await self._load_cart(principal.id)
            if cart is None or not cart.items:
                raise EmptyCartError(principal.id)

            lines = [await self._price_line(item) for item in cart.items]

            for line in lines:
                await self.catalog.decrement_stock(line.product, line.variant, line.quantity)

            totals = compute_order_totals(
                subtotal=sum((line.line_total for line in lines), Decimal("0")),
                shipping_method=shipping_method,
                tax_rate=settings.tax_rate,
                flat_fee=settings.shipping_flat_fee,
                express_fee=settings.express_shipping_fee,
                free_threshold=settings.free_shipping_threshold,
            )

            ship_to = shipping_address or await self._profile_address(principal.id)
            bill_to = billing_address or ship_to

            order = OrderModel(
                user_id=principal.id,
                status=OrderStatus.PENDING.value,
                subtotal=totals.subtotal,
                tax=totals.tax,
                shipping=totals.shipping,
                discount=totals.discount,
                total=totals.total,
                currency=settings.currency,
                shipping_address=ship_to.to_dict() if ship_to else None,
                billing_address=bill_to.to_dict() if bill_to else None,
                payment_method=payment_method.value,
                is_paid=False,
                shipping_method=shipping_method.value,
                notes=notes[:MAX_NOTES_LENGTH] if notes else None,
                items=[
                    OrderItemModel(
                        product_id=line.product.id,
                        product_name=line.product.name,
                        variant_id=line.variant.id if line.variant else None,
                        variant_label=line.variant.label if line.variant else None,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                        line_total=line.line_total,
                    )
                    for line in lines
                ],
                status_history=[],
            )
            record_status_change(order, OrderStatus.PENDING.value, _actor(principal), "Order placed")
            self.session.add(order)

            cart.items.clear()
            cart.recalculate()

            await self.session.flush()
            return order

        order = await self._run("Order placement", work, user_id=principal.id)

        logger.info(
            "Order placed",
            order_id=order.id,
            user_id=principal.id,
            line_count=len(order.items),
            total=str(order.total),
        )
        return order

    async def _load_cart(self, user_id: str) -> CartModel | None:
        result = await self.session.execute(
            select(CartModel)
            .where(CartModel.user_id == user_id)
            .options(selectinload(CartModel.items))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _price_line(self, item) -> _PricedLine:
        product = await self.catalog.find_product(item.product_id, lock=True)
        if product is None:
            raise ProductNotFoundError(item.product_id)

        variant = None
        if item.variant_id:
            variant = self.catalog.resolve_variant(product, item.variant_id)
            if variant is None:
                raise VariantNotFoundError(item.product_id, item.variant_id)
        elif product.variants:
            # Product gained variants after the line was carted
            raise VariantRequiredError(item.product_id)

        available = self.catalog.available_stock(product, variant)
        if item.quantity > available:
            raise InsufficientStockError(
                f"{product.name} ({variant.label})" if variant else product.name,
                requested=item.quantity,
                available=available,
                product_id=product.id,
                variant_id=item.variant_id,
            )

        unit_price = round_money(self.catalog.current_price(product, variant))
        return _PricedLine(
            product=product,
            variant=variant,
            quantity=item.quantity,
            unit_price=unit_price,
            line_total=round_money(unit_price * item.quantity),
        )

    async def _profile_address(self, user_id: str) -> Address | None:
        result = await self.session.execute(
            select(UserModel.address).where(UserModel.id == user_id)
        )
        return Address.from_dict(result.scalar_one_or_none())

    # ========================================================================
    # Cancellation
    # ========================================================================

    async def cancel_order(
        self,
        principal: Principal,
        order_id: str,
        reason: str | None = None,
    ) -> OrderModel:
        """Cancel an order and return its stock.

        Only the order's owner or an admin may cancel, and only before the
        order has shipped. Stock for every line is restored in the same
        transaction as the status change.

        Args:
            principal: Caller.
            order_id: Order ID.
            reason: Cancellation reason.

        Returns:
            The cancelled order.

        Raises:
            OrderNotFoundError: If the order does not exist.
            NotAuthorizedError: If the caller is neither owner nor admin.
            OrderNotCancellableError: If the order has shipped, finished or
                is already cancelled.
            TransientFailureError: If the transaction aborted for a storage reason.
        """

        async def work() -> OrderModel:
            order = await self.orders.get(order_id, lock=True)
            if order is None:
                raise OrderNotFoundError(order_id)
            if not principal.can_access(order.user_id):
                raise NotAuthorizedError()

            current = OrderStatus(order.status)
            validate_order_transition(order.id, current, OrderStatus.CANCELLED)

            for item in order.items:
                restored = await self.catalog.restore_stock(
                    item.product_id, item.variant_id, item.quantity
                )
                if not restored:
                    logger.warning(
                        "Stock not restored, product or variant no longer exists",
                        order_id=order.id,
                        product_id=item.product_id,
                        variant_id=item.variant_id,
                        quantity=item.quantity,
                    )

            now = datetime.now(timezone.utc)
            order.status = OrderStatus.CANCELLED.value
            order.cancelled_at = now
            order.cancelled_by = principal.id
            order.cancelled_reason = reason
            record_status_change(
                order,
                OrderStatus.CANCELLED.value,
                _actor(principal),
                reason or "Cancelled",
                from_status=current.value,
            )

            await self.session.flush()
            return order

        order = await self._run(
            "Order cancellation",
            work,
            order_id=order_id,
            actor=_actor(principal),
        )

        logger.info(
            "Order cancelled",
            order_id=order.id,
            actor=_actor(principal),
            restored_lines=len(order.items),
        )
        return order
