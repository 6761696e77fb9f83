"""Order API endpoints.

Provides endpoints for the order lifecycle:
- POST /orders - place an order from the cart
- GET /orders - the caller's orders
- GET /orders/{id} - order details and status
- POST /orders/{id}/cancel - cancel an order (owner or admin)
- PUT /orders/{id}/status - advance an order (admin)
- GET /admin/orders - all orders (admin, paginated)
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from storefront.api.dependencies import (
    CurrentAdmin,
    CurrentPrincipal,
    CurrentUser,
    get_order_pipeline,
    get_order_service,
)
from storefront.api.schemas import (
    AddressSchema,
    ErrorResponse,
    OrderCancelRequest,
    OrderItemSchema,
    OrderResponse,
    OrdersListResponse,
    OrderStatusHistorySchema,
    OrderStatusUpdateRequest,
    OrderSummarySchema,
    PaymentSchema,
    PlaceOrderRequest,
)
from storefront.application.order_pipeline import OrderPipeline
from storefront.application.order_service import OrderService
from storefront.domain.state_machines import OrderStatus
from storefront.domain.value_objects import Address
from storefront.infrastructure.models import OrderModel

router = APIRouter(prefix="/orders", tags=["Orders"])
admin_router = APIRouter(prefix="/admin/orders", tags=["Admin"])

OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
OrderPipelineDep = Annotated[OrderPipeline, Depends(get_order_pipeline)]


# ============================================================================
# Converters
# ============================================================================


def _address(data: dict | None) -> AddressSchema | None:
    return AddressSchema.model_validate(data) if data else None


def _to_address(schema: AddressSchema | None) -> Address | None:
    return Address(**schema.model_dump()) if schema else None


def order_to_response(order: OrderModel) -> OrderResponse:
    """Convert an OrderModel to OrderResponse."""
    return OrderResponse(
        id=order.id,
        user_id=order.user_id,
        status=OrderStatus(order.status),
        items=[
            OrderItemSchema(
                product_id=item.product_id,
                product_name=item.product_name,
                variant_id=item.variant_id,
                variant_label=item.variant_label,
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=item.line_total,
            )
            for item in order.items
        ],
        subtotal=order.subtotal,
        tax=order.tax,
        shipping=order.shipping,
        discount=order.discount,
        total=order.total,
        currency=order.currency,
        shipping_address=_address(order.shipping_address),
        billing_address=_address(order.billing_address),
        payment=PaymentSchema(
            method=order.payment_method,
            is_paid=order.is_paid,
            paid_at=order.paid_at,
        ),
        shipping_method=order.shipping_method,
        tracking_number=order.tracking_number,
        shipping_carrier=order.shipping_carrier,
        notes=order.notes,
        cancelled_by=order.cancelled_by,
        cancelled_reason=order.cancelled_reason,
        status_history=[
            OrderStatusHistorySchema(
                from_status=entry.from_status,
                to_status=entry.to_status,
                reason=entry.reason,
                actor=entry.actor,
                created_at=entry.created_at,
            )
            for entry in order.status_history
        ],
        created_at=order.created_at,
        updated_at=order.updated_at,
        delivered_at=order.delivered_at,
        cancelled_at=order.cancelled_at,
    )


def order_to_summary(order: OrderModel) -> OrderSummarySchema:
    """Convert an OrderModel to OrderSummarySchema."""
    return OrderSummarySchema(
        id=order.id,
        user_id=order.user_id,
        status=OrderStatus(order.status),
        total=order.total,
        currency=order.currency,
        item_count=sum(item.quantity for item in order.items),
        is_paid=order.is_paid,
        created_at=order.created_at,
    )


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
    summary="Place order",
    description="Turn the caller's cart into a pending cash-on-delivery order.",
)
async def place_order(
    request: PlaceOrderRequest,
    principal: CurrentUser,
    pipeline: OrderPipelineDep,
) -> OrderResponse:
    order = await pipeline.place_order(
        principal,
        shipping_address=_to_address(request.shipping_address),
        billing_address=_to_address(request.billing_address),
        payment_method=request.payment_method,
        shipping_method=request.shipping_method,
        notes=request.notes,
    )
    return order_to_response(order)


@router.get(
    "",
    response_model=list[OrderSummarySchema],
    responses={401: {"model": ErrorResponse}},
    summary="List my orders",
)
async def list_my_orders(principal: CurrentUser, service: OrderServiceDep) -> list[OrderSummarySchema]:
    orders = await service.list_user_orders(principal)
    return [order_to_summary(o) for o in orders]


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Get order details",
)
async def get_order(
    order_id: str,
    principal: CurrentPrincipal,
    service: OrderServiceDep,
) -> OrderResponse:
    """Get an order with lines, addresses, payment and status history."""
    order = await service.get_order(principal, order_id)
    return order_to_response(order)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Cancel order",
    description="Cancel an order that has not shipped yet. Stock is returned to the catalog.",
)
async def cancel_order(
    order_id: str,
    principal: CurrentPrincipal,
    pipeline: OrderPipelineDep,
    request: OrderCancelRequest | None = None,
) -> OrderResponse:
    order = await pipeline.cancel_order(
        principal,
        order_id,
        reason=request.reason if request else None,
    )
    return order_to_response(order)


@router.put(
    "/{order_id}/status",
    response_model=OrderResponse,
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Update order status",
)
async def update_order_status(
    order_id: str,
    request: OrderStatusUpdateRequest,
    admin: CurrentAdmin,
    service: OrderServiceDep,
) -> OrderResponse:
    """Move an order one step along its lifecycle."""
    order = await service.update_status(
        admin,
        order_id,
        request.status,
        tracking_number=request.tracking_number,
        shipping_carrier=request.shipping_carrier,
        reason=request.reason,
    )
    return order_to_response(order)


@admin_router.get(
    "",
    response_model=OrdersListResponse,
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
    summary="List all orders",
)
async def admin_list_orders(
    admin: CurrentAdmin,
    service: OrderServiceDep,
    page: int = Query(default=1, ge=1, description="Page number"),
    page_size: int = Query(default=25, ge=1, le=100, description="Items per page"),
    status: OrderStatus | None = Query(default=None, description="Filter by status"),
) -> OrdersListResponse:
    result = await service.admin_list_orders(status=status, page=page, page_size=page_size)
    return OrdersListResponse(
        items=[order_to_summary(o) for o in result.orders],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        has_more=result.has_more,
    )
