"""Cart API endpoints.

- GET /cart - current cart
- DELETE /cart - empty the cart
- POST /cart/items - add units of a product or variant
- PUT /cart/items/{item_id} - set a line's quantity (0 removes it)
- DELETE /cart/items/{item_id} - remove a line
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from storefront.api.dependencies import CurrentUser, get_cart_service
from storefront.api.schemas import (
    CartItemAddRequest,
    CartItemUpdateRequest,
    CartLineSchema,
    CartResponse,
    ErrorResponse,
)
from storefront.application.cart_service import CartService, CartView

router = APIRouter(prefix="/cart", tags=["Cart"])

CartServiceDep = Annotated[CartService, Depends(get_cart_service)]


def cart_to_response(cart: CartView) -> CartResponse:
    """Convert a CartView to CartResponse."""
    return CartResponse(
        id=cart.id,
        user_id=cart.user_id,
        items=[
            CartLineSchema(
                id=line.id,
                product_id=line.product_id,
                variant_id=line.variant_id,
                product_name=line.product_name,
                variant_label=line.variant_label,
                quantity=line.quantity,
                price=line.price,
                line_total=line.line_total,
                available_stock=line.available_stock,
            )
            for line in cart.items
        ],
        item_count=cart.item_count,
        total_price=cart.total_price,
    )


@router.get("", response_model=CartResponse, responses={401: {"model": ErrorResponse}})
async def get_cart(principal: CurrentUser, service: CartServiceDep) -> CartResponse:
    """Get the caller's cart. Lines for removed products are dropped."""
    return cart_to_response(await service.get_cart(principal.id))


@router.delete("", response_model=CartResponse, responses={401: {"model": ErrorResponse}})
async def clear_cart(principal: CurrentUser, service: CartServiceDep) -> CartResponse:
    return cart_to_response(await service.clear(principal.id))


@router.post(
    "/items",
    response_model=CartResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Add to cart",
)
async def add_item(
    request: CartItemAddRequest,
    principal: CurrentUser,
    service: CartServiceDep,
) -> CartResponse:
    """Add units to the cart, merging with an existing line for the same product and variant."""
    cart = await service.add_or_update_line(
        principal.id,
        request.product_id,
        request.quantity,
        variant_id=request.variant_id,
    )
    return cart_to_response(cart)


@router.put(
    "/items/{item_id}",
    response_model=CartResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Set line quantity",
)
async def update_item(
    item_id: str,
    request: CartItemUpdateRequest,
    principal: CurrentUser,
    service: CartServiceDep,
) -> CartResponse:
    cart = await service.set_line_quantity(principal.id, item_id, request.quantity)
    return cart_to_response(cart)


@router.delete(
    "/items/{item_id}",
    response_model=CartResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Remove line",
)
async def remove_item(item_id: str, principal: CurrentUser, service: CartServiceDep) -> CartResponse:
    cart = await service.remove_line(principal.id, item_id)
    return cart_to_response(cart)
