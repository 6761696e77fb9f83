"""Wishlist API endpoints."""

from collections.abc import Sequence
from typing import Annotated

from fastapi import APIRouter, Depends

from storefront.api.dependencies import CurrentUser, get_wishlist_service
from storefront.api.products import product_to_response
from storefront.api.schemas import ErrorResponse, WishlistResponse
from storefront.application.wishlist_service import WishlistService
from storefront.catalog.models import Product

router = APIRouter(prefix="/wishlist", tags=["Wishlist"])

WishlistServiceDep = Annotated[WishlistService, Depends(get_wishlist_service)]


def wishlist_to_response(products: Sequence[Product]) -> WishlistResponse:
    return WishlistResponse(
        items=[product_to_response(p) for p in products],
        count=len(products),
    )


@router.get("", response_model=WishlistResponse, responses={401: {"model": ErrorResponse}})
async def get_wishlist(principal: CurrentUser, service: WishlistServiceDep) -> WishlistResponse:
    return wishlist_to_response(await service.list(principal.id))


@router.post(
    "/{product_id}",
    response_model=WishlistResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def add_to_wishlist(
    product_id: str,
    principal: CurrentUser,
    service: WishlistServiceDep,
) -> WishlistResponse:
    return wishlist_to_response(await service.add(principal.id, product_id))


@router.delete(
    "/{product_id}",
    response_model=WishlistResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def remove_from_wishlist(
    product_id: str,
    principal: CurrentUser,
    service: WishlistServiceDep,
) -> WishlistResponse:
    return wishlist_to_response(await service.remove(principal.id, product_id))
