"""Product API endpoints.

Provides endpoints for the catalog:
- GET /products - search and list (paginated)
- POST /products - create (admin)
- GET/PUT/DELETE /products/{id} - read, update, delete (update/delete admin)
- DELETE /products/{id}/variants/{variant_id} - remove a variant (admin)
- GET/POST /products/{id}/reviews - list reviews, add or replace own review
- DELETE /products/{id}/reviews/{review_id} - delete a review (author or admin)
"""

from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from storefront.api.dependencies import (
    CurrentAdmin,
    CurrentPrincipal,
    CurrentUser,
    get_catalog_service,
)
from storefront.api.schemas import (
    ErrorResponse,
    ProductCreateRequest,
    ProductListResponse,
    ProductResponse,
    ProductUpdateRequest,
    ReviewCreateRequest,
    ReviewResponse,
    VariantResponse,
    VariantSchema,
)
from storefront.catalog.models import Product, ProductReview
from storefront.catalog.service import (
    CatalogService,
    PaginationParams,
    ProductData,
    ProductFilter,
    VariantData,
)

router = APIRouter(prefix="/products", tags=["Products"])

CatalogServiceDep = Annotated[CatalogService, Depends(get_catalog_service)]


# ============================================================================
# Converters
# ============================================================================


def product_to_response(product: Product) -> ProductResponse:
    """Convert a Product to ProductResponse."""
    return ProductResponse(
        id=product.id,
        name=product.name,
        slug=product.slug,
        description=product.description,
        brand=product.brand,
        category=product.category,
        sub_category=product.sub_category,
        tags=list(product.tags or []),
        price=product.price,
        discount=product.discount,
        final_price=product.final_price,
        stock=product.stock,
        is_active=product.is_active,
        is_featured=product.is_featured,
        is_new_arrival=product.is_new_arrival,
        images=list(product.images or []),
        rating=product.rating,
        review_count=product.review_count,
        variants=[
            VariantResponse(
                id=v.id,
                size=v.size,
                color_name=v.color_name,
                color_hex=v.color_hex,
                sku=v.sku,
                stock=v.stock,
                price=v.price,
                images=list(v.images or []),
            )
            for v in product.variants
        ],
        created_at=product.created_at,
        updated_at=product.updated_at,
    )


def review_to_response(review: ProductReview) -> ReviewResponse:
    return ReviewResponse(
        id=review.id,
        product_id=review.product_id,
        user_id=review.user_id,
        username=review.username,
        rating=review.rating,
        title=review.title,
        comment=review.comment,
        images=list(review.images or []),
        created_at=review.created_at,
    )


def _variant_data(schema: VariantSchema) -> VariantData:
    return VariantData(**schema.model_dump())


# ============================================================================
# Endpoints
# ============================================================================


@router.get(
    "",
    response_model=ProductListResponse,
    summary="List products",
    description="Search active products with filters, sorting and pagination.",
)
async def list_products(
    service: CatalogServiceDep,
    search: str | None = Query(default=None, max_length=100, description="Text search"),
    category: str | None = Query(default=None),
    sub_category: str | None = Query(default=None),
    brand: str | None = Query(default=None),
    tags: str | None = Query(default=None, description="Comma-separated tags, any may match"),
    min_price: Decimal | None = Query(default=None, ge=0),
    max_price: Decimal | None = Query(default=None, ge=0),
    in_stock: bool | None = Query(default=None),
    sort_by: str = Query(default="created_at", pattern="^(created_at|price|name|rating)$"),
    sort_order: str = Query(default="desc", pattern="^(asc|desc)$"),
    page: int = Query(default=1, ge=1, description="Page number"),
    page_size: int = Query(default=10, ge=1, le=100, description="Items per page"),
) -> ProductListResponse:
    result = await service.search_products(
        ProductFilter(
            search=search,
            category=category,
            sub_category=sub_category,
            brand=brand,
            tags=tags.split(",") if tags else None,
            min_price=min_price,
            max_price=max_price,
            in_stock=in_stock,
        ),
        PaginationParams(page=page, page_size=page_size, sort_by=sort_by, sort_order=sort_order),
    )
    return ProductListResponse(
        items=[product_to_response(p) for p in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        has_more=result.has_next,
    )


@router.post(
    "",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
    summary="Create product",
)
async def create_product(
    request: ProductCreateRequest,
    admin: CurrentAdmin,
    service: CatalogServiceDep,
) -> ProductResponse:
    fields = request.model_dump(exclude={"variants"})
    product = await service.create_product(
        ProductData(**fields, variants=[_variant_data(v) for v in request.variants])
    )
    return product_to_response(product)


@router.get(
    "/{product_id}",
    response_model=ProductResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get product",
)
async def get_product(product_id: str, service: CatalogServiceDep) -> ProductResponse:
    product = await service.get_product(product_id)
    return product_to_response(product)


@router.put(
    "/{product_id}",
    response_model=ProductResponse,
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Update product",
    description="Change product fields. A variants list replaces the current variants; "
    "carts holding removed variants are cleaned up.",
)
async def update_product(
    product_id: str,
    request: ProductUpdateRequest,
    admin: CurrentAdmin,
    service: CatalogServiceDep,
) -> ProductResponse:
    changes = request.model_dump(exclude_unset=True, exclude={"variants"})
    if request.variants is not None:
        changes["variants"] = [_variant_data(v) for v in request.variants]
    product = await service.update_product(product_id, changes)
    return product_to_response(product)


@router.delete(
    "/{product_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Delete product",
)
async def delete_product(product_id: str, admin: CurrentAdmin, service: CatalogServiceDep) -> None:
    """Delete a product. Its lines disappear from every cart."""
    await service.delete_product(product_id)


@router.delete(
    "/{product_id}/variants/{variant_id}",
    response_model=ProductResponse,
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Delete variant",
)
async def delete_variant(
    product_id: str,
    variant_id: str,
    admin: CurrentAdmin,
    service: CatalogServiceDep,
) -> ProductResponse:
    product = await service.delete_variant(product_id, variant_id)
    return product_to_response(product)


# ============================================================================
# Reviews
# ============================================================================


@router.get(
    "/{product_id}/reviews",
    response_model=list[ReviewResponse],
    responses={404: {"model": ErrorResponse}},
    summary="List reviews",
)
async def list_reviews(
    product_id: str,
    service: CatalogServiceDep,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> list[ReviewResponse]:
    reviews = await service.list_reviews(product_id, page=page, page_size=page_size)
    return [review_to_response(r) for r in reviews]


@router.post(
    "/{product_id}/reviews",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Review product",
)
async def add_review(
    product_id: str,
    request: ReviewCreateRequest,
    principal: CurrentUser,
    service: CatalogServiceDep,
) -> ReviewResponse:
    """Add the caller's review, replacing any earlier one."""
    review = await service.add_review(
        principal,
        product_id,
        rating=request.rating,
        title=request.title,
        comment=request.comment,
        images=request.images,
    )
    return review_to_response(review)


@router.delete(
    "/{product_id}/reviews/{review_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Delete review",
)
async def delete_review(
    product_id: str,
    review_id: str,
    principal: CurrentPrincipal,
    service: CatalogServiceDep,
) -> None:
    await service.delete_review(principal, product_id, review_id)
