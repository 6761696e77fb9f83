"""Product Catalog.

Products, variants and reviews, with the stock primitives the order
pipeline relies on.
"""

from storefront.catalog.models import Product, ProductReview, ProductVariant
from storefront.catalog.repository import ProductRepository
from storefront.catalog.service import (
    CatalogService,
    PaginatedResult,
    PaginationParams,
    ProductData,
    ProductFilter,
    VariantData,
)

__all__ = [
    # Models
    "Product",
    "ProductReview",
    "ProductVariant",
    # Repository
    "ProductRepository",
    # Service
    "CatalogService",
    "PaginatedResult",
    "PaginationParams",
    "ProductData",
    "ProductFilter",
    "VariantData",
]
