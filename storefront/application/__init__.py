"""Application layer module.

Contains application services (use cases) that orchestrate
domain logic and infrastructure.
"""

from storefront.application.auth_service import AccessToken, AuthService
from storefront.application.cart_service import CartService, CartView
from storefront.application.order_pipeline import OrderPipeline
from storefront.application.order_service import OrderPage, OrderService
from storefront.application.otp_service import OtpOutcome, OtpService
from storefront.application.wishlist_service import WishlistService

__all__ = [
    "AccessToken",
    "AuthService",
    "CartService",
    "CartView",
    "OrderPage",
    "OrderPipeline",
    "OrderService",
    "OtpOutcome",
    "OtpService",
    "WishlistService",
]
