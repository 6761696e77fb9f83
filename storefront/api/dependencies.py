"""FastAPI dependencies: sessions, the authenticated principal, services."""

from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.application.auth_service import AuthService
from storefront.application.cart_service import CartService
from storefront.application.order_pipeline import OrderPipeline
from storefront.application.order_service import OrderService
from storefront.application.otp_service import OtpService
from storefront.application.wishlist_service import WishlistService
from storefront.catalog.service import CatalogService
from storefront.domain.exceptions import InvalidCredentialsError, NotAuthorizedError
from storefront.domain.value_objects import Principal, Role
from storefront.infrastructure.database import get_session
from storefront.infrastructure.email import EmailDispatcher, get_email_dispatcher

SessionDep = Annotated[AsyncSession, Depends(get_session)]

bearer_scheme = HTTPBearer(auto_error=False)


def get_dispatcher() -> EmailDispatcher:
    """Outgoing email transport."""
    return get_email_dispatcher()


# ============================================================================
# Services
# ============================================================================


def get_auth_service(
    session: SessionDep,
    dispatcher: Annotated[EmailDispatcher, Depends(get_dispatcher)],
) -> AuthService:
    return AuthService(session, otp=OtpService(session, dispatcher=dispatcher))


def get_cart_service(session: SessionDep) -> CartService:
    return CartService(session)


def get_catalog_service(session: SessionDep) -> CatalogService:
    """Catalog service with cart cleanup subscribed to catalog changes."""
    service = CatalogService(session)
    service.subscribe(CartService(session).handle_catalog_event)
    return service


def get_order_pipeline(session: SessionDep) -> OrderPipeline:
    return OrderPipeline(session)


def get_order_service(session: SessionDep) -> OrderService:
    return OrderService(session)


def get_wishlist_service(session: SessionDep) -> WishlistService:
    return WishlistService(session)


# ============================================================================
# Authentication
# ============================================================================


async def get_principal(
    session: SessionDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> Principal:
    """Resolve the bearer token to a principal.

    Raises:
        InvalidCredentialsError: If the token is missing, invalid or expired.
    """
    if credentials is None or not credentials.credentials:
        raise InvalidCredentialsError("Missing bearer token")
    return await AuthService(session).resolve_principal(credentials.credentials)


async def require_user(principal: Annotated[Principal, Depends(get_principal)]) -> Principal:
    """Shopper-only routes."""
    if principal.role != Role.USER:
        raise NotAuthorizedError()
    return principal


async def require_admin(principal: Annotated[Principal, Depends(get_principal)]) -> Principal:
    """Admin-only routes."""
    if not principal.is_admin:
        raise NotAuthorizedError()
    return principal


CurrentPrincipal = Annotated[Principal, Depends(get_principal)]
CurrentUser = Annotated[Principal, Depends(require_user)]
CurrentAdmin = Annotated[Principal, Depends(require_admin)]
