"""Shared fixtures for API tests."""

from collections.abc import Callable

import pytest
from httpx import ASGITransport, AsyncClient

from storefront.api.dependencies import get_dispatcher
from storefront.domain.value_objects import Principal
from storefront.infrastructure.database import get_session
from storefront.infrastructure.security import issue_access_token
from storefront.main import app


@pytest.fixture
async def client(session_factory, mailer) -> AsyncClient:
    """Client for the app wired to the test database and recording mailer."""

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_dispatcher] = lambda: mailer

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[[Principal], dict[str, str]]:
    """Build bearer headers for a principal."""

    def _headers(principal: Principal) -> dict[str, str]:
        token = issue_access_token(principal.id, principal.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
async def shopper(make_user) -> Principal:
    return await make_user("shopper", address={
        "street": "22 Residency Road",
        "city": "Bengaluru",
        "state": "KA",
        "postal_code": "560025",
    })


@pytest.fixture
async def admin(make_admin) -> Principal:
    return await make_admin()
