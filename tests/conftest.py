"""Shared test fixtures.

Database tests run against a throwaway SQLite file per test through
aiosqlite, using the same ORM models as production.
"""

import os
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from decimal import Decimal

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SMTP_HOST"] = ""
os.environ["JWT_SECRET"] = "test-secret-with-enough-length-for-hs256"

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import storefront.catalog.models  # noqa: F401
import storefront.infrastructure.models  # noqa: F401
from storefront.catalog.models import Product, ProductVariant
from storefront.catalog.service import CatalogService, ProductData, VariantData
from storefront.domain.exceptions import EmailDeliveryError
from storefront.domain.value_objects import Principal, Role
from storefront.infrastructure.database import Base
from storefront.infrastructure.models import AdminModel, UserModel
from storefront.infrastructure.security import hash_password

TEST_PASSWORD = "Passw0rd!"


# ============================================================================
# Email Fixtures
# ============================================================================


@dataclass
class SentEmail:
    """Captured outgoing message."""

    to: str
    subject: str
    html: str


@dataclass
class RecordingDispatcher:
    """Email dispatcher that keeps messages in memory."""

    sent: list[SentEmail] = field(default_factory=list)

    async def send(self, to: str, subject: str, html: str) -> None:
        self.sent.append(SentEmail(to=to, subject=subject, html=html))

    def last_code(self, to: str) -> str:
        """Passcode from the most recent message to an address."""
        for message in reversed(self.sent):
            if message.to == to:
                match = re.search(r">(\d{4,10})</p>", message.html)
                assert match, "no passcode in email body"
                return match.group(1)
        raise AssertionError(f"no email sent to {to}")


class FailingDispatcher:
    """Email dispatcher whose relay is always down."""

    async def send(self, to: str, subject: str, html: str) -> None:
        raise EmailDeliveryError(to, "connection refused")


@pytest.fixture
def mailer() -> RecordingDispatcher:
    """Capture outgoing email."""
    return RecordingDispatcher()


@pytest.fixture
def failing_mailer() -> FailingDispatcher:
    """Dispatcher that cannot deliver."""
    return FailingDispatcher()


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def db_engine(tmp_path):
    """Fresh SQLite database file with every table created."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    """A session for the test body."""
    async with session_factory() as session:
        yield session


# ============================================================================
# Data Fixtures
# ============================================================================


@pytest.fixture
def make_product(session_factory) -> Callable[..., Awaitable[Product]]:
    """Create a catalog product in its own session."""

    async def _make(
        name: str = "Cotton Tee",
        price: str | Decimal = "100.00",
        stock: int = 10,
        discount: str | Decimal = "0",
        category: str = "apparel",
        variants: list[VariantData] | None = None,
        **extra,
    ) -> Product:
        async with session_factory() as s:
            return await CatalogService(s).create_product(
                ProductData(
                    name=name,
                    category=category,
                    price=Decimal(str(price)),
                    discount=Decimal(str(discount)),
                    stock=stock,
                    variants=variants or [],
                    **extra,
                )
            )

    return _make


@pytest.fixture
def make_user(session_factory) -> Callable[..., Awaitable[Principal]]:
    """Create a verified shopper account."""

    async def _make(
        username: str = "shopper",
        email: str | None = None,
        address: dict | None = None,
        verified: bool = True,
    ) -> Principal:
        async with session_factory() as s:
            user = UserModel(
                username=username,
                email=email or f"{username}@example.com",
                password_hash=hash_password(TEST_PASSWORD),
                is_verified=verified,
                role=Role.USER.value,
                address=address,
            )
            s.add(user)
            await s.commit()
            return Principal(id=user.id, role=Role.USER, email=user.email, username=user.username)

    return _make


@pytest.fixture
def make_admin(session_factory) -> Callable[..., Awaitable[Principal]]:
    """Create the admin account."""

    async def _make(email: str = "admin@example.com") -> Principal:
        async with session_factory() as s:
            admin = AdminModel(
                username="admin",
                email=email,
                password_hash=hash_password(TEST_PASSWORD),
                role=Role.ADMIN.value,
            )
            s.add(admin)
            await s.commit()
            return Principal(id=admin.id, role=Role.ADMIN, email=admin.email, username="admin")

    return _make


@pytest.fixture
def stock_of(session_factory) -> Callable[..., Awaitable[int]]:
    """Read committed stock for a product or variant."""

    async def _read(product_id: str, variant_id: str | None = None) -> int:
        async with session_factory() as s:
            if variant_id is not None:
                result = await s.execute(
                    select(ProductVariant.stock).where(ProductVariant.id == variant_id)
                )
            else:
                result = await s.execute(select(Product.stock).where(Product.id == product_id))
            return result.scalar_one()

    return _read
