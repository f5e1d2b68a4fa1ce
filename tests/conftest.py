"""Test configuration and fixtures."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("PIN_BCRYPT_ROUNDS", "4")

import uuid
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from manifest_guard.main import app
from manifest_guard.core.database import Base, get_db
from manifest_guard.core.enums import UserRole
from manifest_guard.core.invoicing import StornoResult, CollectResult, get_invoicing_client_factory
from manifest_guard.core.security import create_access_token
from manifest_guard.models import (
    User, Company, Store, Order, Shipment, ReturnShipment, Invoice
)


# Test database URL (use SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeLedger:
    """In-memory stand-in for the invoicing provider; records every call."""

    def __init__(self):
        self.storno_calls: list[tuple[str, str]] = []
        self.collect_calls: list[tuple[str, str, str]] = []
        self.error: Optional[str] = None

    async def storno(self, series: str, number: str) -> StornoResult:
        self.storno_calls.append((series, number))
        if self.error:
            return StornoResult(success=False, error=self.error)
        return StornoResult(success=True, new_series=series, new_number=f"{number}-S")

    async def collect(self, series: str, number: str, collect_type: str) -> CollectResult:
        self.collect_calls.append((series, number, collect_type))
        if self.error:
            return CollectResult(success=False, error=self.error)
        return CollectResult(success=True)

    def factory(self, company: Company) -> Optional["FakeLedger"]:
        if not company.has_invoicing_credentials:
            return None
        return self


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, ledger: FakeLedger) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database and ledger overrides."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_invoicing_client_factory] = lambda: ledger.factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def _create_user(db_session: AsyncSession, role: UserRole, email: str) -> User:
    user = User(
        id=str(uuid.uuid4()),
        email=email,
        full_name=f"Test {role.value.title()}",
        role=role,
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    return user


def _headers(user: User) -> dict:
    token = create_access_token(user_id=user.id, role=user.role.value, email=user.email)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Supervisor allowed to confirm manifests and manage the PIN."""
    return await _create_user(db_session, UserRole.MANAGER, "manager@example.com")


@pytest_asyncio.fixture
async def operator_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, UserRole.OPERATOR, "operator@example.com")


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict:
    """Create authorization headers with valid token."""
    return _headers(test_user)


@pytest_asyncio.fixture
async def operator_headers(operator_user: User) -> dict:
    return _headers(operator_user)


@pytest_asyncio.fixture
async def company(db_session: AsyncSession) -> Company:
    """Billing entity with ledger credentials."""
    company = Company(
        id=str(uuid.uuid4()),
        name="Test Company SRL",
        vat_code="RO1234567",
        invoicing_email="billing@example.com",
        invoicing_token="secret-token",
    )
    db_session.add(company)
    await db_session.commit()
    return company


@pytest_asyncio.fixture
async def store(db_session: AsyncSession, company: Company) -> Store:
    store = Store(id=str(uuid.uuid4()), name="Test Store", company_id=company.id)
    db_session.add(store)
    await db_session.commit()
    return store


@pytest.fixture
def make_invoice(db_session: AsyncSession, store: Store):
    """Factory: order + outbound shipment + issued invoice.

    The invoice carries no company of its own, so billing resolves through
    the order's store.
    """
    async def _make(
        awb_number: Optional[str] = None,
        series: Optional[str] = "TST",
        number: Optional[str] = None,
        total_price: str = "100.00",
        company_id: Optional[str] = None,
        store_id: Optional[str] = "default",
    ) -> Invoice:
        order = Order(
            id=str(uuid.uuid4()),
            order_number=f"ORD-{uuid.uuid4().hex[:8]}",
            total_price=Decimal(total_price),
            store_id=store.id if store_id == "default" else store_id,
        )
        db_session.add(order)
        if awb_number:
            db_session.add(Shipment(id=str(uuid.uuid4()), awb_number=awb_number, order_id=order.id))
        invoice = Invoice(
            id=str(uuid.uuid4()),
            order_id=order.id,
            company_id=company_id,
            series=series,
            number=number if number is not None else str(uuid.uuid4().int % 100000),
        )
        db_session.add(invoice)
        await db_session.commit()
        return invoice

    return _make


@pytest.fixture
def make_return(db_session: AsyncSession):
    """Factory: a scanned return parcel."""
    async def _make(
        return_awb_number: str,
        order_id: Optional[str] = None,
        original_shipment_id: Optional[str] = None,
        status: str = "received",
    ) -> ReturnShipment:
        return_shipment = ReturnShipment(
            id=str(uuid.uuid4()),
            return_awb_number=return_awb_number,
            order_id=order_id,
            original_shipment_id=original_shipment_id,
            status=status,
        )
        db_session.add(return_shipment)
        await db_session.commit()
        return return_shipment

    return _make
