"""
Fixtures compartidas: base SQLite por test, catálogo sembrado y cliente HTTP.
"""
import os

os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from invoicing.core.config import settings
from invoicing.database.database import Base, get_async_db
from invoicing.main import app
from invoicing.modules.contacts.models import Person, Organization
from invoicing.modules.products.models import Product, Service
from invoicing.modules.invoices.hooks import HookRegistry, invoice_hooks
from invoicing.modules.invoices.service import InvoiceService


# ===== FIXTURES =====

@pytest_asyncio.fixture
async def engine(tmp_path):
    """Base SQLite en archivo: cada sesión abre su propia conexión"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'invoicing.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def tenant_id():
    return uuid4()


@pytest_asyncio.fixture
async def catalog(session_factory, tenant_id):
    """Clientes y productos del workspace, más un producto de otro workspace"""
    data = SimpleNamespace(
        ana=Person(tenant_id=tenant_id, code=1, first_name="Ana", last_name="Gómez"),
        luis=Person(tenant_id=tenant_id, code=2, first_name="Luis", last_name="Pérez"),
        acme=Organization(tenant_id=tenant_id, code=10, name="Acme S.A.S."),
        chair=Product(tenant_id=tenant_id, sku="SKU-CHAIR", name="Silla", unit_price=Decimal("100.00")),
        table=Product(tenant_id=tenant_id, sku="SKU-TABLE", name="Mesa", unit_price=Decimal("50.00")),
        rental=Service(tenant_id=tenant_id, code="RENT", name="Alquiler", unit_price=Decimal("30.00")),
        foreign=Product(tenant_id=uuid4(), sku="SKU-CHAIR", name="Silla ajena", unit_price=Decimal("1.00")),
    )
    async with session_factory() as session:
        session.add_all(vars(data).values())
        await session.commit()
    return data


@pytest.fixture
def hooks():
    return HookRegistry()


@pytest.fixture
def service(db_session, tenant_id, hooks):
    return InvoiceService(db_session, tenant_id, hooks=hooks)


@pytest.fixture
def fast_retries(monkeypatch):
    monkeypatch.setattr(settings, "NUMBER_ALLOCATION_BACKOFF_SECONDS", 0)
    monkeypatch.setattr(settings, "NUMBER_ALLOCATION_MAX_ATTEMPTS", 3)


@pytest_asyncio.fixture
async def client(session_factory, tenant_id):
    """Cliente HTTP con la sesión de base de datos de prueba"""
    async def override_get_async_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_db] = override_get_async_db
    invoice_hooks.clear()
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={settings.TENANT_HEADER: str(tenant_id)}
    ) as http_client:
        yield http_client
    app.dependency_overrides.clear()
    invoice_hooks.clear()
