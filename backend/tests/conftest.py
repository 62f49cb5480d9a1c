"""Pytest configuration and fixtures for the back-office tests.

Every test gets a fresh in-memory SQLite database (aiosqlite) with the
full schema, seeded reference data, and an HTTP client whose `get_db`
dependency is bound to the test session.  Redis caching and the
background scheduler are switched off through the environment before the
application is imported.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DATABASE_URL_SYNC", "sqlite:///:memory:")
os.environ.setdefault("CACHE_ENABLED", "false")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("DEBUG", "false")

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from backoffice.database import Base, get_db
from backoffice.main import app
from backoffice.models import Company, Expense, ExpenseStatus, Invoice, Operation, Ship
from backoffice.schemas.invoice import InvoiceCreate
from backoffice.services import invoices
from backoffice.services.invoice_search import invoice_query


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database with every table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests."""
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with overridden database dependency."""

    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest_asyncio.fixture
async def refs(db_session: AsyncSession) -> SimpleNamespace:
    """Two companies with one ship each, two billable operations.

    Returned as plain ids so tests never touch possibly-expired ORM rows.
    """
    csm = Company(name="Compagnie Maritime du Sénégal", code="CMS", country="SN")
    grimaldi = Company(name="Grimaldi Lines", code="GRIM", country="IT")
    inactive_company = Company(name="Ancienne Compagnie", code="OLD", active=False)
    db_session.add_all([csm, grimaldi, inactive_company])
    await db_session.flush()

    dakar = Ship(name="MV DAKAR", imo_number="9123456", company_id=csm.id)
    grande = Ship(name="Grande Lagos", imo_number="9654321", company_id=grimaldi.id)
    pilot = Operation(code="PILOT", name="Pilotage", unit_price=Decimal("150000.00"))
    tow = Operation(code="TOW", name="Remorquage", unit_price=Decimal("50000.00"))
    db_session.add_all([dakar, grande, pilot, tow])
    await db_session.commit()

    return SimpleNamespace(
        company_id=csm.id,
        other_company_id=grimaldi.id,
        inactive_company_id=inactive_company.id,
        ship_id=dakar.id,
        other_ship_id=grande.id,
        pilot_id=pilot.id,
        tow_id=tow.id,
    )


@pytest.fixture
def invoice_payload(refs):
    """Factory for a valid create payload (scenario A amounts by default)."""

    def _payload(**overrides) -> dict:
        payload = {
            "company_id": refs.company_id,
            "ship_id": refs.ship_id,
            "issue_date": date(2024, 1, 1),
            "due_date": date(2024, 1, 10),
            "tax_rate": Decimal("18"),
            "notes": "Escale janvier",
            "line_items": [
                {
                    "operation_id": refs.pilot_id,
                    "description": "Pilotage d'entrée",
                    "quantity": Decimal("2"),
                    "unit_price": Decimal("150000"),
                },
                {
                    "operation_id": refs.tow_id,
                    "description": "Remorquage",
                    "quantity": Decimal("1"),
                    "unit_price": Decimal("50000"),
                },
            ],
        }
        payload.update(overrides)
        return payload

    return _payload


@pytest.fixture
def make_invoice(db_session: AsyncSession, invoice_payload):
    """Create and commit a draft invoice through the service; return its id."""

    async def _make(**overrides) -> int:
        invoice = await invoices.create_invoice(
            db_session, InvoiceCreate(**invoice_payload(**overrides)), actor_id="tester"
        )
        invoice_id = invoice.id
        await db_session.commit()
        return invoice_id

    return _make


@pytest.fixture
def single_line(refs):
    """One-line item list with a given unit price (quantity 1)."""

    def _line(unit_price, unit_price_secondary=None) -> list[dict]:
        return [{
            "operation_id": refs.pilot_id,
            "description": "Prestation",
            "quantity": Decimal("1"),
            "unit_price": Decimal(str(unit_price)),
            "unit_price_secondary": (
                Decimal(str(unit_price_secondary)) if unit_price_secondary is not None else None
            ),
        }]

    return _line


@pytest.fixture
def reload(db_session: AsyncSession):
    """Fetch an invoice fresh from the database, active or not."""

    async def _reload(invoice_id: int) -> Invoice:
        result = await db_session.execute(
            invoice_query()
            .where(Invoice.id == invoice_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    return _reload


@pytest_asyncio.fixture
async def expenses(db_session: AsyncSession) -> list[int]:
    """A handful of expenses across statuses, dates and amounts."""
    rows = [
        Expense(number="DEP-2024-0001", title="Carburant remorqueur", description="Gasoil 2000 L",
                category_id=1, supplier_id=10, payment_method_id=1,
                expense_date=date(2024, 1, 5), amount=Decimal("1200000.00"),
                status=ExpenseStatus.PAYEE),
        Expense(number="DEP-2024-0002", title="Frais de port", description="Droits de quai",
                category_id=2, supplier_id=11, payment_method_id=2,
                expense_date=date(2024, 2, 12), amount=Decimal("350000.00"),
                status=ExpenseStatus.EN_ATTENTE),
        Expense(number="DEP-2024-0003", title="Fournitures bureau", description=None,
                category_id=3, supplier_id=None, payment_method_id=1,
                expense_date=date(2024, 2, 20), amount=Decimal("45000.00"),
                status=ExpenseStatus.VALIDEE),
        Expense(number="DEP-2024-0004", title="Carburant vedette", description="Essence",
                category_id=1, supplier_id=10, payment_method_id=1,
                expense_date=date(2024, 3, 1), amount=Decimal("80000.00"),
                status=ExpenseStatus.ANNULEE, active=False),
    ]
    db_session.add_all(rows)
    await db_session.commit()
    return [row.id for row in rows]


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
