"""Tests for invoice number formatting and the per-year sequence."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import event, false, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from backoffice.database import Base
from backoffice.middleware.exceptions import UniquenessError
from backoffice.models import Company, Invoice, InvoiceSequence, Operation, Ship
from backoffice.schemas.invoice import InvoiceCreate
from backoffice.services import invoices
from backoffice.services.invoice_status import InvoiceStatus
from backoffice.utils import numbering
from backoffice.utils.numbering import (
    MAX_ATTEMPTS, format_invoice_number, next_invoice_number, parse_invoice_number,
)


@pytest.mark.unit
class TestFormat:

    def test_format(self):
        assert format_invoice_number(2024, 1) == "FAC-2024-000001"
        assert format_invoice_number(2024, 123456) == "FAC-2024-123456"

    def test_custom_prefix(self):
        assert format_invoice_number(2025, 42, prefix="AV") == "AV-2025-000042"

    def test_parse(self):
        assert parse_invoice_number("FAC-2024-000017") == ("FAC", 2024, 17)

    @pytest.mark.parametrize("bad", ["", "FAC-24-000001", "fac-2024-000001", "FAC2024000001", None])
    def test_parse_rejects_malformed(self, bad):
        with pytest.raises(ValueError):
            parse_invoice_number(bad)


@pytest.mark.integration
class TestSequence:

    @pytest.mark.asyncio
    async def test_first_numbers_of_a_year(self, db_session):
        first = await next_invoice_number(db_session, date(2024, 3, 1))
        second = await next_invoice_number(db_session, date(2024, 11, 30))
        assert (first, second) == ("FAC-2024-000001", "FAC-2024-000002")

    @pytest.mark.asyncio
    async def test_sequence_resets_each_year(self, db_session):
        await next_invoice_number(db_session, date(2024, 12, 31))
        await next_invoice_number(db_session, date(2024, 12, 31))
        assert await next_invoice_number(db_session, date(2025, 1, 1)) == "FAC-2025-000001"

    @pytest.mark.asyncio
    async def test_counter_is_persisted(self, db_session):
        for _ in range(3):
            await next_invoice_number(db_session, date(2024, 6, 1))
        await db_session.commit()

        last_value = await db_session.scalar(
            select(InvoiceSequence.last_value).where(InvoiceSequence.year == 2024)
        )
        assert last_value == 3

    @pytest.mark.asyncio
    async def test_skips_numbers_already_held(self, db_session, make_invoice):
        invoice_id = await make_invoice()
        await db_session.execute(
            update(Invoice).where(Invoice.id == invoice_id).values(number="FAC-2024-000001")
        )

        assert await next_invoice_number(db_session, date(2024, 2, 1)) == "FAC-2024-000002"

    @pytest.mark.asyncio
    async def test_gives_up_after_bounded_attempts(self, db_session, monkeypatch):
        calls = []

        async def always_taken(db, number):
            calls.append(number)
            return True

        monkeypatch.setattr(numbering, "_number_taken", always_taken)

        with pytest.raises(UniquenessError):
            await next_invoice_number(db_session, date(2024, 1, 1))
        assert len(calls) == MAX_ATTEMPTS
        assert calls[-1] == format_invoice_number(2024, MAX_ATTEMPTS)

    @pytest.mark.asyncio
    async def test_counter_created_by_another_transaction_is_reused(self, db_session, monkeypatch):
        # Another emitter created the 2024 row between our UPDATE and our INSERT.
        await db_session.execute(insert(InvoiceSequence).values(year=2024, last_value=1))
        await db_session.commit()

        real_update = numbering.update
        calls = []

        def update_missing_row_once(entity):
            calls.append(entity)
            statement = real_update(entity)
            return statement.where(false()) if len(calls) == 1 else statement

        monkeypatch.setattr(numbering, "update", update_missing_row_once)

        assert await next_invoice_number(db_session, date(2024, 5, 1)) == "FAC-2024-000002"
        await db_session.commit()

        assert len(calls) == 2
        last_value = await db_session.scalar(
            select(InvoiceSequence.last_value).where(InvoiceSequence.year == 2024)
        )
        assert last_value == 2


# ── Concurrent emission ─────────────────────────────────────

@pytest_asyncio.fixture
async def file_engine(tmp_path):
    """On-disk database shared by several connections.

    Transactions start with BEGIN IMMEDIATE so SQLite hands out the write
    lock at BEGIN and waits on it instead of failing mid-transaction.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _manual_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


async def _seed_drafts(session_factory, count: int) -> list[int]:
    async with session_factory() as session:
        company = Company(name="Compagnie Maritime du Sénégal", code="CMS", country="SN")
        session.add(company)
        await session.flush()
        ship = Ship(name="MV DAKAR", imo_number="9123456", company_id=company.id)
        pilot = Operation(code="PILOT", name="Pilotage", unit_price=Decimal("150000.00"))
        session.add_all([ship, pilot])
        await session.flush()

        ids = []
        for _ in range(count):
            invoice = await invoices.create_invoice(session, InvoiceCreate(
                company_id=company.id,
                ship_id=ship.id,
                issue_date=date(2024, 1, 2),
                due_date=date(2024, 1, 31),
                tax_rate=Decimal("18"),
                line_items=[{
                    "operation_id": pilot.id, "description": "Pilotage",
                    "quantity": Decimal("1"), "unit_price": Decimal("150000"),
                }],
            ))
            ids.append(invoice.id)
        await session.commit()
        return ids


@pytest.mark.integration
class TestConcurrentEmission:

    @pytest.mark.asyncio
    async def test_parallel_emissions_get_distinct_numbers(self, file_engine):
        session_factory = async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)
        ids = await _seed_drafts(session_factory, 5)

        async def emit(invoice_id: int) -> str:
            async with session_factory() as session:
                invoice = await invoices.change_status(
                    session, invoice_id, InvoiceStatus.EMISE, today=date(2024, 1, 5)
                )
                number = invoice.number
                await session.commit()
                return number

        numbers = await asyncio.gather(*(emit(invoice_id) for invoice_id in ids))

        assert sorted(numbers) == [format_invoice_number(2024, seq) for seq in range(1, 6)]
        async with session_factory() as session:
            last_value = await session.scalar(
                select(InvoiceSequence.last_value).where(InvoiceSequence.year == 2024)
            )
            held = (await session.execute(
                select(Invoice.number).where(Invoice.number.is_not(None))
            )).scalars().all()
        assert last_value == 5
        assert sorted(held) == sorted(numbers)
