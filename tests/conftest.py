"""
Shared fixtures for the receivables test suite.

Every database test runs against a fresh in-memory SQLite engine built by
``build_engine`` (foreign keys on, SAVEPOINT-capable).  Time is pinned by a
DeterministicClock so interest, scoring and scheduling are reproducible.
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy.orm import sessionmaker

import receivables_batch.models  # noqa: F401  registers batch tables
from receivables_config import EnginePolicy
from receivables_kernel.db.engine import build_engine, create_tables
from receivables_kernel.domain.clock import DeterministicClock
from receivables_kernel.domain.dtos import (
    CustomerCreditProfile,
    Invoice,
    Receipt,
)
from receivables_kernel.domain.values import Money
from receivables_kernel.logging_config import LogContext, StructuredFormatter
from receivables_services.ledger_service import ReceivablesLedgerService
from receivables_services.locks import CustomerLockRegistry
from receivables_services.payment_score_service import PaymentScoreService
from receivables_services.views import ReceivablesViewService

DAY0 = date(2024, 1, 1)
NOW = datetime(2024, 6, 30, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """Collect structured log records emitted under the receivables logger.

    Returns a callable that parses everything logged so far into dicts.
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("receivables")
    previous_level = root.level
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)

    def _records() -> list[dict]:
        return [
            json.loads(line) for line in stream.getvalue().splitlines() if line.strip()
        ]

    try:
        yield _records
    finally:
        root.removeHandler(handler)
        root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    eng = build_engine("sqlite://")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.rollback()
        s.close()


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(fixed_time=NOW)


@pytest.fixture
def policy():
    return EnginePolicy()


@pytest.fixture
def lock_registry():
    return CustomerLockRegistry()


@pytest.fixture
def score_service(session, policy, clock, lock_registry):
    return PaymentScoreService(
        session, policy=policy, clock=clock, lock_registry=lock_registry,
    )


@pytest.fixture
def ledger(session, lock_registry, score_service):
    return ReceivablesLedgerService(
        session,
        lock_registry=lock_registry,
        score_refresher=score_service.refresh_customer,
    )


@pytest.fixture
def views(session, policy, clock):
    return ReceivablesViewService(session, policy=policy, clock=clock)


# =============================================================================
# Entity factories
# =============================================================================


@pytest.fixture
def make_customer(ledger):
    def _make(
        name: str = "Acme Ltd",
        credit_limit: str = "50000",
        rate: str | None = "18",
        **overrides,
    ) -> CustomerCreditProfile:
        profile = CustomerCreditProfile(
            customer_id=overrides.pop("customer_id", uuid4()),
            name=name,
            credit_limit=Money.of(credit_limit),
            interest_rate=Decimal(rate) if rate is not None else None,
            **overrides,
        )
        return ledger.upsert_customer(profile)

    return _make


@pytest.fixture
def make_invoice(ledger):
    def _make(
        customer: CustomerCreditProfile,
        amount: str = "10000",
        terms: int = 0,
        invoice_date: date = DAY0,
        number: str | None = None,
        **overrides,
    ) -> Invoice:
        invoice = Invoice(
            id=overrides.pop("id", uuid4()),
            customer_id=customer.customer_id,
            invoice_number=number or f"INV-{uuid4().hex[:6]}",
            invoice_date=invoice_date,
            amount=Money.of(amount),
            payment_terms_days=terms,
            **overrides,
        )
        ledger.upsert_invoice(invoice)
        return invoice

    return _make


@pytest.fixture
def make_receipt(ledger):
    def _make(
        customer: CustomerCreditProfile,
        amount: str,
        paid_on: date,
        invoice: Invoice | None = None,
        **overrides,
    ):
        return ledger.upsert_receipt(Receipt(
            id=overrides.pop("id", uuid4()),
            customer_id=customer.customer_id,
            amount=Money.of(amount),
            payment_date=paid_on,
            invoice_id=invoice.id if invoice is not None else None,
            **overrides,
        ))

    return _make
