#!/usr/bin/env python3
"""
Walk through the reference receivables scenarios on an in-memory database.

Scenarios:
  A  one late payment: 10,000 at 18% paid 30 days after due -> 147.95 interest
  B  split payment: 5,000 on time, 5,000 25 days late -> 61.64 interest
  C  overpayment: 12,000 against a 10,000 invoice -> 2,000 unallocated
  D  zero credit limit -> utilization percentage undefined
  E  ten payments, eight on time -> 80% on-time rate, Star

Usage:
    python3 scripts/demo_ledger.py
    python3 scripts/demo_ledger.py --json    # print view payloads as JSON
"""

import argparse
import json
import logging
import sys
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

import receivables_batch.models  # noqa: E402,F401  registers batch tables
from receivables_config import get_active_policy  # noqa: E402
from receivables_kernel.db.engine import create_tables, init_engine_from_url, session_scope  # noqa: E402
from receivables_kernel.domain.clock import DeterministicClock  # noqa: E402
from receivables_kernel.domain.dtos import CustomerCreditProfile, Invoice, Receipt  # noqa: E402
from receivables_kernel.domain.values import Money  # noqa: E402
from receivables_kernel.logging_config import configure_logging  # noqa: E402
from receivables_services.ledger_service import ReceivablesLedgerService  # noqa: E402
from receivables_services.payment_score_service import PaymentScoreService  # noqa: E402
from receivables_services.views import ReceivablesViewService  # noqa: E402

DAY0 = date(2024, 1, 1)
AS_OF = date(2024, 6, 30)


def _customer(ledger, name, credit_limit="50000", rate="18"):
    return ledger.upsert_customer(CustomerCreditProfile(
        customer_id=uuid4(),
        name=name,
        credit_limit=Money.of(credit_limit),
        interest_rate=Decimal(rate),
    ))


def _invoice(ledger, customer, number, amount, terms=0, invoice_date=DAY0):
    invoice = Invoice(
        id=uuid4(),
        customer_id=customer.customer_id,
        invoice_number=number,
        invoice_date=invoice_date,
        amount=Money.of(amount),
        payment_terms_days=terms,
    )
    ledger.upsert_invoice(invoice)
    return invoice


def _receipt(ledger, customer, amount, paid_on, invoice=None):
    return ledger.upsert_receipt(Receipt(
        id=uuid4(),
        customer_id=customer.customer_id,
        amount=Money.of(amount),
        payment_date=paid_on,
        invoice_id=invoice.id if invoice is not None else None,
    ))


def _show(title, summary, view=None, as_json=False):
    print(f"\n== {title}")
    if as_json and view is not None:
        print(json.dumps(view.to_dict(), indent=2))
        return
    for key, value in summary.items():
        print(f"   {key:<28} {value}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Receivables ledger scenarios A-E")
    parser.add_argument("--json", action="store_true", help="Print full view payloads")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show structured logs")
    args = parser.parse_args()

    configure_logging(level=logging.INFO if args.verbose else logging.ERROR)
    init_engine_from_url("sqlite://")
    create_tables()

    policy = get_active_policy()
    clock = DeterministicClock(datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc))

    with session_scope() as session:
        scores = PaymentScoreService(session, policy=policy, clock=clock)
        ledger = ReceivablesLedgerService(session, score_refresher=scores.refresh_customer)
        views = ReceivablesViewService(session, policy=policy, clock=clock)

        # A
        acme = _customer(ledger, "Acme Ltd")
        inv_a = _invoice(ledger, acme, "A-001", "10000")
        _receipt(ledger, acme, "10000", DAY0 + timedelta(days=30))
        view = views.interest_breakdown(inv_a.id, as_of=AS_OF)
        _show("A: one late payment", {
            "total_interest": view.breakdown.total_interest,
            "tranches": len(view.breakdown.per_tranche),
            "unpaid_balance": view.breakdown.unpaid_balance,
        }, view, args.json)

        # B
        bolt = _customer(ledger, "Bolt & Nut")
        inv_b = _invoice(ledger, bolt, "B-001", "10000", terms=15)
        _receipt(ledger, bolt, "5000", DAY0 + timedelta(days=10))
        _receipt(ledger, bolt, "5000", DAY0 + timedelta(days=40))
        view = views.interest_breakdown(inv_b.id, as_of=AS_OF)
        _show("B: split payment", {
            "tranche_interest": [str(t.interest) for t in view.breakdown.per_tranche],
            "total_interest": view.breakdown.total_interest,
        }, view, args.json)

        # C
        cobalt = _customer(ledger, "Cobalt Inc")
        _invoice(ledger, cobalt, "C-001", "10000")
        posting = _receipt(ledger, cobalt, "12000", DAY0 + timedelta(days=5))
        _show("C: overpayment", {
            "allocated": str(posting.total_allocated),
            "unallocated_amount": str(posting.unallocated_amount),
        }, None, args.json)

        # D
        delta = _customer(ledger, "Delta Co", credit_limit="0")
        _invoice(ledger, delta, "D-001", "2500")
        view = views.utilization(delta.customer_id)
        _show("D: zero credit limit", {
            "utilized_limit": view.utilization.utilized_limit,
            "utilization_pct": view.utilization.utilization_pct,
            "band": view.utilization.band,
        }, view, args.json)

        # E
        echo = _customer(ledger, "Echo GmbH")
        for n in range(10):
            issued = DAY0 + timedelta(days=10 * n)
            invoice = _invoice(ledger, echo, f"E-{n:03d}", "1000", terms=30, invoice_date=issued)
            late_by = 12 if n in (3, 7) else 0
            _receipt(ledger, echo, "1000", invoice.due_date + timedelta(days=late_by), invoice)
        view = views.payment_score(echo.customer_id)
        _show("E: payment behaviour", {
            "on_time_rate": view.record.on_time_rate,
            "payment_score": view.record.payment_score,
            "classification": view.record.classification.value,
        }, view, args.json)

        dashboard = views.segment_dashboard()
        _show("Segment dashboard", {
            "classified": dashboard.summary.classified_count,
            "unclassified": dashboard.summary.unclassified_count,
            "avg_on_time_rate": dashboard.summary.avg_on_time_rate,
        }, dashboard, args.json)

    return 0


if __name__ == "__main__":
    sys.exit(main())
