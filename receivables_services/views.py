"""
ReceivablesViewService -- read models for the surrounding application.

Responsibility:
    Loads ledger rows, hands them to the pure engines and returns view
    DTOs: interest breakdowns, profitability, credit utilization and its
    dashboard, payment scores and the segment dashboard, invoice status
    cards, the aging report and category recommendations.

Architecture position:
    Services -- read side.  Takes no locks; every view is a pure function
    of the session snapshot, the engine policy and ``as_of``.

Invariants enforced:
    - Interest and profitability are recomputed on every read.
    - ``as_of`` defaults to ``clock.today()``; engines never see the clock.
    - ``to_dict()`` renders Money and Decimal as strings and keeps None as
      None so the caller decides how to show an undefined ratio.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from receivables_config import EnginePolicy, get_active_policy
from receivables_engines.aging import (
    AgingCalculator,
    AgingReport,
    InvoiceStatusCard,
    InvoiceStatusClassifier,
    StatusCardTotals,
)
from receivables_engines.allocation import InvoiceBalance, compute_balances
from receivables_engines.categorization import CategoryRecommendation, recommend_category
from receivables_engines.interest import (
    CustomerInterestSummary,
    InterestBreakdown,
    InterestCalculator,
    resolve_anchor,
    resolve_rate,
)
from receivables_engines.payment_behavior import SegmentSummary, summarize_segments
from receivables_engines.profitability import Profitability, resolve_profitability
from receivables_engines.utilization import (
    Utilization,
    UtilizationSummary,
    compute_utilization,
    summarize_utilization,
)
from receivables_kernel.domain.clock import Clock, SystemClock
from receivables_kernel.domain.dtos import (
    Allocation,
    CustomerCreditProfile,
    Invoice,
    PaymentScoreRecord,
)
from receivables_kernel.domain.values import Money
from receivables_kernel.exceptions import CustomerNotFoundError, InvoiceNotFoundError
from receivables_kernel.logging_config import get_logger
from receivables_kernel.models.allocation import AllocationModel
from receivables_kernel.models.customer import CustomerModel
from receivables_kernel.models.invoice import InvoiceModel
from receivables_kernel.models.payment_score import PaymentScoreModel

logger = get_logger("services.views")


def render_to_dict(obj: object) -> dict | list | str | int | float | bool | None:
    """
    Convert any view dataclass to a plain dict for JSON serialization.

    Handles:
    - Money -> str of its amount
    - Decimal -> str (preserving precision)
    - UUID -> str
    - date -> ISO format string
    - Enum -> .value (also as dict keys)
    - Nested frozen dataclasses -> nested dicts
    - Tuples -> lists
    - None preserved
    """
    if obj is None:
        return None
    if isinstance(obj, Money):
        return str(obj.amount)
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (list, tuple)):
        return [render_to_dict(item) for item in obj]
    if isinstance(obj, dict):
        return {
            (k.value if isinstance(k, Enum) else str(k)): render_to_dict(v)
            for k, v in obj.items()
        }
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {
            f.name: render_to_dict(getattr(obj, f.name))
            for f in dataclasses.fields(obj)
        }
    if isinstance(obj, (str, int, float, bool)):
        return obj
    return str(obj)


class _Renderable:
    def to_dict(self) -> dict:
        return render_to_dict(self)


# =============================================================================
# View DTOs
# =============================================================================


@dataclass(frozen=True)
class InterestView(_Renderable):
    invoice_id: UUID
    invoice_number: str
    customer_id: UUID
    as_of: date
    breakdown: InterestBreakdown
    projected_total_interest: Money


@dataclass(frozen=True)
class CustomerInterestView(_Renderable):
    customer_id: UUID
    as_of: date
    invoices: tuple[InterestBreakdown, ...]
    summary: CustomerInterestSummary


@dataclass(frozen=True)
class ProfitabilityView(_Renderable):
    invoice_id: UUID
    invoice_number: str
    customer_id: UUID
    as_of: date
    includes_unpaid_interest: bool
    profitability: Profitability


@dataclass(frozen=True)
class UtilizationView(_Renderable):
    customer_id: UUID
    customer_name: str
    utilization: Utilization


@dataclass(frozen=True)
class CreditDashboard(_Renderable):
    customers: tuple[UtilizationView, ...]
    summary: UtilizationSummary


@dataclass(frozen=True)
class PaymentScoreView(_Renderable):
    customer_id: UUID
    record: PaymentScoreRecord | None
    policy_checksum: str | None = None


@dataclass(frozen=True)
class SegmentDashboard(_Renderable):
    summary: SegmentSummary
    records: tuple[PaymentScoreRecord, ...] = ()


@dataclass(frozen=True)
class StatusCardsView(_Renderable):
    as_of: date
    grace_days: int
    cards: dict[InvoiceStatusCard, StatusCardTotals] = field(default_factory=dict)


@dataclass(frozen=True)
class AgingView(_Renderable):
    as_of: date
    report: AgingReport
    total_amount: Money
    overdue_amount: Money
    total_by_bucket: dict[str, Money] = field(default_factory=dict)


@dataclass(frozen=True)
class CategoryRecommendationsView(_Renderable):
    as_of: date
    recommendations: tuple[CategoryRecommendation, ...]

    @property
    def changes(self) -> tuple[CategoryRecommendation, ...]:
        return tuple(r for r in self.recommendations if r.will_change)


# =============================================================================
# Service
# =============================================================================


class ReceivablesViewService:
    """
    Read-only projections over the ledger.

    Contract:
        Never flushes or commits.  Unknown ids raise the matching
        ``*NotFoundError``.
    """

    def __init__(
        self,
        session: Session,
        policy: EnginePolicy | None = None,
        clock: Clock | None = None,
        interest_calculator: InterestCalculator | None = None,
    ):
        self._session = session
        self._policy = policy or get_active_policy()
        self._clock = clock or SystemClock()
        self._interest = interest_calculator or InterestCalculator()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _invoice(self, invoice_id: UUID) -> Invoice:
        model = self._session.get(InvoiceModel, invoice_id)
        if model is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return model.to_dto()

    def _profile(self, customer_id: UUID) -> CustomerCreditProfile:
        model = self._session.get(CustomerModel, customer_id)
        if model is None:
            raise CustomerNotFoundError(str(customer_id))
        return model.to_dto()

    def _profiles(self) -> list[CustomerCreditProfile]:
        models = self._session.execute(select(CustomerModel)).scalars().all()
        return sorted((m.to_dto() for m in models), key=lambda p: str(p.customer_id))

    def _invoices(self, customer_id: UUID | None = None) -> list[Invoice]:
        stmt = select(InvoiceModel).order_by(InvoiceModel.sequence)
        if customer_id is not None:
            stmt = stmt.where(InvoiceModel.customer_id == customer_id)
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def _allocations(
        self,
        customer_id: UUID | None = None,
        invoice_id: UUID | None = None,
    ) -> list[Allocation]:
        stmt = select(AllocationModel).order_by(AllocationModel.sequence)
        if customer_id is not None:
            stmt = stmt.where(AllocationModel.customer_id == customer_id)
        if invoice_id is not None:
            stmt = stmt.where(AllocationModel.invoice_id == invoice_id)
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def _as_of(self, as_of: date | None) -> date:
        return as_of if as_of is not None else self._clock.today()

    def _breakdown(
        self,
        invoice: Invoice,
        profile: CustomerCreditProfile,
        allocations: Sequence[Allocation],
        as_of: date,
    ) -> InterestBreakdown:
        return self._interest.compute_interest(
            invoice,
            allocations,
            rate=resolve_rate(invoice, profile),
            anchor=resolve_anchor(invoice, profile, self._policy.interest.default_anchor),
            as_of=as_of,
            combination=self._policy.interest.combination,
        )

    # ------------------------------------------------------------------
    # Interest & profitability
    # ------------------------------------------------------------------

    def interest_breakdown(self, invoice_id: UUID, as_of: date | None = None) -> InterestView:
        """Per-tranche interest of one invoice, plus interest accruing on what is unpaid."""
        day = self._as_of(as_of)
        invoice = self._invoice(invoice_id)
        profile = self._profile(invoice.customer_id)
        breakdown = self._breakdown(
            invoice, profile, self._allocations(invoice_id=invoice_id), day,
        )
        return InterestView(
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            customer_id=invoice.customer_id,
            as_of=day,
            breakdown=breakdown,
            projected_total_interest=breakdown.projected_total_interest,
        )

    def customer_interest(self, customer_id: UUID, as_of: date | None = None) -> CustomerInterestView:
        """Every invoice's interest combined with the opening-balance term."""
        day = self._as_of(as_of)
        profile = self._profile(customer_id)
        allocations = self._allocations(customer_id=customer_id)
        breakdowns = tuple(
            self._breakdown(invoice, profile, allocations, day)
            for invoice in self._invoices(customer_id)
        )
        summary = self._interest.summarize_customer(
            profile, breakdowns, day, combination=self._policy.interest.combination,
        )
        return CustomerInterestView(
            customer_id=customer_id, as_of=day, invoices=breakdowns, summary=summary,
        )

    def profitability(self, invoice_id: UUID, as_of: date | None = None) -> ProfitabilityView:
        day = self._as_of(as_of)
        invoice = self._invoice(invoice_id)
        profile = self._profile(invoice.customer_id)
        breakdown = self._breakdown(
            invoice, profile, self._allocations(invoice_id=invoice_id), day,
        )
        include_unpaid = self._policy.interest.include_unpaid_interest_in_profit
        return ProfitabilityView(
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            customer_id=invoice.customer_id,
            as_of=day,
            includes_unpaid_interest=include_unpaid,
            profitability=resolve_profitability(
                invoice, breakdown, include_unpaid_interest=include_unpaid,
            ),
        )

    # ------------------------------------------------------------------
    # Credit utilization
    # ------------------------------------------------------------------

    def _utilization_for(
        self,
        profile: CustomerCreditProfile,
        balances: dict[UUID, InvoiceBalance],
        invoices: Sequence[Invoice],
    ) -> UtilizationView:
        own = [balances[i.id] for i in invoices if i.customer_id == profile.customer_id]
        return UtilizationView(
            customer_id=profile.customer_id,
            customer_name=profile.name,
            utilization=compute_utilization(profile, own, self._policy.utilization),
        )

    def utilization(self, customer_id: UUID) -> UtilizationView:
        profile = self._profile(customer_id)
        invoices = self._invoices(customer_id)
        balances = compute_balances(invoices, self._allocations(customer_id=customer_id))
        return self._utilization_for(profile, balances, invoices)

    def credit_dashboard(self) -> CreditDashboard:
        """Utilization of every customer and the per-band summary."""
        invoices = self._invoices()
        balances = compute_balances(invoices, self._allocations())
        views = tuple(
            self._utilization_for(profile, balances, invoices)
            for profile in self._profiles()
        )
        summary = summarize_utilization(v.utilization for v in views)
        logger.info("credit_dashboard_built", extra={
            "customer_count": summary.customer_count,
            "undefined_count": summary.undefined_count,
        })
        return CreditDashboard(customers=views, summary=summary)

    # ------------------------------------------------------------------
    # Payment behaviour
    # ------------------------------------------------------------------

    def payment_score(self, customer_id: UUID) -> PaymentScoreView:
        """The stored score; ``record`` is None until the customer has been scored."""
        self._profile(customer_id)
        model = self._session.execute(
            select(PaymentScoreModel).where(PaymentScoreModel.customer_id == customer_id)
        ).scalar_one_or_none()
        if model is None:
            return PaymentScoreView(customer_id=customer_id, record=None)
        return PaymentScoreView(
            customer_id=customer_id,
            record=model.to_dto(),
            policy_checksum=model.policy_checksum,
        )

    def segment_dashboard(self) -> SegmentDashboard:
        models = self._session.execute(select(PaymentScoreModel)).scalars().all()
        records = tuple(sorted((m.to_dto() for m in models), key=lambda r: str(r.customer_id)))
        return SegmentDashboard(summary=summarize_segments(records), records=records)

    # ------------------------------------------------------------------
    # Status, aging, categories
    # ------------------------------------------------------------------

    def status_cards(self, as_of: date | None = None) -> StatusCardsView:
        day = self._as_of(as_of)
        grace = self._policy.status_cards.grace_days
        cards = InvoiceStatusClassifier(grace_days=grace).status_cards(
            self._invoices(), self._allocations(), day,
        )
        return StatusCardsView(as_of=day, grace_days=grace, cards=cards)

    def aging_report(self, as_of: date | None = None) -> AgingView:
        day = self._as_of(as_of)
        invoices = self._invoices()
        report = AgingCalculator().build_report(
            invoices, compute_balances(invoices, self._allocations()), day,
        )
        return AgingView(
            as_of=day,
            report=report,
            total_amount=report.total_amount(),
            overdue_amount=report.overdue_amount(),
            total_by_bucket=report.total_by_bucket(),
        )

    def category_recommendations(self, as_of: date | None = None) -> CategoryRecommendationsView:
        """Recommended category for every customer; ``changes`` lists the movers."""
        day = self._as_of(as_of)
        invoices = self._invoices()
        allocations = self._allocations()
        by_customer: dict[UUID, list[Invoice]] = {}
        for invoice in invoices:
            by_customer.setdefault(invoice.customer_id, []).append(invoice)
        invoice_ids = {
            cid: {i.id for i in items} for cid, items in by_customer.items()
        }

        recommendations = tuple(
            recommend_category(
                profile,
                by_customer.get(profile.customer_id, []),
                [
                    a for a in allocations
                    if a.invoice_id in invoice_ids.get(profile.customer_id, set())
                ],
                day,
                self._policy.categories,
            )
            for profile in self._profiles()
        )
        view = CategoryRecommendationsView(as_of=day, recommendations=recommendations)
        logger.info("category_recommendations_built", extra={
            "customer_count": len(recommendations),
            "changes": len(view.changes),
        })
        return view
