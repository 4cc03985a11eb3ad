"""
ReceivablesLedgerService -- CRUD entry point for customers, invoices and receipts.

Responsibility:
    Persists ledger entities and keeps every customer's allocation tranches
    equal to a canonical replay of their receipts.  Each receipt change
    retracts the allocations of every receipt from the earliest affected
    replay position onward and reapplies those receipts through
    ``PaymentAllocator``; each invoice change retracts and reapplies the
    whole customer ledger.

Architecture position:
    Services -- imperative shell.  Consumes receivables_engines.allocation
    (pure), the kernel ORM models, SequenceService and the customer locks.

Invariants enforced:
    - Allocation rows are never edited in place: they are deleted and
      regenerated with deterministic ids.
    - After every mutation the customer's allocations equal a from-scratch
      replay in (payment_date, sequence) order, so edit-then-revert is an
      exact round trip and repeating a mutation is a no-op.
    - Per customer: Σ allocated to an invoice <= its amount; Σ allocated
      from a receipt <= its amount.
    - Mutations hold the customer lock(s) and the customer row lock(s),
      and read the entry they change only after taking them.

Failure modes:
    - InvalidAmountError: receipt amount <= 0, invoice amount < 0.
    - CustomerMismatchError: explicit reference to another customer's
      invoice, or an invoice moved away from receipts that reference it.
    - CustomerNotFoundError / InvoiceNotFoundError / ReceiptNotFoundError.
    - CustomerHasLedgerEntriesError: deleting a customer with ledger rows.
    - UnknownLedgerEventError: ``apply_event`` with no matching handler.

Audit relevance:
    Every mutation is logged with the number of receipts retracted and
    reapplied.  A receipt with money left over logs
    ``receipt_unallocated_amount`` at WARNING.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from receivables_engines.allocation import PaymentAllocator
from receivables_kernel.db.base import SYSTEM_ACTOR_ID
from receivables_kernel.domain.dtos import (
    Allocation,
    CustomerCreditProfile,
    Invoice,
    Receipt,
)
from receivables_kernel.domain.values import Money
from receivables_kernel.exceptions import (
    CustomerHasLedgerEntriesError,
    CustomerMismatchError,
    InvalidAmountError,
    InvoiceNotFoundError,
    ReceiptNotFoundError,
    UnknownLedgerEventError,
)
from receivables_kernel.logging_config import LogContext, get_logger
from receivables_kernel.models.allocation import AllocationModel
from receivables_kernel.models.customer import CustomerModel
from receivables_kernel.models.invoice import InvoiceModel
from receivables_kernel.models.payment_score import PaymentScoreModel
from receivables_kernel.models.receipt import ReceiptModel
from receivables_kernel.services.sequence_service import SequenceService
from receivables_services.locks import (
    CustomerLockRegistry,
    default_lock_registry,
    lock_customer_rows,
)

logger = get_logger("services.ledger")

ReplayKey = tuple[date, int, str]


def replay_key(receipt: Receipt) -> ReplayKey:
    """Position of ``receipt`` in the canonical replay order."""
    return (receipt.payment_date, receipt.sequence, str(receipt.id))


@dataclass(frozen=True)
class LedgerRebuildResult:
    """What a retract-then-reapply pass did to one customer's ledger."""

    customer_id: UUID
    retracted_allocations: int
    reapplied_receipts: int
    allocations: tuple[Allocation, ...]
    unallocated_by_receipt: dict[UUID, Money] = field(default_factory=dict)


@dataclass(frozen=True)
class ReceiptPostingResult:
    """
    Outcome of creating or editing a receipt.

    ``unallocated_amount`` is the part of this receipt no invoice could
    absorb; it is also reported in the WARNING log.
    """

    receipt_id: UUID
    customer_id: UUID
    receipt_amount: Money
    allocations: tuple[Allocation, ...]
    unallocated_amount: Money
    rebuild: LedgerRebuildResult

    @property
    def total_allocated(self) -> Money:
        return self.receipt_amount - self.unallocated_amount


@dataclass(frozen=True)
class LedgerEvent:
    """
    A CRUD notification from the surrounding application.

    ``entity`` is ``customer``, ``invoice`` or ``receipt``; ``action`` is
    ``create``, ``update``, ``upsert`` or ``delete``.  ``payload`` is the
    entity DTO, or for deletes either the DTO or its id.
    """

    entity: str
    action: str
    payload: Any


class ReceivablesLedgerService:
    """
    Ledger mutations with retract-then-reapply of allocations.

    Contract:
        Every method takes the full entity DTO (or id for deletes),
        validates it, persists it, regenerates the affected allocations
        and flushes.
    Guarantees:
        - The customer's allocations after any method equal a canonical
          replay of all of its receipts.
        - ``score_refresher``, when given, is called with each mutated
          customer's id while its lock is still held.
    Non-goals:
        - Does NOT call session.commit() -- caller controls boundaries.
        - Does NOT store interest; interest is computed on read.
    """

    def __init__(
        self,
        session: Session,
        allocator: PaymentAllocator | None = None,
        lock_registry: CustomerLockRegistry | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
        score_refresher: Callable[[UUID], Any] | None = None,
    ):
        self._session = session
        self._allocator = allocator or PaymentAllocator()
        self._locks = lock_registry or default_lock_registry()
        self._sequences = SequenceService(session)
        self._actor_id = actor_id
        self._score_refresher = score_refresher
        self._handlers: dict[tuple[str, str], Callable[[Any], Any]] = {
            ("customer", "upsert"): self.upsert_customer,
            ("customer", "delete"): self.delete_customer,
            ("invoice", "upsert"): self.upsert_invoice,
            ("invoice", "delete"): self.delete_invoice,
            ("receipt", "upsert"): self.upsert_receipt,
            ("receipt", "delete"): self.delete_receipt,
        }

    # ------------------------------------------------------------------
    # Event dispatch
    # ------------------------------------------------------------------

    def apply_event(self, event: LedgerEvent) -> Any:
        """Route ``event`` to the matching CRUD method."""
        action = event.action.lower()
        if action in ("create", "update"):
            action = "upsert"
        handler = self._handlers.get((event.entity.lower(), action))
        if handler is None:
            raise UnknownLedgerEventError(event.entity, event.action)

        payload = event.payload
        if action == "delete" and not isinstance(payload, UUID):
            payload = getattr(payload, "customer_id" if event.entity.lower() == "customer" else "id")

        logger.info("ledger_event_received", extra={
            "entity": event.entity,
            "action": event.action,
        })
        return handler(payload)

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    def upsert_customer(self, profile: CustomerCreditProfile) -> CustomerCreditProfile:
        """Create or update a customer.  Allocations do not depend on it."""
        with self._locks.hold(profile.customer_id):
            model = self._session.execute(
                select(CustomerModel)
                .where(CustomerModel.id == profile.customer_id)
                .with_for_update()
            ).scalar_one_or_none()
            if model is None:
                model = CustomerModel.from_dto(profile, created_by_id=self._actor_id)
                self._session.add(model)
                created = True
            else:
                model.apply_dto(profile)
                model.updated_by_id = self._actor_id
                created = False
            self._session.flush()

        logger.info("customer_upserted", extra={
            "customer_id": str(profile.customer_id),
            "created": created,
        })
        return model.to_dto()

    def delete_customer(self, customer_id: UUID) -> None:
        """Delete a customer that has no invoices and no receipts."""
        with self._locks.hold(customer_id):
            rows = lock_customer_rows(self._session, customer_id)
            invoice_count = self._session.scalar(
                select(func.count()).select_from(InvoiceModel)
                .where(InvoiceModel.customer_id == customer_id)
            )
            receipt_count = self._session.scalar(
                select(func.count()).select_from(ReceiptModel)
                .where(ReceiptModel.customer_id == customer_id)
            )
            if invoice_count or receipt_count:
                raise CustomerHasLedgerEntriesError(
                    str(customer_id), invoice_count or 0, receipt_count or 0,
                )
            self._session.execute(
                delete(PaymentScoreModel).where(PaymentScoreModel.customer_id == customer_id)
            )
            self._session.delete(rows[customer_id])
            self._session.flush()

        logger.info("customer_deleted", extra={"customer_id": str(customer_id)})

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def upsert_invoice(self, invoice: Invoice) -> LedgerRebuildResult:
        """
        Create or update an invoice and rebuild the customer's allocations.

        Moving an invoice to another customer rebuilds both ledgers.  It is
        refused while receipts of the old customer reference it explicitly.
        """
        if invoice.amount.is_negative:
            raise InvalidAmountError(
                invoice.amount.amount, "invoice amount cannot be negative", str(invoice.id),
            )

        with self._locked_entry(InvoiceModel, invoice.id, invoice.customer_id) as existing:
            old_customer = existing.customer_id if existing is not None else None
            created = existing is None

            if existing is None:
                sequence = self._sequences.next_value(SequenceService.INVOICE)
                self._session.add(
                    InvoiceModel.from_dto(invoice, sequence=sequence, created_by_id=self._actor_id)
                )
            else:
                if old_customer != invoice.customer_id:
                    self._reject_invoice_move(existing, invoice)
                existing.apply_dto(invoice)
                existing.updated_by_id = self._actor_id
            self._session.flush()

            if old_customer is not None and old_customer != invoice.customer_id:
                self._rebuild(old_customer)
            result = self._rebuild(invoice.customer_id)
            self._refresh_scores(invoice.customer_id, old_customer)

        logger.info("invoice_upserted", extra={
            "invoice_id": str(invoice.id),
            "customer_id": str(invoice.customer_id),
            "created": created,
            "reapplied_receipts": result.reapplied_receipts,
        })
        return result

    def _reject_invoice_move(self, existing: InvoiceModel, invoice: Invoice) -> None:
        referencing = self._session.execute(
            select(ReceiptModel)
            .where(ReceiptModel.invoice_id == existing.id)
            .order_by(ReceiptModel.sequence)
        ).scalars().first()
        if referencing is not None:
            raise CustomerMismatchError(
                receipt_id=str(referencing.id),
                invoice_id=str(existing.id),
                receipt_customer_id=str(referencing.customer_id),
                invoice_customer_id=str(invoice.customer_id),
            )

    def delete_invoice(self, invoice_id: UUID) -> LedgerRebuildResult:
        """
        Delete an invoice and rebuild the customer's allocations.

        Receipts that referenced the invoice lose the reference and are
        auto-allocated from then on.
        """
        with self._locked_entry(InvoiceModel, invoice_id) as existing:
            if existing is None:
                raise InvoiceNotFoundError(str(invoice_id))
            customer_id = existing.customer_id

            referencing = self._session.execute(
                select(ReceiptModel).where(ReceiptModel.invoice_id == invoice_id)
            ).scalars().all()
            for receipt in referencing:
                receipt.invoice_id = None
                receipt.updated_by_id = self._actor_id
            if referencing:
                logger.warning("invoice_delete_cleared_receipt_references", extra={
                    "invoice_id": str(invoice_id),
                    "customer_id": str(customer_id),
                    "receipt_ids": [str(r.id) for r in referencing],
                })

            self._retract(customer_id, receipt_ids=None)
            self._session.delete(existing)
            self._session.flush()

            result = self._rebuild(customer_id)
            self._refresh_scores(customer_id)

        logger.info("invoice_deleted", extra={
            "invoice_id": str(invoice_id),
            "customer_id": str(customer_id),
            "reapplied_receipts": result.reapplied_receipts,
        })
        return result

    # ------------------------------------------------------------------
    # Receipts
    # ------------------------------------------------------------------

    def upsert_receipt(self, receipt: Receipt) -> ReceiptPostingResult:
        """
        Create or update a receipt, retracting and reapplying every receipt
        from the earliest of its old and new replay positions onward.
        """
        if not receipt.amount.is_positive:
            raise InvalidAmountError(
                receipt.amount.amount, "receipt amount must be positive", str(receipt.id),
            )

        with self._locked_entry(ReceiptModel, receipt.id, receipt.customer_id) as existing:
            old_dto = existing.to_dto() if existing is not None else None
            old_customer = old_dto.customer_id if old_dto is not None else None
            self._check_reference(receipt)

            if existing is None:
                sequence = self._sequences.next_value(SequenceService.RECEIPT)
                existing = ReceiptModel.from_dto(
                    receipt, sequence=sequence, created_by_id=self._actor_id,
                )
                self._session.add(existing)
            else:
                existing.apply_dto(receipt)
                existing.updated_by_id = self._actor_id
            self._session.flush()
            stored = existing.to_dto()

            new_key = replay_key(stored)
            if old_dto is not None and old_customer != stored.customer_id:
                self._rebuild(old_customer, from_key=replay_key(old_dto))
                from_key = new_key
            elif old_dto is not None:
                from_key = min(new_key, replay_key(old_dto))
            else:
                from_key = new_key
            rebuild = self._rebuild(stored.customer_id, from_key=from_key)
            self._refresh_scores(stored.customer_id, old_customer)

        own = tuple(a for a in rebuild.allocations if a.receipt_id == stored.id)
        unallocated = rebuild.unallocated_by_receipt.get(stored.id, Money.zero())

        logger.info("receipt_upserted", extra={
            "receipt_id": str(stored.id),
            "customer_id": str(stored.customer_id),
            "created": old_dto is None,
            "tranches": len(own),
            "unallocated": str(unallocated),
            "reapplied_receipts": rebuild.reapplied_receipts,
        })
        return ReceiptPostingResult(
            receipt_id=stored.id,
            customer_id=stored.customer_id,
            receipt_amount=stored.amount,
            allocations=own,
            unallocated_amount=unallocated,
            rebuild=rebuild,
        )

    def _check_reference(self, receipt: Receipt) -> None:
        if receipt.invoice_id is None:
            return
        invoice = self._session.get(InvoiceModel, receipt.invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(str(receipt.invoice_id))
        if invoice.customer_id != receipt.customer_id:
            raise CustomerMismatchError(
                receipt_id=str(receipt.id),
                invoice_id=str(invoice.id),
                receipt_customer_id=str(receipt.customer_id),
                invoice_customer_id=str(invoice.customer_id),
            )

    def delete_receipt(self, receipt_id: UUID) -> LedgerRebuildResult:
        """Delete a receipt and reapply every receipt after its position."""
        with self._locked_entry(ReceiptModel, receipt_id) as existing:
            if existing is None:
                raise ReceiptNotFoundError(str(receipt_id))
            old_dto = existing.to_dto()
            self._retract(old_dto.customer_id, receipt_ids=[receipt_id])
            self._session.delete(existing)
            self._session.flush()

            result = self._rebuild(old_dto.customer_id, from_key=replay_key(old_dto))
            self._refresh_scores(old_dto.customer_id)

        logger.info("receipt_deleted", extra={
            "receipt_id": str(receipt_id),
            "customer_id": str(old_dto.customer_id),
            "reapplied_receipts": result.reapplied_receipts,
        })
        return result

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    @contextmanager
    def _locked_entry(
        self,
        model_cls: type[InvoiceModel] | type[ReceiptModel],
        entry_id: UUID,
        *customer_ids: UUID,
    ) -> Iterator[InvoiceModel | ReceiptModel | None]:
        """
        Hold the locks of ``customer_ids`` and of the entry's current owner,
        and yield the entry row re-read under those locks (None if absent).

        The unlocked read only guesses the owner.  When the locked re-read
        shows another owner, the locks are released and taken again for it.
        """
        snapshot = self._session.get(model_cls, entry_id)
        owner = snapshot.customer_id if snapshot is not None else None
        while True:
            with self._locks.hold(*customer_ids, owner):
                lock_customer_rows(self._session, *customer_ids, owner)
                row = self._session.execute(
                    select(model_cls)
                    .where(model_cls.id == entry_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one_or_none()
                current = row.customer_id if row is not None else None
                if current is None or current == owner or current in customer_ids:
                    yield row
                    return
            logger.info("ledger_entry_owner_changed", extra={
                "entry_id": str(entry_id),
                "expected_customer_id": str(owner),
                "customer_id": str(current),
            })
            owner = current

    # ------------------------------------------------------------------
    # Retract-then-reapply
    # ------------------------------------------------------------------

    def rebuild_customer(self, customer_id: UUID) -> LedgerRebuildResult:
        """Full retract-then-reapply of one customer ledger."""
        with self._locks.hold(customer_id):
            lock_customer_rows(self._session, customer_id)
            return self._rebuild(customer_id)

    def _retract(self, customer_id: UUID, receipt_ids: Sequence[UUID] | None) -> int:
        """Delete allocations of ``receipt_ids`` (all of the customer's when None)."""
        stmt = delete(AllocationModel).where(AllocationModel.customer_id == customer_id)
        if receipt_ids is not None:
            if not receipt_ids:
                return 0
            stmt = stmt.where(AllocationModel.receipt_id.in_(list(receipt_ids)))
        count = self._session.execute(stmt).rowcount or 0
        self._session.flush()
        return count

    def _rebuild(self, customer_id: UUID, from_key: ReplayKey | None = None) -> LedgerRebuildResult:
        """
        Retract allocations of receipts at or after ``from_key`` and replay
        those receipts on top of the retained prefix.  ``from_key`` None
        replays the whole ledger.
        """
        with LogContext.bind(customer_id=str(customer_id)):
            invoices = [
                m.to_dto() for m in self._session.execute(
                    select(InvoiceModel).where(InvoiceModel.customer_id == customer_id)
                ).scalars()
            ]
            receipts = [
                m.to_dto() for m in self._session.execute(
                    select(ReceiptModel).where(ReceiptModel.customer_id == customer_id)
                ).scalars()
            ]
            current = [
                m.to_dto() for m in self._session.execute(
                    select(AllocationModel).where(AllocationModel.customer_id == customer_id)
                ).scalars()
            ]

            if from_key is None:
                suffix = receipts
            else:
                suffix = [r for r in receipts if replay_key(r) >= from_key]
            suffix_ids = {r.id for r in suffix}
            live_ids = {r.id for r in receipts}
            retained = sorted(
                (a for a in current if a.receipt_id in live_ids and a.receipt_id not in suffix_ids),
                key=lambda a: a.sequence,
            )

            # Tranches of receipts that left this ledger go too.
            retracted = self._retract(
                customer_id,
                None if from_key is None else sorted({
                    a.receipt_id for a in current
                    if a.receipt_id in suffix_ids or a.receipt_id not in live_ids
                }, key=str),
            )

            replay = self._allocator.replay_ledger(invoices, suffix, retained=retained)
            for allocation in replay.allocations[len(retained):]:
                self._session.add(AllocationModel.from_dto(allocation, customer_id=customer_id))
            self._session.flush()

            logger.info("ledger_rebuilt", extra={
                "customer_id": str(customer_id),
                "full_rebuild": from_key is None,
                "retained_allocations": len(retained),
                "retracted_allocations": retracted,
                "reapplied_receipts": len(suffix),
                "allocation_count": len(replay.allocations),
            })

            return LedgerRebuildResult(
                customer_id=customer_id,
                retracted_allocations=retracted,
                reapplied_receipts=len(suffix),
                allocations=replay.allocations,
                unallocated_by_receipt=self._unallocated(receipts, replay.allocations),
            )

    @staticmethod
    def _unallocated(
        receipts: Sequence[Receipt],
        allocations: Sequence[Allocation],
    ) -> dict[UUID, Money]:
        allocated: dict[UUID, Money] = {}
        for a in allocations:
            allocated[a.receipt_id] = allocated.get(a.receipt_id, Money.zero()) + a.allocated_amount
        result: dict[UUID, Money] = {}
        for r in receipts:
            left = r.amount - allocated.get(r.id, Money.zero())
            if not left.is_zero:
                result[r.id] = left
        return result

    def _refresh_scores(self, *customer_ids: UUID | None) -> None:
        if self._score_refresher is None:
            return
        for cid in sorted({c for c in customer_ids if c is not None}, key=str):
            self._score_refresher(cid)
