"""
Tests for SequenceService.

Creation-order numbers break ties in FIFO allocation and receipt replay,
so they must be strictly increasing and independent per sequence name.
"""

from sqlalchemy import inspect as sa_inspect

from receivables_kernel.services.sequence_service import SequenceService


class TestSequenceService:
    def test_counter_table_exists(self, session):
        columns = {c["name"] for c in sa_inspect(session.bind).get_columns("sequence_counters")}
        assert {"name", "current_value"} <= columns

    def test_first_value_is_one(self, session):
        assert SequenceService(session).next_value("custom") == 1

    def test_strictly_increasing(self, session):
        sequences = SequenceService(session)
        values = [sequences.next_value(SequenceService.RECEIPT) for _ in range(5)]
        assert values == [1, 2, 3, 4, 5]

    def test_names_are_independent(self, session):
        sequences = SequenceService(session)
        sequences.next_value(SequenceService.INVOICE)
        sequences.next_value(SequenceService.INVOICE)
        assert sequences.next_value(SequenceService.BATCH_JOB) == 1
        assert sequences.current_value(SequenceService.INVOICE) == 2

    def test_current_value_of_unused_sequence(self, session):
        assert SequenceService(session).current_value("never-used") == 0

    def test_current_value_does_not_increment(self, session):
        sequences = SequenceService(session)
        sequences.next_value("custom")
        assert sequences.current_value("custom") == 1
        assert sequences.current_value("custom") == 1

    def test_ledger_numbers_invoices_in_creation_order(
        self, session, make_customer, make_invoice,
    ):
        customer = make_customer()
        make_invoice(customer)
        make_invoice(customer)
        assert SequenceService(session).current_value(SequenceService.INVOICE) == 2
