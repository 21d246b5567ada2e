"""
Invoice counter tests.

Verifies:
- Atomic increment produces consecutive, formatted invoice numbers
- Preview never reserves a number
- Initialization seeds from existing invoice numbers and is idempotent
"""

import pytest

from storepos.extensions import db
from storepos.models import Sale, SequenceCounter
from storepos.services import sequence_service


def _add_sale(invoice_number: str) -> Sale:
    sale = Sale(
        invoice_number=invoice_number,
        subtotal_cents=100,
        total_cents=100,
        cashier_id="u1",
        cashier_name="Cashier",
    )
    db.session.add(sale)
    db.session.commit()
    return sale


class TestNextInvoiceNumber:
    def test_first_number_on_empty_store(self, db_session):
        assert sequence_service.next_invoice_number() == "S-001"
        db_session.commit()
        assert sequence_service.next_invoice_number() == "S-002"

    def test_prefix_and_width(self, db_session):
        assert sequence_service.next_invoice_number(prefix="INV", digits=5) == "INV-00001"

    def test_width_is_minimum_not_maximum(self, db_session):
        db_session.add(SequenceCounter(name="invoiceNumber", sequence=999))
        db_session.commit()
        assert sequence_service.next_invoice_number() == "S-1000"

    def test_rollback_does_not_consume_number(self, db_session):
        assert sequence_service.next_invoice_number() == "S-001"
        db_session.rollback()
        assert sequence_service.next_invoice_number() == "S-001"

    def test_missing_counter_seeds_from_existing_sales(self, db_session):
        _add_sale("S-041")
        _add_sale("S-007")
        assert sequence_service.next_invoice_number() == "S-042"


class TestPreview:
    def test_preview_does_not_mutate(self, db_session):
        first = sequence_service.preview_invoice_number()
        second = sequence_service.preview_invoice_number()
        assert first == second == "S-001"
        assert db_session.get(SequenceCounter, "invoiceNumber") is None

    def test_preview_matches_next(self, db_session):
        sequence_service.initialize_counter()
        preview = sequence_service.preview_invoice_number()
        assert sequence_service.next_invoice_number() == preview


class TestInitialize:
    def test_seeds_from_max_numeric_suffix(self, db_session):
        _add_sale("S-003")
        _add_sale("S-010")
        _add_sale("LEGACY")
        assert sequence_service.initialize_counter() == 10

    def test_falls_back_to_sale_count(self, db_session):
        _add_sale("LEGACY-A")
        _add_sale("LEGACY-B")
        assert sequence_service.initialize_counter() == 2

    def test_idempotent_and_never_regresses(self, db_session):
        _add_sale("S-005")
        assert sequence_service.initialize_counter() == 5
        sequence_service.next_invoice_number()
        db_session.commit()

        # Existing row is left untouched
        assert sequence_service.initialize_counter() == 6
        assert sequence_service.initialize_counter() == 6

    def test_status(self, db_session):
        _add_sale("S-002")
        status = sequence_service.get_counter_status()
        assert status == {"next_invoice_number": "S-003", "total_sales_count": 1}


@pytest.mark.parametrize("value,expected", [(1, "S-001"), (42, "S-042"), (12345, "S-12345")])
def test_format_invoice_number(value, expected):
    assert sequence_service.format_invoice_number(value, "S", 3) == expected


class TestInvoiceCommands:
    def test_init_counter_and_status(self, app, db_session):
        _add_sale("S-007")
        runner = app.test_cli_runner()

        result = runner.invoke(args=["invoices", "init-counter"])
        assert result.exit_code == 0
        assert "Invoice counter at 7" in result.output

        result = runner.invoke(args=["invoices", "status"])
        assert result.exit_code == 0
        assert "Next invoice number: S-008" in result.output
