import pytest

from partsledger.models import InventoryTransaction, Invoice, InvoiceItem
from partsledger.services import invoice_service, stock_ledger
from partsledger.validation import ConflictError, NotFoundError, ValidationError

from conftest import invoice_request


@pytest.fixture
def three_purchases(db_session, supplier, part_a):
    return [
        invoice_service.create_invoice(invoice_request("PURCHASE", supplier.id, [(part_a.id, q, "10")])).id
        for q in (1, 2, 3)
    ]


def test_bulk_delete_drafts(db_session, part_a, three_purchases):
    result = invoice_service.bulk_delete(three_purchases[:2])
    assert result == {"deleted": 2}
    assert [i.id for i in db_session.query(Invoice)] == [three_purchases[2]]
    assert db_session.query(InvoiceItem).count() == 1
    assert db_session.query(InventoryTransaction).count() == 1
    assert stock_ledger.current_stock(part_a.id) == 3


def test_bulk_delete_is_all_or_nothing(db_session, part_a, three_purchases):
    invoice_service.change_status(three_purchases[1], "SUBMITTED")

    with pytest.raises(ConflictError) as exc_info:
        invoice_service.bulk_delete(three_purchases)
    assert exc_info.value.details["non_draft_ids"] == [three_purchases[1]]

    assert db_session.query(Invoice).count() == 3
    assert db_session.query(InventoryTransaction).count() == 3
    assert stock_ledger.current_stock(part_a.id) == 6


def test_bulk_delete_unknown_ids(db_session, three_purchases):
    with pytest.raises(NotFoundError) as exc_info:
        invoice_service.bulk_delete([three_purchases[0], 9999])
    assert exc_info.value.details["missing_ids"] == [9999]
    assert db_session.query(Invoice).count() == 3


def test_bulk_delete_requires_ids(db_session):
    with pytest.raises(ValidationError):
        invoice_service.bulk_delete([])


def test_bulk_update_status_is_unconditional(db_session, three_purchases):
    invoice_service.change_status(three_purchases[0], "SUBMITTED")
    invoice_service.change_status(three_purchases[0], "PAID")

    # PAID -> DRAFT is not a legal single transition, the batch write does it anyway
    result = invoice_service.bulk_update_status(three_purchases, "DRAFT")
    assert result == {"updated": 3, "status": "DRAFT"}
    assert {inv.status for inv in db_session.query(Invoice)} == {"DRAFT"}


def test_bulk_update_status_validates_status(db_session, three_purchases):
    with pytest.raises(ValidationError):
        invoice_service.bulk_update_status(three_purchases, "ARCHIVED")


def test_bulk_status_change_leaves_ledger_alone(db_session, part_a, three_purchases):
    invoice_service.bulk_update_status(three_purchases, "CANCELLED")
    assert stock_ledger.current_stock(part_a.id) == 6
