from datetime import date, timedelta

import pydantic
import pytest

from conftest import borrow_request
from stockroom import borrowing, inventory, ledger, schemas
from stockroom.exceptions import InsufficientStockError, NotFoundError, ValidationError

SIGNATURE = "http://storage.test/storage/v1/object/public/item-images/signatures/sig.png"


def quantity_of(db, item_id):
    return ledger.read_level(db, item_id).quantity


def test_borrow_then_return_conserves_quantity(db, make_item):
    item = make_item(quantity=50)
    record = borrowing.create_borrow(db, borrow_request(item.id, 10), SIGNATURE)
    assert quantity_of(db, item.id) == 40
    assert record.status == "Active"

    borrowing.mark_returned(db, record.id)
    assert quantity_of(db, item.id) == 50


def test_borrow_then_delete_while_active_conserves_quantity(db, make_item):
    item = make_item(quantity=12)
    record = borrowing.create_borrow(db, borrow_request(item.id, 12), SIGNATURE)
    assert ledger.read_level(db, item.id) == (0, ledger.StockStatus.OUT_OF_STOCK)

    removed = borrowing.delete_borrow(db, record.id)
    assert removed.restored is True
    assert ledger.read_level(db, item.id) == (12, ledger.StockStatus.LOW_STOCK)
    with pytest.raises(NotFoundError):
        borrowing.get_borrow(db, record.id)


def test_delete_returned_borrow_leaves_inventory_alone(db, make_item):
    item = make_item(quantity=20)
    record = borrowing.create_borrow(db, borrow_request(item.id, 5), SIGNATURE)
    borrowing.mark_returned(db, record.id)

    removed = borrowing.delete_borrow(db, record.id)
    assert removed.restored is False
    assert quantity_of(db, item.id) == 20


def test_mark_returned_is_idempotent(db, make_item):
    item = make_item(quantity=50)
    record = borrowing.create_borrow(db, borrow_request(item.id, 10), SIGNATURE)

    first = borrowing.mark_returned(db, record.id)
    returned_at = first.actual_return_date
    second = borrowing.mark_returned(db, record.id)

    assert quantity_of(db, item.id) == 50
    assert second.status == "Returned"
    assert second.actual_return_date == returned_at


def test_return_borrow_reports_transition_once(db, make_item):
    item = make_item(quantity=50)
    record = borrowing.create_borrow(db, borrow_request(item.id, 10), SIGNATURE)

    _, first = borrowing.return_borrow(db, record.id)
    returned, second = borrowing.return_borrow(db, record.id)

    assert first is True
    assert second is False
    assert returned.status == "Returned"
    assert quantity_of(db, item.id) == 50


def test_borrow_rejects_more_than_available(db, make_item):
    item = make_item(quantity=8)
    with pytest.raises(InsufficientStockError) as exc_info:
        borrowing.create_borrow(db, borrow_request(item.id, 9), SIGNATURE)
    assert str(exc_info.value) == "Only 8 items available in stock"
    assert quantity_of(db, item.id) == 8
    assert borrowing.list_borrows(db) == []


@pytest.mark.parametrize(
    "fields, signature, message",
    [
        ({"borrower_name": "  "}, SIGNATURE, "Borrower name is required"),
        ({}, None, "Borrower signature is required"),
        ({"return_date": None}, SIGNATURE, "Return date is required"),
    ],
)
def test_borrow_validation(db, make_item, fields, signature, message):
    item = make_item(quantity=10)
    with pytest.raises(ValidationError, match=message):
        borrowing.create_borrow(db, borrow_request(item.id, 1, **fields), signature)
    assert quantity_of(db, item.id) == 10


def test_borrow_of_missing_item(db):
    with pytest.raises(NotFoundError):
        borrowing.create_borrow(db, borrow_request(404, 1), SIGNATURE)


def test_borrow_snapshots_item_fields(db, make_item):
    item = make_item(name="Rebar 10mm", quantity=40, unit_price=125.5)
    record = borrowing.create_borrow(db, borrow_request(item.id, 4), SIGNATURE)

    inventory.update_item(db, item.id, schemas.InventoryItemUpdate(name="Rebar 12mm", unit_price=200))
    db.refresh(record)
    assert record.item_name == "Rebar 10mm"
    assert record.unit_price == 125.5


def test_borrow_unit_price_override(db, make_item):
    item = make_item(quantity=40, unit_price=100)
    record = borrowing.create_borrow(db, borrow_request(item.id, 4, unit_price=90), SIGNATURE)
    assert record.unit_price == 90


def test_return_after_item_deleted_skips_restore(db, make_item):
    item = make_item(quantity=10)
    record = borrowing.create_borrow(db, borrow_request(item.id, 3), SIGNATURE)
    inventory.delete_item(db, item.id)

    returned = borrowing.mark_returned(db, record.id)
    assert returned.status == "Returned"
    assert returned.item_id is None


def test_extend_adds_a_week(db, make_item):
    item = make_item(quantity=10)
    record = borrowing.create_borrow(db, borrow_request(item.id, 1), SIGNATURE)
    original = record.return_date

    extended = borrowing.extend_borrow(db, record.id)
    assert extended.return_date == original + timedelta(days=7)
    assert quantity_of(db, item.id) == 9


def test_extend_rejects_returned_borrow(db, make_item):
    item = make_item(quantity=10)
    record = borrowing.create_borrow(db, borrow_request(item.id, 1), SIGNATURE)
    borrowing.mark_returned(db, record.id)
    with pytest.raises(ValidationError):
        borrowing.extend_borrow(db, record.id)


def test_update_keeps_quantity_and_item_fixed(db, make_item):
    item = make_item(quantity=10)
    record = borrowing.create_borrow(db, borrow_request(item.id, 2), SIGNATURE)

    updated, replaced = borrowing.update_borrow(
        db, record.id, schemas.BorrowUpdate(borrower_name="Maria Santos", unit_price=15)
    )
    assert updated.borrower_name == "Maria Santos"
    assert updated.quantity == 2
    assert updated.item_id == item.id
    assert replaced is None

    with pytest.raises(pydantic.ValidationError):
        schemas.BorrowUpdate(quantity=5)


def test_update_rejects_return_before_borrow_date(db, make_item):
    item = make_item(quantity=10)
    record = borrowing.create_borrow(db, borrow_request(item.id, 2), SIGNATURE)
    with pytest.raises(ValidationError):
        borrowing.update_borrow(
            db, record.id, schemas.BorrowUpdate(return_date=record.borrow_date - timedelta(days=1))
        )


def test_display_status_overdue(db, make_item):
    item = make_item(quantity=10)
    record = borrowing.create_borrow(
        db,
        borrow_request(
            item.id, 1,
            borrow_date=date.today() - timedelta(days=10),
            return_date=date.today() - timedelta(days=1),
        ),
        SIGNATURE,
    )
    assert record.status == "Active"
    assert borrowing.display_status(record) == "Overdue"
    assert [r.id for r in borrowing.list_borrows(db, status="Overdue")] == [record.id]

    borrowing.mark_returned(db, record.id)
    assert borrowing.display_status(borrowing.get_borrow(db, record.id)) == "Returned"
    assert borrowing.list_borrows(db, status="Overdue") == []


def test_end_to_end_borrow_scenario(db, make_item):
    item = make_item(quantity=50, reorder_point=20)

    first = borrowing.create_borrow(db, borrow_request(item.id, 10), SIGNATURE)
    assert ledger.read_level(db, item.id) == (40, ledger.StockStatus.IN_STOCK)

    with pytest.raises(InsufficientStockError):
        borrowing.create_borrow(db, borrow_request(item.id, 45), SIGNATURE)
    assert quantity_of(db, item.id) == 40

    borrowing.mark_returned(db, first.id)
    assert ledger.read_level(db, item.id) == (50, ledger.StockStatus.IN_STOCK)
