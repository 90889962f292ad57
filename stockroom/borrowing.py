"""
Borrow lifecycle.

A borrow moves stock out of inventory while it is Active and puts the same
quantity back exactly once when it is returned or deleted. Both the state
transition and the stock change are conditional UPDATEs, so a borrow that
loses a race (second return, return racing a delete) never restores twice.
"""
import enum
import logging
from datetime import date, datetime, timedelta, timezone
from typing import List, NamedTuple, Optional, Tuple

from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from . import ledger, models, schemas
from .exceptions import ConflictError, InsufficientStockError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

EXTENSION_DAYS = 7


class BorrowStatus(str, enum.Enum):
    ACTIVE = "Active"
    RETURNED = "Returned"


OVERDUE = "Overdue"


class RemovedBorrow(NamedTuple):
    id: int
    item_id: Optional[int]
    item_name: str
    quantity: int
    status: str
    restored: bool
    image_url: Optional[str]
    signature_url: Optional[str]


def display_status(record: models.BorrowedItem, today: Optional[date] = None) -> str:
    """Overdue is shown for active borrows past their return date, never stored"""
    today = today or date.today()
    if record.status == BorrowStatus.ACTIVE.value and record.return_date < today:
        return OVERDUE
    return record.status


def get_borrow(db: Session, borrow_id: int) -> models.BorrowedItem:
    record = db.query(models.BorrowedItem).filter(models.BorrowedItem.id == borrow_id).first()
    if record is None:
        raise NotFoundError("Borrowed item", borrow_id)
    return record


def list_borrows(
    db: Session,
    status: Optional[str] = None,
    search: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[models.BorrowedItem]:
    query = db.query(models.BorrowedItem)
    if status == OVERDUE:
        query = query.filter(
            models.BorrowedItem.status == BorrowStatus.ACTIVE.value,
            models.BorrowedItem.return_date < date.today(),
        )
    elif status:
        query = query.filter(models.BorrowedItem.status == status)
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            models.BorrowedItem.item_name.ilike(pattern) | models.BorrowedItem.borrower_name.ilike(pattern)
        )
    return query.order_by(models.BorrowedItem.created_at.desc(), models.BorrowedItem.id.desc()) \
        .offset(skip).limit(limit).all()


def validate_borrow(data: schemas.BorrowCreate, has_signature: bool) -> None:
    if not data.borrower_name or not data.borrower_name.strip():
        raise ValidationError("Borrower name is required")
    if not has_signature:
        raise ValidationError("Borrower signature is required")
    if data.return_date is None:
        raise ValidationError("Return date is required")


def create_borrow(
    db: Session,
    data: schemas.BorrowCreate,
    signature_url: Optional[str],
    image_url: Optional[str] = None,
) -> models.BorrowedItem:
    """
    Take stock out of inventory and open an Active borrow.

    The deduction and the new record are committed together. An item that
    had enough stock when read but not when deducted lost a race to another
    writer: that surfaces as ConflictError and nothing is written.
    """
    validate_borrow(data, bool(signature_url))
    item = db.query(models.InventoryItem).filter(models.InventoryItem.id == data.item_id).first()
    if item is None:
        raise NotFoundError("Inventory item", data.item_id)
    if data.quantity > item.quantity:
        raise InsufficientStockError(item.id, data.quantity, item.quantity)

    # Snapshot before the deduction expires the loaded row
    snapshot = {
        "item_name": item.name,
        "unit_price": data.unit_price if data.unit_price is not None else (item.unit_price or 0),
        "image_url": image_url or item.image_url,
    }

    try:
        ledger.deduct_stock(db, item.id, data.quantity)
    except InsufficientStockError:
        db.rollback()
        raise ConflictError(data.item_id, data.quantity)
    except NotFoundError:
        db.rollback()
        raise

    record = models.BorrowedItem(
        item_id=data.item_id,
        borrower_name=data.borrower_name.strip(),
        borrower_department=data.borrower_department,
        description=data.description,
        quantity=data.quantity,
        borrow_date=data.borrow_date or date.today(),
        return_date=data.return_date,
        signature_url=signature_url,
        status=BorrowStatus.ACTIVE.value,
        **snapshot,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info(
        f"Borrow {record.id} opened: {record.quantity} x {record.item_name} for {record.borrower_name}"
    )
    return record


def _close_active(db: Session, borrow_id: int, values: dict) -> bool:
    """Active -> Returned transition; True only for the caller that made it"""
    table = models.BorrowedItem.__table__
    result = db.execute(
        update(table)
        .where(table.c.id == borrow_id, table.c.status == BorrowStatus.ACTIVE.value)
        .values(**values)
    )
    return result.rowcount == 1


def return_borrow(db: Session, borrow_id: int) -> Tuple[models.BorrowedItem, bool]:
    """
    Close an Active borrow and put its quantity back.

    Returns the record and whether this call made the transition.
    Returning an already returned borrow changes nothing.
    """
    record = get_borrow(db, borrow_id)
    item_id, quantity = record.item_id, record.quantity
    closed = _close_active(db, borrow_id, {
        "status": BorrowStatus.RETURNED.value,
        "actual_return_date": datetime.now(timezone.utc),
    })
    if closed:
        ledger.restore_stock(db, item_id, quantity)
    db.commit()
    if not closed:
        logger.info(f"Borrow {borrow_id} was already returned, inventory untouched")
    else:
        logger.info(f"Borrow {borrow_id} returned, {quantity} restored to item {item_id}")
    return get_borrow(db, borrow_id), closed


def mark_returned(db: Session, borrow_id: int) -> models.BorrowedItem:
    record, _ = return_borrow(db, borrow_id)
    return record


def extend_borrow(db: Session, borrow_id: int, days: int = EXTENSION_DAYS) -> models.BorrowedItem:
    record = get_borrow(db, borrow_id)
    if record.status != BorrowStatus.ACTIVE.value:
        raise ValidationError("Only active borrows can be extended")
    record.return_date = record.return_date + timedelta(days=days)
    db.commit()
    db.refresh(record)
    logger.info(f"Borrow {borrow_id} extended to {record.return_date}")
    return record


def update_borrow(
    db: Session,
    borrow_id: int,
    changes: schemas.BorrowUpdate,
    image_url: Optional[str] = None,
):
    """
    Edit borrower details, dates, price or image. Returns the record and
    the image URL it replaced, if any.
    """
    record = get_borrow(db, borrow_id)
    values = changes.model_dump(exclude_unset=True, exclude={"image"})
    borrow_date = values.get("borrow_date", record.borrow_date)
    return_date = values.get("return_date", record.return_date)
    if borrow_date is None or return_date is None:
        raise ValidationError("Borrow and return dates are required")
    if return_date < borrow_date:
        raise ValidationError("Return date cannot be before the borrow date")
    for key, value in values.items():
        if value is None and key in ("borrower_name", "unit_price"):
            continue
        setattr(record, key, value)
    replaced = None
    if image_url is not None:
        replaced = record.image_url
        record.image_url = image_url
    db.commit()
    db.refresh(record)
    return record, replaced


def delete_borrow(db: Session, borrow_id: int) -> RemovedBorrow:
    """
    Remove a borrow. An Active borrow still linked to inventory gives its
    quantity back first; a Returned one is removed with no stock effect.
    """
    record = get_borrow(db, borrow_id)
    snapshot = RemovedBorrow(
        id=record.id,
        item_id=record.item_id,
        item_name=record.item_name,
        quantity=record.quantity,
        status=record.status,
        restored=False,
        image_url=record.image_url,
        signature_url=record.signature_url,
    )
    db.expunge(record)
    table = models.BorrowedItem.__table__
    # Deleting the Active row is the transition; only its winner restores
    removed_active = db.execute(
        delete(table).where(table.c.id == borrow_id, table.c.status == BorrowStatus.ACTIVE.value)
    ).rowcount == 1
    restored = False
    if removed_active:
        restored = ledger.restore_stock(db, snapshot.item_id, snapshot.quantity) is not None
    else:
        db.execute(delete(table).where(table.c.id == borrow_id))
    db.commit()
    logger.info(f"Borrow {borrow_id} deleted ({snapshot.status}), restored={restored}")
    return snapshot._replace(restored=restored)
