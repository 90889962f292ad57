import logging
from datetime import date
from typing import List, NamedTuple, Optional

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import ledger, models, schemas
from .exceptions import ConflictError, InsufficientStockError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

USED = "used"
GIVEN = "given"


class RemovedUsage(NamedTuple):
    id: int
    item_id: Optional[int]
    item_name: str
    type: str
    quantity: int
    restored: bool
    restore_failed: bool


def get_usage(db: Session, usage_id: int) -> models.UsedGivenItem:
    record = db.query(models.UsedGivenItem).filter(models.UsedGivenItem.id == usage_id).first()
    if record is None:
        raise NotFoundError("Used/given record", usage_id)
    return record


def list_usage(
    db: Session, type: Optional[str] = None, skip: int = 0, limit: int = 100
) -> List[models.UsedGivenItem]:
    query = db.query(models.UsedGivenItem)
    if type:
        query = query.filter(models.UsedGivenItem.type == type)
    return query.order_by(models.UsedGivenItem.date.desc(), models.UsedGivenItem.id.desc()) \
        .offset(skip).limit(limit).all()


def create_usage(db: Session, data: schemas.UsageCreate, created_by: Optional[str] = None) -> models.UsedGivenItem:
    """Record stock consumed internally or given away, deducting it from inventory"""
    if data.type == GIVEN and not (data.recipient_name or "").strip():
        raise ValidationError("Recipient name is required for given items")
    item = db.query(models.InventoryItem).filter(models.InventoryItem.id == data.item_id).first()
    if item is None:
        raise NotFoundError("Inventory item", data.item_id)
    if data.quantity > item.quantity:
        raise InsufficientStockError(item.id, data.quantity, item.quantity)

    snapshot = {
        "item_name": item.name,
        "unit_price": item.unit_price or 0,
        "image_url": item.image_url,
    }
    try:
        ledger.deduct_stock(db, item.id, data.quantity)
    except InsufficientStockError:
        db.rollback()
        raise ConflictError(data.item_id, data.quantity)
    except NotFoundError:
        db.rollback()
        raise

    record = models.UsedGivenItem(
        item_id=data.item_id,
        type=data.type,
        quantity=data.quantity,
        recipient_name=data.recipient_name if data.type == GIVEN else None,
        recipient_department=data.recipient_department if data.type == GIVEN else None,
        reason=data.reason,
        date=data.date or date.today(),
        created_by=created_by,
        **snapshot,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info(f"Recorded {record.type} {record.quantity} x {record.item_name} (record {record.id})")
    return record


def _delete_row(db: Session, usage_id: int) -> bool:
    """Remove the record; True only for the caller whose DELETE matched it"""
    table = models.UsedGivenItem.__table__
    return db.execute(delete(table).where(table.c.id == usage_id)).rowcount == 1


def delete_usage(db: Session, usage_id: int) -> RemovedUsage:
    """
    Remove a used/given record and put its quantity back when the item
    still exists.

    Deleting the row is the transition: only the caller whose DELETE
    matched restores stock, so overlapping deletes restore once. The loser
    gets NotFoundError.

    Restoration never blocks the removal: if the restoring UPDATE fails the
    transaction is rolled back and the record is deleted on its own, and the
    result reports ``restore_failed`` so the drift can be audited.
    """
    record = get_usage(db, usage_id)
    removed = RemovedUsage(
        id=record.id,
        item_id=record.item_id,
        item_name=record.item_name,
        type=record.type,
        quantity=record.quantity,
        restored=False,
        restore_failed=False,
    )
    db.expunge(record)
    try:
        if not _delete_row(db, usage_id):
            db.rollback()
            raise NotFoundError("Used/given record", usage_id)
        level = ledger.restore_stock(db, removed.item_id, removed.quantity)
        db.commit()
        return removed._replace(restored=level is not None)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            f"Failed to restore {removed.quantity} to item {removed.item_id} "
            f"while deleting usage record {usage_id}: {e}"
        )

    if not _delete_row(db, usage_id):
        db.rollback()
        raise NotFoundError("Used/given record", usage_id)
    db.commit()
    return removed._replace(restore_failed=True)
