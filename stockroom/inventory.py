import logging
from typing import Dict, List, NamedTuple, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from . import ledger, models, schemas
from .exceptions import NotFoundError

logger = logging.getLogger(__name__)

DEFECTED = schemas.Condition.DEFECTED.value

# Columns that cannot be cleared through an update
REQUIRED_FIELDS = ("name", "condition", "unit_price", "reorder_point")


class RemovedItem(NamedTuple):
    id: int
    name: str
    quantity: int
    image_url: Optional[str]


def _remove(db: Session, item: models.InventoryItem) -> RemovedItem:
    removed = RemovedItem(item.id, item.name, item.quantity, item.image_url)
    db.delete(item)
    db.commit()
    return removed


def item_value(item: models.InventoryItem) -> float:
    """Valuation uses the original stock count, not what is on hand"""
    count = item.total_items or item.quantity or 0
    return (item.unit_price or 0) * count


def get_item(db: Session, item_id: int) -> models.InventoryItem:
    item = db.query(models.InventoryItem).filter(models.InventoryItem.id == item_id).first()
    if item is None:
        raise NotFoundError("Inventory item", item_id)
    return item


def list_items(
    db: Session,
    search: Optional[str] = None,
    category: Optional[str] = None,
    condition: Optional[str] = None,
    status: Optional[str] = None,
    available_only: bool = False,
    skip: int = 0,
    limit: int = 100,
) -> List[models.InventoryItem]:
    query = db.query(models.InventoryItem)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.filter(or_(
            func.lower(models.InventoryItem.name).like(pattern),
            func.lower(models.InventoryItem.category).like(pattern),
            func.lower(models.InventoryItem.location).like(pattern),
        ))
    if category:
        query = query.filter(models.InventoryItem.category == category)
    if condition:
        query = query.filter(models.InventoryItem.condition == condition)
    if status:
        query = query.filter(models.InventoryItem.status == status)
    if available_only:
        query = query.filter(models.InventoryItem.quantity > 0)
    return query.order_by(models.InventoryItem.created_at.desc(), models.InventoryItem.id.desc()) \
        .offset(skip).limit(limit).all()


def create_item(
    db: Session, data: schemas.InventoryItemCreate, image_url: Optional[str] = None
) -> models.InventoryItem:
    fields = data.model_dump(exclude={"image"})
    fields["condition"] = data.condition.value
    item = models.InventoryItem(
        **fields,
        total_items=data.quantity,
        status=ledger.derive_status(data.quantity).value,
        image_url=image_url,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    logger.info(f"Created inventory item {item.id} ({item.name}) with quantity {item.quantity}")
    return item


def update_item(
    db: Session,
    item_id: int,
    changes: schemas.InventoryItemUpdate,
    image_url: Optional[str] = None,
) -> Tuple[models.InventoryItem, Optional[str]]:
    """
    Update descriptive fields. Returns the item and the image URL it
    replaced, if any, so the caller can remove the old file.
    """
    item = get_item(db, item_id)
    for key, value in changes.model_dump(exclude_unset=True, exclude={"image"}).items():
        if value is None and key in REQUIRED_FIELDS:
            continue
        if key == "condition":
            value = schemas.Condition(value).value
        setattr(item, key, value)
    replaced = None
    if image_url is not None:
        replaced = item.image_url
        item.image_url = image_url
    db.commit()
    db.refresh(item)
    return item, replaced


def adjust_item_quantity(db: Session, item_id: int, amount: int) -> models.InventoryItem:
    """Manual add/subtract; subtracting more than on hand leaves zero"""
    level = ledger.adjust_stock(db, item_id, amount)
    db.commit()
    logger.info(f"Adjusted inventory item {item_id} by {amount}, now {level.quantity} ({level.status.value})")
    return get_item(db, item_id)


def delete_item(db: Session, item_id: int) -> RemovedItem:
    """Remove an item; borrow and usage records keep their snapshot and lose the link"""
    removed = _remove(db, get_item(db, item_id))
    logger.info(f"Deleted inventory item {item_id}")
    return removed


def list_defected(db: Session) -> Dict:
    items = db.query(models.InventoryItem) \
        .filter(models.InventoryItem.condition == DEFECTED) \
        .order_by(models.InventoryItem.created_at.desc(), models.InventoryItem.id.desc()) \
        .all()
    return {
        "items": items,
        "total_records": len(items),
        "total_quantity": sum(item.quantity for item in items),
        "total_value": sum(item.quantity * (item.unit_price or 0) for item in items),
    }


def delete_defected(db: Session, item_id: int) -> RemovedItem:
    """
    Write off a defected item. The row is removed outright and no quantity
    is restored anywhere.
    """
    item = db.query(models.InventoryItem).filter(
        models.InventoryItem.id == item_id,
        models.InventoryItem.condition == DEFECTED,
    ).first()
    if item is None:
        raise NotFoundError("Defected item", item_id)
    removed = _remove(db, item)
    logger.info(f"Wrote off defected item {item_id} ({removed.quantity} units)")
    return removed
