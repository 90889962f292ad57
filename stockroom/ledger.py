"""
Quantity rules for inventory rows.

``derive_status`` is the only place that turns a quantity into a status
label. ``status_case`` renders the same rule as SQL so the conditional
updates below recompute status in the statement that changes quantity.

Every write to ``inventory_items.quantity`` goes through ``deduct_stock``,
``restore_stock`` or ``adjust_stock``. Each is a single conditional UPDATE,
so concurrent sessions cannot read a stale quantity and write it back.
"""
import enum
import logging
from typing import NamedTuple, Optional

from sqlalchemy import case, select, update
from sqlalchemy.orm import Session

from .exceptions import InsufficientStockError, NotFoundError
from .models import InventoryItem

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD = 30


class StockStatus(str, enum.Enum):
    IN_STOCK = "In Stock"
    LOW_STOCK = "Low Stock"
    OUT_OF_STOCK = "Out of Stock"


class StockLevel(NamedTuple):
    quantity: int
    status: StockStatus


def derive_status(quantity: int) -> StockStatus:
    """Status label for an on-hand quantity."""
    if quantity <= 0:
        return StockStatus.OUT_OF_STOCK
    if quantity < LOW_STOCK_THRESHOLD:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


def status_case(quantity_expr):
    """SQL CASE expression equivalent to derive_status."""
    return case(
        (quantity_expr <= 0, StockStatus.OUT_OF_STOCK.value),
        (quantity_expr < LOW_STOCK_THRESHOLD, StockStatus.LOW_STOCK.value),
        else_=StockStatus.IN_STOCK.value,
    )


def needs_reorder(quantity: int, reorder_point: Optional[int]) -> bool:
    """Restocking advice, independent of the status label."""
    return quantity <= (reorder_point or 0)


def apply_delta(quantity: int, delta: int, clamp: bool = False) -> StockLevel:
    """
    Compute the level after a quantity change.

    Subtractions past zero raise InsufficientStockError, or stop at zero
    when ``clamp`` is set (manual subtract).
    """
    new_quantity = quantity + delta
    if new_quantity < 0:
        if not clamp:
            raise InsufficientStockError(None, -delta, quantity)
        new_quantity = 0
    return StockLevel(new_quantity, derive_status(new_quantity))


def _table():
    return InventoryItem.__table__


def _expire_cached(db: Session, item_id: int) -> None:
    # Core UPDATEs bypass the identity map; drop any loaded copy of the row
    key = Session.identity_key(InventoryItem, item_id)
    cached = db.identity_map.get(key)
    if cached is not None:
        db.expire(cached)


def read_level(db: Session, item_id: int) -> Optional[StockLevel]:
    table = _table()
    row = db.execute(
        select(table.c.quantity, table.c.status).where(table.c.id == item_id)
    ).first()
    if row is None:
        return None
    return StockLevel(row.quantity, StockStatus(row.status))


def deduct_stock(db: Session, item_id: int, amount: int) -> StockLevel:
    """
    Atomically subtract ``amount`` from an item.

    The UPDATE only matches while ``quantity >= amount``. When nothing
    matches, the row is either gone (NotFoundError) or short of stock
    (InsufficientStockError). The caller owns the transaction.
    """
    if amount <= 0:
        raise ValueError("amount must be positive")
    table = _table()
    new_quantity = table.c.quantity - amount
    result = db.execute(
        update(table)
        .where(table.c.id == item_id, table.c.quantity >= amount)
        .values(quantity=new_quantity, status=status_case(new_quantity))
    )
    _expire_cached(db, item_id)
    level = read_level(db, item_id)
    if result.rowcount == 0:
        if level is None:
            raise NotFoundError("Inventory item", item_id)
        raise InsufficientStockError(item_id, amount, level.quantity)
    logger.info(f"Deducted {amount} from inventory item {item_id}, now {level.quantity}")
    return level


def restore_stock(db: Session, item_id: Optional[int], amount: int) -> Optional[StockLevel]:
    """
    Atomically add ``amount`` back to an item.

    Returns None when there is no linked row to restore into.
    """
    if item_id is None:
        return None
    if amount <= 0:
        raise ValueError("amount must be positive")
    table = _table()
    new_quantity = table.c.quantity + amount
    result = db.execute(
        update(table)
        .where(table.c.id == item_id)
        .values(quantity=new_quantity, status=status_case(new_quantity))
    )
    _expire_cached(db, item_id)
    if result.rowcount == 0:
        logger.warning(f"Inventory item {item_id} no longer exists, skipped restoring {amount}")
        return None
    level = read_level(db, item_id)
    logger.info(f"Restored {amount} to inventory item {item_id}, now {level.quantity}")
    return level


def adjust_stock(db: Session, item_id: int, delta: int) -> StockLevel:
    """
    Manual add/subtract. Subtractions stop at zero instead of failing.
    """
    table = _table()
    raw = table.c.quantity + delta
    new_quantity = case((raw < 0, 0), else_=raw)
    result = db.execute(
        update(table)
        .where(table.c.id == item_id)
        .values(quantity=new_quantity, status=status_case(new_quantity))
    )
    _expire_cached(db, item_id)
    if result.rowcount == 0:
        raise NotFoundError("Inventory item", item_id)
    return read_level(db, item_id)
