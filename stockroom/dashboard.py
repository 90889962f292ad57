"""
Read-side statistics for the dashboard, stock levels page and report
summary. The dashboard and stock levels are memoized on the cache version
keys of the aggregates they are computed from.
"""
import logging
from collections import OrderedDict
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import cache, ledger, models, schemas
from .borrowing import OVERDUE, BorrowStatus, display_status
from .cache import CacheVersions
from .inventory import DEFECTED, item_value

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"
RECENT_LIMIT = 5
DEFAULT_REORDER_POINT = 20


def _utc(ts: Optional[datetime]) -> datetime:
    """Naive UTC datetime; SQLite hands back naive values, Postgres aware ones"""
    if ts is None:
        return datetime.min
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def percentage(part: int, whole: int) -> str:
    if whole <= 0:
        return "0"
    return f"{part / whole * 100:.1f}"


def inventory_stats(items: Iterable[models.InventoryItem]) -> Dict:
    items = list(items)
    distribution: Dict[str, int] = {}
    for item in items:
        category = item.category or UNCATEGORIZED
        distribution[category] = distribution.get(category, 0) + item.quantity
    return {
        "total_items": sum(item.quantity for item in items),
        "in_stock_quantity": sum(
            item.quantity for item in items if item.status == ledger.StockStatus.IN_STOCK.value
        ),
        "low_stock": sum(1 for item in items if ledger.needs_reorder(item.quantity, item.reorder_point)),
        "defected_quantity": sum(item.quantity for item in items if item.condition == DEFECTED),
        "total_records": len(items),
        "category_distribution": distribution,
    }


def start_of_week(now: datetime) -> datetime:
    """Sunday 00:00 of the week containing ``now``"""
    days_since_sunday = (now.weekday() + 1) % 7
    return (now - timedelta(days=days_since_sunday)).replace(hour=0, minute=0, second=0, microsecond=0)


def weekly_activity(logs: Iterable[models.ActivityLog], now: datetime) -> List[Dict]:
    """Per-user action counts for entries logged since the start of the week"""
    since = start_of_week(_utc(now))
    stats: Dict[str, Dict] = OrderedDict()
    for log in logs:
        if _utc(log.created_at) < since:
            continue
        email = log.user_email or "Unknown"
        entry = stats.setdefault(email, {
            "name": email.split("@")[0],
            "email": email,
            "actions": 0,
            "adds": 0,
            "updates": 0,
            "deletes": 0,
        })
        entry["actions"] += 1
        if log.action_type == "ADD":
            entry["adds"] += 1
        elif log.action_type == "UPDATE":
            entry["updates"] += 1
        elif log.action_type == "DELETE":
            entry["deletes"] += 1
    return list(stats.values())


def recent_activity(
    items: Iterable[models.InventoryItem],
    borrows: Iterable[models.BorrowedItem],
    limit: int = RECENT_LIMIT,
) -> List[Dict]:
    """Latest inventory additions and borrow changes, newest first"""
    entries = [
        {
            "type": "inventory",
            "title": "New inventory item added",
            "description": item.name,
            "timestamp": _utc(item.created_at),
        }
        for item in items
    ]
    for record in borrows:
        returned = record.status == BorrowStatus.RETURNED.value
        entries.append({
            "type": "returned" if returned else "borrowed",
            "title": "Item returned" if returned else "Item borrowed",
            "description": record.item_name,
            "timestamp": _utc(record.updated_at or record.created_at),
        })
    entries.sort(key=lambda entry: entry["timestamp"], reverse=True)
    return entries[:limit]


def stock_levels(items: Iterable[models.InventoryItem]) -> Dict:
    """Per-category totals against summed reorder points, plus restock lists"""
    categories: Dict[str, Dict] = OrderedDict()
    well_stocked, low = [], []
    for item in sorted(items, key=lambda i: i.quantity, reverse=True):
        reorder_point = item.reorder_point or DEFAULT_REORDER_POINT
        category = item.category or UNCATEGORIZED
        level = categories.setdefault(category, {"category": category, "quantity": 0, "threshold": 0})
        level["quantity"] += item.quantity
        level["threshold"] += reorder_point
        if item.quantity > reorder_point * 2:
            well_stocked.append(item)
        elif ledger.needs_reorder(item.quantity, reorder_point):
            low.append(item)
    return {
        "categories": list(categories.values()),
        "well_stocked": well_stocked,
        "needs_reorder": low,
    }


def _build_dashboard(db: Session, now: datetime) -> Dict:
    items = db.query(models.InventoryItem).all()
    stats = inventory_stats(items)
    borrowed_active = db.query(func.count(models.BorrowedItem.id)) \
        .filter(models.BorrowedItem.status == BorrowStatus.ACTIVE.value).scalar() or 0

    grand_total = stats["in_stock_quantity"] + stats["defected_quantity"] + borrowed_active
    logs = db.query(models.ActivityLog) \
        .filter(models.ActivityLog.created_at >= start_of_week(now)).all()
    latest_items = db.query(models.InventoryItem) \
        .order_by(models.InventoryItem.created_at.desc(), models.InventoryItem.id.desc()) \
        .limit(RECENT_LIMIT).all()
    latest_borrows = db.query(models.BorrowedItem) \
        .order_by(models.BorrowedItem.updated_at.desc(), models.BorrowedItem.id.desc()) \
        .limit(RECENT_LIMIT).all()

    return {
        **stats,
        "borrowed_active": borrowed_active,
        "inventory_percentage": percentage(stats["in_stock_quantity"], grand_total),
        "borrowed_percentage": percentage(borrowed_active, grand_total),
        "defected_percentage": percentage(stats["defected_quantity"], grand_total),
        "weekly_activity": weekly_activity(logs, now),
        "recent_activity": recent_activity(latest_items, latest_borrows),
    }


def build_dashboard(db: Session, versions: CacheVersions, now: Optional[datetime] = None) -> schemas.Dashboard:
    now = _utc(now) if now is not None else _utcnow()
    # Weekly buckets roll over on Sunday even when nothing was written
    name = f"dashboard:{start_of_week(now).date().isoformat()}"
    data = versions.memoize(
        name,
        (cache.INVENTORY, cache.BORROWED, cache.ACTIVITY, cache.STATS),
        lambda: _build_dashboard(db, now),
    )
    return schemas.Dashboard(**data, versions=versions.snapshot())


def build_stock_levels(db: Session, versions: CacheVersions) -> schemas.StockLevels:
    def compute():
        levels = stock_levels(db.query(models.InventoryItem).all())
        return schemas.StockLevels(
            categories=[schemas.CategoryLevel(**level) for level in levels["categories"]],
            well_stocked=[schemas.InventoryItem.model_validate(i) for i in levels["well_stocked"]],
            needs_reorder=[schemas.InventoryItem.model_validate(i) for i in levels["needs_reorder"]],
        )
    return versions.memoize("stock-levels", (cache.INVENTORY,), compute)


def report_summary(db: Session, today: Optional[date] = None) -> schemas.ReportSummary:
    items = db.query(models.InventoryItem).all()
    borrows = db.query(models.BorrowedItem).all()
    statuses = [display_status(record, today) for record in borrows]
    defected = [item for item in items if item.condition == DEFECTED]
    return schemas.ReportSummary(
        total_items=len(items),
        total_quantity=sum(item.quantity for item in items),
        total_value=sum(item_value(item) for item in items),
        low_stock_items=sum(1 for item in items if item.status == ledger.StockStatus.LOW_STOCK.value),
        out_of_stock_items=sum(1 for item in items if item.status == ledger.StockStatus.OUT_OF_STOCK.value),
        # Overdue borrows are still active
        borrowed_active=sum(1 for s in statuses if s != BorrowStatus.RETURNED.value),
        borrowed_returned=statuses.count(BorrowStatus.RETURNED.value),
        borrowed_overdue=statuses.count(OVERDUE),
        defected_items=len(defected),
        defected_quantity=sum(item.quantity for item in defected),
    )
