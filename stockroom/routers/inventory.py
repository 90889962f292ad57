import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import dashboard, inventory, models, schemas
from ..activity import ActionType, log_activity
from ..cache import CacheVersions, get_cache
from ..context import RequestContext, get_context, get_writer
from ..database import get_db
from ..storage import StorageClient, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/inventory", tags=["Inventory"])

TABLE = "inventory_items"


@router.post("/", response_model=schemas.InventoryItem, status_code=status.HTTP_201_CREATED)
async def create_inventory_item(
    item: schemas.InventoryItemCreate,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_writer),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
    cache: CacheVersions = Depends(get_cache),
):
    """Create a new inventory item"""
    logger.info(f"Creating inventory item: {item.name}")
    image_url = await storage.upload_data_url(item.image, prefix="item-")
    try:
        db_item = inventory.create_item(db, item, image_url=image_url)
    except Exception:
        if image_url:
            await storage.delete(image_url)
        raise

    cache.invalidate("inventory")
    background_tasks.add_task(
        log_activity, ctx, ActionType.ADD,
        f"Added new item: {db_item.name} (qty: {db_item.quantity})", TABLE, db_item.id, cache,
    )
    return db_item


@router.get("/", response_model=List[schemas.InventoryItem])
def read_inventory_items(
    search: Optional[str] = None,
    category: Optional[str] = None,
    condition: Optional[schemas.Condition] = None,
    stock_status: Optional[str] = Query(None, alias="status"),
    available_only: bool = False,
    skip: int = 0,
    limit: int = 100,
    ctx: RequestContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    """Get inventory items with optional filters and pagination"""
    logger.info(f"Fetching inventory items with skip={skip}, limit={limit}")
    return inventory.list_items(
        db,
        search=search,
        category=category,
        condition=condition.value if condition else None,
        status=stock_status,
        available_only=available_only,
        skip=skip,
        limit=limit,
    )


@router.get("/stock-levels", response_model=schemas.StockLevels)
def read_stock_levels(
    ctx: RequestContext = Depends(get_context),
    db: Session = Depends(get_db),
    cache: CacheVersions = Depends(get_cache),
):
    """Per-category stock against reorder thresholds"""
    logger.info("Fetching stock levels")
    return dashboard.build_stock_levels(db, cache)


@router.get("/{item_id}", response_model=schemas.InventoryItem)
def read_inventory_item(
    item_id: int,
    ctx: RequestContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    """Get inventory item by ID"""
    logger.info(f"Fetching inventory item with ID: {item_id}")
    db_item = db.query(models.InventoryItem).filter(models.InventoryItem.id == item_id).first()
    if db_item is None:
        logger.warning(f"Inventory item with ID {item_id} not found")
        raise HTTPException(status_code=404, detail="Inventory item not found")
    return db_item


@router.put("/{item_id}", response_model=schemas.InventoryItem)
async def update_inventory_item(
    item_id: int,
    item: schemas.InventoryItemUpdate,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_writer),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
    cache: CacheVersions = Depends(get_cache),
):
    """Update descriptive fields of an inventory item"""
    logger.info(f"Updating inventory item with ID: {item_id}")
    if db.query(models.InventoryItem.id).filter(models.InventoryItem.id == item_id).first() is None:
        logger.warning(f"Inventory item with ID {item_id} not found")
        raise HTTPException(status_code=404, detail="Inventory item not found")

    image_url = await storage.upload_data_url(item.image, prefix="item-")
    try:
        db_item, replaced = inventory.update_item(db, item_id, item, image_url=image_url)
    except Exception:
        if image_url:
            await storage.delete(image_url)
        raise
    if replaced:
        background_tasks.add_task(storage.delete, replaced)

    cache.invalidate("inventory")
    background_tasks.add_task(
        log_activity, ctx, ActionType.UPDATE, f"Updated item: {db_item.name}", TABLE, item_id, cache,
    )
    return db_item


@router.post("/{item_id}/adjust", response_model=schemas.InventoryItem)
def adjust_inventory(
    item_id: int,
    adjustment: schemas.InventoryAdjustment,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_writer),
    db: Session = Depends(get_db),
    cache: CacheVersions = Depends(get_cache),
):
    """Adjust inventory quantity (add or subtract); subtracting stops at zero"""
    logger.info(f"Adjusting inventory for item ID: {item_id}, amount: {adjustment.amount}")
    db_item = inventory.adjust_item_quantity(db, item_id, adjustment.amount)

    cache.invalidate("inventory")
    if adjustment.amount >= 0:
        description = f"Added {adjustment.amount} to {db_item.name}"
    else:
        description = f"Subtracted {-adjustment.amount} from {db_item.name}"
    background_tasks.add_task(
        log_activity, ctx, ActionType.UPDATE, f"{description} (now {db_item.quantity})", TABLE, item_id, cache,
    )
    return db_item


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_inventory_item(
    item_id: int,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_writer),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
    cache: CacheVersions = Depends(get_cache),
):
    """Delete an inventory item"""
    logger.info(f"Deleting inventory item with ID: {item_id}")
    removed = inventory.delete_item(db, item_id)
    if removed.image_url:
        background_tasks.add_task(storage.delete, removed.image_url)

    cache.invalidate("inventory_delete")
    background_tasks.add_task(
        log_activity, ctx, ActionType.DELETE, f"Deleted item: {removed.name}", TABLE, item_id, cache,
    )
    return None
