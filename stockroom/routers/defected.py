import logging

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from .. import inventory, schemas
from ..activity import ActionType, log_activity
from ..cache import CacheVersions, get_cache
from ..context import RequestContext, get_context, get_writer
from ..database import get_db
from ..storage import StorageClient, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/defected", tags=["Defected"])


@router.get("/", response_model=schemas.DefectedSummary)
def read_defected_items(ctx: RequestContext = Depends(get_context), db: Session = Depends(get_db)):
    """Get defected items with count, quantity and value totals"""
    logger.info("Fetching defected items")
    return inventory.list_defected(db)


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_defected_item(
    item_id: int,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_writer),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
    cache: CacheVersions = Depends(get_cache),
):
    """Write off a defected item; its quantity is not restored anywhere"""
    logger.info(f"Deleting defected item with ID: {item_id}")
    removed = inventory.delete_defected(db, item_id)
    if removed.image_url:
        background_tasks.add_task(storage.delete, removed.image_url)

    cache.invalidate("defect")
    background_tasks.add_task(
        log_activity, ctx, ActionType.DELETE,
        f"Deleted defected item: {removed.name} (qty: {removed.quantity})", "inventory_items", item_id, cache,
    )
    return None
