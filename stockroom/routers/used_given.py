import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from .. import schemas, usage
from ..activity import ActionType, log_activity
from ..cache import CacheVersions, get_cache
from ..context import RequestContext, get_context, get_writer
from ..database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/used-given", tags=["Used/Given"])

TABLE = "used_given_items"


@router.post("/", response_model=schemas.UsedGivenItem, status_code=status.HTTP_201_CREATED)
def create_used_given_item(
    record: schemas.UsageCreate,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_writer),
    db: Session = Depends(get_db),
    cache: CacheVersions = Depends(get_cache),
):
    """Record items used internally or given away"""
    logger.info(f"Recording {record.type} {record.quantity} x item {record.item_id}")
    db_record = usage.create_usage(db, record, created_by=ctx.user_id)

    cache.invalidate("usage")
    if db_record.type == usage.GIVEN:
        action, description = ActionType.ITEM_GIVEN, (
            f"Gave {db_record.quantity} x {db_record.item_name} to {db_record.recipient_name}"
        )
    else:
        action, description = ActionType.ITEM_USED, f"Used {db_record.quantity} x {db_record.item_name}"
    background_tasks.add_task(log_activity, ctx, action, description, TABLE, db_record.id, cache)
    return db_record


@router.get("/", response_model=List[schemas.UsedGivenItem])
def read_used_given_items(
    type: Optional[Literal["used", "given"]] = None,
    skip: int = 0,
    limit: int = 100,
    ctx: RequestContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    """Get used and given records, optionally of one type"""
    logger.info(f"Fetching used/given items with type={type}, skip={skip}, limit={limit}")
    return usage.list_usage(db, type=type, skip=skip, limit=limit)


@router.delete("/{usage_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_used_given_item(
    usage_id: int,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_writer),
    db: Session = Depends(get_db),
    cache: CacheVersions = Depends(get_cache),
):
    """Delete a used/given record and restore its quantity to inventory"""
    logger.info(f"Deleting used/given item with ID: {usage_id}")
    removed = usage.delete_usage(db, usage_id)

    cache.invalidate("usage")
    if removed.restore_failed:
        background_tasks.add_task(
            log_activity, ctx, ActionType.STOCK_RESTORE_FAILED,
            f"Could not restore {removed.quantity} x {removed.item_name} to item {removed.item_id} "
            f"after deleting {removed.type} record",
            TABLE, usage_id, cache,
        )
    elif removed.restored:
        background_tasks.add_task(
            log_activity, ctx, ActionType.ITEM_RESTORED,
            f"Restored {removed.quantity} x {removed.item_name} from deleted {removed.type} record",
            TABLE, usage_id, cache,
        )
    background_tasks.add_task(
        log_activity, ctx, ActionType.DELETE,
        f"Deleted {removed.type} record: {removed.item_name} (qty: {removed.quantity})", TABLE, usage_id, cache,
    )
    return None
