import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import borrowing, models, schemas
from ..activity import ActionType, log_activity
from ..cache import CacheVersions, get_cache
from ..context import RequestContext, get_context, get_writer
from ..database import get_db
from ..storage import StorageClient, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/borrowed", tags=["Borrowed"])

TABLE = "borrowed_items"


def _read(record: models.BorrowedItem) -> schemas.BorrowedItem:
    return schemas.BorrowedItem.model_validate(record).model_copy(
        update={"display_status": borrowing.display_status(record)}
    )


@router.post("/", response_model=schemas.BorrowedItem, status_code=status.HTTP_201_CREATED)
async def create_borrowed_item(
    borrow: schemas.BorrowCreate,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_writer),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
    cache: CacheVersions = Depends(get_cache),
):
    """Borrow items from inventory"""
    logger.info(f"Creating borrow of {borrow.quantity} x item {borrow.item_id} for {borrow.borrower_name}")
    borrowing.validate_borrow(borrow, bool(borrow.signature))

    signature_url = await storage.upload_data_url(borrow.signature, prefix="signature-")
    try:
        image_url = await storage.upload_data_url(borrow.image, prefix="borrowed-")
    except Exception:
        await storage.delete(signature_url)
        raise
    try:
        record = borrowing.create_borrow(db, borrow, signature_url, image_url=image_url)
    except Exception:
        await storage.delete(signature_url)
        if image_url:
            await storage.delete(image_url)
        raise

    cache.invalidate("borrow")
    background_tasks.add_task(
        log_activity, ctx, ActionType.ADD,
        f"{record.borrower_name} borrowed {record.quantity} x {record.item_name}", TABLE, record.id, cache,
    )
    return _read(record)


@router.get("/", response_model=List[schemas.BorrowedItem])
def read_borrowed_items(
    borrow_status: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    ctx: RequestContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    """Get borrowed items; status may be Active, Returned or Overdue"""
    logger.info(f"Fetching borrowed items with status={borrow_status}, skip={skip}, limit={limit}")
    records = borrowing.list_borrows(db, status=borrow_status, search=search, skip=skip, limit=limit)
    return [_read(record) for record in records]


@router.get("/{borrow_id}", response_model=schemas.BorrowedItem)
def read_borrowed_item(
    borrow_id: int,
    ctx: RequestContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    """Get borrowed item by ID"""
    logger.info(f"Fetching borrowed item with ID: {borrow_id}")
    record = db.query(models.BorrowedItem).filter(models.BorrowedItem.id == borrow_id).first()
    if record is None:
        logger.warning(f"Borrowed item with ID {borrow_id} not found")
        raise HTTPException(status_code=404, detail="Borrowed item not found")
    return _read(record)


@router.put("/{borrow_id}", response_model=schemas.BorrowedItem)
async def update_borrowed_item(
    borrow_id: int,
    changes: schemas.BorrowUpdate,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_writer),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
    cache: CacheVersions = Depends(get_cache),
):
    """Edit borrower details, dates, price or image"""
    logger.info(f"Updating borrowed item with ID: {borrow_id}")
    if db.query(models.BorrowedItem.id).filter(models.BorrowedItem.id == borrow_id).first() is None:
        logger.warning(f"Borrowed item with ID {borrow_id} not found")
        raise HTTPException(status_code=404, detail="Borrowed item not found")

    image_url = await storage.upload_data_url(changes.image, prefix="borrowed-")
    try:
        record, _ = borrowing.update_borrow(db, borrow_id, changes, image_url=image_url)
    except Exception:
        if image_url:
            await storage.delete(image_url)
        raise

    cache.invalidate("borrow")
    background_tasks.add_task(
        log_activity, ctx, ActionType.UPDATE, f"Updated borrow record: {record.item_name}", TABLE, borrow_id, cache,
    )
    return _read(record)


@router.post("/{borrow_id}/return", response_model=schemas.BorrowedItem)
def return_borrowed_item(
    borrow_id: int,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_writer),
    db: Session = Depends(get_db),
    cache: CacheVersions = Depends(get_cache),
):
    """Mark a borrow as returned and put its quantity back"""
    logger.info(f"Returning borrowed item with ID: {borrow_id}")
    record, closed = borrowing.return_borrow(db, borrow_id)

    if closed:
        cache.invalidate("borrow")
        background_tasks.add_task(
            log_activity, ctx, ActionType.RETURN,
            f"{record.borrower_name} returned {record.quantity} x {record.item_name}", TABLE, borrow_id, cache,
        )
    return _read(record)


@router.post("/{borrow_id}/extend", response_model=schemas.BorrowedItem)
def extend_borrowed_item(
    borrow_id: int,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_writer),
    db: Session = Depends(get_db),
    cache: CacheVersions = Depends(get_cache),
):
    """Push the return date of an active borrow back by a week"""
    logger.info(f"Extending borrowed item with ID: {borrow_id}")
    record = borrowing.extend_borrow(db, borrow_id)

    cache.invalidate("borrow")
    background_tasks.add_task(
        log_activity, ctx, ActionType.EXTEND,
        f"Extended borrow of {record.item_name} to {record.return_date.isoformat()}", TABLE, borrow_id, cache,
    )
    return _read(record)


@router.delete("/{borrow_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_borrowed_item(
    borrow_id: int,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_writer),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
    cache: CacheVersions = Depends(get_cache),
):
    """Delete a borrow record, restoring its quantity while it is still active"""
    logger.info(f"Deleting borrowed item with ID: {borrow_id}")
    removed = borrowing.delete_borrow(db, borrow_id)
    if removed.signature_url:
        background_tasks.add_task(storage.delete, removed.signature_url)

    cache.invalidate("borrow")
    description = f"Deleted borrow record: {removed.item_name} ({removed.status})"
    if removed.restored:
        description += f", restored {removed.quantity} to inventory"
    background_tasks.add_task(log_activity, ctx, ActionType.DELETE, description, TABLE, borrow_id, cache)
    return None
