import asyncio
import logging
from datetime import date

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from .. import dashboard, models, reports, schemas
from ..context import RequestContext, get_context
from ..database import get_db
from ..inventory import DEFECTED
from ..storage import StorageClient, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["Reports"])


def _pdf(content: bytes, name: str) -> Response:
    filename = f"{name}-{date.today().isoformat()}.pdf"
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/summary", response_model=schemas.ReportSummary)
def read_report_summary(ctx: RequestContext = Depends(get_context), db: Session = Depends(get_db)):
    """Totals shown above the report tables"""
    logger.info("Building report summary")
    return dashboard.report_summary(db)


@router.get("/inventory.pdf")
def download_inventory_report(ctx: RequestContext = Depends(get_context), db: Session = Depends(get_db)):
    """Inventory report as PDF"""
    logger.info("Generating inventory report")
    items = db.query(models.InventoryItem).all()
    return _pdf(reports.inventory_report(items), "inventory-report")


@router.get("/borrowed.pdf")
async def download_borrowed_report(
    ctx: RequestContext = Depends(get_context),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage),
):
    """Borrowed items report as PDF, with borrower signatures"""
    logger.info("Generating borrowed items report")
    records = db.query(models.BorrowedItem).all()
    signed = [record for record in records if record.signature_url]
    images = await asyncio.gather(*(storage.download(record.signature_url) for record in signed))
    signatures = {record.id: image for record, image in zip(signed, images) if image}
    return _pdf(reports.borrowed_report(records, signatures), "borrowed-items-report")


@router.get("/defected.pdf")
def download_defected_report(ctx: RequestContext = Depends(get_context), db: Session = Depends(get_db)):
    """Defected items report as PDF"""
    logger.info("Generating defected items report")
    items = db.query(models.InventoryItem).filter(models.InventoryItem.condition == DEFECTED).all()
    return _pdf(reports.defected_report(items), "defected-items-report")
