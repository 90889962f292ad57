import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import dashboard, schemas
from ..cache import CacheVersions, get_cache
from ..context import RequestContext, get_context
from ..database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@router.get("/", response_model=schemas.Dashboard)
def read_dashboard(
    ctx: RequestContext = Depends(get_context),
    db: Session = Depends(get_db),
    cache: CacheVersions = Depends(get_cache),
):
    """Dashboard statistics; ``versions`` changes whenever the data behind it does"""
    logger.info("Building dashboard")
    return dashboard.build_dashboard(db, cache)
