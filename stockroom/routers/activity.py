import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import schemas
from ..activity import recent_logs
from ..context import RequestContext, get_context
from ..database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/activity", tags=["Activity"])


@router.get("/", response_model=List[schemas.ActivityLog])
def read_activity_logs(
    limit: int = Query(50, ge=1, le=500),
    user_email: Optional[str] = None,
    ctx: RequestContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    """Get the latest activity entries, newest first"""
    logger.info(f"Fetching activity logs with limit={limit}")
    return recent_logs(db, limit=limit, user_email=user_email)
