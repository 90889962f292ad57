import enum
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import database, models
from .cache import CacheVersions
from .context import RequestContext
from .exceptions import LoggingError

logger = logging.getLogger(__name__)


class ActionType(str, enum.Enum):
    ADD = "ADD"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    RETURN = "RETURN"
    EXTEND = "EXTEND"
    ITEM_USED = "ITEM_USED"
    ITEM_GIVEN = "ITEM_GIVEN"
    ITEM_RESTORED = "ITEM_RESTORED"
    STOCK_RESTORE_FAILED = "STOCK_RESTORE_FAILED"


def _write(
    ctx: RequestContext,
    action_type: ActionType,
    description: str,
    table_name: Optional[str],
    record_id,
) -> None:
    db = database.SessionLocal()
    try:
        db.add(models.ActivityLog(
            user_id=ctx.user_id,
            user_email=ctx.email,
            action_type=ActionType(action_type).value,
            action_description=description,
            table_name=table_name,
            record_id=str(record_id) if record_id is not None else None,
        ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise LoggingError(str(e)) from e
    finally:
        db.close()


def log_activity(
    ctx: Optional[RequestContext],
    action_type: ActionType,
    description: str,
    table_name: Optional[str] = None,
    record_id=None,
    cache: Optional[CacheVersions] = None,
) -> None:
    """Append an activity entry. Failures are logged and discarded."""
    if ctx is None:
        return
    try:
        _write(ctx, action_type, description, table_name, record_id)
    except LoggingError as e:
        logger.error(f"Failed to log activity {action_type}: {e}")
        return
    if cache is not None:
        cache.invalidate("activity")


def recent_logs(db: Session, limit: int = 50, user_email: Optional[str] = None) -> List[models.ActivityLog]:
    query = db.query(models.ActivityLog)
    if user_email:
        query = query.filter(models.ActivityLog.user_email == user_email)
    return query.order_by(models.ActivityLog.created_at.desc(), models.ActivityLog.id.desc()).limit(limit).all()
