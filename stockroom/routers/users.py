import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .. import schemas, users
from ..activity import ActionType, log_activity
from ..auth_admin import AuthAdminClient, get_auth_admin
from ..cache import CacheVersions, get_cache
from ..context import RequestContext, get_superadmin
from ..database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])

TABLE = "profiles"


@router.get("/", response_model=List[schemas.UserRead])
def read_users(ctx: RequestContext = Depends(get_superadmin), db: Session = Depends(get_db)):
    """Get all users with their roles"""
    logger.info("Fetching users")
    return users.list_users(db)


@router.get("/export")
def export_all_records(ctx: RequestContext = Depends(get_superadmin), db: Session = Depends(get_db)):
    """Download every record as one JSON document"""
    logger.info(f"Exporting all records for {ctx.email or ctx.user_id}")
    document = users.export_all(db)
    filename = users.export_filename(document["generated_at"])
    return JSONResponse(
        content=document,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/", response_model=schemas.UserRead, status_code=status.HTTP_201_CREATED)
async def create_user(
    user: schemas.UserCreate,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_superadmin),
    db: Session = Depends(get_db),
    auth: AuthAdminClient = Depends(get_auth_admin),
    cache: CacheVersions = Depends(get_cache),
):
    """Create a user account with a role"""
    logger.info(f"Creating user {user.email} with role {user.role}")
    created = await users.create_user(db, auth, user)

    cache.invalidate("users")
    background_tasks.add_task(
        log_activity, ctx, ActionType.ADD, f"Created user {created.email} ({created.role})", TABLE, created.id, cache,
    )
    return created


@router.put("/{user_id}/role", response_model=schemas.UserRead)
def update_user_role(
    user_id: str,
    update: schemas.RoleUpdate,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_superadmin),
    db: Session = Depends(get_db),
    cache: CacheVersions = Depends(get_cache),
):
    """Change a user's role"""
    logger.info(f"Setting role of user {user_id} to {update.role}")
    updated = users.set_role(db, ctx, user_id, update.role)

    cache.invalidate("users")
    background_tasks.add_task(
        log_activity, ctx, ActionType.UPDATE, f"Changed role of {updated.email} to {updated.role}",
        "user_roles", user_id, cache,
    )
    return updated


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: str,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_superadmin),
    db: Session = Depends(get_db),
    auth: AuthAdminClient = Depends(get_auth_admin),
    cache: CacheVersions = Depends(get_cache),
):
    """Delete a user account; superadmins cannot delete themselves"""
    logger.info(f"Deleting user {user_id}")
    await users.delete_user(db, auth, ctx, user_id)

    cache.invalidate("users")
    background_tasks.add_task(log_activity, ctx, ActionType.DELETE, f"Deleted user {user_id}", TABLE, user_id, cache)
    return None
