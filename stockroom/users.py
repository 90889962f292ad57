import logging
from datetime import datetime, timezone
from typing import Dict, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, schemas
from .auth_admin import AuthAdminClient
from .context import RequestContext, Role
from .exceptions import AuthAdminError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

NO_ROLE = "No role assigned"


def _read(profile: models.Profile, role: str) -> schemas.UserRead:
    return schemas.UserRead(
        id=profile.id,
        username=profile.username,
        email=profile.email,
        role=role,
        created_at=profile.created_at,
    )


def list_users(db: Session) -> List[schemas.UserRead]:
    """Profiles with their role, newest first"""
    rows = db.query(models.Profile, models.UserRole.role) \
        .outerjoin(models.UserRole, models.UserRole.user_id == models.Profile.id) \
        .order_by(models.Profile.created_at.desc(), models.Profile.email) \
        .all()
    return [_read(profile, role or NO_ROLE) for profile, role in rows]


async def create_user(db: Session, auth: AuthAdminClient, data: schemas.UserCreate) -> schemas.UserRead:
    """
    Create an authentication account, then its profile and role rows.

    If the local rows cannot be written the account is deleted again so no
    account is left without a role, and ValidationError is raised.
    """
    if db.query(models.Profile).filter(models.Profile.email == data.email).first() is not None:
        raise ValidationError(f"A user with email {data.email} already exists")

    user_id = await auth.create_user(data.email, data.password, data.username)
    logger.info(f"Created auth account {user_id} for {data.email}")
    try:
        profile = models.Profile(id=user_id, username=data.username, email=data.email)
        db.add(profile)
        db.flush()
        db.add(models.UserRole(user_id=user_id, role=Role(data.role).value))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Role assignment for {data.email} failed, removing auth account {user_id}: {e}")
        try:
            await auth.delete_user(user_id)
        except AuthAdminError as cleanup_error:
            logger.error(f"Could not remove auth account {user_id}: {cleanup_error}")
        raise ValidationError(f"Failed to assign role: {getattr(e, 'orig', e)}") from e
    db.refresh(profile)
    return _read(profile, data.role)


async def delete_user(db: Session, auth: AuthAdminClient, ctx: RequestContext, user_id: str) -> None:
    """Delete an account with its profile and role; callers cannot delete themselves"""
    if user_id == ctx.user_id:
        raise ValidationError("Cannot delete yourself")
    profile = db.query(models.Profile).filter(models.Profile.id == user_id).first()
    if profile is None:
        raise NotFoundError("User", user_id)

    await auth.delete_user(user_id)
    db.query(models.UserRole).filter(models.UserRole.user_id == user_id).delete(synchronize_session=False)
    db.delete(profile)
    db.commit()
    logger.info(f"Deleted user {user_id}")


def set_role(db: Session, ctx: RequestContext, user_id: str, role: str) -> schemas.UserRead:
    if user_id == ctx.user_id:
        raise ValidationError("You cannot change your own role")
    profile = db.query(models.Profile).filter(models.Profile.id == user_id).first()
    if profile is None:
        raise NotFoundError("User", user_id)
    role = Role(role).value
    row = db.query(models.UserRole).filter(models.UserRole.user_id == user_id).first()
    if row is None:
        db.add(models.UserRole(user_id=user_id, role=role))
    else:
        row.role = role
    db.commit()
    logger.info(f"Role of user {user_id} set to {role}")
    return _read(profile, role)


def export_all(db: Session) -> Dict:
    """Every record as a JSON-ready document"""
    def dump(schema, rows):
        return [schema.model_validate(row).model_dump(mode="json") for row in rows]

    return {
        "inventory_items": dump(schemas.InventoryItem, db.query(models.InventoryItem).order_by(models.InventoryItem.id)),
        "borrowed_items": dump(schemas.BorrowedItem, db.query(models.BorrowedItem).order_by(models.BorrowedItem.id)),
        "used_given_items": dump(
            schemas.UsedGivenItem, db.query(models.UsedGivenItem).order_by(models.UsedGivenItem.id)
        ),
        "users": [user.model_dump(mode="json") for user in list_users(db)],
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }


def export_filename(generated_at: str) -> str:
    return f"all-records-{generated_at[:10]}.json"
