"""
Per-request caller identity.

Authentication happens upstream; the gateway forwards the authenticated
user's id and email as headers. The role is looked up here on every
request and handed to handlers as a RequestContext.
"""
import enum
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from .database import get_db
from .exceptions import PermissionDeniedError
from .models import UserRole


class Role(str, enum.Enum):
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    VIEWER = "viewer"


WRITE_ROLES = (Role.SUPERADMIN, Role.ADMIN)


@dataclass(frozen=True)
class RequestContext:
    user_id: str
    email: Optional[str]
    role: Role

    @property
    def can_write(self) -> bool:
        return self.role in WRITE_ROLES

    @property
    def is_superadmin(self) -> bool:
        return self.role == Role.SUPERADMIN

    def require_write(self) -> None:
        if not self.can_write:
            raise PermissionDeniedError("Viewers can only view records")

    def require_superadmin(self) -> None:
        if not self.is_superadmin:
            raise PermissionDeniedError("Only superadmins can manage users")


def lookup_role(db: Session, user_id: str) -> Role:
    row = db.query(UserRole).filter(UserRole.user_id == user_id).first()
    if row is None:
        return Role.VIEWER
    return Role(row.role)


def get_context(
    x_user_id: Optional[str] = Header(default=None),
    x_user_email: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> RequestContext:
    """Dependency resolving the caller's identity and role"""
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return RequestContext(user_id=x_user_id, email=x_user_email, role=lookup_role(db, x_user_id))


def get_writer(ctx: RequestContext = Depends(get_context)) -> RequestContext:
    """Dependency for endpoints that modify records"""
    ctx.require_write()
    return ctx


def get_superadmin(ctx: RequestContext = Depends(get_context)) -> RequestContext:
    """Dependency for user administration endpoints"""
    ctx.require_superadmin()
    return ctx
