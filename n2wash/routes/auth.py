"""Login and current-user endpoints"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session, joinedload

from ..auth import get_current_user, get_instance_roles, is_super_admin
from ..database import get_db
from ..models import Instance, User
from ..rate_limiter import create_rate_limiter
from ..security import create_access_token, verify_password
from ..shared.timeutils import utcnow
from ..shared.validators import require_text
from ..tenancy import CONTEXT_SUPER_ADMIN, get_active_instance_by_slug, get_tenant_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

login_limit = create_rate_limiter(limit=10, window_seconds=300, key_prefix="login")

INVALID_CREDENTIALS = "Invalid username or password"


class LoginRequest(BaseModel):
    username: str
    password: str
    instanceSlug: Optional[str] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, v):
        return require_text(v, "username").lower()

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        if not v or not v.strip():
            raise ValueError("password is required")
        return v


def _user_payload(user: User, instance: Optional[Instance]) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "fullName": user.full_name,
        "isSuperAdmin": is_super_admin(user),
        "roles": [{"role": r.role, "instanceId": r.instance_id, "hallId": r.hall_id} for r in user.roles],
        "instance": (
            {"id": instance.id, "slug": instance.slug, "name": instance.name} if instance is not None else None
        ),
    }


@router.post("/login")
async def login(
    data: LoginRequest,
    request: Request,
    _: None = Depends(login_limit),
    db: Session = Depends(get_db),
):
    """
    Tenant login resolves the instance from the admin subdomain (or
    instanceSlug when called through the platform host). On the super admin
    subdomain, or without any instance, only super admins can log in.
    """
    context = get_tenant_context(request)
    slug = None if context.kind == CONTEXT_SUPER_ADMIN else (context.instance_slug or data.instanceSlug)

    instance = None
    query = db.query(User).options(joinedload(User.roles)).filter(User.username == data.username)
    if slug:
        instance = get_active_instance_by_slug(db, slug)
        if instance is None:
            logger.warning(f"⚠️ Login attempt for unknown instance {slug}")
            raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)
        query = query.filter(User.instance_id == instance.id)
    else:
        query = query.filter(User.instance_id.is_(None))

    user = query.first()
    if user is None or not verify_password(data.password, user.password_hash):
        logger.warning(f"⚠️ Failed login for {data.username} on {slug or 'super admin'}")
        raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)

    if user.is_blocked:
        raise HTTPException(status_code=403, detail="User is blocked")

    if instance is not None:
        if not get_instance_roles(user, instance.id) and not is_super_admin(user):
            raise HTTPException(status_code=403, detail="No access to this instance")
    elif not is_super_admin(user):
        raise HTTPException(status_code=403, detail="Super admin access required")

    user.last_login_at = utcnow()
    db.commit()
    db.refresh(user)

    logger.info(f"✅ User {user.username} logged in ({slug or 'super admin'})")
    return {
        "accessToken": create_access_token(user.id, instance.id if instance else None),
        "tokenType": "bearer",
        "user": _user_payload(user, instance),
    }


@router.get("/me")
async def me(current_user: User = Depends(get_current_user)):
    return _user_payload(current_user, current_user.instance)
