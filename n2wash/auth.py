import logging
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session, joinedload

from .database import get_db
from .models import ROLE_SUPER_ADMIN, Instance, User
from .security import decode_access_token

logger = logging.getLogger(__name__)

security = HTTPBearer()


def is_super_admin(user: User) -> bool:
    return any(r.role == ROLE_SUPER_ADMIN for r in user.roles)


def get_instance_roles(user: User, instance_id: int) -> list[str]:
    """Roles the user holds on an instance"""
    return [r.role for r in user.roles if r.instance_id == instance_id]


def has_instance_role(user: User, instance_id: int, roles: tuple) -> bool:
    if is_super_admin(user):
        return True
    return any(role in roles for role in get_instance_roles(user, instance_id))


def get_user_from_token(db: Session, token: Optional[str]) -> User:
    """
    Resolve a bearer token into an active user.
    Raises 401 for missing/invalid tokens and 403 for blocked users.
    """
    if not token:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    claims = decode_access_token(token)
    if not claims or not claims.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    try:
        user_id = int(claims["sub"])
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=401, detail="Invalid token claims") from e

    user = db.query(User).options(joinedload(User.roles)).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    if user.is_blocked:
        logger.warning(f"⚠️ Blocked user {user.id} attempted to authenticate")
        raise HTTPException(status_code=403, detail="User is blocked")

    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from the bearer access token"""
    user = get_user_from_token(db, credentials.credentials if credentials else None)
    logger.debug(f"✅ User authenticated: {user.username}")
    return user


async def require_super_admin(user: User = Depends(get_current_user)) -> User:
    if not is_super_admin(user):
        logger.warning(f"⚠️ User {user.id} attempted to access super admin route")
        raise HTTPException(status_code=403, detail="Super admin access required")
    return user


def require_instance_role(*roles: str):
    """
    Create a dependency that checks the current user holds one of the roles
    on the instance given by the `instance_id` path parameter.
    Super admins always pass.

    Example usage:
        @router.get("/instances/{instance_id}/stations")
        async def list_stations(
            instance_id: int,
            user: User = Depends(require_instance_role("admin", "employee")),
        ):
            ...
    """

    async def checker(
        instance_id: int,
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> User:
        instance = db.query(Instance).filter(Instance.id == instance_id).first()
        if not instance or instance.deleted_at is not None:
            raise HTTPException(status_code=404, detail="Instance not found")

        if not has_instance_role(user, instance_id, roles):
            logger.warning(
                f"⚠️ User {user.id} lacks roles {roles} on instance {instance_id}"
            )
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return checker
