"""
Instance user management.

Each instance user holds exactly one instance role. Admins (and super
admins) manage the accounts; nobody can block or delete themselves, and an
instance always keeps at least one admin.
"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import (
    ROLE_ADMIN,
    ROLE_HALL,
    Hall,
    Offer,
    PushSubscription,
    Reservation,
    ReservationChange,
    SmsLog,
    User,
    UserRole,
)
from ...security import hash_password
from .schemas import InstanceUserCreate, InstanceUserUpdate

logger = logging.getLogger(__name__)

ROLE_PRIORITY = ("admin", "hall", "employee")


def primary_role(user: User, instance_id: int) -> tuple[Optional[str], Optional[int]]:
    """Highest-priority instance role (admin > hall > employee) and its hall"""
    roles = {r.role: r for r in user.roles if r.instance_id == instance_id}
    for name in ROLE_PRIORITY:
        if name in roles:
            return name, roles[name].hall_id
    return None, None


def to_user_dict(user: User, instance_id: int) -> dict:
    role, hall_id = primary_role(user, instance_id)
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "fullName": user.full_name,
        "role": role,
        "hallId": hall_id,
        "isBlocked": user.is_blocked,
        "lastLoginAt": user.last_login_at,
        "createdAt": user.created_at,
    }


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def list_users(self, instance_id: int) -> list[dict]:
        users = (
            self.db.query(User)
            .join(UserRole, UserRole.user_id == User.id)
            .filter(UserRole.instance_id == instance_id)
            .distinct()
            .order_by(User.username)
            .all()
        )
        return [to_user_dict(u, instance_id) for u in users]

    def get_user(self, instance_id: int, user_id: int) -> User:
        user = (
            self.db.query(User)
            .join(UserRole, UserRole.user_id == User.id)
            .filter(User.id == user_id, UserRole.instance_id == instance_id)
            .first()
        )
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        return user

    def _username_taken(self, instance_id: int, username: str, exclude_id: Optional[int] = None) -> bool:
        query = self.db.query(User).filter(User.instance_id == instance_id, User.username == username)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        return query.first() is not None

    def _check_hall(self, instance_id: int, role: str, hall_id: Optional[int]) -> Optional[int]:
        if role != ROLE_HALL or hall_id is None:
            return None
        hall = self.db.query(Hall).filter(Hall.id == hall_id, Hall.instance_id == instance_id).first()
        if not hall:
            raise HTTPException(status_code=400, detail="Hall does not belong to this instance")
        return hall.id

    def _admin_count(self, instance_id: int) -> int:
        return (
            self.db.query(UserRole)
            .filter(UserRole.instance_id == instance_id, UserRole.role == ROLE_ADMIN)
            .count()
        )

    def _is_admin(self, user: User, instance_id: int) -> bool:
        return any(r.role == ROLE_ADMIN and r.instance_id == instance_id for r in user.roles)

    def _commit(self, error_detail: str):
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.error(f"❌ {error_detail}: {e}")
            raise HTTPException(status_code=400, detail=error_detail) from e

    def create_user(self, instance_id: int, data: InstanceUserCreate) -> dict:
        if self._username_taken(instance_id, data.username):
            raise HTTPException(status_code=400, detail="Username already exists")

        user = User(
            instance_id=instance_id,
            username=data.username,
            email=data.email,
            full_name=data.fullName,
            password_hash=hash_password(data.password),
        )
        user.roles.append(
            UserRole(role=data.role, instance_id=instance_id, hall_id=self._check_hall(instance_id, data.role, data.hallId))
        )
        self.db.add(user)
        self._commit("Username or email already exists")
        self.db.refresh(user)
        logger.info(f"✅ User {user.username} ({data.role}) created on instance {instance_id}")
        return to_user_dict(user, instance_id)

    def update_user(self, instance_id: int, user_id: int, data: InstanceUserUpdate, current_user: User) -> dict:
        user = self.get_user(instance_id, user_id)

        if data.username is not None and data.username != user.username:
            if self._username_taken(instance_id, data.username, exclude_id=user.id):
                raise HTTPException(status_code=400, detail="Username already exists")
            user.username = data.username
        if data.email is not None:
            user.email = data.email
        if data.fullName is not None:
            user.full_name = data.fullName

        current_role, current_hall = primary_role(user, instance_id)
        new_role = data.role or current_role
        if new_role != current_role or (data.hallId is not None and data.hallId != current_hall):
            if current_role == ROLE_ADMIN and new_role != ROLE_ADMIN:
                if user.id == current_user.id:
                    raise HTTPException(status_code=400, detail="You cannot change your own role")
                if self._admin_count(instance_id) <= 1:
                    raise HTTPException(status_code=400, detail="Cannot remove the last admin of the instance")
            hall_id = self._check_hall(instance_id, new_role, data.hallId if data.hallId is not None else current_hall)
            for role in [r for r in user.roles if r.instance_id == instance_id]:
                user.roles.remove(role)
            user.roles.append(UserRole(role=new_role, instance_id=instance_id, hall_id=hall_id))

        self._commit("Username or email already exists")
        self.db.refresh(user)
        return to_user_dict(user, instance_id)

    def set_blocked(self, instance_id: int, user_id: int, blocked: bool, current_user: User) -> dict:
        user = self.get_user(instance_id, user_id)
        if user.id == current_user.id:
            raise HTTPException(status_code=400, detail="You cannot block or unblock yourself")
        user.is_blocked = blocked
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"{'🔒' if blocked else '🔓'} User {user.username} {'blocked' if blocked else 'unblocked'}")
        return to_user_dict(user, instance_id)

    def reset_password(self, instance_id: int, user_id: int, password: str) -> dict:
        user = self.get_user(instance_id, user_id)
        user.password_hash = hash_password(password)
        self.db.commit()
        logger.info(f"🔑 Password reset for user {user.username}")
        return {"message": "Password updated"}

    def delete_user(self, instance_id: int, user_id: int, current_user: User) -> dict:
        user = self.get_user(instance_id, user_id)
        if user.id == current_user.id:
            raise HTTPException(status_code=400, detail="You cannot delete your own account")
        if self._is_admin(user, instance_id) and self._admin_count(instance_id) <= 1:
            raise HTTPException(status_code=400, detail="Cannot delete the last admin of the instance")

        # History and logs keep the username, only the foreign keys are dropped
        for model, column in (
            (Reservation, Reservation.created_by),
            (ReservationChange, ReservationChange.changed_by),
            (SmsLog, SmsLog.sent_by),
            (Offer, Offer.created_by),
        ):
            self.db.query(model).filter(column == user.id).update({column: None}, synchronize_session=False)
        self.db.query(PushSubscription).filter(PushSubscription.user_id == user.id).delete(synchronize_session=False)

        self.db.delete(user)
        self.db.commit()
        logger.info(f"🗑️ User {user_id} deleted from instance {instance_id}")
        return {"message": "User deleted"}
