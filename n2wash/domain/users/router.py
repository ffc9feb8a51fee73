from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import require_instance_role
from ...database import get_db
from ...models import User
from .schemas import InstanceUserCreate, InstanceUserResponse, InstanceUserUpdate, PasswordReset
from .service import UserService

router = APIRouter(prefix="/instances/{instance_id}/users", tags=["Users"])

admin_only = require_instance_role("admin")


def get_user_service(db: Session = Depends(get_db)) -> UserService:
    return UserService(db)


@router.get("", response_model=list[InstanceUserResponse])
async def list_users(
    instance_id: int,
    current_user: User = Depends(admin_only),
    service: UserService = Depends(get_user_service),
):
    return service.list_users(instance_id)


@router.post("", response_model=InstanceUserResponse, status_code=201)
async def create_user(
    instance_id: int,
    data: InstanceUserCreate,
    current_user: User = Depends(admin_only),
    service: UserService = Depends(get_user_service),
):
    return service.create_user(instance_id, data)


@router.put("/{user_id}", response_model=InstanceUserResponse)
async def update_user(
    instance_id: int,
    user_id: int,
    data: InstanceUserUpdate,
    current_user: User = Depends(admin_only),
    service: UserService = Depends(get_user_service),
):
    return service.update_user(instance_id, user_id, data, current_user)


@router.post("/{user_id}/block", response_model=InstanceUserResponse)
async def block_user(
    instance_id: int,
    user_id: int,
    current_user: User = Depends(admin_only),
    service: UserService = Depends(get_user_service),
):
    return service.set_blocked(instance_id, user_id, True, current_user)


@router.post("/{user_id}/unblock", response_model=InstanceUserResponse)
async def unblock_user(
    instance_id: int,
    user_id: int,
    current_user: User = Depends(admin_only),
    service: UserService = Depends(get_user_service),
):
    return service.set_blocked(instance_id, user_id, False, current_user)


@router.post("/{user_id}/reset-password")
async def reset_password(
    instance_id: int,
    user_id: int,
    data: PasswordReset,
    current_user: User = Depends(admin_only),
    service: UserService = Depends(get_user_service),
):
    return service.reset_password(instance_id, user_id, data.password)


@router.delete("/{user_id}")
async def delete_user(
    instance_id: int,
    user_id: int,
    current_user: User = Depends(admin_only),
    service: UserService = Depends(get_user_service),
):
    return service.delete_user(instance_id, user_id, current_user)
