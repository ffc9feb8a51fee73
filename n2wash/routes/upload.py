"""Instance logo and reservation photo uploads (private R2 objects)"""

import logging

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session

from ..auth import require_instance_role
from ..database import get_db
from ..domain.instances.service import InstanceService
from ..domain.reservations.service import ReservationService
from ..models import User
from ..services.storage import ALLOWED_IMAGE_TYPES, LOGO_IMAGE_TYPES, delete_object, generate_presigned_url, store_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/instances/{instance_id}/uploads", tags=["Upload"])

staff = require_instance_role("admin", "employee", "hall")


def _instance_prefix(instance_id: int) -> str:
    return f"instances/{instance_id}/"


@router.post("/logo")
async def upload_logo(
    instance_id: int,
    file: UploadFile = File(...),
    current_user: User = Depends(require_instance_role("admin")),
    db: Session = Depends(get_db),
):
    """Upload the business logo, replacing the previous one."""
    service = InstanceService(db)
    previous = service.get_instance(instance_id).logo_url

    key = await store_image(file, f"{_instance_prefix(instance_id)}logo", LOGO_IMAGE_TYPES)
    service.set_logo(instance_id, key)
    if previous and previous != key:
        delete_object(previous)

    logger.info(f"🖼️ Logo updated for instance {instance_id}")
    return {"key": key, "url": generate_presigned_url(key)}


@router.delete("/logo")
async def delete_logo(
    instance_id: int,
    current_user: User = Depends(require_instance_role("admin")),
    db: Session = Depends(get_db),
):
    service = InstanceService(db)
    previous = service.get_instance(instance_id).logo_url
    if not previous:
        raise HTTPException(status_code=404, detail="No logo found")
    service.set_logo(instance_id, None)
    delete_object(previous)
    return {"success": True}


@router.post("/reservations/{reservation_id}/photos")
async def upload_reservation_photo(
    instance_id: int,
    reservation_id: int,
    file: UploadFile = File(...),
    current_user: User = Depends(staff),
    db: Session = Depends(get_db),
):
    """Attach a vehicle photo to a reservation."""
    service = ReservationService(db)
    service.get_reservation(instance_id, reservation_id)

    key = await store_image(
        file, f"{_instance_prefix(instance_id)}reservations/{reservation_id}", set(ALLOWED_IMAGE_TYPES)
    )
    reservation = service.add_photo(instance_id, reservation_id, key)
    return {"key": key, "photoUrls": reservation.photo_urls}


@router.get("/presigned")
async def get_presigned_url_endpoint(
    instance_id: int,
    key: str = Query(...),
    current_user: User = Depends(staff),
):
    """Presigned GET URL for an object stored under the instance."""
    if ".." in key or not key.startswith(_instance_prefix(instance_id)):
        raise HTTPException(status_code=403, detail="Object does not belong to this instance")
    return {"url": generate_presigned_url(key)}
