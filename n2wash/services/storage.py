"""
Object storage on Cloudflare R2 (S3 API).
Objects are private; clients read them through presigned URLs.
"""

import logging
import uuid
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import HTTPException, UploadFile

from ..config import R2_ACCESS_KEY_ID, R2_ACCOUNT_ID, R2_BUCKET_NAME, R2_SECRET_ACCESS_KEY

logger = logging.getLogger(__name__)

PRESIGNED_URL_EXPIRATION = 3600
MAX_FILE_SIZE = 5 * 1024 * 1024  # 5MB

ALLOWED_IMAGE_TYPES = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/svg+xml": "svg",
    "image/heic": "heic",
    "image/heif": "heif",
}
LOGO_IMAGE_TYPES = {"image/png", "image/jpeg", "image/jpg", "image/webp", "image/gif", "image/svg+xml"}
DANGEROUS_FILENAME_CHARS = ["..", "/", "\\", "<", ">", ":", '"', "|", "?", "*"]


def get_r2_client():
    """Create and return an R2 client."""
    return boto3.client(
        "s3",
        endpoint_url=f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
        aws_access_key_id=R2_ACCESS_KEY_ID,
        aws_secret_access_key=R2_SECRET_ACCESS_KEY,
        config=Config(signature_version="s3v4"),
        region_name="auto",
    )


def generate_presigned_url(key: str, expiration: int = PRESIGNED_URL_EXPIRATION, client=None) -> str:
    """Generate a presigned URL for accessing a private object in R2."""
    r2 = client or get_r2_client()
    params = {"Bucket": R2_BUCKET_NAME, "Key": key, "ResponseContentDisposition": "inline"}
    if key.lower().endswith(".svg"):
        params["ResponseContentType"] = "image/svg+xml"

    try:
        return r2.generate_presigned_url("get_object", Params=params, ExpiresIn=expiration)
    except (BotoCoreError, ClientError) as e:
        logger.error(f"❌ Failed to generate presigned URL for key {key}: {e}")
        raise


def validate_image_upload(content_type: Optional[str], filename: Optional[str], size: int,
                          allowed_types=None) -> str:
    """Validate an uploaded image and return the file extension to store it under"""
    allowed_types = allowed_types or set(ALLOWED_IMAGE_TYPES)
    if content_type not in allowed_types:
        raise HTTPException(status_code=400, detail="Invalid file type. Only image uploads are allowed.")

    if filename:
        for char in DANGEROUS_FILENAME_CHARS:
            if char in filename:
                logger.warning(f"❌ Dangerous character '{char}' detected in filename: '{filename}'")
                raise HTTPException(status_code=400, detail="Invalid filename")
        if len(filename) > 255:
            raise HTTPException(status_code=400, detail="Filename too long - maximum 255 characters")

    if size == 0:
        raise HTTPException(status_code=400, detail="Empty file")
    if size > MAX_FILE_SIZE:
        raise HTTPException(
            status_code=400,
            detail=f"File size exceeds 5MB limit. Your file is {size / (1024 * 1024):.2f}MB.",
        )
    return ALLOWED_IMAGE_TYPES[content_type]


def upload_bytes(key: str, contents: bytes, content_type: str, client=None) -> str:
    r2 = client or get_r2_client()
    try:
        r2.put_object(Bucket=R2_BUCKET_NAME, Key=key, Body=contents, ContentType=content_type)
    except (BotoCoreError, ClientError) as e:
        logger.error(f"❌ Upload to R2 failed for key {key}: {e}")
        raise HTTPException(status_code=500, detail="Failed to upload file") from e
    logger.info(f"✅ Uploaded {len(contents)} bytes to {key}")
    return key


def delete_object(key: str, client=None) -> None:
    r2 = client or get_r2_client()
    try:
        r2.delete_object(Bucket=R2_BUCKET_NAME, Key=key)
    except (BotoCoreError, ClientError) as e:
        logger.warning(f"⚠️ Failed to delete {key} from R2: {e}")


async def store_image(file: UploadFile, prefix: str, allowed_types=None, client=None) -> str:
    """Validate and upload an image, returning its storage key"""
    contents = await file.read()
    extension = validate_image_upload(file.content_type, file.filename, len(contents), allowed_types)
    key = f"{prefix}/{uuid.uuid4().hex}.{extension}"
    return upload_bytes(key, contents, file.content_type, client=client)
