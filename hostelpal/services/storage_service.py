"""Ticket image storage (local filesystem or S3)."""

import os
import shutil
import uuid
from dataclasses import dataclass
from typing import BinaryIO

import boto3

from hostelpal.core.config import settings


# =============================================================================
# Configuration
# =============================================================================

MAX_IMAGES_PER_TICKET = 5
MAX_IMAGE_SIZE_BYTES = 5 * 1024 * 1024  # 5 MB
ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}
ALLOWED_MIME_TYPES = {"image/png", "image/jpeg", "image/gif", "image/webp"}
LOCAL_URL_PREFIX = "/uploads"


@dataclass
class ImageUpload:
    filename: str
    content_type: str
    size: int
    file: BinaryIO


# =============================================================================
# Storage Backend
# =============================================================================

def _get_s3_client():
    """Get boto3 S3 client."""
    return boto3.client(
        "s3",
        region_name=settings.S3_REGION,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
    )


def _get_local_storage_path() -> str:
    """Get local storage directory path."""
    path = settings.LOCAL_STORAGE_PATH
    os.makedirs(path, exist_ok=True)
    return path


def _extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


def validate_image(upload: ImageUpload) -> str | None:
    """Return an error message, or None when the image is acceptable."""
    ext = _extension(upload.filename)
    if ext not in ALLOWED_EXTENSIONS:
        return f"File extension '.{ext}' not allowed"
    if upload.content_type not in ALLOWED_MIME_TYPES:
        return f"'{upload.filename}' is not an image"
    if upload.size > MAX_IMAGE_SIZE_BYTES:
        max_mb = MAX_IMAGE_SIZE_BYTES / (1024 * 1024)
        return f"'{upload.filename}' exceeds {max_mb:.0f} MB limit"
    return None


def store_image(upload: ImageUpload) -> dict:
    """Store an image and return its ``{url, storage_id}`` reference."""
    ext = _extension(upload.filename)
    if ext not in ALLOWED_EXTENSIONS:
        raise ValueError(f"File extension '.{ext}' not allowed")
    storage_id = f"tickets/{uuid.uuid4()}.{ext}"

    if settings.STORAGE_BACKEND == "s3":
        s3 = _get_s3_client()
        upload.file.seek(0)
        s3.upload_fileobj(
            upload.file,
            settings.S3_BUCKET,
            storage_id,
            ExtraArgs={"ContentType": upload.content_type},
        )
        url = f"https://{settings.S3_BUCKET}.s3.{settings.S3_REGION}.amazonaws.com/{storage_id}"
    else:
        path = os.path.join(_get_local_storage_path(), storage_id)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        upload.file.seek(0)
        with open(path, "wb") as f:
            shutil.copyfileobj(upload.file, f)
        url = f"{LOCAL_URL_PREFIX}/{storage_id}"

    return {"url": url, "storage_id": storage_id}
