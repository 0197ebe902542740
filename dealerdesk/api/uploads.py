"""Licence upload route."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import JSONResponse

from dealerdesk.api.auth import get_optional_user
from dealerdesk.core import models, services, storage
from dealerdesk.core.config import settings
from dealerdesk.services import object_storage

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_LICENSE_TYPES = frozenset(
    {"image/jpeg", "image/jpg", "image/png", "image/webp", "application/pdf"}
)
_CHUNK_SIZE = 1024 * 1024


def failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def format_limit(limit: int) -> str:
    return f"{limit // (1024 * 1024)}MB"


async def read_limited(file: UploadFile, limit: int) -> Optional[bytes]:
    """Read an upload, returning ``None`` as soon as it exceeds ``limit`` bytes."""

    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await file.read(_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            return None
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/license", response_model=models.UploadResponse)
async def upload_license(
    file: Optional[UploadFile] = File(None),
    user: Optional[models.User] = Depends(get_optional_user),
):
    if user is None:
        return failure(401, "Unauthorized")
    dealer = services.get_dealer_for_user(user)
    if dealer is None:
        return failure(404, "Dealer not found")
    if file is None:
        return failure(400, "No file provided")

    try:
        content_type = (file.content_type or "").lower()
        if content_type not in ALLOWED_LICENSE_TYPES:
            logger.warning("Rejected licence upload from %s: type %s", user.username, content_type or "unknown")
            return failure(400, "Invalid file type. Allowed types: JPEG, PNG, WebP, PDF")
        data = await read_limited(file, settings.LICENSE_MAX_BYTES)
        if data is None:
            logger.warning("Rejected licence upload from %s: file too large", user.username)
            return failure(400, f"File too large. Maximum size is {format_limit(settings.LICENSE_MAX_BYTES)}")

        path = object_storage.generate_storage_file_name(file.filename, "licenses", dealer.id)
        backend = object_storage.get_storage()
        await backend.ensure_bucket(storage.LICENSES_BUCKET)
        stored = await backend.upload(storage.LICENSES_BUCKET, path, data, content_type)
    except object_storage.StorageError:
        logger.error("Licence upload failed for dealer %s", dealer.id, exc_info=True)
        return failure(500, "Failed to upload file")
    except Exception:
        logger.exception("Unexpected error during licence upload for dealer %s", dealer.id)
        return failure(500, "Internal server error")
    finally:
        await file.close()

    logger.info("Licence uploaded for dealer %s: %s (%d bytes)", dealer.id, stored.path, stored.size)
    return models.UploadResponse(
        success=True,
        message="File uploaded successfully",
        file_url=stored.url,
        file_name=file.filename,
        file_size=stored.size,
        file_type=content_type,
    )
