"""Vehicle document routes."""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import JSONResponse

from dealerdesk.api.auth import get_optional_user
from dealerdesk.api.dealers import require_dealer
from dealerdesk.api.uploads import failure, format_limit, read_limited
from dealerdesk.core import models, services, storage
from dealerdesk.core.config import settings
from dealerdesk.services import object_storage

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_DOCUMENT_TYPES = frozenset(
    {
        "application/pdf",
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/webp",
        "text/plain",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    }
)


def _normalise_registration(value: str | None) -> str:
    return "".join((value or "").split()).upper()


@router.post("/upload", response_model=models.DocumentUploadResponse)
async def upload_documents(
    files: Optional[list[UploadFile]] = File(None),
    registration: Optional[str] = Form(None),
    document_type: Optional[str] = Form(None, alias="documentType"),
    document_name: Optional[str] = Form(None, alias="documentName"),
    description: Optional[str] = Form(None),
    expiry_date: Optional[date] = Form(None, alias="expiryDate"),
    document_date: Optional[date] = Form(None, alias="documentDate"),
    user: Optional[models.User] = Depends(get_optional_user),
):
    """Store several documents for one registration; per-file failures are reported."""

    files = files or []
    try:
        if user is None:
            return failure(401, "Unauthorized")
        dealer = services.get_dealer_for_user(user)
        if dealer is None:
            return failure(404, "Dealer not found")
        registration = _normalise_registration(registration)
        if not registration:
            return failure(400, "Registration is required for document upload")
        document_type = (document_type or "").strip()
        if not document_type:
            return failure(400, "Document type is required")
        if not files:
            return failure(400, "No files provided")

        backend = object_storage.get_storage()
        await backend.ensure_bucket(storage.VEHICLE_DOCUMENTS_BUCKET)
        documents: list[models.VehicleDocument] = []
        errors: list[str] = []
        for upload in files:
            name = upload.filename or "document"
            content_type = (upload.content_type or "").lower()
            if content_type not in ALLOWED_DOCUMENT_TYPES:
                errors.append(f"File {name} has unsupported type: {content_type or 'unknown'}")
                continue
            data = await read_limited(upload, settings.DOCUMENT_MAX_BYTES)
            if data is None:
                errors.append(f"File {name} is too large (max {format_limit(settings.DOCUMENT_MAX_BYTES)})")
                continue
            path = object_storage.generate_storage_file_name(name, "documents", dealer.id)
            try:
                stored = await backend.upload(storage.VEHICLE_DOCUMENTS_BUCKET, path, data, content_type)
            except object_storage.StorageError as exc:
                logger.warning("Document upload failed for %s: %s", name, exc)
                errors.append(f"Failed to upload {name}: {exc}")
                continue
            documents.append(
                services.add_vehicle_document(
                    dealer.id,
                    registration=registration,
                    document_name=document_name or name,
                    document_type=document_type,
                    description=description,
                    file_name=name,
                    storage_path=stored.path,
                    url=stored.url,
                    mime_type=content_type,
                    file_size=stored.size,
                    expiry_date=expiry_date,
                    document_date=document_date,
                    uploaded_by=user.username,
                )
            )
    except Exception:
        logger.exception("Vehicle document upload error")
        return failure(500, "Internal server error")
    finally:
        for upload in files:
            await upload.close()

    if not documents:
        logger.warning("No documents uploaded for %s: %s", registration, errors)
        rejected = models.DocumentUploadResponse(
            success=False,
            message="No documents were uploaded successfully",
            errors=errors,
        )
        return JSONResponse(status_code=400, content=rejected.model_dump(by_alias=True, mode="json"))

    logger.info("%d document(s) uploaded for %s", len(documents), registration)
    return models.DocumentUploadResponse(
        success=True,
        message=f"Successfully uploaded {len(documents)} document(s) for vehicle {registration}",
        documents=documents,
        count=len(documents),
        errors=errors or None,
    )


@router.get("/", response_model=list[models.VehicleDocument])
async def list_documents(
    registration: Optional[str] = Query(default=None),
    dealer: models.Dealer = Depends(require_dealer),
) -> list[models.VehicleDocument]:
    return services.list_vehicle_documents(dealer.id, _normalise_registration(registration) or None)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(document_id: int, dealer: models.Dealer = Depends(require_dealer)) -> None:
    try:
        path = services.delete_vehicle_document(dealer.id, document_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        await object_storage.get_storage().delete(storage.VEHICLE_DOCUMENTS_BUCKET, [path])
    except object_storage.StorageError:
        logger.warning("Unable to remove document object %s", path, exc_info=True)
