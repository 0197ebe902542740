"""Stock vehicle routes."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from dealerdesk.api.dealers import require_dealer
from dealerdesk.api.uploads import format_limit, read_limited
from dealerdesk.core import models, services, storage
from dealerdesk.core.config import settings
from dealerdesk.services import object_storage

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_IMAGE_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "image/webp"})


async def _remove_objects(paths: list[str]) -> None:
    if not paths:
        return
    try:
        await object_storage.get_storage().delete(storage.STOCK_IMAGES_BUCKET, paths)
    except object_storage.StorageError:
        logger.warning("Unable to remove stock images %s", paths, exc_info=True)


@router.get("/", response_model=list[models.StockVehicle])
async def list_stock(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    search: Optional[str] = Query(default=None),
    dealer: models.Dealer = Depends(require_dealer),
) -> list[models.StockVehicle]:
    return services.list_stock(dealer.id, status=status_filter, search=search)


@router.post("/", response_model=models.StockVehicle, status_code=status.HTTP_201_CREATED)
async def create_stock_vehicle(
    payload: models.StockVehicleCreate, dealer: models.Dealer = Depends(require_dealer)
) -> models.StockVehicle:
    try:
        return services.create_stock_vehicle(dealer.id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/{stock_id}", response_model=models.StockVehicle)
async def get_stock_vehicle(stock_id: int, dealer: models.Dealer = Depends(require_dealer)) -> models.StockVehicle:
    try:
        return services.get_stock_vehicle(dealer.id, stock_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.put("/{stock_id}", response_model=models.StockVehicle)
async def update_stock_vehicle(
    stock_id: int,
    payload: models.StockVehicleUpdate,
    dealer: models.Dealer = Depends(require_dealer),
) -> models.StockVehicle:
    try:
        return services.update_stock_vehicle(dealer.id, stock_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.delete("/{stock_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_stock_vehicle(stock_id: int, dealer: models.Dealer = Depends(require_dealer)) -> None:
    try:
        paths = services.delete_stock_vehicle(dealer.id, stock_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    await _remove_objects(paths)


@router.post("/{stock_id}/images", response_model=list[models.StockImage], status_code=status.HTTP_201_CREATED)
async def upload_stock_images(
    stock_id: int,
    files: list[UploadFile] = File(...),
    dealer: models.Dealer = Depends(require_dealer),
) -> list[models.StockImage]:
    try:
        services.get_stock_vehicle(dealer.id, stock_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    backend = object_storage.get_storage()
    images: list[models.StockImage] = []
    try:
        await backend.ensure_bucket(storage.STOCK_IMAGES_BUCKET)
        for upload in files:
            content_type = (upload.content_type or "").lower()
            if content_type not in ALLOWED_IMAGE_TYPES:
                raise HTTPException(status_code=400, detail=f"{upload.filename}: only JPEG, PNG and WebP images are allowed")
            data = await read_limited(upload, settings.LICENSE_MAX_BYTES)
            if data is None:
                raise HTTPException(
                    status_code=400,
                    detail=f"{upload.filename}: file too large (max {format_limit(settings.LICENSE_MAX_BYTES)})",
                )
            path = object_storage.generate_storage_file_name(upload.filename, "stock", dealer.id)
            stored = await backend.upload(storage.STOCK_IMAGES_BUCKET, path, data, content_type)
            images.append(
                services.add_stock_image(
                    dealer.id,
                    stock_id,
                    file_name=upload.filename or path.rsplit("/", 1)[-1],
                    storage_path=stored.path,
                    url=stored.url,
                    mime_type=content_type,
                    file_size=stored.size,
                )
            )
    except object_storage.StorageError as exc:
        logger.error("Stock image upload failed for vehicle %s", stock_id, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to upload image") from exc
    finally:
        for upload in files:
            await upload.close()
    return images


@router.put("/{stock_id}/images/order", response_model=list[models.StockImage])
async def reorder_stock_images(
    stock_id: int,
    payload: models.ImageOrderRequest,
    dealer: models.Dealer = Depends(require_dealer),
) -> list[models.StockImage]:
    try:
        services.get_stock_vehicle(dealer.id, stock_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    try:
        return services.reorder_stock_images(dealer.id, stock_id, payload.image_ids)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.delete("/{stock_id}/images/{image_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_stock_image(
    stock_id: int, image_id: int, dealer: models.Dealer = Depends(require_dealer)
) -> None:
    try:
        path = services.delete_stock_image(dealer.id, stock_id, image_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    await _remove_objects([path])


@router.get("/{stock_id}/invoice-template", response_model=models.InvoiceData)
async def invoice_template(stock_id: int, dealer: models.Dealer = Depends(require_dealer)) -> models.InvoiceData:
    try:
        return services.invoice_template_for_stock(dealer, stock_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
