"""Centralise the storage paths used by the backend."""

from pathlib import Path

from dealerdesk.core.config import settings

MEDIA_ROOT = settings.MEDIA_DIR

LICENSES_BUCKET = "licenses"
STOCK_IMAGES_BUCKET = "stock-images"
VEHICLE_DOCUMENTS_BUCKET = "vehicle-documents"

MEDIA_ROOT.mkdir(parents=True, exist_ok=True)


def resolve_media_path(relative_path: str | None) -> Path | None:
    """Return an absolute media path if it stays within ``MEDIA_ROOT``.

    Paths come from the database or from HTTP payloads, so ``..`` segments and
    absolute paths are rejected instead of reaching arbitrary files on disk.
    """

    if not relative_path:
        return None
    root = MEDIA_ROOT.resolve()
    try:
        candidate = (root / Path(relative_path)).resolve()
    except (OSError, TypeError):
        return None
    try:
        candidate.relative_to(root)
    except ValueError:
        return None
    return candidate
