from pathlib import Path
import sys

import dataclasses

from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from dealerdesk.api import uploads
from dealerdesk.app import app
from dealerdesk.core import storage
from dealerdesk.services import object_storage
from dealerdesk.tests.auth_helpers import create_user, login_headers

client = TestClient(app)

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _dealer_headers(username: str = "licence-dealer") -> dict[str, str]:
    create_user(username, "password123", company_name="Licence Motors")
    return login_headers(client, username, "password123")


class FailingStorage(object_storage.StorageBackend):
    name = "failing"

    async def ensure_bucket(self, bucket: str) -> None:
        return None

    async def upload(self, bucket, path, data, content_type):
        raise object_storage.StorageError("bucket is read-only")


class BrokenStorage(FailingStorage):
    async def upload(self, bucket, path, data, content_type):
        raise KeyError("unexpected")


def test_upload_requires_authentication() -> None:
    response = client.post("/api/upload/license", files={"file": ("front.png", PNG_BYTES, "image/png")})

    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Unauthorized"}


def test_invalid_token_is_unauthorized() -> None:
    response = client.post(
        "/api/upload/license",
        files={"file": ("front.png", PNG_BYTES, "image/png")},
        headers={"Authorization": "Bearer broken"},
    )

    assert response.status_code == 401
    assert response.json()["message"] == "Unauthorized"


def test_upload_requires_dealer() -> None:
    create_user("licence-no-dealer", "password123")
    headers = login_headers(client, "licence-no-dealer", "password123")

    response = client.post(
        "/api/upload/license", files={"file": ("front.png", PNG_BYTES, "image/png")}, headers=headers
    )

    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Dealer not found"}


def test_upload_requires_file() -> None:
    response = client.post("/api/upload/license", headers=_dealer_headers())

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "No file provided"}


def test_upload_rejects_file_type() -> None:
    response = client.post(
        "/api/upload/license",
        files={"file": ("licence.txt", b"not an image", "text/plain")},
        headers=_dealer_headers(),
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid file type. Allowed types: JPEG, PNG, WebP, PDF"


def test_upload_rejects_large_file(monkeypatch) -> None:
    monkeypatch.setattr(uploads, "settings", dataclasses.replace(uploads.settings, LICENSE_MAX_BYTES=1024 * 1024))
    oversized = b"%PDF" + b"0" * (1024 * 1024)

    response = client.post(
        "/api/upload/license",
        files={"file": ("licence.pdf", oversized, "application/pdf")},
        headers=_dealer_headers(),
    )

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "File too large. Maximum size is 1MB"}


def test_upload_accepts_file_at_the_limit(monkeypatch) -> None:
    monkeypatch.setattr(uploads, "settings", dataclasses.replace(uploads.settings, LICENSE_MAX_BYTES=1024 * 1024))
    object_storage.set_storage(None)

    response = client.post(
        "/api/upload/license",
        files={"file": ("licence.pdf", b"0" * (1024 * 1024), "application/pdf")},
        headers=_dealer_headers(),
    )

    assert response.status_code == 200
    assert response.json()["fileSize"] == 1024 * 1024


def test_upload_stores_licence() -> None:
    object_storage.set_storage(None)

    response = client.post(
        "/api/upload/license",
        files={"file": ("My Licence.png", PNG_BYTES, "image/png")},
        headers=_dealer_headers(),
    )

    assert response.status_code == 200, response.text
    payload = response.json()
    assert payload["success"] is True
    assert payload["message"] == "File uploaded successfully"
    assert payload["fileName"] == "My Licence.png"
    assert payload["fileSize"] == len(PNG_BYTES)
    assert payload["fileType"] == "image/png"
    prefix = "/media/licenses/"
    assert payload["fileUrl"].startswith(prefix)
    relative = payload["fileUrl"][len(prefix):]
    dealer_id, category, name = relative.split("/")
    assert category == "licenses"
    assert name.startswith("My_Licence_") and name.endswith(".png")
    stored = storage.MEDIA_ROOT / "licenses" / dealer_id / category / name
    assert stored.read_bytes() == PNG_BYTES

    served = client.get(payload["fileUrl"])
    assert served.status_code == 200
    assert served.content == PNG_BYTES


def test_storage_failure_is_reported() -> None:
    headers = _dealer_headers()
    object_storage.set_storage(FailingStorage())
    try:
        response = client.post(
            "/api/upload/license", files={"file": ("front.jpg", b"jpeg", "image/jpeg")}, headers=headers
        )
    finally:
        object_storage.set_storage(None)

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Failed to upload file"}


def test_unexpected_failure_is_reported() -> None:
    headers = _dealer_headers()
    object_storage.set_storage(BrokenStorage())
    try:
        response = client.post(
            "/api/upload/license", files={"file": ("front.webp", b"webp", "image/webp")}, headers=headers
        )
    finally:
        object_storage.set_storage(None)

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Internal server error"}
