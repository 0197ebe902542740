from pathlib import Path
import sys

from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from dealerdesk.app import app
from dealerdesk.core import security
from dealerdesk.tests.auth_helpers import create_user, login_headers

client = TestClient(app)


def test_healthcheck() -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_default_admin_can_login() -> None:
    response = client.post("/api/auth/login", json={"username": "admin", "password": "admin123"})
    assert response.status_code == 200, response.text
    payload = response.json()
    assert payload["token_type"] == "bearer"

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {payload['access_token']}"})
    assert me.status_code == 200
    assert me.json()["role"] == "admin"

    dealer = client.get("/api/dealers/me", headers={"Authorization": f"Bearer {payload['access_token']}"})
    assert dealer.status_code == 200
    assert dealer.json()["companyName"] == "Demo Motors"


def test_login_rejects_bad_password() -> None:
    create_user("app-bad-password", "password123")
    response = client.post("/api/auth/login", json={"username": "app-bad-password", "password": "wrong-pass"})
    assert response.status_code == 401


def test_refresh_token_flow() -> None:
    create_user("app-refresh", "password123")
    tokens = client.post("/api/auth/login", json={"username": "app-refresh", "password": "password123"}).json()

    refreshed = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 200, refreshed.text
    assert refreshed.json()["access_token"]

    # an access token cannot be used as a refresh token and vice versa
    wrong_type = client.post("/api/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert wrong_type.status_code == 401
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {tokens['refresh_token']}"})
    assert me.status_code == 401


def test_protected_routes_require_token() -> None:
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/dealers/me").status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"}).status_code == 401


def test_token_for_deleted_user_is_rejected() -> None:
    token = security.create_access_token("app-ghost-user")
    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_user_without_dealer_gets_404() -> None:
    create_user("app-no-dealer", "password123")
    headers = login_headers(client, "app-no-dealer", "password123")

    response = client.get("/api/dealers/me", headers=headers)
    assert response.status_code == 404


def test_update_dealer_profile() -> None:
    create_user("app-dealer", "password123", company_name="Northern Cars")
    headers = login_headers(client, "app-dealer", "password123")

    response = client.put(
        "/api/dealers/me",
        json={"addressCity": "Leeds", "vatNumber": "GB123456789", "bankSortCode": "12-34-56"},
        headers=headers,
    )
    assert response.status_code == 200, response.text
    dealer = response.json()
    assert dealer["companyName"] == "Northern Cars"
    assert dealer["addressCity"] == "Leeds"
    assert dealer["vatNumber"] == "GB123456789"

    renamed = client.put("/api/dealers/me", json={"companyName": "Northern Cars Ltd"}, headers=headers)
    assert renamed.json()["companyName"] == "Northern Cars Ltd"
    assert renamed.json()["addressCity"] == "Leeds"
