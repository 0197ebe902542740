from pathlib import Path
import sys

import httpx
import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from dealerdesk.app import app
from dealerdesk.services.taxonomy import TaxonomyClient, get_taxonomy_client
from dealerdesk.tests.auth_helpers import create_user, login_headers

client = TestClient(app)

RECORDS = {
    "vehicleTypes": [{"name": "Car"}, {"name": "Van"}],
    "makes": [{"makeId": "ford", "name": "Ford"}, {"makeId": "vw", "name": "Volkswagen"}],
    "models": [{"modelId": "fiesta", "name": "Fiesta"}],
    "derivatives": [
        {"derivativeId": f"der-{index}", "name": f"1.0 EcoBoost {index}", "introduced": "2017-05-01"}
        for index in range(3)
    ],
}


SEEN_REQUESTS: list[httpx.Request] = []


def _handler(request: httpx.Request) -> httpx.Response:
    SEEN_REQUESTS.append(request)
    if request.url.path == "/authenticate":
        return httpx.Response(200, json={"access_token": "token", "expires_in": 900})
    kind = request.url.path.rsplit("/", 1)[-1]
    if kind == "generations":
        return httpx.Response(503, json={"message": "maintenance"})
    return httpx.Response(200, json={kind: RECORDS.get(kind, [])})


@pytest.fixture(autouse=True)
def taxonomy_client():
    fake = TaxonomyClient("https://taxonomy.test", "key", "secret", "42", transport=httpx.MockTransport(_handler))
    app.dependency_overrides[get_taxonomy_client] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_taxonomy_client, None)


@pytest.fixture(scope="module")
def headers() -> dict[str, str]:
    create_user("taxonomy-user", "password123")
    return login_headers(client, "taxonomy-user", "password123")


def test_taxonomy_requires_authentication() -> None:
    assert client.get("/api/taxonomy", params={"type": "makes"}).status_code == 401
    assert client.post("/api/taxonomy/wizard/start").status_code == 401


def test_fetch_taxonomy_options(headers) -> None:
    response = client.get("/api/taxonomy", params={"type": "makes", "vehicleType": "Car"}, headers=headers)

    assert response.status_code == 200, response.text
    assert response.json() == [
        {"id": "ford", "name": "Ford", "introduced": None, "discontinued": None},
        {"id": "vw", "name": "Volkswagen", "introduced": None, "discontinued": None},
    ]


def test_fetch_taxonomy_forwards_only_known_filters(headers) -> None:
    response = client.get(
        "/api/taxonomy",
        params={"type": "makes", "vehicleType": "Car", "taxonomy_type": "x", "advertiserId": "999"},
        headers=headers,
    )

    assert response.status_code == 200, response.text
    forwarded = SEEN_REQUESTS[-1].url.params
    assert forwarded["vehicleType"] == "Car"
    assert forwarded["advertiserId"] == "42"
    assert "taxonomy_type" not in forwarded

    filtered = client.get(
        "/api/taxonomy/derivatives/filtered",
        params={"generationId": "gen-1", "generation_id": "x", "trim": "Zetec"},
        headers=headers,
    )
    assert filtered.status_code == 200, filtered.text
    assert SEEN_REQUESTS[-1].url.params["trim"] == "Zetec"
    assert "generation_id" not in SEEN_REQUESTS[-1].url.params


def test_fetch_taxonomy_rejects_invalid_requests(headers) -> None:
    missing_param = client.get("/api/taxonomy", params={"type": "models"}, headers=headers)
    unknown_type = client.get("/api/taxonomy", params={"type": "colours"}, headers=headers)

    assert missing_param.status_code == 400
    assert "makeId" in missing_param.json()["detail"]
    assert unknown_type.status_code == 400


def test_upstream_failure_maps_to_502(headers) -> None:
    response = client.get("/api/taxonomy", params={"type": "generations", "modelId": "fiesta"}, headers=headers)

    assert response.status_code == 502


def test_filtered_derivatives(headers) -> None:
    response = client.get("/api/taxonomy/derivatives/filtered", params={"generationId": "gen-1"}, headers=headers)

    assert response.status_code == 200, response.text
    payload = response.json()
    assert payload["totalCount"] == 3
    assert [item["id"] for item in payload["derivatives"]] == ["der-0", "der-1", "der-2"]
    assert payload["derivatives"][0]["introduced"] == "2017-05-01"
    assert payload["filteringSteps"] == [{"step": "initial", "value": None, "count": 3}]


def test_wizard_start_select_and_back(headers) -> None:
    started = client.post("/api/taxonomy/wizard/start", headers=headers)
    assert started.status_code == 200, started.text
    state = started.json()
    assert state["step"] == "vehicle_type"
    assert [option["name"] for option in state["options"]] == ["Car", "Van"]

    selected = client.post("/api/taxonomy/wizard/select", json={"state": state, "value": "Car"}, headers=headers)
    assert selected.status_code == 200, selected.text
    state = selected.json()
    assert state["step"] == "make"
    assert state["selections"]["vehicle_type"]["name"] == "Car"
    assert len(state["history"]) == 1

    invalid = client.post("/api/taxonomy/wizard/select", json={"state": state, "value": "Tesla"}, headers=headers)
    assert invalid.status_code == 400

    back = client.post("/api/taxonomy/wizard/back", json={"state": state}, headers=headers)
    assert back.status_code == 200
    assert back.json()["step"] == "vehicle_type"
    assert back.json()["selections"] == {}

    first_step = client.post("/api/taxonomy/wizard/back", json={"state": back.json()}, headers=headers)
    assert first_step.status_code == 400


def test_wizard_upstream_failure(headers) -> None:
    state = {
        "step": "model",
        "options": [{"id": "fiesta", "name": "Fiesta"}],
        "selections": {
            "vehicle_type": {"id": "Car", "name": "Car"},
            "make": {"id": "ford", "name": "Ford"},
        },
    }

    response = client.post("/api/taxonomy/wizard/select", json={"state": state, "value": "fiesta"}, headers=headers)

    assert response.status_code == 502


def test_wizard_valuation(headers) -> None:
    def option(identifier, name=None, **extra):
        return {"id": identifier, "name": name or identifier, **extra}

    state = {
        "step": "complete",
        "mileage": 30500,
        "selections": {
            "vehicle_type": option("Car"),
            "make": option("ford", "Ford"),
            "model": option("fiesta", "Fiesta"),
            "generation": option("fiesta-mk8", "Fiesta (2017 - 2023)"),
            "derivative": option("der-1", "1.0 EcoBoost 1", introduced="2017-05-01"),
            "year": option("2018"),
            "plate": option("18"),
        },
    }

    response = client.post("/api/taxonomy/wizard/valuation", json={"state": state}, headers=headers)

    assert response.status_code == 200, response.text
    params = response.json()
    assert params["makeId"] == "ford"
    assert params["derivativeId"] == "der-1"
    assert params["year"] == 2018
    assert params["plate"] == "18"
    assert params["mileage"] == 30500
    assert params["firstRegistrationDate"] == "2018-03-01"

    incomplete = client.post(
        "/api/taxonomy/wizard/valuation", json={"state": {**state, "step": "mileage"}}, headers=headers
    )
    assert incomplete.status_code == 400
