from pathlib import Path
import sys

from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from dealerdesk.api import invoices as invoices_api
from dealerdesk.app import app
from dealerdesk.services.pdf.invoice import PlaywrightPdfError, renderer
from dealerdesk.services.pdf.invoice.playwright_support import PLAYWRIGHT_MISSING, PlaywrightDiagnostics
from dealerdesk.tests.auth_helpers import create_user, login_headers

client = TestClient(app)


def _headers(username: str) -> dict[str, str]:
    create_user(username, "password123", company_name="Invoice Motors")
    return login_headers(client, username, "password123")


def _invoice_payload(**overrides) -> dict:
    payload = {
        "invoiceNumber": "",
        "saleType": "Retail",
        "invoiceTo": "Customer",
        "customer": {"firstName": "Jane", "lastName": "Doe"},
        "vehicle": {"registration": "GG77 GGG", "make": "Ford", "model": "Focus"},
        "pricing": {"salePrice": 5000, "discountOnSalePrice": 250},
    }
    payload.update(overrides)
    return payload


def test_calculate_returns_refreshed_invoice() -> None:
    headers = _headers("invoice-calc")

    response = client.post(
        "/api/invoices/calculate",
        json=_invoice_payload(saleType="Commercial", pricing={"salePrice": 10000, "vatRate": 20}),
        headers=headers,
    )

    assert response.status_code == 200, response.text
    payload = response.json()
    assert payload["invoice"]["pricing"]["salePricePostDiscount"] == 10000
    assert payload["invoice"]["pricing"]["vatCommercial"] == 2000
    assert payload["totals"]["vatAmount"] == 2000
    assert payload["totals"]["totalAmount"] == 12000
    assert "pricing.salePricePostDiscount" in payload["changedFields"]
    assert payload["warnings"] == []


def test_calculate_reports_warnings() -> None:
    headers = _headers("invoice-warnings")

    response = client.post(
        "/api/invoices/calculate",
        json=_invoice_payload(invoiceTo="Finance Company", pricing={"salePrice": 100, "discountOnSalePrice": 150}),
        headers=headers,
    )

    warnings = response.json()["warnings"]
    assert "Sale price discount exceeds its price" in warnings
    assert "Finance company invoice has no finance company selected" in warnings
    assert response.json()["totals"]["subtotal"] == 0


def test_calculate_requires_authentication() -> None:
    assert client.post("/api/invoices/calculate", json=_invoice_payload()).status_code == 401


def test_finance_companies_endpoint() -> None:
    headers = _headers("invoice-finance-list")

    response = client.get("/api/invoices/finance-companies", headers=headers)

    assert response.status_code == 200
    companies = response.json()
    assert len(companies) == 11
    jigsaw = next(company for company in companies if company["id"] == "jigsaw-finance")
    assert jigsaw["fullName"] == "Jigsaw Finance"
    assert jigsaw["invoiceToText"].startswith("Jigsaw Finance\nGenesis Centre")


def test_pdf_diagnostics(monkeypatch) -> None:
    headers = _headers("invoice-diagnostics")
    monkeypatch.setattr(renderer, "check_playwright_status", lambda: PlaywrightDiagnostics(PLAYWRIGHT_MISSING))
    rendered = client.post("/api/invoices/pdf", json=_invoice_payload(invoiceNumber="INV-DIAG-API"), headers=headers)
    assert rendered.status_code == 200, rendered.text

    response = client.get("/api/invoices/pdf/diagnostics", headers=headers)

    assert response.status_code == 200
    payload = response.json()
    assert payload["renderer_mode"] == "reportlab"
    assert payload["playwright_status"] == PLAYWRIGHT_MISSING
    assert payload["playwright_available"] is False
    assert "python_executable" in payload
    assert payload["last_invoice"]["invoice_number"] == "INV-DIAG-API"
    assert payload["last_invoice"]["renderer"] == "reportlab"
    assert payload["last_invoice"]["fallback_reason"] is None


def test_save_list_get_and_delete_invoice() -> None:
    headers = _headers("invoice-store")

    created = client.post("/api/invoices/", json=_invoice_payload(), headers=headers)
    assert created.status_code == 201, created.text
    stored = created.json()
    assert stored["invoiceNumber"].startswith("INV-GG77GGG-")
    assert stored["registration"] == "GG77 GGG"
    assert stored["totalAmount"] == 4750
    assert stored["data"]["companyInfo"]["name"] == "Invoice Motors"
    assert stored["data"]["items"][0]["total"] == 4750

    # saving the same invoice number again updates the stored row
    resaved = client.post(
        "/api/invoices/",
        json=_invoice_payload(invoiceNumber=stored["invoiceNumber"], pricing={"salePrice": 5200}),
        headers=headers,
    )
    assert resaved.status_code == 201
    assert resaved.json()["id"] == stored["id"]
    assert resaved.json()["totalAmount"] == 5200

    listing = client.get("/api/invoices/", headers=headers).json()
    assert [(row["id"], row["totalAmount"]) for row in listing] == [(stored["id"], 5200)]

    fetched = client.get(f"/api/invoices/{stored['id']}", headers=headers)
    assert fetched.status_code == 200
    assert fetched.json()["data"]["customer"]["firstName"] == "Jane"

    assert client.delete(f"/api/invoices/{stored['id']}", headers=headers).status_code == 204
    assert client.get(f"/api/invoices/{stored['id']}", headers=headers).status_code == 404
    assert client.delete(f"/api/invoices/{stored['id']}", headers=headers).status_code == 404


def test_save_invoice_for_unknown_stock_vehicle() -> None:
    headers = _headers("invoice-bad-stock")

    response = client.post("/api/invoices/", json=_invoice_payload(stockId=999999), headers=headers)

    assert response.status_code == 400


def test_invoices_are_scoped_to_dealer() -> None:
    owner = _headers("invoice-owner")
    other = _headers("invoice-intruder")
    stored = client.post("/api/invoices/", json=_invoice_payload(), headers=owner).json()

    assert client.get(f"/api/invoices/{stored['id']}", headers=other).status_code == 404
    assert client.get(f"/api/invoices/{stored['id']}/pdf", headers=other).status_code == 404


def test_stored_invoice_pdf_and_html() -> None:
    headers = _headers("invoice-render")
    stored = client.post(
        "/api/invoices/", json=_invoice_payload(invoiceNumber="INV-RENDER-1"), headers=headers
    ).json()

    pdf = client.get(f"/api/invoices/{stored['id']}/pdf", headers=headers)
    assert pdf.status_code == 200, pdf.text
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.headers["x-invoice-renderer"] == "reportlab"
    assert 'filename="INV-RENDER-1_GG77GGG_' in pdf.headers["content-disposition"]
    assert pdf.content.startswith(b"%PDF")

    html = client.get(f"/api/invoices/{stored['id']}/html", headers=headers)
    assert html.status_code == 200
    assert html.headers["content-type"].startswith("text/html")
    assert 'data-page="invoice"' in html.text
    assert "Invoice Motors" in html.text


def test_render_posted_finance_invoice() -> None:
    headers = _headers("invoice-posted")
    payload = _invoice_payload(
        invoiceTo="Finance Company",
        financeCompany={"companyId": "close-brothers-finance"},
    )

    pdf = client.post("/api/invoices/pdf", json=payload, headers=headers)
    assert pdf.status_code == 200, pdf.text
    assert pdf.content.startswith(b"%PDF")

    html = client.post("/api/invoices/html", json=payload, headers=headers)
    assert html.status_code == 200
    assert "GG77 GGG - Close Brothers Finance" in html.text
    assert "10 Crown Place" in html.text


def test_pdf_render_failure_returns_503(monkeypatch) -> None:
    headers = _headers("invoice-503")

    def unavailable(invoice):
        raise PlaywrightPdfError(PLAYWRIGHT_MISSING, "Playwright is not installed.")

    monkeypatch.setattr(invoices_api, "render_invoice_pdf", unavailable)

    response = client.post("/api/invoices/pdf", json=_invoice_payload(), headers=headers)

    assert response.status_code == 503
    assert response.json()["detail"] == "Playwright is not installed."
