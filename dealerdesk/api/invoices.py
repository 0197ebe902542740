"""Invoice calculation, storage and rendering routes."""
from __future__ import annotations

import io
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import HTMLResponse, StreamingResponse

from dealerdesk.api.auth import get_current_user
from dealerdesk.api.dealers import require_dealer
from dealerdesk.core import finance_companies, models, services
from dealerdesk.services import invoice_calculations
from dealerdesk.services.pdf.invoice import (
    PlaywrightPdfError,
    build_invoice_plan,
    render_invoice_html,
    render_invoice_pdf,
)
from dealerdesk.services.pdf.invoice.renderer import build_diagnostics_payload

logger = logging.getLogger(__name__)

router = APIRouter()


def _pdf_response(invoice: models.InvoiceData) -> StreamingResponse:
    try:
        rendered = render_invoice_pdf(invoice)
    except PlaywrightPdfError as exc:
        logger.error("Invoice %s could not be rendered: %s", invoice.invoice_number, exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return StreamingResponse(
        io.BytesIO(rendered.content),
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{rendered.filename}"',
            "X-Invoice-Renderer": rendered.renderer,
        },
    )


def _stored_invoice(dealer: models.Dealer, invoice_id: int) -> models.StoredInvoice:
    try:
        return services.get_invoice(dealer.id, invoice_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/calculate", response_model=models.InvoiceCalculationResponse)
async def calculate_invoice(
    invoice: models.InvoiceData, _: models.User = Depends(get_current_user)
) -> models.InvoiceCalculationResponse:
    calculated = invoice_calculations.apply_calculations(invoice)
    totals = invoice_calculations.calculate_invoice(calculated)
    return models.InvoiceCalculationResponse(
        invoice=calculated,
        totals=models.InvoiceTotalsOut.model_validate(totals.as_floats()),
        changed_fields=invoice_calculations.changed_fields(invoice, calculated),
        warnings=invoice_calculations.validate_calculations(calculated, totals),
    )


@router.get("/finance-companies", response_model=list[models.FinanceCompany])
async def list_finance_companies(_: models.User = Depends(get_current_user)) -> list[models.FinanceCompany]:
    return finance_companies.list_finance_companies()


@router.get("/pdf/diagnostics")
async def pdf_diagnostics(_: models.User = Depends(get_current_user)) -> dict[str, Any]:
    return build_diagnostics_payload()


@router.post("/pdf")
def render_posted_invoice_pdf(
    invoice: models.InvoiceData, dealer: models.Dealer = Depends(require_dealer)
) -> StreamingResponse:
    return _pdf_response(services.prepare_invoice(dealer, invoice))


@router.post("/html", response_class=HTMLResponse)
async def render_posted_invoice_html(
    invoice: models.InvoiceData, dealer: models.Dealer = Depends(require_dealer)
) -> HTMLResponse:
    plan = build_invoice_plan(services.prepare_invoice(dealer, invoice))
    return HTMLResponse(render_invoice_html(plan))


@router.get("/", response_model=list[models.InvoiceSummary])
async def list_invoices(dealer: models.Dealer = Depends(require_dealer)) -> list[models.InvoiceSummary]:
    return services.list_invoices(dealer.id)


@router.post("/", response_model=models.StoredInvoice, status_code=status.HTTP_201_CREATED)
async def save_invoice(
    invoice: models.InvoiceData, dealer: models.Dealer = Depends(require_dealer)
) -> models.StoredInvoice:
    try:
        return services.save_invoice(dealer, invoice)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/{invoice_id}", response_model=models.StoredInvoice)
async def get_invoice(invoice_id: int, dealer: models.Dealer = Depends(require_dealer)) -> models.StoredInvoice:
    return _stored_invoice(dealer, invoice_id)


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invoice(invoice_id: int, dealer: models.Dealer = Depends(require_dealer)) -> None:
    try:
        services.delete_invoice(dealer.id, invoice_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/{invoice_id}/pdf")
def get_invoice_pdf(invoice_id: int, dealer: models.Dealer = Depends(require_dealer)) -> StreamingResponse:
    return _pdf_response(_stored_invoice(dealer, invoice_id).data)


@router.get("/{invoice_id}/html", response_class=HTMLResponse)
async def get_invoice_html(invoice_id: int, dealer: models.Dealer = Depends(require_dealer)) -> HTMLResponse:
    plan = build_invoice_plan(_stored_invoice(dealer, invoice_id).data)
    return HTMLResponse(render_invoice_html(plan))
