"""Invoice PDF renderer entry point."""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from dealerdesk.core import models
from dealerdesk.core.config import settings
from .html_renderer import render_invoice_pdf_html_sync
from .layout import InvoicePlan, build_invoice_plan
from .playwright_support import (
    BROWSER_MISSING,
    PLAYWRIGHT_MISSING,
    PlaywrightDiagnostics,
    check_playwright_status,
    last_render,
    record_render,
)
from .reportlab_renderer import render_invoice_pdf_reportlab

logger = logging.getLogger(__name__)

RENDERER_HTML = "html"
RENDERER_REPORTLAB = "reportlab"
RENDERER_AUTO = "auto"


class PlaywrightPdfError(RuntimeError):
    def __init__(self, status: str, message: str) -> None:
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class RenderedInvoice:
    content: bytes
    filename: str
    renderer: str


def resolve_renderer_mode(diagnostics: PlaywrightDiagnostics | None) -> str:
    """Renderer an invoice would use right now under the configured mode."""

    mode = settings.PDF_RENDERER
    if mode != RENDERER_AUTO:
        return mode
    return RENDERER_HTML if diagnostics is not None and diagnostics.ready else RENDERER_REPORTLAB


def playwright_error_message(status: str) -> str:
    if status == PLAYWRIGHT_MISSING:
        return (
            "HTML invoices need Playwright, which is not installed. "
            f"Install it with: {sys.executable} -m pip install playwright"
        )
    if status == BROWSER_MISSING:
        return (
            "HTML invoices need Chromium, which Playwright cannot launch. "
            f"Install it with: {sys.executable} -m playwright install chromium"
        )
    return "Playwright is ready for HTML invoices."


def render_invoice_pdf(
    invoice: models.InvoiceData,
    *,
    generated_at: datetime | None = None,
) -> RenderedInvoice:
    """Render an invoice with the configured renderer, falling back to ReportLab in auto mode."""

    generated_at = generated_at or datetime.now()
    plan: InvoicePlan = build_invoice_plan(invoice, generated_on=generated_at.date())

    def reportlab(reason: str | None = None) -> RenderedInvoice:
        content = render_invoice_pdf_reportlab(plan, generated_at=generated_at)
        record_render(invoice.invoice_number, RENDERER_REPORTLAB, reason)
        return RenderedInvoice(content, plan.filename, RENDERER_REPORTLAB)

    if settings.PDF_RENDERER == RENDERER_REPORTLAB:
        return reportlab()

    diagnostics = check_playwright_status()
    if not diagnostics.ready:
        message = playwright_error_message(diagnostics.status)
        if settings.PDF_RENDERER == RENDERER_HTML:
            logger.error("Invoice %s cannot be rendered as HTML: %s", invoice.invoice_number, message)
            raise PlaywrightPdfError(diagnostics.status, message)
        logger.warning("Falling back to ReportLab for invoice %s: %s", invoice.invoice_number, message)
        return reportlab(diagnostics.status)

    try:
        content = render_invoice_pdf_html_sync(plan, generated_at=generated_at)
    except Exception as exc:
        if settings.PDF_RENDERER == RENDERER_HTML:
            raise
        logger.warning("Falling back to ReportLab for invoice %s: %s", invoice.invoice_number, exc)
        return reportlab(f"html render failed: {exc}")
    record_render(invoice.invoice_number, RENDERER_HTML)
    return RenderedInvoice(content, plan.filename, RENDERER_HTML)


def build_diagnostics_payload() -> dict[str, Any]:
    diagnostics = check_playwright_status()
    latest = last_render()
    return {
        "renderer_mode": settings.PDF_RENDERER,
        "renderer_active": resolve_renderer_mode(diagnostics),
        "playwright_status": diagnostics.status,
        "playwright_available": diagnostics.status != PLAYWRIGHT_MISSING,
        "browser_available": diagnostics.ready,
        "playwright_version": diagnostics.version,
        "playwright_error": diagnostics.error,
        "remediation": None if diagnostics.ready else playwright_error_message(diagnostics.status),
        "python_executable": sys.executable,
        "last_invoice": None
        if latest is None
        else {
            "invoice_number": latest.invoice_number,
            "renderer": latest.renderer,
            "fallback_reason": latest.fallback_reason,
            "rendered_at": latest.rendered_at.isoformat(timespec="seconds"),
        },
    }
