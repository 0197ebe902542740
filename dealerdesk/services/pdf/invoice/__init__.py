"""PDF rendering for invoices."""

from .html_renderer import render_invoice_html
from .layout import InvoicePlan, build_invoice_plan
from .renderer import PlaywrightPdfError, RenderedInvoice, render_invoice_pdf
from .style_engine import PdfStyleEngine

__all__ = [
    "InvoicePlan",
    "PdfStyleEngine",
    "PlaywrightPdfError",
    "RenderedInvoice",
    "build_invoice_plan",
    "render_invoice_html",
    "render_invoice_pdf",
]
