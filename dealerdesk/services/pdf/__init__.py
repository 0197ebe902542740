"""PDF rendering services."""

from .invoice import render_invoice_html, render_invoice_pdf

__all__ = ["render_invoice_html", "render_invoice_pdf"]
