"""HTML invoice template and its Playwright PDF conversion."""
from __future__ import annotations

import html
import logging
import time
from datetime import datetime

from .layout import InvoicePage, InvoicePlan, Section
from .style_engine import PdfStyleEngine

logger = logging.getLogger(__name__)

_CSS = """
* { box-sizing: border-box; }
body { font-family: Helvetica, Arial, sans-serif; font-size: 10pt; color: var(--text); margin: 0; }
.page { page-break-after: always; padding: 0 0 24px 0; }
.page:last-child { page-break-after: auto; }
.band { background: var(--accent); color: #fff; padding: 14px 18px; display: flex;
        justify-content: space-between; align-items: baseline; }
.band h1 { font-size: 18pt; margin: 0; }
.section { margin: 14px 18px 0 18px; }
.section h2 { color: var(--accent); font-size: 11pt; border-bottom: 1px solid var(--border);
              padding-bottom: 3px; margin: 0 0 6px 0; }
.section p { margin: 0 0 4px 0; }
table { width: 100%; border-collapse: collapse; }
td, th { padding: 3px 4px; vertical-align: top; }
.rows td.label { font-weight: bold; width: 42%; }
.items th { background: var(--band); text-align: right; }
.items th:first-child, .items td:first-child { text-align: left; }
.items td { text-align: right; }
.items tr:nth-child(even) td { background: var(--zebra); }
footer { color: var(--muted); font-size: 8pt; margin: 18px; }
"""


def _render_section(section: Section) -> str:
    parts = [f'<div class="section"><h2>{html.escape(section.title)}</h2>']
    for paragraph in section.paragraphs:
        parts.append(f"<p>{html.escape(paragraph)}</p>")
    if section.rows:
        parts.append('<table class="rows">')
        for label, value in section.rows:
            parts.append(
                f'<tr><td class="label">{html.escape(label)}</td><td>{html.escape(value)}</td></tr>'
            )
        parts.append("</table>")
    if section.table is not None:
        parts.append('<table class="items"><thead><tr>')
        parts.extend(f"<th>{html.escape(header)}</th>" for header in section.table.headers)
        parts.append("</tr></thead><tbody>")
        for row in section.table.rows:
            cells = "".join(f"<td>{html.escape(cell)}</td>" for cell in row)
            parts.append(f"<tr>{cells}</tr>")
        parts.append("</tbody></table>")
    parts.append("</div>")
    return "".join(parts)


def _render_page(page: InvoicePage, invoice_number: str) -> str:
    sections = "".join(_render_section(section) for section in page.sections)
    return (
        f'<section class="page" data-page="{html.escape(page.key)}">'
        f'<div class="band"><h1>{html.escape(page.title)}</h1><span>No. {html.escape(invoice_number)}</span></div>'
        f"{sections}</section>"
    )


def render_invoice_html(
    plan: InvoicePlan,
    *,
    generated_at: datetime | None = None,
    style_engine: PdfStyleEngine | None = None,
) -> str:
    """Standalone HTML document for an invoice plan."""

    generated_at = generated_at or datetime.now()
    style = style_engine or PdfStyleEngine()
    invoice_number = plan.invoice.invoice_number or "-"
    pages = "".join(_render_page(page, invoice_number) for page in plan)
    title = html.escape(f"Invoice {invoice_number}")
    return (
        "<!DOCTYPE html>"
        f'<html lang="en-GB"><head><meta charset="utf-8"><title>{title}</title>'
        f"<style>:root {{ {style.css_variables()} }}{_CSS}</style></head>"
        f"<body>{pages}"
        f"<footer>Generated {generated_at.strftime('%d/%m/%Y %H:%M')}</footer>"
        "</body></html>"
    )


def render_invoice_pdf_html_sync(
    plan: InvoicePlan,
    *,
    generated_at: datetime | None = None,
    style_engine: PdfStyleEngine | None = None,
) -> bytes:
    start_time = time.perf_counter()
    html_content = render_invoice_html(plan, generated_at=generated_at, style_engine=style_engine)
    build_end = time.perf_counter()
    pdf_bytes = _render_html_to_pdf(html_content)
    total_time = time.perf_counter()
    logger.info(
        "[invoice_pdf] renderer=html html_build_ms=%.2f html_render_ms=%.2f total_ms=%.2f size_bytes=%s",
        (build_end - start_time) * 1000,
        (total_time - build_end) * 1000,
        (total_time - start_time) * 1000,
        len(pdf_bytes),
    )
    return pdf_bytes


def _render_html_to_pdf(html_content: str) -> bytes:
    try:
        from playwright.sync_api import sync_playwright
    except ImportError as exc:  # pragma: no cover - handled by caller
        raise RuntimeError("Playwright is required to render HTML invoices to PDF.") from exc

    with sync_playwright() as playwright:
        browser = playwright.chromium.launch()
        page = browser.new_page()
        page.set_content(html_content, wait_until="networkidle")
        pdf_bytes = page.pdf(
            format="A4",
            print_background=True,
            display_header_footer=True,
            header_template="<span></span>",
            footer_template=(
                '<div style="font-size:8px;width:100%;text-align:right;margin-right:12mm;">'
                'Page <span class="pageNumber"></span>/<span class="totalPages"></span></div>'
            ),
            margin={"top": "10mm", "bottom": "14mm", "left": "0mm", "right": "0mm"},
        )
        browser.close()
    return pdf_bytes
