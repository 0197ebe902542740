"""ReportLab rendering of invoice plans."""
from __future__ import annotations

import logging
import time
from datetime import datetime

from reportlab.pdfgen import canvas

from .layout import InvoicePage, InvoicePlan, Section
from .style_engine import PdfStyleEngine
from .utils import PdfBuffer, truncate, wrap_text

logger = logging.getLogger(__name__)


def render_invoice_pdf_reportlab(
    plan: InvoicePlan,
    *,
    generated_at: datetime | None = None,
    style_engine: PdfStyleEngine | None = None,
) -> bytes:
    start_time = time.perf_counter()
    generated_at = generated_at or datetime.now()
    style = style_engine or PdfStyleEngine()
    margin_left, margin_top, margin_bottom, margin_right = style.margins
    invoice_number = plan.invoice.invoice_number or "-"

    class NumberedCanvas(canvas.Canvas):
        def __init__(self, *args, **kwargs) -> None:
            super().__init__(*args, **kwargs)
            self._page_states: list[dict[str, object]] = []

        def showPage(self) -> None:
            self._page_states.append(dict(self.__dict__))
            self._startPage()

        def save(self) -> None:
            page_count = len(self._page_states)
            for page_number, state in enumerate(self._page_states, start=1):
                self.__dict__.update(state)
                self._draw_footer(page_number, page_count)
                super().showPage()
            super().save()

        def _draw_footer(self, page_number: int, page_count: int) -> None:
            width = self._pagesize[0]
            self.setFont(*style.font("small"))
            self.setFillColor(style.color("muted"))
            self.drawString(
                margin_left,
                margin_bottom - 16,
                f"Invoice {invoice_number} - generated {generated_at.strftime('%d/%m/%Y %H:%M')}",
            )
            self.drawRightString(width - margin_right, margin_bottom - 16, f"Page {page_number}/{page_count}")

    buffer = PdfBuffer()
    pdf = buffer.build_canvas(NumberedCanvas)
    width, height = pdf._pagesize
    content_width = width - margin_left - margin_right

    def start_page(page: InvoicePage) -> float:
        band_height = style.header_height()
        pdf.setFillColor(style.color("accent"))
        pdf.rect(0, height - band_height - 12, width, band_height + 12, stroke=0, fill=1)
        pdf.setFillColor(style.color("white"))
        pdf.setFont(*style.font("title"))
        pdf.drawString(margin_left, height - band_height + 4, page.title)
        pdf.setFont(*style.font("body"))
        pdf.drawRightString(width - margin_right, height - band_height + 4, f"No. {invoice_number}")
        pdf.setFillColor(style.color("text"))
        return height - band_height - 12 - margin_top / 2

    def ensure_space(y_position: float, needed: float, page: InvoicePage) -> float:
        if y_position - needed < margin_bottom + style.footer_height():
            pdf.showPage()
            return start_page(page)
        return y_position

    def draw_heading(y_position: float, title: str, page: InvoicePage) -> float:
        y_position = ensure_space(y_position, 40, page)
        pdf.setFont(*style.font("heading"))
        pdf.setFillColor(style.color("accent"))
        pdf.drawString(margin_left, y_position, title)
        pdf.setStrokeColor(style.color("border"))
        pdf.line(margin_left, y_position - 4, width - margin_right, y_position - 4)
        pdf.setFillColor(style.color("text"))
        return y_position - 16

    def draw_rows(y_position: float, section: Section, page: InvoicePage) -> float:
        label_font = style.font("label")
        body_font = style.font("body")
        label_width = content_width * 0.42
        for label, value in section.rows:
            lines = wrap_text(value, content_width - label_width, *body_font)
            needed = style.line_height() * len(lines)
            y_position = ensure_space(y_position, needed, page)
            pdf.setFont(*label_font)
            pdf.drawString(margin_left, y_position, truncate(label, label_width - 8, *label_font))
            pdf.setFont(*body_font)
            for line in lines:
                pdf.drawString(margin_left + label_width, y_position, line)
                y_position -= style.line_height()
        return y_position

    def draw_paragraphs(y_position: float, section: Section, page: InvoicePage) -> float:
        body_font = style.font("body")
        for paragraph in section.paragraphs:
            for line in wrap_text(paragraph, content_width, *body_font):
                y_position = ensure_space(y_position, style.line_height(), page)
                pdf.setFont(*body_font)
                pdf.drawString(margin_left, y_position, line)
                y_position -= style.line_height()
            y_position -= 2
        return y_position

    def draw_table(y_position: float, section: Section, page: InvoicePage) -> float:
        table = section.table
        if table is None:
            return y_position
        widths = [content_width * 0.55, content_width * 0.15, content_width * 0.15, content_width * 0.15]
        row_height = style.line_height() + 4

        def draw_header(y: float) -> float:
            pdf.setFillColor(style.color("band"))
            pdf.rect(margin_left, y - 4, content_width, row_height, stroke=0, fill=1)
            pdf.setFillColor(style.color("text"))
            pdf.setFont(*style.font("label"))
            x = margin_left
            for index, header in enumerate(table.headers):
                if index == 0:
                    pdf.drawString(x + 4, y, header)
                else:
                    pdf.drawRightString(x + widths[index] - 4, y, header)
                x += widths[index]
            return y - row_height

        y_position = ensure_space(y_position, row_height * 2, page)
        y_position = draw_header(y_position)
        body_font = style.font("body")
        for row_index, row in enumerate(table.rows):
            if y_position - row_height < margin_bottom + style.footer_height():
                pdf.showPage()
                y_position = draw_header(start_page(page))
            if row_index % 2:
                pdf.setFillColor(style.color("zebra"))
                pdf.rect(margin_left, y_position - 4, content_width, row_height, stroke=0, fill=1)
                pdf.setFillColor(style.color("text"))
            pdf.setFont(*body_font)
            x = margin_left
            for index, cell in enumerate(row):
                if index == 0:
                    pdf.drawString(x + 4, y_position, truncate(cell, widths[0] - 8, *body_font))
                else:
                    pdf.drawRightString(x + widths[index] - 4, y_position, cell)
                x += widths[index]
            y_position -= row_height
        return y_position

    for page in plan:
        y_position = start_page(page)
        for section in page.sections:
            y_position = draw_heading(y_position, section.title, page)
            y_position = draw_paragraphs(y_position, section, page)
            y_position = draw_rows(y_position, section, page)
            y_position = draw_table(y_position, section, page)
            y_position -= 10
        pdf.showPage()

    pdf.save()
    pdf_bytes = buffer.getvalue()
    logger.info(
        "[invoice_pdf] renderer=reportlab pages=%s total_ms=%.2f size_bytes=%s",
        len(plan.pages),
        (time.perf_counter() - start_time) * 1000,
        len(pdf_bytes),
    )
    return pdf_bytes
