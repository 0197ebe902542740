"""Utility helpers for invoice PDF generation."""
from __future__ import annotations

from io import BytesIO

from reportlab.lib.pagesizes import A4
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen.canvas import Canvas


class PdfBuffer(BytesIO):
    """In-memory PDF buffer that builds a ReportLab canvas."""

    def build_canvas(self, canvas_class: type[Canvas] = Canvas) -> Canvas:
        return canvas_class(self, pagesize=A4)



def wrap_text(value: str, max_width: float, font_name: str, font_size: float) -> list[str]:
    words = value.split()
    if not words:
        return [""]

    lines: list[str] = []
    current = ""
    for word in words:
        candidate = f"{current} {word}".strip()
        if pdfmetrics.stringWidth(candidate, font_name, font_size) <= max_width:
            current = candidate
            continue
        if current:
            lines.append(current)
        if pdfmetrics.stringWidth(word, font_name, font_size) <= max_width:
            current = word
            continue
        chunk = ""
        for char in word:
            if pdfmetrics.stringWidth(chunk + char, font_name, font_size) <= max_width:
                chunk += char
            else:
                if chunk:
                    lines.append(chunk)
                chunk = char
        current = chunk
    if current:
        lines.append(current)
    return lines or [value]


def truncate(value: str, max_width: float, font_name: str, font_size: float) -> str:
    if pdfmetrics.stringWidth(value, font_name, font_size) <= max_width:
        return value
    ellipsis = "..."
    while value and pdfmetrics.stringWidth(value + ellipsis, font_name, font_size) > max_width:
        value = value[:-1]
    return value + ellipsis
