"""Centralized styling for invoice PDF rendering."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from reportlab.lib import colors


@dataclass
class PdfStyleEngine:
    accent_hex: str = "#1F4E79"

    _palette = {
        "text": colors.HexColor("#1A1A1A"),
        "muted": colors.HexColor("#5F6B7A"),
        "border": colors.HexColor("#C9D2DC"),
        "band": colors.HexColor("#EEF2F7"),
        "zebra": colors.HexColor("#F7F9FB"),
        "white": colors.white,
    }

    def color(self, name: str):
        if name == "accent":
            return colors.HexColor(self.accent_hex)
        return self._palette[name]

    @property
    def margins(self) -> tuple[float, float, float, float]:
        # left, top, bottom, right
        return 40, 40, 40, 40

    def header_height(self) -> float:
        return 36

    def footer_height(self) -> float:
        return 20

    def line_height(self, role: str = "body") -> float:
        return self.font(role)[1] + 4

    def font(self, role: str) -> Tuple[str, float]:
        if role == "title":
            return "Helvetica-Bold", 18
        if role == "heading":
            return "Helvetica-Bold", 11
        if role == "label":
            return "Helvetica-Bold", 9
        if role == "body":
            return "Helvetica", 9
        if role == "small":
            return "Helvetica", 8
        return "Helvetica", 9

    def css_variables(self) -> str:
        return (
            f"--accent: {self.accent_hex}; --text: #1A1A1A; --muted: #5F6B7A; "
            "--border: #C9D2DC; --band: #EEF2F7; --zebra: #F7F9FB;"
        )
