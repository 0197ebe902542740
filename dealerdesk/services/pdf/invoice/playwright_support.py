"""Chromium availability check and render history for invoice PDFs."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from importlib import metadata
from threading import Lock

logger = logging.getLogger(__name__)

PLAYWRIGHT_OK = "PLAYWRIGHT_OK"
PLAYWRIGHT_MISSING = "PLAYWRIGHT_MISSING"
BROWSER_MISSING = "BROWSER_MISSING"


@dataclass(frozen=True)
class PlaywrightDiagnostics:
    status: str
    version: str | None = None
    error: str | None = None

    @property
    def ready(self) -> bool:
        return self.status == PLAYWRIGHT_OK


@dataclass(frozen=True)
class InvoiceRenderRecord:
    invoice_number: str
    renderer: str
    fallback_reason: str | None
    rendered_at: datetime


_history_lock = Lock()
_last_render: InvoiceRenderRecord | None = None


def check_playwright_status() -> PlaywrightDiagnostics:
    """Launch headless Chromium once to see whether HTML invoices can be printed."""

    try:
        from playwright.sync_api import sync_playwright
    except ImportError as exc:
        return PlaywrightDiagnostics(PLAYWRIGHT_MISSING, error=str(exc))

    try:
        version = metadata.version("playwright")
    except metadata.PackageNotFoundError:
        version = None
    try:
        with sync_playwright() as playwright:
            playwright.chromium.launch(headless=True).close()
    except Exception as exc:  # pragma: no cover - depends on the installed browsers
        logger.warning("Chromium unavailable for invoice PDFs: %s", exc)
        return PlaywrightDiagnostics(BROWSER_MISSING, version, str(exc))
    return PlaywrightDiagnostics(PLAYWRIGHT_OK, version)


def record_render(
    invoice_number: str,
    renderer: str,
    fallback_reason: str | None = None,
) -> InvoiceRenderRecord:
    global _last_render
    record = InvoiceRenderRecord(invoice_number, renderer, fallback_reason, datetime.now())
    with _history_lock:
        _last_render = record
    if fallback_reason:
        logger.info("Invoice %s rendered with %s (%s)", invoice_number, renderer, fallback_reason)
    return record


def last_render() -> InvoiceRenderRecord | None:
    with _history_lock:
        return _last_render
