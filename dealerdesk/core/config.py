"""Static configuration for the DealerDesk backend."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

PACKAGE_DIR = Path(__file__).resolve().parent.parent


def _get_env_choice(name: str, choices: set[str], default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    return normalized if normalized in choices else default


def _get_env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


def _get_env_path(name: str, default: Path) -> Path:
    value = os.getenv(name)
    if not value or not value.strip():
        return default
    return Path(value.strip()).expanduser()


@dataclass(frozen=True)
class Settings:
    """Global settings read from the environment."""

    PDF_RENDERER: str = "auto"
    SECRET_KEY: str = "change-me-please"
    DATA_DIR: Path = PACKAGE_DIR / "data"
    MEDIA_DIR: Path = PACKAGE_DIR / "media"
    STORAGE_BACKEND: str = "local"
    STORAGE_URL: str = ""
    STORAGE_SERVICE_KEY: str = ""
    TAXONOMY_API_URL: str = "https://api-sandbox.autotrader.co.uk"
    TAXONOMY_API_KEY: str = ""
    TAXONOMY_API_SECRET: str = ""
    TAXONOMY_ADVERTISER_ID: str = ""
    LICENSE_MAX_BYTES: int = 10 * 1024 * 1024
    DOCUMENT_MAX_BYTES: int = 20 * 1024 * 1024


settings = Settings(
    PDF_RENDERER=_get_env_choice("PDF_RENDERER", {"auto", "html", "reportlab"}, "auto"),
    SECRET_KEY=os.getenv("DEALERDESK_SECRET_KEY", "change-me-please"),
    DATA_DIR=_get_env_path("DEALERDESK_DATA_DIR", PACKAGE_DIR / "data"),
    MEDIA_DIR=_get_env_path("DEALERDESK_MEDIA_DIR", PACKAGE_DIR / "media"),
    STORAGE_BACKEND=_get_env_choice("STORAGE_BACKEND", {"local", "remote"}, "local"),
    STORAGE_URL=os.getenv("STORAGE_URL", "").rstrip("/"),
    STORAGE_SERVICE_KEY=os.getenv("STORAGE_SERVICE_KEY", ""),
    TAXONOMY_API_URL=os.getenv("TAXONOMY_API_URL", "https://api-sandbox.autotrader.co.uk").rstrip("/"),
    TAXONOMY_API_KEY=os.getenv("TAXONOMY_API_KEY", ""),
    TAXONOMY_API_SECRET=os.getenv("TAXONOMY_API_SECRET", ""),
    TAXONOMY_ADVERTISER_ID=os.getenv("TAXONOMY_ADVERTISER_ID", ""),
    LICENSE_MAX_BYTES=_get_env_int("LICENSE_MAX_BYTES", 10 * 1024 * 1024),
    DOCUMENT_MAX_BYTES=_get_env_int("DOCUMENT_MAX_BYTES", 20 * 1024 * 1024),
)
