"""Basic SQLite connection handling."""
from __future__ import annotations

import logging
import os
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from threading import RLock
from typing import ContextManager

from dealerdesk.core.config import settings

DATA_DIR = settings.DATA_DIR
USERS_DB_PATH = DATA_DIR / "users.db"
DEALERSHIP_DB_PATH = DATA_DIR / "dealership.db"

logger = logging.getLogger(__name__)

DATA_DIR.mkdir(parents=True, exist_ok=True)
logger.info("[DB] pid=%s DEALERSHIP_DB_PATH=%s", os.getpid(), DEALERSHIP_DB_PATH.resolve())

_db_lock = RLock()


def _connect(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def _managed_connection(path: Path) -> Iterator[sqlite3.Connection]:
    """Yield a SQLite connection that is always closed on exit."""

    conn = _connect(path)
    try:
        yield conn
        conn.commit()
    except Exception:
        if conn.in_transaction:
            conn.rollback()
        raise
    finally:
        conn.close()


def get_users_connection() -> ContextManager[sqlite3.Connection]:
    return _managed_connection(USERS_DB_PATH)


def get_dealership_connection() -> ContextManager[sqlite3.Connection]:
    return _managed_connection(DEALERSHIP_DB_PATH)


def init_databases() -> None:
    with _db_lock:
        with get_users_connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT UNIQUE NOT NULL,
                    password TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'user',
                    is_active INTEGER NOT NULL DEFAULT 1
                );
                CREATE TABLE IF NOT EXISTS dealers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_username TEXT UNIQUE NOT NULL,
                    company_name TEXT NOT NULL,
                    address_street TEXT,
                    address_city TEXT,
                    address_county TEXT,
                    address_post_code TEXT,
                    phone TEXT,
                    email TEXT,
                    website TEXT,
                    vat_number TEXT,
                    registration_number TEXT,
                    bank_name TEXT,
                    bank_sort_code TEXT,
                    bank_account_number TEXT,
                    logo_url TEXT,
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                );
                """
            )
        with get_dealership_connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS stock_vehicles (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    dealer_id INTEGER NOT NULL,
                    registration TEXT NOT NULL,
                    make TEXT,
                    model TEXT,
                    derivative TEXT,
                    vin TEXT,
                    engine_number TEXT,
                    engine_capacity TEXT,
                    colour TEXT,
                    fuel_type TEXT,
                    mileage INTEGER,
                    first_reg_date TEXT,
                    purchase_date TEXT,
                    purchase_price REAL NOT NULL DEFAULT 0,
                    asking_price REAL NOT NULL DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'in_stock',
                    notes TEXT,
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE(dealer_id, registration)
                );
                CREATE TABLE IF NOT EXISTS stock_images (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    stock_id INTEGER NOT NULL REFERENCES stock_vehicles(id) ON DELETE CASCADE,
                    file_name TEXT NOT NULL,
                    storage_path TEXT NOT NULL,
                    url TEXT NOT NULL,
                    mime_type TEXT,
                    file_size INTEGER NOT NULL DEFAULT 0,
                    position INTEGER NOT NULL DEFAULT 0,
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                );
                CREATE INDEX IF NOT EXISTS idx_stock_images_stock ON stock_images(stock_id, position);
                CREATE TABLE IF NOT EXISTS invoices (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    dealer_id INTEGER NOT NULL,
                    invoice_number TEXT NOT NULL,
                    stock_id INTEGER REFERENCES stock_vehicles(id) ON DELETE SET NULL,
                    registration TEXT,
                    sale_type TEXT NOT NULL,
                    invoice_to TEXT NOT NULL,
                    total_amount REAL NOT NULL DEFAULT 0,
                    payload TEXT NOT NULL,
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE(dealer_id, invoice_number)
                );
                CREATE TABLE IF NOT EXISTS vehicle_documents (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    dealer_id INTEGER NOT NULL,
                    registration TEXT NOT NULL,
                    stock_id INTEGER REFERENCES stock_vehicles(id) ON DELETE SET NULL,
                    document_name TEXT NOT NULL,
                    document_type TEXT NOT NULL DEFAULT 'other',
                    description TEXT,
                    file_name TEXT NOT NULL,
                    storage_path TEXT NOT NULL,
                    url TEXT NOT NULL,
                    mime_type TEXT,
                    file_size INTEGER NOT NULL DEFAULT 0,
                    expiry_date TEXT,
                    document_date TEXT,
                    uploaded_by TEXT,
                    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                );
                CREATE INDEX IF NOT EXISTS idx_vehicle_documents_reg ON vehicle_documents(dealer_id, registration);
                """
            )
