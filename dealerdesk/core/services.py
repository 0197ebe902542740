"""Business services for DealerDesk."""
from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date, datetime
from typing import Any, Optional

from dealerdesk.core import db, finance_companies, models, security
from dealerdesk.services import invoice_calculations

_db_initialized = False

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "admin123"
DEFAULT_DEALER_NAME = "Demo Motors"

_DEALER_COLUMNS = (
    "company_name",
    "address_street",
    "address_city",
    "address_county",
    "address_post_code",
    "phone",
    "email",
    "website",
    "vat_number",
    "registration_number",
    "bank_name",
    "bank_sort_code",
    "bank_account_number",
    "logo_url",
)

_STOCK_COLUMNS = (
    "make",
    "model",
    "derivative",
    "vin",
    "engine_number",
    "engine_capacity",
    "colour",
    "fuel_type",
    "mileage",
    "first_reg_date",
    "purchase_date",
    "purchase_price",
    "asking_price",
    "status",
    "notes",
)
_STOCK_REQUIRED_COLUMNS = {"purchase_price", "asking_price", "status"}


def ensure_database_ready() -> None:
    global _db_initialized
    db.init_databases()

    if not _db_initialized:
        seed_default_admin()
        _db_initialized = True


def seed_default_admin() -> None:
    with db.get_users_connection() as conn:
        row = conn.execute(
            "SELECT id, password, role, is_active FROM users WHERE username = ?",
            (DEFAULT_ADMIN_USERNAME,),
        ).fetchone()
        if row is None:
            conn.execute(
                "INSERT INTO users (username, password, role, is_active) VALUES (?, ?, ?, 1)",
                (DEFAULT_ADMIN_USERNAME, security.hash_password(DEFAULT_ADMIN_PASSWORD), "admin"),
            )
        elif row["role"] != "admin" or not bool(row["is_active"]):
            conn.execute(
                "UPDATE users SET role = 'admin', is_active = 1 WHERE id = ?",
                (row["id"],),
            )
        conn.execute(
            "INSERT OR IGNORE INTO dealers (owner_username, company_name) VALUES (?, ?)",
            (DEFAULT_ADMIN_USERNAME, DEFAULT_DEALER_NAME),
        )


# --- Users -------------------------------------------------------------------


def _build_user(row: sqlite3.Row) -> models.User:
    return models.User(
        id=row["id"],
        username=row["username"],
        role=row["role"],
        is_active=bool(row["is_active"]),
    )


def get_user(username: str) -> Optional[models.User]:
    ensure_database_ready()
    with db.get_users_connection() as conn:
        row = conn.execute("SELECT * FROM users WHERE username = ?", (username,)).fetchone()
        if not row:
            return None
        return _build_user(row)


def create_user(payload: models.UserCreate) -> models.User:
    ensure_database_ready()
    with db.get_users_connection() as conn:
        try:
            cur = conn.execute(
                "INSERT INTO users (username, password, role, is_active) VALUES (?, ?, ?, 1)",
                (payload.username, security.hash_password(payload.password), payload.role),
            )
        except sqlite3.IntegrityError as exc:
            raise ValueError("Username already exists") from exc
        row = conn.execute("SELECT * FROM users WHERE id = ?", (cur.lastrowid,)).fetchone()
        return _build_user(row)


def authenticate(username: str, password: str) -> Optional[models.User]:
    ensure_database_ready()
    with db.get_users_connection() as conn:
        row = conn.execute("SELECT * FROM users WHERE username = ?", (username,)).fetchone()
        if not row or not bool(row["is_active"]):
            return None
        if not security.verify_password(password, row["password"]):
            return None
        return _build_user(row)


# --- Dealers -----------------------------------------------------------------


def _build_dealer(row: sqlite3.Row) -> models.Dealer:
    return models.Dealer(id=row["id"], owner_username=row["owner_username"], **{key: row[key] for key in _DEALER_COLUMNS})


def get_dealer_for_user(user: models.User) -> Optional[models.Dealer]:
    ensure_database_ready()
    with db.get_users_connection() as conn:
        row = conn.execute("SELECT * FROM dealers WHERE owner_username = ?", (user.username,)).fetchone()
        if not row:
            return None
        return _build_dealer(row)


def create_dealer(username: str, company_name: str) -> models.Dealer:
    ensure_database_ready()
    with db.get_users_connection() as conn:
        try:
            cur = conn.execute(
                "INSERT INTO dealers (owner_username, company_name) VALUES (?, ?)",
                (username, company_name),
            )
        except sqlite3.IntegrityError as exc:
            raise ValueError("Dealer already exists for this user") from exc
        row = conn.execute("SELECT * FROM dealers WHERE id = ?", (cur.lastrowid,)).fetchone()
        return _build_dealer(row)


def update_dealer(dealer_id: int, payload: models.DealerUpdate) -> models.Dealer:
    ensure_database_ready()
    updates = payload.model_dump(exclude_unset=True)
    if updates.get("company_name") is None:
        updates.pop("company_name", None)
    with db.get_users_connection() as conn:
        if updates:
            assignments = ", ".join(f"{column} = ?" for column in updates)
            conn.execute(
                f"UPDATE dealers SET {assignments} WHERE id = ?",
                (*updates.values(), dealer_id),
            )
        row = conn.execute("SELECT * FROM dealers WHERE id = ?", (dealer_id,)).fetchone()
        if not row:
            raise ValueError("Dealer not found")
        return _build_dealer(row)


def company_info_for_dealer(dealer: models.Dealer) -> models.CompanyInfo:
    return models.CompanyInfo(
        name=dealer.company_name,
        address=models.CompanyAddress(
            street=dealer.address_street or "",
            city=dealer.address_city or "",
            county=dealer.address_county or "",
            post_code=dealer.address_post_code or "",
        ),
        contact=models.CompanyContact(
            phone=dealer.phone or "",
            email=dealer.email or "",
            website=dealer.website or "",
        ),
        payment=models.CompanyPaymentDetails(
            bank_name=dealer.bank_name or "",
            bank_sort_code=dealer.bank_sort_code or "",
            bank_account_number=dealer.bank_account_number or "",
            bank_account_name=dealer.company_name,
        ),
        vat_number=dealer.vat_number or "",
        registration_number=dealer.registration_number or "",
        logo=dealer.logo_url,
    )


# --- Stock -------------------------------------------------------------------


def _iso(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _build_stock_image(row: sqlite3.Row) -> models.StockImage:
    return models.StockImage(
        id=row["id"],
        stock_id=row["stock_id"],
        file_name=row["file_name"],
        url=row["url"],
        mime_type=row["mime_type"],
        file_size=row["file_size"],
        position=row["position"],
    )


def _list_stock_images(conn: sqlite3.Connection, stock_id: int) -> list[models.StockImage]:
    rows = conn.execute(
        "SELECT * FROM stock_images WHERE stock_id = ? ORDER BY position, id",
        (stock_id,),
    ).fetchall()
    return [_build_stock_image(row) for row in rows]


def _build_stock_vehicle(conn: sqlite3.Connection, row: sqlite3.Row) -> models.StockVehicle:
    return models.StockVehicle(
        id=row["id"],
        dealer_id=row["dealer_id"],
        registration=row["registration"],
        images=_list_stock_images(conn, row["id"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        **{key: row[key] for key in _STOCK_COLUMNS},
    )


def _fetch_stock_row(conn: sqlite3.Connection, dealer_id: int, stock_id: int) -> sqlite3.Row:
    row = conn.execute(
        "SELECT * FROM stock_vehicles WHERE id = ? AND dealer_id = ?",
        (stock_id, dealer_id),
    ).fetchone()
    if not row:
        raise ValueError("Stock vehicle not found")
    return row


def list_stock(
    dealer_id: int,
    *,
    status: str | None = None,
    search: str | None = None,
) -> list[models.StockVehicle]:
    ensure_database_ready()
    query = "SELECT * FROM stock_vehicles WHERE dealer_id = ?"
    params: list[Any] = [dealer_id]
    if status:
        query += " AND status = ?"
        params.append(status)
    if search:
        pattern = f"%{search.strip().upper()}%"
        query += " AND (UPPER(registration) LIKE ? OR UPPER(make) LIKE ? OR UPPER(model) LIKE ?)"
        params.extend([pattern, pattern, pattern])
    query += " ORDER BY created_at DESC, id DESC"
    with db.get_dealership_connection() as conn:
        rows = conn.execute(query, params).fetchall()
        return [_build_stock_vehicle(conn, row) for row in rows]


def get_stock_vehicle(dealer_id: int, stock_id: int) -> models.StockVehicle:
    ensure_database_ready()
    with db.get_dealership_connection() as conn:
        return _build_stock_vehicle(conn, _fetch_stock_row(conn, dealer_id, stock_id))


def create_stock_vehicle(dealer_id: int, payload: models.StockVehicleCreate) -> models.StockVehicle:
    ensure_database_ready()
    values = [_iso(getattr(payload, key)) for key in _STOCK_COLUMNS]
    with db.get_dealership_connection() as conn:
        try:
            cur = conn.execute(
                f"""
                INSERT INTO stock_vehicles (dealer_id, registration, {", ".join(_STOCK_COLUMNS)})
                VALUES (?, ?, {", ".join("?" for _ in _STOCK_COLUMNS)})
                """,
                (dealer_id, payload.registration, *values),
            )
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"Registration {payload.registration} is already in stock") from exc
        row = _fetch_stock_row(conn, dealer_id, cur.lastrowid)
        logger.info("Stock vehicle %s created for dealer %s", payload.registration, dealer_id)
        return _build_stock_vehicle(conn, row)


def update_stock_vehicle(
    dealer_id: int, stock_id: int, payload: models.StockVehicleUpdate
) -> models.StockVehicle:
    ensure_database_ready()
    updates = {
        key: _iso(value)
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or key not in _STOCK_REQUIRED_COLUMNS
    }
    with db.get_dealership_connection() as conn:
        _fetch_stock_row(conn, dealer_id, stock_id)
        if updates:
            assignments = ", ".join(f"{column} = ?" for column in updates)
            conn.execute(
                f"UPDATE stock_vehicles SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (*updates.values(), stock_id),
            )
        return _build_stock_vehicle(conn, _fetch_stock_row(conn, dealer_id, stock_id))


def delete_stock_vehicle(dealer_id: int, stock_id: int) -> list[str]:
    """Delete a stock vehicle and return the storage paths of its images."""

    ensure_database_ready()
    with db.get_dealership_connection() as conn:
        _fetch_stock_row(conn, dealer_id, stock_id)
        paths = [
            row["storage_path"]
            for row in conn.execute(
                "SELECT storage_path FROM stock_images WHERE stock_id = ?", (stock_id,)
            ).fetchall()
        ]
        conn.execute("DELETE FROM stock_vehicles WHERE id = ?", (stock_id,))
        return paths


def add_stock_image(
    dealer_id: int,
    stock_id: int,
    *,
    file_name: str,
    storage_path: str,
    url: str,
    mime_type: str | None,
    file_size: int,
) -> models.StockImage:
    ensure_database_ready()
    with db.get_dealership_connection() as conn:
        _fetch_stock_row(conn, dealer_id, stock_id)
        row = conn.execute(
            "SELECT COALESCE(MAX(position), -1) + 1 AS next_position FROM stock_images WHERE stock_id = ?",
            (stock_id,),
        ).fetchone()
        cur = conn.execute(
            """
            INSERT INTO stock_images (stock_id, file_name, storage_path, url, mime_type, file_size, position)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (stock_id, file_name, storage_path, url, mime_type, file_size, row["next_position"]),
        )
        image_row = conn.execute("SELECT * FROM stock_images WHERE id = ?", (cur.lastrowid,)).fetchone()
        return _build_stock_image(image_row)


def reorder_stock_images(dealer_id: int, stock_id: int, image_ids: list[int]) -> list[models.StockImage]:
    """Persist a new image order; ``image_ids`` must list every image exactly once."""

    ensure_database_ready()
    with db.get_dealership_connection() as conn:
        _fetch_stock_row(conn, dealer_id, stock_id)
        existing = {
            row["id"]
            for row in conn.execute("SELECT id FROM stock_images WHERE stock_id = ?", (stock_id,)).fetchall()
        }
        if len(image_ids) != len(set(image_ids)) or set(image_ids) != existing:
            raise ValueError("Image order must contain each image of the vehicle exactly once")
        conn.executemany(
            "UPDATE stock_images SET position = ? WHERE id = ?",
            [(position, image_id) for position, image_id in enumerate(image_ids)],
        )
        return _list_stock_images(conn, stock_id)


def delete_stock_image(dealer_id: int, stock_id: int, image_id: int) -> str:
    """Remove an image, compact positions and return its storage path."""

    ensure_database_ready()
    with db.get_dealership_connection() as conn:
        _fetch_stock_row(conn, dealer_id, stock_id)
        row = conn.execute(
            "SELECT storage_path FROM stock_images WHERE id = ? AND stock_id = ?",
            (image_id, stock_id),
        ).fetchone()
        if not row:
            raise ValueError("Image not found")
        conn.execute("DELETE FROM stock_images WHERE id = ?", (image_id,))
        remaining = [image.id for image in _list_stock_images(conn, stock_id)]
        conn.executemany(
            "UPDATE stock_images SET position = ? WHERE id = ?",
            [(position, remaining_id) for position, remaining_id in enumerate(remaining)],
        )
        return row["storage_path"]


# --- Invoices ----------------------------------------------------------------


def default_invoice_number(registration: str, on: date | None = None) -> str:
    day = on or date.today()
    cleaned = "".join(registration.split()).upper() or "VEHICLE"
    return f"INV-{cleaned}-{day.strftime('%Y%m%d')}"


def invoice_template_for_stock(dealer: models.Dealer, stock_id: int, *, today: date | None = None) -> models.InvoiceData:
    """Build a new invoice pre-filled from a stock vehicle and the dealer profile."""

    vehicle = get_stock_vehicle(dealer.id, stock_id)
    day = today or date.today()
    invoice = models.InvoiceData(
        invoice_number=default_invoice_number(vehicle.registration, day),
        invoice_date=day.isoformat(),
        stock_id=vehicle.id,
        company_info=company_info_for_dealer(dealer),
        vehicle=models.VehicleInfo(
            registration=vehicle.registration,
            make=vehicle.make or "",
            model=vehicle.model or "",
            derivative=vehicle.derivative or "",
            mileage=str(vehicle.mileage) if vehicle.mileage is not None else "",
            engine_number=vehicle.engine_number or "",
            engine_capacity=vehicle.engine_capacity or "",
            vin=vehicle.vin or "",
            first_reg_date=vehicle.first_reg_date.isoformat() if vehicle.first_reg_date else "",
            colour=vehicle.colour or "",
            fuel_type=vehicle.fuel_type or "",
        ),
        pricing=models.Pricing(sale_price=vehicle.asking_price),
        sale=models.SaleInfo(
            date=day.isoformat(),
            cost_of_purchase=vehicle.purchase_price,
            date_of_purchase=vehicle.purchase_date.isoformat() if vehicle.purchase_date else "",
        ),
        checklist=models.Checklist(
            mileage=str(vehicle.mileage) if vehicle.mileage is not None else "",
            fuel_type=vehicle.fuel_type or "",
        ),
    )
    return invoice_calculations.apply_calculations(invoice)


def prepare_invoice(dealer: models.Dealer, invoice: models.InvoiceData) -> models.InvoiceData:
    """Fill dealer/finance defaults and apply the calculation engine."""

    updates: dict[str, Any] = {}
    if not invoice.company_info.name:
        updates["company_info"] = company_info_for_dealer(dealer)
    if not invoice.invoice_number:
        updates["invoice_number"] = default_invoice_number(invoice.vehicle.registration)
    if not invoice.invoice_date:
        updates["invoice_date"] = date.today().isoformat()
    finance = invoice.finance_company
    if (
        invoice.is_finance
        and finance.company_id
        and finance.company_id != finance_companies.CUSTOM_FINANCE_COMPANY_ID
        and not finance.name
    ):
        updates["finance_company"] = finance_companies.finance_company_section(finance.company_id)
    if updates:
        invoice = invoice.model_copy(update=updates)
    return invoice_calculations.apply_calculations(invoice)


def _row_summary_fields(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": row["id"],
        "invoice_number": row["invoice_number"],
        "registration": row["registration"],
        "sale_type": row["sale_type"],
        "invoice_to": row["invoice_to"],
        "total_amount": row["total_amount"],
        "stock_id": row["stock_id"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def _build_stored_invoice(row: sqlite3.Row) -> models.StoredInvoice:
    data = models.InvoiceData.model_validate(json.loads(row["payload"]))
    return models.StoredInvoice(data=data, **_row_summary_fields(row))


def save_invoice(dealer: models.Dealer, invoice: models.InvoiceData) -> models.StoredInvoice:
    """Insert or update (by invoice number) a dealer invoice."""

    ensure_database_ready()
    prepared = prepare_invoice(dealer, invoice)
    payload = json.dumps(prepared.model_dump(by_alias=True, mode="json"))
    values = (
        prepared.stock_id,
        prepared.vehicle.registration or None,
        prepared.sale_type,
        prepared.invoice_to,
        prepared.total_amount,
        payload,
    )
    with db.get_dealership_connection() as conn:
        if prepared.stock_id is not None:
            _fetch_stock_row(conn, dealer.id, prepared.stock_id)
        existing = conn.execute(
            "SELECT id FROM invoices WHERE dealer_id = ? AND invoice_number = ?",
            (dealer.id, prepared.invoice_number),
        ).fetchone()
        if existing:
            conn.execute(
                """
                UPDATE invoices
                SET stock_id = ?, registration = ?, sale_type = ?, invoice_to = ?, total_amount = ?,
                    payload = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (*values, existing["id"]),
            )
            invoice_id = existing["id"]
        else:
            cur = conn.execute(
                """
                INSERT INTO invoices (stock_id, registration, sale_type, invoice_to, total_amount, payload,
                                      dealer_id, invoice_number)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (*values, dealer.id, prepared.invoice_number),
            )
            invoice_id = cur.lastrowid
        row = conn.execute("SELECT * FROM invoices WHERE id = ?", (invoice_id,)).fetchone()
        logger.info("Invoice %s saved for dealer %s", prepared.invoice_number, dealer.id)
        return _build_stored_invoice(row)


def list_invoices(dealer_id: int) -> list[models.InvoiceSummary]:
    ensure_database_ready()
    with db.get_dealership_connection() as conn:
        rows = conn.execute(
            "SELECT * FROM invoices WHERE dealer_id = ? ORDER BY updated_at DESC, id DESC",
            (dealer_id,),
        ).fetchall()
        return [models.InvoiceSummary(**_row_summary_fields(row)) for row in rows]


def get_invoice(dealer_id: int, invoice_id: int) -> models.StoredInvoice:
    ensure_database_ready()
    with db.get_dealership_connection() as conn:
        row = conn.execute(
            "SELECT * FROM invoices WHERE id = ? AND dealer_id = ?",
            (invoice_id, dealer_id),
        ).fetchone()
        if not row:
            raise ValueError("Invoice not found")
        return _build_stored_invoice(row)


def delete_invoice(dealer_id: int, invoice_id: int) -> None:
    ensure_database_ready()
    with db.get_dealership_connection() as conn:
        cur = conn.execute(
            "DELETE FROM invoices WHERE id = ? AND dealer_id = ?",
            (invoice_id, dealer_id),
        )
        if cur.rowcount == 0:
            raise ValueError("Invoice not found")


# --- Vehicle documents -------------------------------------------------------


def _build_document(row: sqlite3.Row) -> models.VehicleDocument:
    return models.VehicleDocument(
        id=row["id"],
        registration=row["registration"],
        stock_id=row["stock_id"],
        document_name=row["document_name"],
        document_type=row["document_type"],
        description=row["description"],
        file_name=row["file_name"],
        url=row["url"],
        mime_type=row["mime_type"],
        file_size=row["file_size"],
        expiry_date=row["expiry_date"] or None,
        document_date=row["document_date"] or None,
        uploaded_by=row["uploaded_by"],
        created_at=row["created_at"],
    )


def find_stock_id(dealer_id: int, registration: str) -> Optional[int]:
    ensure_database_ready()
    with db.get_dealership_connection() as conn:
        row = conn.execute(
            "SELECT id FROM stock_vehicles WHERE dealer_id = ? AND registration = ?",
            (dealer_id, registration),
        ).fetchone()
        return row["id"] if row else None


def add_vehicle_document(
    dealer_id: int,
    *,
    registration: str,
    document_name: str,
    document_type: str,
    description: str | None,
    file_name: str,
    storage_path: str,
    url: str,
    mime_type: str | None,
    file_size: int,
    expiry_date: date | None,
    document_date: date | None,
    uploaded_by: str | None,
) -> models.VehicleDocument:
    ensure_database_ready()
    stock_id = find_stock_id(dealer_id, registration)
    with db.get_dealership_connection() as conn:
        cur = conn.execute(
            """
            INSERT INTO vehicle_documents (
                dealer_id, registration, stock_id, document_name, document_type, description,
                file_name, storage_path, url, mime_type, file_size, expiry_date, document_date, uploaded_by
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                dealer_id,
                registration,
                stock_id,
                document_name,
                document_type,
                description,
                file_name,
                storage_path,
                url,
                mime_type,
                file_size,
                _iso(expiry_date),
                _iso(document_date),
                uploaded_by,
            ),
        )
        row = conn.execute("SELECT * FROM vehicle_documents WHERE id = ?", (cur.lastrowid,)).fetchone()
        return _build_document(row)


def list_vehicle_documents(dealer_id: int, registration: str | None = None) -> list[models.VehicleDocument]:
    ensure_database_ready()
    query = "SELECT * FROM vehicle_documents WHERE dealer_id = ?"
    params: list[Any] = [dealer_id]
    if registration:
        query += " AND registration = ?"
        params.append(registration)
    query += " ORDER BY created_at DESC, id DESC"
    with db.get_dealership_connection() as conn:
        return [_build_document(row) for row in conn.execute(query, params).fetchall()]


def delete_vehicle_document(dealer_id: int, document_id: int) -> str:
    """Delete a document row and return its storage path."""

    ensure_database_ready()
    with db.get_dealership_connection() as conn:
        row = conn.execute(
            "SELECT storage_path FROM vehicle_documents WHERE id = ? AND dealer_id = ?",
            (document_id, dealer_id),
        ).fetchone()
        if not row:
            raise ValueError("Document not found")
        conn.execute("DELETE FROM vehicle_documents WHERE id = ?", (document_id,))
        return row["storage_path"]
