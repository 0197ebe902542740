"""Invoice pricing and balance calculations.

Every surface that shows invoice figures (the calculate endpoint used by the
edit form, the ReportLab renderer, the HTML template and its PDF conversion)
reads them from :func:`calculate_invoice`. Nothing else derives prices.

Money is handled as :class:`~decimal.Decimal` and rounded half-up to pennies;
the pydantic models expose floats.
"""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from dealerdesk.core import models

_PENNY = Decimal("0.01")
_ZERO = Decimal("0")

MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


def to_money(value: Any) -> Decimal:
    """Convert a float/str/None to a Decimal rounded to pennies."""

    if value is None or value == "":
        return _ZERO
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except ArithmeticError:
            return _ZERO
    if not amount.is_finite():
        return _ZERO
    return amount.quantize(_PENNY, rounding=ROUND_HALF_UP)


def post_discount(cost: Any, discount: Any) -> Decimal:
    """Return ``max(0, cost - discount)``."""

    return max(_ZERO, to_money(cost) - to_money(discount))


def _sum(values: Iterable[Decimal]) -> Decimal:
    total = _ZERO
    for value in values:
        total += value
    return total


def _as_float(value: Decimal) -> float:
    return float(value.quantize(_PENNY, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class AddonTotals:
    finance: tuple[Decimal, ...] = ()
    customer: tuple[Decimal, ...] = ()

    @property
    def finance_total(self) -> Decimal:
        return _sum(self.finance)

    @property
    def customer_total(self) -> Decimal:
        return _sum(self.customer)


@dataclass(frozen=True)
class InvoiceTotals:
    """Every derived figure of an invoice."""

    sale_price_post_discount: Decimal
    warranty_price_post_discount: Decimal
    enhanced_warranty_price_post_discount: Decimal
    delivery_cost_post_discount: Decimal
    addons: AddonTotals

    compulsory_sale_deposit_finance: Decimal
    total_finance_deposit_paid: Decimal
    outstanding_deposit_finance: Decimal
    overpayments_finance: Decimal

    outstanding_deposit_customer: Decimal
    overpayments_customer: Decimal

    part_exchange_amount_paid: Decimal
    card_total: Decimal
    bacs_total: Decimal
    cash_total: Decimal
    direct_payments: Decimal
    balance_to_finance: Decimal

    subtotal: Decimal
    total_payments: Decimal
    remaining_balance: Decimal
    vat_commercial: Decimal
    remaining_balance_inc_vat: Decimal
    customer_balance_due: Decimal
    trade_balance_due: Decimal
    balance_to_customer: Decimal

    month_of_sale: str = ""
    quarter_of_sale: int = 0
    days_in_stock: int = 0

    @property
    def vat_amount(self) -> Decimal:
        return self.vat_commercial

    @property
    def total_amount(self) -> Decimal:
        return self.subtotal + self.vat_commercial

    def as_floats(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for key, value in asdict(self).items():
            if isinstance(value, Decimal):
                payload[key] = _as_float(value)
            elif key == "addons":
                payload[key] = {
                    "finance": [_as_float(item) for item in value["finance"]],
                    "customer": [_as_float(item) for item in value["customer"]],
                }
            else:
                payload[key] = value
        payload["vat_amount"] = _as_float(self.vat_amount)
        payload["total_amount"] = _as_float(self.total_amount)
        return payload


@dataclass(frozen=True)
class DateFields:
    month_of_sale: str = ""
    quarter_of_sale: int = 0


def parse_date(value: Any) -> date | None:
    """Parse ISO (``YYYY-MM-DD``) or en-GB (``dd/mm/YYYY``) dates."""

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    for fmt in ("%Y-%m-%d", "%d/%m/%Y"):
        try:
            return datetime.strptime(text[:10], fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def calculate_date_fields(sale_date: Any) -> DateFields:
    parsed = parse_date(sale_date)
    if parsed is None:
        return DateFields()
    return DateFields(
        month_of_sale=MONTH_NAMES[parsed.month - 1],
        quarter_of_sale=math.ceil(parsed.month / 3),
    )


def days_in_stock(purchase_date: Any, sale_date: Any) -> int:
    """Whole days between purchase and sale, rounded up."""

    purchased = parse_date(purchase_date)
    sold = parse_date(sale_date)
    if purchased is None or sold is None:
        return 0
    return math.ceil(abs((sold - purchased).days))


def _addon_totals(group: models.AddonGroup) -> tuple[Decimal, ...]:
    return tuple(post_discount(addon.cost, addon.discount) for addon in group.all_addons())


def calculate_invoice(invoice: models.InvoiceData) -> InvoiceTotals:
    """Compute every derived field of ``invoice`` without mutating it."""

    pricing = invoice.pricing
    breakdown = invoice.payment.breakdown
    part_exchange = invoice.payment.part_exchange
    is_finance = invoice.is_finance
    is_trade = invoice.is_trade

    sale_pd = post_discount(pricing.sale_price, pricing.discount_on_sale_price)
    if is_trade:
        warranty_pd = _ZERO
        enhanced_pd = _ZERO
    else:
        warranty_pd = post_discount(pricing.warranty_price, pricing.discount_on_warranty)
        enhanced_pd = post_discount(
            pricing.enhanced_warranty_price, pricing.discount_on_enhanced_warranty
        )
    delivery_pd = post_discount(pricing.delivery_cost, pricing.discount_on_delivery)

    addons = AddonTotals(
        finance=_addon_totals(invoice.addons.finance),
        customer=_addon_totals(invoice.addons.customer),
    )
    customer_addons = addons.customer_total
    finance_addons = addons.finance_total if is_finance else _ZERO

    if is_finance:
        compulsory_f = warranty_pd + enhanced_pd + delivery_pd + customer_addons
        paid_f = to_money(pricing.dealer_deposit_paid_customer) + to_money(
            pricing.amount_paid_deposit_finance
        )
        outstanding_f = max(_ZERO, compulsory_f - paid_f)
        overpay_f = max(_ZERO, paid_f - compulsory_f)
    else:
        compulsory_f = paid_f = outstanding_f = overpay_f = _ZERO

    compulsory_c = to_money(pricing.compulsory_sale_deposit_customer)
    paid_c = to_money(pricing.amount_paid_deposit_customer)
    outstanding_c = max(_ZERO, compulsory_c - paid_c)
    overpay_c = max(_ZERO, paid_c - compulsory_c)

    if part_exchange.included:
        px_paid = post_discount(part_exchange.value_of_vehicle, part_exchange.settlement_amount)
        settlement = to_money(part_exchange.settlement_amount)
    else:
        px_paid = _ZERO
        settlement = _ZERO

    card_total = _sum(to_money(entry.amount) for entry in breakdown.card_payments)
    bacs_total = _sum(to_money(entry.amount) for entry in breakdown.bacs_payments)
    cash_total = _sum(to_money(entry.amount) for entry in breakdown.cash_payments)
    direct = card_total + bacs_total + cash_total + px_paid

    if is_finance:
        balance_to_finance = max(
            _ZERO, sale_pd + settlement + finance_addons - overpay_f - direct
        )
    else:
        balance_to_finance = _ZERO

    subtotal = sale_pd + warranty_pd + enhanced_pd + delivery_pd + finance_addons + customer_addons
    total_payments = direct + paid_c
    remaining = max(_ZERO, subtotal - total_payments)

    if invoice.sale_type == "Commercial":
        vat = to_money(remaining * to_money(pricing.vat_rate) / Decimal(100))
    else:
        vat = _ZERO

    if is_finance:
        customer_balance_due = max(_ZERO, compulsory_f - paid_f)
    else:
        customer_balance_due = remaining

    sale_date = invoice.sale.date or invoice.invoice_date
    date_fields = calculate_date_fields(sale_date)

    return InvoiceTotals(
        sale_price_post_discount=sale_pd,
        warranty_price_post_discount=warranty_pd,
        enhanced_warranty_price_post_discount=enhanced_pd,
        delivery_cost_post_discount=delivery_pd,
        addons=addons,
        compulsory_sale_deposit_finance=compulsory_f,
        total_finance_deposit_paid=paid_f,
        outstanding_deposit_finance=outstanding_f,
        overpayments_finance=overpay_f,
        outstanding_deposit_customer=outstanding_c,
        overpayments_customer=overpay_c,
        part_exchange_amount_paid=px_paid,
        card_total=card_total,
        bacs_total=bacs_total,
        cash_total=cash_total,
        direct_payments=direct,
        balance_to_finance=balance_to_finance,
        subtotal=subtotal,
        total_payments=total_payments,
        remaining_balance=remaining,
        vat_commercial=vat,
        remaining_balance_inc_vat=remaining + vat,
        customer_balance_due=customer_balance_due,
        trade_balance_due=remaining if is_trade else _ZERO,
        balance_to_customer=max(_ZERO, total_payments - subtotal),
        month_of_sale=date_fields.month_of_sale,
        quarter_of_sale=date_fields.quarter_of_sale,
        days_in_stock=days_in_stock(invoice.sale.date_of_purchase, sale_date),
    )


def ensure_payment_rows(breakdown: models.PaymentBreakdown) -> models.PaymentBreakdown:
    """Keep at least one (possibly empty) row in every payment list."""

    updates: dict[str, list[models.PaymentEntry]] = {}
    for name in ("card_payments", "bacs_payments", "cash_payments"):
        if not getattr(breakdown, name):
            updates[name] = [models.PaymentEntry()]
    if not updates:
        return breakdown
    return breakdown.model_copy(update=updates)


def _with_addon_totals(group: models.AddonGroup, totals: tuple[Decimal, ...]) -> models.AddonGroup:
    addon1_pd, addon2_pd, *dynamic_pd = totals
    return group.model_copy(
        update={
            "addon1": group.addon1.model_copy(update={"post_discount_cost": _as_float(addon1_pd)}),
            "addon2": group.addon2.model_copy(update={"post_discount_cost": _as_float(addon2_pd)}),
            "dynamic_addons": [
                addon.model_copy(update={"post_discount_cost": _as_float(value)})
                for addon, value in zip(group.dynamic_addons, dynamic_pd)
            ],
        }
    )


def build_line_items(invoice: models.InvoiceData, totals: InvoiceTotals) -> list[models.LineItem]:
    """Invoice lines for the priced components; empty optional lines are skipped."""

    pricing = invoice.pricing
    vehicle = invoice.vehicle
    vehicle_label = " ".join(
        part for part in (vehicle.make, vehicle.model, vehicle.derivative) if part
    ) or "Vehicle"
    if vehicle.registration:
        vehicle_label = f"{vehicle_label} ({vehicle.registration})"

    def _line(description: str, price: Any, discount: Any, total: Decimal) -> models.LineItem:
        return models.LineItem(
            description=description,
            unit_price=_as_float(to_money(price)),
            discount=_as_float(to_money(discount)),
            vat_rate=float(pricing.vat_rate) if invoice.sale_type == "Commercial" else 0,
            total=_as_float(total),
        )

    lines = [
        _line(vehicle_label, pricing.sale_price, pricing.discount_on_sale_price, totals.sale_price_post_discount)
    ]
    if not invoice.is_trade:
        if to_money(pricing.warranty_price) > 0:
            label = invoice.warranty.name or invoice.warranty.level or "Warranty"
            lines.append(
                _line(
                    f"Warranty: {label}",
                    pricing.warranty_price,
                    pricing.discount_on_warranty,
                    totals.warranty_price_post_discount,
                )
            )
        if to_money(pricing.enhanced_warranty_price) > 0:
            label = invoice.warranty.enhanced_name or invoice.warranty.enhanced_level or "Enhanced warranty"
            lines.append(
                _line(
                    f"Enhanced warranty: {label}",
                    pricing.enhanced_warranty_price,
                    pricing.discount_on_enhanced_warranty,
                    totals.enhanced_warranty_price_post_discount,
                )
            )
    if to_money(pricing.delivery_cost) > 0:
        lines.append(
            _line(
                "Delivery",
                pricing.delivery_cost,
                pricing.discount_on_delivery,
                totals.delivery_cost_post_discount,
            )
        )

    groups: list[tuple[str, models.AddonGroup, tuple[Decimal, ...]]] = []
    if invoice.is_finance:
        groups.append(("Finance add-on", invoice.addons.finance, totals.addons.finance))
    groups.append(("Add-on", invoice.addons.customer, totals.addons.customer))
    for prefix, group, values in groups:
        for addon, value in zip(group.all_addons(), values):
            if to_money(addon.cost) <= 0:
                continue
            lines.append(_line(f"{prefix}: {addon.name or 'Unnamed'}", addon.cost, addon.discount, value))
    return lines


def apply_calculations(invoice: models.InvoiceData) -> models.InvoiceData:
    """Return a copy of ``invoice`` with every derived field refreshed in one update."""

    totals = calculate_invoice(invoice)
    pricing = invoice.pricing.model_copy(
        update={
            "sale_price_post_discount": _as_float(totals.sale_price_post_discount),
            "warranty_price_post_discount": _as_float(totals.warranty_price_post_discount),
            "enhanced_warranty_price_post_discount": _as_float(
                totals.enhanced_warranty_price_post_discount
            ),
            "delivery_cost_post_discount": _as_float(totals.delivery_cost_post_discount),
            "compulsory_sale_deposit_finance": _as_float(totals.compulsory_sale_deposit_finance),
            "total_finance_deposit_paid": _as_float(totals.total_finance_deposit_paid),
            "outstanding_deposit_finance": _as_float(totals.outstanding_deposit_finance),
            "overpayments_finance": _as_float(totals.overpayments_finance),
            "outstanding_deposit_customer": _as_float(totals.outstanding_deposit_customer),
            "overpayments_customer": _as_float(totals.overpayments_customer),
            "vat_commercial": _as_float(totals.vat_commercial),
            "remaining_balance": _as_float(totals.remaining_balance),
            "remaining_balance_inc_vat": _as_float(totals.remaining_balance_inc_vat),
            "trade_balance_due": _as_float(totals.trade_balance_due),
            "balance_to_customer": _as_float(totals.balance_to_customer),
        }
    )
    breakdown = ensure_payment_rows(invoice.payment.breakdown).model_copy(
        update={
            "card_amount": _as_float(totals.card_total),
            "bacs_amount": _as_float(totals.bacs_total),
            "cash_amount": _as_float(totals.cash_total),
            "part_ex_amount": _as_float(totals.part_exchange_amount_paid),
            "deposit_amount": _as_float(to_money(invoice.pricing.amount_paid_deposit_customer)),
            "finance_amount": _as_float(totals.balance_to_finance),
        }
    )
    payment = invoice.payment.model_copy(
        update={
            "breakdown": breakdown,
            "part_exchange": invoice.payment.part_exchange.model_copy(
                update={"amount_paid": _as_float(totals.part_exchange_amount_paid)}
            ),
            "balance_to_finance": _as_float(totals.balance_to_finance),
            "customer_balance_due": _as_float(totals.customer_balance_due),
            "total_payments": _as_float(totals.total_payments),
            "total_balance": _as_float(totals.total_amount),
            "outstanding_balance": _as_float(totals.remaining_balance_inc_vat),
        }
    )
    addons = invoice.addons.model_copy(
        update={
            "finance": _with_addon_totals(invoice.addons.finance, totals.addons.finance),
            "customer": _with_addon_totals(invoice.addons.customer, totals.addons.customer),
        }
    )
    sale = invoice.sale.model_copy(
        update={
            "month_of_sale": totals.month_of_sale,
            "quarter_of_sale": totals.quarter_of_sale,
            "days_in_stock": totals.days_in_stock,
        }
    )
    return invoice.model_copy(
        update={
            "pricing": pricing,
            "payment": payment,
            "addons": addons,
            "sale": sale,
            "items": build_line_items(invoice, totals),
            "subtotal": _as_float(totals.subtotal),
            "vat_amount": _as_float(totals.vat_amount),
            "total_amount": _as_float(totals.total_amount),
        }
    )


def _flatten(value: Any, prefix: str = "") -> dict[str, Any]:
    flat: dict[str, Any] = {}
    if isinstance(value, dict):
        for key, child in value.items():
            flat.update(_flatten(child, f"{prefix}.{key}" if prefix else str(key)))
    elif isinstance(value, list):
        for index, child in enumerate(value):
            flat.update(_flatten(child, f"{prefix}[{index}]"))
    else:
        flat[prefix] = value
    return flat


def changed_fields(before: models.InvoiceData, after: models.InvoiceData) -> list[str]:
    """Dotted camelCase paths whose values differ between two invoices."""

    old = _flatten(before.model_dump(by_alias=True, mode="json"))
    new = _flatten(after.model_dump(by_alias=True, mode="json"))
    return sorted(key for key in old.keys() | new.keys() if old.get(key) != new.get(key))


def validate_calculations(invoice: models.InvoiceData, totals: InvoiceTotals | None = None) -> list[str]:
    """Return human readable warnings for suspicious figures."""

    totals = totals or calculate_invoice(invoice)
    pricing = invoice.pricing
    warnings: list[str] = []
    checks = (
        ("Sale price", pricing.sale_price, pricing.discount_on_sale_price),
        ("Warranty", pricing.warranty_price, pricing.discount_on_warranty),
        ("Enhanced warranty", pricing.enhanced_warranty_price, pricing.discount_on_enhanced_warranty),
        ("Delivery", pricing.delivery_cost, pricing.discount_on_delivery),
    )
    for label, price, discount in checks:
        if to_money(price) < 0:
            warnings.append(f"{label} cannot be negative")
        if to_money(discount) > to_money(price):
            warnings.append(f"{label} discount exceeds its price")
    if invoice.is_finance and not (invoice.finance_company.name or invoice.finance_company.company_name):
        warnings.append("Finance company invoice has no finance company selected")
    deposits = to_money(pricing.amount_paid_deposit_customer)
    if invoice.is_finance:
        deposits += totals.total_finance_deposit_paid
    if deposits > totals.subtotal:
        warnings.append("Deposits paid exceed the invoice subtotal")
    return warnings


def visible_pages(invoice: models.InvoiceData) -> list[str]:
    """Ordered page keys of the printable invoice."""

    pages = ["invoice", "trade_disclaimer" if invoice.is_trade else "checklist"]
    if not invoice.is_trade:
        pages.append("terms")
    if invoice.invoice_type == models.RETAIL_INVOICE_TYPE and invoice.warranty.in_house:
        pages.extend(["in_house_warranty", "in_house_warranty_policy"])
    elif not invoice.warranty.in_house and invoice.warranty.level not in ("", models.NO_WARRANTY_LEVEL):
        pages.append("external_warranty")
    return pages


def format_currency(value: Any) -> str:
    amount = to_money(value)
    sign = "-" if amount < 0 else ""
    return f"{sign}£{abs(amount):,.2f}"


def format_date(value: Any) -> str:
    parsed = parse_date(value)
    if parsed is None:
        return ""
    return parsed.strftime("%d/%m/%Y")


def pdf_filename(invoice: models.InvoiceData, generated_on: date | None = None) -> str:
    day = generated_on or date.today()
    registration = "".join(invoice.vehicle.registration.split()) or "vehicle"
    number = invoice.invoice_number or "invoice"
    return f"{number}_{registration}_{day.isoformat()}.pdf"


__all__ = [
    "AddonTotals",
    "DateFields",
    "InvoiceTotals",
    "apply_calculations",
    "build_line_items",
    "calculate_date_fields",
    "calculate_invoice",
    "changed_fields",
    "days_in_stock",
    "ensure_payment_rows",
    "format_currency",
    "format_date",
    "parse_date",
    "pdf_filename",
    "post_discount",
    "to_money",
    "validate_calculations",
    "visible_pages",
]
