"""Printable content of an invoice, shared by the HTML and ReportLab renderers."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from dealerdesk.core import finance_companies, models
from dealerdesk.services import invoice_calculations as calc

PAGE_TITLES = {
    "invoice": "Invoice",
    "checklist": "Vehicle Checklist",
    "trade_disclaimer": "Trade Sale Disclaimer",
    "terms": "Terms and Conditions",
    "in_house_warranty": "In-House Warranty",
    "in_house_warranty_policy": "In-House Warranty Policy",
    "external_warranty": "External Warranty",
}

DEFAULT_TRADE_TERMS = (
    "This vehicle is sold as a trade sale between motor traders. It is sold as seen, "
    "without warranty, and is not subject to consumer protection legislation.",
    "The buyer confirms they are a motor trader and have had the opportunity to inspect the vehicle.",
)
DEFAULT_BASIC_TERMS = (
    "Title to the vehicle passes to the buyer only once payment has been received in full.",
    "The vehicle has been inspected and test driven, and its condition is reflected in the price.",
    "Your statutory rights under the Consumer Rights Act 2015 are not affected.",
)
DEFAULT_IN_HOUSE_TERMS = (
    "The in-house warranty covers mechanical and electrical failure of the parts listed in the policy.",
    "Claims must be reported to the dealer before any repair work is carried out.",
    "Wear and tear items, consumables and accident damage are excluded.",
)
DEFAULT_THIRD_PARTY_TERMS = (
    "The warranty is provided by a third party. Claims are handled directly by the warranty provider "
    "under the terms of the policy supplied with the vehicle.",
)
DEFAULT_CHECKLIST_TERMS = (
    "The customer confirms the checklist above reflects the vehicle as handed over.",
)


@dataclass
class Table:
    headers: list[str]
    rows: list[list[str]]


@dataclass
class Section:
    title: str
    rows: list[tuple[str, str]] = field(default_factory=list)
    paragraphs: list[str] = field(default_factory=list)
    table: Table | None = None


@dataclass
class InvoicePage:
    key: str
    title: str
    sections: list[Section] = field(default_factory=list)


@dataclass
class InvoicePlan:
    invoice: models.InvoiceData
    totals: calc.InvoiceTotals
    pages: list[InvoicePage]
    filename: str

    def __iter__(self):
        return iter(self.pages)


def _paragraphs(text: str, defaults: tuple[str, ...]) -> list[str]:
    if text and text.strip():
        return [chunk.strip() for chunk in text.split("\n") if chunk.strip()]
    return list(defaults)


def _company_lines(company: models.CompanyInfo) -> list[str]:
    address = company.address
    lines = [company.name]
    lines.extend(part for part in (address.street, address.city, address.county, address.post_code) if part)
    if company.contact.phone:
        lines.append(f"Tel: {company.contact.phone}")
    if company.contact.email:
        lines.append(company.contact.email)
    if company.vat_number:
        lines.append(f"VAT No: {company.vat_number}")
    if company.registration_number:
        lines.append(f"Company No: {company.registration_number}")
    return [line for line in lines if line]


def invoice_to_lines(invoice: models.InvoiceData) -> list[str]:
    if invoice.is_finance:
        text = finance_companies.invoice_to_text(invoice.vehicle.registration, invoice.finance_company)
        return [line for line in text.split("\n")[1:] if line]
    customer = invoice.customer
    address = customer.address
    lines = [customer.full_name]
    lines.extend(
        part
        for part in (address.first_line, address.second_line, address.city, address.county, address.post_code)
        if part
    )
    lines.extend(part for part in (customer.contact.phone, customer.contact.email) if part)
    return [line for line in lines if line] or ["-"]


def _header_section(invoice: models.InvoiceData) -> Section:
    return Section(
        title=invoice.invoice_type,
        rows=[
            ("Invoice number", invoice.invoice_number or "-"),
            ("Invoice date", calc.format_date(invoice.invoice_date) or "-"),
            ("Sale type", invoice.sale_type),
            ("Invoice to", invoice.invoice_to),
        ],
    )


def _vehicle_section(invoice: models.InvoiceData) -> Section:
    vehicle = invoice.vehicle
    rows = [
        ("Registration", vehicle.registration),
        ("Make / Model", " ".join(part for part in (vehicle.make, vehicle.model) if part)),
        ("Derivative", vehicle.derivative),
        ("Mileage", vehicle.mileage),
        ("VIN", vehicle.vin),
        ("Engine number", vehicle.engine_number),
        ("Engine capacity", vehicle.engine_capacity),
        ("First registered", calc.format_date(vehicle.first_reg_date)),
        ("Colour", vehicle.colour),
        ("Fuel type", vehicle.fuel_type),
    ]
    return Section(title="Vehicle", rows=[(label, value) for label, value in rows if value])


def _items_section(invoice: models.InvoiceData, totals: calc.InvoiceTotals) -> Section:
    lines = calc.build_line_items(invoice, totals)
    return Section(
        title="Items",
        table=Table(
            headers=["Description", "Price", "Discount", "Total"],
            rows=[
                [
                    line.description,
                    calc.format_currency(line.unit_price),
                    calc.format_currency(line.discount) if line.discount else "-",
                    calc.format_currency(line.total),
                ]
                for line in lines
            ],
        ),
    )


def _payment_rows(invoice: models.InvoiceData, totals: calc.InvoiceTotals) -> list[tuple[str, str]]:
    money = calc.format_currency
    pricing = invoice.pricing
    rows: list[tuple[str, str]] = [("Subtotal", money(totals.subtotal))]
    if invoice.sale_type == "Commercial":
        rows.append((f"VAT ({pricing.vat_rate:g}%)", money(totals.vat_commercial)))
    rows.append(("Total", money(totals.total_amount)))

    if invoice.is_finance:
        rows.extend(
            [
                ("Compulsory sale deposit (finance)", money(totals.compulsory_sale_deposit_finance)),
                ("Deposit paid (finance)", money(totals.total_finance_deposit_paid)),
                ("Outstanding deposit (finance)", money(totals.outstanding_deposit_finance)),
            ]
        )
        if totals.overpayments_finance > 0:
            rows.append(("Overpayments (finance)", money(totals.overpayments_finance)))
    if pricing.compulsory_sale_deposit_customer or pricing.amount_paid_deposit_customer:
        rows.extend(
            [
                ("Compulsory sale deposit (customer)", money(pricing.compulsory_sale_deposit_customer)),
                ("Deposit paid (customer)", money(pricing.amount_paid_deposit_customer)),
                ("Outstanding deposit (customer)", money(totals.outstanding_deposit_customer)),
            ]
        )
        if totals.overpayments_customer > 0:
            rows.append(("Overpayments (customer)", money(totals.overpayments_customer)))

    for label, amount in (("Card", totals.card_total), ("BACS", totals.bacs_total), ("Cash", totals.cash_total)):
        if amount > 0:
            rows.append((f"{label} payments", money(amount)))

    part_exchange = invoice.payment.part_exchange
    if part_exchange.included:
        label = part_exchange.vehicle_registration or "Part exchange"
        rows.extend(
            [
                (f"Part exchange value ({label})", money(part_exchange.value_of_vehicle)),
                ("Settlement", money(part_exchange.settlement_amount)),
                ("Part exchange credit", money(totals.part_exchange_amount_paid)),
            ]
        )

    rows.append(("Total payments", money(totals.total_payments)))
    if invoice.is_finance:
        rows.append(("Balance to finance", money(totals.balance_to_finance)))
    if invoice.is_trade:
        rows.append(("Trade balance due", money(totals.trade_balance_due)))
    rows.append(("Customer balance due", money(totals.customer_balance_due)))
    rows.append(("Remaining balance", money(totals.remaining_balance_inc_vat)))
    if totals.balance_to_customer > 0:
        rows.append(("Balance to customer", money(totals.balance_to_customer)))
    return rows


def _bank_section(company: models.CompanyInfo) -> Section | None:
    payment = company.payment
    rows = [
        ("Bank", payment.bank_name),
        ("Account name", payment.bank_account_name),
        ("Sort code", payment.bank_sort_code),
        ("Account number", payment.bank_account_number),
    ]
    rows = [(label, value) for label, value in rows if value]
    if not rows:
        return None
    return Section(title="Payment details", rows=rows)


def _invoice_page(invoice: models.InvoiceData, totals: calc.InvoiceTotals) -> InvoicePage:
    sections = [
        Section(title="From", paragraphs=_company_lines(invoice.company_info) or ["-"]),
        Section(title="Invoice to", paragraphs=invoice_to_lines(invoice)),
        _header_section(invoice),
        _vehicle_section(invoice),
        _items_section(invoice, totals),
        Section(title="Payment summary", rows=_payment_rows(invoice, totals)),
    ]
    bank = _bank_section(invoice.company_info)
    if bank is not None:
        sections.append(bank)
    if invoice.notes:
        sections.append(Section(title="Notes", paragraphs=_paragraphs(invoice.notes, ())))
    return InvoicePage(key="invoice", title=PAGE_TITLES["invoice"], sections=sections)


def _signature_section(invoice: models.InvoiceData) -> Section:
    signature = invoice.signature
    return Section(
        title="Signature",
        rows=[
            ("Customer name", signature.customer_name or invoice.customer.full_name or "-"),
            ("Terms accepted", "Yes" if signature.customer_accept_terms else "No"),
            ("Signed on", calc.format_date(signature.date_of_signature) or "-"),
        ],
    )


def _checklist_page(invoice: models.InvoiceData) -> InvoicePage:
    checklist = invoice.checklist
    rows = [
        ("Mileage", checklist.mileage),
        ("Number of keys", checklist.number_of_keys),
        ("User manual", checklist.user_manual),
        ("Service history record", checklist.service_history_record),
        ("Wheel locking nut", checklist.wheel_locking_nut),
        ("Cambelt / chain confirmation", checklist.cambelt_chain_confirmation),
        ("Inspection and test drive", checklist.vehicle_inspection_test_drive),
        ("Dealer pre-sale check", checklist.dealer_pre_sale_check),
        ("Fuel type", checklist.fuel_type),
        ("Service history", checklist.service_history),
    ]
    return InvoicePage(
        key="checklist",
        title=PAGE_TITLES["checklist"],
        sections=[
            Section(title="Checklist", rows=[(label, value or "-") for label, value in rows]),
            Section(
                title="Declaration",
                paragraphs=_paragraphs(invoice.terms.checklist_terms, DEFAULT_CHECKLIST_TERMS),
            ),
            _signature_section(invoice),
        ],
    )


def _trade_page(invoice: models.InvoiceData) -> InvoicePage:
    return InvoicePage(
        key="trade_disclaimer",
        title=PAGE_TITLES["trade_disclaimer"],
        sections=[
            Section(title="Disclaimer", paragraphs=_paragraphs(invoice.terms.trade_terms, DEFAULT_TRADE_TERMS)),
            _signature_section(invoice),
        ],
    )


def _warranty_rows(warranty: models.WarrantyInfo) -> list[tuple[str, str]]:
    rows = [("Level", warranty.level), ("Name", warranty.name), ("Details", warranty.details)]
    if warranty.enhanced:
        rows.extend(
            [
                ("Enhanced level", warranty.enhanced_level),
                ("Enhanced name", warranty.enhanced_name),
                ("Enhanced details", warranty.enhanced_details),
            ]
        )
    return [(label, value) for label, value in rows if value]


def _page(key: str, invoice: models.InvoiceData) -> InvoicePage:
    if key == "invoice":
        raise ValueError("The invoice page needs totals")
    if key == "checklist":
        return _checklist_page(invoice)
    if key == "trade_disclaimer":
        return _trade_page(invoice)
    terms = invoice.terms
    if key == "terms":
        sections = [Section(title="Standard terms", paragraphs=_paragraphs(terms.basic_terms, DEFAULT_BASIC_TERMS))]
    elif key == "in_house_warranty":
        sections = [Section(title="Warranty cover", rows=_warranty_rows(invoice.warranty) or [("Level", "-")])]
    elif key == "in_house_warranty_policy":
        sections = [
            Section(title="Policy", paragraphs=_paragraphs(terms.in_house_warranty_terms, DEFAULT_IN_HOUSE_TERMS))
        ]
    elif key == "external_warranty":
        sections = [
            Section(title="Warranty cover", rows=_warranty_rows(invoice.warranty)),
            Section(title="Provider terms", paragraphs=_paragraphs(terms.third_party_terms, DEFAULT_THIRD_PARTY_TERMS)),
        ]
    else:
        raise ValueError(f"Unknown invoice page: {key}")
    return InvoicePage(key=key, title=PAGE_TITLES[key], sections=sections)


def build_invoice_plan(invoice: models.InvoiceData, *, generated_on: date | None = None) -> InvoicePlan:
    totals = calc.calculate_invoice(invoice)
    pages = []
    for key in calc.visible_pages(invoice):
        pages.append(_invoice_page(invoice, totals) if key == "invoice" else _page(key, invoice))
    return InvoicePlan(
        invoice=invoice,
        totals=totals,
        pages=pages,
        filename=calc.pdf_filename(invoice, generated_on),
    )
