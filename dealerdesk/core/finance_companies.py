from __future__ import annotations

from dealerdesk.core import models

CUSTOM_FINANCE_COMPANY_ID = "custom"

# id, name, full name, address lines
_PREDEFINED: tuple[tuple[str, str, str, tuple[str, ...]], ...] = (
    (
        "jigsaw-finance",
        "Jigsaw Finance",
        "Jigsaw Finance",
        ("Genesis Centre, Innovation Way", "Stoke on Trent. ST6 4BF", "01782432262", "payouts@jigsawfinance.com"),
    ),
    (
        "car-loans-365",
        "Car Loans 365",
        "HT Finance Limited (T/A Car Loans 365)",
        ("Statham House, Talbot Road", "Old Trafford", "M32 0FP"),
    ),
    (
        "close-brothers-finance",
        "Close Brothers Finance",
        "Close Brothers Finance",
        ("10 Crown Place", "London", "EC2A 4FT"),
    ),
    (
        "zuto-finance",
        "ZUTO Finance",
        "ZUTO Finance",
        ("Winterton House, Winterton Way", "Macclesfield, Cheshire. SK11 0LP", "01625 61 99 44"),
    ),
    (
        "car-finance-247",
        "Car Finance 24/7",
        "Car Finance 24/7",
        ("Universal Square,", "Block 5 Devonshire Street", "Manchester. M12 6JH"),
    ),
    (
        "oodle-car-finance",
        "Oodle Car Finance",
        "Oodle Car Finance",
        ("Floor 19, City Tower", "New York Street, Manchester", "M1 4BT"),
    ),
    (
        "blue-motor-finance",
        "Blue Motor Finance",
        "Blue Motor Finance",
        ("Darenth House, 84 Main Rd", "Sundridge, Sevenoaks", "TN14 6ER"),
    ),
    (
        "car-loans-uk",
        "Car Loans UK",
        "BMG FG (UK) LTD",
        ("Wellington Road North, Stockport, Cheshire, SK4 1LW",),
    ),
    (
        "carmoney",
        "CarMoney",
        "CarMoney",
        ("Pioneer House, 2 Renshaw Pl", "Eurocentral, Motherwell", "ML1 4UF"),
    ),
    (
        "creditplus",
        "CreditPlus",
        "CreditPlus",
        ("Bourne House, 23 Hinton Road", "Bournemouth", "BH1 2EF"),
    ),
    (
        "choosemycar",
        "ChooseMyCar",
        "ChooseMyCar",
        ("Alexandra Court, Carrs Road", "Cheadle", "SK8 2JY"),
    ),
)


def _build_company(company_id: str, name: str, full_name: str, lines: tuple[str, ...]) -> models.FinanceCompany:
    header = [name] if full_name == name else [name, full_name]
    return models.FinanceCompany(
        id=company_id,
        name=name,
        full_name=full_name,
        address="\n".join(lines),
        invoice_to_text="\n".join([*header, *lines]),
    )


PREDEFINED_FINANCE_COMPANIES: tuple[models.FinanceCompany, ...] = tuple(
    _build_company(*entry) for entry in _PREDEFINED
)


def list_finance_companies() -> list[models.FinanceCompany]:
    return list(PREDEFINED_FINANCE_COMPANIES)


def get_finance_company(company_id: str) -> models.FinanceCompany | None:
    for company in PREDEFINED_FINANCE_COMPANIES:
        if company.id == company_id:
            return company
    return None


def finance_company_section(company_id: str) -> models.FinanceCompanyInfo:
    """Invoice section for a predefined company."""

    company = get_finance_company(company_id)
    if company is None:
        raise ValueError(f"Unknown finance company: {company_id}")
    lines = company.address.split("\n")
    return models.FinanceCompanyInfo(
        company_id=company.id,
        name=company.name,
        company_name=company.full_name,
        address=models.FinanceCompanyAddress(
            first_line=lines[0],
            county_post_code_contact=", ".join(lines[1:]),
        ),
    )


def invoice_to_text(registration: str, finance: models.FinanceCompanyInfo) -> str:
    """Text of the "INVOICE TO" block of a finance company invoice."""

    company = get_finance_company(finance.company_id) if finance.company_id else None
    if company is not None and finance.company_id != CUSTOM_FINANCE_COMPANY_ID:
        body = company.invoice_to_text
    else:
        name = finance.company_name or finance.name
        address = "\n".join(
            line for line in (finance.address.first_line, finance.address.county_post_code_contact) if line
        )
        body = f"{name}\n{address}" if address else name
    return f"INVOICE TO:\n{registration} - {body}"
