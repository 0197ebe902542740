import pytest

from dealerdesk.core import finance_companies, models


def test_predefined_companies():
    companies = finance_companies.list_finance_companies()
    ids = [company.id for company in companies]

    assert len(companies) == 11
    assert "jigsaw-finance" in ids
    assert "close-brothers-finance" in ids
    assert len(set(ids)) == len(ids)
    assert all(company.address for company in companies)


def test_get_finance_company():
    company = finance_companies.get_finance_company("car-loans-365")

    assert company is not None
    assert company.full_name == "HT Finance Limited (T/A Car Loans 365)"
    assert finance_companies.get_finance_company("nope") is None


def test_finance_company_section():
    section = finance_companies.finance_company_section("close-brothers-finance")

    assert section.company_id == "close-brothers-finance"
    assert section.name == "Close Brothers Finance"
    assert section.address.first_line == "10 Crown Place"
    assert section.address.county_post_code_contact == "London, EC2A 4FT"

    with pytest.raises(ValueError):
        finance_companies.finance_company_section("unknown")


def test_invoice_to_text_for_predefined_company():
    section = finance_companies.finance_company_section("car-loans-365")

    text = finance_companies.invoice_to_text("AB12CDE", section)

    assert text.startswith("INVOICE TO:\nAB12CDE - Car Loans 365\nHT Finance Limited (T/A Car Loans 365)\n")
    assert text.endswith("M32 0FP")


def test_invoice_to_text_for_custom_company():
    finance = models.FinanceCompanyInfo(
        company_id=finance_companies.CUSTOM_FINANCE_COMPANY_ID,
        name="Local Credit",
        company_name="Local Credit Ltd",
        address=models.FinanceCompanyAddress(first_line="1 High Street", county_post_code_contact="Leeds, LS1 1AA"),
    )

    text = finance_companies.invoice_to_text("XY99ZZZ", finance)

    assert text == "INVOICE TO:\nXY99ZZZ - Local Credit Ltd\n1 High Street\nLeeds, LS1 1AA"
