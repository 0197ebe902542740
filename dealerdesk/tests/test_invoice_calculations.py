from decimal import Decimal

import pytest

from dealerdesk.core import models
from dealerdesk.services import invoice_calculations as calc


def _finance_invoice() -> models.InvoiceData:
    return models.InvoiceData(
        invoice_number="INV-1",
        invoice_date="2024-05-15",
        sale_type="Retail",
        invoice_to="Finance Company",
        finance_company=models.FinanceCompanyInfo(company_id="zuto-finance", name="Zuto Finance"),
        pricing=models.Pricing(
            sale_price=10000,
            discount_on_sale_price=500,
            warranty_price=600,
            discount_on_warranty=100,
            enhanced_warranty_price=300,
            delivery_cost=150,
            discount_on_delivery=50,
            dealer_deposit_paid_customer=500,
            amount_paid_deposit_finance=700,
        ),
        addons=models.Addons(
            finance=models.AddonGroup(enabled=True, addon1=models.Addon(name="GAP", cost=400)),
            customer=models.AddonGroup(
                enabled=True, addon1=models.Addon(name="Paint protection", cost=200, discount=20)
            ),
        ),
        payment=models.PaymentInfo(
            breakdown=models.PaymentBreakdown(card_payments=[models.PaymentEntry(amount=1000, date="2024-05-10")])
        ),
    )


def test_post_discount_never_negative():
    assert calc.post_discount(100, 150) == Decimal("0")
    assert calc.post_discount(100, 25.5) == Decimal("74.50")
    assert calc.post_discount("10.005", None) == Decimal("10.01")


def test_finance_invoice_totals():
    totals = calc.calculate_invoice(_finance_invoice())

    assert totals.sale_price_post_discount == Decimal("9500.00")
    assert totals.warranty_price_post_discount == Decimal("500.00")
    assert totals.enhanced_warranty_price_post_discount == Decimal("300.00")
    assert totals.delivery_cost_post_discount == Decimal("100.00")
    assert totals.compulsory_sale_deposit_finance == Decimal("1080.00")
    assert totals.total_finance_deposit_paid == Decimal("1200.00")
    assert totals.outstanding_deposit_finance == Decimal("0")
    assert totals.overpayments_finance == Decimal("120.00")
    assert totals.direct_payments == Decimal("1000.00")
    assert totals.balance_to_finance == Decimal("8780.00")
    assert totals.subtotal == Decimal("10980.00")
    assert totals.total_payments == Decimal("1000.00")
    assert totals.remaining_balance == Decimal("9980.00")
    assert totals.customer_balance_due == Decimal("0")
    assert totals.vat_amount == Decimal("0")
    assert totals.total_amount == Decimal("10980.00")


def test_customer_invoice_with_part_exchange():
    invoice = models.InvoiceData(
        invoice_to="Customer",
        pricing=models.Pricing(
            sale_price=8000,
            compulsory_sale_deposit_customer=500,
            amount_paid_deposit_customer=250,
            amount_paid_deposit_finance=900,
        ),
        addons=models.Addons(finance=models.AddonGroup(addon1=models.Addon(name="GAP", cost=400))),
        payment=models.PaymentInfo(
            breakdown=models.PaymentBreakdown(
                bacs_payments=[models.PaymentEntry(amount=1500)],
                cash_payments=[models.PaymentEntry(amount=500)],
            ),
            part_exchange=models.PartExchange(included=True, value_of_vehicle=3000, settlement_amount=1000),
        ),
    )

    totals = calc.calculate_invoice(invoice)

    assert totals.part_exchange_amount_paid == Decimal("2000.00")
    assert totals.direct_payments == Decimal("4000.00")
    assert totals.outstanding_deposit_customer == Decimal("250.00")
    assert totals.overpayments_customer == Decimal("0")
    assert totals.subtotal == Decimal("8000.00")
    assert totals.total_payments == Decimal("4250.00")
    assert totals.remaining_balance == Decimal("3750.00")
    assert totals.customer_balance_due == Decimal("3750.00")
    assert totals.balance_to_finance == Decimal("0")
    assert totals.compulsory_sale_deposit_finance == Decimal("0")
    assert totals.total_finance_deposit_paid == Decimal("0")


def test_part_exchange_ignored_when_not_included():
    invoice = models.InvoiceData(
        pricing=models.Pricing(sale_price=5000),
        payment=models.PaymentInfo(
            part_exchange=models.PartExchange(included=False, value_of_vehicle=3000, settlement_amount=500)
        ),
    )

    totals = calc.calculate_invoice(invoice)

    assert totals.part_exchange_amount_paid == Decimal("0")
    assert totals.remaining_balance == Decimal("5000.00")


def test_trade_sale_drops_warranty_and_reports_trade_balance():
    invoice = models.InvoiceData(
        sale_type="Trade",
        pricing=models.Pricing(sale_price=5000, warranty_price=600, enhanced_warranty_price=200),
        payment=models.PaymentInfo(
            breakdown=models.PaymentBreakdown(cash_payments=[models.PaymentEntry(amount=1000)])
        ),
    )

    totals = calc.calculate_invoice(invoice)

    assert invoice.invoice_type == models.TRADE_INVOICE_TYPE
    assert totals.warranty_price_post_discount == Decimal("0")
    assert totals.enhanced_warranty_price_post_discount == Decimal("0")
    assert totals.subtotal == Decimal("5000.00")
    assert totals.trade_balance_due == Decimal("4000.00")


def test_commercial_sale_adds_vat_on_remaining_balance():
    invoice = models.InvoiceData(
        sale_type="Commercial",
        pricing=models.Pricing(sale_price=10000, vat_rate=20),
    )

    totals = calc.calculate_invoice(invoice)

    assert invoice.invoice_type == models.RETAIL_INVOICE_TYPE
    assert totals.vat_commercial == Decimal("2000.00")
    assert totals.remaining_balance_inc_vat == Decimal("12000.00")
    assert totals.total_amount == Decimal("12000.00")


def test_retail_sale_ignores_vat_rate():
    invoice = models.InvoiceData(pricing=models.Pricing(sale_price=10000, vat_rate=20))

    assert calc.calculate_invoice(invoice).vat_amount == Decimal("0")


def test_overpayment_becomes_balance_to_customer():
    invoice = models.InvoiceData(
        pricing=models.Pricing(sale_price=1000),
        payment=models.PaymentInfo(
            breakdown=models.PaymentBreakdown(card_payments=[models.PaymentEntry(amount=1200)])
        ),
    )

    totals = calc.calculate_invoice(invoice)

    assert totals.remaining_balance == Decimal("0")
    assert totals.balance_to_customer == Decimal("200.00")


@pytest.mark.parametrize(
    ("sale_date", "invoice_date", "month", "quarter"),
    [
        ("2024-05-15", "", "May", 2),
        ("", "15/11/2024", "November", 4),
        ("01/01/2025", "2024-12-31", "January", 1),
    ],
)
def test_sale_date_fields(sale_date, invoice_date, month, quarter):
    invoice = models.InvoiceData(invoice_date=invoice_date, sale=models.SaleInfo(date=sale_date))

    totals = calc.calculate_invoice(invoice)

    assert totals.month_of_sale == month
    assert totals.quarter_of_sale == quarter


def test_days_in_stock():
    assert calc.days_in_stock("2024-05-01", "2024-05-15") == 14
    assert calc.days_in_stock("", "2024-05-15") == 0


def test_apply_calculations_refreshes_derived_fields():
    invoice = _finance_invoice().model_copy(
        update={"payment": models.PaymentInfo(breakdown=models.PaymentBreakdown(card_payments=[]))}
    )

    calculated = calc.apply_calculations(invoice)

    assert calculated.pricing.sale_price_post_discount == 9500
    assert calculated.pricing.compulsory_sale_deposit_finance == 1080
    assert calculated.addons.customer.addon1.post_discount_cost == 180
    assert calculated.addons.finance.addon1.post_discount_cost == 400
    assert calculated.payment.breakdown.card_payments == [models.PaymentEntry()]
    assert calculated.payment.balance_to_finance == 9780
    assert calculated.sale.month_of_sale == "May"
    assert calculated.subtotal == 10980
    descriptions = [item.description for item in calculated.items]
    assert descriptions[0] == "Vehicle"
    assert "Delivery" in descriptions
    assert "Finance add-on: GAP" in descriptions
    assert "Add-on: Paint protection" in descriptions
    # the input is left untouched
    assert invoice.pricing.sale_price_post_discount == 0


def test_changed_fields_reports_camel_case_paths():
    invoice = _finance_invoice()

    changed = calc.changed_fields(invoice, calc.apply_calculations(invoice))

    assert "pricing.salePricePostDiscount" in changed
    assert "payment.balanceToFinance" in changed
    assert "pricing.salePrice" not in changed


def test_validation_warnings():
    invoice = models.InvoiceData(
        invoice_to="Finance Company",
        pricing=models.Pricing(sale_price=1000, warranty_price=100, discount_on_warranty=150),
    )

    warnings = calc.validate_calculations(invoice)

    assert "Warranty discount exceeds its price" in warnings
    assert "Finance company invoice has no finance company selected" in warnings
    assert calc.validate_calculations(_finance_invoice()) == []


@pytest.mark.parametrize(
    ("sale_type", "warranty", "expected"),
    [
        ("Retail", models.WarrantyInfo(), ["invoice", "checklist", "terms"]),
        ("Trade", models.WarrantyInfo(), ["invoice", "trade_disclaimer"]),
        (
            "Retail",
            models.WarrantyInfo(level="12 Months", in_house=True, type="in_house"),
            ["invoice", "checklist", "terms", "in_house_warranty", "in_house_warranty_policy"],
        ),
        (
            "Commercial",
            models.WarrantyInfo(level="6 Months", name="Warrantywise", type="third_party"),
            ["invoice", "checklist", "terms", "external_warranty"],
        ),
    ],
)
def test_visible_pages(sale_type, warranty, expected):
    invoice = models.InvoiceData(sale_type=sale_type, warranty=warranty)

    assert calc.visible_pages(invoice) == expected


def test_formatting_helpers():
    invoice = models.InvoiceData(invoice_number="INV-AB12CDE", vehicle=models.VehicleInfo(registration="AB12 CDE"))

    assert calc.format_currency(1234.5) == "£1,234.50"
    assert calc.format_currency(-20) == "-£20.00"
    assert calc.format_date("2024-03-01") == "01/03/2024"
    assert calc.format_date("") == ""
    assert calc.pdf_filename(invoice, generated_on=calc.parse_date("2024-06-30")) == "INV-AB12CDE_AB12CDE_2024-06-30.pdf"
