"""Pydantic models for the API."""
from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

SaleType = Literal["Retail", "Trade", "Commercial"]
InvoiceTo = Literal["Finance Company", "Customer"]

RETAIL_INVOICE_TYPE = "Retail (Customer) Invoice"
TRADE_INVOICE_TYPE = "Trade Invoice"
NO_WARRANTY_LEVEL = "None Selected"


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class UserBase(BaseModel):
    username: str = Field(..., min_length=3, max_length=64)
    role: str = Field(..., pattern=r"^(admin|user)$")


class UserCreate(UserBase):
    password: str = Field(..., min_length=8, max_length=128)


class User(UserBase):
    id: int
    is_active: bool = True


class LoginRequest(BaseModel):
    username: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class CamelModel(BaseModel):
    """Base for payloads exchanged in camelCase with the browser client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Dealer(CamelModel):
    id: int
    owner_username: str
    company_name: str
    address_street: Optional[str] = None
    address_city: Optional[str] = None
    address_county: Optional[str] = None
    address_post_code: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    vat_number: Optional[str] = None
    registration_number: Optional[str] = None
    bank_name: Optional[str] = None
    bank_sort_code: Optional[str] = None
    bank_account_number: Optional[str] = None
    logo_url: Optional[str] = None


class DealerUpdate(CamelModel):
    company_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    address_street: Optional[str] = None
    address_city: Optional[str] = None
    address_county: Optional[str] = None
    address_post_code: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    vat_number: Optional[str] = None
    registration_number: Optional[str] = None
    bank_name: Optional[str] = None
    bank_sort_code: Optional[str] = None
    bank_account_number: Optional[str] = None
    logo_url: Optional[str] = None


# --- Uploads -----------------------------------------------------------------


class UploadResponse(CamelModel):
    success: bool
    message: str
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None


class VehicleDocument(CamelModel):
    id: int
    registration: str
    stock_id: Optional[int] = None
    document_name: str
    document_type: str
    description: Optional[str] = None
    file_name: str
    url: str
    mime_type: Optional[str] = None
    file_size: int = 0
    expiry_date: Optional[date] = None
    document_date: Optional[date] = None
    uploaded_by: Optional[str] = None
    created_at: Optional[datetime] = None


class DocumentUploadResponse(CamelModel):
    success: bool
    message: str
    documents: list[VehicleDocument] = Field(default_factory=list)
    count: int = 0
    errors: Optional[list[str]] = None


# --- Stock -------------------------------------------------------------------

STOCK_STATUSES = ("in_stock", "reserved", "sold", "returned")


class StockImage(CamelModel):
    id: int
    stock_id: int
    file_name: str
    url: str
    mime_type: Optional[str] = None
    file_size: int = 0
    position: int = 0


class StockVehicleBase(CamelModel):
    registration: str = Field(..., min_length=2, max_length=16)
    make: Optional[str] = None
    model: Optional[str] = None
    derivative: Optional[str] = None
    vin: Optional[str] = None
    engine_number: Optional[str] = None
    engine_capacity: Optional[str] = None
    colour: Optional[str] = None
    fuel_type: Optional[str] = None
    mileage: Optional[int] = Field(default=None, ge=0)
    first_reg_date: Optional[date] = None
    purchase_date: Optional[date] = None
    purchase_price: float = Field(default=0, ge=0)
    asking_price: float = Field(default=0, ge=0)
    status: str = "in_stock"
    notes: Optional[str] = None

    @field_validator("registration")
    @classmethod
    def _normalize_registration(cls, value: str) -> str:
        normalized = "".join(value.split()).upper()
        if not normalized:
            raise ValueError("Registration is required")
        return normalized

    @field_validator("status")
    @classmethod
    def _validate_status(cls, value: str) -> str:
        if value not in STOCK_STATUSES:
            raise ValueError(f"Unknown stock status: {value}")
        return value


class StockVehicleCreate(StockVehicleBase):
    pass


class StockVehicleUpdate(CamelModel):
    make: Optional[str] = None
    model: Optional[str] = None
    derivative: Optional[str] = None
    vin: Optional[str] = None
    engine_number: Optional[str] = None
    engine_capacity: Optional[str] = None
    colour: Optional[str] = None
    fuel_type: Optional[str] = None
    mileage: Optional[int] = Field(default=None, ge=0)
    first_reg_date: Optional[date] = None
    purchase_date: Optional[date] = None
    purchase_price: Optional[float] = Field(default=None, ge=0)
    asking_price: Optional[float] = Field(default=None, ge=0)
    status: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def _validate_status(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and value not in STOCK_STATUSES:
            raise ValueError(f"Unknown stock status: {value}")
        return value


class StockVehicle(StockVehicleBase):
    id: int
    dealer_id: int
    images: list[StockImage] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ImageOrderRequest(CamelModel):
    image_ids: list[int] = Field(..., min_length=1)


# --- Invoice -----------------------------------------------------------------


class CompanyAddress(CamelModel):
    street: str = ""
    city: str = ""
    county: str = ""
    post_code: str = ""


class CompanyContact(CamelModel):
    phone: str = ""
    email: str = ""
    website: str = ""


class CompanyPaymentDetails(CamelModel):
    bank_name: str = ""
    bank_sort_code: str = ""
    bank_account_number: str = ""
    bank_account_name: str = ""


class CompanyInfo(CamelModel):
    name: str = ""
    address: CompanyAddress = Field(default_factory=CompanyAddress)
    contact: CompanyContact = Field(default_factory=CompanyContact)
    payment: CompanyPaymentDetails = Field(default_factory=CompanyPaymentDetails)
    vat_number: str = ""
    registration_number: str = ""
    logo: Optional[str] = None


class CustomerAddress(CamelModel):
    first_line: str = ""
    second_line: str = ""
    city: str = ""
    county: str = ""
    post_code: str = ""
    country: str = "United Kingdom"


class CustomerContact(CamelModel):
    phone: str = ""
    email: str = ""


class CustomerFlags(CamelModel):
    vulnerability_marker: bool = False
    gdpr_consent: bool = False
    sales_marketing_consent: bool = False


class CustomerInfo(CamelModel):
    title: str = ""
    first_name: str = ""
    middle_name: str = ""
    last_name: str = ""
    address: CustomerAddress = Field(default_factory=CustomerAddress)
    contact: CustomerContact = Field(default_factory=CustomerContact)
    flags: CustomerFlags = Field(default_factory=CustomerFlags)

    @property
    def full_name(self) -> str:
        parts = [self.title, self.first_name, self.middle_name, self.last_name]
        return " ".join(part for part in parts if part)


class VehicleInfo(CamelModel):
    registration: str = ""
    make: str = ""
    model: str = ""
    derivative: str = ""
    mileage: str = ""
    engine_number: str = ""
    engine_capacity: str = ""
    vin: str = ""
    first_reg_date: str = ""
    colour: str = ""
    fuel_type: str = ""


class FinanceCompanyAddress(CamelModel):
    first_line: str = ""
    county_post_code_contact: str = ""


class FinanceCompanyInfo(CamelModel):
    company_id: str = ""
    name: str = ""
    company_name: str = ""
    address: FinanceCompanyAddress = Field(default_factory=FinanceCompanyAddress)


class Pricing(CamelModel):
    sale_price: float = 0
    discount_on_sale_price: float = 0
    sale_price_post_discount: float = 0
    voluntary_contribution: float = 0

    warranty_price: float = 0
    discount_on_warranty: float = 0
    warranty_price_post_discount: float = 0

    enhanced_warranty_price: float = 0
    discount_on_enhanced_warranty: float = 0
    enhanced_warranty_price_post_discount: float = 0

    delivery_cost: float = 0
    discount_on_delivery: float = 0
    delivery_cost_post_discount: float = 0

    compulsory_sale_deposit_finance: float = 0
    amount_paid_deposit_finance: float = 0
    dealer_deposit_paid_customer: float = 0
    dealer_deposit_payment_date_customer: str = ""
    total_finance_deposit_paid: float = 0
    outstanding_deposit_finance: float = 0
    overpayments_finance: float = 0

    compulsory_sale_deposit_customer: float = 0
    amount_paid_deposit_customer: float = 0
    outstanding_deposit_customer: float = 0
    overpayments_customer: float = 0

    vat_rate: float = Field(default=0, ge=0, le=100)
    vat_commercial: float = 0
    remaining_balance: float = 0
    remaining_balance_inc_vat: float = 0
    trade_balance_due: float = 0
    balance_to_customer: float = 0


class PaymentEntry(CamelModel):
    amount: float = 0
    date: str = ""


def _default_payment_rows() -> list[PaymentEntry]:
    return [PaymentEntry()]


class PaymentBreakdown(CamelModel):
    card_payments: list[PaymentEntry] = Field(default_factory=_default_payment_rows)
    bacs_payments: list[PaymentEntry] = Field(default_factory=_default_payment_rows)
    cash_payments: list[PaymentEntry] = Field(default_factory=_default_payment_rows)
    card_amount: float = 0
    bacs_amount: float = 0
    cash_amount: float = 0
    finance_amount: float = 0
    deposit_amount: float = 0
    part_ex_amount: float = 0


class PartExchange(CamelModel):
    included: bool = False
    vehicle_registration: str = ""
    make_and_model: str = ""
    mileage: str = ""
    value_of_vehicle: float = 0
    settlement_amount: float = 0
    amount_paid: float = 0


class PaymentInfo(CamelModel):
    method: str = ""
    breakdown: PaymentBreakdown = Field(default_factory=PaymentBreakdown)
    part_exchange: PartExchange = Field(default_factory=PartExchange)
    balance_to_finance: float = 0
    customer_balance_due: float = 0
    total_payments: float = 0
    total_balance: float = 0
    outstanding_balance: float = 0


class WarrantyInfo(CamelModel):
    level: str = NO_WARRANTY_LEVEL
    name: str = ""
    in_house: bool = False
    details: str = ""
    type: Literal["none", "in_house", "third_party"] = "none"
    enhanced: bool = False
    enhanced_level: str = ""
    enhanced_name: str = ""
    enhanced_details: str = ""


class Addon(CamelModel):
    name: str = ""
    cost: float = 0
    discount: float = 0
    post_discount_cost: float = 0


class AddonGroup(CamelModel):
    enabled: bool = False
    addon1: Addon = Field(default_factory=Addon)
    addon2: Addon = Field(default_factory=Addon)
    dynamic_addons: list[Addon] = Field(default_factory=list)

    def all_addons(self) -> list[Addon]:
        return [self.addon1, self.addon2, *self.dynamic_addons]


class Addons(CamelModel):
    finance: AddonGroup = Field(default_factory=AddonGroup)
    customer: AddonGroup = Field(default_factory=AddonGroup)


class DeliveryInfo(CamelModel):
    type: Literal["collection", "delivery"] = "collection"
    date: str = ""
    address: str = ""


class SaleInfo(CamelModel):
    date: str = ""
    month_of_sale: str = ""
    quarter_of_sale: int = 0
    days_in_stock: int = 0
    cost_of_purchase: float = 0
    date_of_purchase: str = ""


class Checklist(CamelModel):
    mileage: str = ""
    number_of_keys: str = ""
    user_manual: str = ""
    service_history_record: str = ""
    wheel_locking_nut: str = ""
    cambelt_chain_confirmation: str = ""
    vehicle_inspection_test_drive: str = ""
    dealer_pre_sale_check: str = ""
    fuel_type: str = ""
    service_history: str = ""
    completion_percentage: int = 0
    is_complete: bool = False


class Signature(CamelModel):
    customer_signature: str = ""
    customer_accept_terms: bool = False
    customer_name: str = ""
    date_of_signature: str = ""


class Terms(CamelModel):
    checklist_terms: str = ""
    basic_terms: str = ""
    in_house_warranty_terms: str = ""
    third_party_terms: str = ""
    trade_terms: str = ""


class InvoiceStatus(CamelModel):
    is_draft: bool = True
    is_confirmed: bool = False
    is_paid: bool = False


class LineItem(CamelModel):
    description: str
    quantity: int = 1
    unit_price: float = 0
    discount: float = 0
    vat_rate: float = 0
    total: float = 0


class InvoiceData(CamelModel):
    invoice_number: str = ""
    invoice_date: str = ""
    sale_type: SaleType = "Retail"
    invoice_type: str = RETAIL_INVOICE_TYPE
    invoice_to: InvoiceTo = "Customer"
    stock_id: Optional[int] = None

    company_info: CompanyInfo = Field(default_factory=CompanyInfo)
    customer: CustomerInfo = Field(default_factory=CustomerInfo)
    vehicle: VehicleInfo = Field(default_factory=VehicleInfo)
    finance_company: FinanceCompanyInfo = Field(default_factory=FinanceCompanyInfo)
    pricing: Pricing = Field(default_factory=Pricing)
    payment: PaymentInfo = Field(default_factory=PaymentInfo)
    warranty: WarrantyInfo = Field(default_factory=WarrantyInfo)
    addons: Addons = Field(default_factory=Addons)
    delivery: DeliveryInfo = Field(default_factory=DeliveryInfo)
    sale: SaleInfo = Field(default_factory=SaleInfo)
    checklist: Checklist = Field(default_factory=Checklist)
    signature: Signature = Field(default_factory=Signature)
    terms: Terms = Field(default_factory=Terms)
    status: InvoiceStatus = Field(default_factory=InvoiceStatus)
    notes: str = ""

    items: list[LineItem] = Field(default_factory=list)
    subtotal: float = 0
    vat_amount: float = 0
    total_amount: float = 0

    @model_validator(mode="after")
    def _sync_invoice_type(self) -> "InvoiceData":
        expected = TRADE_INVOICE_TYPE if self.sale_type == "Trade" else RETAIL_INVOICE_TYPE
        if self.invoice_type != expected:
            self.invoice_type = expected
        return self

    @property
    def is_finance(self) -> bool:
        return self.invoice_to == "Finance Company"

    @property
    def is_trade(self) -> bool:
        return self.sale_type == "Trade"


class InvoiceTotalsOut(CamelModel):
    subtotal: float
    vat_amount: float
    total_amount: float
    total_payments: float
    direct_payments: float
    remaining_balance: float
    balance_to_finance: float
    customer_balance_due: float
    trade_balance_due: float
    balance_to_customer: float


class InvoiceCalculationResponse(CamelModel):
    invoice: InvoiceData
    totals: InvoiceTotalsOut
    changed_fields: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class InvoiceSummary(CamelModel):
    id: int
    invoice_number: str
    registration: Optional[str] = None
    sale_type: str
    invoice_to: str
    total_amount: float
    stock_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StoredInvoice(InvoiceSummary):
    data: InvoiceData


class FinanceCompany(CamelModel):
    id: str
    name: str
    full_name: str
    address: str
    invoice_to_text: str


# --- Taxonomy ----------------------------------------------------------------


class TaxonomyOption(CamelModel):
    id: str
    name: str
    introduced: Optional[date] = None
    discontinued: Optional[date] = None


class FilteringStep(CamelModel):
    step: str
    value: Optional[str] = None
    count: int


class FilteredDerivatives(CamelModel):
    derivatives: list[TaxonomyOption]
    total_count: int
    filtering_steps: list[FilteringStep] = Field(default_factory=list)


WizardStep = Literal[
    "vehicle_type",
    "make",
    "model",
    "generation",
    "trim",
    "engine_size",
    "fuel_type",
    "derivative",
    "year",
    "plate",
    "mileage",
    "complete",
]


class WizardFrame(CamelModel):
    step: WizardStep
    options: list[TaxonomyOption] = Field(default_factory=list)
    candidates: list[TaxonomyOption] = Field(default_factory=list)


class WizardState(CamelModel):
    step: WizardStep = "vehicle_type"
    options: list[TaxonomyOption] = Field(default_factory=list)
    selections: dict[str, TaxonomyOption] = Field(default_factory=dict)
    candidates: list[TaxonomyOption] = Field(default_factory=list)
    history: list[WizardFrame] = Field(default_factory=list)
    mileage: Optional[int] = None


class WizardSelectRequest(CamelModel):
    state: WizardState
    value: str = Field(..., min_length=1)


class WizardStateRequest(CamelModel):
    state: WizardState


class ValuationParams(CamelModel):
    vehicle_type: str
    make: str
    make_id: str
    model: str
    model_id: str
    generation: str
    generation_id: str
    derivative: str
    derivative_id: str
    year: int
    plate: Optional[str] = None
    mileage: int
    first_registration_date: date
    registration_method: str
