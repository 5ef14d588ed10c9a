"""Financial data models: invoices, payments and bank accounts."""
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Dict
import uuid

from dateutil.relativedelta import relativedelta


ZERO = Decimal("0")
HUNDRED = Decimal("100")


def new_id() -> str:
    return str(uuid.uuid4())


def local_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are held as naive local time; aware values are converted."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


class InvoiceStatus(Enum):
    """Invoice lifecycle status."""
    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class PaymentStatus(Enum):
    """Payment processing status."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class PaymentMethod(Enum):
    """How a payment was made."""
    CASH = "cash"
    CHECK = "check"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_TRANSFER = "bank_transfer"
    ACH = "ach"
    WIRE = "wire"
    PAYPAL = "paypal"
    STRIPE = "stripe"
    SQUARE = "square"
    APPLE_PAY = "apple_pay"
    GOOGLE_PAY = "google_pay"
    CRYPTOCURRENCY = "cryptocurrency"
    OTHER = "other"

    @property
    def display_name(self) -> str:
        return _PAYMENT_METHOD_NAMES.get(self, self.value.replace("_", " ").title())


_PAYMENT_METHOD_NAMES = {
    PaymentMethod.ACH: "ACH",
    PaymentMethod.WIRE: "Wire Transfer",
    PaymentMethod.PAYPAL: "PayPal",
}


class RefundStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Currency(Enum):
    """Supported currencies (ISO 4217 codes)."""
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    CAD = "CAD"
    AUD = "AUD"
    JPY = "JPY"
    CHF = "CHF"
    CNY = "CNY"
    INR = "INR"
    BRL = "BRL"

    @property
    def display_name(self) -> str:
        return _CURRENCY_NAMES[self]

    @property
    def symbol(self) -> str:
        return _CURRENCY_SYMBOLS[self]


_CURRENCY_NAMES = {
    Currency.USD: "US Dollar",
    Currency.EUR: "Euro",
    Currency.GBP: "British Pound",
    Currency.CAD: "Canadian Dollar",
    Currency.AUD: "Australian Dollar",
    Currency.JPY: "Japanese Yen",
    Currency.CHF: "Swiss Franc",
    Currency.CNY: "Chinese Yuan",
    Currency.INR: "Indian Rupee",
    Currency.BRL: "Brazilian Real",
}

_CURRENCY_SYMBOLS = {
    Currency.USD: "$",
    Currency.CAD: "$",
    Currency.AUD: "$",
    Currency.BRL: "$",
    Currency.EUR: "€",
    Currency.GBP: "£",
    Currency.JPY: "¥",
    Currency.CNY: "¥",
    Currency.CHF: "CHF",
    Currency.INR: "₹",
}


class PaymentTermsType(Enum):
    NET_15 = "net15"
    NET_30 = "net30"
    NET_60 = "net60"
    NET_90 = "net90"
    DUE_ON_RECEIPT = "due_on_receipt"
    CUSTOM = "custom"

    @property
    def display_name(self) -> str:
        if self is PaymentTermsType.DUE_ON_RECEIPT:
            return "Due on Receipt"
        if self is PaymentTermsType.CUSTOM:
            return "Custom"
        return f"Net {self.value[3:]}"

    @property
    def default_due_days(self) -> Optional[int]:
        if self is PaymentTermsType.DUE_ON_RECEIPT:
            return 0
        if self is PaymentTermsType.CUSTOM:
            return None
        return int(self.value[3:])


class RecurringFrequency(Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"


_FREQUENCY_STEPS = {
    RecurringFrequency.DAILY: relativedelta(days=1),
    RecurringFrequency.WEEKLY: relativedelta(weeks=1),
    RecurringFrequency.MONTHLY: relativedelta(months=1),
    RecurringFrequency.QUARTERLY: relativedelta(months=3),
    RecurringFrequency.ANNUALLY: relativedelta(years=1),
}


class BankAccountType(Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    BUSINESS = "business"
    MONEY_MARKET = "money_market"
    OTHER = "other"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class BankingProvider(Enum):
    PLAID = "plaid"
    YODLEE = "yodlee"
    SALT_EDGE = "salt_edge"
    OPEN = "open"
    MANUAL = "manual"

    @property
    def display_name(self) -> str:
        if self is BankingProvider.OPEN:
            return "Open Banking"
        if self is BankingProvider.MANUAL:
            return "Manual Entry"
        return self.value.replace("_", " ").title()


# ============== Invoice components ==============

@dataclass
class InvoiceLineItem:
    """A billable line. Percentages are whole numbers (8.25 means 8.25%)."""
    id: str = field(default_factory=new_id)
    description: str = ""
    quantity: Decimal = Decimal("1")
    unit_price: Decimal = ZERO
    discount_percentage: Decimal = ZERO
    tax_rate: Decimal = ZERO
    total_amount: Decimal = ZERO
    category: str = ""
    notes: Optional[str] = None

    @property
    def net_amount(self) -> Decimal:
        """Quantity times price after the line discount, before tax."""
        gross = self.quantity * self.unit_price
        return gross - gross * self.discount_percentage / HUNDRED

    @property
    def tax_amount(self) -> Decimal:
        return self.net_amount * self.tax_rate / HUNDRED

    def compute_total(self) -> Decimal:
        return self.net_amount + self.tax_amount

    @classmethod
    def create(cls, description: str, quantity, unit_price, discount_percentage=ZERO,
               tax_rate=ZERO, category: str = "", notes: str = None) -> "InvoiceLineItem":
        item = cls(
            description=description,
            quantity=Decimal(str(quantity)),
            unit_price=Decimal(str(unit_price)),
            discount_percentage=Decimal(str(discount_percentage)),
            tax_rate=Decimal(str(tax_rate)),
            category=category,
            notes=notes,
        )
        item.total_amount = item.compute_total()
        return item


@dataclass
class Address:
    street: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""

    def formatted(self) -> str:
        parts = [self.street, f"{self.city}, {self.state} {self.postal_code}".strip(", "), self.country]
        return "\n".join(p for p in parts if p)


@dataclass
class PaymentTerms:
    terms: PaymentTermsType = PaymentTermsType.NET_30
    due_days: int = 30
    late_fee_percentage: Decimal = ZERO
    late_fee_amount: Optional[Decimal] = None
    early_payment_discount_percentage: Optional[Decimal] = None
    early_payment_discount_days: Optional[int] = None


@dataclass
class TaxDetails:
    tax_region: str = ""
    total_tax_amount: Decimal = ZERO
    is_tax_inclusive: bool = False
    tax_number: Optional[str] = None


@dataclass
class RecurringSettings:
    frequency: RecurringFrequency = RecurringFrequency.MONTHLY
    interval_count: int = 1
    next_invoice_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    auto_send: bool = False

    def advance(self, from_date: datetime) -> Optional[datetime]:
        """Date of the following invoice, or None once past the end date."""
        step = _FREQUENCY_STEPS[self.frequency] * self.interval_count
        following = from_date + step
        if self.end_date and following > self.end_date:
            return None
        return following


# ============== Payments ==============

@dataclass
class PaymentFees:
    processing_fee: Decimal = ZERO
    transaction_fee: Decimal = ZERO
    gateway_fee: Decimal = ZERO
    other_fees: Decimal = ZERO

    @property
    def total_fees(self) -> Decimal:
        return self.processing_fee + self.transaction_fee + self.gateway_fee + self.other_fees


@dataclass
class RefundRecord:
    id: str = field(default_factory=new_id)
    amount: Decimal = ZERO
    reason: str = ""
    status: RefundStatus = RefundStatus.PENDING
    refund_date: datetime = field(default_factory=datetime.now)
    transaction_id: Optional[str] = None
    processed_by: Optional[str] = None


@dataclass
class PaymentRecord:
    """A payment received against an invoice."""
    id: str = field(default_factory=new_id)
    invoice_id: str = ""
    payment_number: str = ""
    amount: Decimal = ZERO
    currency: Currency = Currency.USD
    payment_date: datetime = field(default_factory=datetime.now)
    payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
    fees: Optional[PaymentFees] = None
    refunds: List[RefundRecord] = field(default_factory=list)
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=datetime.now)

    def is_completed(self) -> bool:
        return self.status == PaymentStatus.COMPLETED

    @property
    def refunded_amount(self) -> Decimal:
        """Completed refunds. Tracked only; invoice settlement ignores it."""
        return sum((r.amount for r in self.refunds if r.status == RefundStatus.COMPLETED), ZERO)

    @property
    def net_amount(self) -> Decimal:
        fees = self.fees.total_fees if self.fees else ZERO
        return self.amount - fees


# ============== Invoice ==============

@dataclass
class Invoice:
    """An invoice issued to a client."""
    id: str = field(default_factory=new_id)
    invoice_number: str = ""
    client_id: str = ""
    client_name: str = ""
    issue_date: datetime = field(default_factory=datetime.now)
    due_date: datetime = field(default_factory=datetime.now)
    status: InvoiceStatus = InvoiceStatus.DRAFT
    subtotal: Decimal = ZERO
    tax_amount: Decimal = ZERO
    discount_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    currency: Currency = Currency.USD
    line_items: List[InvoiceLineItem] = field(default_factory=list)
    payment_terms: PaymentTerms = field(default_factory=PaymentTerms)
    notes: Optional[str] = None
    billing_address: Optional[Address] = None
    shipping_address: Optional[Address] = None
    tax_details: Optional[TaxDetails] = None
    payment_history: List[PaymentRecord] = field(default_factory=list)
    recurring_settings: Optional[RecurringSettings] = None
    created_by: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    last_modified: datetime = field(default_factory=datetime.now)
    last_modified_by: Optional[str] = None

    @classmethod
    def from_line_items(cls, line_items: List[InvoiceLineItem], discount_amount: Decimal = ZERO,
                        **kwargs) -> "Invoice":
        """Build an invoice whose monetary fields derive from its lines."""
        subtotal = sum((item.net_amount for item in line_items), ZERO)
        tax = sum((item.tax_amount for item in line_items), ZERO)
        return cls(
            line_items=list(line_items),
            subtotal=subtotal,
            tax_amount=tax,
            discount_amount=discount_amount,
            total_amount=subtotal + tax - discount_amount,
            **kwargs
        )

    def expected_total(self) -> Decimal:
        return self.subtotal + self.tax_amount - self.discount_amount

    @property
    def total_paid(self) -> Decimal:
        return sum((p.amount for p in self.payment_history if p.is_completed()), ZERO)

    @property
    def remaining_amount(self) -> Decimal:
        # Not clamped: overpayment shows as a negative balance
        return self.total_amount - self.total_paid

    @property
    def balance_due(self) -> Decimal:
        """Remaining amount floored at zero, for display."""
        return max(self.remaining_amount, ZERO)

    @property
    def is_overpaid(self) -> bool:
        return self.remaining_amount < ZERO

    def is_overdue(self, now: datetime = None) -> bool:
        now = now or datetime.now()
        if self.status in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED):
            return False
        return self.due_date < now

    def days_past_due(self, now: datetime = None) -> int:
        now = now or datetime.now()
        if not self.is_overdue(now):
            return 0
        return (now - self.due_date).days

    def with_changes(self, modified_by: str = None, **changes) -> "Invoice":
        """Copy with the given fields replaced and the modification stamp bumped."""
        return replace(
            self,
            last_modified=datetime.now(),
            last_modified_by=modified_by or self.last_modified_by,
            **changes
        )


# ============== Banking ==============

@dataclass
class BankAccount:
    id: str = field(default_factory=new_id)
    account_name: str = ""
    account_number: str = ""
    routing_number: str = ""
    bank_name: str = ""
    account_type: BankAccountType = BankAccountType.CHECKING
    currency: Currency = Currency.USD
    is_active: bool = True
    is_primary: bool = False
    balance: Optional[Decimal] = None
    last_sync_date: Optional[datetime] = None
    banking_provider: Optional[BankingProvider] = None

    @property
    def masked_account_number(self) -> str:
        if len(self.account_number) <= 4:
            return self.account_number
        return "•" * 4 + self.account_number[-4:]


# ============== Filtering and analytics ==============

@dataclass
class DateRange:
    start: datetime
    end: datetime

    def contains(self, value: datetime) -> bool:
        return self.start <= value <= self.end


@dataclass
class InvoiceFilter:
    """Client-side invoice filter. Empty criteria match everything."""
    statuses: List[InvoiceStatus] = field(default_factory=list)
    date_range: Optional[DateRange] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    currencies: List[Currency] = field(default_factory=list)
    client_ids: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return (
            not self.statuses
            and self.date_range is None
            and self.min_amount is None
            and self.max_amount is None
            and not self.currencies
            and not self.client_ids
        )

    def matches(self, invoice: Invoice) -> bool:
        if self.statuses and invoice.status not in self.statuses:
            return False
        if self.date_range and not self.date_range.contains(invoice.issue_date):
            return False
        if self.min_amount is not None and invoice.total_amount < self.min_amount:
            return False
        if self.max_amount is not None and invoice.total_amount > self.max_amount:
            return False
        if self.currencies and invoice.currency not in self.currencies:
            return False
        if self.client_ids and invoice.client_id not in self.client_ids:
            return False
        return True


@dataclass
class FinancialAnalytics:
    """Summary over the invoice and payment collections."""
    total_revenue: Decimal = ZERO
    outstanding_amount: Decimal = ZERO
    overdue_amount: Decimal = ZERO
    total_invoices: int = 0
    paid_invoices: int = 0
    overdue_invoices: int = 0
    average_invoice_amount: Decimal = ZERO
    average_days_to_payment: float = 0.0
    monthly_revenue: Dict[str, Decimal] = field(default_factory=dict)
    revenue_by_client: Dict[str, Decimal] = field(default_factory=dict)
    payment_method_breakdown: Dict[str, int] = field(default_factory=dict)
    status_counts: Dict[str, int] = field(default_factory=dict)
    generated_at: datetime = field(default_factory=datetime.now)

    @property
    def collection_rate(self) -> float:
        """Percentage of invoices that are paid."""
        if self.total_invoices == 0:
            return 0.0
        return self.paid_invoices / self.total_invoices * 100

    @property
    def overdue_rate(self) -> float:
        if self.total_invoices == 0:
            return 0.0
        return self.overdue_invoices / self.total_invoices * 100

    def to_dict(self) -> dict:
        return {
            "total_revenue": str(self.total_revenue),
            "outstanding_amount": str(self.outstanding_amount),
            "overdue_amount": str(self.overdue_amount),
            "total_invoices": self.total_invoices,
            "paid_invoices": self.paid_invoices,
            "overdue_invoices": self.overdue_invoices,
            "average_invoice_amount": str(self.average_invoice_amount),
            "average_days_to_payment": self.average_days_to_payment,
            "collection_rate": self.collection_rate,
            "overdue_rate": self.overdue_rate,
            "monthly_revenue": {k: str(v) for k, v in self.monthly_revenue.items()},
            "revenue_by_client": {k: str(v) for k, v in self.revenue_by_client.items()},
            "payment_method_breakdown": dict(self.payment_method_breakdown),
            "status_counts": dict(self.status_counts),
            "generated_at": self.generated_at.isoformat(),
        }
