"""Sample data for the demo, the CLI's offline mode and the API."""
import random
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from .financial_service import FinancialService
from .models import (
    Address, BankAccount, BankAccountType, BankingProvider, Currency, Invoice,
    InvoiceLineItem, InvoiceStatus, PaymentMethod, PaymentRecord, PaymentStatus,
    PaymentTerms, PaymentTermsType,
)
from .project_models import ProjectBoard, ProjectTask, TaskPriority, TaskStatus
from .project_service import ProjectService
from .reporting_models import (
    CustomFilter, DataSource, FilterOperator, Report, ReportCategory, ReportFilters,
    ReportType, ReportVisualization, SortCriteria, SortDirection, VisualizationType,
)
from .reporting_service import ReportingService

CLIENTS = [
    ("C-100", "Acme Corp", "100 Main St", "Springfield", "IL", "62701"),
    ("C-101", "Beta Industries", "42 Harbor Rd", "Portland", "ME", "04101"),
    ("C-102", "Gamma Logistics, LLC", "7 Depot Ave", "Reno", "NV", "89501"),
    ("C-103", "Delta Design Studio", "300 Pine St", "Seattle", "WA", "98101"),
    ("C-104", "Epsilon Health", "18 Elm Ct", "Austin", "TX", "73301"),
]

SERVICES = [
    ("Consulting hours", Decimal("150.00")),
    ("Software license", Decimal("1200.00")),
    ("Support retainer", Decimal("800.00")),
    ("Implementation", Decimal("2500.00")),
    ("Training session", Decimal("450.00")),
]


def create_sample_invoices(now: datetime, count: int = 12, seed: int = 7) -> List[Invoice]:
    """Invoices spread over the last few months, none paid yet."""
    rng = random.Random(seed)
    invoices = []

    for i in range(count):
        client_id, client_name, street, city, state, postal = CLIENTS[i % len(CLIENTS)]
        issue_date = now - timedelta(days=rng.randint(5, 120))
        lines = [
            InvoiceLineItem.create(
                description=description,
                quantity=rng.randint(1, 8),
                unit_price=price,
                tax_rate=Decimal("8.25") if rng.random() > 0.3 else Decimal("0"),
                category="services",
            )
            for description, price in rng.sample(SERVICES, rng.randint(1, 3))
        ]
        invoice = Invoice.from_line_items(
            lines,
            invoice_number=f"INV-{issue_date.year}-{i + 1:04d}",
            client_id=client_id,
            client_name=client_name,
            issue_date=issue_date,
            due_date=issue_date + timedelta(days=30),
            status=InvoiceStatus.SENT if i % 6 else InvoiceStatus.DRAFT,
            payment_terms=PaymentTerms(terms=PaymentTermsType.NET_30, due_days=30),
            billing_address=Address(street=street, city=city, state=state, postal_code=postal, country="US"),
            notes="Thank you for your business" if i % 3 == 0 else None,
            created_by="demo",
        )
        invoices.append(invoice)

    return invoices


def create_sample_bank_accounts() -> List[BankAccount]:
    return [
        BankAccount(
            account_name="Operating",
            account_number="000123456789",
            routing_number="021000021",
            bank_name="First National",
            account_type=BankAccountType.BUSINESS,
            is_primary=True,
            balance=Decimal("48250.00"),
            banking_provider=BankingProvider.MANUAL,
        ),
        BankAccount(
            account_name="Reserve",
            account_number="000987654321",
            routing_number="021000021",
            bank_name="First National",
            account_type=BankAccountType.SAVINGS,
            balance=Decimal("120000.00"),
            banking_provider=BankingProvider.MANUAL,
        ),
    ]


def seed_financial_data(service: FinancialService, now: Optional[datetime] = None, seed: int = 7) -> Dict[str, int]:
    """
    Load invoices, payments and bank accounts through the service.

    Payments go through ``create_payment`` so each one reconciles its
    invoice: roughly a third end up paid, some partially paid, and
    unpaid invoices past due are swept to overdue.
    """
    now = now or service.clock()
    rng = random.Random(seed)

    invoices = [service.create_invoice(inv) for inv in create_sample_invoices(now, seed=seed)]
    for account in create_sample_bank_accounts():
        service.create_bank_account(account)

    methods = [PaymentMethod.BANK_TRANSFER, PaymentMethod.ACH, PaymentMethod.CHECK, PaymentMethod.CREDIT_CARD]
    payment_count = 0
    for i, invoice in enumerate(invoices):
        if invoice.status == InvoiceStatus.DRAFT:
            continue
        share = [Decimal("1"), Decimal("0.5"), Decimal("0")][i % 3]
        if share == 0:
            continue
        amount = invoice.total_amount if share == 1 else (invoice.total_amount * share).quantize(Decimal("0.01"))
        service.create_payment(PaymentRecord(
            invoice_id=invoice.id,
            amount=amount,
            currency=invoice.currency,
            payment_date=invoice.issue_date + timedelta(days=rng.randint(3, 25)),
            payment_method=rng.choice(methods),
            status=PaymentStatus.COMPLETED,
            transaction_id=f"TX-{rng.randint(100000, 999999)}",
        ))
        payment_count += 1

    # A pending payment never counts toward settlement
    open_invoice = next(
        (inv for inv in service.invoices.value if inv.status == InvoiceStatus.SENT), None
    )
    if open_invoice is not None:
        service.create_payment(PaymentRecord(
            invoice_id=open_invoice.id,
            amount=Decimal("100.00"),
            currency=Currency.USD,
            payment_date=now,
            payment_method=PaymentMethod.PAYPAL,
            status=PaymentStatus.PENDING,
        ))
        payment_count += 1

    service.mark_overdue_invoices(now)
    return {
        "invoices": len(invoices),
        "payments": payment_count,
        "bank_accounts": len(service.bank_accounts.value),
    }


def seed_project_data(service: ProjectService, now: Optional[datetime] = None) -> ProjectBoard:
    now = now or service.clock()
    board = service.save_board(ProjectBoard(name="Q3 Close", owner_id="demo", members=["demo", "finance"]))
    tasks = [
        ("Reconcile operating account", TaskStatus.COMPLETED, TaskPriority.HIGH, -3),
        ("Chase overdue invoices", TaskStatus.IN_PROGRESS, TaskPriority.URGENT, 2),
        ("Prepare board pack", TaskStatus.NOT_STARTED, TaskPriority.MEDIUM, 10),
        ("Vendor contract review", TaskStatus.BLOCKED, TaskPriority.LOW, 14),
    ]
    for position, (title, status, priority, due_in) in enumerate(tasks):
        service.save_task(ProjectTask(
            board_id=board.id,
            title=title,
            status=status,
            priority=priority,
            assigned_to=["finance"],
            due_date=now + timedelta(days=due_in),
            position=position,
            custom_fields={"category": "finance"},
            created_by="demo",
        ))
    return board


def seed_reports(service: ReportingService) -> List[Report]:
    reports = [
        Report(
            report_name="Open Receivables",
            report_description="Unpaid invoices by amount",
            report_type=ReportType.TABULAR,
            category=ReportCategory.FINANCIAL,
            data_source=DataSource.INVOICES,
            selected_fields=["invoice_number", "client_name", "due_date", "status", "remaining_amount"],
            filters=ReportFilters(
                status_filters=[s.value for s in (InvoiceStatus.SENT, InvoiceStatus.PARTIALLY_PAID,
                                                  InvoiceStatus.OVERDUE)],
                sort_by=[SortCriteria(field="remaining_amount", direction=SortDirection.DESCENDING)],
            ),
            is_public=True,
        ),
        Report(
            report_name="Large Payments",
            report_type=ReportType.SUMMARY,
            category=ReportCategory.FINANCIAL,
            data_source=DataSource.PAYMENTS,
            filters=ReportFilters(
                custom_filters=[CustomFilter(field="amount", operator=FilterOperator.GREATER_THAN, value="1000")],
            ),
            visualizations=[ReportVisualization(type=VisualizationType.BAR_CHART, title="By method",
                                                x_axis="payment_method", y_axis="amount")],
        ),
        Report(
            report_name="Open Tasks",
            report_type=ReportType.DETAILED,
            category=ReportCategory.PROJECT,
            data_source=DataSource.TASKS,
            filters=ReportFilters(
                custom_filters=[CustomFilter(field="status", operator=FilterOperator.NOT_IN_LIST,
                                             value="COMPLETED, CANCELLED")],
            ),
        ),
    ]
    return [service.create_report(r) for r in reports]
