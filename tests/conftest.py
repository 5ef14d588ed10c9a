"""
Pytest fixtures for ERP desk tests.
"""
import pytest
from datetime import datetime, timedelta
from decimal import Decimal
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from erp_desk.financial_service import FinancialService
from erp_desk.models import (
    Invoice, InvoiceLineItem, InvoiceStatus, PaymentMethod, PaymentRecord, PaymentStatus,
)
from erp_desk.project_service import ProjectService
from erp_desk.reporting_service import ReportingService
from erp_desk.store_client import InMemoryDocumentStore


NOW = datetime(2024, 6, 15, 12, 0, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    """Fixed clock so due dates and numbering are deterministic."""
    return lambda: NOW


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def financial_service(store, clock, tmp_path):
    return FinancialService(store, clock=clock, user="tester", exports_dir=tmp_path / "exports")


@pytest.fixture
def project_service(store, clock):
    return ProjectService(store, clock=clock)


@pytest.fixture
def reporting_service(store, financial_service, project_service, clock):
    return ReportingService(
        store, financial=financial_service, projects=project_service, clock=clock, user="tester"
    )


def make_invoice(number="INV-2024-0001", client="Acme Corp", total="1000.00",
                 issued_days_ago=20, due_in_days=10, status=InvoiceStatus.SENT, **kwargs):
    """Single-line invoice with no tax, so total_amount equals the line price."""
    issue_date = NOW - timedelta(days=issued_days_ago)
    return Invoice.from_line_items(
        [InvoiceLineItem.create("Consulting", 1, total)],
        invoice_number=number,
        client_id=f"C-{client[:4].upper()}",
        client_name=client,
        issue_date=issue_date,
        due_date=NOW + timedelta(days=due_in_days),
        status=status,
        created_at=issue_date,
        last_modified=issue_date,
        **kwargs
    )


def make_payment(invoice_id, amount, status=PaymentStatus.COMPLETED, days_ago=1, **kwargs):
    return PaymentRecord(
        invoice_id=invoice_id,
        amount=Decimal(amount),
        payment_date=NOW - timedelta(days=days_ago),
        payment_method=kwargs.pop("payment_method", PaymentMethod.BANK_TRANSFER),
        status=status,
        **kwargs
    )


@pytest.fixture
def sample_invoice():
    """Two-line invoice: 10 x 100.00 untaxed plus 500.00 at 10% tax."""
    issue_date = NOW - timedelta(days=20)
    return Invoice.from_line_items(
        [
            InvoiceLineItem.create("Consulting hours", 10, "100.00"),
            InvoiceLineItem.create("Software license", 1, "500.00", tax_rate="10"),
        ],
        invoice_number="INV-2024-0001",
        client_id="C-100",
        client_name="Acme Corp",
        issue_date=issue_date,
        due_date=issue_date + timedelta(days=30),
        status=InvoiceStatus.SENT,
        notes="Thank you for your business",
    )


@pytest.fixture
def saved_invoice(financial_service):
    """A 1000.00 invoice persisted through the service."""
    return financial_service.create_invoice(make_invoice())


@pytest.fixture
def invoice_mix():
    """Five invoices spanning the settlement states, as of NOW."""
    paid = make_invoice("INV-2024-0001", "Acme Corp", "1000.00", issued_days_ago=40, due_in_days=-10,
                        status=InvoiceStatus.PAID)
    paid.payment_history = [make_payment(paid.id, "1000.00", days_ago=30)]

    partial = make_invoice("INV-2024-0002", "Beta Industries", "600.00", issued_days_ago=10, due_in_days=20,
                           status=InvoiceStatus.PARTIALLY_PAID)
    partial.payment_history = [make_payment(partial.id, "200.00", days_ago=5)]

    overdue = make_invoice("INV-2024-0003", "Gamma Logistics, LLC", "400.00", issued_days_ago=45,
                           due_in_days=-15, status=InvoiceStatus.OVERDUE)
    sent = make_invoice("INV-2024-0004", "Acme Corp", "300.00", issued_days_ago=2, due_in_days=28)
    cancelled = make_invoice("INV-2024-0005", "Delta Design", "700.00", issued_days_ago=60, due_in_days=-30,
                             status=InvoiceStatus.CANCELLED)
    return [paid, partial, overdue, sent, cancelled]
