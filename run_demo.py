#!/usr/bin/env python3
"""
Demo script to showcase the ERP desk client.

Walks one invoice through its payment lifecycle on an in-memory store,
then summarises a full set of sample data.
"""
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from datetime import datetime, timedelta
from decimal import Decimal

from erp_desk.financial_service import FinancialService
from erp_desk.models import Invoice, InvoiceLineItem, InvoiceStatus, PaymentMethod, PaymentRecord, PaymentStatus
from erp_desk.project_service import ProjectService
from erp_desk.reporting_service import ReportingService
from erp_desk.sample_data import seed_financial_data, seed_project_data, seed_reports
from erp_desk.store_client import InMemoryDocumentStore

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box


console = Console()


def main():
    console.print(Panel.fit(
        "[bold blue]ERP Desk - Demo[/bold blue]\n"
        "[dim]Invoices, payment reconciliation and reporting[/dim]",
        border_style="blue"
    ))

    walkthrough()

    console.print("\n[cyan]Generating sample data...[/cyan]")
    store = InMemoryDocumentStore()
    financial = FinancialService(store)
    projects = ProjectService(store)
    reporting = ReportingService(store, financial=financial, projects=projects)

    counts = seed_financial_data(financial)
    seed_project_data(projects)
    for name, count in counts.items():
        console.print(f"  • {name.replace('_', ' ').title()}: {count}")

    display_status_counts(financial.invoices.value)

    console.print("\n[bold]Reports[/bold]")
    for report in seed_reports(reporting):
        rows = reporting.generate_report(report)
        console.print(f"  [cyan]{report.report_name}[/cyan]: {len(rows)} rows")

    analytics = financial.generate_financial_analytics()
    console.print(f"\nCollection rate: [bold]{analytics.collection_rate:.1f}%[/bold]")
    console.print(f"Outstanding:     [yellow]${float(analytics.outstanding_amount):,.2f}[/yellow]")

    console.print("\n[bold green]Demo complete![/bold green]")
    console.print("\nTo run against your own store:")
    console.print("  1. Set ERP_STORE_ENDPOINT and ERP_STORE_API_TOKEN in .env")
    console.print("  2. Run: erp invoices")


def walkthrough():
    """One invoice, two payments, and the status after each step."""
    now = datetime.now()
    service = FinancialService(InMemoryDocumentStore())

    invoice = service.create_invoice(Invoice.from_line_items(
        [InvoiceLineItem.create("Implementation", 1, "2500.00", tax_rate="8.25")],
        client_name="Acme Corp",
        issue_date=now - timedelta(days=40),
        due_date=now - timedelta(days=10),
        status=InvoiceStatus.SENT,
    ))

    table = Table(title=f"\nInvoice {invoice.invoice_number}", box=box.ROUNDED)
    table.add_column("Step", style="cyan")
    table.add_column("Paid", justify="right")
    table.add_column("Remaining", justify="right")
    table.add_column("Status")

    def add_step(label):
        current = service.get_invoice(invoice.id)
        table.add_row(
            label,
            f"${float(current.total_paid):,.2f}",
            f"${float(current.remaining_amount):,.2f}",
            current.status.display_name,
        )

    add_step("Issued")
    service.mark_overdue_invoices(now)
    add_step("Overdue sweep")

    steps = [
        ("Pending payment of $500", Decimal("500.00"), PaymentStatus.PENDING),
        ("Payment of $1,000", Decimal("1000.00"), PaymentStatus.COMPLETED),
        ("Balance paid", None, PaymentStatus.COMPLETED),
    ]
    for label, amount, status in steps:
        if amount is None:
            amount = service.get_invoice(invoice.id).remaining_amount
        service.create_payment(PaymentRecord(
            invoice_id=invoice.id,
            amount=amount,
            payment_method=PaymentMethod.ACH,
            status=status,
        ))
        add_step(label)

    console.print(table)


def display_status_counts(invoices):
    """Display invoices per status."""
    table = Table(title="\nInvoices by Status", box=box.ROUNDED)
    table.add_column("Status", style="cyan")
    table.add_column("Count", justify="right")

    for status in InvoiceStatus:
        count = sum(1 for i in invoices if i.status == status)
        if count:
            table.add_row(status.display_name, str(count))

    console.print(table)


if __name__ == "__main__":
    main()
