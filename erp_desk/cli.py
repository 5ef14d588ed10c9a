"""
Command-line interface for the ERP desk client.
"""
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich import box

from .config import config
from .exceptions import ErpDeskError
from .financial_service import FinancialService
from .logging_config import setup_logging
from .models import InvoiceFilter, InvoiceStatus
from .project_service import ProjectService
from .reporting_models import ExportFormat
from .reporting_service import ReportingService
from .exports import ExportGenerator
from .record_mapper import INVOICE
from .sample_data import seed_financial_data, seed_project_data, seed_reports
from .store_client import DocumentStoreClient, InMemoryDocumentStore, create_store_client


console = Console()

STATUS_COLORS = {
    InvoiceStatus.PAID: "green",
    InvoiceStatus.PARTIALLY_PAID: "yellow",
    InvoiceStatus.OVERDUE: "red",
    InvoiceStatus.CANCELLED: "dim",
    InvoiceStatus.DRAFT: "dim",
}


@click.group()
@click.version_option(version="1.0.0")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
def cli(log_level):
    """
    ERP Desk

    Invoices, payments and reports against the remote document store.
    Without a configured store, commands run on generated sample data.
    """
    setup_logging(level=log_level or config.log_level, log_file=config.log_file, json_format=config.log_json)


def _open_store(demo: bool) -> DocumentStoreClient:
    return InMemoryDocumentStore() if demo else create_store_client()


def _load_financial(demo: bool) -> FinancialService:
    """Financial service with data loaded, seeding sample data when offline."""
    store = _open_store(demo)
    service = FinancialService(store)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Loading data...", total=None)
        if isinstance(store, InMemoryDocumentStore):
            progress.update(task, description="Generating sample data...")
            seed_financial_data(service)
        else:
            results = service.load_all()
            failed = [name for name, ok in results.items() if not ok]
            if failed:
                console.print(f"[yellow]Could not load: {', '.join(failed)}[/yellow]")

    return service


def _abort(error: ErpDeskError):
    console.print(f"[red]Error [{error.code}]: {error.message}[/red]")
    sys.exit(1)


def _money(amount, symbol: str = "$") -> str:
    return f"{symbol}{float(amount):,.2f}"


@cli.command()
@click.option("--check", "-c", is_flag=True, help="Check the document store connection")
def status(check):
    """Show configuration status."""
    console.print("\n[bold]Configuration Status[/bold]\n")

    table = Table(show_header=False, box=box.SIMPLE)
    table.add_column("Setting", style="cyan")
    table.add_column("Status")

    store_ok = config.store.is_configured()
    table.add_row(
        "Document Store",
        "[green]Configured[/green]" if store_ok else "[yellow]Not configured (using sample data)[/yellow]"
    )
    if store_ok:
        table.add_row("Endpoint", config.store.endpoint)
    table.add_row("Container", config.store.container)
    table.add_row("Database", config.store.database)
    table.add_row("Default Currency", config.financial.default_currency)
    table.add_row("Payment Terms", f"{config.financial.default_due_days} days")
    table.add_row("Search Debounce", f"{config.ui.search_debounce_ms} ms")
    table.add_row("Exports Directory", str(config.exports_dir))

    console.print(table)

    if check and store_ok:
        console.print("\n[cyan]Testing document store connection...[/cyan]")
        try:
            records = create_store_client().query(INVOICE)
            console.print(f"[green]✓ Connected! Found {len(records)} invoices.[/green]")
        except ErpDeskError as e:
            console.print(f"[red]✗ Connection failed: {e}[/red]")


@cli.command()
@click.option("--output-dir", "-o", type=click.Path(), default=None, help="Directory for generated files")
def demo(output_dir):
    """Run an end-to-end demo on sample data."""
    console.print(Panel.fit(
        "[bold blue]ERP Desk - Demo[/bold blue]\n"
        "[dim]Invoices, payments, reconciliation and reporting on sample data[/dim]",
        border_style="blue"
    ))

    output = Path(output_dir) if output_dir else config.exports_dir
    store = InMemoryDocumentStore()
    financial = FinancialService(store, exports_dir=output)
    projects = ProjectService(store)
    reporting = ReportingService(store, financial=financial, projects=projects)

    console.print("\n[cyan]Generating sample data...[/cyan]")
    counts = seed_financial_data(financial)
    seed_project_data(projects)
    reports = seed_reports(reporting)
    for name, count in counts.items():
        console.print(f"  • {name.replace('_', ' ').title()}: {count}")

    analytics = financial.generate_financial_analytics()
    _display_analytics(analytics)
    _display_invoices(financial.invoices.value[:10], financial.clock())

    console.print("\n[bold]Reports[/bold]")
    for report in reports:
        rows = reporting.generate_report(report)
        console.print(f"  [cyan]{report.report_name}[/cyan]: {len(rows)} rows")

    paths = {
        "invoices csv": financial.export_invoices_csv(),
        "payments csv": financial.export_payments_csv(),
        "report excel": reporting.export_report(reports[0], ExportFormat.EXCEL, output),
        "summary html": ExportGenerator(output).generate_financial_html(analytics, financial.invoices.value),
    }
    console.print("\n[bold green]Files Generated:[/bold green]")
    for label, path in paths.items():
        console.print(f"  [cyan]{label.upper()}:[/cyan] {path}")

    console.print("\n[bold green]Demo complete![/bold green]")


@cli.command()
@click.option("--demo", is_flag=True, help="Use sample data")
@click.option("--format", "-f", "export_format", type=click.Choice(["excel", "html"]), default=None,
              help="Also write a summary file")
@click.option("--output-dir", "-o", type=click.Path(), default=None, help="Directory for the summary file")
def analytics(demo, export_format, output_dir):
    """Show financial analytics."""
    try:
        service = _load_financial(demo)
        summary = service.generate_financial_analytics()
    except ErpDeskError as e:
        _abort(e)

    _display_analytics(summary)

    if export_format:
        generator = ExportGenerator(Path(output_dir) if output_dir else config.exports_dir)
        if export_format == "excel":
            path = generator.generate_financial_workbook(summary, service.invoices.value, service.payments.value)
        else:
            path = generator.generate_financial_html(summary, service.invoices.value)
        console.print(f"\n[green]Summary written to {path}[/green]")


@cli.command()
@click.option("--demo", is_flag=True, help="Use sample data")
@click.option("--status", "-s", "statuses", multiple=True,
              type=click.Choice([s.value for s in InvoiceStatus]), help="Only these statuses")
@click.option("--search", "-q", default="", help="Search number, client, status or notes")
@click.option("--limit", "-n", default=25, help="Number of invoices to show")
def invoices(demo, statuses, search, limit):
    """List invoices."""
    try:
        service = _load_financial(demo)
    except ErpDeskError as e:
        _abort(e)

    result = service.search_invoices(search)
    if statuses:
        result = service.filter_invoices(InvoiceFilter(statuses=[InvoiceStatus(s) for s in statuses]), result)

    if not result:
        console.print("[yellow]No invoices found.[/yellow]")
        return

    _display_invoices(result[:limit], service.clock())
    if len(result) > limit:
        console.print(f"[dim]... and {len(result) - limit} more[/dim]")


@cli.command()
@click.argument("invoice_number")
@click.option("--demo", is_flag=True, help="Use sample data")
def reconcile(invoice_number, demo):
    """Reconcile one invoice against its payments."""
    try:
        service = _load_financial(demo)
        invoice = service.find_invoice_by_number(invoice_number)
        # Only report a failure from this reconciliation, not one left by loading
        service.error.value = None
        outcome = service.reconcile(invoice.id)
    except ErpDeskError as e:
        _abort(e)

    table = Table(title=f"Invoice {invoice.invoice_number}", box=box.ROUNDED, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Client", invoice.client_name)
    table.add_row("Total", _money(invoice.total_amount, invoice.currency.symbol))
    table.add_row("Completed Payments", str(len(outcome.completed_payments)))
    table.add_row("Total Paid", _money(outcome.total_paid, invoice.currency.symbol))
    table.add_row("Remaining", _money(outcome.remaining_amount, invoice.currency.symbol))
    color = STATUS_COLORS.get(outcome.new_status, "white")
    table.add_row("Status", f"{outcome.old_status.display_name} → [{color}]{outcome.new_status.display_name}[/{color}]")
    console.print(table)

    if service.error.value is not None:
        console.print(f"[red]Invoice update failed: {service.error.value}[/red]")
    elif outcome.needs_update:
        console.print("[green]✓ Invoice updated.[/green]")
    else:
        console.print("[green]✓ Already up to date.[/green]")


@cli.command()
@click.argument("kind", type=click.Choice(["invoices", "payments"]))
@click.option("--demo", is_flag=True, help="Use sample data")
@click.option("--output", "-o", type=click.Path(), default=None, help="Output CSV path")
def export(kind, demo, output):
    """Export invoices or payments to CSV."""
    try:
        service = _load_financial(demo)
        path = Path(output) if output else None
        if kind == "invoices":
            written = service.export_invoices_csv(path)
            count = len(service.invoices.value)
        else:
            written = service.export_payments_csv(path)
            count = len(service.payments.value)
    except ErpDeskError as e:
        _abort(e)

    console.print(f"[green]Exported {count} {kind} to {written}[/green]")


def _display_analytics(summary):
    """Display financial analytics."""
    console.print("\n")

    table = Table(title="Financial Summary", box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Total Invoices", str(summary.total_invoices))
    table.add_row("Paid", f"[green]{summary.paid_invoices}[/green]")
    table.add_row("Overdue", f"[red]{summary.overdue_invoices}[/red]")
    table.add_row("", "")
    table.add_row("Total Revenue", f"[green]{_money(summary.total_revenue)}[/green]")
    table.add_row("Outstanding", f"[yellow]{_money(summary.outstanding_amount)}[/yellow]")
    table.add_row("Overdue Amount", f"[red]{_money(summary.overdue_amount)}[/red]")
    table.add_row("Average Invoice", _money(summary.average_invoice_amount))
    table.add_row("", "")
    table.add_row("Collection Rate", f"[bold]{summary.collection_rate:.1f}%[/bold]")
    table.add_row("Avg Days to Payment", f"{summary.average_days_to_payment:.1f}")

    console.print(table)

    if summary.payment_method_breakdown:
        methods = Table(box=box.SIMPLE)
        methods.add_column("Payment Method", style="cyan")
        methods.add_column("Count", justify="right")
        for method, count in sorted(summary.payment_method_breakdown.items(), key=lambda x: -x[1]):
            methods.add_row(method, str(count))
        console.print(methods)


def _display_invoices(invoice_list, now):
    """Display an invoice table."""
    table = Table(title="Invoices", box=box.ROUNDED)
    table.add_column("Number", style="cyan")
    table.add_column("Client")
    table.add_column("Issued")
    table.add_column("Due")
    table.add_column("Status")
    table.add_column("Total", justify="right")
    table.add_column("Balance", justify="right")

    for inv in invoice_list:
        color = STATUS_COLORS.get(inv.status, "white")
        due = inv.due_date.strftime("%Y-%m-%d")
        if inv.is_overdue(now):
            due = f"[red]{due} ({inv.days_past_due(now)}d)[/red]"
        table.add_row(
            inv.invoice_number,
            inv.client_name[:30],
            inv.issue_date.strftime("%Y-%m-%d"),
            due,
            f"[{color}]{inv.status.display_name}[/{color}]",
            _money(inv.total_amount, inv.currency.symbol),
            _money(inv.balance_due, inv.currency.symbol),
        )

    console.print(table)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
