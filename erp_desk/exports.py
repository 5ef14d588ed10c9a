"""
Export functionality for financial data and generated reports.

Generates:
- CSV exports of invoices and payments
- Report exports as CSV, JSON, Excel or HTML
- Excel and HTML financial summaries
"""
import csv
import json
import re
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import List, Dict, Any, Optional

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Border, Side
from openpyxl.utils.exceptions import IllegalCharacterError
from jinja2 import Template

from .exceptions import ExportFailedError
from .logging_config import get_logger, log_export
from .models import FinancialAnalytics, Invoice, InvoiceStatus, PaymentRecord
from .reporting_models import ExportFormat, Report

logger = get_logger("exports")

INVOICE_CSV_COLUMNS = [
    "Invoice Number", "Client Name", "Issue Date", "Due Date", "Status",
    "Subtotal", "Tax Amount", "Total Amount", "Currency",
]

PAYMENT_CSV_COLUMNS = [
    "Payment Number", "Invoice ID", "Amount", "Currency",
    "Payment Date", "Payment Method", "Status",
]

DATE_FORMAT = "%Y-%m-%d"

# Characters Excel refuses in sheet titles
INVALID_SHEET_CHARS = re.compile(r"[:\\/?*\[\]]")
UNSAFE_FILENAME_CHARS = re.compile(r"[^\w.-]+")


def export_filename(prefix: str, now: Optional[datetime] = None, extension: str = "csv") -> str:
    now = now or datetime.now()
    return f"{prefix}_{now.strftime('%Y-%m-%d_%H-%M-%S')}.{extension}"


def invoice_rows(invoices: List[Invoice]) -> List[List[str]]:
    return [
        [
            inv.invoice_number,
            inv.client_name,
            inv.issue_date.strftime(DATE_FORMAT),
            inv.due_date.strftime(DATE_FORMAT),
            inv.status.display_name,
            str(inv.subtotal),
            str(inv.tax_amount),
            str(inv.total_amount),
            inv.currency.display_name,
        ]
        for inv in invoices
    ]


def payment_rows(payments: List[PaymentRecord]) -> List[List[str]]:
    return [
        [
            p.payment_number,
            p.invoice_id,
            str(p.amount),
            p.currency.display_name,
            p.payment_date.strftime(DATE_FORMAT),
            p.payment_method.display_name,
            p.status.display_name,
        ]
        for p in payments
    ]


def _to_csv(rows: List[List[str]], columns: List[str]) -> str:
    # Fields containing commas, quotes or newlines are quoted
    df = pd.DataFrame(rows, columns=columns, dtype=str)
    return df.to_csv(index=False, lineterminator="\n")


def invoices_to_csv(invoices: List[Invoice]) -> str:
    """Header plus one row per invoice."""
    return _to_csv(invoice_rows(invoices), INVOICE_CSV_COLUMNS)


def payments_to_csv(payments: List[PaymentRecord]) -> str:
    return _to_csv(payment_rows(payments), PAYMENT_CSV_COLUMNS)


def write_csv(content: str, output_path: Path) -> Path:
    """Write CSV text, creating parent directories."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        f.write(content)
    return output_path


def safe_filename(name: str, default: str = "report") -> str:
    """File name stem without path separators or leading dots."""
    return UNSAFE_FILENAME_CHARS.sub("_", name).strip("._") or default


def sheet_title(name: str, default: str = "Report") -> str:
    """Worksheet title Excel accepts: no reserved characters, at most 31 long."""
    return INVALID_SHEET_CHARS.sub(" ", name).strip(" '")[:31].strip() or default


def _json_default(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class ExportGenerator:
    """Writes report data and financial summaries to files."""

    # Excel styling
    HEADER_FILL = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
    HEADER_FONT = Font(bold=True, color="FFFFFF")
    PAID_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
    OVERDUE_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
    PARTIAL_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
    BORDER = Border(
        left=Side(style='thin'),
        right=Side(style='thin'),
        top=Side(style='thin'),
        bottom=Side(style='thin')
    )

    def __init__(self, output_dir: Optional[Path] = None):
        self.output_dir = output_dir or Path("./exports")
        self.output_dir.mkdir(parents=True, exist_ok=True)

    # ============== Report exports ==============

    def export_report(self, report: Report, rows: List[Dict[str, Any]], export_format: ExportFormat) -> Path:
        """Write generated report rows in the requested format."""
        filename = f"{safe_filename(report.report_name)}.{export_format.file_extension}"
        output_path = self.output_dir / filename

        try:
            if export_format == ExportFormat.CSV:
                self._report_to_csv(rows, output_path)
            elif export_format == ExportFormat.JSON:
                with open(output_path, "w") as f:
                    json.dump(rows, f, indent=2, default=_json_default)
            elif export_format == ExportFormat.EXCEL:
                self._report_to_excel(report, rows, output_path)
            elif export_format == ExportFormat.HTML:
                self._report_to_html(report, rows, output_path)
            else:
                raise ExportFailedError(export_format.value, "unsupported format")
        except (OSError, ValueError, IllegalCharacterError) as e:
            raise ExportFailedError(export_format.value, str(e)) from e

        log_export(logger, report.report_name, export_format.value, len(rows), str(output_path))
        return output_path

    def _report_to_csv(self, rows: List[Dict[str, Any]], output_path: Path):
        if not rows:
            raise ExportFailedError("csv", "no data to export")
        headers = sorted({key for row in rows for key in row})
        df = pd.DataFrame([[_cell(row.get(h)) for h in headers] for row in rows], columns=headers, dtype=str)
        df.to_csv(output_path, index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")

    def _report_to_excel(self, report: Report, rows: List[Dict[str, Any]], output_path: Path):
        wb = Workbook()
        ws = wb.active
        ws.title = sheet_title(report.report_name)

        headers = sorted({key for row in rows for key in row})
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.fill = self.HEADER_FILL
            cell.font = self.HEADER_FONT
            cell.border = self.BORDER

        for row_num, row in enumerate(rows, start=2):
            for col, header in enumerate(headers, start=1):
                value = row.get(header)
                if isinstance(value, Decimal):
                    cell = ws.cell(row=row_num, column=col, value=float(value))
                    cell.number_format = report.formatting.number_format
                else:
                    cell = ws.cell(row=row_num, column=col, value=_cell(value))
                cell.border = self.BORDER

        for col in range(1, len(headers) + 1):
            ws.column_dimensions[ws.cell(row=1, column=col).column_letter].width = 18

        wb.save(output_path)

    def _report_to_html(self, report: Report, rows: List[Dict[str, Any]], output_path: Path):
        headers = sorted({key for row in rows for key in row})
        html_content = Template(REPORT_HTML_TEMPLATE).render(
            report=report,
            headers=headers,
            rows=[[_cell(row.get(h)) for h in headers] for row in rows],
            generated_at=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        )
        with open(output_path, "w") as f:
            f.write(html_content)

    # ============== Financial summaries ==============

    def generate_financial_workbook(
        self,
        analytics: FinancialAnalytics,
        invoices: List[Invoice],
        payments: List[PaymentRecord],
        filename: Optional[str] = None
    ) -> Path:
        """Excel workbook with summary, invoice and payment sheets."""
        wb = Workbook()
        wb.remove(wb.active)

        self._create_summary_sheet(wb, analytics)
        self._create_table_sheet(wb, "Invoices", INVOICE_CSV_COLUMNS, invoice_rows(invoices),
                                 status_col=5, money_cols=(6, 7, 8))
        self._create_table_sheet(wb, "Payments", PAYMENT_CSV_COLUMNS, payment_rows(payments),
                                 money_cols=(3,))

        filename = filename or export_filename("financial_summary", extension="xlsx")
        output_path = self.output_dir / filename
        wb.save(output_path)
        log_export(logger, "financial_summary", "excel", len(invoices) + len(payments), str(output_path))
        return output_path

    def _create_summary_sheet(self, wb: Workbook, analytics: FinancialAnalytics):
        ws = wb.create_sheet("Summary", 0)

        ws["A1"] = "Financial Summary"
        ws["A1"].font = Font(bold=True, size=16)
        ws.merge_cells("A1:D1")
        ws["A2"] = f"Generated {analytics.generated_at.strftime('%Y-%m-%d %H:%M:%S')}"

        amount_data = [
            ("Total Revenue", analytics.total_revenue),
            ("Outstanding", analytics.outstanding_amount),
            ("Overdue", analytics.overdue_amount),
            ("Average Invoice", analytics.average_invoice_amount),
        ]
        for i, (label, value) in enumerate(amount_data, start=4):
            ws[f"A{i}"] = label
            ws[f"B{i}"] = float(value)
            ws[f"B{i}"].number_format = '$#,##0.00'

        count_data = [
            ("Total Invoices", analytics.total_invoices),
            ("Paid Invoices", analytics.paid_invoices),
            ("Overdue Invoices", analytics.overdue_invoices),
            ("Collection Rate", f"{analytics.collection_rate:.1f}%"),
            ("Avg Days to Payment", f"{analytics.average_days_to_payment:.1f}"),
        ]
        for i, (label, value) in enumerate(count_data, start=9):
            ws[f"A{i}"] = label
            ws[f"B{i}"] = value

        ws["D3"] = "Monthly Revenue"
        ws["D3"].font = Font(bold=True, size=12)
        for i, (month, value) in enumerate(analytics.monthly_revenue.items(), start=4):
            ws[f"D{i}"] = month
            ws[f"E{i}"] = float(value)
            ws[f"E{i}"].number_format = '$#,##0.00'

        ws.column_dimensions["A"].width = 22
        ws.column_dimensions["B"].width = 18
        ws.column_dimensions["D"].width = 16
        ws.column_dimensions["E"].width = 16

    def _create_table_sheet(self, wb: Workbook, title: str, headers: List[str], rows: List[List[str]],
                            status_col: Optional[int] = None, money_cols: tuple = ()):
        ws = wb.create_sheet(title)

        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.fill = self.HEADER_FILL
            cell.font = self.HEADER_FONT
            cell.border = self.BORDER

        for row_num, row in enumerate(rows, start=2):
            for col, value in enumerate(row, start=1):
                if col in money_cols:
                    cell = ws.cell(row=row_num, column=col, value=float(value))
                    cell.number_format = '$#,##0.00'
                else:
                    cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = self.BORDER

                if col == status_col:
                    fill = _STATUS_FILLS.get(value)
                    if fill is not None:
                        cell.fill = getattr(self, fill)

        for col in range(1, len(headers) + 1):
            ws.column_dimensions[ws.cell(row=1, column=col).column_letter].width = 16

    def generate_financial_html(
        self,
        analytics: FinancialAnalytics,
        invoices: List[Invoice],
        filename: Optional[str] = None
    ) -> Path:
        """HTML dashboard of the analytics and open invoices."""
        open_invoices = [
            inv for inv in invoices
            if inv.status not in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED)
        ]
        html_content = Template(FINANCIAL_HTML_TEMPLATE).render(
            analytics=analytics,
            invoices=open_invoices,
            generated_at=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        )

        filename = filename or export_filename("financial_summary", extension="html")
        output_path = self.output_dir / filename
        with open(output_path, "w") as f:
            f.write(html_content)
        log_export(logger, "financial_summary", "html", len(open_invoices), str(output_path))
        return output_path


_STATUS_FILLS = {
    InvoiceStatus.PAID.display_name: "PAID_FILL",
    InvoiceStatus.OVERDUE.display_name: "OVERDUE_FILL",
    InvoiceStatus.PARTIALLY_PAID.display_name: "PARTIAL_FILL",
}


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime(DATE_FORMAT)
    return str(value)


_STYLE = """
        body { font-family: Arial, sans-serif; margin: 20px; background: #f5f5f5; }
        .container { max-width: 1200px; margin: 0 auto; background: white; padding: 20px; border-radius: 8px; box-shadow: 0 2px 4px rgba(0,0,0,0.1); }
        h1 { color: #333; border-bottom: 2px solid #366092; padding-bottom: 10px; }
        h2 { color: #366092; margin-top: 30px; }
        .summary-grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(200px, 1fr)); gap: 20px; margin: 20px 0; }
        .summary-card { background: #f8f9fa; padding: 15px; border-radius: 8px; border-left: 4px solid #366092; }
        .summary-card h3 { margin: 0 0 10px 0; color: #666; font-size: 14px; }
        .summary-card .value { font-size: 24px; font-weight: bold; color: #333; }
        table { width: 100%; border-collapse: collapse; margin: 20px 0; }
        th, td { padding: 12px; text-align: left; border-bottom: 1px solid #ddd; }
        th { background: #366092; color: white; }
        .status-overdue { background: #ffc7ce; color: #9c0006; padding: 4px 8px; border-radius: 4px; }
        .status-partially_paid { background: #ffeb9c; color: #9c5700; padding: 4px 8px; border-radius: 4px; }
        .footer { margin-top: 40px; text-align: center; color: #666; font-size: 12px; }
"""

FINANCIAL_HTML_TEMPLATE = """
<!DOCTYPE html>
<html>
<head>
    <title>Financial Summary</title>
    <style>""" + _STYLE + """</style>
</head>
<body>
    <div class="container">
        <h1>Financial Summary</h1>
        <p>Generated: {{ generated_at }}</p>

        <div class="summary-grid">
            <div class="summary-card"><h3>Total Revenue</h3><div class="value">${{ "%.2f"|format(analytics.total_revenue|float) }}</div></div>
            <div class="summary-card"><h3>Outstanding</h3><div class="value">${{ "%.2f"|format(analytics.outstanding_amount|float) }}</div></div>
            <div class="summary-card"><h3>Overdue</h3><div class="value">${{ "%.2f"|format(analytics.overdue_amount|float) }}</div></div>
            <div class="summary-card"><h3>Invoices</h3><div class="value">{{ analytics.total_invoices }}</div></div>
            <div class="summary-card"><h3>Collection Rate</h3><div class="value">{{ "%.1f"|format(analytics.collection_rate) }}%</div></div>
        </div>

        <h2>Open Invoices ({{ invoices|length }})</h2>
        <table>
            <thead>
                <tr><th>Number</th><th>Client</th><th>Due</th><th>Status</th><th>Total</th><th>Remaining</th></tr>
            </thead>
            <tbody>
                {% for inv in invoices %}
                <tr>
                    <td>{{ inv.invoice_number }}</td>
                    <td>{{ inv.client_name|truncate(30) }}</td>
                    <td>{{ inv.due_date.strftime('%Y-%m-%d') }}</td>
                    <td><span class="status-{{ inv.status.value }}">{{ inv.status.display_name }}</span></td>
                    <td>{{ inv.currency.symbol }}{{ "%.2f"|format(inv.total_amount|float) }}</td>
                    <td>{{ inv.currency.symbol }}{{ "%.2f"|format(inv.remaining_amount|float) }}</td>
                </tr>
                {% endfor %}
            </tbody>
        </table>

        <div class="footer">Generated by ERP Desk | {{ generated_at }}</div>
    </div>
</body>
</html>
"""

REPORT_HTML_TEMPLATE = """
<!DOCTYPE html>
<html>
<head>
    <title>{{ report.report_name }}</title>
    <style>""" + _STYLE + """</style>
</head>
<body>
    <div class="container">
        <h1>{{ report.report_name }}</h1>
        {% if report.report_description %}<p>{{ report.report_description }}</p>{% endif %}
        <p>{{ report.category.display_name }} | {{ report.data_source.display_name }} | Generated: {{ generated_at }}</p>

        <table>
            <thead>
                <tr>{% for h in headers %}<th>{{ h }}</th>{% endfor %}</tr>
            </thead>
            <tbody>
                {% for row in rows %}
                <tr>{% for value in row %}<td>{{ value }}</td>{% endfor %}</tr>
                {% endfor %}
            </tbody>
        </table>
        <p><em>{{ rows|length }} rows</em></p>

        <div class="footer">Generated by ERP Desk | {{ generated_at }}</div>
    </div>
</body>
</html>
"""
