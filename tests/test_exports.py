"""
Tests for CSV, JSON, Excel and HTML exports.
"""
import csv
import io
import json
import pytest
from decimal import Decimal
from openpyxl import load_workbook

from erp_desk.analytics import build_financial_analytics
from erp_desk.exceptions import ExportFailedError
from erp_desk.exports import (
    INVOICE_CSV_COLUMNS, PAYMENT_CSV_COLUMNS, ExportGenerator, export_filename,
    invoices_to_csv, payments_to_csv, safe_filename, sheet_title, write_csv,
)
from erp_desk.reporting_models import ExportFormat, Report

from conftest import NOW


@pytest.fixture
def generator(tmp_path):
    return ExportGenerator(output_dir=tmp_path / "exports")


@pytest.fixture
def report_rows():
    return [
        {"invoice_number": "INV-2024-0001", "client_name": "Acme Corp", "total_amount": Decimal("1000.00"),
         "issue_date": NOW},
        {"invoice_number": "INV-2024-0003", "client_name": "Gamma Logistics, LLC", "total_amount": Decimal("400.00"),
         "issue_date": NOW, "notes": None},
    ]


class TestFinancialCsv:
    """Tests for invoice and payment CSV text."""

    def test_invoice_csv_shape(self, invoice_mix):
        content = invoices_to_csv(invoice_mix)
        rows = list(csv.reader(io.StringIO(content)))

        assert len(content.strip().split("\n")) == len(invoice_mix) + 1
        assert rows[0] == INVOICE_CSV_COLUMNS
        assert rows[1] == [
            "INV-2024-0001", "Acme Corp", "2024-05-06", "2024-06-05", "Paid",
            "1000.00", "0.00", "1000.00", "US Dollar",
        ]

    def test_commas_are_quoted(self, invoice_mix):
        content = invoices_to_csv(invoice_mix)

        assert '"Gamma Logistics, LLC"' in content
        rows = list(csv.reader(io.StringIO(content)))
        assert rows[3][1] == "Gamma Logistics, LLC"
        assert all(len(row) == len(INVOICE_CSV_COLUMNS) for row in rows)

    def test_empty_collection_is_header_only(self):
        assert invoices_to_csv([]).strip() == ",".join(INVOICE_CSV_COLUMNS)

    def test_payment_csv(self, invoice_mix):
        payments = [p for inv in invoice_mix for p in inv.payment_history]
        rows = list(csv.reader(io.StringIO(payments_to_csv(payments))))

        assert rows[0] == PAYMENT_CSV_COLUMNS
        assert len(rows) == 3
        assert rows[1][2] == "1000.00"
        assert rows[1][5] == "Bank Transfer"
        assert rows[1][6] == "Completed"

    def test_export_filename(self):
        assert export_filename("invoices", NOW) == "invoices_2024-06-15_12-00-00.csv"
        assert export_filename("summary", NOW, extension="xlsx").endswith(".xlsx")

    def test_write_csv_creates_directory(self, tmp_path, invoice_mix):
        path = write_csv(invoices_to_csv(invoice_mix), tmp_path / "nested" / export_filename("invoices", NOW))

        assert path.parent.name == "nested"
        assert path.read_text().startswith("Invoice Number,")


class TestReportExports:
    """Tests for exporting generated report rows."""

    def test_csv_quotes_everything(self, generator, report_rows):
        report = Report(report_name="Open Receivables")
        path = generator.export_report(report, report_rows, ExportFormat.CSV)

        assert path.name == "Open_Receivables.csv"
        lines = path.read_text().strip().split("\n")
        assert lines[0] == '"client_name","invoice_number","issue_date","notes","total_amount"'
        assert lines[2] == '"Gamma Logistics, LLC","INV-2024-0003","2024-06-15","","400.00"'

    def test_csv_without_rows_fails(self, generator):
        with pytest.raises(ExportFailedError):
            generator.export_report(Report(report_name="Empty"), [], ExportFormat.CSV)

    def test_json(self, generator, report_rows):
        path = generator.export_report(Report(report_name="AR"), report_rows, ExportFormat.JSON)

        data = json.loads(path.read_text())
        assert data[0]["total_amount"] == "1000.00"
        assert data[0]["issue_date"] == NOW.isoformat()

    def test_excel(self, generator, report_rows):
        path = generator.export_report(Report(report_name="AR"), report_rows, ExportFormat.EXCEL)

        assert path.suffix == ".xlsx"
        ws = load_workbook(path).active
        assert ws.title == "AR"
        assert ws.cell(row=1, column=1).value == "client_name"
        assert ws.cell(row=2, column=5).value == 1000.0

    def test_excel_name_with_reserved_characters(self, generator, report_rows):
        path = generator.export_report(Report(report_name="Q1: Revenue [draft]"), report_rows, ExportFormat.EXCEL)

        assert path.name == "Q1_Revenue_draft.xlsx"
        assert load_workbook(path).active.title == "Q1  Revenue  draft"

    def test_name_cannot_leave_output_dir(self, generator, report_rows):
        path = generator.export_report(Report(report_name="../../etc/passwd"), report_rows, ExportFormat.JSON)

        assert path.parent == generator.output_dir
        assert path.name == "etc_passwd.json"

    def test_rejected_cell_value_is_export_error(self, generator):
        rows = [{"notes": "bell\x07"}]
        with pytest.raises(ExportFailedError) as exc_info:
            generator.export_report(Report(report_name="AR"), rows, ExportFormat.EXCEL)
        assert exc_info.value.code == "EXPORT_FAILED"

    def test_sheet_title_and_filename_helpers(self):
        assert sheet_title("a/b?c*") == "a b c"
        assert sheet_title("x" * 40) == "x" * 31
        assert sheet_title("::") == "Report"
        assert safe_filename("...") == "report"

    def test_html(self, generator, report_rows):
        report = Report(report_name="AR", report_description="Receivables by client")
        path = generator.export_report(report, report_rows, ExportFormat.HTML)

        html = path.read_text()
        assert "Receivables by client" in html
        assert "Gamma Logistics, LLC" in html
        assert "2 rows" in html


class TestFinancialSummaries:
    """Tests for the workbook and HTML dashboard."""

    def test_workbook_sheets(self, generator, invoice_mix):
        payments = [p for inv in invoice_mix for p in inv.payment_history]
        analytics = build_financial_analytics(invoice_mix, payments, NOW)

        path = generator.generate_financial_workbook(analytics, invoice_mix, payments, filename="summary.xlsx")

        wb = load_workbook(path)
        assert wb.sheetnames == ["Summary", "Invoices", "Payments"]
        assert wb["Summary"]["B4"].value == 1000.0
        assert wb["Invoices"].max_row == len(invoice_mix) + 1
        assert wb["Payments"].cell(row=2, column=3).value == 1000.0

    def test_html_lists_open_invoices(self, generator, invoice_mix):
        analytics = build_financial_analytics(invoice_mix, [], NOW)

        path = generator.generate_financial_html(analytics, invoice_mix, filename="summary.html")

        html = path.read_text()
        assert "Open Invoices (3)" in html
        assert "INV-2024-0005" not in html
        assert "status-overdue" in html
