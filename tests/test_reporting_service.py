"""
Tests for report generation and report persistence.
"""
import json
import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from erp_desk.exceptions import NetworkError, ReportNotFoundError
from erp_desk.models import DateRange
from erp_desk.project_models import ProjectBoard, ProjectTask, TaskStatus
from erp_desk.record_mapper import DASHBOARD, REPORT
from erp_desk.reporting_models import (
    AmountRange, CustomFilter, Dashboard, DataSource, ExecutionStatus, ExportFormat,
    FilterLogic, FilterOperator, Report, ReportCategory, ReportFilters, ReportType, SortCriteria,
    SortDirection,
)
from erp_desk.reporting_service import (
    ReportingService, apply_report_filters, matches_custom_filter, sort_rows,
)

from conftest import NOW


@pytest.fixture
def loaded(reporting_service, financial_service, invoice_mix):
    """Reporting service over the five-invoice mix."""
    financial_service.invoices.value = invoice_mix
    financial_service.payments.value = [p for inv in invoice_mix for p in inv.payment_history]
    return reporting_service


def _invoice_rows(invoice_mix):
    return [
        {"invoice_number": i.invoice_number, "client_name": i.client_name, "status": i.status.value,
         "issue_date": i.issue_date, "total_amount": i.total_amount, "notes": i.notes}
        for i in invoice_mix
    ]


class TestCustomFilters:
    """Tests for single custom filter evaluation."""

    ROW = {"client_name": "Gamma Logistics, LLC", "total_amount": Decimal("400.00"), "notes": None,
           "status": "overdue"}

    @pytest.mark.parametrize("operator,value,expected", [
        (FilterOperator.EQUALS, "overdue", True),
        (FilterOperator.EQUALS, "Overdue", False),
        (FilterOperator.NOT_EQUALS, "paid", True),
        (FilterOperator.CONTAINS, "logistics", True),
        (FilterOperator.STARTS_WITH, "GAMMA", True),
        (FilterOperator.ENDS_WITH, "llc", True),
        (FilterOperator.IN_LIST, "paid, overdue", True),
        (FilterOperator.NOT_IN_LIST, "paid,sent", True),
    ])
    def test_text_operators(self, operator, value, expected):
        field = "client_name" if operator in (
            FilterOperator.CONTAINS, FilterOperator.STARTS_WITH, FilterOperator.ENDS_WITH
        ) else "status"
        assert matches_custom_filter(self.ROW, CustomFilter(field, operator, value)) is expected

    @pytest.mark.parametrize("operator,value,expected", [
        (FilterOperator.GREATER_THAN, "399.99", True),
        (FilterOperator.GREATER_THAN, "400", False),
        (FilterOperator.GREATER_THAN_OR_EQUAL, "400", True),
        (FilterOperator.LESS_THAN, "1000", True),
        (FilterOperator.LESS_THAN_OR_EQUAL, "399", False),
    ])
    def test_numeric_operators(self, operator, value, expected):
        assert matches_custom_filter(self.ROW, CustomFilter("total_amount", operator, value)) is expected

    def test_numeric_operator_on_text_fails(self):
        custom = CustomFilter("client_name", FilterOperator.GREATER_THAN, "5")
        assert matches_custom_filter(self.ROW, custom) is False

    def test_null_checks(self):
        assert matches_custom_filter(self.ROW, CustomFilter("notes", FilterOperator.IS_NULL)) is True
        assert matches_custom_filter(self.ROW, CustomFilter("missing", FilterOperator.IS_NULL)) is True
        assert matches_custom_filter(self.ROW, CustomFilter("status", FilterOperator.IS_NOT_NULL)) is True

    def test_missing_field_fails_other_operators(self):
        assert matches_custom_filter(self.ROW, CustomFilter("missing", FilterOperator.NOT_EQUALS, "x")) is False


class TestFilterPipeline:
    """Tests for the full filter and sort pipeline."""

    def test_status_filter(self, invoice_mix):
        rows = apply_report_filters(_invoice_rows(invoice_mix), ReportFilters(status_filters=["paid", "overdue"]),
                                    DataSource.INVOICES)
        assert [r["invoice_number"] for r in rows] == ["INV-2024-0001", "INV-2024-0003"]

    def test_date_range_uses_issue_date(self, invoice_mix):
        filters = ReportFilters(date_range=DateRange(NOW - timedelta(days=15), NOW))
        rows = apply_report_filters(_invoice_rows(invoice_mix), filters, DataSource.INVOICES)
        assert [r["invoice_number"] for r in rows] == ["INV-2024-0002", "INV-2024-0004"]

    def test_amount_range_inclusive(self, invoice_mix):
        filters = ReportFilters(amount_range=AmountRange(min=Decimal("400"), max=Decimal("700")))
        rows = apply_report_filters(_invoice_rows(invoice_mix), filters, DataSource.INVOICES)
        assert [r["invoice_number"] for r in rows] == ["INV-2024-0002", "INV-2024-0003", "INV-2024-0005"]

    def test_amount_range_ignored_for_tasks(self):
        rows = [{"title": "a", "total_amount": Decimal("1")}]
        filters = ReportFilters(amount_range=AmountRange(min=Decimal("100")))
        assert apply_report_filters(rows, filters, DataSource.TASKS) == rows

    def test_filters_combine(self, invoice_mix):
        filters = ReportFilters(
            status_filters=["sent", "paid"],
            custom_filters=[CustomFilter("client_name", FilterOperator.CONTAINS, "acme")],
            sort_by=[SortCriteria("total_amount", SortDirection.ASCENDING)],
        )
        rows = apply_report_filters(_invoice_rows(invoice_mix), filters, DataSource.INVOICES)
        assert [r["invoice_number"] for r in rows] == ["INV-2024-0004", "INV-2024-0001"]

    def test_or_logic_matches_any_custom_filter(self, invoice_mix):
        custom = [
            CustomFilter("status", FilterOperator.EQUALS, "paid"),
            CustomFilter("status", FilterOperator.EQUALS, "overdue"),
        ]

        either = apply_report_filters(_invoice_rows(invoice_mix),
                                      ReportFilters(custom_filters=custom, filter_logic=FilterLogic.OR),
                                      DataSource.INVOICES)
        both = apply_report_filters(_invoice_rows(invoice_mix), ReportFilters(custom_filters=custom),
                                    DataSource.INVOICES)

        assert [r["invoice_number"] for r in either] == ["INV-2024-0001", "INV-2024-0003"]
        assert both == []

    def test_or_logic_still_narrowed_by_status(self, invoice_mix):
        filters = ReportFilters(
            status_filters=["paid", "sent"],
            custom_filters=[
                CustomFilter("client_name", FilterOperator.CONTAINS, "gamma"),
                CustomFilter("total_amount", FilterOperator.GREATER_THAN, "500"),
            ],
            filter_logic=FilterLogic.OR,
        )
        rows = apply_report_filters(_invoice_rows(invoice_mix), filters, DataSource.INVOICES)
        assert [r["invoice_number"] for r in rows] == ["INV-2024-0001"]

    def test_multi_key_sort(self):
        rows = [
            {"client": "b", "amount": 1},
            {"client": "a", "amount": 1},
            {"client": "c", "amount": 5},
        ]
        ordered = sort_rows(rows, [
            SortCriteria("amount", SortDirection.DESCENDING),
            SortCriteria("client", SortDirection.ASCENDING),
        ])
        assert [r["client"] for r in ordered] == ["c", "a", "b"]

    def test_nulls_sort_low(self):
        rows = [{"n": 2}, {"n": None}, {"n": 1}]
        assert [r["n"] for r in sort_rows(rows, [SortCriteria("n")])] == [None, 1, 2]


class TestReportGeneration:
    """Tests for generating report rows."""

    def test_invoice_report_projects_fields(self, loaded):
        report = loaded.create_report(Report(
            report_name="Open AR",
            selected_fields=["invoice_number", "remaining_amount"],
            filters=ReportFilters(status_filters=["partially_paid", "overdue", "sent"]),
        ))

        rows = loaded.generate_report(report)

        assert rows == [
            {"invoice_number": "INV-2024-0002", "remaining_amount": Decimal("400.00")},
            {"invoice_number": "INV-2024-0003", "remaining_amount": Decimal("400.00")},
            {"invoice_number": "INV-2024-0004", "remaining_amount": Decimal("300.00")},
        ]

    def test_payment_report(self, loaded):
        report = loaded.create_report(Report(report_name="Payments", data_source=DataSource.PAYMENTS))
        rows = loaded.generate_report(report)

        assert len(rows) == 2
        assert rows[0]["payment_method"] == "Bank Transfer"
        assert rows[0]["status"] == "completed"

    def test_metadata_and_execution_log(self, loaded, store):
        report = loaded.create_report(Report(report_name="All invoices"))

        loaded.generate_report(report)

        stored = loaded.get_report(report.id)
        assert stored.metadata.last_generated == NOW
        assert stored.metadata.data_row_count == 5
        assert stored.metadata.generation_time is not None
        assert [e.status for e in stored.metadata.execution_log] == [
            ExecutionStatus.STARTED, ExecutionStatus.COMPLETED,
        ]
        assert stored.status_description == "Active"
        assert store.count(REPORT) == 1

    def test_results_cached(self, loaded, financial_service):
        report = loaded.create_report(Report(report_name="All invoices"))
        first = loaded.generate_report(report)

        financial_service.invoices.value = []
        assert loaded.generate_report(report) == first
        assert len(report.metadata.execution_log) == 2

        loaded.clear_cache()
        assert loaded.generate_report(report) == []

    def test_failed_metadata_write(self, loaded, store):
        report = loaded.create_report(Report(report_name="All invoices"))
        store.fail_on("save", REPORT)

        with pytest.raises(NetworkError):
            loaded.generate_report(report)

        assert report.metadata.execution_log[-1].status == ExecutionStatus.FAILED
        assert isinstance(loaded.error.value, NetworkError)

    def test_source_without_service(self, store, clock):
        service = ReportingService(store, clock=clock)
        report = service.create_report(Report(report_name="Tasks", data_source=DataSource.TASKS))
        assert service.generate_report(report) == []

    def test_task_report(self, loaded, project_service):
        board = project_service.save_board(ProjectBoard(name="Close", owner_id="tester"))
        project_service.save_task(ProjectTask(board_id=board.id, title="Accruals", assigned_to=["ann", "bo"],
                                              custom_fields={"category": "finance"}))
        project_service.save_task(ProjectTask(board_id=board.id, title="Audit", status=TaskStatus.COMPLETED))

        report = loaded.create_report(Report(
            report_name="Open tasks",
            data_source=DataSource.TASKS,
            filters=ReportFilters(status_filters=["NOT_STARTED"]),
        ))
        rows = loaded.generate_report(report)

        assert len(rows) == 1
        assert rows[0]["assigned_to"] == "ann, bo"
        assert rows[0]["category"] == "finance"

    def test_export(self, loaded, tmp_path):
        report = loaded.create_report(Report(report_name="AR Export", selected_fields=["invoice_number"]))

        path = loaded.export_report(report, ExportFormat.JSON, output_dir=tmp_path)

        assert path.name == "AR_Export.json"
        assert len(json.loads(path.read_text())) == 5


class TestReportManagement:
    """Tests for report and dashboard persistence."""

    def test_duplicate_is_private_copy(self, reporting_service):
        original = reporting_service.create_report(Report(
            report_name="Revenue", is_public=True, shared_with=["finance"],
        ))
        original.metadata.tags = ["monthly"]
        original.metadata.data_row_count = 10

        copy_ = reporting_service.duplicate_report(original)

        assert copy_.id != original.id
        assert copy_.report_name == "Revenue (Copy)"
        assert copy_.is_public is False
        assert copy_.shared_with == []
        assert copy_.metadata.tags == ["monthly"]
        assert copy_.metadata.data_row_count is None
        assert copy_.created_by == "tester"

    def test_delete_clears_cache(self, loaded, store):
        report = loaded.create_report(Report(report_name="All invoices"))
        loaded.generate_report(report)

        loaded.delete_report(report.id)

        assert store.count(REPORT) == 0
        with pytest.raises(ReportNotFoundError):
            loaded.get_report(report.id)
        with pytest.raises(ReportNotFoundError):
            loaded.delete_report(report.id)

    def test_search_and_filter(self, reporting_service):
        reporting_service.create_report(Report(report_name="Revenue", report_description="Monthly totals"))
        ops = reporting_service.create_report(Report(report_name="Backlog", category=ReportCategory.OPERATIONAL,
                                                     report_type=ReportType.CHART, is_public=True))
        ops.metadata.tags = ["weekly"]

        assert [r.report_name for r in reporting_service.search_reports("monthly")] == ["Revenue"]
        assert [r.report_name for r in reporting_service.search_reports("operational")] == ["Backlog"]
        assert len(reporting_service.filter_reports(category=ReportCategory.FINANCIAL)) == 1
        assert len(reporting_service.filter_reports(report_type=ReportType.CHART, is_public=True)) == 1

    def test_fetch_reports_newest_first(self, reporting_service):
        older = Report(report_name="Old", updated_at=NOW - timedelta(days=3))
        newer = Report(report_name="New", updated_at=NOW)
        reporting_service.create_report(older)
        reporting_service.create_report(newer)

        assert [r.report_name for r in reporting_service.fetch_reports()] == ["New", "Old"]
        assert reporting_service.is_loading.value is False

    def test_dashboards(self, reporting_service, store):
        reporting_service.create_dashboard(Dashboard(name="zeta"))
        alpha = reporting_service.create_dashboard(Dashboard(name="Alpha"))
        main = reporting_service.create_dashboard(Dashboard(name="Main", is_default=True))

        assert [d.name for d in reporting_service.dashboards.value] == ["Main", "Alpha", "zeta"]
        reporting_service.delete_dashboard(alpha.id)
        assert store.count(DASHBOARD) == 2
        assert reporting_service.get_dashboard(main.id).created_by == "tester"
        with pytest.raises(ReportNotFoundError):
            reporting_service.get_dashboard(alpha.id)

    def test_analytics(self, reporting_service):
        reporting_service.create_report(Report(report_name="A", is_public=True, created_at=NOW))
        reporting_service.create_report(Report(report_name="B", category=ReportCategory.SALES,
                                               created_at=datetime(2024, 1, 3)))
        generated = reporting_service.create_report(Report(report_name="C", created_at=NOW))
        generated.metadata.generation_time = 0.9

        analytics = reporting_service.generate_report_analytics()

        assert analytics.total_reports == 3
        assert analytics.public_reports == 1
        assert analytics.private_reports == 2
        assert analytics.category_counts == {"financial": 2, "sales": 1}
        assert analytics.type_counts == {"tabular": 3}
        assert analytics.recent_reports == 2
        assert analytics.average_generation_time == pytest.approx(0.3)
