"""
Tests for the observable primitives and the screen view models.
"""
import pytest
from decimal import Decimal

from erp_desk.exceptions import NetworkError
from erp_desk.financial_view_model import BulkActionType, FinancialTab, FinancialViewModel
from erp_desk.models import InvoiceFilter, InvoiceStatus
from erp_desk.observable import Debouncer, Observable
from erp_desk.record_mapper import INVOICE, REPORT
from erp_desk.reporting_models import Report, ReportCategory
from erp_desk.reporting_view_model import (
    ReportBulkActionType, ReportFilterOptions, ReportingTab, ReportingViewModel,
)

from conftest import NOW, make_invoice, make_payment


class TestObservable:

    def test_notifies_on_change(self):
        seen = []
        value = Observable(1)
        value.subscribe(lambda new, old: seen.append((new, old)))

        value.value = 2
        value.value = 2
        value.set(2, force=True)

        assert seen == [(2, 1), (2, 2)]

    def test_unsubscribe(self):
        seen = []
        value = Observable("a")
        unsubscribe = value.subscribe(lambda new, old: seen.append(new))

        unsubscribe()
        value.value = "b"

        assert seen == []
        assert value.subscriber_count == 0

    def test_failing_subscriber_does_not_block_others(self):
        seen = []
        value = Observable(0, "counter")
        value.subscribe(lambda new, old: 1 / 0)
        value.subscribe(lambda new, old: seen.append(new))

        value.value = 5

        assert seen == [5]


class TestDebouncer:

    def test_zero_delay_runs_immediately(self):
        calls = []
        Debouncer(0, lambda: calls.append(1)).trigger()
        assert calls == [1]

    def test_flush_runs_pending_once(self):
        calls = []
        debouncer = Debouncer(60, lambda: calls.append(1))
        debouncer.trigger()
        debouncer.trigger()

        assert debouncer.pending is True
        debouncer.flush()
        debouncer.flush()

        assert calls == [1]
        assert debouncer.pending is False

    def test_cancel(self):
        calls = []
        debouncer = Debouncer(60, lambda: calls.append(1))
        debouncer.trigger()
        debouncer.cancel()
        debouncer.flush()
        assert calls == []


@pytest.fixture
def financial_vm(financial_service):
    vm = FinancialViewModel(financial_service, debounce_seconds=0)
    yield vm
    vm.close()


class TestFinancialViewModel:
    """Tests for financial screen state."""

    def test_search_refilters(self, financial_vm, financial_service, invoice_mix):
        financial_service.invoices.value = invoice_mix

        financial_vm.search_text.value = "acme"

        assert [i.invoice_number for i in financial_vm.filtered_invoices.value] == [
            "INV-2024-0001", "INV-2024-0004",
        ]

    def test_filter_applies_after_search(self, financial_vm, financial_service, invoice_mix):
        financial_service.invoices.value = invoice_mix
        financial_vm.search_text.value = "acme"

        financial_vm.update_invoice_filter(InvoiceFilter(statuses=[InvoiceStatus.SENT]))
        assert [i.invoice_number for i in financial_vm.filtered_invoices.value] == ["INV-2024-0004"]

        financial_vm.clear_invoice_filter()
        assert len(financial_vm.filtered_invoices.value) == 2

    def test_debounced_search_waits_for_flush(self, financial_service, invoice_mix):
        vm = FinancialViewModel(financial_service, debounce_seconds=60)
        try:
            financial_service.invoices.value = invoice_mix
            vm.search_text.value = "gamma"
            assert vm.filtered_invoices.value == []

            vm.flush()
            assert [i.invoice_number for i in vm.filtered_invoices.value] == ["INV-2024-0003"]
        finally:
            vm.close()

    def test_payment_updates_invoice_list(self, financial_vm):
        invoice = financial_vm.create_invoice(make_invoice())

        financial_vm.create_payment(make_payment(invoice.id, "250.00"))

        assert financial_vm.filtered_invoices.value[0].status == InvoiceStatus.PARTIALLY_PAID
        assert len(financial_vm.filtered_payments.value) == 1

    def test_errors_published_not_raised(self, financial_vm, store):
        store.fail_on("save", INVOICE)

        assert financial_vm.create_invoice(make_invoice()) is None
        assert isinstance(financial_vm.error.value, NetworkError)

        financial_vm.clear_error()
        assert financial_vm.error.value is None

    def test_bulk_mark_paid_clears_selection(self, financial_vm):
        a = financial_vm.create_invoice(make_invoice("INV-2024-0001"))
        b = financial_vm.create_invoice(make_invoice("INV-2024-0002"))
        financial_vm.select_all_invoices()
        assert financial_vm.selected_invoice_ids.value == {a.id, b.id}

        financial_vm.perform_bulk_action(BulkActionType.MARK_AS_PAID)

        assert financial_vm.selected_invoice_ids.value == set()
        assert financial_vm.invoice_status_counts == {InvoiceStatus.PAID: 2}

    def test_failed_bulk_keeps_selection(self, financial_vm, store):
        a = financial_vm.create_invoice(make_invoice())
        financial_vm.toggle_invoice_selection(a.id)
        store.fail_on("delete", INVOICE)

        financial_vm.perform_bulk_action(BulkActionType.DELETE)

        assert financial_vm.selected_invoice_ids.value == {a.id}
        assert isinstance(financial_vm.error.value, NetworkError)

    def test_delete_clears_selected_invoice(self, financial_vm):
        invoice = financial_vm.create_invoice(make_invoice())
        financial_vm.select_invoice(invoice)

        financial_vm.delete_invoice(invoice)

        assert financial_vm.selected_invoice.value is None

    def test_analytics_properties(self, financial_vm, financial_service, invoice_mix):
        assert financial_vm.total_revenue == Decimal("0")

        financial_service.invoices.value = invoice_mix
        financial_vm.load_analytics()

        assert financial_vm.total_revenue == Decimal("1000.00")
        assert financial_vm.outstanding_amount == Decimal("1100.00")
        assert financial_vm.overdue_amount == Decimal("400.00")

    def test_overdue_and_upcoming(self, financial_vm, financial_service):
        financial_service.invoices.value = [
            make_invoice("INV-2024-0001", due_in_days=-2),
            make_invoice("INV-2024-0002", due_in_days=3),
            make_invoice("INV-2024-0003", due_in_days=30),
        ]

        assert [i.invoice_number for i in financial_vm.overdue_invoices()] == ["INV-2024-0001"]
        assert [i.invoice_number for i in financial_vm.upcoming_invoices()] == ["INV-2024-0002"]

    def test_export_filtered_invoices(self, financial_vm, financial_service, invoice_mix):
        financial_service.invoices.value = invoice_mix
        financial_vm.search_text.value = "acme"

        path = financial_vm.export_invoices()

        assert financial_vm.last_export == path
        assert len(path.read_text().strip().split("\n")) == 3

    def test_display_names(self):
        assert BulkActionType.MARK_AS_PAID.display_name == "Mark as Paid"
        assert BulkActionType.DELETE.is_destructive is True
        assert FinancialTab.ANALYTICS.display_name == "Analytics"


@pytest.fixture
def reporting_vm(reporting_service):
    vm = ReportingViewModel(reporting_service, debounce_seconds=0)
    yield vm
    vm.close()


class TestReportingViewModel:
    """Tests for reporting screen state."""

    def test_search_and_filter_options(self, reporting_vm):
        reporting_vm.create_report(Report(report_name="Revenue", created_at=NOW))
        reporting_vm.create_report(Report(report_name="Pipeline", category=ReportCategory.SALES,
                                          is_public=True, created_at=NOW))

        reporting_vm.search_text.value = "pipe"
        assert [r.report_name for r in reporting_vm.filtered_reports.value] == ["Pipeline"]

        reporting_vm.search_text.value = ""
        reporting_vm.update_filter_options(ReportFilterOptions(is_public=False))
        assert [r.report_name for r in reporting_vm.filtered_reports.value] == ["Revenue"]

        reporting_vm.clear_filter_options()
        assert len(reporting_vm.filtered_reports.value) == 2

    def test_builder_round_trip(self, reporting_vm):
        reporting_vm.start_report_builder()
        assert reporting_vm.selected_tab.value == ReportingTab.BUILDER

        reporting_vm.wizard.builder.report_name = "Aging"
        assert reporting_vm.can_create_report is False
        while not reporting_vm.wizard.is_review:
            reporting_vm.wizard.next_step()

        report = reporting_vm.create_report_from_builder()

        assert report.report_name == "Aging"
        assert reporting_vm.selected_tab.value == ReportingTab.REPORTS
        assert [r.id for r in reporting_vm.filtered_reports.value] == [report.id]

    def test_builder_error_published(self, reporting_vm):
        assert reporting_vm.create_report_from_builder() is None
        assert reporting_vm.error.value.code == "BUILDER_INVALID"

    def test_generate_sets_report_data(self, reporting_vm, financial_service, invoice_mix):
        financial_service.invoices.value = invoice_mix
        report = reporting_vm.create_report(Report(report_name="All"))

        rows = reporting_vm.generate_report(report)

        assert len(rows) == 5
        assert reporting_vm.selected_report.value is report

    def test_bulk_make_public(self, reporting_vm, reporting_service):
        reporting_vm.create_report(Report(report_name="A"))
        reporting_vm.create_report(Report(report_name="B"))
        reporting_vm.select_all_reports()

        reporting_vm.perform_bulk_action(ReportBulkActionType.MAKE_PUBLIC)

        assert reporting_vm.public_reports == 2
        assert reporting_vm.selected_report_ids.value == set()

    def test_bulk_duplicate(self, reporting_vm, store):
        report = reporting_vm.create_report(Report(report_name="A"))
        reporting_vm.toggle_report_selection(report.id)

        reporting_vm.perform_bulk_action(ReportBulkActionType.DUPLICATE)

        assert store.count(REPORT) == 2

    def test_dashboard_builder(self, reporting_vm):
        assert reporting_vm.create_dashboard_from_builder() is None

        reporting_vm.dashboard_builder.name = "Finance"
        dashboard = reporting_vm.create_dashboard_from_builder()

        assert dashboard.created_by == "tester"
        assert reporting_vm.dashboard_builder.name == ""
        assert [d.name for d in reporting_vm.filtered_dashboards.value] == ["Finance"]

    def test_recent_reports(self, reporting_vm):
        reporting_vm.create_report(Report(report_name="new", created_at=NOW))
        reporting_vm.create_report(Report(report_name="old", created_at=NOW.replace(month=1)))

        assert [r.report_name for r in reporting_vm.recent_reports()] == ["new"]
