"""
Reporting service.

Persists reports and dashboards and turns a report definition into rows:
1. Pull rows from the financial or project collections
2. Apply status, category, date, amount and custom filters
3. Sort, project onto the selected fields and cache the result
4. Record execution history on the report's metadata
"""
import copy
import time
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .config import config
from .exceptions import EntityNotFoundError, ErpDeskError, InvalidDataError, ReportNotFoundError
from .exports import ExportGenerator
from .financial_service import FinancialService
from .logging_config import get_logger, log_error
from .observable import Observable
from .project_service import ProjectService
from .record_mapper import (
    DASHBOARD, REPORT,
    dashboard_from_record, dashboard_to_record, report_from_record, report_to_record,
)
from .reporting_models import (
    CustomFilter, Dashboard, DataSource, ExecutionLogEntry, ExecutionStatus, ExportFormat,
    FilterLogic, FilterOperator, Report, ReportAnalytics, ReportCategory, ReportFilters,
    ReportMetadata, ReportType, SortCriteria, SortDirection,
)
from .store_client import DocumentStoreClient, create_store_client

logger = get_logger("reporting")

Row = Dict[str, Any]

# Field used for date range and amount range filters, per data source
DATE_FIELDS = {
    DataSource.INVOICES: "issue_date",
    DataSource.PAYMENTS: "payment_date",
    DataSource.TASKS: "due_date",
}

AMOUNT_FIELDS = {
    DataSource.INVOICES: "total_amount",
    DataSource.PAYMENTS: "amount",
}

_NUMERIC_OPERATORS = {
    FilterOperator.GREATER_THAN: lambda a, b: a > b,
    FilterOperator.LESS_THAN: lambda a, b: a < b,
    FilterOperator.GREATER_THAN_OR_EQUAL: lambda a, b: a >= b,
    FilterOperator.LESS_THAN_OR_EQUAL: lambda a, b: a <= b,
}


def _text(value) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _number(value) -> Optional[Decimal]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def matches_custom_filter(row: Row, custom: CustomFilter) -> bool:
    """Evaluate one custom filter against a row.

    Missing fields count as null. Text comparisons other than equality
    ignore case; numeric operators fail on non-numeric values.
    """
    value = row.get(custom.field)
    op = custom.operator

    if op == FilterOperator.IS_NULL:
        return value is None
    if op == FilterOperator.IS_NOT_NULL:
        return value is not None
    if value is None:
        return False

    if op in _NUMERIC_OPERATORS:
        left, right = _number(value), _number(custom.value)
        if left is None or right is None:
            return False
        return _NUMERIC_OPERATORS[op](left, right)

    text = _text(value)
    if op == FilterOperator.EQUALS:
        return text == custom.value
    if op == FilterOperator.NOT_EQUALS:
        return text != custom.value
    if op == FilterOperator.CONTAINS:
        return custom.value.lower() in text.lower()
    if op == FilterOperator.STARTS_WITH:
        return text.lower().startswith(custom.value.lower())
    if op == FilterOperator.ENDS_WITH:
        return text.lower().endswith(custom.value.lower())

    options = [v.strip() for v in custom.value.split(",")]
    if op == FilterOperator.IN_LIST:
        return text in options
    if op == FilterOperator.NOT_IN_LIST:
        return text not in options
    raise ValueError(f"Unsupported operator: {op}")


def sort_rows(rows: List[Row], criteria: List[SortCriteria]) -> List[Row]:
    """Multi-key sort; the first criterion is the primary key. Nulls sort low."""
    ordered = list(rows)
    for sort in reversed(criteria):
        ordered.sort(
            key=lambda row: (row.get(sort.field) is not None, row.get(sort.field) if row.get(sort.field) is not None else 0),
            reverse=sort.direction == SortDirection.DESCENDING,
        )
    return ordered


def apply_report_filters(rows: List[Row], filters: ReportFilters, data_source: DataSource) -> List[Row]:
    """Apply every filter in order, then sort."""
    date_field = DATE_FIELDS.get(data_source)
    amount_field = AMOUNT_FIELDS.get(data_source)

    if filters.date_range and date_field:
        rows = [
            r for r in rows
            if r.get(date_field) is None or filters.date_range.contains(r[date_field])
        ]
    if filters.status_filters:
        rows = [r for r in rows if r.get("status") is None or r["status"] in filters.status_filters]
    if filters.category_filters:
        rows = [r for r in rows if r.get("category") is None or r["category"] in filters.category_filters]
    if filters.amount_range and amount_field:
        rows = [
            r for r in rows
            if r.get(amount_field) is None or filters.amount_range.contains(r[amount_field])
        ]
    if filters.custom_filters:
        combine = any if filters.filter_logic == FilterLogic.OR else all
        rows = [r for r in rows if combine(matches_custom_filter(r, c) for c in filters.custom_filters)]
    if filters.sort_by:
        rows = sort_rows(rows, filters.sort_by)
    return rows


class ReportingService:
    """
    Report and dashboard persistence plus report generation.

    Usage:
        reporting = ReportingService(store, financial=financial_service)
        rows = reporting.generate_report(report)
        path = reporting.export_report(report, ExportFormat.EXCEL)
    """

    def __init__(
        self,
        store: Optional[DocumentStoreClient] = None,
        financial: Optional[FinancialService] = None,
        projects: Optional[ProjectService] = None,
        clock: Callable[[], datetime] = None,
        user: str = "system"
    ):
        self.store = store or create_store_client()
        self.financial = financial
        self.projects = projects
        self.clock = clock or datetime.now
        self.user = user

        self.reports: Observable[List[Report]] = Observable([], "reports")
        self.dashboards: Observable[List[Dashboard]] = Observable([], "dashboards")
        self.is_loading: Observable[bool] = Observable(False, "is_loading")
        self.error: Observable[Optional[ErpDeskError]] = Observable(None, "error")

        self._data_cache: Dict[str, List[Row]] = {}

    def _fail(self, error: ErpDeskError, context: str):
        log_error(logger, error, context=context)
        self.error.value = error

    def _decode_all(self, records, decoder) -> list:
        items = []
        for record in records:
            try:
                items.append(decoder(record))
            except InvalidDataError as e:
                logger.warning(f"Skipping undecodable {record.record_type} {record.record_name}: {e}")
        return items

    # ============== Reports ==============

    def fetch_reports(self) -> List[Report]:
        self.is_loading.value = True
        try:
            records = self.store.query(REPORT, sort_by="updated_at", ascending=False)
        except ErpDeskError as e:
            self._fail(e, "fetch_reports")
            raise
        finally:
            self.is_loading.value = False

        reports = self._decode_all(records, report_from_record)
        reports.sort(key=lambda r: r.updated_at, reverse=True)
        self.reports.value = reports
        logger.info(f"Loaded {len(reports)} reports")
        return reports

    def _replace_report(self, report: Report):
        reports = [r for r in self.reports.value if r.id != report.id] + [report]
        reports.sort(key=lambda r: r.updated_at, reverse=True)
        self.reports.value = reports

    def get_report(self, report_id: str) -> Report:
        for report in self.reports.value:
            if report.id == report_id:
                return report
        raise ReportNotFoundError(report_id)

    def create_report(self, report: Report) -> Report:
        if not report.created_by:
            report.created_by = self.user
        try:
            saved = report_from_record(self.store.save(report_to_record(report)))
        except ErpDeskError as e:
            self._fail(e, "create_report")
            raise
        self._replace_report(saved)
        logger.info(f"Created report: {saved.report_name}")
        return saved

    def update_report(self, report: Report) -> Report:
        report.updated_at = self.clock()
        try:
            saved = report_from_record(self.store.save(report_to_record(report)))
        except ErpDeskError as e:
            self._fail(e, "update_report")
            raise
        self._replace_report(saved)
        return saved

    def delete_report(self, report_id: str):
        try:
            try:
                self.store.delete(REPORT, report_id)
            except EntityNotFoundError as e:
                raise ReportNotFoundError(report_id) from e
        except ErpDeskError as e:
            self._fail(e, "delete_report")
            raise
        self.reports.value = [r for r in self.reports.value if r.id != report_id]
        self._data_cache.pop(report_id, None)
        logger.info(f"Deleted report {report_id}")

    def duplicate_report(self, report: Report) -> Report:
        """Private copy with fresh history."""
        now = self.clock()
        duplicate = copy.deepcopy(report)
        duplicate.id = Report().id
        duplicate.report_name = f"{report.report_name} (Copy)"
        duplicate.is_public = False
        duplicate.shared_with = []
        duplicate.metadata = ReportMetadata(tags=list(report.metadata.tags), version=report.metadata.version)
        duplicate.created_by = self.user
        duplicate.created_at = now
        duplicate.updated_at = now
        return self.create_report(duplicate)

    def search_reports(self, query: str) -> List[Report]:
        """Match name, description, category and tags, ignoring case."""
        query = (query or "").strip().lower()
        if not query:
            return list(self.reports.value)
        return [
            r for r in self.reports.value
            if query in r.report_name.lower()
            or query in (r.report_description or "").lower()
            or query in r.category.display_name.lower()
            or query in " ".join(r.metadata.tags).lower()
        ]

    def filter_reports(
        self,
        category: Optional[ReportCategory] = None,
        report_type: Optional[ReportType] = None,
        is_public: Optional[bool] = None,
        reports: Optional[List[Report]] = None
    ) -> List[Report]:
        reports = self.reports.value if reports is None else reports
        return [
            r for r in reports
            if (category is None or r.category == category)
            and (report_type is None or r.report_type == report_type)
            and (is_public is None or r.is_public == is_public)
        ]

    # ============== Dashboards ==============

    def fetch_dashboards(self) -> List[Dashboard]:
        try:
            records = self.store.query(DASHBOARD)
        except ErpDeskError as e:
            self._fail(e, "fetch_dashboards")
            raise
        dashboards = self._decode_all(records, dashboard_from_record)
        dashboards.sort(key=lambda d: (not d.is_default, d.name.lower()))
        self.dashboards.value = dashboards
        return dashboards

    def _save_dashboard(self, dashboard: Dashboard, context: str) -> Dashboard:
        try:
            saved = dashboard_from_record(self.store.save(dashboard_to_record(dashboard)))
        except ErpDeskError as e:
            self._fail(e, context)
            raise
        dashboards = [d for d in self.dashboards.value if d.id != saved.id] + [saved]
        dashboards.sort(key=lambda d: (not d.is_default, d.name.lower()))
        self.dashboards.value = dashboards
        return saved

    def create_dashboard(self, dashboard: Dashboard) -> Dashboard:
        if not dashboard.created_by:
            dashboard.created_by = self.user
        return self._save_dashboard(dashboard, "create_dashboard")

    def update_dashboard(self, dashboard: Dashboard) -> Dashboard:
        dashboard.updated_at = self.clock()
        return self._save_dashboard(dashboard, "update_dashboard")

    def delete_dashboard(self, dashboard_id: str):
        try:
            try:
                self.store.delete(DASHBOARD, dashboard_id)
            except EntityNotFoundError as e:
                raise ReportNotFoundError(dashboard_id, kind="Dashboard") from e
        except ErpDeskError as e:
            self._fail(e, "delete_dashboard")
            raise
        self.dashboards.value = [d for d in self.dashboards.value if d.id != dashboard_id]

    def get_dashboard(self, dashboard_id: str) -> Dashboard:
        for dashboard in self.dashboards.value:
            if dashboard.id == dashboard_id:
                return dashboard
        raise ReportNotFoundError(dashboard_id, kind="Dashboard")

    def load_all(self):
        self.fetch_reports()
        self.fetch_dashboards()

    # ============== Generation ==============

    def _source_rows(self, report: Report) -> List[Row]:
        source = report.data_source
        if source in (DataSource.INVOICES, DataSource.PAYMENTS) and self.financial is None:
            logger.warning(f"No financial service for report {report.report_name}")
            return []
        if source == DataSource.TASKS and self.projects is None:
            logger.warning(f"No project service for report {report.report_name}")
            return []

        if source == DataSource.INVOICES:
            return [
                {
                    "invoice_number": i.invoice_number,
                    "client_name": i.client_name,
                    "issue_date": i.issue_date,
                    "due_date": i.due_date,
                    "status": i.status.value,
                    "currency": i.currency.value,
                    "subtotal": i.subtotal,
                    "tax_amount": i.tax_amount,
                    "total_amount": i.total_amount,
                    "remaining_amount": i.remaining_amount,
                }
                for i in self.financial.invoices.value
            ]
        if source == DataSource.PAYMENTS:
            return [
                {
                    "payment_number": p.payment_number,
                    "invoice_id": p.invoice_id,
                    "amount": p.amount,
                    "currency": p.currency.value,
                    "payment_date": p.payment_date,
                    "payment_method": p.payment_method.display_name,
                    "status": p.status.value,
                }
                for p in self.financial.payments.value
            ]
        if source == DataSource.TASKS:
            return [
                {
                    "title": t.title,
                    "description": t.description,
                    "status": t.status.value,
                    "priority": t.priority.value,
                    "assigned_to": ", ".join(t.assigned_to),
                    "due_date": t.due_date,
                    "board_id": t.board_id,
                    "category": t.custom_fields.get("category"),
                    "estimated_hours": t.estimated_hours,
                }
                for t in self.projects.tasks.value
            ]

        logger.info(f"Data source {source.display_name} has no rows")
        return []

    def _log_execution(self, report: Report, status: ExecutionStatus, message: str, duration: float = None):
        report.metadata.execution_log.append(ExecutionLogEntry(
            action="generate_report",
            status=status,
            message=message,
            duration=duration,
            timestamp=self.clock(),
        ))

    def generate_report(self, report: Report) -> List[Row]:
        """
        Produce the rows for a report definition.

        Results are cached per report id until ``clear_cache`` or the
        report is deleted. A fresh generation updates and persists the
        report's metadata.

        Returns:
            List of row dicts keyed by field name
        """
        cached = self._data_cache.get(report.id)
        if cached is not None:
            logger.debug(f"Using cached data for report: {report.report_name}")
            return list(cached)

        self._log_execution(report, ExecutionStatus.STARTED, f"Starting report generation for: {report.report_name}")
        start_time = time.perf_counter()

        try:
            rows = apply_report_filters(self._source_rows(report), report.filters, report.data_source)
            if report.selected_fields:
                rows = [{f: row.get(f) for f in report.selected_fields} for row in rows]

            duration = time.perf_counter() - start_time
            self._log_execution(
                report, ExecutionStatus.COMPLETED,
                f"Report generated successfully with {len(rows)} rows", duration
            )
            report.metadata.last_generated = self.clock()
            report.metadata.generation_time = duration
            report.metadata.data_row_count = len(rows)
            self.update_report(report)
        except ErpDeskError as e:
            # update_report has already logged and published the failure
            self._log_execution(report, ExecutionStatus.FAILED, f"Report generation failed: {e}")
            raise

        self._data_cache[report.id] = rows
        logger.info(f"Generated report: {report.report_name} with {len(rows)} rows in {duration:.2f}s")
        return list(rows)

    def export_report(
        self,
        report: Report,
        export_format: ExportFormat,
        output_dir: Optional[Path] = None
    ) -> Path:
        rows = self.generate_report(report)
        try:
            return ExportGenerator(output_dir or config.exports_dir).export_report(report, rows, export_format)
        except ErpDeskError as e:
            self._fail(e, "export_report")
            raise

    def generate_report_analytics(self, now: Optional[datetime] = None) -> ReportAnalytics:
        now = now or self.clock()
        reports = self.reports.value

        category_counts: Dict[str, int] = {}
        type_counts: Dict[str, int] = {}
        for report in reports:
            category_counts[report.category.value] = category_counts.get(report.category.value, 0) + 1
            type_counts[report.report_type.value] = type_counts.get(report.report_type.value, 0) + 1

        public = sum(1 for r in reports if r.is_public)
        recent = sum(
            1 for r in reports
            if r.created_at.year == now.year and r.created_at.month == now.month
        )
        total_time = sum(r.metadata.generation_time or 0.0 for r in reports)

        return ReportAnalytics(
            total_reports=len(reports),
            public_reports=public,
            private_reports=len(reports) - public,
            category_counts=category_counts,
            type_counts=type_counts,
            recent_reports=recent,
            average_generation_time=total_time / max(1, len(reports)),
        )

    def clear_cache(self):
        self._data_cache.clear()
        logger.info("Reporting cache cleared")
