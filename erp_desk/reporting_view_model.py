"""Presentation state for the reporting screens."""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import List, Optional, Set

from .config import config
from .exceptions import ErpDeskError
from .logging_config import get_logger
from .models import DateRange
from .observable import Debouncer, Observable
from .report_builder import DashboardBuilder, ReportBuilderWizard
from .reporting_models import (
    Dashboard, ExportFormat, Report, ReportAnalytics, ReportCategory, ReportType,
)
from .reporting_service import ReportingService

logger = get_logger("reporting_view_model")


class ReportingTab(Enum):
    REPORTS = "reports"
    DASHBOARDS = "dashboards"
    ANALYTICS = "analytics"
    BUILDER = "builder"

    @property
    def display_name(self) -> str:
        return self.value.title()


class ReportBulkActionType(Enum):
    DELETE = "delete"
    MAKE_PUBLIC = "make_public"
    MAKE_PRIVATE = "make_private"
    DUPLICATE = "duplicate"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def is_destructive(self) -> bool:
        return self is ReportBulkActionType.DELETE


@dataclass
class ReportFilterOptions:
    category: Optional[ReportCategory] = None
    report_type: Optional[ReportType] = None
    is_public: Optional[bool] = None
    date_range: Optional[DateRange] = None
    created_by: Optional[str] = None

    def is_empty(self) -> bool:
        return (
            self.category is None
            and self.report_type is None
            and self.is_public is None
            and self.date_range is None
            and self.created_by is None
        )


class ReportingViewModel:
    """Binds a ReportingService and the report builder to screen state."""

    def __init__(self, service: ReportingService, debounce_seconds: Optional[float] = None):
        self.service = service
        self.wizard = ReportBuilderWizard()
        self.dashboard_builder = DashboardBuilder()

        self.selected_tab = Observable(ReportingTab.REPORTS, "selected_tab")
        self.search_text = Observable("", "search_text")
        self.filter_options = Observable(ReportFilterOptions(), "filter_options")
        self.filtered_reports: Observable[List[Report]] = Observable([], "filtered_reports")
        self.filtered_dashboards: Observable[List[Dashboard]] = Observable([], "filtered_dashboards")
        self.selected_report: Observable[Optional[Report]] = Observable(None, "selected_report")
        self.selected_report_ids: Observable[Set[str]] = Observable(set(), "selected_report_ids")
        self.report_data: Observable[list] = Observable([], "report_data")
        self.report_analytics: Observable[Optional[ReportAnalytics]] = Observable(None, "report_analytics")
        self.error: Observable[Optional[ErpDeskError]] = Observable(None, "error")

        if debounce_seconds is None:
            debounce_seconds = config.ui.search_debounce_seconds
        self._debouncer = Debouncer(debounce_seconds, self._refilter)

        schedule = lambda new, old: self._debouncer.trigger()
        self._unsubscribers = [
            service.reports.subscribe(schedule),
            service.dashboards.subscribe(schedule),
            self.search_text.subscribe(schedule),
            self.filter_options.subscribe(schedule),
            service.error.subscribe(self._on_service_error),
        ]
        self._refilter()

    def _on_service_error(self, new, old):
        if new is not None:
            self.error.value = new

    def close(self):
        self._debouncer.cancel()
        for unsubscribe in self._unsubscribers:
            unsubscribe()

    def _refilter(self):
        search = self.search_text.value.strip().lower()
        options = self.filter_options.value

        reports = self.service.search_reports(search)
        reports = self.service.filter_reports(options.category, options.report_type, options.is_public, reports)
        if options.date_range is not None:
            reports = [r for r in reports if options.date_range.contains(r.created_at)]
        if options.created_by is not None:
            reports = [r for r in reports if r.created_by == options.created_by]
        self.filtered_reports.value = reports

        dashboards = self.service.dashboards.value
        if search:
            dashboards = [
                d for d in dashboards
                if search in d.name.lower() or search in (d.description or "").lower()
            ]
        self.filtered_dashboards.value = list(dashboards)

    def flush(self):
        self._debouncer.flush()

    def _run(self, operation, *args):
        try:
            return operation(*args)
        except ErpDeskError as e:
            self.error.value = e
            return None

    # ============== Loading ==============

    def load_data(self):
        self._run(self.service.load_all)
        self.load_analytics()

    def load_analytics(self):
        self.report_analytics.value = self.service.generate_report_analytics()

    # ============== Reports ==============

    def create_report(self, report: Report) -> Optional[Report]:
        return self._run(self.service.create_report, report)

    def update_report(self, report: Report) -> Optional[Report]:
        return self._run(self.service.update_report, report)

    def delete_report(self, report: Report):
        self._run(self.service.delete_report, report.id)

    def duplicate_report(self, report: Report) -> Optional[Report]:
        return self._run(self.service.duplicate_report, report)

    def generate_report(self, report: Report) -> list:
        self.selected_report.value = report
        rows = self._run(self.service.generate_report, report)
        self.report_data.value = rows or []
        return self.report_data.value

    def export_report(self, report: Report, export_format: ExportFormat) -> Optional[Path]:
        path = self._run(self.service.export_report, report, export_format)
        if path is not None:
            logger.info(f"Report exported to: {path.name}")
        return path

    # ============== Dashboards ==============

    def create_dashboard_from_builder(self) -> Optional[Dashboard]:
        try:
            dashboard = self.dashboard_builder.build_dashboard(created_by=self.service.user)
        except ErpDeskError as e:
            self.error.value = e
            return None
        saved = self._run(self.service.create_dashboard, dashboard)
        if saved is not None:
            self.dashboard_builder.reset()
        return saved

    def delete_dashboard(self, dashboard: Dashboard):
        self._run(self.service.delete_dashboard, dashboard.id)

    # ============== Builder ==============

    def start_report_builder(self):
        self.wizard.reset()
        self.selected_tab.value = ReportingTab.BUILDER

    @property
    def can_create_report(self) -> bool:
        return self.wizard.can_create

    def create_report_from_builder(self) -> Optional[Report]:
        report = self._run(self.wizard.create, self.service)
        if report is not None:
            self.selected_tab.value = ReportingTab.REPORTS
        return report

    # ============== Selection & bulk actions ==============

    def toggle_report_selection(self, report_id: str):
        selected = set(self.selected_report_ids.value)
        if report_id in selected:
            selected.remove(report_id)
        else:
            selected.add(report_id)
        self.selected_report_ids.value = selected

    def select_all_reports(self):
        self.selected_report_ids.value = {r.id for r in self.filtered_reports.value}

    def deselect_all_reports(self):
        self.selected_report_ids.value = set()

    def perform_bulk_action(self, action: ReportBulkActionType):
        """Apply an action to every selected report; failures stop at the first error."""
        selected = self.selected_report_ids.value
        reports = [r for r in self.service.reports.value if r.id in selected]
        try:
            for report in reports:
                if action is ReportBulkActionType.DELETE:
                    self.service.delete_report(report.id)
                elif action is ReportBulkActionType.MAKE_PUBLIC:
                    report.is_public = True
                    self.service.update_report(report)
                elif action is ReportBulkActionType.MAKE_PRIVATE:
                    report.is_public = False
                    self.service.update_report(report)
                elif action is ReportBulkActionType.DUPLICATE:
                    self.service.duplicate_report(report)
        except ErpDeskError as e:
            self.error.value = e
        self.selected_report_ids.value = set()

    def update_filter_options(self, options: ReportFilterOptions):
        self.filter_options.value = options

    def clear_filter_options(self):
        self.filter_options.value = ReportFilterOptions()

    def clear_error(self):
        self.error.value = None

    # ============== Computed ==============

    @property
    def public_reports(self) -> int:
        return sum(1 for r in self.service.reports.value if r.is_public)

    @property
    def private_reports(self) -> int:
        return len(self.service.reports.value) - self.public_reports

    def recent_reports(self, now: Optional[datetime] = None, limit: int = 5) -> List[Report]:
        """Reports created in the last week, newest first."""
        now = now or self.service.clock()
        week_ago = now - timedelta(weeks=1)
        recent = [r for r in self.service.reports.value if r.created_at >= week_ago]
        return sorted(recent, key=lambda r: r.created_at, reverse=True)[:limit]
