"""Business-intelligence models: reports, dashboards and their settings."""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Dict

from dateutil.relativedelta import relativedelta

from .models import DateRange, new_id


def _title(value: str) -> str:
    return value.replace("_", " ").title()


class ReportType(Enum):
    DASHBOARD = "dashboard"
    TABULAR = "tabular"
    CHART = "chart"
    PIVOT = "pivot"
    CROSSTAB = "crosstab"
    SUMMARY = "summary"
    DETAILED = "detailed"
    COMPARISON = "comparison"
    TREND = "trend"
    KPI = "kpi"

    @property
    def display_name(self) -> str:
        return "KPI" if self is ReportType.KPI else _title(self.value)


class ReportCategory(Enum):
    FINANCIAL = "financial"
    OPERATIONAL = "operational"
    SALES = "sales"
    HR = "hr"
    INVENTORY = "inventory"
    CUSTOMER = "customer"
    VENDOR = "vendor"
    PROJECT = "project"
    COMPLIANCE = "compliance"
    EXECUTIVE = "executive"
    CUSTOM = "custom"

    @property
    def display_name(self) -> str:
        return "Human Resources" if self is ReportCategory.HR else _title(self.value)


class DataSource(Enum):
    INVOICES = "invoices"
    PAYMENTS = "payments"
    CLIENTS = "clients"
    VENDORS = "vendors"
    EMPLOYEES = "employees"
    DOCUMENTS = "documents"
    TASKS = "tasks"
    TICKETS = "tickets"
    KPIS = "kpis"
    STORE_REPORTS = "store_reports"
    COMBINED = "combined"
    EXTERNAL = "external"

    @property
    def display_name(self) -> str:
        return "KPIs" if self is DataSource.KPIS else _title(self.value)


class FilterOperator(Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    IN_LIST = "in_list"
    NOT_IN_LIST = "not_in_list"


class SortDirection(Enum):
    ASCENDING = "ascending"
    DESCENDING = "descending"


class VisualizationType(Enum):
    BAR_CHART = "bar_chart"
    LINE_CHART = "line_chart"
    PIE_CHART = "pie_chart"
    AREA_CHART = "area_chart"
    SCATTER_PLOT = "scatter_plot"
    HEATMAP = "heatmap"
    GAUGE = "gauge"
    TABLE = "table"
    CARD = "card"
    SPARKLINE = "sparkline"
    HISTOGRAM = "histogram"
    BOX_PLOT = "box_plot"

    @property
    def uses_axes(self) -> bool:
        return self not in (VisualizationType.TABLE, VisualizationType.CARD,
                            VisualizationType.GAUGE, VisualizationType.PIE_CHART)


class ScheduleFrequency(Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


_SCHEDULE_STEPS = {
    ScheduleFrequency.HOURLY: relativedelta(hours=1),
    ScheduleFrequency.DAILY: relativedelta(days=1),
    ScheduleFrequency.WEEKLY: relativedelta(weeks=1),
    ScheduleFrequency.BIWEEKLY: relativedelta(weeks=2),
    ScheduleFrequency.MONTHLY: relativedelta(months=1),
    ScheduleFrequency.QUARTERLY: relativedelta(months=3),
    ScheduleFrequency.YEARLY: relativedelta(years=1),
}


class ExecutionStatus(Enum):
    STARTED = "started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    WARNING = "warning"


class ExportFormat(Enum):
    CSV = "csv"
    JSON = "json"
    EXCEL = "excel"
    HTML = "html"

    @property
    def file_extension(self) -> str:
        return "xlsx" if self is ExportFormat.EXCEL else self.value


class WidgetType(Enum):
    KPI = "kpi"
    CHART = "chart"
    TABLE = "table"
    GAUGE = "gauge"
    SPARKLINE = "sparkline"
    TEXT = "text"
    REPORT = "report"


class FilterLogic(Enum):
    AND = "and"
    OR = "or"


# ============== Filters ==============

@dataclass
class AmountRange:
    min: Optional[Decimal] = None
    max: Optional[Decimal] = None

    def contains(self, value: Decimal) -> bool:
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True


@dataclass
class CustomFilter:
    field: str
    operator: FilterOperator
    value: str = ""
    id: str = field(default_factory=new_id)


@dataclass
class SortCriteria:
    field: str
    direction: SortDirection = SortDirection.ASCENDING
    id: str = field(default_factory=new_id)


@dataclass
class ReportFilters:
    date_range: Optional[DateRange] = None
    status_filters: List[str] = field(default_factory=list)
    category_filters: List[str] = field(default_factory=list)
    amount_range: Optional[AmountRange] = None
    custom_filters: List[CustomFilter] = field(default_factory=list)
    # How custom filters combine; the other filters always narrow
    filter_logic: FilterLogic = FilterLogic.AND
    group_by: List[str] = field(default_factory=list)
    sort_by: List[SortCriteria] = field(default_factory=list)


# ============== Presentation settings ==============

@dataclass
class ReportVisualization:
    type: VisualizationType = VisualizationType.TABLE
    title: str = ""
    x_axis: Optional[str] = None
    y_axis: Optional[str] = None
    group_by: Optional[str] = None
    id: str = field(default_factory=new_id)


@dataclass
class ReportFormatting:
    page_orientation: str = "portrait"
    include_header: bool = True
    include_footer: bool = True
    number_format: str = "#,##0.00"


@dataclass
class ReportSchedule:
    frequency: ScheduleFrequency = ScheduleFrequency.WEEKLY
    start_date: datetime = field(default_factory=datetime.now)
    recipients: List[str] = field(default_factory=list)
    export_format: ExportFormat = ExportFormat.CSV
    is_active: bool = True

    def next_run(self, after: datetime = None) -> Optional[datetime]:
        """First run strictly after ``after``; None when the schedule is paused."""
        if not self.is_active:
            return None
        after = after or datetime.now()
        step = _SCHEDULE_STEPS[self.frequency]
        # Offsets are taken from start_date so month-end runs do not drift
        n = 0
        run = self.start_date
        while run <= after:
            n += 1
            run = self.start_date + step * n
        return run


# ============== Report ==============

@dataclass
class ExecutionLogEntry:
    action: str
    status: ExecutionStatus
    message: Optional[str] = None
    duration: Optional[float] = None
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=new_id)


@dataclass
class ReportMetadata:
    tags: List[str] = field(default_factory=list)
    version: str = "1.0"
    last_generated: Optional[datetime] = None
    generation_time: Optional[float] = None
    data_row_count: Optional[int] = None
    execution_log: List[ExecutionLogEntry] = field(default_factory=list)


@dataclass
class Report:
    report_name: str = ""
    report_type: ReportType = ReportType.TABULAR
    category: ReportCategory = ReportCategory.FINANCIAL
    data_source: DataSource = DataSource.INVOICES
    report_description: Optional[str] = None
    selected_fields: List[str] = field(default_factory=list)
    filters: ReportFilters = field(default_factory=ReportFilters)
    visualizations: List[ReportVisualization] = field(default_factory=list)
    formatting: ReportFormatting = field(default_factory=ReportFormatting)
    schedule: Optional[ReportSchedule] = None
    metadata: ReportMetadata = field(default_factory=ReportMetadata)
    created_by: str = ""
    shared_with: List[str] = field(default_factory=list)
    is_public: bool = False
    is_active: bool = True
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def status_description(self) -> str:
        if not self.is_active:
            return "Inactive"
        if self.metadata.last_generated is None:
            return "Not Generated"
        return "Active"


# ============== Dashboard ==============

@dataclass
class DashboardWidget:
    title: str = ""
    widget_type: WidgetType = WidgetType.KPI
    report_id: Optional[str] = None
    row: int = 0
    column: int = 0
    width: int = 1
    height: int = 1
    id: str = field(default_factory=new_id)


@dataclass
class Dashboard:
    name: str = ""
    description: Optional[str] = None
    widgets: List[DashboardWidget] = field(default_factory=list)
    refresh_interval: Optional[float] = None
    is_default: bool = False
    created_by: str = ""
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def widget_count(self) -> int:
        return len(self.widgets)


@dataclass
class ReportAnalytics:
    total_reports: int = 0
    public_reports: int = 0
    private_reports: int = 0
    category_counts: Dict[str, int] = field(default_factory=dict)
    type_counts: Dict[str, int] = field(default_factory=dict)
    recent_reports: int = 0
    average_generation_time: float = 0.0
