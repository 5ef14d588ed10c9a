"""
Report and dashboard builders.

The wizard walks a fixed sequence of steps over one mutable builder.
Moving between steps is never gated; validation only decides whether
the report can be created from the review step.
"""
from enum import Enum
from typing import List, Optional

from .exceptions import BuilderValidationError
from .logging_config import get_logger
from .models import DateRange
from .reporting_models import (
    CustomFilter, Dashboard, DashboardWidget, DataSource, FilterLogic, FilterOperator,
    Report, ReportCategory, ReportFilters, ReportFormatting, ReportMetadata,
    ReportSchedule, ReportType, ReportVisualization, SortCriteria, VisualizationType,
    WidgetType,
)

logger = get_logger("builder")


class ReportBuilderStep(Enum):
    """Wizard steps in order."""
    BASIC_INFO = "basic_info"
    DATA_SOURCE = "data_source"
    FILTERS = "filters"
    VISUALIZATIONS = "visualizations"
    FORMATTING = "formatting"
    SCHEDULING = "scheduling"
    REVIEW = "review"

    @property
    def display_name(self) -> str:
        if self is ReportBuilderStep.BASIC_INFO:
            return "Basic Info"
        return self.value.replace("_", " ").title()

    @property
    def index(self) -> int:
        return _STEPS.index(self)


_STEPS = list(ReportBuilderStep)


class ReportBuilder:
    """Accumulates the selections made across the wizard steps."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.report_name = ""
        self.report_description = ""
        self.category = ReportCategory.FINANCIAL
        self.report_type = ReportType.TABULAR
        self.is_public = False
        self.tags: List[str] = []
        self.data_source: Optional[DataSource] = DataSource.INVOICES
        self.selected_fields: List[str] = []
        self.date_range: Optional[DateRange] = None
        self.status_filters: List[str] = []
        self.custom_filters: List[CustomFilter] = []
        self.sort_by: List[SortCriteria] = []
        self.filter_logic = FilterLogic.AND
        self.visualizations: List[ReportVisualization] = []
        self.formatting = ReportFormatting()
        self.schedule: Optional[ReportSchedule] = None

    def toggle_field(self, field_name: str):
        if field_name in self.selected_fields:
            self.selected_fields.remove(field_name)
        else:
            self.selected_fields.append(field_name)

    def add_filter(self, field_name: str, operator: FilterOperator, value: str = "") -> CustomFilter:
        custom = CustomFilter(field=field_name, operator=operator, value=value)
        self.custom_filters.append(custom)
        return custom

    def remove_filter(self, filter_id: str):
        self.custom_filters = [f for f in self.custom_filters if f.id != filter_id]

    def add_visualization(
        self,
        viz_type: VisualizationType,
        title: str = "",
        x_axis: Optional[str] = None,
        y_axis: Optional[str] = None
    ) -> ReportVisualization:
        viz = ReportVisualization(type=viz_type, title=title or viz_type.value.replace("_", " ").title(),
                                  x_axis=x_axis, y_axis=y_axis)
        self.visualizations.append(viz)
        return viz

    def remove_visualization(self, viz_id: str):
        self.visualizations = [v for v in self.visualizations if v.id != viz_id]

    def validation_errors(self) -> List[str]:
        errors = []
        if not self.report_name.strip():
            errors.append("Report name is required")
        if self.data_source is None:
            errors.append("A data source must be selected")
        if self.selected_fields:
            for viz in self.visualizations:
                for axis in (viz.x_axis, viz.y_axis):
                    if axis and axis not in self.selected_fields:
                        errors.append(f"Visualization '{viz.title}' uses unselected field '{axis}'")
        return errors

    @property
    def is_valid(self) -> bool:
        return not self.validation_errors()

    def build_report(self, created_by: str = "") -> Report:
        return Report(
            report_name=self.report_name.strip(),
            report_description=self.report_description.strip() or None,
            report_type=self.report_type,
            category=self.category,
            data_source=self.data_source,
            selected_fields=list(self.selected_fields),
            filters=ReportFilters(
                date_range=self.date_range,
                status_filters=list(self.status_filters),
                custom_filters=list(self.custom_filters),
                filter_logic=self.filter_logic,
                sort_by=list(self.sort_by),
            ),
            visualizations=list(self.visualizations),
            formatting=self.formatting,
            schedule=self.schedule,
            metadata=ReportMetadata(tags=list(self.tags)),
            created_by=created_by,
            is_public=self.is_public,
        )


class ReportBuilderWizard:
    """
    Step navigation over a ReportBuilder.

    Usage:
        wizard = ReportBuilderWizard()
        wizard.builder.report_name = "Open invoices"
        while not wizard.is_review:
            wizard.next_step()
        report = wizard.create(reporting_service)
    """

    def __init__(self, builder: Optional[ReportBuilder] = None):
        self.builder = builder or ReportBuilder()
        self.step = ReportBuilderStep.BASIC_INFO

    @property
    def step_number(self) -> int:
        """One-based position of the current step."""
        return self.step.index + 1

    @property
    def total_steps(self) -> int:
        return len(_STEPS)

    @property
    def is_first(self) -> bool:
        return self.step is ReportBuilderStep.BASIC_INFO

    @property
    def is_review(self) -> bool:
        return self.step is ReportBuilderStep.REVIEW

    def next_step(self) -> ReportBuilderStep:
        if not self.is_review:
            self.step = _STEPS[self.step.index + 1]
        return self.step

    def previous_step(self) -> ReportBuilderStep:
        if not self.is_first:
            self.step = _STEPS[self.step.index - 1]
        return self.step

    def validation_errors(self) -> List[str]:
        return self.builder.validation_errors()

    @property
    def can_create(self) -> bool:
        return self.is_review and self.builder.is_valid

    def create(self, service) -> Report:
        """Persist the built report and start over."""
        if not self.can_create:
            errors = self.validation_errors()
            if not self.is_review:
                errors = [f"Wizard is at {self.step.display_name}, not Review"] + errors
            raise BuilderValidationError(errors)

        report = service.create_report(self.builder.build_report(created_by=service.user))
        logger.info(f"Created report {report.report_name!r} from builder")
        self.reset()
        return report

    def reset(self):
        self.builder.reset()
        self.step = ReportBuilderStep.BASIC_INFO


class DashboardBuilder:
    """Collects widgets for a new dashboard."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.name = ""
        self.description = ""
        self.widgets: List[DashboardWidget] = []
        self.refresh_interval: Optional[float] = None
        self.is_default = False

    def add_widget(self, title: str, widget_type: WidgetType, report_id: Optional[str] = None,
                   width: int = 1, height: int = 1) -> DashboardWidget:
        """Append a widget on a new row below the existing ones."""
        row = max((w.row + w.height for w in self.widgets), default=0)
        widget = DashboardWidget(title=title, widget_type=widget_type, report_id=report_id,
                                 row=row, column=0, width=width, height=height)
        self.widgets.append(widget)
        return widget

    def remove_widget(self, widget_id: str):
        self.widgets = [w for w in self.widgets if w.id != widget_id]

    def update_widget(self, widget_id: str, **changes) -> DashboardWidget:
        for widget in self.widgets:
            if widget.id == widget_id:
                for key, value in changes.items():
                    if not hasattr(widget, key):
                        raise AttributeError(f"DashboardWidget has no field {key!r}")
                    setattr(widget, key, value)
                return widget
        raise KeyError(widget_id)

    @property
    def is_valid(self) -> bool:
        return bool(self.name.strip())

    def build_dashboard(self, created_by: str = "") -> Dashboard:
        if not self.is_valid:
            raise BuilderValidationError(["Dashboard name is required"])
        return Dashboard(
            name=self.name.strip(),
            description=self.description.strip() or None,
            widgets=list(self.widgets),
            refresh_interval=self.refresh_interval,
            is_default=self.is_default,
            created_by=created_by,
        )
