"""Project board and task models."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict

from .models import new_id


class TaskStatus(Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    BLOCKED = "BLOCKED"
    CANCELLED = "CANCELLED"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def is_active(self) -> bool:
        return self in (TaskStatus.NOT_STARTED, TaskStatus.IN_PROGRESS)


class TaskPriority(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"

    @property
    def sort_order(self) -> int:
        """Urgent first."""
        return _PRIORITY_ORDER[self]


_PRIORITY_ORDER = {
    TaskPriority.URGENT: 0,
    TaskPriority.HIGH: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.LOW: 3,
}


class BoardViewType(Enum):
    KANBAN = "KANBAN"
    TABLE = "TABLE"
    CALENDAR = "CALENDAR"
    TIMELINE = "TIMELINE"


@dataclass
class ChecklistItem:
    title: str
    is_completed: bool = False
    id: str = field(default_factory=new_id)


@dataclass
class ProjectTask:
    """A unit of work on a board."""
    board_id: str
    title: str
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.NOT_STARTED
    priority: TaskPriority = TaskPriority.MEDIUM
    assigned_to: List[str] = field(default_factory=list)
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    tags: List[str] = field(default_factory=list)
    checklist: List[ChecklistItem] = field(default_factory=list)
    custom_fields: Dict[str, str] = field(default_factory=dict)
    position: int = 0
    parent_task_id: Optional[str] = None
    created_by: str = ""
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def checklist_progress(self) -> float:
        if not self.checklist:
            return 0.0
        done = sum(1 for item in self.checklist if item.is_completed)
        return done / len(self.checklist)

    def is_overdue(self, now: datetime = None) -> bool:
        if self.due_date is None or not self.status.is_active:
            return False
        return self.due_date < (now or datetime.now())


@dataclass
class ProjectBoard:
    name: str
    owner_id: str
    description: Optional[str] = None
    view_type: BoardViewType = BoardViewType.KANBAN
    members: List[str] = field(default_factory=list)
    is_archived: bool = False
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
