"""Project boards and tasks."""
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .exceptions import EntityNotFoundError, ErpDeskError, InvalidDataError
from .logging_config import get_logger, log_error
from .observable import Observable
from .project_models import ProjectBoard, ProjectTask, TaskStatus
from .record_mapper import (
    PROJECT_BOARD, PROJECT_TASK,
    board_from_record, board_to_record, task_from_record, task_to_record,
)
from .store_client import DocumentStoreClient, create_store_client

logger = get_logger("projects")


class ProjectService:
    """Board and task persistence plus the kanban helpers built on it."""

    def __init__(self, store: Optional[DocumentStoreClient] = None, clock: Callable[[], datetime] = None):
        self.store = store or create_store_client()
        self.clock = clock or datetime.now
        self.boards: Observable[List[ProjectBoard]] = Observable([], "boards")
        self.tasks: Observable[List[ProjectTask]] = Observable([], "tasks")
        self.error: Observable[Optional[ErpDeskError]] = Observable(None, "error")

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

    # ============== Boards ==============

    def fetch_boards(self) -> List[ProjectBoard]:
        try:
            records = self.store.query(PROJECT_BOARD)
        except ErpDeskError as e:
            self._fail(e, "fetch_boards")
            raise
        boards = sorted(self._decode_all(records, board_from_record), key=lambda b: b.name.lower())
        self.boards.value = boards
        return boards

    def save_board(self, board: ProjectBoard) -> ProjectBoard:
        """Create or update a board."""
        board.updated_at = self.clock()
        try:
            saved = board_from_record(self.store.save(board_to_record(board)))
        except ErpDeskError as e:
            self._fail(e, "save_board")
            raise
        boards = [b for b in self.boards.value if b.id != saved.id] + [saved]
        self.boards.value = sorted(boards, key=lambda b: b.name.lower())
        return saved

    def delete_board(self, board_id: str):
        """Delete a board and every task on it."""
        for task in self.tasks_for_board(board_id):
            self.delete_task(task.id)
        try:
            self.store.delete(PROJECT_BOARD, board_id)
        except ErpDeskError as e:
            self._fail(e, "delete_board")
            raise
        self.boards.value = [b for b in self.boards.value if b.id != board_id]

    def get_board(self, board_id: str) -> ProjectBoard:
        for board in self.boards.value:
            if board.id == board_id:
                return board
        raise EntityNotFoundError("ProjectBoard", board_id)

    # ============== Tasks ==============

    def fetch_tasks(self) -> List[ProjectTask]:
        try:
            records = self.store.query(PROJECT_TASK)
        except ErpDeskError as e:
            self._fail(e, "fetch_tasks")
            raise
        tasks = self._decode_all(records, task_from_record)
        tasks.sort(key=lambda t: (t.board_id, t.position))
        self.tasks.value = tasks
        return tasks

    def save_task(self, task: ProjectTask) -> ProjectTask:
        """Create or update a task."""
        task.updated_at = self.clock()
        try:
            saved = task_from_record(self.store.save(task_to_record(task)))
        except ErpDeskError as e:
            self._fail(e, "save_task")
            raise
        tasks = [t for t in self.tasks.value if t.id != saved.id] + [saved]
        tasks.sort(key=lambda t: (t.board_id, t.position))
        self.tasks.value = tasks
        return saved

    def delete_task(self, task_id: str):
        try:
            self.store.delete(PROJECT_TASK, task_id)
        except ErpDeskError as e:
            self._fail(e, "delete_task")
            raise
        self.tasks.value = [t for t in self.tasks.value if t.id != task_id]

    def tasks_for_board(self, board_id: str) -> List[ProjectTask]:
        return [t for t in self.tasks.value if t.board_id == board_id]

    def tasks_by_status(self, board_id: str) -> Dict[TaskStatus, List[ProjectTask]]:
        """Kanban columns: every status, tasks ordered by position."""
        columns = {status: [] for status in TaskStatus}
        for task in sorted(self.tasks_for_board(board_id), key=lambda t: t.position):
            columns[task.status].append(task)
        return columns

    def move_task(self, task: ProjectTask, status: TaskStatus, position: Optional[int] = None) -> ProjectTask:
        """Move a task to a column, at the end unless a position is given."""
        if position is None:
            column = self.tasks_by_status(task.board_id)[status]
            position = max((t.position for t in column if t.id != task.id), default=-1) + 1
        task.status = status
        task.position = position
        logger.info(f"Moved task {task.title!r} to {status.display_name}")
        return self.save_task(task)

    def board_progress(self, board_id: str) -> float:
        """Completed tasks over tasks that are not cancelled."""
        tasks = [t for t in self.tasks_for_board(board_id) if t.status != TaskStatus.CANCELLED]
        if not tasks:
            return 0.0
        return sum(1 for t in tasks if t.status == TaskStatus.COMPLETED) / len(tasks)

    def overdue_tasks(self, now: Optional[datetime] = None) -> List[ProjectTask]:
        now = now or self.clock()
        return [t for t in self.tasks.value if t.is_overdue(now)]
