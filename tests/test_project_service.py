"""
Tests for project boards and tasks.
"""
import pytest
from datetime import timedelta

from erp_desk.exceptions import EntityNotFoundError
from erp_desk.project_models import ProjectBoard, ProjectTask, TaskStatus
from erp_desk.project_service import ProjectService
from erp_desk.record_mapper import PROJECT_BOARD, PROJECT_TASK

from conftest import NOW


@pytest.fixture
def board(project_service):
    return project_service.save_board(ProjectBoard(name="Q3 Close", owner_id="tester"))


def _task(project_service, board, title, status=TaskStatus.NOT_STARTED, position=0, **kwargs):
    return project_service.save_task(
        ProjectTask(board_id=board.id, title=title, status=status, position=position, **kwargs)
    )


class TestBoards:

    def test_save_and_fetch(self, project_service, board, store, clock):
        project_service.save_board(ProjectBoard(name="audit prep", owner_id="tester"))

        fresh = ProjectService(store, clock=clock)
        assert [b.name for b in fresh.fetch_boards()] == ["audit prep", "Q3 Close"]
        assert fresh.boards.value[1].updated_at == NOW

    def test_get_unknown_board(self, project_service):
        with pytest.raises(EntityNotFoundError):
            project_service.get_board("missing")

    def test_delete_board_removes_tasks(self, project_service, board, store):
        other = project_service.save_board(ProjectBoard(name="Other", owner_id="tester"))
        _task(project_service, board, "Accruals")
        _task(project_service, board, "Depreciation", position=1)
        kept = _task(project_service, other, "Payroll")

        project_service.delete_board(board.id)

        assert store.count(PROJECT_BOARD) == 1
        assert store.count(PROJECT_TASK) == 1
        assert project_service.tasks.value == [kept]


class TestKanban:
    """Tests for column grouping and moves."""

    def test_columns_cover_every_status(self, project_service, board):
        _task(project_service, board, "B", position=1)
        _task(project_service, board, "A", position=0)
        _task(project_service, board, "C", status=TaskStatus.BLOCKED)

        columns = project_service.tasks_by_status(board.id)

        assert set(columns) == set(TaskStatus)
        assert [t.title for t in columns[TaskStatus.NOT_STARTED]] == ["A", "B"]
        assert [t.title for t in columns[TaskStatus.BLOCKED]] == ["C"]
        assert columns[TaskStatus.COMPLETED] == []

    def test_move_appends_to_column(self, project_service, board):
        _task(project_service, board, "Done already", status=TaskStatus.COMPLETED, position=4)
        task = _task(project_service, board, "Accruals")

        moved = project_service.move_task(task, TaskStatus.COMPLETED)

        assert moved.status == TaskStatus.COMPLETED
        assert moved.position == 5

    def test_move_to_explicit_position(self, project_service, board):
        task = _task(project_service, board, "Accruals")
        assert project_service.move_task(task, TaskStatus.IN_PROGRESS, position=0).position == 0

    def test_progress_ignores_cancelled(self, project_service, board):
        _task(project_service, board, "a", status=TaskStatus.COMPLETED)
        _task(project_service, board, "b", status=TaskStatus.IN_PROGRESS)
        _task(project_service, board, "c", status=TaskStatus.CANCELLED)

        assert project_service.board_progress(board.id) == 0.5

    def test_progress_of_empty_board(self, project_service, board):
        assert project_service.board_progress(board.id) == 0.0

    def test_overdue_tasks(self, project_service, board):
        late = _task(project_service, board, "late", due_date=NOW - timedelta(days=1))
        _task(project_service, board, "done", status=TaskStatus.COMPLETED, due_date=NOW - timedelta(days=1))
        _task(project_service, board, "future", due_date=NOW + timedelta(days=1))

        assert project_service.overdue_tasks() == [late]
