from __future__ import annotations

from typing import Any, List, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from . import moves
from .admission import ensure_admits
from .db import Board, BoardColumn, Project, Task, require, transaction
from .errors import NotFound
from .logging_config import get_logger
from .ordering import count_children, lock_parents, next_position
from .utils import clean_text

logger = get_logger(__name__)

DEFAULT_COLUMNS = (
    ("Backlog", "#6B7280"),
    ("To Do", "#3B82F6"),
    ("In Progress", "#F59E0B"),
    ("In Review", "#8B5CF6"),
    ("Done", "#10B981"),
)


class Storage:
    """Projects, boards, columns and tasks on top of one SQLAlchemy session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    # === Project operations ===
    def create_project(self, name: str, **fields: Any) -> Project:
        with transaction(self.session):
            description = clean_text(fields.pop("description", None))
            project = Project(name=name.strip(), description=description, **fields)
            self.session.add(project)
        logger.info("Created project %s", project.id)
        return self.get_project(project.id)

    def list_projects(self) -> List[Project]:
        stmt = select(Project).options(selectinload(Project.boards)).order_by(Project.created_at.desc())
        return list(self.session.scalars(stmt))

    def get_project(self, project_id: str) -> Project:
        return require(self.session, Project, project_id, options=[selectinload(Project.boards)])

    def update_project(self, project_id: str, **fields: Any) -> Project:
        with transaction(self.session):
            project = require(self.session, Project, project_id)
            _assign(project, fields)
        return self.get_project(project_id)

    def delete_project(self, project_id: str) -> None:
        with transaction(self.session):
            self.session.delete(require(self.session, Project, project_id))
        logger.info("Deleted project %s", project_id)

    # === Board operations ===
    def create_board(self, project_id: str, name: str, description: Optional[str] = None) -> Board:
        with transaction(self.session):
            require(self.session, Project, project_id)
            board = Board(project_id=project_id, name=name.strip(), description=clean_text(description))
            self.session.add(board)
            self.session.flush()
            for position, (column_name, color) in enumerate(DEFAULT_COLUMNS):
                self.session.add(
                    BoardColumn(board_id=board.id, name=column_name, color=color, position=position)
                )
        logger.info("Created board %s in project %s", board.id, project_id)
        return self.get_board(board.id)

    def list_boards(self, project_id: Optional[str] = None) -> List[Board]:
        stmt = select(Board).options(_board_tree()).order_by(Board.created_at.desc())
        if project_id is not None:
            stmt = stmt.where(Board.project_id == project_id)
        return list(self.session.scalars(stmt))

    def get_board(self, board_id: str) -> Board:
        return require(self.session, Board, board_id, options=[_board_tree()])

    def update_board(self, board_id: str, **fields: Any) -> Board:
        with transaction(self.session):
            board = require(self.session, Board, board_id)
            _assign(board, fields)
        return self.get_board(board_id)

    def delete_board(self, board_id: str) -> None:
        with transaction(self.session):
            self.session.delete(require(self.session, Board, board_id))
        logger.info("Deleted board %s", board_id)

    # === Column operations ===
    def create_column(
        self,
        board_id: str,
        name: str,
        position: Optional[int] = None,
        **fields: Any,
    ) -> BoardColumn:
        with transaction(self.session):
            if board_id not in lock_parents(self.session, Board, (board_id,)):
                raise NotFound.for_entity(Board.entity_name, board_id)
            if position is None:
                position = next_position(self.session, BoardColumn, board_id)
            column = BoardColumn(board_id=board_id, name=name.strip(), position=position, **fields)
            self.session.add(column)
        logger.info("Created column %s in board %s at %d", column.id, board_id, position)
        return self.get_column(column.id)

    def list_columns(self, board_id: Optional[str] = None) -> List[BoardColumn]:
        stmt = (
            select(BoardColumn)
            .options(selectinload(BoardColumn.tasks))
            .order_by(BoardColumn.board_id, BoardColumn.position)
        )
        if board_id is not None:
            stmt = stmt.where(BoardColumn.board_id == board_id)
        return list(self.session.scalars(stmt))

    def get_column(self, column_id: str) -> BoardColumn:
        return require(self.session, BoardColumn, column_id, options=[selectinload(BoardColumn.tasks)])

    def update_column(self, column_id: str, **fields: Any) -> BoardColumn:
        position = fields.pop("position", None)
        with transaction(self.session):
            column = require(self.session, BoardColumn, column_id)
            if position is not None:
                moves.place_column(self.session, column, position)
            _assign(column, fields)
        return self.get_column(column_id)

    def delete_column(self, column_id: str) -> None:
        moves.remove(self.session, Board, BoardColumn, column_id)

    def reorder_columns(self, board_id: str, column_ids: Sequence[str]) -> List[BoardColumn]:
        return moves.reorder_columns(self.session, board_id, column_ids)

    # === Task operations ===
    def create_task(
        self,
        column_id: str,
        title: str,
        position: Optional[int] = None,
        **fields: Any,
    ) -> Task:
        with transaction(self.session):
            column = lock_parents(self.session, BoardColumn, (column_id,)).get(column_id)
            if column is None:
                raise NotFound.for_entity(BoardColumn.entity_name, column_id)
            ensure_admits(column, count_children(self.session, Task, column_id))
            if position is None:
                position = next_position(self.session, Task, column_id)
            description = clean_text(fields.pop("description", None))
            task = Task(
                column_id=column_id,
                title=title.strip(),
                description=description,
                position=position,
                **fields,
            )
            self.session.add(task)
        logger.info("Created task %s in column %s at %d", task.id, column_id, position)
        return moves.load_task(self.session, task.id)

    def list_tasks(self, column_id: Optional[str] = None) -> List[Task]:
        stmt = select(Task).options(selectinload(Task.column))
        if column_id is not None:
            stmt = stmt.where(Task.column_id == column_id)
        return list(self.session.scalars(stmt.order_by(Task.position, Task.created_at)))

    def search_tasks(self, query: str) -> List[Task]:
        pattern = f"%{query}%"
        stmt = (
            select(Task)
            .options(selectinload(Task.column))
            .where(
                or_(
                    Task.title.ilike(pattern),
                    Task.description.ilike(pattern),
                    Task.assignee.ilike(pattern),
                )
            )
            .order_by(Task.created_at.desc())
        )
        return list(self.session.scalars(stmt))

    def get_task(self, task_id: str) -> Task:
        return moves.load_task(self.session, task_id)

    def update_task(self, task_id: str, **fields: Any) -> Task:
        """Apply a partial update.

        A new ``column_id`` or ``position`` goes through the move engine in
        the same transaction as the plain field edits, so a WIP rejection
        leaves the task untouched.
        """
        column_id = fields.pop("column_id", None)
        position = fields.pop("position", None)
        with transaction(self.session):
            task = require(self.session, Task, task_id)
            if column_id is not None or position is not None:
                moves.place_task(self.session, task, column_id or task.column_id, position)
            _assign(task, fields)
        return moves.load_task(self.session, task_id)

    def delete_task(self, task_id: str) -> None:
        moves.remove(self.session, BoardColumn, Task, task_id)

    def move_task(self, task_id: str, target_column_id: str, new_position: int) -> Task:
        return moves.move_task(self.session, task_id, target_column_id, new_position)

    def reorder_tasks(self, column_id: str, task_ids: Sequence[str]) -> List[Task]:
        return moves.reorder_tasks(self.session, column_id, task_ids)


def _board_tree():
    return selectinload(Board.columns).selectinload(BoardColumn.tasks)


def _assign(obj: Any, fields: dict[str, Any]) -> None:
    for key, value in fields.items():
        if isinstance(value, str) and key in ("name", "title"):
            value = value.strip()
        elif key == "description":
            value = clean_text(value)
        setattr(obj, key, value)
