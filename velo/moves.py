"""Move and reorder engines.

The public functions each run as one transaction: the parent rows involved
are locked first, the position shifts and the row update follow, and the
whole thing commits or rolls back together. ``place_task`` and
``place_column`` do the work without opening a transaction so that callers
can fold a move into a larger update.
"""

from __future__ import annotations

from typing import Optional, Sequence

from sqlalchemy.orm import Session, selectinload

from .admission import ensure_admits
from .db import Board, BoardColumn, Task, require, transaction
from .errors import NotFound
from .logging_config import get_logger
from .ordering import (
    children,
    clamp_position,
    close_gap,
    count_children,
    lock_owner,
    lock_parents,
    open_gap,
    relocate,
    rewrite_positions,
    validate_permutation,
)

logger = get_logger(__name__)


def load_task(session: Session, task_id: str) -> Task:
    return require(session, Task, task_id, options=[selectinload(Task.column)])


def place_task(
    session: Session,
    task: Task,
    target_column_id: str,
    new_position: Optional[int] = None,
) -> Task:
    """Move ``task`` to ``new_position`` of ``target_column_id``.

    Same-column moves shift the siblings between the old and the new slot.
    Cross-column moves close the gap in the source column and open one in
    the target, after checking the target's WIP limit. ``new_position`` is
    clamped to the slots that exist after the move; ``None`` means the end
    of the target column, or the current slot for a same-column move.

    Pending changes on ``task`` are discarded, since the row is reloaded
    once its columns are locked.
    """
    columns = lock_owner(session, BoardColumn, task, target_column_id)

    target = columns.get(target_column_id)
    if target is None:
        raise NotFound.for_entity(BoardColumn.entity_name, target_column_id)

    source_id = task.column_id
    old_position = task.position
    cross_column = source_id != target_column_id
    target_count = count_children(session, Task, target_column_id)
    ensure_admits(target, target_count, cross_column)

    if cross_column:
        position = target_count if new_position is None else clamp_position(new_position, target_count)
        close_gap(session, Task, source_id, old_position)
        open_gap(session, Task, target_column_id, position)
        task.column_id = target_column_id
    else:
        position = old_position if new_position is None else clamp_position(new_position, target_count - 1)
        relocate(session, Task, source_id, old_position, position)
    task.position = position

    logger.info(
        "Moved task %s from %s[%d] to %s[%d]",
        task.id,
        source_id,
        old_position,
        target_column_id,
        position,
    )
    return task


def move_task(session: Session, task_id: str, target_column_id: str, new_position: int) -> Task:
    with transaction(session):
        place_task(session, require(session, Task, task_id), target_column_id, new_position)
    return load_task(session, task_id)


def place_column(session: Session, column: BoardColumn, new_position: int) -> BoardColumn:
    """Move ``column`` to another slot of its own board."""
    lock_owner(session, Board, column)

    old_position = column.position
    count = count_children(session, BoardColumn, column.board_id)
    position = clamp_position(new_position, count - 1)
    relocate(session, BoardColumn, column.board_id, old_position, position)
    column.position = position

    logger.info("Moved column %s from %d to %d", column.id, old_position, position)
    return column


def reorder(session: Session, parent_model, model, parent_id: str, ordered_ids: Sequence[str]) -> list:
    """Rewrite the order of every child of ``parent_id``.

    ``ordered_ids`` must name each current child exactly once; otherwise
    ``InvalidArgument`` is raised and nothing changes.
    """
    ordered_ids = list(ordered_ids)
    with transaction(session):
        if parent_id not in lock_parents(session, parent_model, (parent_id,)):
            raise NotFound.for_entity(parent_model.entity_name, parent_id)
        items = children(session, model, parent_id)
        validate_permutation(ordered_ids, [item.id for item in items])
        rewrite_positions(items, ordered_ids)

    logger.info("Reordered %d %s under %s", len(ordered_ids), model.__tablename__, parent_id)
    return children(session, model, parent_id)


def reorder_tasks(session: Session, column_id: str, task_ids: Sequence[str]) -> list[Task]:
    return reorder(session, BoardColumn, Task, column_id, task_ids)


def reorder_columns(session: Session, board_id: str, column_ids: Sequence[str]) -> list[BoardColumn]:
    return reorder(session, Board, BoardColumn, board_id, column_ids)


def remove(session: Session, parent_model, model, item_id: str) -> None:
    """Delete one child and pull its later siblings forward."""
    with transaction(session):
        item = require(session, model, item_id)
        lock_owner(session, parent_model, item)

        parent_id = getattr(item, model.parent_key)
        position = item.position
        session.delete(item)
        session.flush()
        close_gap(session, model, parent_id, position)

    logger.info("Removed %s %s from %s[%d]", model.__tablename__, item_id, parent_id, position)
