"""WIP limit checks for columns."""

from __future__ import annotations

from typing import Optional

from .db import BoardColumn
from .errors import AdmissionDenied
from .logging_config import get_logger

logger = get_logger(__name__)


def admits(task_limit: Optional[int], child_count: int, cross_column: bool) -> bool:
    """Whether a column can take one more task.

    Only insertions coming from outside the column count against the limit;
    moves and reorders inside a column never change its size.
    """
    if not task_limit or not cross_column:
        return True
    return child_count < task_limit


def ensure_admits(column: BoardColumn, child_count: int, cross_column: bool = True) -> None:
    if admits(column.task_limit, child_count, cross_column):
        return
    logger.warning(
        "WIP limit reached on column %s (%s): %d/%d",
        column.id,
        column.name,
        child_count,
        column.task_limit,
    )
    raise AdmissionDenied(
        f'Column "{column.name}" has reached its limit of {column.task_limit} tasks',
        {"columnId": column.id, "taskLimit": column.task_limit, "taskCount": child_count},
    )
