"""Position bookkeeping for ordered containers.

A container is the set of rows of one model sharing a parent key (the
columns of a board, the tasks of a column). Positions inside a container
always form the dense sequence ``0..n-1``. The helpers here only compute and
issue the statements; callers run them inside ``db.transaction`` so that a
failed operation leaves the container as it was.

Models opt in by naming their parent key column in a ``parent_key`` class
attribute.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from .errors import InvalidArgument


def parent_column(model):
    return getattr(model, model.parent_key)


def shift_positions(
    session: Session,
    model,
    parent_id: str,
    lower: int,
    upper: Optional[int],
    delta: int,
) -> int:
    """Add ``delta`` to every position in ``[lower, upper]`` under ``parent_id``.

    ``upper=None`` leaves the range open at the top. The shift is a single
    UPDATE statement; returns the number of rows it touched.
    """
    if delta not in (1, -1):
        raise ValueError(f"delta must be +1 or -1, got {delta}")
    if upper is not None and upper < lower:
        return 0

    criteria = [parent_column(model) == parent_id, model.position >= lower]
    if upper is not None:
        criteria.append(model.position <= upper)

    stmt = (
        update(model)
        .where(*criteria)
        .values(position=model.position + delta)
        .execution_options(synchronize_session="fetch")
    )
    return session.execute(stmt).rowcount


def close_gap(session: Session, model, parent_id: str, position: int) -> int:
    """Pull every sibling after ``position`` one slot towards the front."""
    return shift_positions(session, model, parent_id, position + 1, None, -1)


def open_gap(session: Session, model, parent_id: str, position: int) -> int:
    """Push every sibling at or after ``position`` one slot back."""
    return shift_positions(session, model, parent_id, position, None, 1)


def relocate(session: Session, model, parent_id: str, old: int, new: int) -> int:
    """Make room for an item moving from ``old`` to ``new`` in its own container.

    Moving down closes the hole by decrementing ``(old, new]``; moving up
    opens one by incrementing ``[new, old)``. The moved row itself is left to
    the caller.
    """
    if new > old:
        return shift_positions(session, model, parent_id, old + 1, new, -1)
    if new < old:
        return shift_positions(session, model, parent_id, new, old - 1, 1)
    return 0


def count_children(session: Session, model, parent_id: str) -> int:
    stmt = select(func.count()).select_from(model).where(parent_column(model) == parent_id)
    return session.scalar(stmt) or 0


def next_position(session: Session, model, parent_id: str) -> int:
    """Slot after the current last child, ``0`` for an empty container."""
    current = session.scalar(select(func.max(model.position)).where(parent_column(model) == parent_id))
    return 0 if current is None else current + 1


def clamp_position(position: int, upper: int) -> int:
    return max(0, min(position, upper))


def children(session: Session, model, parent_id: str) -> list:
    stmt = (
        select(model)
        .where(parent_column(model) == parent_id)
        .order_by(model.position, model.created_at, model.id)
    )
    return list(session.scalars(stmt))


def lock_parents(session: Session, parent_model, parent_ids: Iterable[str]) -> dict:
    """Load parent rows with ``SELECT ... FOR UPDATE``.

    Rows are locked in id order so two writers touching the same pair of
    containers cannot deadlock. Backends without row locks (SQLite) ignore
    the clause and rely on their database-level write lock.
    """
    ids = sorted(set(parent_ids))
    stmt = (
        select(parent_model)
        .where(parent_model.id.in_(ids))
        .order_by(parent_model.id)
        .with_for_update()
    )
    return {row.id: row for row in session.scalars(stmt)}


def lock_owner(session: Session, parent_model, item, *extra_ids: str) -> dict:
    """Lock the container holding ``item`` along with ``extra_ids``.

    ``item`` is reloaded once the locks are held. If a concurrent writer
    moved it to another container in the meantime, that container is locked
    as well and the reload repeats until the item's parent is covered.
    """
    locked: dict = {}
    while True:
        wanted = {getattr(item, item.parent_key), *extra_ids}
        locked.update(lock_parents(session, parent_model, wanted - locked.keys()))
        session.refresh(item)
        if getattr(item, item.parent_key) in locked:
            return locked


def validate_permutation(ordered_ids: Sequence[str], existing_ids: Iterable[str]) -> None:
    """Reject ``ordered_ids`` unless it is a permutation of ``existing_ids``.

    The length check runs first; a duplicate always leaves some existing id
    out, so the set comparison catches it.
    """
    existing = set(existing_ids)
    if len(ordered_ids) != len(existing):
        raise InvalidArgument(
            "number of ids does not match the number of children",
            {"expected": len(existing), "received": len(ordered_ids)},
        )
    received = set(ordered_ids)
    if received != existing:
        raise InvalidArgument(
            "ids do not match the children of the container",
            {
                "unknown": sorted(received - existing),
                "missing": sorted(existing - received),
            },
        )


def rewrite_positions(items: Sequence, ordered_ids: Sequence[str]) -> list:
    """Assign ``position = index`` following ``ordered_ids``.

    ``items`` must already be validated against ``ordered_ids``. Returns the
    items in their new order.
    """
    by_id = {item.id: item for item in items}
    ordered = []
    for index, item_id in enumerate(ordered_ids):
        item = by_id[item_id]
        item.position = index
        ordered.append(item)
    return ordered
