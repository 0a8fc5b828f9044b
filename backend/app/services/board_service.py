# Overview: Service-layer operations for cards on the board; owns card ordering.

"""
Board Service

ORDERING INVARIANT:
    For every column holding N cards, the card orders are exactly
    {0, 1, ..., N-1}: dense, zero-based, no duplicates.

    - create_card appends at order = N
    - move_card shifts the neighbours with bulk conditional UPDATEs and
      then places the card
    - delete_card closes the gap it leaves

CONCURRENCY:
    Every write first calls lock_project_board(), which serializes board
    writers for the project, and only then reads the rows it validates.
    All shifts, the card row, the movement log and the audit row commit in
    one transaction (see concurrency.atomic).

MOVEMENT POLICY:
    Projects in FORWARD_ONLY mode reject cross-column moves into a column
    whose order is lower than the current one. Column order is admin
    assigned; reordering columns does not re-validate card positions.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func, update

from ..extensions import db
from ..models import BoardColumn, Card, CardMovementLog, Label, Priority, Project
from ..models.cards import CARD_STATUSES
from ..validation import (
    ConflictError,
    ForbiddenTransition,
    NotFoundError,
    ValidationError,
    coerce_int,
)
from . import access_service
from .audit_service import append_audit_log
from .concurrency import atomic, lock_project_board
from app.time_utils import to_naive_utc, utcnow


def _card_count(column_id: int) -> int:
    return db.session.query(func.count(Card.id)).filter(Card.column_id == column_id).scalar() or 0


def _shift_orders(
    column_id: int,
    *,
    delta: int,
    exclude_card_id: int | None = None,
    min_order: int | None = None,
    max_order: int | None = None,
) -> None:
    """UPDATE cards SET order = order + delta WHERE column and order range match."""
    stmt = update(Card).where(Card.column_id == column_id)
    if exclude_card_id is not None:
        stmt = stmt.where(Card.id != exclude_card_id)
    if min_order is not None:
        stmt = stmt.where(Card.order >= min_order)
    if max_order is not None:
        stmt = stmt.where(Card.order <= max_order)
    db.session.execute(
        stmt.values(order=Card.order + delta).execution_options(synchronize_session=False)
    )


def _get_column_in_project(column_id: int, project_id: int, message: str) -> BoardColumn:
    column = db.session.query(BoardColumn).filter_by(id=column_id, project_id=project_id).first()
    if column is None:
        raise ValidationError(message)
    return column


def _resolve_priority(project_id: int, priority_id: int | None) -> int | None:
    if priority_id is None:
        return None
    if not db.session.query(Priority).filter_by(id=priority_id, project_id=project_id).first():
        raise ValidationError("Invalid priority for this project")
    return priority_id


def _resolve_assignee(project_id: int, assignee_id: int | None) -> int | None:
    if assignee_id is None:
        return None
    if access_service.role_of(assignee_id, project_id) is None:
        raise ValidationError("Assignee must be a member of this project")
    return assignee_id


def _resolve_labels(project_id: int, label_ids: list[int] | None) -> list[Label]:
    if not label_ids:
        return []
    wanted = set(label_ids)
    labels = db.session.query(Label).filter(
        Label.project_id == project_id,
        Label.id.in_(wanted),
    ).all()
    if len(labels) != len(wanted):
        raise ValidationError("Invalid label for this project")
    return labels


def create_card(
    project_id: int,
    column_id: int,
    name: str,
    *,
    actor_id: int | None,
    description: str | None = None,
    assignee_id: int | None = None,
    priority_id: int | None = None,
    label_ids: list[int] | None = None,
    now: datetime | None = None,
) -> Card:
    """
    Create a card at the bottom of a column.

    Order is zero-based: the new card takes order = current card count.
    Writes the card, its creation movement-log row (from_column_id=None) and
    an audit row atomically.

    Raises:
        NotFoundError: project missing
        ValidationError: column/priority/labels not in project, assignee not a member
    """
    now = to_naive_utc(now) if now is not None else utcnow()

    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Card name is required")

    def _op() -> Card:
        lock_project_board(project_id)
        column = _get_column_in_project(column_id, project_id, "Invalid column for this project")

        card = Card(
            project_id=project_id,
            column_id=column.id,
            name=name.strip(),
            description=description,
            order=_card_count(column.id),
            status="OPEN",
            assignee_id=_resolve_assignee(project_id, assignee_id),
            priority_id=_resolve_priority(project_id, priority_id),
            created_by_user_id=actor_id,
            created_at=now,
            updated_at=now,
        )
        card.labels = _resolve_labels(project_id, label_ids)
        db.session.add(card)
        db.session.flush()

        db.session.add(CardMovementLog(
            card_id=card.id,
            from_column_id=None,
            to_column_id=column.id,
            to_column_name=column.name,
            moved_at=now,
            moved_by_user_id=actor_id,
        ))

        append_audit_log(
            user_id=actor_id,
            project_id=project_id,
            action="CREATE",
            entity="CARD",
            entity_id=card.id,
            details={"name": card.name, "column": column.name},
            occurred_at=now,
        )
        db.session.flush()
        return card

    return atomic(_op)


def move_card(
    card_id: int,
    target_column_id: int,
    target_order: int,
    *,
    actor_id: int | None,
    now: datetime | None = None,
) -> Card:
    """
    Move a card to (target_column_id, target_order).

    Same column, moving down (target > old): cards in (old, target] move up
    one slot. Moving up (target < old): cards in [target, old) move down one.
    Cross column: the old column closes its gap above old, the target column
    opens a slot at target, and one movement-log row is appended.

    Valid target_order: 0..N-1 within the same column, 0..N for another
    column (N = cards currently in the target column).
    CLOSED cards keep their slot but cannot move until reopened.

    Args:
        card_id: card to move
        target_column_id: destination column (same project)
        target_order: zero-based destination slot
        actor_id: recorded on the movement log and audit rows
        now: evaluation instant (defaults to utcnow())

    Returns:
        The moved card

    Raises:
        NotFoundError: card missing
        ValidationError: bad column target or order
        ForbiddenTransition: FORWARD_ONLY project, backwards move
        ConflictError: card is CLOSED, or same column and same order
        TransactionFailed: store contention outlived the retry budget
    """
    target_column_id = coerce_int(target_column_id, "column_id")
    target_order = coerce_int(target_order, "order")
    if target_order < 0:
        raise ValidationError("order must be >= 0")
    now = to_naive_utc(now) if now is not None else utcnow()

    def _op() -> tuple[Card, int, int]:
        card = db.session.get(Card, card_id)
        if card is None:
            raise NotFoundError(f"Card {card_id} not found")

        lock_project_board(card.project_id)

        # Re-read under the lock; the first read only located the project
        card = db.session.get(Card, card_id, populate_existing=True, with_for_update=True)
        if card is None:
            raise NotFoundError(f"Card {card_id} not found")
        if card.status == "CLOSED":
            raise ConflictError("Closed cards cannot be moved; reopen the card first")

        target = _get_column_in_project(target_column_id, card.project_id, "Invalid column target")
        old_column_id = card.column_id
        old_order = card.order
        same_column = target.id == old_column_id
        source = db.session.get(BoardColumn, old_column_id)

        if not same_column:
            project = db.session.get(Project, card.project_id, populate_existing=True)
            if project.card_movement_mode == "FORWARD_ONLY" and target.order < source.order:
                raise ForbiddenTransition(
                    "Card movement is restricted to forward direction only in this project."
                )

        count = _card_count(target.id)
        max_allowed = count - 1 if same_column else count
        if target_order > max_allowed:
            raise ValidationError(f"order must be between 0 and {max_allowed}")

        if same_column:
            if target_order == old_order:
                raise ConflictError("Card is already at that position")
            if target_order > old_order:
                _shift_orders(old_column_id, delta=-1, exclude_card_id=card.id,
                              min_order=old_order + 1, max_order=target_order)
            else:
                _shift_orders(old_column_id, delta=1, exclude_card_id=card.id,
                              min_order=target_order, max_order=old_order - 1)
        else:
            _shift_orders(old_column_id, delta=-1, exclude_card_id=card.id,
                          min_order=old_order + 1)
            _shift_orders(target.id, delta=1, exclude_card_id=card.id,
                          min_order=target_order)
            db.session.add(CardMovementLog(
                card_id=card.id,
                from_column_id=old_column_id,
                from_column_name=source.name,
                to_column_id=target.id,
                to_column_name=target.name,
                moved_at=now,
                moved_by_user_id=actor_id,
            ))

        card.column_id = target.id
        card.order = target_order

        append_audit_log(
            user_id=actor_id,
            project_id=card.project_id,
            action="MOVE",
            entity="CARD",
            entity_id=card.id,
            details={
                "from": old_column_id if not same_column else "SAME_COLUMN",
                "to": target.id,
                "order": target_order,
            },
            occurred_at=now,
        )
        db.session.flush()
        return card, old_column_id, old_order

    card, old_column_id, old_order = atomic(_op)
    current_app.logger.info(
        "Card %s moved from column %s[%s] to column %s[%s]",
        card_id, old_column_id, old_order, target_column_id, target_order,
    )
    return card


def update_card(
    card_id: int,
    *,
    actor_id: int | None,
    patch: dict,
    label_ids: list[int] | None = None,
    now: datetime | None = None,
) -> Card:
    """
    Edit card fields (name, description, status, assignee_id, priority_id,
    labels). Never touches column_id or order.

    status CLOSED stamps closed_at; status OPEN clears it.
    """
    now = to_naive_utc(now) if now is not None else utcnow()

    def _op() -> Card:
        card = db.session.get(Card, card_id, populate_existing=True)
        if card is None:
            raise NotFoundError(f"Card {card_id} not found")

        changes = dict(patch)
        if "status" in changes:
            status = changes.pop("status")
            if status not in CARD_STATUSES:
                raise ValidationError(f"status must be one of: {', '.join(sorted(CARD_STATUSES))}")
            if status == "CLOSED" and card.status != "CLOSED":
                card.closed_at = now
            elif status == "OPEN":
                card.closed_at = None
            card.status = status
        if "assignee_id" in changes:
            card.assignee_id = _resolve_assignee(card.project_id, changes.pop("assignee_id"))
        if "priority_id" in changes:
            card.priority_id = _resolve_priority(card.project_id, changes.pop("priority_id"))
        for key, value in changes.items():
            setattr(card, key, value)
        if label_ids is not None:
            card.labels = _resolve_labels(card.project_id, label_ids)

        details = {k: v for k, v in patch.items() if k != "description"}
        if label_ids is not None:
            details["label_ids"] = sorted(set(label_ids))
        append_audit_log(
            user_id=actor_id,
            project_id=card.project_id,
            action="UPDATE",
            entity="CARD",
            entity_id=card.id,
            details=details,
            occurred_at=now,
        )
        db.session.flush()
        return card

    return atomic(_op)


def delete_card(card_id: int, *, actor_id: int | None) -> None:
    """
    Delete a card and its movement log, closing the order gap it leaves.
    """
    def _op() -> None:
        card = db.session.get(Card, card_id)
        if card is None:
            raise NotFoundError(f"Card {card_id} not found")

        lock_project_board(card.project_id)
        card = db.session.get(Card, card_id, populate_existing=True, with_for_update=True)
        if card is None:
            raise NotFoundError(f"Card {card_id} not found")

        project_id, column_id, order, name = card.project_id, card.column_id, card.order, card.name
        db.session.delete(card)
        db.session.flush()
        _shift_orders(column_id, delta=-1, min_order=order + 1)

        append_audit_log(
            user_id=actor_id,
            project_id=project_id,
            action="DELETE",
            entity="CARD",
            entity_id=card_id,
            details={"name": name, "column_id": column_id},
        )
        db.session.flush()

    atomic(_op)


def get_card(card_id: int) -> Card:
    card = db.session.get(Card, card_id)
    if card is None:
        raise NotFoundError(f"Card {card_id} not found")
    return card


def get_board(project_id: int) -> list[dict]:
    """Columns by order, each with its OPEN cards by order."""
    if db.session.get(Project, project_id) is None:
        raise NotFoundError(f"Project {project_id} not found")

    columns = (
        db.session.query(BoardColumn)
        .filter_by(project_id=project_id)
        .order_by(BoardColumn.order.asc(), BoardColumn.id.asc())
        .all()
    )
    cards = (
        db.session.query(Card)
        .filter(Card.project_id == project_id, Card.status == "OPEN")
        .order_by(Card.column_id, Card.order.asc())
        .all()
    )
    by_column: dict[int, list[dict]] = {}
    for card in cards:
        by_column.setdefault(card.column_id, []).append(card.to_dict())

    board = []
    for column in columns:
        d = column.to_dict()
        d["cards"] = by_column.get(column.id, [])
        board.append(d)
    return board
