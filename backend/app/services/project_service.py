# Overview: Service-layer operations for projects, settings, stats and columns.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import BoardColumn, Card, Project, ProjectMembership, User
from ..models.auth import ROLE_ADMIN
from ..models.projects import CARD_MOVEMENT_MODES
from ..validation import ConflictError, NotFoundError, ValidationError
from .audit_service import append_audit_log
from .concurrency import atomic, lock_project_board
from app.time_utils import to_utc_z


DEFAULT_COLUMNS = ["To Do", "In Progress", "Done"]


def get_project(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(f"Project {project_id} not found")
    return project


def create_project(*, name: str, creator_id: int, description: str | None = None) -> Project:
    """
    Create an IDLE project with the default columns; the creator becomes a
    project ADMIN. One transaction, one audit row.
    """
    if not isinstance(name, str) or len(name.strip()) < 3:
        raise ValidationError("Project name must be at least 3 characters")

    def _op() -> Project:
        project = Project(
            name=name.strip(),
            description=description,
            creator_id=creator_id,
            status="IDLE",
            total_paused_ms=0,
            card_movement_mode="FREE",
        )
        db.session.add(project)
        db.session.flush()

        db.session.add(ProjectMembership(user_id=creator_id, project_id=project.id, role=ROLE_ADMIN))
        for index, column_name in enumerate(DEFAULT_COLUMNS):
            db.session.add(BoardColumn(project_id=project.id, name=column_name, order=index))

        append_audit_log(
            user_id=creator_id,
            project_id=project.id,
            action="CREATE",
            entity="PROJECT",
            entity_id=project.id,
            details={"name": project.name},
        )
        db.session.flush()
        return project

    return atomic(_op)


def list_projects(*, user_id: int, page: int = 1, limit: int = 20) -> dict:
    """
    Newest first. Global admins see every project; everyone else only the
    projects they are a member of.
    """
    page = max(1, page)
    limit = max(1, min(limit, 100))

    user = db.session.get(User, user_id)
    query = db.session.query(Project)
    if user is None or user.role != ROLE_ADMIN:
        query = query.join(ProjectMembership, ProjectMembership.project_id == Project.id).filter(
            ProjectMembership.user_id == user_id
        )

    total = query.count()
    projects = (
        query.order_by(Project.created_at.desc(), Project.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    ids = [p.id for p in projects]
    member_counts: dict[int, int] = {}
    card_counts: dict[int, int] = {}
    if ids:
        member_counts = dict(
            db.session.query(ProjectMembership.project_id, func.count(ProjectMembership.id))
            .filter(ProjectMembership.project_id.in_(ids))
            .group_by(ProjectMembership.project_id)
            .all()
        )
        card_counts = dict(
            db.session.query(Card.project_id, func.count(Card.id))
            .filter(Card.project_id.in_(ids))
            .group_by(Card.project_id)
            .all()
        )

    items = []
    for p in projects:
        d = p.to_dict()
        d["member_count"] = member_counts.get(p.id, 0)
        d["card_count"] = card_counts.get(p.id, 0)
        items.append(d)

    return {
        "projects": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }


def update_settings(project_id: int, *, actor_id: int, patch: dict) -> Project:
    """
    Update name / description / card_movement_mode.

    Switching to FORWARD_ONLY only affects future moves.
    """
    if "card_movement_mode" in patch and patch["card_movement_mode"] not in CARD_MOVEMENT_MODES:
        raise ValidationError(
            f"card_movement_mode must be one of: {', '.join(sorted(CARD_MOVEMENT_MODES))}"
        )

    def _op() -> Project:
        project = db.session.get(Project, project_id, populate_existing=True)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")
        for key, value in patch.items():
            setattr(project, key, value)
        append_audit_log(
            user_id=actor_id,
            project_id=project_id,
            action="UPDATE",
            entity="PROJECT_SETTINGS",
            entity_id=project_id,
            details=dict(patch),
        )
        db.session.flush()
        return project

    return atomic(_op)


def get_stats(project_id: int) -> dict:
    """
    Card completion stats. stats is None while the project has no cards;
    end_time is the last close time once every card is closed.
    """
    get_project(project_id)

    total = db.session.query(func.count(Card.id)).filter(Card.project_id == project_id).scalar() or 0
    if total == 0:
        return {"project_id": project_id, "message": "No cards in project yet", "stats": None}

    closed = db.session.query(func.count(Card.id)).filter(
        Card.project_id == project_id, Card.status == "CLOSED"
    ).scalar() or 0
    first_created = db.session.query(func.min(Card.created_at)).filter(
        Card.project_id == project_id
    ).scalar()

    is_completed = closed == total
    end_time = None
    if is_completed:
        end_time = db.session.query(func.max(Card.closed_at)).filter(
            Card.project_id == project_id
        ).scalar()

    return {
        "project_id": project_id,
        "stats": {
            "start_time": to_utc_z(first_created),
            "end_time": to_utc_z(end_time),
            "is_completed": is_completed,
            "total_cards": total,
            "open_cards": total - closed,
            "closed_cards": closed,
            "completion_percentage": closed * 100.0 / total,
        },
    }


# ---------------------------------------------------------------------------
# Columns
# ---------------------------------------------------------------------------

def list_columns(project_id: int) -> list[BoardColumn]:
    get_project(project_id)
    return (
        db.session.query(BoardColumn)
        .filter_by(project_id=project_id)
        .order_by(BoardColumn.order.asc(), BoardColumn.id.asc())
        .all()
    )


def _ensure_order_free(project_id: int, order: int, exclude_column_id: int | None = None) -> None:
    query = db.session.query(BoardColumn.id).filter(
        BoardColumn.project_id == project_id,
        BoardColumn.order == order,
    )
    if exclude_column_id is not None:
        query = query.filter(BoardColumn.id != exclude_column_id)
    if query.first():
        raise ConflictError(f"Another column already uses order {order}")


def create_column(project_id: int, *, actor_id: int, name: str, order: int | None = None) -> BoardColumn:
    """
    Append after the highest existing order unless an order is given.

    Raises:
        ConflictError: the given order is already taken in this project
    """
    def _op() -> BoardColumn:
        get_project(project_id)
        lock_project_board(project_id)
        col_order = order
        if col_order is None:
            highest = db.session.query(func.max(BoardColumn.order)).filter(
                BoardColumn.project_id == project_id
            ).scalar()
            col_order = 0 if highest is None else highest + 1
        else:
            _ensure_order_free(project_id, col_order)

        column = BoardColumn(project_id=project_id, name=name, order=col_order)
        db.session.add(column)
        db.session.flush()

        append_audit_log(
            user_id=actor_id,
            project_id=project_id,
            action="CREATE",
            entity="COLUMN",
            entity_id=column.id,
            details={"name": name, "order": col_order},
        )
        db.session.flush()
        return column

    return atomic(_op)


def get_column(column_id: int) -> BoardColumn:
    column = db.session.get(BoardColumn, column_id)
    if column is None:
        raise NotFoundError(f"Column {column_id} not found")
    return column


def update_column(column_id: int, *, actor_id: int, patch: dict) -> BoardColumn:
    def _op() -> BoardColumn:
        column = get_column(column_id)
        if "order" in patch and patch["order"] != column.order:
            lock_project_board(column.project_id)
            _ensure_order_free(column.project_id, patch["order"], exclude_column_id=column.id)
        for key, value in patch.items():
            setattr(column, key, value)
        append_audit_log(
            user_id=actor_id,
            project_id=column.project_id,
            action="UPDATE",
            entity="COLUMN",
            entity_id=column.id,
            details=dict(patch),
        )
        db.session.flush()
        return column

    return atomic(_op)


def delete_column(column_id: int, *, actor_id: int) -> None:
    """Only empty columns can be deleted."""
    def _op() -> None:
        column = get_column(column_id)
        lock_project_board(column.project_id)
        has_cards = db.session.query(Card.id).filter(Card.column_id == column_id).first()
        if has_cards:
            raise ConflictError("Cannot delete a column that contains cards")
        project_id, name = column.project_id, column.name
        db.session.delete(column)
        append_audit_log(
            user_id=actor_id,
            project_id=project_id,
            action="DELETE",
            entity="COLUMN",
            entity_id=column_id,
            details={"name": name},
        )
        db.session.flush()

    atomic(_op)
