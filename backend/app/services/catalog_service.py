# Overview: Service-layer operations for project labels and priorities.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Card, Label, Priority, card_labels
from ..validation import ConflictError, NotFoundError
from .audit_service import append_audit_log
from .concurrency import atomic
from .project_service import get_project


_ENTITY = {Label: "LABEL", Priority: "PRIORITY"}


def list_labels(project_id: int) -> list[Label]:
    get_project(project_id)
    return (
        db.session.query(Label)
        .filter_by(project_id=project_id)
        .order_by(Label.created_at.asc(), Label.id.asc())
        .all()
    )


def list_priorities(project_id: int) -> list[Priority]:
    get_project(project_id)
    return (
        db.session.query(Priority)
        .filter_by(project_id=project_id)
        .order_by(Priority.weight.desc(), Priority.id.asc())
        .all()
    )


def _get_item(model, project_id: int, item_id: int):
    item = db.session.query(model).filter_by(id=item_id, project_id=project_id).first()
    if item is None:
        raise NotFoundError(f"{model.__name__} {item_id} not found")
    return item


def _flush_unique(model, name: str) -> None:
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise ConflictError(f"{model.__name__} '{name}' already exists in this project") from exc


def create_item(model, project_id: int, *, actor_id: int, fields: dict):
    """Create a Label or Priority; names are unique per project."""
    def _op():
        get_project(project_id)
        item = model(project_id=project_id, **fields)
        db.session.add(item)
        _flush_unique(model, fields.get("name", ""))
        append_audit_log(
            user_id=actor_id,
            project_id=project_id,
            action="CREATE",
            entity=_ENTITY[model],
            entity_id=item.id,
            details=dict(fields),
        )
        db.session.flush()
        return item

    return atomic(_op)


def update_item(model, project_id: int, item_id: int, *, actor_id: int, fields: dict):
    def _op():
        item = _get_item(model, project_id, item_id)
        for key, value in fields.items():
            setattr(item, key, value)
        _flush_unique(model, fields.get("name", item.name))
        append_audit_log(
            user_id=actor_id,
            project_id=project_id,
            action="UPDATE",
            entity=_ENTITY[model],
            entity_id=item.id,
            details=dict(fields),
        )
        db.session.flush()
        return item

    return atomic(_op)


def delete_item(model, project_id: int, item_id: int, *, actor_id: int) -> None:
    """
    Delete a Label or Priority. Cards keep existing: label links are
    dropped and priority references are cleared.
    """
    def _op() -> None:
        item = _get_item(model, project_id, item_id)
        if model is Priority:
            db.session.query(Card).filter(Card.priority_id == item.id).update(
                {Card.priority_id: None}, synchronize_session=False
            )
        else:
            db.session.execute(card_labels.delete().where(card_labels.c.label_id == item.id))
        name = item.name
        db.session.delete(item)
        append_audit_log(
            user_id=actor_id,
            project_id=project_id,
            action="DELETE",
            entity=_ENTITY[model],
            entity_id=item_id,
            details={"name": name},
        )
        db.session.flush()

    atomic(_op)
