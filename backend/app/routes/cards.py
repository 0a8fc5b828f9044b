# Overview: Flask API routes for cards, card moves and card timelines.

"""
Card Routes

- POST   /api/projects/<id>/cards    create at the bottom of a column
- GET    /api/cards/<id>             card detail
- PATCH  /api/cards/<id>             edit fields / open-close
- DELETE /api/cards/<id>             delete (closes the order gap)
- PATCH  /api/cards/<id>/move        {"column_id": int, "order": int}
- GET    /api/cards/<id>/timeline    time spent per column

Any project member may work with cards; the project is resolved from the
card before the role check.
"""

from flask import Blueprint, request, g, current_app

from ..models import Card
from ..models.cards import CARD_STATUSES
from ..services import board_service, timeline_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    coerce_int_list,
    ValidationError,
    NotFoundError,
    ForbiddenTransition,
    ConflictError,
    TransactionFailed,
)
from ..decorators import require_auth, require_project_role, check_project_access


CARD_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "column_id", "assignee_id", "priority_id"},
    required_on_create={"name", "column_id"},
)

CARD_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "status", "assignee_id", "priority_id"},
    choices={"status": CARD_STATUSES},
)


cards_bp = Blueprint("cards", __name__, url_prefix="/api")


def _pop_label_ids(payload: dict):
    if "label_ids" not in payload:
        return None
    raw = payload.pop("label_ids")
    if raw is None:
        return []
    return coerce_int_list(raw, "label_ids")


def _load_card_with_access(card_id: int):
    """Returns (card, None) or (None, error response)."""
    try:
        card = board_service.get_card(card_id)
    except NotFoundError as e:
        return None, ({"error": str(e)}, 404)
    denied = check_project_access(card.project_id)
    if denied:
        return None, denied
    return card, None


@cards_bp.post("/projects/<int:project_id>/cards")
@require_auth
@require_project_role()
def create_card_route(project_id: int):
    payload = dict(request.get_json(silent=True) or {})

    try:
        label_ids = _pop_label_ids(payload)
        patch = validate_payload(model=Card, payload=payload, policy=CARD_CREATE_POLICY, partial=False)
        card = board_service.create_card(
            project_id,
            patch["column_id"],
            patch["name"],
            actor_id=g.user_id,
            description=patch.get("description"),
            assignee_id=patch.get("assignee_id"),
            priority_id=patch.get("priority_id"),
            label_ids=label_ids,
        )
        return card.to_dict(), 201
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except TransactionFailed as e:
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Failed to create card")
        return {"error": "Internal server error"}, 500


@cards_bp.get("/cards/<int:card_id>")
@require_auth
def get_card_route(card_id: int):
    card, error = _load_card_with_access(card_id)
    if error:
        return error
    return card.to_dict()


@cards_bp.patch("/cards/<int:card_id>")
@require_auth
def update_card_route(card_id: int):
    card, error = _load_card_with_access(card_id)
    if error:
        return error

    payload = dict(request.get_json(silent=True) or {})
    try:
        label_ids = _pop_label_ids(payload)
        patch = validate_payload(model=Card, payload=payload, policy=CARD_UPDATE_POLICY, partial=True)
        card = board_service.update_card(card_id, actor_id=g.user_id, patch=patch, label_ids=label_ids)
        return card.to_dict()
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except TransactionFailed as e:
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Failed to update card")
        return {"error": "Internal server error"}, 500


@cards_bp.delete("/cards/<int:card_id>")
@require_auth
def delete_card_route(card_id: int):
    card, error = _load_card_with_access(card_id)
    if error:
        return error

    try:
        board_service.delete_card(card_id, actor_id=g.user_id)
        return {"message": "Card deleted successfully"}
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except TransactionFailed as e:
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Failed to delete card")
        return {"error": "Internal server error"}, 500


@cards_bp.patch("/cards/<int:card_id>/move")
@require_auth
def move_card_route(card_id: int):
    """
    Move a card.

    Request:
        {"column_id": 12, "order": 0}

    Error responses:
        400: invalid column target or order
        403: no project access, or backwards move in a FORWARD_ONLY project
        404: card not found
        409: card is CLOSED, or already at that position
        503: store contention, safe to retry
    """
    card, error = _load_card_with_access(card_id)
    if error:
        return error

    payload = request.get_json(silent=True) or {}
    if "column_id" not in payload or "order" not in payload:
        return {"error": "column_id and order are required"}, 400

    try:
        card = board_service.move_card(
            card_id,
            payload["column_id"],
            payload["order"],
            actor_id=g.user_id,
        )
        return {"message": "Card moved successfully", "card": card.to_dict()}
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ForbiddenTransition as e:
        return {"error": str(e)}, 403
    except ConflictError as e:
        return {"error": str(e)}, 409
    except TransactionFailed as e:
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Failed to move card")
        return {"error": "Internal server error"}, 500


@cards_bp.get("/cards/<int:card_id>/timeline")
@require_auth
def card_timeline_route(card_id: int):
    card, error = _load_card_with_access(card_id)
    if error:
        return error

    try:
        return timeline_service.build_timeline(card_id).to_dict()
    except NotFoundError as e:
        return {"error": str(e)}, 404
