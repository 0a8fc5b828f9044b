# Overview: Flask API routes for projects, settings, lifecycle, board and stats.

"""
Project Routes

- POST /api/projects                       create (global ADMIN)
- GET  /api/projects                       list visible projects
- GET  /api/projects/<id>/settings         settings + labels, priorities, members
- PATCH /api/projects/<id>/settings        name, description, card_movement_mode (project ADMIN)
- GET  /api/projects/<id>/lifecycle        live clock snapshot
- POST /api/projects/<id>/lifecycle        {"action": "start|pause|resume|close"} (project ADMIN)
- GET  /api/projects/<id>/board            columns with OPEN cards
- GET  /api/projects/<id>/stats            card completion stats
- GET  /api/projects/<id>/audit            audit trail (project ADMIN)

SECURITY: the actor is always g.user_id from the resolved identity, never
from the request body.
"""

from flask import Blueprint, request, g, current_app

from ..models import Project
from ..models.projects import CARD_MOVEMENT_MODES
from ..services import (
    audit_service,
    board_service,
    catalog_service,
    lifecycle_service,
    membership_service,
    project_service,
)
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    NotFoundError,
    ConflictError,
    TransactionFailed,
)
from ..decorators import require_auth, require_global_admin, require_project_role


PROJECT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
    min_lengths={"name": 3},
)

SETTINGS_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "card_movement_mode"},
    choices={"card_movement_mode": CARD_MOVEMENT_MODES},
    min_lengths={"name": 3},
)


projects_bp = Blueprint("projects", __name__, url_prefix="/api/projects")


@projects_bp.post("")
@require_auth
@require_global_admin
def create_project_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Project, payload=payload, policy=PROJECT_POLICY, partial=False)
        project = project_service.create_project(
            name=patch["name"],
            description=patch.get("description"),
            creator_id=g.user_id,
        )
        return project.to_dict(), 201
    except ValidationError as e:
        return {"error": str(e)}, 400
    except TransactionFailed as e:
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Failed to create project")
        return {"error": "Internal server error"}, 500


@projects_bp.get("")
@require_auth
def list_projects_route():
    page = request.args.get("page", default=1, type=int)
    limit = request.args.get("limit", default=20, type=int)
    return project_service.list_projects(user_id=g.user_id, page=page, limit=limit)


@projects_bp.get("/<int:project_id>/settings")
@require_auth
@require_project_role()
def get_settings_route(project_id: int):
    try:
        project = project_service.get_project(project_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404

    result = project.to_dict()
    result["labels"] = [l.to_dict() for l in catalog_service.list_labels(project_id)]
    result["priorities"] = [p.to_dict() for p in catalog_service.list_priorities(project_id)]
    result["members"] = [m.to_dict() for m in membership_service.list_members(project_id)]
    result["role"] = g.project_role
    return result


@projects_bp.patch("/<int:project_id>/settings")
@require_auth
@require_project_role(manage=True)
def update_settings_route(project_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Project, payload=payload, policy=SETTINGS_POLICY, partial=True)
        project = project_service.update_settings(project_id, actor_id=g.user_id, patch=patch)
        return project.to_dict()
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except TransactionFailed as e:
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Failed to update project settings")
        return {"error": "Internal server error"}, 500


@projects_bp.get("/<int:project_id>/lifecycle")
@require_auth
@require_project_role()
def get_lifecycle_route(project_id: int):
    """
    Live clock reading. Durations are decimal strings.

    Response:
        {"status", "started_at", "paused_at", "closed_at",
         "total_paused_ms", "total_elapsed_ms", "active_ms", "allowed_actions"}
    """
    try:
        return lifecycle_service.compute_live_snapshot(project_id).to_dict()
    except NotFoundError as e:
        return {"error": str(e)}, 404


@projects_bp.post("/<int:project_id>/lifecycle")
@require_auth
@require_project_role(manage=True)
def apply_lifecycle_route(project_id: int):
    """
    Apply a lifecycle action.

    Error responses:
        400: unknown action
        404: project not found
        409: action not allowed from the current status
        503: store contention, safe to retry
    """
    payload = request.get_json(silent=True) or {}

    try:
        project = lifecycle_service.apply_action(
            project_id,
            payload.get("action"),
            actor_id=g.user_id,
        )
        return project.to_dict()
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except TransactionFailed as e:
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Failed to apply lifecycle action")
        return {"error": "Internal server error"}, 500


@projects_bp.get("/<int:project_id>/board")
@require_auth
@require_project_role()
def get_board_route(project_id: int):
    try:
        return {"columns": board_service.get_board(project_id)}
    except NotFoundError as e:
        return {"error": str(e)}, 404


@projects_bp.get("/<int:project_id>/stats")
@require_auth
@require_project_role()
def get_stats_route(project_id: int):
    try:
        return project_service.get_stats(project_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404


@projects_bp.get("/<int:project_id>/audit")
@require_auth
@require_project_role(manage=True)
def list_audit_route(project_id: int):
    limit = request.args.get("limit", default=100, type=int)
    entries = audit_service.list_audit_logs(project_id, limit=limit)
    return {"entries": [e.to_dict() for e in entries], "count": len(entries)}
