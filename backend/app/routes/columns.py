# Overview: Flask API routes for board columns.

from flask import Blueprint, request, g, current_app

from ..models import BoardColumn
from ..services import project_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    NotFoundError,
    ConflictError,
    TransactionFailed,
)
from ..decorators import require_auth, require_project_role, check_project_access


COLUMN_POLICY = ModelValidationPolicy(
    writable_fields={"name", "order"},
    required_on_create={"name"},
)


columns_bp = Blueprint("columns", __name__, url_prefix="/api")


@columns_bp.get("/projects/<int:project_id>/columns")
@require_auth
@require_project_role()
def list_columns_route(project_id: int):
    columns = project_service.list_columns(project_id)
    return {"columns": [c.to_dict() for c in columns]}


@columns_bp.post("/projects/<int:project_id>/columns")
@require_auth
@require_project_role(manage=True)
def create_column_route(project_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=BoardColumn, payload=payload, policy=COLUMN_POLICY, partial=False)
        column = project_service.create_column(
            project_id,
            actor_id=g.user_id,
            name=patch["name"],
            order=patch.get("order"),
        )
        return column.to_dict(), 201
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except TransactionFailed as e:
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Failed to create column")
        return {"error": "Internal server error"}, 500


@columns_bp.patch("/columns/<int:column_id>")
@require_auth
def update_column_route(column_id: int):
    """
    Rename or reorder a column (project ADMIN).

    NOTE: changing order does not re-validate card positions under
    FORWARD_ONLY; the policy only applies to future moves.
    """
    try:
        column = project_service.get_column(column_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404

    denied = check_project_access(column.project_id, manage=True)
    if denied:
        return denied

    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=BoardColumn, payload=payload, policy=COLUMN_POLICY, partial=True)
        column = project_service.update_column(column_id, actor_id=g.user_id, patch=patch)
        return column.to_dict()
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except TransactionFailed as e:
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Failed to update column")
        return {"error": "Internal server error"}, 500


@columns_bp.delete("/columns/<int:column_id>")
@require_auth
def delete_column_route(column_id: int):
    try:
        column = project_service.get_column(column_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404

    denied = check_project_access(column.project_id, manage=True)
    if denied:
        return denied

    try:
        project_service.delete_column(column_id, actor_id=g.user_id)
        return {"message": "Column deleted successfully"}
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except TransactionFailed as e:
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Failed to delete column")
        return {"error": "Internal server error"}, 500
