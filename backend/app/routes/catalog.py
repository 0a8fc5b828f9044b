# Overview: Flask API routes for project labels and priorities.

"""
Labels and priorities share one shape: list for any member, create / edit /
delete for project admins. Each kind is registered from the KINDS table.
"""

from flask import Blueprint, request, g, current_app

from ..models import Label, Priority
from ..services import catalog_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    NotFoundError,
    ConflictError,
    TransactionFailed,
)
from ..decorators import require_auth, require_project_role


LABEL_POLICY = ModelValidationPolicy(
    writable_fields={"name", "color"},
    required_on_create={"name"},
)

PRIORITY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "color", "weight"},
    required_on_create={"name"},
)

# url segment (also the list response key) -> (model, policy, list function)
KINDS = {
    "labels": (Label, LABEL_POLICY, catalog_service.list_labels),
    "priorities": (Priority, PRIORITY_POLICY, catalog_service.list_priorities),
}


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/projects")


def _write_errors(action: str, func):
    try:
        return func()
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except TransactionFailed as e:
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Failed to %s", action)
        return {"error": "Internal server error"}, 500


def _register(kind: str):
    model, policy, list_items = KINDS[kind]

    @require_auth
    @require_project_role()
    def list_route(project_id: int):
        items = list_items(project_id)
        return {kind: [i.to_dict() for i in items]}

    @require_auth
    @require_project_role(manage=True)
    def create_route(project_id: int):
        payload = request.get_json(silent=True) or {}

        def _op():
            fields = validate_payload(model=model, payload=payload, policy=policy, partial=False)
            item = catalog_service.create_item(model, project_id, actor_id=g.user_id, fields=fields)
            return item.to_dict(), 201

        return _write_errors(f"create {kind}", _op)

    @require_auth
    @require_project_role(manage=True)
    def update_route(project_id: int, item_id: int):
        payload = request.get_json(silent=True) or {}

        def _op():
            fields = validate_payload(model=model, payload=payload, policy=policy, partial=True)
            item = catalog_service.update_item(model, project_id, item_id, actor_id=g.user_id, fields=fields)
            return item.to_dict()

        return _write_errors(f"update {kind}", _op)

    @require_auth
    @require_project_role(manage=True)
    def delete_route(project_id: int, item_id: int):
        def _op():
            catalog_service.delete_item(model, project_id, item_id, actor_id=g.user_id)
            return {"message": f"{model.__name__} deleted successfully"}

        return _write_errors(f"delete {kind}", _op)

    catalog_bp.add_url_rule(f"/<int:project_id>/{kind}", f"list_{kind}", list_route, methods=["GET"])
    catalog_bp.add_url_rule(f"/<int:project_id>/{kind}", f"create_{kind}", create_route, methods=["POST"])
    catalog_bp.add_url_rule(f"/<int:project_id>/{kind}/<int:item_id>", f"update_{kind}", update_route, methods=["PATCH"])
    catalog_bp.add_url_rule(f"/<int:project_id>/{kind}/<int:item_id>", f"delete_{kind}", delete_route, methods=["DELETE"])


for _kind in KINDS:
    _register(_kind)
