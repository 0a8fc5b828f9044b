# Overview: Flask API routes for project membership.

from flask import Blueprint, request, g, current_app

from ..models.auth import ROLE_MEMBER
from ..services import membership_service
from ..validation import ValidationError, NotFoundError, ConflictError, TransactionFailed
from ..decorators import require_auth, require_project_role


members_bp = Blueprint("members", __name__, url_prefix="/api/projects")


@members_bp.get("/<int:project_id>/members")
@require_auth
@require_project_role()
def list_members_route(project_id: int):
    members = membership_service.list_members(project_id)
    return {"members": [m.to_dict() for m in members], "count": len(members)}


@members_bp.post("/<int:project_id>/members")
@require_auth
@require_project_role(manage=True)
def invite_member_route(project_id: int):
    """
    Add (or re-role) an existing user by email.

    Request:
        {"email": "dev@example.com", "role": "MEMBER"}
    """
    data = request.get_json(silent=True) or {}

    try:
        membership = membership_service.invite_member(
            project_id,
            actor_id=g.user_id,
            email=data.get("email"),
            role=data.get("role") or ROLE_MEMBER,
        )
        return membership.to_dict()
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except TransactionFailed as e:
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Failed to invite member")
        return {"error": "Internal server error"}, 500


@members_bp.delete("/<int:project_id>/members/<int:user_id>")
@require_auth
@require_project_role(manage=True)
def remove_member_route(project_id: int, user_id: int):
    try:
        membership_service.remove_member(project_id, actor_id=g.user_id, user_id=user_id)
        return {"message": "Member removed"}
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except TransactionFailed as e:
        return {"error": str(e)}, 503
    except Exception:
        current_app.logger.exception("Failed to remove member")
        return {"error": "Internal server error"}, 500
