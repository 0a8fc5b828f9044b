# Overview: Request and project-role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .models.auth import ROLE_ADMIN
from .services import access_service


def _is_authenticated() -> bool:
    return hasattr(g, 'identity')


def require_auth(f):
    """
    Require a bearer token and resolve the acting user.

    Sets the following Flask g attributes:
    - g.identity: the Identity returned by the configured resolver
    - g.user_id: shortcut for g.identity.user_id

    Returns 401 if:
    - No Authorization header
    - The resolver rejects the token (unknown, expired, revoked, inactive user)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()

        identity = access_service.get_identity_resolver()(token)
        if not identity:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.identity = identity
        g.user_id = identity.user_id

        return f(*args, **kwargs)

    return decorated_function


def require_global_admin(f):
    """Require the global ADMIN role (e.g. to create projects)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401
        if g.identity.role != ROLE_ADMIN:
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)

    return decorated_function


def require_project_role(manage: bool = False):
    """
    Require access to the project named by the project_id route argument.

    manage=False: any project role (member or admin)
    manage=True: project admin only

    Sets g.project_role for the route.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            project_id = kwargs.get("project_id")
            role = access_service.role_of(g.user_id, project_id)
            if role is None:
                return jsonify({"error": "Access denied"}), 403
            if manage and role != ROLE_ADMIN:
                return jsonify({"error": "Admin access required"}), 403

            g.project_role = role
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def check_project_access(project_id: int, *, manage: bool = False):
    """
    Inline variant for routes keyed by card or column id, where the project
    is only known after loading the row. Returns an error response tuple, or
    None when access is granted.
    """
    role = access_service.role_of(g.user_id, project_id)
    if role is None:
        return jsonify({"error": "Access denied"}), 403
    if manage and role != ROLE_ADMIN:
        return jsonify({"error": "Admin access required"}), 403
    g.project_role = role
    return None
