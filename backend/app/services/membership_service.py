# Overview: Service-layer operations for project membership.

from __future__ import annotations

from ..extensions import db
from ..models import ProjectMembership, User
from ..models.auth import ROLE_ADMIN, ROLE_MEMBER, VALID_ROLES
from ..validation import ConflictError, NotFoundError, ValidationError
from .audit_service import append_audit_log
from .concurrency import atomic
from .project_service import get_project


def list_members(project_id: int) -> list[ProjectMembership]:
    get_project(project_id)
    return (
        db.session.query(ProjectMembership)
        .filter_by(project_id=project_id)
        .order_by(ProjectMembership.created_at.asc(), ProjectMembership.id.asc())
        .all()
    )


def invite_member(project_id: int, *, actor_id: int, email: str, role: str = ROLE_MEMBER) -> ProjectMembership:
    """
    Add an existing user to the project, or change their role if they are
    already a member (upsert).

    Raises:
        ValidationError: bad email/role
        NotFoundError: project or user missing
    """
    if not isinstance(email, str) or "@" not in email:
        raise ValidationError("A valid email is required")
    if role not in VALID_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(sorted(VALID_ROLES))}")

    def _op() -> ProjectMembership:
        get_project(project_id)
        user = db.session.query(User).filter(User.email == email.strip().lower()).first()
        if user is None:
            raise NotFoundError("User not found")

        membership = db.session.query(ProjectMembership).filter_by(
            user_id=user.id, project_id=project_id
        ).first()
        if membership is None:
            membership = ProjectMembership(user_id=user.id, project_id=project_id, role=role)
            db.session.add(membership)
        else:
            if membership.role == ROLE_ADMIN and role != ROLE_ADMIN:
                _ensure_other_admin(project_id, user.id)
            membership.role = role
        db.session.flush()

        append_audit_log(
            user_id=actor_id,
            project_id=project_id,
            action="INVITE",
            entity="MEMBERSHIP",
            entity_id=membership.id,
            details={"user_id": user.id, "role": role},
        )
        db.session.flush()
        return membership

    return atomic(_op)


def _ensure_other_admin(project_id: int, user_id: int) -> None:
    others = db.session.query(ProjectMembership).filter(
        ProjectMembership.project_id == project_id,
        ProjectMembership.role == ROLE_ADMIN,
        ProjectMembership.user_id != user_id,
    ).count()
    if others == 0:
        raise ConflictError("A project must keep at least one admin")


def remove_member(project_id: int, *, actor_id: int, user_id: int) -> None:
    """The last project admin cannot be removed."""
    def _op() -> None:
        membership = db.session.query(ProjectMembership).filter_by(
            user_id=user_id, project_id=project_id
        ).first()
        if membership is None:
            raise NotFoundError("Membership not found")
        if membership.role == ROLE_ADMIN:
            _ensure_other_admin(project_id, user_id)

        membership_id = membership.id
        db.session.delete(membership)
        append_audit_log(
            user_id=actor_id,
            project_id=project_id,
            action="REMOVE",
            entity="MEMBERSHIP",
            entity_id=membership_id,
            details={"user_id": user_id},
        )
        db.session.flush()

    atomic(_op)
